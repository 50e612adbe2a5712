"""Cache-aside client for the NASA Astronomy Picture of the Day API.

Single-date lookups are served from the key-value store while the cached
entry is younger than CACHE_TTL_SECONDS; on a miss (absent, expired or
corrupt entry) the provider is queried and the result written back. Range
lookups always go to the network but refresh every per-date entry they
return. Random samples are never cached.

No locking: two concurrent misses for the same date both fetch and both
write, the later write wins. Records are immutable per date so the content
converges.
"""

import re
import time
from collections.abc import Callable
from datetime import date

import httpx
import structlog
from pydantic import ValidationError

from backend.api.schemas import CacheEntry, DayRecord
from backend.core.kv_store import KeyValueStore
from backend.core.settings import DEMO_KEY, NASA_API_BASE, StorageKeys

logger = structlog.get_logger(__name__)

CACHE_TTL_SECONDS = 24 * 60 * 60

_DATE_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class RemoteFetchError(Exception):
    """APOD provider returned a non-success status, bad data, or was unreachable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CacheCorruptionError(Exception):
    """A stored cache entry failed to parse. Recovered inside ApodService."""
    pass


def cache_key(day: str) -> str:
    """Store key for a cached date."""
    return f"{StorageKeys.CACHE_PREFIX}{day}"


def normalize_date(value: str | date) -> str:
    """Return value as a YYYY-MM-DD string.

    Raises:
        ValueError: If value is not a real calendar date in that format.
    """
    if isinstance(value, date):
        return value.isoformat()
    if not _DATE_FORMAT.match(value):
        raise ValueError(f"Date must be YYYY-MM-DD, got {value!r}")
    date.fromisoformat(value)
    return value


def read_entry(store: KeyValueStore, key: str) -> CacheEntry | None:
    """Load a cache entry.

    Raises:
        CacheCorruptionError: If the stored value is not a valid CacheEntry.
    """
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return CacheEntry.model_validate_json(raw)
    except ValidationError as e:
        raise CacheCorruptionError(f"Unparseable cache entry {key}: {e.error_count()} error(s)") from e


def purge_cache(store: KeyValueStore, now: float, expired_only: bool = False) -> int:
    """Delete cached records from the store.

    Args:
        store: Key-value store holding cache entries.
        now: Current epoch seconds.
        expired_only: Keep fresh, parseable entries.

    Returns:
        Number of entries removed.
    """
    removed = 0
    for key in store.keys(prefix=StorageKeys.CACHE_PREFIX):
        if expired_only:
            try:
                entry = read_entry(store, key)
            except CacheCorruptionError:
                entry = None
            if entry is not None and now - entry.stored_at < CACHE_TTL_SECONDS:
                continue
        store.remove(key)
        removed += 1

    logger.info("apod.cache_purged", removed=removed, expired_only=expired_only)
    return removed


def _error_message(response: httpx.Response) -> str:
    """Provider message from an error body: msg, then error.message, then a generic one."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        nested = error.get("message") if isinstance(error, dict) else None
        message = body.get("msg") or nested
        if message:
            return str(message)

    return f"API Error: {response.status_code}"


class ApodService:
    """Reads day records through the key-value store cache."""

    def __init__(
        self,
        store: KeyValueStore,
        api_key: str = DEMO_KEY,
        base_url: str = NASA_API_BASE,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the service.

        Args:
            store: Key-value store holding cache entries.
            api_key: APOD access key. Empty falls back to DEMO_KEY.
            base_url: APOD endpoint.
            timeout: HTTP timeout in seconds.
            clock: Returns the current epoch time in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self._store = store
        self._api_key = api_key or DEMO_KEY
        self._base_url = base_url
        self._clock = clock
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def using_demo_key(self) -> bool:
        return self._api_key == DEMO_KEY

    def configure(self, api_key: str | None) -> None:
        """Swap the access key used for subsequent requests."""
        self._api_key = api_key or DEMO_KEY
        logger.info("apod.reconfigured", using_demo_key=self.using_demo_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_by_date(self, day: str | date) -> DayRecord:
        """Fetch the record for one date, preferring a fresh cached copy.

        Args:
            day: Date as YYYY-MM-DD string or date. Future dates are the caller's problem.

        Returns:
            The DayRecord for that date.

        Raises:
            ValueError: If the date is malformed.
            RemoteFetchError: If the cache misses and the provider request fails.
        """
        day = normalize_date(day)
        key = cache_key(day)

        try:
            entry = self._read_entry(key)
        except CacheCorruptionError as e:
            logger.warning("apod.cache_corrupt", date=day, error=str(e))
            self._store.remove(key)
            entry = None

        if entry is not None:
            age = self._clock() - entry.stored_at
            if age < CACHE_TTL_SECONDS:
                logger.info("apod.cache_hit", date=day)
                return entry.payload

            logger.info("apod.cache_expired", date=day, age_s=int(age))
            self._store.remove(key)

        logger.info("apod.fetch", date=day)
        data = await self._request({"date": day})
        record = self._parse_record(data)
        self._write_entry(key, record)
        return record

    async def get_by_range(self, start: str | date, end: str | date) -> list[DayRecord]:
        """Fetch every record between two dates (inclusive), newest first.

        Always hits the network; each returned record overwrites its cache entry.

        Raises:
            ValueError: If a date is malformed or start is after end.
            RemoteFetchError: If the provider request fails.
        """
        start = normalize_date(start)
        end = normalize_date(end)
        if start > end:
            raise ValueError(f"start_date {start} is after end_date {end}")

        logger.info("apod.fetch_range", start=start, end=end)
        data = await self._request({"start_date": start, "end_date": end})
        records = self._parse_records(data)

        for record in records:
            if record.date:
                self._write_entry(cache_key(record.date), record)

        return sorted(records, key=lambda r: r.date, reverse=True)

    async def get_random_sample(self, count: int = 5) -> list[DayRecord]:
        """Fetch count random records. Results are not cached.

        Raises:
            ValueError: If count < 1.
            RemoteFetchError: Generic message on any failure.
        """
        if count < 1:
            raise ValueError("count must be at least 1")

        logger.info("apod.fetch_random", count=count)
        try:
            data = await self._request({"count": count})
            return self._parse_records(data)
        except RemoteFetchError as e:
            raise RemoteFetchError("Failed to fetch random APODs", status_code=e.status_code) from e

    def purge_cache(self, expired_only: bool = False) -> int:
        """Delete cached records. See purge_cache()."""
        return purge_cache(self._store, self._clock(), expired_only)

    def _read_entry(self, key: str) -> CacheEntry | None:
        return read_entry(self._store, key)

    def _write_entry(self, key: str, record: DayRecord) -> None:
        entry = CacheEntry(stored_at=self._clock(), payload=record)
        self._store.set(key, entry.to_json())

    async def _request(self, params: dict) -> object:
        """GET the APOD endpoint and return the decoded JSON body."""
        query = {"api_key": self._api_key, **params}
        try:
            response = await self._client.get(self._base_url, params=query)
        except httpx.HTTPError as e:
            logger.error("apod.unreachable", error=type(e).__name__)
            raise RemoteFetchError(f"NASA API unreachable: {type(e).__name__}") from e

        if not response.is_success:
            message = _error_message(response)
            logger.error("apod.http_error", status=response.status_code, message=message)
            raise RemoteFetchError(message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            logger.error("apod.bad_json", status=response.status_code)
            raise RemoteFetchError("NASA API returned malformed JSON", status_code=response.status_code) from e

    def _parse_record(self, data: object) -> DayRecord:
        try:
            return DayRecord.model_validate(data)
        except ValidationError as e:
            logger.error("apod.bad_record", errors=e.error_count())
            raise RemoteFetchError("NASA API returned an unexpected record") from e

    def _parse_records(self, data: object) -> list[DayRecord]:
        if not isinstance(data, list):
            raise RemoteFetchError("NASA API returned an unexpected response")
        return [self._parse_record(item) for item in data]
