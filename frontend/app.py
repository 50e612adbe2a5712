"""Cosmic Lens - Streamlit interface.

Thin client for the APOD viewer backend. All fetching, caching and assistant
calls go through the FastAPI backend. This file handles:
  - Dashboard: one day's picture with a date picker
  - Gallery: the last 20 days, plus a random sample on demand
  - Settings sidebar: NASA key and theme, applied without reload
  - Chat panel: streamed replies from the Cosmos assistant, one
    conversation per record held in st.session_state
"""

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import streamlit as st
import streamlit.components.v1 as components
import structlog

from frontend.api_client import ApiError, CosmicLensClient
from frontend.conversation import Conversation

APOD_EARLIEST = date(1995, 6, 16)
GALLERY_DAYS = 20
GALLERY_COLUMNS = 4

logger = structlog.get_logger(__name__)

client = CosmicLensClient()

st.set_page_config(
    page_title="Cosmic Lens - Astronomy Picture of the Day",
    layout="wide",
)

st.markdown("""
<style>
    .apod-credit {
        font-size: 0.8rem;
        opacity: 0.6;
    }
    .error-panel {
        padding: 2rem;
        border-radius: 16px;
        border: 1px solid rgba(239, 68, 68, 0.3);
        text-align: center;
    }
</style>
""", unsafe_allow_html=True)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def init_session():
    """Initialize session state on first load."""
    if "session_id" not in st.session_state:
        st.session_state.session_id = str(uuid4())
    if "conversations" not in st.session_state:
        st.session_state.conversations = {}
    if "show_chat" not in st.session_state:
        st.session_state.show_chat = False
    if "gallery" not in st.session_state:
        st.session_state.gallery = None
    if "selected_date" not in st.session_state:
        st.session_state.selected_date = None


def get_conversation(record: dict) -> Conversation:
    """One conversation per record date; a new record starts fresh."""
    conversations = st.session_state.conversations
    if record["date"] not in conversations:
        conversations[record["date"]] = Conversation(record["title"])
    return conversations[record["date"]]


def render_media(record: dict):
    """Image (HD when available) or embedded video."""
    if record["media_type"] == "image":
        st.image(record.get("hdurl") or record["url"], caption=record["title"], use_container_width=True)
    else:
        components.iframe(record["url"], height=480)


def render_details(record: dict):
    st.subheader(record["title"])
    st.caption(record["date"])
    st.write(record["explanation"])
    if record.get("copyright"):
        st.markdown(f'<div class="apod-credit">Image Credit: {record["copyright"]}</div>',
                    unsafe_allow_html=True)


def render_chat(record: dict):
    """Chat panel for one record with streamed assistant replies."""
    conversation = get_conversation(record)

    st.markdown("#### Cosmic AI")
    for msg in conversation.messages:
        with st.chat_message(msg.role):
            st.markdown(msg.text)

    with st.form(key=f"chat_form_{record['date']}", clear_on_submit=True):
        user_input = st.text_input("Ask about this image...", key=f"chat_input_{record['date']}")
        submitted = st.form_submit_button("Send")

    if not submitted or not user_input.strip():
        return

    history = conversation.history()
    user_msg = conversation.add_user(user_input.strip())
    with st.chat_message("user"):
        st.markdown(user_msg.text)

    ai_msg = conversation.start_assistant()
    with st.chat_message("assistant"):
        placeholder = st.empty()
        try:
            for fragment in client.stream_chat(st.session_state.session_id, record, history, user_msg.text):
                placeholder.markdown(conversation.append_fragment(ai_msg, fragment))
        except ApiError as e:
            conversation.discard(ai_msg)
            placeholder.empty()
            st.error(f"{e.message}\n\n{e.hint or 'Check settings to ensure API Key is valid.'}")
            return
        conversation.finish(ai_msg)


def render_sidebar():
    """Navigation plus the settings overlay."""
    with st.sidebar:
        st.title("Cosmic Lens")
        page = st.radio("Go to", ["Dashboard", "Gallery"], key="nav_page")

        st.divider()
        with st.expander("Settings"):
            try:
                current = client.get_settings()
            except ApiError as e:
                st.error(e.message)
                current = None

            if current:
                if current["using_demo_key"]:
                    st.caption("Using DEMO_KEY (rate limited).")
                else:
                    st.caption(f"NASA key configured ({current['nasa_api_key_hint']}).")

                nasa_key = st.text_input(
                    "NASA API Key",
                    type="password",
                    help="Leave empty to keep the current key.",
                )
                theme = st.selectbox("Theme", ["dark", "light"],
                                     index=0 if current["theme"] == "dark" else 1)

                if st.button("Save Settings", use_container_width=True):
                    try:
                        client.save_settings(nasa_api_key=nasa_key, theme=theme)
                        st.success("Settings saved.")
                    except ApiError as e:
                        st.error(e.message)

                if not current["using_demo_key"] and st.button("Clear NASA Key", use_container_width=True):
                    try:
                        client.clear_nasa_key()
                        st.success("Stored key removed.")
                        st.rerun()
                    except ApiError as e:
                        st.error(e.message)

                if not current["assistant_configured"]:
                    st.warning("Assistant unavailable: GEMINI_API_KEY is not set on the server.")

        st.divider()
        if st.button("New Chat Session", use_container_width=True):
            st.session_state.session_id = str(uuid4())
            st.session_state.conversations = {}
            st.rerun()

    return page


def page_dashboard():
    """Single-day view with date picker and optional chat panel."""
    header, controls = st.columns([3, 2])
    with header:
        st.title("Astronomy Picture of the Day")
        st.caption("Discover the cosmos, one day at a time.")
    with controls:
        picked = st.date_input("Date", value=today_utc(), min_value=APOD_EARLIEST, max_value=today_utc())
        st.toggle("Ask AI", key="show_chat")

    day = picked.isoformat()
    with st.spinner("Contacting NASA servers..."):
        try:
            record = client.get_apod(day)
        except ApiError as e:
            st.markdown('<div class="error-panel"><h2>Houston, we have a problem</h2></div>',
                        unsafe_allow_html=True)
            st.error(e.message)
            if st.button("Retry Mission"):
                st.rerun()
            return

    if st.session_state.show_chat:
        main, side = st.columns([2, 1])
    else:
        main, side = st.container(), None

    with main:
        render_media(record)
        render_details(record)
        if st.button("Quick summary"):
            with st.spinner("Cosmos is thinking..."):
                try:
                    st.info(client.explain(record, st.session_state.session_id))
                except ApiError as e:
                    st.error(e.message)

    if side is not None:
        with side:
            render_chat(record)


def load_gallery() -> list[dict]:
    """Last GALLERY_DAYS days, newest first. Failure degrades to an empty gallery."""
    end = today_utc()
    start = end - timedelta(days=GALLERY_DAYS)
    try:
        return client.get_range(start.isoformat(), end.isoformat())
    except ApiError as e:
        logger.error("gallery.load_failed", error=e.message)
        return []


def render_grid(records: list[dict], key_prefix: str):
    cols = st.columns(GALLERY_COLUMNS, gap="small")
    for i, record in enumerate(records):
        with cols[i % GALLERY_COLUMNS].container(border=True):
            if record["media_type"] == "image":
                st.image(record["url"], use_container_width=True)
            else:
                st.caption("[VIDEO]")
            st.markdown(f"**{record['title']}**")
            st.caption(record["date"])
            if st.button("Details", key=f"{key_prefix}_{i}_{record['date']}"):
                st.session_state.selected_date = record["date"]
                st.session_state.selected_record = record
                st.rerun()


def page_gallery():
    """Recent-day grid with a detail view per record."""
    if st.session_state.selected_date:
        record = st.session_state.selected_record
        if st.button("Back to gallery"):
            st.session_state.selected_date = None
            st.rerun()
        media, info = st.columns([2, 1])
        with media:
            render_media(record)
        with info:
            render_details(record)
            render_chat(record)
        return

    title, actions = st.columns([3, 1])
    with title:
        st.title("Recent Discoveries")
    with actions:
        refresh = st.button("Refresh", use_container_width=True)
        surprise = st.button("Surprise me", use_container_width=True)

    if st.session_state.gallery is None or refresh:
        with st.spinner("Loading gallery..."):
            st.session_state.gallery = load_gallery()

    if surprise:
        try:
            st.session_state.random_sample = client.get_random()
        except ApiError as e:
            st.error(e.message)

    if st.session_state.get("random_sample"):
        st.subheader("Random picks")
        render_grid(st.session_state.random_sample, "random")
        st.divider()

    if not st.session_state.gallery:
        st.info("No pictures to show right now.")
        return

    render_grid(st.session_state.gallery, "gallery")


def main():
    """Run the Streamlit app."""
    init_session()
    page = render_sidebar()

    if page == "Gallery":
        page_gallery()
    else:
        page_dashboard()


if __name__ == "__main__":
    main()
