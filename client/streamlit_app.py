"""Client-side Streamlit UI for the MathBot relay.

Features
--------
* Chat interface powered by the `st.chat_message` elements.
* Sidebar to configure the **relay base URL**, an optional request timeout and
  the note carried over from a previous phase.
* Assistant answers that come with a detailed explanation get a
  "Voir l'explication" button; the explanation opens in the sidebar panel.
* The whole turn state lives in a `ChatSession` kept in `st.session_state`, so
  the log survives reruns and the input is disabled while a reply is pending.

Run with:
    $ streamlit run client/streamlit_app.py

Make sure the relay is up (default assumes http://localhost:8000/api/chat) or
change the "Relay base URL" in the sidebar.
"""

from __future__ import annotations

import streamlit as st

from mathbot.chat_client import ChatSession, RelayClient

###############################################################################
# Page setup
###############################################################################

st.set_page_config(page_title="MathBot", page_icon="🧮", layout="wide")
st.title("MathBot ‑ ton assistant en mathématiques")

###############################################################################
# Sidebar ­– configuration
###############################################################################

st.sidebar.header("Server configuration")
API_BASE_URL: str = st.sidebar.text_input(
    "Relay base URL", value="http://localhost:8000", help="Where the MathBot relay lives"
)
TIMEOUT: float = st.sidebar.number_input(
    "Timeout (s, 0 = none)", value=0.0, min_value=0.0, step=5.0
)
CONTEXT: str = st.sidebar.text_area(
    "Context from previous discussion (optional)", value=""
)

###############################################################################
# Session‑state helpers
###############################################################################

if "chat" not in st.session_state:
    st.session_state.chat = ChatSession(RelayClient(API_BASE_URL, timeout=TIMEOUT or None))

chat: ChatSession = st.session_state.chat
chat.relay.configure(API_BASE_URL, timeout=TIMEOUT or None)
chat.context = CONTEXT.strip() or None

###############################################################################
# Explanation panel
###############################################################################

if chat.panel_open:
    st.sidebar.markdown("---")
    st.sidebar.header("Explication")
    st.sidebar.markdown(chat.selected_detail)
    if st.sidebar.button("Fermer"):
        chat.close_explanation()
        st.rerun()

###############################################################################
# Display chat history
###############################################################################

for msg in chat.messages:
    with st.chat_message(msg.role):
        st.markdown(msg.text)
        if msg.role == "assistant" and msg.detail:
            if st.button("Voir l'explication", key=f"detail-{msg.id}"):
                chat.open_explanation(msg.id)
                st.rerun()

###############################################################################
# Chat input
###############################################################################

user_prompt = st.chat_input("Pose ta question ici...", disabled=chat.awaiting_reply)
if user_prompt:
    with st.spinner("MathBot réfléchit…"):
        chat.submit(user_prompt)
    st.rerun()
