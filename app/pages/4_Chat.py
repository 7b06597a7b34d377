"""
Food safety assistant chat page.
"""
import streamlit as st
import sys
import os

# Add parent directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from app.auth import AuthService, is_authenticated, get_current_user_id
from app.chat_tracking import ChatService
from app.main import get_analyzer, safe_run_async
import logging

logger = logging.getLogger(__name__)

def show_chat_page():
    """Display chats and the active conversation"""
    st.set_page_config(page_title="💬 SafeMenu Chat", page_icon="💬", layout="wide")

    if not is_authenticated():
        st.error("Please login to chat")
        if st.button("Go to Login"):
            st.switch_page("pages/1_Login.py")
        return

    user_id = get_current_user_id()
    profile = AuthService.get_user_profile(user_id)

    with st.sidebar:
        st.markdown("### 💬 Conversations")
        if st.button("➕ New chat", use_container_width=True):
            st.session_state.active_chat_id = None
        for chat in ChatService.get_chat_history(user_id, 1, 20)['chats']:
            if st.button(chat['title'], key=f"chat_{chat['id']}", use_container_width=True):
                st.session_state.active_chat_id = chat['id']

    chat_id = st.session_state.get('active_chat_id')
    chat = ChatService.get_chat_by_id(chat_id, user_id) if chat_id else None

    st.title(chat['title'] if chat else "💬 Ask SafeMenu")
    if chat:
        if st.button("Archive chat"):
            ChatService.archive_chat(chat['id'], user_id)
            st.session_state.active_chat_id = None
            st.rerun()
        for message in chat['messages']:
            with st.chat_message(message['role']):
                st.markdown(message['content'])
    else:
        st.caption("Ask about allergens, ingredients or what to order.")

    question = st.chat_input("Type your question")
    if not question:
        return

    analyzer = get_analyzer()
    with st.spinner("Thinking..."):
        if chat:
            reply = safe_run_async(ChatService.send_message(chat['id'], user_id, question, analyzer, profile))
            if reply is None:
                st.error("Sorry, the message could not be sent.")
                return
        else:
            new_chat = safe_run_async(ChatService.start_chat(user_id, question, analyzer, profile))
            if new_chat is None:
                st.error("Sorry, the chat could not be started.")
                return
            st.session_state.active_chat_id = new_chat['id']
    st.rerun()

if __name__ == "__main__":
    show_chat_page()
