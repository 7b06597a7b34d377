import asyncio
import io
import logging
import os
import time
from typing import Any, Dict, Optional

import nest_asyncio
import streamlit as st
from dotenv import load_dotenv
from openai import AsyncOpenAI
from PIL import Image, UnidentifiedImageError

# Ensure project root is on sys.path so 'services' can be imported when run from different CWDs
import sys as _sys
_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _ROOT not in _sys.path:
    _sys.path.insert(0, _ROOT)

from app.auth import AuthService, get_current_display_name, get_current_user_id, init_session_state, is_authenticated
from app.chat_tracking import ChatService
from app.config import AISettings, SAFETY_COLORS, SAFETY_LABELS
from app.database import init_database
from app.models import InvalidInputError, UserProfile
from app.scan_tracking import ScanTrackingService
from services.analyzer import SafeMenuAnalyzer, verify_openai_access
from utils.storage import StorageError, cleanup_old_uploads, delete_temp_file, save_temp_upload, validate_image_upload

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Apply nest_asyncio only if needed
try:
    nest_asyncio.apply()
except Exception as e:
    logger.warning(f"Could not apply nest_asyncio: {e}")

load_dotenv()

def safe_run_async(coro):
    """
    Safely run async code from Streamlit callbacks.

    Args:
        coro: Async coroutine to run

    Returns:
        Result of the coroutine
    """
    try:
        current_loop = asyncio.get_event_loop()
        if current_loop.is_closed():
            raise RuntimeError("event loop is closed")
        return current_loop.run_until_complete(coro)
    except RuntimeError:
        # No usable event loop, create one
        new_loop = asyncio.new_event_loop()
        asyncio.set_event_loop(new_loop)
        return new_loop.run_until_complete(coro)

def get_ai_settings() -> AISettings:
    """AI settings snapshot, taken and access-checked once per session."""
    if 'ai_settings' not in st.session_state:
        settings = AISettings.from_env()
        if settings.available:
            ok, error = safe_run_async(
                verify_openai_access(AsyncOpenAI(api_key=settings.api_key), settings.chat_model)
            )
            if not ok:
                logger.warning(f"AI backend unavailable, using rule-based analysis: {error}")
                settings = settings.disabled()
        st.session_state.ai_settings = settings
    return st.session_state.ai_settings

def get_analyzer() -> SafeMenuAnalyzer:
    if 'analyzer' not in st.session_state:
        st.session_state.analyzer = SafeMenuAnalyzer(get_ai_settings())
    return st.session_state.analyzer

def run_scan(coro, user_id: int, scan_type: str, input_text: Optional[str] = None,
             file_size: Optional[int] = None, mime_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Run one analysis, time it and save it to the scan history."""
    analyzer = get_analyzer()
    start = time.perf_counter()
    try:
        result = safe_run_async(coro)
    except InvalidInputError as e:
        st.error(str(e))
        return None
    elapsed_ms = int((time.perf_counter() - start) * 1000)

    scan = ScanTrackingService.save_scan(
        user_id=user_id,
        scan_type=scan_type,
        result=result,
        input_text=input_text,
        file_size=file_size,
        mime_type=mime_type,
        analysis_time_ms=elapsed_ms,
        ai_model=analyzer.model_label,
    )
    if scan is None:
        st.warning("Analysis finished but could not be saved to your history.")
        return {'id': None, 'scan_type': scan_type, 'result': result.to_dict()}
    return scan

def render_analysis(result: Dict[str, Any]):
    rating = result.get('safetyRating', 'yellow')
    color = SAFETY_COLORS.get(rating, SAFETY_COLORS['yellow'])
    st.markdown(
        f"<div style='border-left: 6px solid {color}; padding: 0.5rem 1rem;'>"
        f"<h3 style='margin:0'>{result.get('mealName', 'Meal')}</h3>"
        f"<p style='margin:0'>{SAFETY_LABELS.get(rating, rating)}</p></div>",
        unsafe_allow_html=True,
    )

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**⚠️ Allergy warnings**")
        for warning in result.get('allergyWarnings') or ["None detected"]:
            st.markdown(f"- {warning}")
        st.markdown("**🩺 Health risks**")
        for risk in result.get('healthRisks') or ["None identified"]:
            st.markdown(f"- {risk}")
    with col2:
        st.markdown("**🥗 Ingredients**")
        for ingredient in result.get('ingredients') or []:
            st.markdown(f"- {ingredient}")
        st.markdown("**📊 Nutrition (estimates)**")
        nutrition = result.get('nutritionalBreakdown') or {}
        for key, value in nutrition.items():
            st.markdown(f"- {key.capitalize()}: {value}")

    st.info(result.get('recommendation', ''))

def render_menu_analysis(result: Dict[str, Any]):
    sections = [
        ("🟢 Safe options", 'safeOptions'),
        ("🟡 Order with care", 'moderateOptions'),
        ("🔴 Risky options", 'riskyOptions'),
    ]
    for title, key in sections:
        options = result.get(key) or []
        with st.expander(f"{title} ({len(options)})", expanded=key == 'safeOptions'):
            if not options:
                st.caption("Nothing here.")
            for option in options:
                st.markdown(f"**{option['name']}** - {option['reason']}")
    st.info(result.get('recommendation', ''))

def read_uploaded_image(data: bytes, mime_type: Optional[str]) -> Optional[Image.Image]:
    try:
        validate_image_upload(data, mime_type)
        return Image.open(io.BytesIO(data))
    except StorageError as e:
        st.error(str(e))
    except UnidentifiedImageError:
        st.error("Could not read the image. Please try another photo.")
    return None

def show_scan_inputs(user_id: int, profile: UserProfile):
    analyzer = get_analyzer()
    tab_upload, tab_camera, tab_menu, tab_text = st.tabs(
        ["📤 Upload Photo", "📷 Camera", "📋 Menu", "✍️ Describe"]
    )

    with tab_upload:
        uploaded = st.file_uploader("Meal photo", type=["jpg", "jpeg", "png", "webp"])
        note = st.text_input("Optional note (e.g. dish name)", key="upload_note")
        if uploaded and st.button("Analyze photo", key="analyze_upload"):
            data = uploaded.getvalue()
            image = read_uploaded_image(data, uploaded.type)
            if image is not None:
                try:
                    stored = save_temp_upload(data, uploaded.name)
                except StorageError as e:
                    logger.warning(f"Upload not stored: {e}")
                    stored = None
                try:
                    with st.spinner("Analyzing your meal..."):
                        st.session_state.last_scan = run_scan(
                            analyzer.analyze_meal_image(image, profile, note), user_id, "image",
                            input_text=note or None, file_size=len(data), mime_type=uploaded.type,
                        )
                finally:
                    if stored is not None:
                        delete_temp_file(stored)

    with tab_camera:
        photo = st.camera_input("Take a photo of your meal")
        if photo and st.button("Analyze snapshot", key="analyze_camera"):
            data = photo.getvalue()
            image = read_uploaded_image(data, photo.type)
            if image is not None:
                with st.spinner("Analyzing your meal..."):
                    st.session_state.last_scan = run_scan(
                        analyzer.analyze_meal_image(image, profile), user_id, "image",
                        file_size=len(data), mime_type=photo.type,
                    )

    with tab_menu:
        menu_text = st.text_area("Paste the menu", height=200)
        if st.button("Analyze menu", key="analyze_menu"):
            with st.spinner("Reading the menu..."):
                st.session_state.last_scan = run_scan(
                    analyzer.analyze_menu_text(menu_text, profile), user_id, "menu", input_text=menu_text,
                )

    with tab_text:
        description = st.text_area("Describe the meal", placeholder="Grilled salmon with lemon butter sauce")
        if st.button("Analyze description", key="analyze_text"):
            with st.spinner("Analyzing..."):
                st.session_state.last_scan = run_scan(
                    analyzer.analyze_text_description(description, profile), user_id, "text",
                    input_text=description,
                )

def show_scan_chat(user_id: int, profile: UserProfile, scan: Dict[str, Any]):
    """Follow-up questions about the last scan."""
    st.markdown("### 💬 Ask about this meal")
    chat_key = f"scan_chat_{scan.get('id')}"
    chat = st.session_state.get(chat_key)

    for message in (chat or {}).get('messages', []):
        with st.chat_message(message['role']):
            st.markdown(message['content'])

    question = st.chat_input("Is this safe for me? What should I ask the waiter?")
    if not question:
        return

    analyzer = get_analyzer()
    with st.spinner("Thinking..."):
        if chat is None:
            chat = safe_run_async(ChatService.start_chat(user_id, question, analyzer, profile, scan_id=scan.get('id')))
        else:
            reply = safe_run_async(ChatService.send_message(chat['id'], user_id, question, analyzer, profile))
            if reply:
                chat = ChatService.get_chat_by_id(chat['id'], user_id)
    if chat is None:
        st.error("Sorry, the message could not be sent.")
        return
    st.session_state[chat_key] = chat
    st.rerun()

def main():
    st.set_page_config(page_title="🛡️ SafeMenu", page_icon="🛡️", layout="wide")
    init_session_state()

    try:
        init_database()
    except Exception as e:
        st.error(f"Database initialization failed: {e}")
        return

    if not is_authenticated():
        st.title("🛡️ SafeMenu")
        st.write("Check meals and menus against your allergies and dietary needs.")
        if st.button("Login or create an account"):
            st.switch_page("pages/1_Login.py")
        return

    user_id = get_current_user_id()
    profile = AuthService.get_user_profile(user_id)
    settings = get_ai_settings()

    st.title(f"🛡️ SafeMenu - {get_current_display_name()}")
    if not settings.available:
        st.caption("AI analysis is offline. Results come from rule-based checks; always verify with staff.")
    if not profile.allergies and not profile.dietary_restrictions:
        st.info("Add your allergies and dietary restrictions on the Profile page for personalized results.")

    if 'uploads_cleaned' not in st.session_state:
        try:
            cleanup_old_uploads()
        except StorageError as e:
            logger.warning(f"Upload cleanup skipped: {e}")
        st.session_state.uploads_cleaned = True

    show_scan_inputs(user_id, profile)

    scan = st.session_state.get('last_scan')
    if scan:
        st.divider()
        if scan['scan_type'] == "menu":
            render_menu_analysis(scan['result'])
        else:
            render_analysis(scan['result'])
            show_scan_chat(user_id, profile, scan)

if __name__ == "__main__":
    main()
