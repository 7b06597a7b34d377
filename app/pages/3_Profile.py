"""
Dietary profile page.
"""
import base64
import streamlit as st
import sys
import os

# Add parent directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from app.auth import AuthService, is_authenticated, get_current_user_id, logout_user
from app.config import (
    ALLERGY_OPTIONS, DIETARY_RESTRICTION_OPTIONS, HEALTH_CONDITION_OPTIONS, PREFERRED_MEAT_OPTIONS,
)
from utils.storage import StorageError, validate_image_upload
from utils.validation import validate_base64_image
import logging

logger = logging.getLogger(__name__)

def _known(values, options):
    return [v for v in values if v in options]

def show_profile_page():
    """Display and edit the user's dietary profile"""
    st.set_page_config(page_title="👤 Profile", page_icon="👤", layout="centered")

    if not is_authenticated():
        st.error("Please login to edit your profile")
        if st.button("Go to Login"):
            st.switch_page("pages/1_Login.py")
        return

    user_id = get_current_user_id()
    details = AuthService.get_profile_details(user_id)
    if not details:
        st.error("Could not load your profile.")
        return

    st.title("👤 Your Profile")
    st.progress(details['completed'] / 100, text=f"Profile {details['completed']}% complete")

    col1, col2 = st.columns([1, 3])
    with col1:
        if details['avatar_url']:
            st.image(details['avatar_url'], width=96)
        avatar = st.file_uploader("Avatar", type=["jpg", "jpeg", "png", "webp"], label_visibility="collapsed")
        if avatar and st.button("Save avatar"):
            data = avatar.getvalue()
            try:
                validate_image_upload(data, avatar.type)
            except StorageError as e:
                st.error(str(e))
            else:
                data_url = f"data:{avatar.type};base64,{base64.b64encode(data).decode()}"
                if validate_base64_image(data_url) and AuthService.update_avatar(user_id, data_url):
                    st.success("Avatar updated")
                    st.rerun()
                else:
                    st.error("Could not update avatar")
    with col2:
        st.markdown(f"**Email:** {details['email']}")
        st.markdown(f"**Phone:** {details['phone_number']} (cannot be changed)")

    with st.form("profile_form"):
        display_name = st.text_input("Display name", value=details['display_name'] or "")
        allergies = st.multiselect("Allergies", ALLERGY_OPTIONS,
                                   default=_known(details['allergies'], ALLERGY_OPTIONS))
        restrictions = st.multiselect("Dietary Restrictions", DIETARY_RESTRICTION_OPTIONS,
                                      default=_known(details['dietary_restrictions'], DIETARY_RESTRICTION_OPTIONS))
        health_conditions = st.multiselect("Health Conditions", HEALTH_CONDITION_OPTIONS,
                                           default=_known(details['health_conditions'], HEALTH_CONDITION_OPTIONS))
        preferred_meat = st.multiselect("Preferred Meat", PREFERRED_MEAT_OPTIONS,
                                        default=_known(details['preferred_meat'], PREFERRED_MEAT_OPTIONS))
        favorite_meals = st.text_input("Favorite meals (comma separated)",
                                       value=", ".join(details['favorite_meals']))

        if st.form_submit_button("Save profile", use_container_width=True):
            ok = AuthService.update_user_profile(user_id, {
                'display_name': display_name,
                'allergies': allergies,
                'dietary_restrictions': restrictions,
                'health_conditions': health_conditions,
                'preferred_meat': preferred_meat,
                'favorite_meals': [m.strip() for m in favorite_meals.split(",") if m.strip()],
            })
            if ok:
                st.session_state.display_name = display_name or details['email']
                st.success("Profile saved")
                st.rerun()
            else:
                st.error("Could not save your profile")

    if st.button("Logout"):
        logout_user()
        st.switch_page("pages/1_Login.py")

if __name__ == "__main__":
    show_profile_page()
