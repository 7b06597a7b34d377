"""
Sign-in and registration page.
"""
import streamlit as st
import logging
import sys
import os
from typing import Any, Dict, List

# Add parent directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from app.auth import AuthService, login_user, logout_user, is_authenticated, get_current_display_name
from app.config import ALLERGY_OPTIONS, DIETARY_RESTRICTION_OPTIONS, HEALTH_CONDITION_OPTIONS
from app.database import init_database
from utils.validation import validate_email, validate_password, validate_phone

logger = logging.getLogger(__name__)

def registration_errors(form: Dict[str, Any]) -> List[str]:
    """User-facing problems with a registration form, empty when it can be submitted."""
    required = ('email', 'phone_number', 'password', 'confirm_password')
    if not all(form.get(k) for k in required):
        return ["Email, phone number and both password fields are required"]
    errors = []
    if not validate_email(form['email']):
        errors.append("Please enter a valid email address")
    if not validate_phone(form['phone_number']):
        errors.append("Phone number needs at least 10 digits")
    if not validate_password(form['password']):
        errors.append("Password must be at least 6 characters long")
    elif form['password'] != form['confirm_password']:
        errors.append("Passwords do not match")
    return errors

def show_auth_page():
    st.set_page_config(page_title="🛡️ SafeMenu - Sign in", page_icon="🛡️", layout="centered")

    try:
        init_database()
    except Exception as e:
        st.error(f"Could not open the database: {e}")
        return

    st.title("🛡️ SafeMenu")
    st.caption("Allergy-aware checks for meals and restaurant menus")

    if is_authenticated():
        st.success(f"Signed in as {get_current_display_name()}")
        col1, col2 = st.columns(2)
        if col1.button("Go to scanner", use_container_width=True):
            st.switch_page("main.py")
        if col2.button("Sign out", use_container_width=True):
            logout_user()
            st.rerun()
        return

    sign_in, register = st.tabs(["Sign in", "Register"])
    with sign_in:
        show_sign_in_form()
    with register:
        show_registration_form()

def show_sign_in_form():
    with st.form("sign_in_form"):
        email = st.text_input("Email", placeholder="you@example.com")
        password = st.text_input("Password", type="password")
        if not st.form_submit_button("Sign in", use_container_width=True):
            return

    if not email or not password:
        st.error("Enter your email and password")
        return

    user = AuthService.authenticate_user(email, password)
    if user is None:
        st.error("Invalid email or password")
        return
    login_user(user)
    st.switch_page("main.py")

def show_registration_form():
    with st.form("register_form"):
        left, right = st.columns(2)
        form = {
            'email': left.text_input("Email *"),
            'phone_number': left.text_input("Phone number *", help="Cannot be changed later"),
            'password': left.text_input("Password *", type="password"),
            'confirm_password': left.text_input("Repeat password *", type="password"),
        }
        right.markdown("**What should we watch out for?**")
        profile = {
            'allergies': right.multiselect("Allergies", ALLERGY_OPTIONS),
            'dietary_restrictions': right.multiselect("Dietary restrictions", DIETARY_RESTRICTION_OPTIONS),
            'health_conditions': right.multiselect("Health conditions", HEALTH_CONDITION_OPTIONS),
        }
        if not st.form_submit_button("Create account", use_container_width=True):
            return

    errors = registration_errors(form)
    for error in errors:
        st.error(error)
    if errors:
        return

    user = AuthService.create_user(form['email'], form['password'], form['phone_number'], profile)
    if user is None:
        st.error("Could not create the account. The email may already be registered.")
        return
    st.success("Account created. You can sign in now.")

if __name__ == "__main__":
    show_auth_page()
