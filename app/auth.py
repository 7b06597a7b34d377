"""
Authentication service for SafeMenu.
"""
import bcrypt
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import streamlit as st

from .database import (
    get_db, close_db, User, DietaryProfile, calculate_profile_completion,
    dict_to_profile, display_name_from_email, profile_to_dict, profile_to_model,
)
from .models import InvalidInputError, UserProfile
from utils.validation import validate_email, validate_password, validate_phone

logger = logging.getLogger(__name__)

PROFILE_LIST_FIELDS = ('allergies', 'dietary_restrictions', 'health_conditions', 'preferred_meat', 'favorite_meals')

class AuthService:
    """Handles user authentication and profile management"""

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password for storing in database"""
        return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    @staticmethod
    def verify_password(password: str, hashed: str) -> bool:
        """Verify a password against its hash"""
        return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))

    @staticmethod
    def create_user(email: str, password: str, phone_number: str,
                    profile: Optional[Dict[str, Any]] = None) -> Optional[User]:
        """Create a new user account with its dietary profile"""
        email = (email or "").strip().lower()
        if not validate_email(email):
            logger.warning(f"User creation failed: invalid email '{email}'")
            return None
        if not validate_password(password):
            logger.warning("User creation failed: password too short")
            return None
        if not validate_phone(phone_number):
            logger.warning(f"User creation failed: invalid phone number for '{email}'")
            return None

        try:
            dietary = dict_to_profile(0, profile)
        except InvalidInputError as e:
            logger.warning(f"User creation failed: invalid profile for '{email}': {e}")
            return None

        db = get_db()
        try:
            existing_user = db.query(User).filter(User.email == email).first()
            if existing_user:
                logger.warning(f"User creation failed: email '{email}' already exists")
                return None

            new_user = User(
                email=email,
                hashed_password=AuthService.hash_password(password),
                phone_number=phone_number.strip(),
                display_name=display_name_from_email(email),
            )
            db.add(new_user)
            db.commit()
            db.refresh(new_user)

            dietary.user_id = new_user.id
            dietary.completed = calculate_profile_completion(new_user, dietary)
            db.add(dietary)
            db.commit()

            # Detach from session so it can be used after session closes
            db.refresh(new_user)
            db.expunge(new_user)

            logger.info(f"User created successfully: {email}")
            return new_user

        except Exception as e:
            db.rollback()
            logger.error(f"Error creating user: {e}")
            return None
        finally:
            close_db(db)

    @staticmethod
    def authenticate_user(email: str, password: str) -> Optional[User]:
        """Authenticate user credentials and record the login time"""
        email = (email or "").strip().lower()
        db = get_db()
        try:
            user = db.query(User).filter(User.email == email).first()

            if user and user.is_active and AuthService.verify_password(password, user.hashed_password):
                user.last_login = datetime.now(timezone.utc)
                db.commit()
                db.refresh(user)
                logger.info(f"User authenticated: {email}")
                db.expunge(user)
                return user

            logger.warning(f"Authentication failed for user: {email}")
            return None

        except Exception as e:
            db.rollback()
            logger.error(f"Error authenticating user: {e}")
            return None
        finally:
            close_db(db)

    @staticmethod
    def get_user_by_id(user_id: int) -> Optional[User]:
        """Get user by ID"""
        db = get_db()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user:
                db.expunge(user)
            return user
        except Exception as e:
            logger.error(f"Error getting user by ID: {e}")
            return None
        finally:
            close_db(db)

    @staticmethod
    def get_user_profile(user_id: int) -> UserProfile:
        """Get the analyzer-facing profile; empty when the user has none"""
        db = get_db()
        try:
            profile = db.query(DietaryProfile).filter(DietaryProfile.user_id == user_id).first()
            return profile_to_model(profile)
        except InvalidInputError as e:
            logger.error(f"Stored profile for user {user_id} is invalid: {e}")
            return UserProfile()
        except Exception as e:
            logger.error(f"Error getting user profile: {e}")
            return UserProfile()
        finally:
            close_db(db)

    @staticmethod
    def get_profile_details(user_id: int) -> Optional[Dict[str, Any]]:
        """Get account and dietary profile as one dictionary"""
        db = get_db()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                return None
            profile = db.query(DietaryProfile).filter(DietaryProfile.user_id == user_id).first()
            return profile_to_dict(user, profile)
        except Exception as e:
            logger.error(f"Error getting profile details: {e}")
            return None
        finally:
            close_db(db)

    @staticmethod
    def update_user_profile(user_id: int, profile_data: Dict[str, Any]) -> bool:
        """Update display name and dietary profile. The phone number is never changed."""
        if 'phone_number' in profile_data:
            logger.info(f"Ignoring phone number change for user {user_id}")

        try:
            normalized = UserProfile.from_raw({
                k: v for k, v in profile_data.items()
                if k in ('allergies', 'dietary_restrictions', 'health_conditions', 'preferred_meat')
            })
        except InvalidInputError as e:
            logger.warning(f"Invalid profile update for user {user_id}: {e}")
            return False

        db = get_db()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                return False

            if profile_data.get('display_name'):
                user.display_name = str(profile_data['display_name']).strip()

            profile = db.query(DietaryProfile).filter(DietaryProfile.user_id == user_id).first()
            if not profile:
                profile = DietaryProfile(user_id=user_id)
                db.add(profile)

            for key in PROFILE_LIST_FIELDS:
                if key not in profile_data:
                    continue
                if key == 'favorite_meals':
                    profile.favorite_meals = [str(m).strip() for m in profile_data[key] or [] if str(m).strip()]
                else:
                    setattr(profile, key, list(getattr(normalized, key)))

            profile.completed = calculate_profile_completion(user, profile)
            db.commit()
            logger.info(f"Profile updated for user {user_id}")
            return True

        except Exception as e:
            db.rollback()
            logger.error(f"Error updating profile: {e}")
            return False
        finally:
            close_db(db)

    @staticmethod
    def update_avatar(user_id: int, avatar_url: str) -> bool:
        """Store a new avatar (URL or base64 data URL)"""
        db = get_db()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                return False
            user.avatar_url = avatar_url
            db.commit()
            logger.info(f"Avatar updated for user {user_id}")
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"Error updating avatar: {e}")
            return False
        finally:
            close_db(db)

# Streamlit session helpers
SESSION_DEFAULTS = {'authenticated': False, 'user_id': None, 'display_name': None}

def init_session_state():
    """Make sure every session key exists"""
    for key, default in SESSION_DEFAULTS.items():
        st.session_state.setdefault(key, default)

def login_user(user: User):
    """Mark the session as signed in as `user`"""
    st.session_state.update(
        authenticated=True,
        user_id=user.id,
        display_name=user.display_name or user.email,
    )
    logger.info(f"Session signed in: {user.email}")

def logout_user():
    """Reset the session to signed out, dropping cached analysis state"""
    st.session_state.update(SESSION_DEFAULTS)
    for key in ('last_scan', 'active_chat_id', 'history_page'):
        st.session_state.pop(key, None)
    logger.info("Session signed out")

def is_authenticated() -> bool:
    return bool(st.session_state.get('authenticated'))

def get_current_user_id() -> Optional[int]:
    return st.session_state.get('user_id')

def get_current_display_name() -> Optional[str]:
    return st.session_state.get('display_name')
