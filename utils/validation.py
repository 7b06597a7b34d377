"""
Input validation for account and upload forms.
"""
import re

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-\(\)]{10,}$")
BASE64_IMAGE_RE = re.compile(r"^data:image/[a-zA-Z+.-]+;base64,[A-Za-z0-9+/]+=*$")

MIN_PASSWORD_LENGTH = 6


def validate_email(email: str) -> bool:
    return bool(email) and EMAIL_RE.match(email.strip()) is not None


def validate_phone(phone: str) -> bool:
    """At least 10 digits, spaces, dashes or parentheses, with an optional leading '+'."""
    return bool(phone) and PHONE_RE.match(phone.strip()) is not None


def validate_password(password: str) -> bool:
    return bool(password) and len(password) >= MIN_PASSWORD_LENGTH


def validate_base64_image(data_url: str) -> bool:
    """True for a data URL such as 'data:image/png;base64,....'."""
    return bool(data_url) and BASE64_IMAGE_RE.match(data_url.strip()) is not None
