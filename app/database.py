"""
Database models and connection for SafeMenu accounts, scans and chats.
"""
import os
import logging
from typing import Optional, List, Dict, Any
from sqlalchemy import (
    create_engine, Column, Integer, String, DateTime,
    Text, Boolean, ForeignKey, JSON, Index
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship, Session
from sqlalchemy.sql import func

from .models import UserProfile

logger = logging.getLogger(__name__)

# Database setup
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{os.path.expanduser('~')}/safemenu.db")
engine = create_engine(DATABASE_URL, echo=False)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

SCAN_TYPES = ("image", "menu", "text")
DEFAULT_CHAT_TITLE = "Food Safety Discussion"

class User(Base):
    """User account information"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    phone_number = Column(String(30), nullable=False)  # fixed at registration
    display_name = Column(String(100))
    avatar_url = Column(Text)
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    profile = relationship("DietaryProfile", back_populates="user", uselist=False)
    scans = relationship("Scan", back_populates="user")
    chats = relationship("Chat", back_populates="user")

    def __repr__(self):
        return f"<User(email='{self.email}', display_name='{self.display_name}')>"

class DietaryProfile(Base):
    """Allergies, restrictions and health information used by every analysis"""
    __tablename__ = "dietary_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    # Stored as JSON arrays
    allergies = Column(JSON, default=list)
    dietary_restrictions = Column(JSON, default=list)
    health_conditions = Column(JSON, default=list)
    preferred_meat = Column(JSON, default=list)
    favorite_meals = Column(JSON, default=list)

    completed = Column(Integer, default=0)  # 0-100

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="profile")

    def __repr__(self):
        return f"<DietaryProfile(user_id={self.user_id}, completed={self.completed})>"

class Scan(Base):
    """One analysis of a photo, menu or typed description"""
    __tablename__ = "scans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    scan_type = Column(String(10), nullable=False)  # image, menu, text
    input_text = Column(Text)
    result = Column(JSON, nullable=False)  # camelCase result as returned to the UI

    safety_rating = Column(String(10), index=True)  # null for menu scans
    meal_name = Column(String(200))

    # Metadata
    file_size = Column(Integer)
    mime_type = Column(String(50))
    analysis_time_ms = Column(Integer)
    ai_model = Column(String(50))

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="scans")
    chats = relationship("Chat", back_populates="scan")

    __table_args__ = (
        Index('idx_user_created_at', 'user_id', 'created_at'),
        Index('idx_user_scan_type', 'user_id', 'scan_type'),
    )

    def __repr__(self):
        return f"<Scan(user_id={self.user_id}, scan_type='{self.scan_type}', meal_name='{self.meal_name}')>"

class Chat(Base):
    """A conversation with the food safety assistant"""
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    scan_id = Column(Integer, ForeignKey("scans.id"))

    title = Column(String(100), default=DEFAULT_CHAT_TITLE)
    is_active = Column(Boolean, default=True)
    message_count = Column(Integer, default=0)
    last_activity = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="chats")
    scan = relationship("Scan", back_populates="chats")
    messages = relationship("ChatMessage", back_populates="chat", order_by="ChatMessage.id",
                            cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_user_last_activity', 'user_id', 'last_activity'),
    )

    def __repr__(self):
        return f"<Chat(user_id={self.user_id}, title='{self.title}', messages={self.message_count})>"

class ChatMessage(Base):
    """Single message in a chat"""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    role = Column(String(10), nullable=False)  # ChatRole value
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())

    chat = relationship("Chat", back_populates="messages")

    def __repr__(self):
        return f"<ChatMessage(chat_id={self.chat_id}, role='{self.role}')>"

# Database utility functions
def get_db() -> Session:
    """Get database session"""
    return SessionLocal()

def close_db(db: Session):
    """Close database session"""
    if db:
        db.close()

def init_database():
    """Initialize database tables"""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise

# Helper functions for data conversion
def display_name_from_email(email: str) -> str:
    """'john.doe@example.com' -> 'John Doe'"""
    local = email.split("@", 1)[0]
    words = [w for w in local.replace("_", ".").replace("-", ".").split(".") if w]
    return " ".join(w.capitalize() for w in words) or local

def calculate_profile_completion(user: User, profile: Optional[DietaryProfile]) -> int:
    """Percentage of the six profile fields that are filled in."""
    fields = [
        user.email,
        user.phone_number,
        user.display_name,
        profile.health_conditions if profile else None,
        profile.allergies if profile else None,
        profile.dietary_restrictions if profile else None,
    ]
    filled = sum(1 for value in fields if value)
    return round(filled / len(fields) * 100)

def profile_to_model(profile: Optional[DietaryProfile]) -> UserProfile:
    """Convert DietaryProfile row to the UserProfile used by the analyzer"""
    if profile is None:
        return UserProfile()
    return UserProfile.from_raw({
        'allergies': profile.allergies or [],
        'dietaryRestrictions': profile.dietary_restrictions or [],
        'healthConditions': profile.health_conditions or [],
        'preferredMeat': profile.preferred_meat or [],
    })

def profile_to_dict(user: User, profile: Optional[DietaryProfile]) -> Dict[str, Any]:
    """Convert a user and their dietary profile to the dictionary the profile page shows"""
    return {
        'id': user.id,
        'email': user.email,
        'phone_number': user.phone_number,
        'display_name': user.display_name,
        'avatar_url': user.avatar_url,
        'allergies': (profile.allergies if profile else None) or [],
        'dietary_restrictions': (profile.dietary_restrictions if profile else None) or [],
        'health_conditions': (profile.health_conditions if profile else None) or [],
        'preferred_meat': (profile.preferred_meat if profile else None) or [],
        'favorite_meals': (profile.favorite_meals if profile else None) or [],
        'completed': profile.completed if profile else 0,
        'created_at': user.created_at,
        'last_login': user.last_login,
    }

def dict_to_profile(user_id: int, profile_dict: Optional[Dict[str, Any]]) -> DietaryProfile:
    """Convert dictionary (snake_case or camelCase keys) to DietaryProfile object"""
    normalized = UserProfile.from_raw(profile_dict or {})
    favorites: List[str] = list((profile_dict or {}).get('favorite_meals')
                                or (profile_dict or {}).get('favoriteMeals') or [])
    return DietaryProfile(
        user_id=user_id,
        allergies=list(normalized.allergies),
        dietary_restrictions=list(normalized.dietary_restrictions),
        health_conditions=list(normalized.health_conditions),
        preferred_meat=list(normalized.preferred_meat),
        favorite_meals=favorites,
    )
