"""
Configuration settings for the SafeMenu application.
Centralize model names, generation defaults and form vocabularies to avoid hardcoding.
"""
import os
from dataclasses import dataclass

# OpenAI Model Configuration
VISION_MODEL = "gpt-4o"        # Vision model for meal photos
CHAT_MODEL = "gpt-4o-mini"     # Faster/lower-cost model for text, menus and chat

# Generation defaults
JSON_TEMPERATURE = 0.2
JSON_MAX_TOKENS = 1200
TEXT_TEMPERATURE = 0.4
TEXT_MAX_TOKENS = 600

# Timeouts (seconds) for a single AI call; no retries
VISION_TIMEOUT = 60.0
TEXT_TIMEOUT = 45.0

# Analysis limits
RECOMMENDATION_MAX_CHARS = 300
MENU_PROMPT_MAX_CHARS = 2000
MENU_MAX_ITEMS = 25
CHAT_HISTORY_MESSAGES = 4
VISION_CACHE_MAX_ENTRIES = 64

# Uploads
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024)))
ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/webp"]
UPLOAD_DIR = os.getenv("SAFEMENU_UPLOAD_DIR", os.path.join(os.path.expanduser("~"), ".safemenu", "uploads"))

# Profile editor vocabularies ("None" means no selection)
HEALTH_CONDITION_OPTIONS = [
    "Diabetes", "High Blood Pressure", "Heart Disease", "Celiac Disease",
    "Lactose Intolerance", "IBS", "Kidney Disease", "Liver Disease", "None",
]
ALLERGY_OPTIONS = [
    "Peanuts", "Tree Nuts", "Dairy", "Eggs", "Soy", "Wheat/Gluten",
    "Fish", "Shellfish", "Sesame", "Sulfites", "None",
]
DIETARY_RESTRICTION_OPTIONS = [
    "Vegetarian", "Vegan", "Gluten-Free", "Dairy-Free", "Keto", "Paleo",
    "Low Sodium", "Low Carb", "Halal", "Kosher", "Pescatarian", "None",
]
PREFERRED_MEAT_OPTIONS = [
    "Chicken", "Beef", "Pork", "Lamb", "Fish", "Seafood",
    "Turkey", "Duck", "Venison", "None",
]

SAFETY_COLORS = {
    "green": "#10b981",
    "yellow": "#f59e0b",
    "red": "#ef4444",
}
SAFETY_LABELS = {
    "green": "🟢 Safe",
    "yellow": "🟡 Caution",
    "red": "🔴 Avoid",
}


@dataclass(frozen=True)
class AISettings:
    """Snapshot of the AI backend configuration, taken once per process."""
    available: bool = False
    api_key: str = ""
    vision_model: str = VISION_MODEL
    chat_model: str = CHAT_MODEL

    @property
    def model_label(self) -> str:
        return self.vision_model if self.available else "rule-based-fallback"

    @classmethod
    def from_env(cls) -> "AISettings":
        api_key = os.getenv("OPENAI_API_KEY") or os.getenv("openai_key") or ""
        enabled = os.getenv("SAFEMENU_AI_ENABLED", "true").strip().lower() not in ("0", "false", "no", "off")
        return cls(
            available=bool(api_key) and enabled,
            api_key=api_key,
            vision_model=os.getenv("SAFEMENU_VISION_MODEL", VISION_MODEL),
            chat_model=os.getenv("SAFEMENU_CHAT_MODEL", CHAT_MODEL),
        )

    def disabled(self) -> "AISettings":
        """Copy of these settings with the AI backend switched off."""
        return AISettings(available=False, api_key=self.api_key,
                          vision_model=self.vision_model, chat_model=self.chat_model)
