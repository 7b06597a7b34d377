import asyncio
import base64
import hashlib
import io
import logging
import random
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI, OpenAIError
from PIL import Image, ImageOps

from app.config import (
    AISettings,
    JSON_MAX_TOKENS,
    JSON_TEMPERATURE,
    MENU_PROMPT_MAX_CHARS,
    TEXT_MAX_TOKENS,
    TEXT_TEMPERATURE,
    TEXT_TIMEOUT,
    VISION_CACHE_MAX_ENTRIES,
    VISION_TIMEOUT,
)
from app.models import (
    AnalysisResult,
    ChatReply,
    InvalidInputError,
    MenuAnalysisResult,
    UserProfile,
)
from services.chat_responses import fallback_chat_reply
from services.synthesizer import honest_image_analysis, synthesize_analysis, synthesize_menu_analysis
from services.validator import default_analysis, parse_analysis_response, parse_menu_response

logger = logging.getLogger(__name__)
if not logger.handlers:
    _h = logging.StreamHandler()
    _f = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    _h.setFormatter(_f)
    logger.addHandler(_h)
logger.setLevel(logging.INFO)
logger.propagate = False


class AIResponseError(Exception):
    """The AI backend answered, but with nothing usable."""
    pass


ANALYSIS_CONTRACT = """Provide your analysis in this exact JSON format:
{
  "mealName": "identified meal name",
  "allergyWarnings": ["list of potential allergens detected"],
  "safetyRating": "green|yellow|red",
  "nutritionalBreakdown": {
    "fat": "percentage estimate",
    "sugar": "percentage estimate",
    "protein": "percentage estimate",
    "carbohydrates": "percentage estimate",
    "fiber": "percentage estimate"
  },
  "ingredients": ["list of main detected ingredients"],
  "recommendation": "detailed safety and consumption advice",
  "healthRisks": ["list of potential health risks based on user profile"]
}

SAFETY RATING GUIDE:
- GREEN: Safe for user, no detected allergens, aligns with dietary preferences
- YELLOW: Some concerns present, moderate consumption advised, verify ingredients
- RED: Contains detected allergens or significant health risks, avoid consumption

Be accurate and conservative in your assessment. When uncertain, choose a more cautious rating."""

MENU_CONTRACT = """Return ONLY JSON in this format:
{
  "safeOptions": [{"name": "dish name", "reason": "why it suits the user"}],
  "moderateOptions": [{"name": "dish name", "reason": "what to verify"}],
  "riskyOptions": [{"name": "dish name", "reason": "which allergen or restriction it conflicts with"}],
  "recommendation": "overall ordering advice"
}
Only list dishes that appear on the menu. When uncertain, place a dish in a more cautious bucket."""

CHAT_SYSTEM_PROMPT = (
    "You are SafeMenu, a food safety and nutrition assistant for people with allergies and dietary needs.\n"
    "RULES:\n"
    "1. Always take the user's allergies and restrictions into account.\n"
    "2. Never claim a dish is safe without ingredient verification; recommend asking staff.\n"
    "3. Avoid medical diagnoses; suggest consulting a professional for medical questions.\n"
    "4. Be concise, practical and encouraging. Plain text, no markdown headings.\n"
)


async def verify_openai_access(client: AsyncOpenAI, model: str) -> Tuple[bool, Optional[str]]:
    """One tiny completion to confirm the key and model work."""
    try:
        response = await client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": "Hi"}],
            max_tokens=5,
        )
        if response.choices and len(response.choices) > 0:
            logger.info("Successfully verified OpenAI API access")
            return True, None
    except OpenAIError as e:
        logger.error(f"OpenAI API error: {e}")
        return False, str(e)
    except Exception as e:
        logger.error(f"Unexpected error testing OpenAI access: {e}")
        return False, str(e)

    return False, "No response received from OpenAI API"


class SafeMenuAnalyzer:
    """Entry point for meal, menu and chat analysis.

    With ``settings.available`` the request goes to the AI backend and its raw
    reply is validated field by field. Otherwise, or when the call fails, the
    rule-based pipeline answers with a result of the same shape.
    """

    def __init__(self, settings: AISettings, client: Optional[AsyncOpenAI] = None,
                 rng: Optional[random.Random] = None, cache_size: int = VISION_CACHE_MAX_ENTRIES):
        self.settings = settings
        self.rng = rng or random.Random()
        self.client = client
        if self.client is None and settings.available:
            self.client = AsyncOpenAI(api_key=settings.api_key)
        # LRU: oldest entry first
        self._vision_cache: "OrderedDict[str, AnalysisResult]" = OrderedDict()
        self._cache_size = cache_size

    @property
    def ai_enabled(self) -> bool:
        return self.settings.available and self.client is not None

    @property
    def model_label(self) -> str:
        return self.settings.vision_model if self.ai_enabled else "rule-based-fallback"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def analyze_text_description(self, description: str, profile: Any) -> AnalysisResult:
        """Analyze a typed meal description."""
        user_profile = UserProfile.from_raw(profile)
        if not description or not description.strip():
            raise InvalidInputError("Meal description is required")

        if not self.ai_enabled:
            logger.info("[Fallback] step=text rule-based analysis")
            return synthesize_analysis(description, user_profile, self.rng)

        prompt = self._build_meal_prompt(user_profile) + f"\nMEAL DESCRIPTION:\n{description.strip()}\n"
        try:
            raw = await self._complete(
                step="text",
                model=self.settings.chat_model,
                messages=[
                    {"role": "system", "content": "You are a food safety and nutrition expert. Output ONLY JSON."},
                    {"role": "user", "content": prompt},
                ],
                json_mode=True,
                timeout=TEXT_TIMEOUT,
            )
        except Exception as e:
            logger.error("Text analysis failed, using rule-based fallback: %s", e)
            return synthesize_analysis(description, user_profile, self.rng)
        return parse_analysis_response(raw, user_profile)

    async def analyze_meal_image(self, image: Image.Image, profile: Any, note: str = "") -> AnalysisResult:
        """Analyze a meal photo. An optional note is used when no AI can see the image."""
        user_profile = UserProfile.from_raw(profile)

        if not self.ai_enabled:
            return self._image_fallback(user_profile, note)

        try:
            img_b64, size, image_hash = self._encode_image(image)
            profile_key = hashlib.md5(user_profile.model_dump_json().encode()).hexdigest()[:8]
            cache_key = f"v1:{image_hash}:{profile_key}:{self.settings.vision_model}"
            if cache_key in self._vision_cache:
                self._vision_cache.move_to_end(cache_key)
                return self._vision_cache[cache_key]

            prompt = (
                "You are a food safety and nutrition expert. Analyze the provided food image "
                "and provide a detailed safety assessment.\n\n" + self._build_meal_prompt(user_profile)
            )
            if note.strip():
                prompt += f"\nUSER NOTE ABOUT THE MEAL:\n{note.strip()}\n"

            logger.info("[Image] w=%d h=%d bytes=%d hash=%s", image.width, image.height, size, image_hash)
            raw = await self._complete(
                step="vision",
                model=self.settings.vision_model,
                messages=[
                    {"role": "system", "content": "You are a precise food safety AI. Return ONLY valid JSON; no markdown."},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{img_b64}"}},
                        ],
                    },
                ],
                json_mode=True,
                timeout=VISION_TIMEOUT,
            )
        except Exception as e:
            logger.error("Image analysis failed, using fallback: %s", e, exc_info=True)
            return self._image_fallback(user_profile, note)

        result = parse_analysis_response(raw, user_profile)
        if result == default_analysis(user_profile):
            logger.info("[Image] reply unusable; result not cached")
            return result
        self._remember(cache_key, result)
        return result

    async def analyze_menu_text(self, menu_text: str, profile: Any) -> MenuAnalysisResult:
        """Sort the dishes of a menu into safe, moderate and risky options."""
        user_profile = UserProfile.from_raw(profile)
        if not menu_text or not menu_text.strip():
            raise InvalidInputError("Menu text is required")

        if not self.ai_enabled:
            logger.info("[Fallback] step=menu rule-based analysis")
            return synthesize_menu_analysis(menu_text, user_profile)

        prompt = (
            "You are a food safety expert helping a diner choose from a restaurant menu.\n\n"
            f"USER PROFILE:\n{user_profile.describe()}\n"
            f"MENU:\n{menu_text.strip()[:MENU_PROMPT_MAX_CHARS]}\n\n"
            f"{MENU_CONTRACT}"
        )
        try:
            raw = await self._complete(
                step="menu",
                model=self.settings.chat_model,
                messages=[
                    {"role": "system", "content": "You are a careful food safety assistant. Output ONLY JSON."},
                    {"role": "user", "content": prompt},
                ],
                json_mode=True,
                timeout=TEXT_TIMEOUT,
            )
        except Exception as e:
            logger.error("Menu analysis failed, using rule-based fallback: %s", e)
            return synthesize_menu_analysis(menu_text, user_profile)
        return parse_menu_response(raw, user_profile)

    async def chat_about_meal(self, message: str, recent_history: str, profile: Any) -> ChatReply:
        """Answer a chat message with the recent conversation as context."""
        user_profile = UserProfile.from_raw(profile)
        if not message or not message.strip():
            raise InvalidInputError("Message content is required")

        if not self.ai_enabled:
            logger.info("[Fallback] step=chat rule-based reply")
            return ChatReply(response_text=fallback_chat_reply(message, user_profile))

        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": CHAT_SYSTEM_PROMPT + f"\nUSER PROFILE:\n{user_profile.describe()}"},
            {
                "role": "user",
                "content": (
                    f"Chat history:\n{recent_history.strip() or 'New conversation about food safety'}\n\n"
                    f"New message: {message.strip()}"
                ),
            },
        ]
        try:
            text = await self._complete(
                step="chat",
                model=self.settings.chat_model,
                messages=messages,
                json_mode=False,
                timeout=TEXT_TIMEOUT,
            )
        except Exception as e:
            logger.error("Chat failed, using rule-based reply: %s", e)
            text = fallback_chat_reply(message, user_profile)
        return ChatReply(response_text=text.strip())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _image_fallback(self, profile: UserProfile, note: str) -> AnalysisResult:
        if note and note.strip():
            logger.info("[Fallback] step=vision using the user's note")
            return synthesize_analysis(note, profile, self.rng)
        logger.info("[Fallback] step=vision no AI available, honest fallback")
        return honest_image_analysis(profile)

    @staticmethod
    def _build_meal_prompt(profile: UserProfile) -> str:
        return f"USER PROFILE:\n{profile.describe()}\n{ANALYSIS_CONTRACT}\n"

    @staticmethod
    def _encode_image(image: Image.Image, max_dim: int = 768) -> Tuple[str, int, str]:
        """EXIF-normalize, downscale and JPEG-encode; returns (base64, byte size, md5)."""
        img = ImageOps.exif_transpose(image) or image.copy()
        if img.mode != "RGB":
            img = img.convert("RGB")
        if img.width > max_dim or img.height > max_dim:
            img.thumbnail((max_dim, max_dim))

        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=85, optimize=True)
        data = buf.getvalue()
        return base64.b64encode(data).decode(), len(data), hashlib.md5(data).hexdigest()

    def _remember(self, cache_key: str, result: AnalysisResult):
        self._vision_cache[cache_key] = result
        self._vision_cache.move_to_end(cache_key)
        while len(self._vision_cache) > self._cache_size:
            self._vision_cache.popitem(last=False)

    async def _complete(self, step: str, model: str, messages: List[Dict[str, Any]],
                        json_mode: bool, timeout: float) -> str:
        """Single AI call with a timeout; raises on failure or empty content."""
        if self.client is None:
            raise AIResponseError("AI client is not configured")

        ts = datetime.now(timezone.utc).isoformat()
        start = time.perf_counter()
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": JSON_TEMPERATURE if json_mode else TEXT_TEMPERATURE,
            "max_tokens": JSON_MAX_TOKENS if json_mode else TEXT_MAX_TOKENS,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        logger.info("[OpenAI][START] ts=%s step=%s model=%s", ts, step, model)
        try:
            resp = await asyncio.wait_for(self.client.chat.completions.create(**kwargs), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("OpenAI %s step timed out after %s seconds", step, timeout)
            raise AIResponseError(f"{step} analysis timed out")

        duration_ms = int((time.perf_counter() - start) * 1000)
        if not getattr(resp, "choices", None):
            raise AIResponseError(f"Empty response choices from {step} model")
        content = getattr(getattr(resp.choices[0], "message", None), "content", None)
        if not content:
            raise AIResponseError(f"Empty message content from {step} model")

        logger.info("[OpenAI][END] step=%s dur_ms=%d chars=%d", step, duration_ms, len(content))
        return content

