"""
Turns raw AI replies into AnalysisResult / MenuAnalysisResult.

The structured block is everything from the first '{' to the last '}'.
Each field is checked on its own: a bad field falls back to the
profile-parameterized default and the rest of the reply is kept. Nothing in
this module raises to the caller.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

from app.config import RECOMMENDATION_MAX_CHARS
from app.models import (
    NUTRIENT_KEYS,
    AnalysisResult,
    MenuAnalysisResult,
    MenuOption,
    NutritionalBreakdown,
    SafetyRating,
    UserProfile,
)

logger = logging.getLogger(__name__)

_BLOCK_RE = re.compile(r"\{[\s\S]*\}")
_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

DANGER_WORDS = ("danger", "avoid")
CAUTION_WORDS = ("caution", "warning")


def clean_ai_response(text: Optional[str]) -> str:
    """Strip markdown code fences and surrounding whitespace."""
    if not text:
        return ""
    return _FENCE_RE.sub("", text).strip()


def extract_structured_block(text: Optional[str]) -> Optional[str]:
    """Greedy match from the first '{' to the last '}', or None."""
    match = _BLOCK_RE.search(text or "")
    return match.group(0) if match else None


# Defaults
def default_analysis(profile: UserProfile) -> AnalysisResult:
    """Reference result used whenever the AI reply is missing or unusable."""
    has_allergies = profile.has_allergies
    return AnalysisResult(
        meal_name="Food Item",
        safety_rating=SafetyRating.YELLOW,
        allergy_warnings=["Manual verification required"] if has_allergies else [],
        nutritional_breakdown=NutritionalBreakdown.uniform("Varies"),
        ingredients=["Ingredients analysis unavailable"],
        recommendation=(
            "Please verify all ingredients with staff due to your allergies."
            if has_allergies
            else "Standard food safety practices recommended. Verify ingredients if unsure."
        ),
        health_risks=["Allergen verification needed"] if has_allergies else [],
    )


def default_menu_analysis(profile: UserProfile) -> MenuAnalysisResult:
    has_allergies = profile.has_allergies
    risky = []
    if has_allergies:
        risky = [
            MenuOption(name="Sauces and Gravies", reason="Common source of hidden allergens"),
            MenuOption(name="Desserts", reason="Often contain common allergens"),
        ]
    return MenuAnalysisResult(
        safe_options=[
            MenuOption(name="Steamed Vegetables", reason="Minimal ingredients, easily verified"),
            MenuOption(name="Grilled Chicken Breast", reason="Simple preparation method"),
            MenuOption(name="Plain Rice", reason="Single ingredient item"),
        ],
        moderate_options=[
            MenuOption(name="House Salads", reason="Verify dressings and toppings"),
            MenuOption(name="Soup Options", reason="Check ingredients list"),
        ],
        risky_options=risky,
        recommendation=(
            "Inform staff of your allergies. Choose simple dishes and verify all ingredients."
            if has_allergies
            else "Select freshly prepared items and maintain balanced nutrition."
        ),
    )


# Field coercion helpers
def _string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    return [item if isinstance(item, str) else json.dumps(item) for item in value if item is not None]


def _nutrition(value: Any, default: NutritionalBreakdown) -> NutritionalBreakdown:
    if not value or not isinstance(value, dict):
        return default
    fallback = default.model_dump()
    merged = {}
    for key in NUTRIENT_KEYS:
        raw = value.get(key)
        merged[key] = (str(raw).strip() if raw is not None else "") or fallback[key]
    return NutritionalBreakdown(**merged)


def _text(value: Any) -> Optional[str]:
    if not value:
        return None
    text = value if isinstance(value, str) else str(value)
    return text.strip() or None


def coerce_analysis(data: Dict[str, Any], profile: UserProfile) -> AnalysisResult:
    """Validate every field independently against the default reference."""
    default = default_analysis(profile)

    meal_name = data.get("mealName")
    if not isinstance(meal_name, str) or not meal_name.strip():
        meal_name = default.meal_name

    rating = SafetyRating.parse(data.get("safetyRating"))
    if rating is None:
        logger.warning("Invalid safetyRating %r in AI reply; using default", data.get("safetyRating"))
        rating = default.safety_rating

    warnings = _string_list(data.get("allergyWarnings"))
    ingredients = _string_list(data.get("ingredients"))
    health_risks = _string_list(data.get("healthRisks"))

    return AnalysisResult(
        meal_name=meal_name.strip(),
        safety_rating=rating,
        allergy_warnings=warnings if warnings is not None else list(default.allergy_warnings),
        nutritional_breakdown=_nutrition(data.get("nutritionalBreakdown"), default.nutritional_breakdown),
        ingredients=ingredients if ingredients is not None else list(default.ingredients),
        recommendation=_text(data.get("recommendation")) or default.recommendation,
        health_risks=health_risks if health_risks is not None else list(default.health_risks),
    )


def analysis_from_text(text: str, profile: UserProfile) -> AnalysisResult:
    """Minimal report from a reply that carried no structured block.

    The recommendation is the reply exactly as received, truncated, so the
    user reads what the assistant wrote.
    """
    lowered = text.lower()
    has_warning = any(word in lowered for word in CAUTION_WORDS)
    has_danger = any(word in lowered for word in DANGER_WORDS)

    if has_danger:
        rating = SafetyRating.RED
    elif has_warning:
        rating = SafetyRating.YELLOW
    else:
        rating = SafetyRating.GREEN

    recommendation = text
    if len(recommendation) > RECOMMENDATION_MAX_CHARS:
        recommendation = recommendation[:RECOMMENDATION_MAX_CHARS] + "..."

    return AnalysisResult(
        meal_name="Analyzed Meal",
        safety_rating=rating,
        allergy_warnings=["Please verify ingredients manually"] if has_warning else [],
        nutritional_breakdown=NutritionalBreakdown.uniform("Estimated"),
        ingredients=["Various ingredients detected"],
        recommendation=recommendation or default_analysis(profile).recommendation,
        health_risks=["General food safety precautions advised"] if has_warning else [],
    )


def _load_block(block: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(block)
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning("Structured block in AI reply is not valid JSON: %s", e)
        return None
    if not isinstance(parsed, dict):
        logger.warning("Structured block in AI reply is %s, not an object", type(parsed).__name__)
        return None
    return parsed


def parse_analysis_response(raw: Optional[str], profile: UserProfile) -> AnalysisResult:
    """Extract -> parse -> coerce, degrading to defaults at every step."""
    text = clean_ai_response(raw)
    if not text:
        logger.warning("Empty AI reply; using default analysis")
        return default_analysis(profile)

    block = extract_structured_block(text)
    if block is None:
        logger.info("AI reply had no structured block; deriving analysis from text")
        return analysis_from_text(raw, profile)

    data = _load_block(block)
    if data is None:
        return default_analysis(profile)
    return coerce_analysis(data, profile)


# Menu results
def _menu_options(value: Any) -> Optional[List[MenuOption]]:
    if not isinstance(value, list):
        return None
    options = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        name = _text(entry.get("name"))
        if not name:
            continue
        options.append(MenuOption(name=name, reason=_text(entry.get("reason")) or "No details provided"))
    return options


def coerce_menu_analysis(data: Dict[str, Any], profile: UserProfile) -> MenuAnalysisResult:
    default = default_menu_analysis(profile)
    safe = _menu_options(data.get("safeOptions"))
    moderate = _menu_options(data.get("moderateOptions"))
    risky = _menu_options(data.get("riskyOptions"))
    return MenuAnalysisResult(
        safe_options=safe if safe is not None else list(default.safe_options),
        moderate_options=moderate if moderate is not None else list(default.moderate_options),
        risky_options=risky if risky is not None else list(default.risky_options),
        recommendation=_text(data.get("recommendation")) or default.recommendation,
    )


def parse_menu_response(raw: Optional[str], profile: UserProfile) -> MenuAnalysisResult:
    text = clean_ai_response(raw)
    block = extract_structured_block(text)
    if block is None:
        logger.warning("Menu reply had no structured block; using default menu analysis")
        return default_menu_analysis(profile)
    data = _load_block(block)
    if data is None:
        return default_menu_analysis(profile)
    return coerce_menu_analysis(data, profile)
