"""
Builds complete safety reports without an AI backend.

The meal pipeline is classify -> resolve -> synthesize. Nutrition figures are
display estimates drawn from a caller-supplied random source; they are not
derived from real nutrition data and are labelled with a leading '~'.
"""
import logging
import random
import re
from typing import List, Optional

from app.config import MENU_MAX_ITEMS
from app.models import (
    AnalysisResult,
    MenuAnalysisResult,
    MenuOption,
    NutritionalBreakdown,
    SafetyRating,
    UserProfile,
)
from services.classifier import classify_prompt
from services.safety import resolve_safety

logger = logging.getLogger(__name__)

# (base, spread): value = base + rng.randrange(spread)
NUTRITION_ESTIMATE_RANGES = {
    "fat": (20, 30),
    "sugar": (5, 15),
    "protein": (15, 25),
    "carbohydrates": (30, 30),
    "fiber": (5, 10),
}
HIGH_FAT_THRESHOLD = 40

DEFAULT_WARNING = "No specific allergens detected"
DEFAULT_INGREDIENTS = ["Various ingredients"]
DEFAULT_HEALTH_RISKS = ["General food safety practices recommended"]

RECOMMENDATIONS = {
    "red": (
        "⚠️ CAUTION: This meal contains ingredients that may not be suitable for your dietary needs. "
        "Please verify all ingredients and consider alternative options."
    ),
    "yellow": (
        "⚠️ Some concerns detected. Verify ingredients with staff and exercise caution "
        "if you have severe allergies."
    ),
    "high_fat": "This meal is higher in fat. Consider pairing with fresh vegetables and watch portion sizes.",
    "balanced": "This appears to be a balanced meal. Enjoy in moderation as part of a varied diet.",
}

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)")


def estimate_nutrition(rng: random.Random) -> NutritionalBreakdown:
    """Draw one estimate per nutrient, formatted as '~NN%'."""
    values = {
        key: f"~{base + rng.randrange(spread)}%"
        for key, (base, spread) in NUTRITION_ESTIMATE_RANGES.items()
    }
    return NutritionalBreakdown(**values)


def parse_percentage(value: str) -> Optional[float]:
    """Numeric part of a display string like '~45%', or None for 'Varies'."""
    match = _PERCENT_RE.search(value or "")
    return float(match.group(1)) if match else None


def build_recommendation(rating: SafetyRating, nutrition: NutritionalBreakdown) -> str:
    if rating is SafetyRating.RED:
        return RECOMMENDATIONS["red"]
    if rating is SafetyRating.YELLOW:
        return RECOMMENDATIONS["yellow"]
    fat = parse_percentage(nutrition.fat)
    if fat is not None and fat > HIGH_FAT_THRESHOLD:
        return RECOMMENDATIONS["high_fat"]
    return RECOMMENDATIONS["balanced"]


def synthesize_analysis(prompt: str, profile: UserProfile, rng: Optional[random.Random] = None) -> AnalysisResult:
    """Run the full rule-based pipeline for a text prompt."""
    rng = rng or random.Random()
    bundle = classify_prompt(prompt, profile)
    resolved = resolve_safety(prompt, profile, bundle)
    nutrition = estimate_nutrition(rng)

    health_risks = [f"Review suitability for {cond}" for cond in profile.health_conditions]

    return AnalysisResult(
        meal_name=bundle.meal_name,
        safety_rating=resolved.safety_rating,
        allergy_warnings=resolved.allergy_warnings or [DEFAULT_WARNING],
        nutritional_breakdown=nutrition,
        ingredients=bundle.ingredients or list(DEFAULT_INGREDIENTS),
        recommendation=build_recommendation(resolved.safety_rating, nutrition),
        health_risks=health_risks or list(DEFAULT_HEALTH_RISKS),
    )


def honest_image_analysis(profile: UserProfile) -> AnalysisResult:
    """Report for a photo nobody could look at. Always YELLOW."""
    if profile.has_allergies:
        needs = "allergies: " + ", ".join(profile.allergies)
    else:
        needs = "dietary needs"
    recommendation = (
        "Since AI analysis is currently unavailable, please:\n\n"
        "1. 🧾 Ask restaurant staff for ingredient list\n"
        f"2. 🚨 Inform them about your {needs}\n"
        "3. 🔍 Check for cross-contamination risks\n"
        "4. 📱 Take photos of ingredients if available"
    )
    return AnalysisResult(
        meal_name="Unable to Identify - Manual Verification Required",
        safety_rating=SafetyRating.YELLOW,
        allergy_warnings=[
            "⚠️ AI analysis unavailable",
            "Please verify all ingredients manually",
            "Check with restaurant staff about allergens",
        ],
        nutritional_breakdown=NutritionalBreakdown.uniform("Unknown - verify manually"),
        ingredients=[
            "Ingredients cannot be automatically detected",
            "Please check with food provider",
            "Verify preparation methods",
        ],
        recommendation=recommendation,
        health_risks=[
            "Limited analysis capability",
            "Manual verification required",
            "Potential allergen exposure",
        ],
    )


# Menu analysis
_BULLET_RE = re.compile(r"^[\s\-\*•\d\.\)]+")
_PRICE_RE = re.compile(r"[\$€£]?\s*\d+(?:[.,]\d{2})?\s*[\$€£]?\s*$")
_WORD_RE = re.compile(r"[a-z]+")


def is_section_header(line: str) -> bool:
    """'STARTERS' or 'Desserts:' style lines that name a section, not a dish."""
    line = line.strip()
    return line.endswith(":") or line.isupper()


def extract_menu_items(menu_text: str, limit: int = MENU_MAX_ITEMS) -> List[str]:
    """Pull candidate dish names out of raw menu text, one per line."""
    items: List[str] = []
    seen = set()
    for line in menu_text.splitlines():
        name = _PRICE_RE.sub("", _BULLET_RE.sub("", line)).strip(" .-\t")
        if is_section_header(name):
            continue
        name = name.strip(":")
        if len(name) > 80 or sum(ch.isalpha() for ch in name) < 3:
            continue
        if name.lower() in seen:
            continue
        seen.add(name.lower())
        items.append(name)
        if len(items) >= limit:
            break
    return items


def _allergen_stems(allergy: str) -> List[str]:
    # 'Peanuts' -> ['peanut'], 'Tree Nuts' -> ['nut'], 'Wheat/Gluten' -> ['wheat', 'gluten']
    stems = []
    for alternative in allergy.lower().split("/"):
        words = _WORD_RE.findall(alternative)
        if not words:
            continue
        word = words[-1]
        stems.append(word[:-1] if len(word) > 3 and word.endswith("s") else word)
    return stems


def named_allergies(dish: str, profile: UserProfile) -> List[str]:
    """Profile allergies whose name appears in the dish name."""
    text = dish.lower()
    return [a for a in profile.allergies if any(stem in text for stem in _allergen_stems(a))]


def generic_menu_guidance(profile: UserProfile) -> MenuAnalysisResult:
    """Menu guidance when no individual dish could be read from the text."""
    risky = []
    if profile.has_allergies:
        risky = [
            MenuOption(name="Mixed Sauces and Gravies", reason="Often contain hidden allergens"),
            MenuOption(name="Desserts", reason="Commonly contain nuts, dairy, eggs"),
        ]
    return MenuAnalysisResult(
        safe_options=[
            MenuOption(name="Grilled Chicken Breast", reason="Simple protein, minimal ingredients"),
            MenuOption(name="Steamed Vegetables", reason="Generally safe for most diets"),
            MenuOption(name="Plain Baked Potato", reason="Single ingredient, easily verifiable"),
        ],
        moderate_options=[
            MenuOption(name="House Salad", reason="Check dressing and toppings"),
            MenuOption(name="Soup of the Day", reason="Verify ingredients - may contain allergens"),
        ],
        risky_options=risky,
        recommendation=_menu_recommendation(profile),
    )


def _menu_recommendation(profile: UserProfile) -> str:
    if profile.has_allergies:
        return (
            "Please inform staff of your allergies. Choose simple preparations and verify all ingredients. "
            "When in doubt, select grilled items without sauces."
        )
    return "Opt for freshly prepared items. Balance your meal with vegetables and lean proteins."


def synthesize_menu_analysis(menu_text: str, profile: UserProfile) -> MenuAnalysisResult:
    """Sort each menu line into safe / moderate / risky using the meal rules."""
    items = extract_menu_items(menu_text)
    if not items:
        logger.info("[Fallback] No menu items recognised; returning generic guidance")
        return generic_menu_guidance(profile)

    buckets = {SafetyRating.GREEN: [], SafetyRating.YELLOW: [], SafetyRating.RED: []}
    for item in items:
        resolved = resolve_safety(item, profile, classify_prompt(item, profile))
        rating = resolved.safety_rating
        allergens = named_allergies(item, profile)
        if allergens:
            rating = SafetyRating.RED
            reason = "; ".join(f"Contains {a}" for a in allergens)
        elif resolved.allergy_warnings:
            reason = "; ".join(resolved.allergy_warnings)
        else:
            reason = "No conflicts with your profile detected"
        buckets[rating].append(MenuOption(name=item, reason=reason))

    logger.info(
        f"[Fallback] Menu sorted: safe={len(buckets[SafetyRating.GREEN])} "
        f"moderate={len(buckets[SafetyRating.YELLOW])} risky={len(buckets[SafetyRating.RED])}"
    )
    return MenuAnalysisResult(
        safe_options=buckets[SafetyRating.GREEN],
        moderate_options=buckets[SafetyRating.YELLOW],
        risky_options=buckets[SafetyRating.RED],
        recommendation=_menu_recommendation(profile),
    )
