"""
Keyword classifier for free-text meal descriptions.

Used when no AI backend is available. The first matching dish category
wins; allergen rules that cut across categories live in services.safety.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from app.models import SafetyRating, UserProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DishCategory:
    key: str
    meal_name: str
    keywords: Tuple[str, ...]
    ingredients: Tuple[str, ...]


# Order matters: a prompt mentioning several categories takes the first one.
DISH_CATEGORIES: Tuple[DishCategory, ...] = (
    DishCategory("chicken", "Chicken Dish", ("chicken", "poultry"), ("chicken", "spices", "oil")),
    DishCategory("beef", "Beef Dish", ("beef", "steak"), ("beef", "seasonings", "cooking fats")),
    DishCategory("seafood", "Seafood Dish", ("fish", "seafood"), ("fish", "lemon", "herbs")),
    DishCategory("salad", "Fresh Salad", ("salad",), ("mixed greens", "vegetables", "dressing")),
    DishCategory("pasta", "Pasta Dish", ("pasta", "noodle"), ("pasta", "sauce", "cheese")),
)

DEFAULT_MEAL_NAME = "Mixed Meal"


@dataclass
class ClassifierBundle:
    """Provisional identity and safety signal for a prompt."""
    meal_name: str
    safety_rating: SafetyRating
    ingredients: List[str] = field(default_factory=list)
    allergy_warnings: List[str] = field(default_factory=list)
    category: Optional[str] = None


def match_category(prompt: str) -> Optional[DishCategory]:
    """Return the first dish category whose keywords appear in the prompt."""
    text = prompt.lower()
    for category in DISH_CATEGORIES:
        if any(keyword in text for keyword in category.keywords):
            return category
    return None


def classify_prompt(prompt: str, profile: UserProfile) -> ClassifierBundle:
    """Derive meal name, ingredients and a provisional rating from keywords."""
    category = match_category(prompt)
    if category is None:
        return ClassifierBundle(meal_name=DEFAULT_MEAL_NAME, safety_rating=SafetyRating.GREEN)

    bundle = ClassifierBundle(
        meal_name=category.meal_name,
        safety_rating=SafetyRating.GREEN,
        ingredients=list(category.ingredients),
        category=category.key,
    )

    if category.key == "chicken" and profile.is_vegetarian:
        bundle.safety_rating = SafetyRating.RED
        bundle.allergy_warnings.append("Contains animal products")
    elif category.key == "beef" and profile.is_vegetarian:
        bundle.safety_rating = SafetyRating.RED
        bundle.allergy_warnings.append("Contains red meat")
    elif category.key == "seafood" and profile.has_allergy("fish", "shellfish"):
        bundle.safety_rating = SafetyRating.RED
        bundle.allergy_warnings.append("Contains seafood allergens")
    elif category.key == "pasta" and profile.has_allergy("dairy"):
        bundle.safety_rating = SafetyRating.YELLOW
        bundle.allergy_warnings.append("May contain dairy in sauce")

    logger.debug("Classified prompt as %s (%s)", bundle.meal_name, bundle.safety_rating.value)
    return bundle
