"""
Cross-cutting allergen rules applied after keyword classification.

Rules only ever raise the rating. The dairy rule is a hard block and sets
RED outright.
"""
import logging
from dataclasses import dataclass, field
from typing import List

from app.models import SafetyRating, UserProfile
from services.classifier import ClassifierBundle

logger = logging.getLogger(__name__)

NUT_SAUCE_WARNING = "Sauces may contain nuts - verify ingredients"
DAIRY_WARNING = "Dairy products detected"
ALLERGY_FLOOR_WARNING = "Manual verification required"


@dataclass(frozen=True)
class ResolvedSafety:
    safety_rating: SafetyRating
    allergy_warnings: List[str] = field(default_factory=list)


def resolve_safety(prompt: str, profile: UserProfile, bundle: ClassifierBundle) -> ResolvedSafety:
    """Apply allergen escalation rules on top of the classifier's rating."""
    text = prompt.lower()
    rating = bundle.safety_rating
    warnings = list(bundle.allergy_warnings)

    if profile.has_allergy("nut") and "sauce" in text:
        warnings.append(NUT_SAUCE_WARNING)
        rating = rating.escalate(SafetyRating.YELLOW)

    if profile.has_allergy("dairy") and ("cream" in text or "cheese" in text):
        warnings.append(DAIRY_WARNING)
        rating = SafetyRating.RED

    # Without a live AI nobody has looked at the dish; allergies never get GREEN.
    if profile.has_allergies and rating is SafetyRating.GREEN:
        warnings.append(ALLERGY_FLOOR_WARNING)
        rating = SafetyRating.YELLOW

    if rating is not bundle.safety_rating:
        logger.debug("Escalated %s from %s to %s", bundle.meal_name, bundle.safety_rating.value, rating.value)
    return ResolvedSafety(safety_rating=rating, allergy_warnings=warnings)
