"""Data models for the SafeMenu application."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# Configure logger
logger = logging.getLogger(__name__)

NUTRIENT_KEYS = ("fat", "sugar", "protein", "carbohydrates", "fiber")


class InvalidInputError(ValueError):
    """Raised when a caller hands the analysis pipeline something it cannot use."""
    pass


class SafetyRating(str, Enum):
    """Ordinal safety level attached to an analyzed meal or menu item."""
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def escalate(self, other: "SafetyRating") -> "SafetyRating":
        """Return the more severe of the two ratings."""
        return other if other.severity > self.severity else self

    @classmethod
    def parse(cls, value: Any) -> Optional["SafetyRating"]:
        """Exact lookup; anything but 'green', 'yellow' or 'red' gives None."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                return None
        return None


_SEVERITY = {SafetyRating.GREEN: 0, SafetyRating.YELLOW: 1, SafetyRating.RED: 2}


# Profile
class UserProfile(BaseModel):
    """Dietary profile the analysis is keyed to. Every field is optional."""
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    allergies: List[str] = Field(default_factory=list)
    dietary_restrictions: List[str] = Field(default_factory=list, alias="dietaryRestrictions")
    health_conditions: List[str] = Field(default_factory=list, alias="healthConditions")
    preferred_meat: List[str] = Field(default_factory=list, alias="preferredMeat")

    @field_validator("allergies", "dietary_restrictions", "health_conditions", "preferred_meat", mode="before")
    @classmethod
    def normalize_terms(cls, v: Any) -> List[str]:
        """Accept None, a comma separated string or a list; drop blanks, 'None' and duplicates."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, (list, tuple, set, frozenset)):
            raise ValueError("expected a list of strings")
        terms: List[str] = []
        seen = set()
        for item in v:
            if item is None:
                continue
            term = str(item).strip()
            if not term or term.lower() == "none" or term.lower() in seen:
                continue
            seen.add(term.lower())
            terms.append(term)
        return terms

    @property
    def has_allergies(self) -> bool:
        return bool(self.allergies)

    def has_allergy(self, *fragments: str) -> bool:
        """True if any allergy contains one of the fragments (case-insensitive)."""
        lowered = [a.lower() for a in self.allergies]
        return any(frag in allergy for allergy in lowered for frag in fragments)

    def has_restriction(self, *names: str) -> bool:
        lowered = {r.lower() for r in self.dietary_restrictions}
        return any(name.lower() in lowered for name in names)

    @property
    def is_vegetarian(self) -> bool:
        return self.has_restriction("vegetarian", "vegan")

    @classmethod
    def from_raw(cls, raw: Any) -> "UserProfile":
        """Normalize whatever the caller stored into a profile, or raise InvalidInputError."""
        if raw is None:
            return cls()
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, Mapping):
            raise InvalidInputError(f"Profile must be a mapping, got {type(raw).__name__}")
        try:
            return cls.model_validate(dict(raw))
        except ValidationError as e:
            raise InvalidInputError(f"Invalid profile: {e}") from e

    def describe(self) -> str:
        """Human-readable profile block used in AI prompts."""
        def fmt(values: List[str], empty: str) -> str:
            return ", ".join(values) if values else empty

        return (
            f"- Allergies: {fmt(self.allergies, 'None reported')}\n"
            f"- Dietary Restrictions: {fmt(self.dietary_restrictions, 'None reported')}\n"
            f"- Health Conditions: {fmt(self.health_conditions, 'None reported')}\n"
            f"- Preferences: {fmt(self.preferred_meat, 'No specific preferences')}\n"
        )


# Analysis results
class NutritionalBreakdown(BaseModel):
    """Display strings for the five tracked nutrients (estimates, not measurements)."""
    model_config = ConfigDict(frozen=True)

    fat: str
    sugar: str
    protein: str
    carbohydrates: str
    fiber: str

    @classmethod
    def uniform(cls, value: str) -> "NutritionalBreakdown":
        return cls(**{key: value for key in NUTRIENT_KEYS})


class AnalysisResult(BaseModel):
    """Safety report for a single meal. Same shape whichever path produced it."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    meal_name: str = Field(..., min_length=1, alias="mealName")
    safety_rating: SafetyRating = Field(..., alias="safetyRating")
    allergy_warnings: List[str] = Field(default_factory=list, alias="allergyWarnings")
    nutritional_breakdown: NutritionalBreakdown = Field(..., alias="nutritionalBreakdown")
    ingredients: List[str] = Field(default_factory=list)
    recommendation: str = Field(..., min_length=1)
    health_risks: List[str] = Field(default_factory=list, alias="healthRisks")

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form with the camelCase keys stored on scans."""
        return self.model_dump(mode="json", by_alias=True)


class MenuOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    reason: str


class MenuAnalysisResult(BaseModel):
    """Menu items sorted into safe, moderate and risky buckets."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    safe_options: List[MenuOption] = Field(default_factory=list, alias="safeOptions")
    moderate_options: List[MenuOption] = Field(default_factory=list, alias="moderateOptions")
    risky_options: List[MenuOption] = Field(default_factory=list, alias="riskyOptions")
    recommendation: str = Field(..., min_length=1)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    response_text: str = Field(..., alias="responseText")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
