"""Tests for profile normalization and the safety rating enum."""
import pytest

from app.models import AnalysisResult, InvalidInputError, NutritionalBreakdown, SafetyRating, UserProfile


def test_profile_accepts_camel_case_and_drops_none():
    profile = UserProfile.from_raw({
        "allergies": ["Peanuts", " peanuts ", "None", ""],
        "dietaryRestrictions": "Vegetarian, Gluten-Free",
        "healthConditions": None,
    })
    assert profile.allergies == ["Peanuts"]
    assert profile.dietary_restrictions == ["Vegetarian", "Gluten-Free"]
    assert profile.health_conditions == []
    assert profile.is_vegetarian


def test_profile_from_none_is_empty():
    profile = UserProfile.from_raw(None)
    assert not profile.has_allergies
    assert profile.describe().count("None reported") == 3


@pytest.mark.parametrize("raw", ["Peanuts", 42, ["Peanuts"]])
def test_profile_rejects_non_mapping(raw):
    with pytest.raises(InvalidInputError):
        UserProfile.from_raw(raw)


def test_profile_rejects_bad_field_type():
    with pytest.raises(InvalidInputError):
        UserProfile.from_raw({"allergies": 5})


def test_has_allergy_matches_fragments():
    profile = UserProfile.from_raw({"allergies": ["Tree Nuts", "Shellfish"]})
    assert profile.has_allergy("nut")
    assert profile.has_allergy("fish", "shellfish")
    assert not profile.has_allergy("dairy")


def test_safety_rating_escalates_and_parses():
    assert SafetyRating.GREEN.escalate(SafetyRating.YELLOW) is SafetyRating.YELLOW
    assert SafetyRating.RED.escalate(SafetyRating.GREEN) is SafetyRating.RED
    assert SafetyRating.parse("red") is SafetyRating.RED
    assert SafetyRating.parse("purple") is None
    assert SafetyRating.parse("RED") is None
    assert SafetyRating.parse(None) is None


def test_analysis_result_serializes_camel_case():
    result = AnalysisResult(
        meal_name="Soup",
        safety_rating=SafetyRating.GREEN,
        nutritional_breakdown=NutritionalBreakdown.uniform("~10%"),
        recommendation="Enjoy",
    )
    data = result.to_dict()
    assert data["mealName"] == "Soup"
    assert data["safetyRating"] == "green"
    assert data["nutritionalBreakdown"]["carbohydrates"] == "~10%"
    assert data["allergyWarnings"] == []
