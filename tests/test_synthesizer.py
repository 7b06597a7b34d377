"""Tests for the rule-based report and menu synthesis."""
import random

import pytest

from app.models import NUTRIENT_KEYS, NutritionalBreakdown, SafetyRating, UserProfile
from services.synthesizer import (
    RECOMMENDATIONS,
    build_recommendation,
    estimate_nutrition,
    extract_menu_items,
    honest_image_analysis,
    parse_percentage,
    synthesize_analysis,
    synthesize_menu_analysis,
)


def test_scenario_vegetarian_chicken_salad(rng):
    profile = UserProfile.from_raw({"dietaryRestrictions": ["Vegetarian"]})
    result = synthesize_analysis("Grilled chicken caesar salad", profile, rng)
    assert result.meal_name == "Chicken Dish"
    assert result.safety_rating is SafetyRating.RED
    assert "Contains animal products" in result.allergy_warnings
    assert result.recommendation == RECOMMENDATIONS["red"]


def test_scenario_creamy_pasta_dairy(rng):
    profile = UserProfile.from_raw({"allergies": ["Dairy"]})
    result = synthesize_analysis("Creamy pasta alfredo", profile, rng)
    assert result.meal_name == "Pasta Dish"
    assert result.safety_rating is SafetyRating.RED
    assert "Dairy products detected" in result.allergy_warnings


def test_peanut_allergy_is_never_green(rng, peanut_profile):
    for prompt in ("Green salad", "Grilled chicken", "Bowl of rice"):
        assert synthesize_analysis(prompt, peanut_profile, rng).safety_rating is SafetyRating.YELLOW


@pytest.mark.parametrize("prompt", ["", "   ", "x", "🍕🍕", "salad " * 200])
def test_pipeline_is_total(prompt, rng):
    result = synthesize_analysis(prompt, UserProfile(), rng)
    assert result.meal_name
    assert result.recommendation
    assert result.allergy_warnings
    assert result.ingredients
    assert result.health_risks


def test_defaults_fill_empty_lists(rng):
    result = synthesize_analysis("Mystery box", UserProfile(), rng)
    assert result.allergy_warnings == ["No specific allergens detected"]
    assert result.ingredients == ["Various ingredients"]
    assert result.health_risks == ["General food safety practices recommended"]


def test_health_conditions_become_risks(rng):
    profile = UserProfile.from_raw({"healthConditions": ["Diabetes"]})
    result = synthesize_analysis("Pasta", profile, rng)
    assert result.health_risks == ["Review suitability for Diabetes"]


def test_nutrition_estimates_are_in_range():
    nutrition = estimate_nutrition(random.Random(7))
    fat = parse_percentage(nutrition.fat)
    assert nutrition.fat.startswith("~") and nutrition.fat.endswith("%")
    assert 20 <= fat <= 49
    for key in NUTRIENT_KEYS:
        assert parse_percentage(getattr(nutrition, key)) is not None


@pytest.mark.parametrize("fat,expected", [
    (41, "high_fat"), (49, "high_fat"), (40, "balanced"), (20, "balanced"),
])
def test_fat_threshold(fat, expected):
    nutrition = NutritionalBreakdown(fat=f"~{fat}%", sugar="~5%", protein="~20%", carbohydrates="~40%", fiber="~5%")
    assert build_recommendation(SafetyRating.GREEN, nutrition) == RECOMMENDATIONS[expected]


def test_rating_beats_fat_in_recommendation():
    nutrition = NutritionalBreakdown.uniform("~45%")
    assert build_recommendation(SafetyRating.YELLOW, nutrition) == RECOMMENDATIONS["yellow"]


def test_honest_image_analysis_names_allergies(peanut_profile):
    result = honest_image_analysis(peanut_profile)
    assert result.safety_rating is SafetyRating.YELLOW
    assert "allergies: Peanuts" in result.recommendation
    assert result.nutritional_breakdown.fat == "Unknown - verify manually"


def test_extract_menu_items_strips_noise():
    menu = """
    STARTERS
    1. Garlic Bread ..... $5.99
    - Caesar Salad  8.50
    * Caesar salad
    $$
    Desserts:
    Apple Pie
    """
    assert extract_menu_items(menu) == ["Garlic Bread", "Caesar Salad", "Apple Pie"]


def test_menu_section_headers_are_not_dishes():
    menu = "STARTERS\nGarlic Bread $5\nDESSERTS\nPeanut Butter Pie $7"
    result = synthesize_menu_analysis(menu, UserProfile())
    assert [o.name for o in result.safe_options] == ["Garlic Bread", "Peanut Butter Pie"]
    assert result.moderate_options == []
    assert result.risky_options == []


def test_menu_dish_naming_an_allergen_is_risky(peanut_profile):
    menu = "STARTERS\nGarlic Bread $5\nDESSERTS\nPeanut Butter Pie $7"
    result = synthesize_menu_analysis(menu, peanut_profile)
    assert [(o.name, o.reason) for o in result.risky_options] == [("Peanut Butter Pie", "Contains Peanuts")]
    assert [o.name for o in result.moderate_options] == ["Garlic Bread"]


@pytest.mark.parametrize("allergy, dish", [
    ("Tree Nuts", "Walnut brownie"),
    ("Wheat/Gluten", "Wheat tortilla wrap"),
    ("Shellfish", "Shellfish platter"),
    ("Eggs", "Egg fried rice"),
])
def test_menu_allergen_name_matching(allergy, dish):
    profile = UserProfile.from_raw({"allergies": [allergy]})
    result = synthesize_menu_analysis(dish, profile)
    assert [o.reason for o in result.risky_options] == [f"Contains {allergy}"]


def test_menu_fallback_buckets_items():
    profile = UserProfile.from_raw({"allergies": ["Dairy"], "dietaryRestrictions": ["Vegetarian"]})
    menu = "Grilled Chicken Wings\nFettuccine pasta with cheese\nPasta primavera"
    result = synthesize_menu_analysis(menu, profile)
    risky = [o.name for o in result.risky_options]
    moderate = [o.name for o in result.moderate_options]
    assert "Grilled Chicken Wings" in risky
    assert "Fettuccine pasta with cheese" in risky
    assert "Pasta primavera" in moderate
    assert result.safe_options == []


def test_menu_fallback_without_items_gives_generic_guidance(peanut_profile):
    result = synthesize_menu_analysis("$5\n--\n12.00", peanut_profile)
    assert [o.name for o in result.safe_options][0] == "Grilled Chicken Breast"
    assert len(result.risky_options) == 2
