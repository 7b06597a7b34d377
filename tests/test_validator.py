"""Tests for AI reply extraction and field-by-field coercion."""
import json

from app.models import SafetyRating, UserProfile
from services.validator import (
    coerce_analysis,
    default_analysis,
    extract_structured_block,
    parse_analysis_response,
    parse_menu_response,
)

EMPTY = UserProfile()
PEANUTS = UserProfile.from_raw({"allergies": ["Peanuts"]})


def test_extract_is_greedy_first_to_last_brace():
    text = 'noise {"a": {"b": 1}} trailing } end'
    assert extract_structured_block(text) == '{"a": {"b": 1}} trailing }'
    assert extract_structured_block("no braces here") is None
    assert extract_structured_block(None) is None


def test_invalid_rating_keeps_other_fields():
    raw = 'Some commentary {"mealName":"Caesar Salad","safetyRating":"purple","allergyWarnings":["none"]}'
    result = parse_analysis_response(raw, EMPTY)
    assert result.meal_name == "Caesar Salad"
    assert result.allergy_warnings == ["none"]
    assert result.safety_rating is default_analysis(EMPTY).safety_rating
    assert result.ingredients == ["Ingredients analysis unavailable"]


def test_fields_are_coerced_independently():
    result = coerce_analysis({
        "mealName": "",
        "safetyRating": "red",
        "allergyWarnings": "peanuts",
        "nutritionalBreakdown": {"fat": "30%", "sugar": ""},
        "ingredients": ["rice", 3],
        "recommendation": 123,
        "healthRisks": None,
    }, PEANUTS)
    assert result.meal_name == "Food Item"
    assert result.safety_rating is SafetyRating.RED
    assert result.allergy_warnings == ["Manual verification required"]
    assert result.nutritional_breakdown.fat == "30%"
    assert result.nutritional_breakdown.sugar == "Varies"
    assert result.ingredients == ["rice", "3"]
    assert result.recommendation == "123"
    assert result.health_risks == ["Allergen verification needed"]


def test_code_fences_are_removed():
    payload = {"mealName": "Tacos", "safetyRating": "green"}
    result = parse_analysis_response(f"```json\n{json.dumps(payload)}\n```", EMPTY)
    assert result.meal_name == "Tacos"
    assert result.safety_rating is SafetyRating.GREEN


def test_no_block_with_avoid_is_red_and_truncated():
    text = "You should avoid this dish. " + "x" * 400
    result = parse_analysis_response(text, EMPTY)
    assert result.safety_rating is SafetyRating.RED
    assert result.meal_name == "Analyzed Meal"
    assert result.recommendation == text[:300] + "..."


def test_no_block_recommendation_keeps_reply_text():
    text = "  Use caution with the sauce.\nAsk staff about peanuts.\n"
    result = parse_analysis_response(text, EMPTY)
    assert result.recommendation == text


def test_no_block_with_caution_is_yellow():
    result = parse_analysis_response("Use caution with the sauce.", EMPTY)
    assert result.safety_rating is SafetyRating.YELLOW
    assert result.allergy_warnings == ["Please verify ingredients manually"]


def test_no_block_plain_text_is_green():
    result = parse_analysis_response("Looks like a simple bowl of rice.", EMPTY)
    assert result.safety_rating is SafetyRating.GREEN
    assert result.allergy_warnings == []


def test_unparseable_block_gives_default():
    result = parse_analysis_response("{not json at all}", PEANUTS)
    assert result == default_analysis(PEANUTS)
    assert result.safety_rating is SafetyRating.YELLOW


def test_two_objects_make_one_invalid_block():
    raw = '{"mealName": "A"} or maybe {"mealName": "B"}'
    assert parse_analysis_response(raw, EMPTY) == default_analysis(EMPTY)


def test_empty_reply_gives_default():
    assert parse_analysis_response(None, EMPTY) == default_analysis(EMPTY)
    assert parse_analysis_response("   ", EMPTY) == default_analysis(EMPTY)


def test_default_never_green():
    assert default_analysis(EMPTY).safety_rating is SafetyRating.YELLOW
    assert default_analysis(PEANUTS).allergy_warnings == ["Manual verification required"]


def test_menu_reply_drops_malformed_entries():
    raw = json.dumps({
        "safeOptions": [{"name": "Soup"}, {"reason": "no name"}, "Salad"],
        "moderateOptions": "not a list",
        "riskyOptions": [{"name": "Satay", "reason": "Peanut sauce"}],
        "recommendation": "Ask about sauces",
    })
    result = parse_menu_response(raw, PEANUTS)
    assert [(o.name, o.reason) for o in result.safe_options] == [("Soup", "No details provided")]
    assert [o.name for o in result.moderate_options] == ["House Salads", "Soup Options"]
    assert result.risky_options[0].reason == "Peanut sauce"
    assert result.recommendation == "Ask about sauces"


def test_menu_reply_without_block_gives_default():
    result = parse_menu_response("Sorry, I cannot read this menu.", EMPTY)
    assert len(result.safe_options) == 3
    assert result.risky_options == []
