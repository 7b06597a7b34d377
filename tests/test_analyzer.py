"""Tests for the analyzer's AI path and fallback routing, using a fake OpenAI client."""
import asyncio
import json

import pytest
from PIL import Image

from app.models import InvalidInputError, SafetyRating
from services.analyzer import SafeMenuAnalyzer, verify_openai_access


def _meal_reply(**overrides):
    payload = {
        "mealName": "Pad Thai",
        "allergyWarnings": ["Contains peanuts"],
        "safetyRating": "red",
        "nutritionalBreakdown": {"fat": "25%", "sugar": "10%", "protein": "20%", "carbohydrates": "40%", "fiber": "5%"},
        "ingredients": ["rice noodles", "peanuts"],
        "recommendation": "Avoid due to peanut allergy.",
        "healthRisks": ["Anaphylaxis risk"],
    }
    payload.update(overrides)
    return json.dumps(payload)


def test_offline_text_uses_fallback_floor(offline_settings, peanut_profile, rng):
    analyzer = SafeMenuAnalyzer(offline_settings, rng=rng)
    result = asyncio.run(analyzer.analyze_text_description("Green salad", {"allergies": ["Peanuts"]}))
    assert result.safety_rating is SafetyRating.YELLOW
    assert analyzer.model_label == "rule-based-fallback"


def test_offline_text_scenario(offline_settings, rng):
    analyzer = SafeMenuAnalyzer(offline_settings, rng=rng)
    result = asyncio.run(analyzer.analyze_text_description(
        "Grilled chicken caesar salad", {"dietaryRestrictions": ["Vegetarian"]}))
    assert result.meal_name == "Chicken Dish"
    assert result.safety_rating is SafetyRating.RED


@pytest.mark.parametrize("blank", ["", "   "])
def test_blank_description_is_rejected(offline_settings, blank):
    analyzer = SafeMenuAnalyzer(offline_settings)
    with pytest.raises(InvalidInputError):
        asyncio.run(analyzer.analyze_text_description(blank, None))


def test_invalid_profile_is_rejected(offline_settings):
    analyzer = SafeMenuAnalyzer(offline_settings)
    with pytest.raises(InvalidInputError):
        asyncio.run(analyzer.analyze_text_description("Soup", "Peanuts"))


def test_ai_text_reply_is_validated(ai_settings, make_fake_client, peanut_profile):
    client = make_fake_client(replies=[_meal_reply()])
    analyzer = SafeMenuAnalyzer(ai_settings, client=client)
    result = asyncio.run(analyzer.analyze_text_description("Pad thai", peanut_profile))
    assert result.meal_name == "Pad Thai"
    assert result.safety_rating is SafetyRating.RED
    assert client.calls[0]["response_format"] == {"type": "json_object"}
    assert "Peanuts" in client.calls[0]["messages"][1]["content"]


def test_ai_error_falls_back_to_rules(ai_settings, make_fake_client, rng):
    client = make_fake_client(error=RuntimeError("connection reset"))
    analyzer = SafeMenuAnalyzer(ai_settings, client=client, rng=rng)
    result = asyncio.run(analyzer.analyze_text_description("Creamy pasta alfredo", {"allergies": ["Dairy"]}))
    assert result.meal_name == "Pasta Dish"
    assert result.safety_rating is SafetyRating.RED


def test_empty_ai_content_falls_back(ai_settings, make_fake_client, rng):
    analyzer = SafeMenuAnalyzer(ai_settings, client=make_fake_client(replies=[""]), rng=rng)
    result = asyncio.run(analyzer.analyze_text_description("Beef steak", None))
    assert result.meal_name == "Beef Dish"


def test_image_without_ai_is_honest(offline_settings, peanut_profile):
    analyzer = SafeMenuAnalyzer(offline_settings)
    image = Image.new("RGB", (64, 64), "white")
    result = asyncio.run(analyzer.analyze_meal_image(image, peanut_profile))
    assert result.safety_rating is SafetyRating.YELLOW
    assert result.meal_name.startswith("Unable to Identify")


def test_image_without_ai_uses_note(offline_settings, rng):
    analyzer = SafeMenuAnalyzer(offline_settings, rng=rng)
    image = Image.new("RGB", (64, 64), "white")
    result = asyncio.run(analyzer.analyze_meal_image(image, None, note="fish and chips"))
    assert result.meal_name == "Seafood Dish"


def test_image_with_ai_sends_jpeg_and_caches(ai_settings, make_fake_client, peanut_profile):
    client = make_fake_client(replies=[_meal_reply()])
    analyzer = SafeMenuAnalyzer(ai_settings, client=client)
    image = Image.new("RGBA", (2000, 1000), (200, 100, 50, 255))

    first = asyncio.run(analyzer.analyze_meal_image(image, peanut_profile))
    second = asyncio.run(analyzer.analyze_meal_image(image, peanut_profile))

    assert first == second
    assert len(client.calls) == 1
    content = client.calls[0]["messages"][1]["content"]
    assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")



def test_unusable_image_reply_is_not_cached(ai_settings, make_fake_client, peanut_profile):
    client = make_fake_client(replies=["{not json}", _meal_reply()])
    analyzer = SafeMenuAnalyzer(ai_settings, client=client)
    image = Image.new("RGB", (64, 64), "white")

    first = asyncio.run(analyzer.analyze_meal_image(image, peanut_profile))
    second = asyncio.run(analyzer.analyze_meal_image(image, peanut_profile))

    assert first.meal_name == "Food Item"
    assert second.meal_name == "Pad Thai"
    assert len(client.calls) == 2


def test_vision_cache_evicts_least_recently_used(ai_settings, make_fake_client):
    client = make_fake_client(replies=[_meal_reply(mealName=f"Meal {i}") for i in range(4)])
    analyzer = SafeMenuAnalyzer(ai_settings, client=client, cache_size=2)
    red, green, blue = (Image.new("RGB", (32, 32), color) for color in ("red", "green", "blue"))

    for image in (red, green, red, blue, red, green):
        asyncio.run(analyzer.analyze_meal_image(image, None))

    # red was touched before blue arrived, so green is the one evicted
    assert len(client.calls) == 4
    assert len(analyzer._vision_cache) == 2


def test_menu_offline_and_online(offline_settings, ai_settings, make_fake_client, peanut_profile):
    offline = SafeMenuAnalyzer(offline_settings)
    result = asyncio.run(offline.analyze_menu_text("Chicken satay with peanut sauce\nGreen salad", peanut_profile))
    assert [(o.name, o.reason) for o in result.risky_options] == [("Chicken satay with peanut sauce", "Contains Peanuts")]
    assert [o.name for o in result.moderate_options] == ["Green salad"]

    reply = json.dumps({"safeOptions": [{"name": "Green salad", "reason": "No nuts"}], "recommendation": "Ok"})
    online = SafeMenuAnalyzer(ai_settings, client=make_fake_client(replies=[reply]))
    result = asyncio.run(online.analyze_menu_text("Green salad", peanut_profile))
    assert result.safe_options[0].name == "Green salad"
    assert result.recommendation == "Ok"


def test_blank_menu_is_rejected(offline_settings):
    with pytest.raises(InvalidInputError):
        asyncio.run(SafeMenuAnalyzer(offline_settings).analyze_menu_text("  ", None))


def test_chat_fallback_and_ai(offline_settings, ai_settings, make_fake_client, peanut_profile):
    offline = SafeMenuAnalyzer(offline_settings)
    reply = asyncio.run(offline.chat_about_meal("Is this safe for me?", "", peanut_profile))
    assert "1 known allergies" in reply.response_text

    client = make_fake_client(replies=["  Ask the kitchen about peanut oil.  "])
    online = SafeMenuAnalyzer(ai_settings, client=client)
    reply = asyncio.run(online.chat_about_meal("What oil do they use?", "user: hi", peanut_profile))
    assert reply.response_text == "Ask the kitchen about peanut oil."
    assert "user: hi" in client.calls[0]["messages"][1]["content"]
    assert "response_format" not in client.calls[0]


def test_verify_openai_access(make_fake_client):
    ok, error = asyncio.run(verify_openai_access(make_fake_client(replies=["Hi"]), "gpt-4o-mini"))
    assert ok and error is None

    ok, error = asyncio.run(verify_openai_access(make_fake_client(error=RuntimeError("bad key")), "gpt-4o-mini"))
    assert not ok
    assert "bad key" in error
