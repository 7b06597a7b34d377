"""
Canned food-safety chat replies, picked by keyword, for when the AI backend
is off or fails mid-conversation.
"""
from app.models import UserProfile

SAFETY_KEYWORDS = ("allerg", "safe", "risk")
NUTRITION_KEYWORDS = ("nutrition", "healthy", "diet")
INGREDIENT_KEYWORDS = ("ingredient", "contain", "what is in")

NUTRITION_REPLY = """Nutritional Guidance:

For balanced eating:
- Include a variety of colorful vegetables
- Choose lean proteins like chicken, fish, or plant-based alternatives
- Opt for whole grains when available
- Watch portion sizes, especially with high-calorie items
- Stay hydrated with water

Remember that balance over time is more important than any single meal. Enjoy your food while making mindful choices."""

INGREDIENT_REPLY = """Ingredient Analysis:

Common ingredients to watch for:
- Sauces: Often contain dairy, nuts, soy, or gluten
- Dressings: May include eggs, dairy, or specific oils
- Seasonings: Could contain MSG, sulfites, or other additives
- Thickeners: Sometimes use flour, corn starch, or other allergens

I recommend asking specifically about these items if you have concerns. Many restaurants are happy to accommodate dietary needs when asked politely."""

GENERAL_REPLY = """Thank you for your food safety inquiry.

As a general rule:
- Choose freshly prepared foods when possible
- Verify cooking methods and ingredients
- Be mindful of food storage and handling
- When uncertain, opt for simpler dishes

Your health and safety are important. Don't hesitate to ask questions about food preparation - most establishments appreciate customers who care about what they're eating.

Is there a specific food item or restaurant type you'd like me to help you analyze?"""


def _safety_reply(profile: UserProfile) -> str:
    count = len(profile.allergies) if profile.allergies else "no"
    return f"""Based on your inquiry about food safety:

Key Recommendations:
1. Always verify ingredients with restaurant staff
2. Choose simple preparations with fewer ingredients
3. Be aware of cross-contamination in kitchen environments
4. Carry emergency medication if you have severe allergies
5. When dining out, inform staff of your dietary needs

For your specific profile with {count} known allergies, I recommend extra caution with sauces, dressings, and mixed dishes where ingredients may not be obvious."""


def fallback_chat_reply(message: str, profile: UserProfile) -> str:
    text = message.lower()
    if any(k in text for k in SAFETY_KEYWORDS):
        return _safety_reply(profile)
    if any(k in text for k in NUTRITION_KEYWORDS):
        return NUTRITION_REPLY
    if any(k in text for k in INGREDIENT_KEYWORDS):
        return INGREDIENT_REPLY
    return GENERAL_REPLY
