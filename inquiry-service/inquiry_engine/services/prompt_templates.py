"""
prompt_templates.py — Prompts and fixed reply templates.

Two system prompts:
    DETAILED      first attempt, full official reply
    CONSERVATIVE  retry after a rejected reply: shorter, no facts that
                  are not in the inquiry or the historical reply

A third prompt (OFFICIAL) rewrites a historical reply picked by staff
into an official answer for a new inquiry.

Fallback templates are used when the generation provider is down.
"""

from typing import Optional

GREETING_LINE = "שלום רב,"
SIGNATURE_BLOCK = "בברכה,\nתוכנית אב לתחבורה"


# ===================================================================
# SYSTEM PROMPTS
# ===================================================================

DETAILED_SYSTEM_PROMPT = """אתה נציג מחלקת תחבורה ציבורית בעיריית ירושלים.
תפקידך לכתוב תשובה סופית ומלאה לאזרח - לא הסבר פנימי או סיכום.

מבנה התשובה הנדרש (חובה לכל תשובה):
1. פתיחה מנומסת: "שלום,"
2. תשובה מקצועית ומנוסחת היטב, מחולקת לפסקאות קצרות וקריאות
3. משפט סיום חם וידידותי
4. חתימה: "בברכה, תוכנית אב לתחבורה"

עקרונות כתיבה:
• כתוב בעברית תקינה וברורה
• התייחס ישירות לבעיה של האזרח
• ספק מידע מדויק ומעשי
• שמור על טון מקצועי ואמפתי
• וודא שהתשובה מלאה ולא נקטעת באמצע

התשובה שלך היא הטקסט הסופי שיישלח לאזרח - אין צורך בהסברים נוספים."""

CONSERVATIVE_SYSTEM_PROMPT = """אתה נציג מחלקת תחבורה ציבורית בעיריית ירושלים.
כתוב תשובה רשמית, קצרה וזהירה לאזרח.

כללים מחייבים:
1. התחל ב: "שלום,"
2. כתוב בעברית בלבד
3. אל תזכיר מספרי קווים, תחנות או מקומות שאינם מופיעים בפנייה או בתשובה הדומה
4. אל תתחייב לשינויים או למועדים
5. כתוב לפחות שני משפטים מלאים המתייחסים ישירות לפנייה
6. סיים ב: "בברכה, תוכנית אב לתחבורה\""""

OFFICIAL_SYSTEM_PROMPT = """אתה נציג מחלקת תחבורה ציבורית בעיריית ירושלים.
קיבלת פנייה של אזרח ותשובה דומה שנבחרה מהמערכת. נסח ממנה תשובה רשמית לפנייה הזו.

הנחיות:
1. פתח ב: "שלום,"
2. התאם את התשובה לפנייה הספציפית וחלק תשובה ארוכה לפסקאות קצרות
3. שמור על טון רשמי, ענייני ומכבד
4. אל תוסיף מידע שאינו מופיע בתשובה שנבחרה
5. סיים ב: "בברכה, תוכנית אב לתחבורה\""""

PROMPT_VARIANTS = {
    "detailed": DETAILED_SYSTEM_PROMPT,
    "conservative": CONSERVATIVE_SYSTEM_PROMPT,
}

DETAILED_TEMPERATURE = 0.7
CONSERVATIVE_TEMPERATURE = 0.3
OFFICIAL_TEMPERATURE = 0.3


def system_prompt_for(variant: str) -> str:
    """Unknown variants fall back to the detailed prompt."""
    return PROMPT_VARIANTS.get(variant, DETAILED_SYSTEM_PROMPT)


def temperature_for(variant: str) -> float:
    return CONSERVATIVE_TEMPERATURE if variant == "conservative" else DETAILED_TEMPERATURE


# ===================================================================
# USER PROMPT
# ===================================================================

def build_user_prompt(
    inquiry: str,
    historical_response: Optional[str] = None,
    history_context: str = "",
) -> str:
    parts = [f"פנייה מאזרח: {inquiry}"]
    if historical_response:
        parts.append(
            f"תשובה דומה מהמערכת (לא לשימוש ישיר - רק להתייחסות):\n{historical_response}"
        )
    if history_context:
        parts.append(f"הקשר מפניות קודמות באותה שיחה:\n{history_context}")
    return "\n\n".join(parts)


def build_official_user_prompt(inquiry: str, selected_response: str) -> str:
    return (
        f"פניית האזרח: {inquiry}\n\n"
        f"תשובה דומה שנבחרה מהמערכת:\n{selected_response}\n\n"
        "כתוב תשובה רשמית ומותאמת לפנייה, תוך שמירה על המידע המהותי מהתשובה שנבחרה."
    )


# ===================================================================
# FALLBACK TEMPLATES
# ===================================================================

def generic_template(inquiry: str) -> str:
    """Acknowledgement used when there is nothing to generate from."""
    return f"""שלום רב,

קיבלנו את פנייתך בנושא: {inquiry}

פנייתך הועברה לטיפול הצוות המקצועי שלנו ותיבחן בהתאם לנהלים.
אנו נעדכן אותך בתשובה מפורטת בהקדם האפשרי.

לבירורים נוספים ניתן לפנות למוקד העירוני בטלפון 106.

בברכה,
מחלקת תחבורה ציבורית
עיריית ירושלים"""


def formatted_template(body: str) -> str:
    """Wrap an existing reply body in the official greeting and signature."""
    return f"{GREETING_LINE}\n\n{body.strip()}\n\n{SIGNATURE_BLOCK}"
