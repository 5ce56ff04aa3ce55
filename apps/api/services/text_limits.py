"""
Input length limits and HTML escaping for user-written text.

Limits are per language: English allows roughly four times as many
characters as Japanese for the same amount of information. They are
enforced here regardless of what the client's form allowed.
"""
from typing import Dict, Optional

JA_INPUT_LIMITS: Dict[str, int] = {
    "location": 30,
    "activity_name": 50,
    "goal_title": 30,
    "goal_motivation": 150,
    "session_notes": 500,
    "mood_notes": 500,
    "additional_notes": 500,
}

EN_INPUT_LIMITS: Dict[str, int] = {
    "location": 120,
    "activity_name": 200,
    "goal_title": 120,
    "goal_motivation": 600,
    "session_notes": 2000,
    "mood_notes": 2000,
    "additional_notes": 2000,
}

# Upper bound on the combined reflection text sent to the model per period.
JA_AGGREGATED_LIMITS = {"weekly": 3000, "monthly": 5000}
EN_AGGREGATED_LIMITS = {"weekly": 12000, "monthly": 20000}

XSS_ESCAPE_MAP = {
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "&": "&amp;",
    "/": "&#x2F;",
    "`": "&#x60;",
    "=": "&#x3D;",
}
_XSS_TABLE = str.maketrans(XSS_ESCAPE_MAP)


def get_input_limits(language: Optional[str]) -> Dict[str, int]:
    return EN_INPUT_LIMITS if language == "en" else JA_INPUT_LIMITS


def get_aggregated_limits(language: Optional[str]) -> Dict[str, int]:
    return EN_AGGREGATED_LIMITS if language == "en" else JA_AGGREGATED_LIMITS


def escape_html(text: Optional[str]) -> Optional[str]:
    """Replace characters that HTML/JS would interpret with entities."""
    if text is None:
        return None
    return text.translate(_XSS_TABLE)


def truncate_for_db(text: Optional[str], field: str, language: Optional[str] = "ja") -> Optional[str]:
    """
    Clip text to the field's limit for the user's language.

    Empty or whitespace-only input becomes None.
    """
    if not text or not text.strip():
        return None
    return text.strip()[: get_input_limits(language)[field]]


def clean_text(text: Optional[str], field: str, language: Optional[str] = "ja") -> Optional[str]:
    """Truncate then escape; the form every free-text column is stored in."""
    return escape_html(truncate_for_db(text, field, language))
