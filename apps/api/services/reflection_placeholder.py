"""
Reflection placeholder suggestions.

While a session runs (draft) and again when it ends (final), the reflection
form shows one short, encouraging line built from the user's last sessions
of the same activity. The draft looks back at the previous session's notes,
mood and time; the final version adds how today compares.

Failures never raise: the caller always gets a localized default line.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional
from uuid import UUID

import anthropic
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import ErrorCode, NotFoundError
from models import ActivitySession, Goal, User
from services.activities import get_activity
from services.ai_feedback import get_anthropic_client
from services.content_encryption import decrypt_text

logger = logging.getLogger(__name__)

HISTORY_SIZE = 5
KEYWORD_MIN_LENGTH = 15
KEYWORD_MAX_LENGTH = 30
MAX_KEYWORDS = 3
PREVIEW_LENGTH = 200
# Within this many seconds of last time counts as "similar".
DURATION_TOLERANCE = 300

MOOD_LABELS = {
    "ja": {5: "最高", 4: "良い", 3: "ふつう", 2: "イマイチ", 1: "つらい"},
    "en": {5: "Excellent", 4: "Good", 3: "Okay", 2: "Not Great", 1: "Tough"},
}

TREND_TEXT = {
    "ja": {
        "improved": "向上", "declined": "低下", "same": "同じ",
        "longer": "長い", "shorter": "短い", "similar": "同じくらい",
    },
    "en": {
        "improved": "improved", "declined": "declined", "same": "same",
        "longer": "longer", "shorter": "shorter", "similar": "similar",
    },
}

DEFAULT_PLACEHOLDERS = {
    "ja": (
        "最初の記録です。今日の取り組みについて、何か思ったことはありましたか？",
        "前回との違いなど、気づいたことはありますか？",
        "今日の発見を残しておきましょう。",
    ),
    "en": (
        "Your first focus on this activity. What did you feel about it today?",
        "Notice any differences from last time?",
        "Let's capture today's insights.",
    ),
}

# Draft leaves more room to work from past notes.
GENERATION = {
    "draft": {"max_tokens": 200, "temperature": 0.8},
    "final": {"max_tokens": 150, "temperature": 0.75},
}
CHAR_LIMITS = {"ja": 40, "en": 50}

SYSTEM_PROMPT = """You are Shonin, quietly witnessing the user's efforts. Write the placeholder text shown in the reflection field after a focus session.

Respond ONLY in {language_name}, even if names or past notes are in another language.

The input is JSON describing the user's recent sessions of this activity.
When generationType is "draft" (written at session start, about 70% complete):
- Work from the previous session's notes, mood and time.
- Turn specific past details into a gentle question, e.g. "Last time you spent 40 minutes." or "About the chapter you noted last time, how was it today?"
When generationType is "final" (written at session end, the last 30%):
- Keep the draft's angle and add today's difference from moodComparison and durationComparison, e.g. "Ten minutes longer than last time, how did it go?"

Rules:
- Exactly one sentence, at most {char_limit} characters, one closing punctuation mark.
- If userName is set, begin by addressing them ({name_rule}); otherwise use no name.
- Warm, friendly and always positive. Look at what was done, never at what was not.
- Never mention how many sessions there have been.
- Avoid the words: experience, learning, discovery, insight, feeling, unchanged.
"""

NAME_RULES = {
    "ja": 'Japanese honorific, e.g. "太郎さん、"',
    "en": 'e.g. "Taro, "',
}
LANGUAGE_NAMES = {"ja": "Japanese", "en": "English"}


def _lang(language: Optional[str]) -> str:
    return "en" if language == "en" else "ja"


def _name_prefix(user_name: Optional[str], language: str) -> str:
    if not user_name:
        return ""
    return f"{user_name}さん、" if language == "ja" else f"{user_name}, "


def default_placeholder(session_count: int, user_name: Optional[str], language: Optional[str]) -> str:
    """Fixed line by how many earlier sessions exist (0, 1, more)."""
    lang = _lang(language)
    first, second, later = DEFAULT_PLACEHOLDERS[lang]
    text = first if session_count == 0 else second if session_count == 1 else later
    return _name_prefix(user_name, lang) + text


def extract_keywords(text: Optional[str]) -> List[str]:
    """
    Leading fragments of the longer sentences in a note.

    >>> extract_keywords("短い。今日は第三章の演習問題を最後まで解くことができた。")
    ['今日は第三章の演習問題を最後まで解くことができた']
    """
    if not text:
        return []
    keywords = []
    for sentence in re.split(r"[。．\n]", text):
        sentence = sentence.strip()
        if len(sentence) >= KEYWORD_MIN_LENGTH:
            keywords.append(sentence[:KEYWORD_MAX_LENGTH])
    return keywords[:MAX_KEYWORDS]


def duration_label(seconds: int, language: Optional[str]) -> str:
    minutes = round(seconds / 60)
    hours, rest = divmod(minutes, 60)
    if _lang(language) == "ja":
        return f"{hours}時間{rest}分" if minutes >= 60 else f"{minutes}分"
    return f"{hours}h {rest}m" if minutes >= 60 else f"{minutes}m"


def _note(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    return {"full": text, "preview": text[:PREVIEW_LENGTH], "keywords": extract_keywords(text)}


def build_context(
    history: List[Dict[str, Any]],
    activity_name: str,
    goal_title: Optional[str],
    user_name: Optional[str],
    current_mood: Optional[int],
    current_duration: Optional[int],
    is_pre_generation: bool,
    language: Optional[str],
) -> Dict[str, Any]:
    """The JSON the model sees. `history` is newest first."""
    lang = _lang(language)
    context: Dict[str, Any] = {
        "userName": user_name,
        "sessionCount": len(history) + 1,
        "activityName": activity_name,
        "goalTitle": goal_title,
        "generationType": "draft" if is_pre_generation else "final",
        "completionLevel": "70%" if is_pre_generation else "100%",
    }
    if not history:
        return context

    last = history[0]
    last_mood = last.get("mood")
    last_duration = last.get("duration")

    if last_mood:
        context["previousMood"] = {"score": last_mood, "label": MOOD_LABELS[lang].get(last_mood)}
    if last_duration:
        context["previousDuration"] = {
            "seconds": last_duration,
            "minutes": round(last_duration / 60),
            "displayText": duration_label(last_duration, lang),
        }
    notes, mood_notes = _note(last.get("notes")), _note(last.get("mood_notes"))
    if notes:
        context["previousNotes"] = notes
    if mood_notes:
        context["previousMoodNotes"] = mood_notes

    if is_pre_generation:
        return context

    if current_mood and last_mood:
        diff = current_mood - last_mood
        trend = "improved" if diff > 0 else "declined" if diff < 0 else "same"
        context["moodComparison"] = {
            "previous": last_mood,
            "current": current_mood,
            "difference": diff,
            "trend": trend,
            "trendText": TREND_TEXT[lang][trend],
        }
    if current_duration and last_duration:
        diff = current_duration - last_duration
        if diff > DURATION_TOLERANCE:
            trend = "longer"
        elif diff < -DURATION_TOLERANCE:
            trend = "shorter"
        else:
            trend = "similar"
        context["durationComparison"] = {
            "previous": round(last_duration / 60),
            "current": round(current_duration / 60),
            "differenceMinutes": round(diff / 60),
            "trend": trend,
            "trendText": TREND_TEXT[lang][trend],
        }
    return context


def system_prompt(language: Optional[str]) -> str:
    lang = _lang(language)
    return SYSTEM_PROMPT.format(
        language_name=LANGUAGE_NAMES[lang],
        char_limit=CHAR_LIMITS[lang],
        name_rule=NAME_RULES[lang],
    )


def clean_reply(text: str) -> str:
    return re.sub(r"。。+", "。", text.strip().replace("\n", ""))


def load_history(db: Session, user: User, activity_id: UUID, goal_id: Optional[UUID]) -> List[Dict[str, Any]]:
    """Last finished sessions of the activity (and goal, when given), newest first."""
    q = db.query(ActivitySession).filter(
        ActivitySession.user_id == user.id,
        ActivitySession.activity_id == activity_id,
        ActivitySession.end_time.isnot(None),
    )
    if goal_id is not None:
        q = q.filter(ActivitySession.goal_id == goal_id)
    sessions = q.order_by(ActivitySession.session_date.desc(), ActivitySession.start_time.desc()).limit(HISTORY_SIZE).all()

    history = []
    for s in sessions:
        reflection = s.reflection
        history.append({
            "duration": s.duration or 0,
            "notes": s.notes,
            "mood": reflection.mood_score if reflection else None,
            "mood_notes": decrypt_text(reflection.mood_notes) if reflection else None,
        })
    return history


def generate_placeholder(
    db: Session,
    user: User,
    activity_id: UUID,
    goal_id: Optional[UUID] = None,
    current_mood: Optional[int] = None,
    current_duration: Optional[int] = None,
    is_pre_generation: bool = False,
    language: Optional[str] = None,
) -> str:
    language = _lang(language or user.language)
    activity = get_activity(db, user, activity_id)

    goal_title = None
    if goal_id is not None:
        goal = db.query(Goal).filter(Goal.id == goal_id, Goal.user_id == user.id).first()
        if goal is None:
            raise NotFoundError("Goal", error_code=ErrorCode.GOAL_NOT_FOUND)
        goal_title = goal.title

    history = load_history(db, user, activity.id, goal_id)
    fallback = default_placeholder(len(history), user.name, language)
    if not history:
        return fallback

    client = get_anthropic_client()
    if client is None:
        logger.error("ANTHROPIC_API_KEY not configured; returning default placeholder")
        return fallback

    context = build_context(
        history, activity.name, goal_title, user.name,
        current_mood, current_duration, is_pre_generation, language,
    )
    generation = GENERATION[context["generationType"]]
    try:
        response = client.messages.create(
            model=settings.AI_PLACEHOLDER_MODEL,
            max_tokens=generation["max_tokens"],
            temperature=generation["temperature"],
            system=system_prompt(language),
            messages=[{"role": "user", "content": json.dumps(context, ensure_ascii=False, indent=2)}],
        )
    except anthropic.APIError as e:
        logger.warning(f"Anthropic API error during placeholder generation: {e}")
        return fallback

    text = response.content[0].text if response.content else ""
    return clean_reply(text) or fallback
