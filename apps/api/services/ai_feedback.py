"""
AI Feedback Service

Generates weekly and monthly feedback with Anthropic Claude and manages the
stored feedback rows (encrypted JSON, one per user, type and period).

Generation flow:
    sessions of the period -> analyze_sessions -> tone/prompt -> Claude
    -> JSON {"overview": ...}, retried while the text is over the length target.
"""
import json
import logging
from datetime import date
from typing import Dict, List, Optional, Tuple
from uuid import UUID

import anthropic
from anthropic import Anthropic
from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import ErrorCode, NotFoundError
from models import ActivitySession, AiFeedback, Goal, User
from services import plans
from services.content_encryption import decrypt_text, encrypt_text
from services.feedback_tones import FEEDBACK_TONES
from services.prompt_generator import generate_prompts
from services.session_analyzer import AnalyzedSessions, GoalSnapshot, SessionRecord, analyze_sessions
from services.time_utils import DEFAULT_TIMEZONE, previous_month, previous_week, today_in, utcnow

logger = logging.getLogger(__name__)

WEEKLY = "weekly"
MONTHLY = "monthly"
FEEDBACK_TYPES = (WEEKLY, MONTHLY)
PAST_FEEDBACK_CONTEXT = 3

# Hard caps on the overview length; over these a new attempt is made.
MAX_CHARS = {
    "ja": {WEEKLY: 500, MONTHLY: 800},
    "en": {WEEKLY: 800, MONTHLY: 1300},
}

FALLBACK_MESSAGES = {
    "ja": {
        "rate_limit": "{period}の頑張りを見ていました。フィードバック生成に時間がかかっています。少し時間をおいて再度お試しください。",
        "default": "無理しなくて大丈夫です。{current}も一緒に頑張りましょう。",
        "error": "{period}の頑張りを見ていました。今、フィードバックの準備に少し時間がかかっています。",
    },
    "en": {
        "rate_limit": "Feedback generation is taking some time. Please try again later.",
        "default": "Take your time, no pressure.",
        "error": "Feedback preparation is taking a bit of time right now.",
    },
}

_client: Optional[Anthropic] = None


def get_anthropic_client() -> Optional[Anthropic]:
    global _client
    if _client is None and settings.ANTHROPIC_API_KEY:
        _client = Anthropic(api_key=settings.ANTHROPIC_API_KEY)
    return _client


def _lang(language: Optional[str]) -> str:
    return "en" if language == "en" else "ja"


def fallback_message(kind: str, feedback_type: str, language: Optional[str]) -> str:
    template = FALLBACK_MESSAGES[_lang(language)][kind]
    weekly = feedback_type == WEEKLY
    return template.format(
        period="先週" if weekly else "先月",
        current="今週" if weekly else "今月",
    )


def model_for(feedback_type: str) -> str:
    return settings.AI_WEEKLY_MODEL if feedback_type == WEEKLY else settings.AI_MONTHLY_MODEL


def parse_reply(text: str) -> Dict[str, str]:
    """Parse the model reply (prefilled with '{') into {"overview": ...}."""
    content = "{" + text
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        return {"overview": content, "error": "format_error"}
    if not isinstance(parsed, dict) or not isinstance(parsed.get("overview"), str):
        return {"overview": content, "error": "format_error"}
    return parsed


def generate_feedback(
    data: AnalyzedSessions,
    language: Optional[str],
    attempt: int = 1,
    past_feedback_count: int = 0,
    tone=None,
) -> Tuple[Dict[str, str], Optional[str]]:
    """
    One Claude call. Returns (result, tone_id).

    Failures never raise: the result carries a localized fallback text and
    an `error` marker instead.
    """
    prompts = generate_prompts(data, language, attempt, past_feedback_count, tone)
    tone_id = prompts.tone.id if prompts.tone else None

    client = get_anthropic_client()
    if client is None:
        logger.error("ANTHROPIC_API_KEY not configured; returning fallback feedback")
        return {"overview": fallback_message("error", data.period_type, language), "error": "not_configured"}, tone_id

    try:
        response = client.messages.create(
            model=model_for(data.period_type),
            max_tokens=prompts.max_tokens,
            temperature=settings.AI_TEMPERATURE,
            system=prompts.system_prompt,
            messages=[
                {"role": "user", "content": prompts.user_prompt},
                {"role": "assistant", "content": "{"},
            ],
        )
    except anthropic.APIStatusError as e:
        if e.status_code == 429:
            logger.warning("Anthropic rate limit hit during feedback generation")
            return {"overview": fallback_message("rate_limit", data.period_type, language), "error": "rate_limit"}, tone_id
        logger.error(f"Anthropic API error during feedback generation: {e}")
        return {"overview": fallback_message("error", data.period_type, language), "error": "api_error"}, tone_id
    except anthropic.APIError as e:
        logger.error(f"Anthropic API error during feedback generation: {e}")
        return {"overview": fallback_message("error", data.period_type, language), "error": "api_error"}, tone_id

    text = response.content[0].text if response.content else ""
    if not text.strip():
        return {"overview": fallback_message("default", data.period_type, language), "error": "empty"}, tone_id

    return parse_reply(text), tone_id


def generate_with_retry(
    data: AnalyzedSessions,
    language: Optional[str],
    past_feedback_count: int = 0,
) -> Tuple[Dict[str, str], Optional[str]]:
    """Retry while the overview is longer than the hard cap; keep the last result."""
    limit = MAX_CHARS[_lang(language)][data.period_type]
    result: Dict[str, str] = {}
    tone = None
    tone_id = None

    for attempt in range(1, settings.AI_MAX_ATTEMPTS + 1):
        result, tone_id = generate_feedback(data, language, attempt, past_feedback_count, tone)
        # Keep the weekly lens stable across retries.
        if tone is None and tone_id is not None:
            tone = FEEDBACK_TONES[tone_id]
        if result.get("error") in ("rate_limit", "api_error", "not_configured"):
            break
        if len(result.get("overview", "")) <= limit:
            break
        logger.info(f"Feedback over {limit} chars on attempt {attempt}, retrying")

    return result, tone_id


# --- Periods / data loading ---

def period_for(feedback_type: str, today: date) -> Tuple[date, date]:
    """Most recent complete week (Mon..Sun) or calendar month."""
    if feedback_type == WEEKLY:
        return previous_week(today)
    return previous_month(today)


def load_period_sessions(db: Session, user: User, start: date, end: date) -> List[SessionRecord]:
    """Ended sessions of the period with decrypted reflections and goal snapshots."""
    sessions = (
        db.query(ActivitySession)
        .filter(
            ActivitySession.user_id == user.id,
            ActivitySession.end_time.isnot(None),
            ActivitySession.session_date >= start,
            ActivitySession.session_date <= end,
        )
        .order_by(ActivitySession.session_date.desc())
        .all()
    )

    goal_ids = {s.goal_id for s in sessions if s.goal_id}
    goals = {}
    if goal_ids:
        goals = {g.id: g for g in db.query(Goal).filter(Goal.id.in_(goal_ids)).all()}

    records = []
    for s in sessions:
        reflection = s.reflection
        goal = goals.get(s.goal_id)
        records.append(
            SessionRecord(
                duration=s.duration or 0,
                session_date=s.session_date,
                start_time=s.start_time,
                activity_name=s.activity.name if s.activity else None,
                mood=reflection.mood_score if reflection else None,
                mood_notes=decrypt_text(reflection.mood_notes) if reflection else None,
                additional_notes=decrypt_text(reflection.additional_notes) if reflection else None,
                notes=s.notes,
                location=s.location,
                goal=GoalSnapshot(
                    goal_id=str(goal.id),
                    title=goal.title,
                    description=goal.description,
                    deadline=goal.deadline,
                    target_duration=goal.target_duration,
                    current_value=goal.current_value,
                    status=goal.status,
                ) if goal else None,
            )
        )
    return records


def _find_feedback(db: Session, user_id: UUID, feedback_type: str, start: date, end: date) -> Optional[AiFeedback]:
    return (
        db.query(AiFeedback)
        .filter(
            AiFeedback.user_id == user_id,
            AiFeedback.feedback_type == feedback_type,
            AiFeedback.period_start == start,
            AiFeedback.period_end == end,
        )
        .order_by(AiFeedback.created_at.desc())
        .first()
    )


def overview_of(feedback: AiFeedback) -> Optional[str]:
    raw = decrypt_text(feedback.content)
    if raw is None:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(parsed, dict):
        return parsed.get("overview")
    return raw


def to_out(feedback: AiFeedback) -> dict:
    return {
        "id": feedback.id,
        "feedback_type": feedback.feedback_type,
        "content": overview_of(feedback),
        "period_start": feedback.period_start,
        "period_end": feedback.period_end,
        "is_read": feedback.is_read,
        "read_at": feedback.read_at,
        "created_at": feedback.created_at,
    }


# --- User-facing reads ---

def get_current_feedback(
    db: Session,
    user: User,
    feedback_type: str,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> dict:
    if period_start is None or period_end is None:
        period_start, period_end = period_for(feedback_type, today_in(user.timezone))

    feedback = _find_feedback(db, user.id, feedback_type, period_start, period_end)
    if feedback is None:
        return {"feedback": None}

    return {
        "feedback": overview_of(feedback),
        "period_type": feedback.feedback_type,
        "period_start": feedback.period_start,
        "period_end": feedback.period_end,
        "created_at": feedback.created_at,
        "is_existing": True,
    }


def list_feedback(db: Session, user: User, limit: int = 50) -> List[AiFeedback]:
    return (
        db.query(AiFeedback)
        .filter(AiFeedback.user_id == user.id)
        .order_by(AiFeedback.created_at.desc())
        .limit(limit)
        .all()
    )


def unread_count(db: Session, user: User) -> int:
    return (
        db.query(func.count(AiFeedback.id))
        .filter(AiFeedback.user_id == user.id, AiFeedback.is_read.is_(False))
        .scalar()
        or 0
    )


def mark_read(db: Session, user: User, feedback_id: UUID) -> AiFeedback:
    feedback = (
        db.query(AiFeedback)
        .filter(AiFeedback.id == feedback_id, AiFeedback.user_id == user.id)
        .first()
    )
    if feedback is None:
        raise NotFoundError("Feedback", error_code=ErrorCode.AI_FEEDBACK_FETCH_FAILED)

    if not feedback.is_read:
        feedback.is_read = True
        feedback.read_at = utcnow()
        db.commit()
        db.refresh(feedback)
    return feedback


def mark_all_read(db: Session, user: User) -> int:
    now = utcnow()
    count = (
        db.query(AiFeedback)
        .filter(AiFeedback.user_id == user.id, AiFeedback.is_read.is_(False))
        .update({AiFeedback.is_read: True, AiFeedback.read_at: now}, synchronize_session=False)
    )
    db.commit()
    return count


# --- Batch generation ---

def generate_for_user(
    db: Session,
    user: User,
    feedback_type: str,
    period_start: date,
    period_end: date,
) -> str:
    """
    Generate and store feedback for one user and period.

    Returns "success" or "skipped".
    """
    records = load_period_sessions(db, user, period_start, period_end)
    if not records:
        return "skipped"

    if _find_feedback(db, user.id, feedback_type, period_start, period_end) is not None:
        return "skipped"

    past_count = (
        db.query(AiFeedback)
        .filter(AiFeedback.user_id == user.id, AiFeedback.feedback_type == feedback_type)
        .order_by(AiFeedback.created_at.desc())
        .limit(PAST_FEEDBACK_CONTEXT)
        .count()
    )

    data = analyze_sessions(records, feedback_type, period_start, period_end, user.timezone)
    result, tone_id = generate_with_retry(data, user.language, past_count)

    db.add(
        AiFeedback(
            user_id=user.id,
            feedback_type=feedback_type,
            content=encrypt_text(json.dumps(result, ensure_ascii=False)),
            period_start=period_start,
            period_end=period_end,
            tone=tone_id,
            model=model_for(feedback_type),
        )
    )
    db.commit()
    return "success"


def generate_for_all_users(db: Session, feedback_type: str, today: Optional[date] = None) -> Dict:
    """
    Generate feedback for every user entitled to it.

    Users without the AI feature, without sessions in the period, or who
    already have feedback for it are skipped. One user's failure never
    stops the batch. Under Celery, the soft time limit ends the loop
    early and the partial summary comes back with `timed_out` set.
    """
    if feedback_type not in FEEDBACK_TYPES:
        raise ValueError(f"Unknown feedback type: {feedback_type}")

    today = today or today_in(DEFAULT_TIMEZONE)
    period_start, period_end = period_for(feedback_type, today)

    users = db.query(User).all()
    results = {"total": len(users), "success": 0, "skipped": 0, "failed": 0, "errors": [], "timed_out": False}

    for user in users:
        if not plans.has_feature(user.subscription_status, "ai_feedback"):
            results["skipped"] += 1
            continue
        try:
            outcome = generate_for_user(db, user, feedback_type, period_start, period_end)
            results[outcome] += 1
        except SoftTimeLimitExceeded:
            db.rollback()
            logger.warning(f"{feedback_type} feedback batch hit the time limit at user {user.id}")
            results["timed_out"] = True
            break
        except Exception as e:
            db.rollback()
            logger.error(f"Feedback generation failed for user {user.id}: {e}", exc_info=True)
            results["failed"] += 1
            results["errors"].append(f"User {user.id}: {e}")

    logger.info(
        f"{feedback_type} feedback batch for {period_start}..{period_end}: "
        f"{results['success']} generated, {results['skipped']} skipped, {results['failed']} failed"
    )
    return results
