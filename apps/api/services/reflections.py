"""
Post-session reflections.

Free-text fields are trimmed to the user's language limits, HTML-escaped,
then encrypted before they reach the database.
"""
import logging
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from models import SessionReflection, User
from services.content_encryption import decrypt_text, encrypt_text
from services.session_timer import get_session
from services.text_limits import clean_text

logger = logging.getLogger(__name__)


def to_out(reflection: SessionReflection) -> dict:
    return {
        "id": reflection.id,
        "session_id": reflection.session_id,
        "mood_score": reflection.mood_score,
        "mood_notes": decrypt_text(reflection.mood_notes),
        "additional_notes": decrypt_text(reflection.additional_notes),
        "reflection_duration": reflection.reflection_duration,
        "created_at": reflection.created_at,
        "updated_at": reflection.updated_at,
    }


def get_reflection(db: Session, user: User, session_id: UUID) -> Optional[SessionReflection]:
    session = get_session(db, user, session_id)
    return session.reflection


def upsert_reflection(db: Session, user: User, session_id: UUID, payload) -> Tuple[SessionReflection, bool]:
    """
    Create or replace the reflection for a session.

    Returns (reflection, created).
    """
    session = get_session(db, user, session_id)
    mood_notes = encrypt_text(clean_text(payload.mood_notes, "mood_notes", user.language))
    additional_notes = encrypt_text(clean_text(payload.additional_notes, "additional_notes", user.language))

    reflection = session.reflection
    created = reflection is None
    if created:
        reflection = SessionReflection(session_id=session.id, user_id=user.id)
        db.add(reflection)

    reflection.mood_score = payload.mood_score
    reflection.mood_notes = mood_notes
    reflection.additional_notes = additional_notes
    reflection.reflection_duration = payload.reflection_duration

    db.commit()
    db.refresh(reflection)
    return reflection, created
