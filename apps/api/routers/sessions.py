"""
Sessions API endpoints.

Timer:
    POST /v1/sessions/start, /{id}/pause, /{id}/resume, /{id}/end
    GET  /v1/sessions/active

Plus manual CRUD, the post-session reflection (with an AI suggested
opening line) and photo attachments.
"""
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from core.auth import get_current_user, require_feature
from core.database import get_db
from core.exceptions import NotFoundError
from models import User
from schemas import (
    MediaResponse,
    PlaceholderRequest,
    PlaceholderResponse,
    ReflectionResponse,
    ReflectionUpsert,
    SessionCreate,
    SessionEnd,
    SessionResponse,
    SessionStart,
    SessionUpdate,
)
from services import media_storage, reflection_placeholder, reflections, session_timer

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])


# --- Timer ---

@router.post("/start", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def start_session(
    payload: SessionStart,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return session_timer.to_out(session_timer.start_session(db, current_user, payload))


@router.get("/active", response_model=Optional[SessionResponse])
def get_active_session(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The open (active or paused) session with live elapsed time, or null."""
    session = session_timer.get_open_session(db, current_user)
    return session_timer.to_out(session) if session else None


@router.post("/{session_id}/pause", response_model=SessionResponse)
def pause_session(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return session_timer.to_out(session_timer.pause_session(db, current_user, session_id))


@router.post("/{session_id}/resume", response_model=SessionResponse)
def resume_session(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return session_timer.to_out(session_timer.resume_session(db, current_user, session_id))


@router.post("/{session_id}/end", response_model=SessionResponse)
def end_session(
    session_id: UUID,
    payload: Optional[SessionEnd] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return session_timer.to_out(session_timer.end_session(db, current_user, session_id, payload))


# --- CRUD ---

@router.get("", response_model=List[SessionResponse])
def list_sessions(
    start: Optional[date] = Query(None, description="First local day (inclusive)"),
    end: Optional[date] = Query(None, description="Last local day (inclusive)"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [session_timer.to_out(s) for s in session_timer.list_sessions(db, current_user, start, end)]


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: SessionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return session_timer.to_out(session_timer.create_session(db, current_user, payload))


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return session_timer.to_out(session_timer.get_session(db, current_user, session_id))


@router.patch("/{session_id}", response_model=SessionResponse)
def update_session(
    session_id: UUID,
    payload: SessionUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return session_timer.to_out(session_timer.update_session(db, current_user, session_id, payload))


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session_timer.delete_session(db, current_user, session_id)


# --- Reflection ---

@router.post("/placeholder", response_model=PlaceholderResponse)
def suggest_reflection_placeholder(
    payload: PlaceholderRequest,
    current_user: User = Depends(require_feature("ai_feedback")),
    db: Session = Depends(get_db),
):
    """Suggested opening line for the reflection field, drafted at start and finished at end."""
    placeholder = reflection_placeholder.generate_placeholder(
        db,
        current_user,
        payload.activity_id,
        goal_id=payload.goal_id,
        current_mood=payload.current_mood,
        current_duration=payload.current_duration,
        is_pre_generation=payload.is_pre_generation,
        language=payload.language,
    )
    return {"placeholder": placeholder}


@router.get("/{session_id}/reflection", response_model=ReflectionResponse)
def get_reflection(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    reflection = reflections.get_reflection(db, current_user, session_id)
    if reflection is None:
        raise NotFoundError("Reflection")
    return reflections.to_out(reflection)


@router.put("/{session_id}/reflection", response_model=ReflectionResponse)
def upsert_reflection(
    session_id: UUID,
    payload: ReflectionUpsert,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    reflection, created = reflections.upsert_reflection(db, current_user, session_id, payload)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return reflections.to_out(reflection)


# --- Media ---

@router.get("/{session_id}/media", response_model=List[MediaResponse])
def list_media(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return media_storage.list_media(db, current_user, session_id)


@router.post("/{session_id}/media", response_model=MediaResponse, status_code=status.HTTP_201_CREATED)
async def upload_media(
    session_id: UUID,
    file: UploadFile = File(...),
    caption: Optional[str] = Form(None),
    is_main_image: bool = Form(False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await media_storage.save_upload(db, current_user, session_id, file, caption, is_main_image)


@router.get("/{session_id}/media/{media_id}/file")
def get_media_file(
    session_id: UUID,
    media_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    media = media_storage.get_media(db, current_user, session_id, media_id)
    path = media_storage.absolute_path(media)
    if not path.is_file():
        raise NotFoundError("Media file")
    return FileResponse(path, media_type=media.mime_type, filename=media.file_name)


@router.delete("/{session_id}/media/{media_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_media(
    session_id: UUID,
    media_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    media_storage.delete_media(db, current_user, session_id, media_id)
