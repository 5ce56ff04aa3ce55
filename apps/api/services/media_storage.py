"""
Session photo storage on the local uploads volume.

Files live at {UPLOADS_DIR}/{user_id}/session-media/{session_id}_{ts}.{ext};
the database row stores the path relative to UPLOADS_DIR.
"""
import logging
import os
import shutil
import time
from pathlib import Path
from typing import List
from uuid import UUID

from fastapi import UploadFile, status
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import APIException, ErrorCode, NotFoundError
from models import SessionMedia, User
from services.session_timer import get_session
from services.text_limits import clean_text

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}
CHUNK_SIZE = 1024 * 1024


def _safe_filename(name: str) -> str:
    base = os.path.basename(name or "")
    if not base:
        return "photo"
    return "".join(ch if ch.isalnum() or ch in (".", "_", "-") else "_" for ch in base)[:180]


def uploads_root() -> Path:
    return Path(settings.UPLOADS_DIR)


def absolute_path(media: SessionMedia) -> Path:
    return uploads_root() / media.file_path


def list_media(db: Session, user: User, session_id: UUID) -> List[SessionMedia]:
    get_session(db, user, session_id)
    return (
        db.query(SessionMedia)
        .filter(SessionMedia.session_id == session_id, SessionMedia.user_id == user.id)
        .order_by(SessionMedia.created_at.asc())
        .all()
    )


def get_media(db: Session, user: User, session_id: UUID, media_id: UUID) -> SessionMedia:
    media = (
        db.query(SessionMedia)
        .filter(
            SessionMedia.id == media_id,
            SessionMedia.session_id == session_id,
            SessionMedia.user_id == user.id,
        )
        .first()
    )
    if media is None:
        raise NotFoundError("Media")
    return media


async def save_upload(
    db: Session,
    user: User,
    session_id: UUID,
    file: UploadFile,
    caption: str = None,
    is_main_image: bool = False,
) -> SessionMedia:
    session = get_session(db, user, session_id)

    mime_type = (file.content_type or "").lower()
    if mime_type not in ALLOWED_MIME_TYPES:
        raise APIException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only JPEG, PNG and WebP images are allowed",
            error_code=ErrorCode.MEDIA_INVALID_TYPE,
        )

    relative = Path(str(user.id)) / "session-media" / f"{session.id}_{int(time.time() * 1000)}.{ALLOWED_MIME_TYPES[mime_type]}"
    target = uploads_root() / relative
    target.parent.mkdir(parents=True, exist_ok=True)

    total = 0
    try:
        with target.open("wb") as out:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > settings.MEDIA_MAX_BYTES:
                    raise APIException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail="Image exceeds the 10MB limit",
                        error_code=ErrorCode.MEDIA_TOO_LARGE,
                    )
                out.write(chunk)

        if is_main_image:
            db.query(SessionMedia).filter(SessionMedia.session_id == session.id).update({"is_main_image": False})

        media = SessionMedia(
            session_id=session.id,
            user_id=user.id,
            media_type="image",
            file_path=relative.as_posix(),
            file_name=_safe_filename(file.filename),
            file_size=total,
            mime_type=mime_type,
            caption=clean_text(caption, "session_notes", user.language),
            is_main_image=is_main_image,
        )
        db.add(media)
        db.flush()
        media.public_url = f"/v1/sessions/{session.id}/media/{media.id}/file"
        db.commit()
    except Exception:
        # No file without a row.
        target.unlink(missing_ok=True)
        raise
    finally:
        await file.close()

    db.refresh(media)
    logger.info(
        "Session media stored",
        extra={"extra_fields": {"session_id": str(session.id), "media_id": str(media.id), "bytes": total}},
    )
    return media


def delete_media(db: Session, user: User, session_id: UUID, media_id: UUID) -> None:
    media = get_media(db, user, session_id, media_id)
    path = absolute_path(media)
    db.delete(media)
    db.commit()
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove media file {path}: {e}")


def delete_user_files(user_id: UUID) -> None:
    """Remove every uploaded file of a deleted account."""
    user_dir = uploads_root() / str(user_id)
    if not user_dir.exists():
        return
    try:
        shutil.rmtree(user_dir)
    except OSError as e:
        logger.warning(f"Could not remove uploads for user {user_id}: {e}")
