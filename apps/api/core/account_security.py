"""
Login lockout tracking.

Locks an email for LOCKOUT_DURATION_MINUTES after MAX_FAILED_ATTEMPTS
failures inside ATTEMPT_WINDOW_MINUTES. Process-local; each API replica
keeps its own counters.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from collections import defaultdict
import threading

# {email: [(timestamp, success), ...]}
_login_attempts: dict = defaultdict(list)
_lock = threading.Lock()

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION_MINUTES = 15
ATTEMPT_WINDOW_MINUTES = 30


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clean_old_attempts(email: str) -> None:
    cutoff = _now() - timedelta(minutes=ATTEMPT_WINDOW_MINUTES)
    with _lock:
        _login_attempts[email] = [
            (ts, success) for ts, success in _login_attempts[email]
            if ts > cutoff
        ]


def record_login_attempt(email: str, success: bool) -> None:
    """Record a login attempt; a success clears earlier failures."""
    email = email.lower()
    _clean_old_attempts(email)
    with _lock:
        if success:
            _login_attempts[email] = [(_now(), True)]
        else:
            _login_attempts[email].append((_now(), False))


def is_account_locked(email: str) -> Tuple[bool, Optional[int]]:
    """
    Check if an email is locked out.

    Returns:
        (is_locked, seconds_until_unlock or None)
    """
    email = email.lower()
    _clean_old_attempts(email)

    with _lock:
        failed_attempts = [ts for ts, success in _login_attempts.get(email, []) if not success]

        if len(failed_attempts) < MAX_FAILED_ATTEMPTS:
            return False, None

        lockout_end = max(failed_attempts) + timedelta(minutes=LOCKOUT_DURATION_MINUTES)
        now = _now()
        if now < lockout_end:
            return True, int((lockout_end - now).total_seconds())

        return False, None
