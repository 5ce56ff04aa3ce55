"""
Session Analyzer

Turns the raw sessions of one feedback period into the structured
summary that tone selection and prompt generation work from.

Sources:
    - Session durations and start times (UTC, bucketed in the user's timezone)
    - Reflections (mood score, decrypted notes)
    - Linked goals (target and current progress)
"""
from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from services.time_utils import get_zone

REFLECTION_EXCERPT_LIMIT = 500
UNKNOWN_ACTIVITY = "Unknown activity"

TIME_OF_DAY_BUCKETS = (
    ("early_morning", 5, 8),
    ("morning", 8, 12),
    ("afternoon", 12, 17),
    ("evening", 17, 20),
    ("night", 20, 24),
    ("late_night", 0, 5),
)
DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


@dataclass
class GoalSnapshot:
    goal_id: str
    title: str
    description: Optional[str] = None
    deadline: Optional[date] = None
    target_duration: int = 0
    current_value: int = 0
    status: str = "active"


@dataclass
class SessionRecord:
    """One ended session, with its reflection already decrypted."""
    duration: int
    session_date: date
    start_time: Optional[datetime] = None
    activity_name: Optional[str] = None
    mood: Optional[int] = None
    mood_notes: Optional[str] = None
    additional_notes: Optional[str] = None
    notes: Optional[str] = None
    location: Optional[str] = None
    goal: Optional[GoalSnapshot] = None


@dataclass
class GoalProgress:
    goal_id: str
    title: str
    description: str
    deadline: Optional[date]
    target_duration: int
    current_value: int
    status: str
    activities: Dict[str, int] = field(default_factory=dict)
    total_session_time: int = 0
    session_count: int = 0
    progress_percentage: int = 0


@dataclass
class AnalyzedSessions:
    period_type: str
    period_start: date
    period_end: date
    total_duration: int
    total_hours: float
    sessions_count: int
    average_duration: float
    average_mood: float
    mood_trend: str
    activities: Dict[str, Dict[str, float]]
    top_activities: List[Dict[str, float]]
    reflections: str
    notes: str
    reflection_quality: str
    goal_progress: Dict[str, GoalProgress]
    time_of_day: Dict[str, int]
    day_of_week: Dict[str, int]
    locations: Dict[str, int]
    consistency: float

    @property
    def has_reflections(self) -> bool:
        return self.reflection_quality != "none"

    @property
    def goal_achievement_rate(self) -> float:
        if not self.goal_progress:
            return 0.0
        return statistics.mean(g.progress_percentage for g in self.goal_progress.values()) / 100


def truncate_excerpt(text: Optional[str], max_length: int = REFLECTION_EXCERPT_LIMIT) -> str:
    """Clip long text at a natural break (sentence end, comma, space) past 70% of the limit."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text

    breaks = [text.rfind(mark, 0, max_length + 1) for mark in ("。", ".", "、", " ")]
    breaks = [b for b in breaks if b > max_length * 0.7]
    cut = max(breaks) if breaks else max_length
    return text[:cut] + "..."


def mood_trend(sessions: List[SessionRecord]) -> str:
    moods = [s for s in sessions if s.mood is not None]
    if len(moods) < 2:
        return "unknown"

    moods.sort(key=lambda s: s.session_date)
    half = len(moods) // 2
    first = statistics.mean(s.mood for s in moods[:half])
    second = statistics.mean(s.mood for s in moods[half:])
    diff = second - first

    if diff > 0.3:
        return "improving"
    if diff < -0.3:
        return "declining"
    return "stable"


def reflection_quality(sessions: List[SessionRecord]) -> str:
    reflected = [s for s in sessions if s.mood_notes or s.additional_notes]
    if not reflected:
        return "none"

    avg_length = statistics.mean(len(s.mood_notes or "") + len(s.additional_notes or "") for s in reflected)
    rate = len(reflected) / len(sessions)

    if avg_length > 100 and rate > 0.7:
        return "detailed"
    if avg_length > 50 and rate > 0.4:
        return "moderate"
    return "minimal"


def consistency_score(sessions: List[SessionRecord]) -> float:
    """
    1.0 for perfectly regular spacing between sessions, falling to 0 as the
    standard deviation of the gaps approaches a week.
    """
    if len(sessions) < 2:
        return 0.0

    days = sorted(s.session_date for s in sessions)
    intervals = [(b - a).days for a, b in zip(days, days[1:])]
    score = max(0.0, 1 - statistics.pstdev(intervals) / 7)
    return round(score, 2)


def _goal_progress(sessions: List[SessionRecord]) -> Dict[str, GoalProgress]:
    goals: Dict[str, GoalProgress] = {}
    for s in sessions:
        if s.goal is None:
            continue
        g = goals.get(s.goal.goal_id)
        if g is None:
            g = goals[s.goal.goal_id] = GoalProgress(
                goal_id=s.goal.goal_id,
                title=s.goal.title or "",
                description=s.goal.description or "",
                deadline=s.goal.deadline,
                target_duration=s.goal.target_duration or 0,
                current_value=s.goal.current_value or 0,
                status=s.goal.status or "active",
            )
        name = s.activity_name or UNKNOWN_ACTIVITY
        g.activities[name] = g.activities.get(name, 0) + (s.duration or 0)
        g.total_session_time += s.duration or 0
        g.session_count += 1

    for g in goals.values():
        if g.target_duration > 0:
            g.progress_percentage = round((g.current_value + g.total_session_time) / g.target_duration * 100)
    return goals


def _time_bucket(hour: int) -> str:
    for name, lo, hi in TIME_OF_DAY_BUCKETS:
        if lo <= hour < hi:
            return name
    return "late_night"


def analyze_sessions(
    sessions: List[SessionRecord],
    period_type: str,
    period_start: date,
    period_end: date,
    tz_name: Optional[str] = None,
) -> AnalyzedSessions:
    zone = get_zone(tz_name)

    total_duration = sum(s.duration or 0 for s in sessions)
    count = len(sessions)

    moods = [s.mood for s in sessions if s.mood is not None]
    average_mood = statistics.mean(moods) if moods else 0.0

    per_activity: Dict[str, Dict[str, float]] = {}
    for s in sessions:
        entry = per_activity.setdefault(s.activity_name or UNKNOWN_ACTIVITY, {"duration": 0, "count": 0})
        entry["duration"] += s.duration or 0
        entry["count"] += 1
    for entry in per_activity.values():
        entry["percentage"] = entry["duration"] / total_duration * 100 if total_duration else 0.0

    top_activities = [
        {"name": name, "duration": data["duration"], "percentage": data["percentage"]}
        for name, data in sorted(per_activity.items(), key=lambda kv: kv[1]["duration"], reverse=True)[:5]
    ]

    reflections = "\n".join(
        truncate_excerpt(" ".join(filter(None, (s.mood_notes, s.additional_notes))))
        for s in sessions
        if s.mood_notes or s.additional_notes
    )
    notes = "\n".join(truncate_excerpt(s.notes) for s in sessions if s.notes)

    time_of_day = {name: 0 for name, _, _ in TIME_OF_DAY_BUCKETS}
    day_of_week = {name: 0 for name in DAY_NAMES}
    locations: Dict[str, int] = {}
    for s in sessions:
        if s.start_time is not None:
            time_of_day[_time_bucket(s.start_time.astimezone(zone).hour)] += s.duration or 0
        day_of_week[DAY_NAMES[s.session_date.weekday()]] += s.duration or 0
        if s.location:
            locations[s.location] = locations.get(s.location, 0) + (s.duration or 0)

    return AnalyzedSessions(
        period_type=period_type,
        period_start=period_start,
        period_end=period_end,
        total_duration=total_duration,
        total_hours=round(total_duration / 3600, 1),
        sessions_count=count,
        average_duration=total_duration / count if count else 0.0,
        average_mood=average_mood,
        mood_trend=mood_trend(sessions),
        activities=per_activity,
        top_activities=top_activities,
        reflections=reflections,
        notes=notes,
        reflection_quality=reflection_quality(sessions),
        goal_progress=_goal_progress(sessions),
        time_of_day=time_of_day,
        day_of_week=day_of_week,
        locations=locations,
        consistency=consistency_score(sessions),
    )
