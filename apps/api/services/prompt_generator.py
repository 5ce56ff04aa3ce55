"""
Prompt generation for AI feedback.

Builds the system prompt (role, lens, length and style rules) and the user
prompt (the analysed period) for one generation attempt.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from services.feedback_tones import FEEDBACK_TONES, FeedbackTone, select_tone
from services.session_analyzer import AnalyzedSessions
from services.text_limits import get_aggregated_limits

# (first attempt, retry) character targets per language and period.
CHAR_LIMITS: Dict[str, Dict[str, tuple]] = {
    "ja": {"weekly": (200, 180), "monthly": (550, 520)},
    "en": {"weekly": (400, 350), "monthly": (1100, 1000)},
}

MAX_TOKENS: Dict[str, Dict[str, int]] = {
    "ja": {"weekly": 400, "monthly": 750},
    "en": {"weekly": 600, "monthly": 1500},
}

MOOD_TREND_LABELS = {
    "improving": "improving",
    "declining": "declining",
    "stable": "stable",
    "unknown": "unknown",
}


@dataclass
class GeneratedPrompts:
    system_prompt: str
    user_prompt: str
    max_tokens: int
    char_limit: int
    tone: Optional[FeedbackTone] = None


def _lang(language: Optional[str]) -> str:
    return "en" if language == "en" else "ja"


def char_limit(language: Optional[str], period_type: str, attempt: int = 1) -> int:
    first, retry = CHAR_LIMITS[_lang(language)][period_type]
    return retry if attempt > 1 else first


def max_tokens(language: Optional[str], period_type: str) -> int:
    return MAX_TOKENS[_lang(language)][period_type]


def determine_primary_theme(data: AnalyzedSessions) -> str:
    if data.total_hours > 10:
        return "growth"
    if data.sessions_count > 5:
        return "continuity"
    if data.mood_trend == "improving":
        return "resilience"
    if data.consistency > 0.7:
        return "habit"
    return "effort"


def _lens_prompt(data: AnalyzedSessions, tone: Optional[FeedbackTone]) -> str:
    if data.period_type == "weekly" and tone is not None:
        return (
            f"This week's lens: {tone.name}.\n\n"
            f"{tone.weekly_prompt}\n\n"
            "With this lens in the background, tell the user the single insight that will resonate most."
        )

    sections = "\n\n".join(
        f"{i}. {t.name}\n{t.monthly_prompt}" for i, t in enumerate(FEEDBACK_TONES.values(), start=1)
    )
    return (
        "Integrate these six lenses to support the user's growth from several angles:\n\n"
        f"{sections}\n\n"
        "Combine them naturally; do not lecture."
    )


def build_system_prompt(
    data: AnalyzedSessions,
    language: Optional[str],
    attempt: int,
    past_feedback_count: int,
    tone: Optional[FeedbackTone],
) -> str:
    period = "last week" if data.period_type == "weekly" else "last month"
    limit = char_limit(language, data.period_type, attempt)
    reply_language = "English" if _lang(language) == "en" else "Japanese"

    first_time = ""
    if past_feedback_count == 0:
        first_time = (
            f"\n\nThis is the user's first {data.period_type} feedback. Do not compare with the past; "
            f"focus on acknowledging {period}'s effort."
        )

    return f"""You are the feedback voice of Shonin, a personal growth journal.

Your role is to watch the user's effort quietly, understand it deeply, and put it into warm words.
You are versed in psychology, philosophy, behavioral economics, human behavior, ethology and neuroscience,
and use them to see the meaning behind actions and feelings, without ever sounding academic.

{_lens_prompt(data, tone)}

---

Requirements for this {data.period_type} feedback:
- Length: at most about {limit} characters. Always finish with a complete sentence.
- Structure:
  1. One or two sentences giving an overview of {period}.
  2. Pick the single most striking action, change or feeling and look into it.
  3. Warmly acknowledge that growth.
  4. Close with one calm, forward-looking sentence.
- Tone: gentle and settled, empathetic, short rhythmic sentences, clear statements.
- Never: jargon, bullet points, analytic explanations, comparisons or grading, commands
  ("you should", "keep it up"), hedging ("maybe", "I think"), topic hopping, vulgar or violent language.
- Primary theme: {determine_primary_theme(data)}.

Output format: a JSON object {{"overview": "<feedback text>"}} and nothing else.
Write the feedback in {reply_language}.{first_time}"""


def _hours(seconds: float) -> float:
    return round(seconds / 3600, 1)


def build_user_prompt(data: AnalyzedSessions, language: Optional[str]) -> str:
    activities = "\n".join(
        f"- {a['name']}: {_hours(a['duration'])}h ({round(a['percentage'])}%)" for a in data.top_activities
    ) or "- none"

    if data.goal_progress:
        goals = "\n\n".join(
            f"- {g.title}: {_hours(g.total_session_time)}h ({g.session_count} sessions)"
            + (f" (deadline: {g.deadline.isoformat()})" if g.deadline else "")
            + f"\n  progress: {g.progress_percentage}% (target: {_hours(g.target_duration)}h)"
            + "\n  breakdown: " + ", ".join(f"{name} {_hours(t)}h" for name, t in g.activities.items())
            for g in data.goal_progress.values()
        )
    else:
        goals = "No sessions linked to a goal"

    top_times = ", ".join(
        f"{name}: {_hours(d)}h" for name, d in sorted(data.time_of_day.items(), key=lambda kv: kv[1], reverse=True)[:3]
    )
    top_days = ", ".join(
        f"{name}: {_hours(d)}h" for name, d in sorted(data.day_of_week.items(), key=lambda kv: kv[1], reverse=True)[:3]
    )

    reflection_cap = get_aggregated_limits(language)[data.period_type]
    reflections = (data.reflections or "not recorded")[:reflection_cap]
    notes = (data.notes or "not recorded")[:reflection_cap]

    lines = [
        f"Period: {data.period_start.isoformat()} to {data.period_end.isoformat()}",
        f"Total time: {data.total_hours}h",
        f"Sessions: {data.sessions_count}",
        f"Average mood: {data.average_mood:.1f}" if data.average_mood else "Average mood: not recorded",
        f"Mood trend: {MOOD_TREND_LABELS[data.mood_trend]}",
        f"Reflection quality: {data.reflection_quality}",
        "",
        "Time per activity (top 5):",
        activities,
        "",
        "Reflections:",
        "<reflections>",
        reflections,
        "</reflections>",
        "",
        "Session notes:",
        "<notes>",
        notes,
        "</notes>",
        "",
        "Goals:",
        goals,
        "",
        "Behaviour patterns:",
        f"Most active times: {top_times}",
        f"Most active days: {top_days}",
        f"Consistency: {round(data.consistency * 100)}%",
    ]
    if data.locations:
        lines.append("Places: " + ", ".join(data.locations))
    return "\n".join(lines)


def generate_prompts(
    data: AnalyzedSessions,
    language: Optional[str],
    attempt: int = 1,
    past_feedback_count: int = 0,
    tone: Optional[FeedbackTone] = None,
) -> GeneratedPrompts:
    """
    Prompts for one attempt. Weekly feedback picks a tone once and keeps
    it across retries (pass it back in via `tone`).
    """
    if data.period_type == "weekly" and tone is None:
        tone = select_tone(data)

    return GeneratedPrompts(
        system_prompt=build_system_prompt(data, language, attempt, past_feedback_count, tone),
        user_prompt=build_user_prompt(data, language),
        max_tokens=max_tokens(language, data.period_type),
        char_limit=char_limit(language, data.period_type, attempt),
        tone=tone if data.period_type == "weekly" else None,
    )
