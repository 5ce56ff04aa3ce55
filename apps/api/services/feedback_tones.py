"""
Feedback tones.

Each tone frames the feedback through one academic lens. Weekly feedback
uses the single best-fitting tone; monthly feedback blends all six.
"""
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from services.session_analyzer import AnalyzedSessions


@dataclass(frozen=True)
class FeedbackTone:
    id: str
    name: str
    description: str
    weekly_prompt: str
    monthly_prompt: str
    keywords: Tuple[str, ...]


FEEDBACK_TONES: Dict[str, FeedbackTone] = {
    "psychology": FeedbackTone(
        id="psychology",
        name="Psychology",
        description="Understands and supports the natural waves of emotion and motivation.",
        weekly_prompt=(
            "Psychological lens:\n"
            "- Infer the user's state from logging frequency, completion and time of day.\n"
            "- Keep self-efficacy and intrinsic motivation in mind.\n"
            "- Example: \"Activity dipped today. That is a natural wave; decide on the next small step.\"\n"
            "- Focus: emotional change, motivation cycles, accumulating small wins."
        ),
        monthly_prompt=(
            "Psychological lens:\n"
            "- Describe the month's emotional ups and downs and how motivation shifted.\n"
            "- Show growth in self-efficacy with concrete data.\n"
            "- Balance intrinsic (want to) against extrinsic (have to) motivation.\n"
            "- Focus: inner growth, changes in confidence, motivation patterns."
        ),
        keywords=("feeling", "heart", "motivation", "confidence", "emotion", "wave", "natural"),
    ),
    "behavioral_economics": FeedbackTone(
        id="behavioral_economics",
        name="Behavioral economics",
        description="Suggests small mechanisms that make the behaviour easier.",
        weekly_prompt=(
            "Behavioral economics lens:\n"
            "- Nudges: propose one concrete, easy next step.\n"
            "- Example: \"Split the goal in half and aim only for today's part.\"\n"
            "- Mind choice framing and reward timing; help get past status-quo bias.\n"
            "- Focus: next step, small change, concrete action."
        ),
        monthly_prompt=(
            "Behavioral economics lens:\n"
            "- From the actual behaviour, find what makes it easier to continue.\n"
            "- Habit loop: trigger, action, reward.\n"
            "- Example: \"Days that start with a morning session keep going. Use that slot.\"\n"
            "- Frame gains rather than losses.\n"
            "- Focus: behaviour patterns, tips for continuity, environment design."
        ),
        keywords=("small step", "easy to continue", "habit", "timing", "mechanism"),
    ),
    "ethology": FeedbackTone(
        id="ethology",
        name="Ethology",
        description="Speaks to instinctive drives.",
        weekly_prompt=(
            "Ethological lens:\n"
            "- Draw on competition, recognition and belonging without overdoing it.\n"
            "- Example: \"Your steadiness influences those around you, like a leader of the pack.\"\n"
            "- Focus: achievement, recognition, belonging, self-preservation."
        ),
        monthly_prompt=(
            "Ethological lens:\n"
            "- Analyse the month through basic drives for growth, recognition and belonging.\n"
            "- Example: \"This month's record shows an instinctive hunger for growth.\"\n"
            "- Focus: instinctive motivation, fundamental needs, growth as a living being."
        ),
        keywords=("instinct", "drive", "protect", "companions", "pack"),
    ),
    "human_behavior": FeedbackTone(
        id="human_behavior",
        name="Human behavior",
        description="Objectively surfaces behaviour patterns.",
        weekly_prompt=(
            "Human behavior lens:\n"
            "- Relate time of day, weekday and place to what the user actually did.\n"
            "- Example: \"Evenings rarely stick. Try five minutes in the morning instead.\"\n"
            "- Notice chains where one action triggers the next.\n"
            "- Focus: when, where, what and how the user acts."
        ),
        monthly_prompt=(
            "Human behavior lens:\n"
            "- Discover the user's own rhythm in the month's log.\n"
            "- Example: \"Wednesdays are for focus, Fridays for rest. That rhythm is your style.\"\n"
            "- Focus: rhythm, interaction with the environment, personal traits."
        ),
        keywords=("pattern", "rhythm", "time of day", "place", "environment", "habit"),
    ),
    "neuroscience": FeedbackTone(
        id="neuroscience",
        name="Neuroscience",
        description="Gives behaviour meaning through how the brain works.",
        weekly_prompt=(
            "Neuroscience lens:\n"
            "- Habit circuits (basal ganglia) and dopamine-driven reward.\n"
            "- Example: \"Yesterday's session stimulated your reward system; repeating it today stabilises the circuit.\"\n"
            "- Focus: changes in the brain, memory consolidation, habit formation."
        ),
        monthly_prompt=(
            "Neuroscience lens:\n"
            "- Neuroplasticity after a month of repetition.\n"
            "- Example: \"A month in, new neural pathways are forming. That is what habit looks like.\"\n"
            "- Focus: brain growth, neural circuits, long-term change."
        ),
        keywords=("brain", "memory", "circuit", "repetition", "habit formation"),
    ),
    "philosophy": FeedbackTone(
        id="philosophy",
        name="Philosophy",
        description="Gives everyday effort meaning and worth.",
        weekly_prompt=(
            "Philosophical lens:\n"
            "- Give the week's actions meaning and worth.\n"
            "- Example: \"Even unseen, your effort is carved into time.\"\n"
            "- Ask what effort and growth really are; honour solitary effort.\n"
            "- Focus: meaning, value, existence, time, the nature of growth."
        ),
        monthly_prompt=(
            "Philosophical lens:\n"
            "- Speak of the month's accumulation as growth in the user's life.\n"
            "- Example: \"Time flows equally for everyone; this month you spent yours on growing.\"\n"
            "- The process is the purpose; the beauty of accumulation.\n"
            "- Focus: meaning of life, value of time, the philosophy of growth."
        ),
        keywords=("meaning", "value", "existence", "life", "time", "accumulation"),
    ),
}


def score_tones(data: AnalyzedSessions) -> Dict[str, int]:
    scores = {tone_id: 0 for tone_id in FEEDBACK_TONES}
    sessions = data.sessions_count
    top_count = len(data.top_activities)

    if data.consistency > 0.7 and sessions >= 5:
        scores["behavioral_economics"] += 3
    if data.consistency > 0.5:
        scores["behavioral_economics"] += 1

    if data.mood_trend == "improving":
        scores["psychology"] += 2
    if data.mood_trend == "declining":
        scores["psychology"] += 3
    if data.average_mood < 3:
        scores["psychology"] += 2

    hours_per_session = data.total_hours / sessions if sessions else 0
    if hours_per_session > 2:
        scores["neuroscience"] += 3
    if data.total_hours > 15:
        scores["neuroscience"] += 2

    if data.goal_achievement_rate > 0.7:
        scores["philosophy"] += 3
    if data.total_hours > 20:
        scores["philosophy"] += 2

    if data.has_reflections:
        scores["human_behavior"] += 3
    if top_count > 3:
        scores["human_behavior"] += 1

    if data.consistency > 0.8:
        scores["ethology"] += 2
    if top_count <= 2 and sessions >= 5:
        scores["ethology"] += 2

    return scores


def select_tone(data: AnalyzedSessions, rng: Optional[random.Random] = None) -> FeedbackTone:
    """Highest-scoring tone; ties are broken at random."""
    scores = score_tones(data)
    best = max(scores.values())
    candidates: List[str] = [tone_id for tone_id, score in scores.items() if score == best]
    return FEEDBACK_TONES[(rng or random).choice(candidates)]
