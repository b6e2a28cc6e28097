"""Canned coach replies resolved from a persona table.

A reply is ``greeting + intro + body``: the greeting is picked by the time
of day mentioned in the prompt, the body by the mood mentioned in it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Tuple

TimeContext = Literal["morning", "afternoon", "evening"]
MoodContext = Literal["positive", "low", "stressed"]

# Checked in order, first match wins.
TIME_WORDS: Tuple[Tuple[TimeContext, Tuple[str, ...]], ...] = (
    ("morning", ("morning", "breakfast")),
    ("afternoon", ("afternoon", "lunch")),
    ("evening", ("evening", "night")),
)
MOOD_WORDS: Tuple[Tuple[MoodContext, Tuple[str, ...]], ...] = (
    ("positive", ("happy", "good", "great")),
    ("low", ("sad", "tired", "down")),
    ("stressed", ("stressed", "anxious")),
)


@dataclass(frozen=True, slots=True)
class Persona:
    intro: str
    greetings: Dict[Optional[TimeContext], str]
    bodies: Dict[Optional[MoodContext], str]
    direct_script: str


PERSONAS: Dict[str, Persona] = {
    "Bora": Persona(
        intro="I'm Bora, your Turkish coffee wellness expert.",
        greetings={
            "morning": "Good morning!",
            "afternoon": "Good afternoon!",
            "evening": "Good evening!",
            None: "Hello!",
        },
        bodies={
            "low": (
                "A warm cup of Turkish coffee and its slow brewing ritual can help "
                "lift your spirits this {time}."
            ),
            "positive": (
                "Your positive energy is wonderful! Turkish coffee will keep that "
                "focus going steadily."
            ),
            "stressed": (
                "The slow ritual of Turkish coffee is naturally calming. Take this "
                "moment to breathe and center yourself."
            ),
            None: "Perfect timing for Turkish coffee this {time}!",
        },
        direct_script=(
            "Hello! I'm Bora, your Turkish coffee wellness expert. "
            "Let's take a mindful coffee break together."
        ),
    ),
    "Parla": Persona(
        intro="I'm Parla, your wellness coach.",
        greetings={
            "morning": "Beautiful morning!",
            "afternoon": "Lovely afternoon!",
            "evening": "Peaceful evening!",
            None: "Hello beautiful!",
        },
        bodies={
            "low": (
                "Turkish coffee can be a gentle companion right now, a small moment "
                "of self-care you deserve."
            ),
            "positive": (
                "Your energy this {time} lights up my heart! Let a cup of Turkish "
                "coffee add to that joy."
            ),
            "stressed": (
                "Let Turkish coffee be your sanctuary. The ritual asks you to pause "
                "and breathe."
            ),
            None: "Perfect moment for Turkish coffee this {time}!",
        },
        direct_script=(
            "Hello beautiful! I'm Parla, your wellness coach. "
            "Let's slow down and enjoy a calm coffee moment."
        ),
    ),
}

GENERIC_PERSONA = Persona(
    intro="I'm your coffee wellness coach.",
    greetings={None: "Hello!"},
    bodies={None: "A mindful cup of coffee this {time} is a great way to recharge."},
    direct_script="Hello! I'm your coffee wellness coach.",
)


def detect_time_context(text: str) -> Optional[TimeContext]:
    lowered = text.lower()
    for context, words in TIME_WORDS:
        if any(word in lowered for word in words):
            return context
    return None


def detect_mood(text: str) -> Optional[MoodContext]:
    lowered = text.lower()
    for mood, words in MOOD_WORDS:
        if any(word in lowered for word in words):
            return mood
    return None


def get_persona(avatar_name: Optional[str]) -> Persona:
    return PERSONAS.get(avatar_name or "", GENERIC_PERSONA)


def compose_reply(avatar_name: Optional[str], prompt: str) -> str:
    """Build the line the avatar speaks in answer to ``prompt``."""
    persona = get_persona(avatar_name)
    time_context = detect_time_context(prompt)
    mood = detect_mood(prompt)

    greeting = persona.greetings.get(time_context) or persona.greetings[None]
    body = persona.bodies.get(mood) or persona.bodies[None]
    body = body.format(time=time_context or "time")
    return f"{greeting} {persona.intro} {body}"
