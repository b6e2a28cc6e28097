"""Tests for coffee_coach.shell.personas and the avatar catalog."""

import pytest

from coffee_coach.shell.avatars import DEFAULT_AVATAR_ID, get_avatar, list_avatars
from coffee_coach.shell.personas import (
    GENERIC_PERSONA,
    PERSONAS,
    compose_reply,
    detect_mood,
    detect_time_context,
    get_persona,
)


class TestContextDetection:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("What should I drink at breakfast?", "morning"),
            ("Lunch break coffee ideas", "afternoon"),
            ("Can I have coffee at NIGHT?", "evening"),
            ("Tell me about coffee", None),
        ],
    )
    def test_time_context(self, text, expected):
        assert detect_time_context(text) == expected

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("I feel great today", "positive"),
            ("So tired after work", "low"),
            ("Work has me stressed", "stressed"),
            ("Tell me about coffee", None),
        ],
    )
    def test_mood(self, text, expected):
        assert detect_mood(text) == expected


class TestComposeReply:
    def test_bora_morning_low(self):
        reply = compose_reply("Bora", "I'm tired this morning")
        assert reply.startswith("Good morning! I'm Bora, your Turkish coffee wellness expert.")
        assert reply.endswith(PERSONAS["Bora"].bodies["low"].format(time="morning"))

    def test_parla_default_uses_time_placeholder(self):
        reply = compose_reply("Parla", "Tell me about coffee")
        assert reply == (
            "Hello beautiful! I'm Parla, your wellness coach. "
            "Perfect moment for Turkish coffee this time!"
        )

    def test_parla_positive_evening(self):
        reply = compose_reply("Parla", "Feeling happy this evening")
        assert reply.startswith("Peaceful evening!")
        assert "this evening" in reply

    def test_unknown_avatar_uses_generic_persona(self):
        assert get_persona("Nobody") is GENERIC_PERSONA
        reply = compose_reply(None, "coffee at lunch please")
        assert reply == (
            "Hello! I'm your coffee wellness coach. "
            "A mindful cup of coffee this afternoon is a great way to recharge."
        )


class TestAvatars:
    def test_catalog(self):
        names = [avatar.display_name for avatar in list_avatars()]
        assert names == ["Bora", "Parla"]
        assert get_avatar(DEFAULT_AVATAR_ID).display_name == "Bora"
        assert get_avatar("Katya_ProfessionalLook_public").subtitle == "Wellness Coach"

    def test_unknown_avatar(self):
        with pytest.raises(KeyError):
            get_avatar("missing")

    def test_every_avatar_has_persona(self):
        for avatar in list_avatars():
            assert avatar.display_name in PERSONAS
