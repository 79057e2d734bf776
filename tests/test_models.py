"""Tests for models module."""

import pytest

from scene_rehearsal.errors import IncompleteCasting, SynthesisFailed, SynthesisRateLimited
from scene_rehearsal.models import Cue, Cursor, Persona, RoleAssignment, VoiceEntry


def test_cue_is_dialogue(sample_cues):
    assert [c.is_dialogue for c in sample_cues] == [True, False, True]


def test_direction_has_no_character():
    cue = Cue(kind="direction", text="(beat)", original_line="(beat)")
    assert cue.character is None


def test_role_assignment_serialization():
    data = RoleAssignment(role="ai", voice_id="en-US-GuyNeural").to_dict()
    assert data == {"role": "ai", "voiceId": "en-US-GuyNeural"}
    assert RoleAssignment.from_dict({"role": "user", "voiceId": ""}) == RoleAssignment(role="user")


def test_cursor_defaults():
    cursor = Cursor()
    assert cursor.current_index == 0
    assert not (cursor.running or cursor.awaiting_user or cursor.playing_audio)


def test_voice_entry_is_immutable():
    entry = VoiceEntry(id="v", display_name="V")
    with pytest.raises(AttributeError):
        entry.id = "w"


def test_persona_round_trip():
    persona = Persona(id="jack", label="Jack", system_prompt="You are Jack.", voice_id="v",
                      description="pirate", is_custom=True, created_at="2024-01-01T00:00:00+00:00")
    assert Persona.from_dict("jack", persona.to_dict()) == persona


def test_persona_from_sparse_dict():
    persona = Persona.from_dict("jack", {"systemPrompt": "You are Jack."})
    assert persona.id == "jack"
    assert persona.label == "jack"
    assert not persona.is_custom


def test_incomplete_casting_lists_missing():
    error = IncompleteCasting(["BOB", "CAROL"])
    assert error.missing == ["BOB", "CAROL"]
    assert "BOB, CAROL" in str(error)


def test_rate_limited_is_synthesis_failure():
    error = SynthesisRateLimited(reset_time=5.0, upgrade_hint="add a key")
    assert isinstance(error, SynthesisFailed)
    assert error.remaining == 0
    assert error.reset_time == 5.0
