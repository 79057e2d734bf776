"""Shared fixtures for scene rehearsal tests."""

import asyncio

import pytest

from scene_rehearsal.engine import RehearsalEngine
from scene_rehearsal.models import Cue, VoiceEntry
from scene_rehearsal.persistence import LocalStore


class FakeHandle:
    def __init__(self, audio, on_complete):
        self.audio = audio
        self.on_complete = on_complete
        self.stopped = False

    def stop(self):
        self.stopped = True

    def finish(self):
        """Simulate the clip playing to the end."""
        self.on_complete()


class FakePlayer:
    def __init__(self):
        self.handles = []

    def play(self, audio, on_complete):
        handle = FakeHandle(audio, on_complete)
        self.handles.append(handle)
        return handle

    @property
    def current(self):
        return self.handles[-1] if self.handles else None


class FakeDictation:
    def __init__(self, supported=True):
        self.supported = supported
        self.started = 0
        self.stopped = 0
        self.on_transcript = None

    def start(self, on_transcript):
        self.started += 1
        self.on_transcript = on_transcript

    def stop(self):
        self.stopped += 1


class FakeSynth:
    """Returns fixed audio, or raises `error`. Waits on `gate` when one is set."""

    def __init__(self, audio=b"ID3-fake-mp3", error=None):
        self.audio = audio
        self.error = error
        self.gate = None
        self.calls = []

    async def synthesize(self, text, voice_id, api_key=None, client_id=None):
        self.calls.append({"text": text, "voice_id": voice_id, "api_key": api_key, "client_id": client_id})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.audio


async def settle(rounds=20):
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


CATALOG = [
    VoiceEntry(id="en-US-GuyNeural", display_name="Guy", locale="en-US"),
    VoiceEntry(id="en-GB-RyanNeural", display_name="Ryan", locale="en-GB"),
    VoiceEntry(id="en-US-AriaNeural", display_name="Aria", locale="en-US"),
]


def first_voice(catalog):
    return catalog[0]


@pytest.fixture
def catalog():
    return list(CATALOG)


@pytest.fixture
def sample_cues():
    """Two-character scene with one direction between the lines."""
    return [
        Cue(kind="dialogue", text="Where were you?", original_line="DETECTIVE: Where were you?", character="DETECTIVE"),
        Cue(kind="direction", text="(A long pause)", original_line="(A long pause)"),
        Cue(kind="dialogue", text="Home. Alone.", original_line="SUSPECT: Home. Alone.", character="SUSPECT"),
    ]


@pytest.fixture
def store(tmp_path):
    return LocalStore(str(tmp_path / "data"))


@pytest.fixture
def fakes():
    return {"synth": FakeSynth(), "player": FakePlayer(), "dictation": FakeDictation()}


@pytest.fixture
def make_engine(fakes, catalog):
    """Build an engine on the fakes with instant timers and deterministic casting."""
    def factory(**kwargs):
        options = {
            "synth": fakes["synth"],
            "player": fakes["player"],
            "dictation": fakes["dictation"],
            "catalog": catalog,
            "choice": first_voice,
            "direction_delay": 0,
            "no_voice_delay": 0,
            "error_delay": 0,
        }
        options.update(kwargs)
        return RehearsalEngine(**options)
    return factory
