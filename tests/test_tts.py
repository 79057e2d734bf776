"""Tests for TTS module."""

import asyncio
from unittest.mock import patch, MagicMock

import pytest

from scene_rehearsal.constants import FREE_CHAR_LIMIT, UPGRADE_HINT
from scene_rehearsal.errors import SynthesisFailed, SynthesisRateLimited
from scene_rehearsal.ratelimit import QuotaService
from scene_rehearsal.tts import SpeechSynth, save_speech


def _make_mock_communicate(chunks_per_call):
    """Create a mock edge_tts.Communicate streaming the given chunks per call.

    Each entry is a list of chunk dicts, or an exception to raise.
    """
    calls = iter(chunks_per_call)

    def factory(text, voice, **kwargs):
        chunks = next(calls)
        mock = MagicMock()

        async def stream():
            if isinstance(chunks, Exception):
                raise chunks
            for chunk in chunks:
                yield chunk

        mock.stream = stream
        return mock

    return factory


AUDIO = [
    {"type": "WordBoundary", "offset": 0},
    {"type": "audio", "data": b"ID3"},
    {"type": "audio", "data": b"-mp3"},
]


@patch("scene_rehearsal.tts.edge_tts.Communicate")
def test_synthesize_collects_audio_chunks(mock_comm):
    """Only audio chunks make it into the result."""
    mock_comm.side_effect = _make_mock_communicate([AUDIO])
    audio = asyncio.run(SpeechSynth().synthesize("Hello", "en-US-GuyNeural"))
    assert audio == b"ID3-mp3"
    assert mock_comm.call_args.args == ("Hello", "en-US-GuyNeural")


@patch("scene_rehearsal.tts.edge_tts.Communicate")
def test_synthesize_retry(mock_comm):
    """Retry works when the first attempt fails."""
    mock_comm.side_effect = _make_mock_communicate([ConnectionError("reset"), AUDIO])
    audio = asyncio.run(SpeechSynth(base_delay=0).synthesize("Hello", "en-US-GuyNeural"))
    assert audio == b"ID3-mp3"
    assert mock_comm.call_count == 2


@patch("scene_rehearsal.tts.edge_tts.Communicate")
def test_synthesize_empty_audio_retried(mock_comm):
    """Zero bytes of audio counts as a failure."""
    mock_comm.side_effect = _make_mock_communicate([[], AUDIO])
    audio = asyncio.run(SpeechSynth(base_delay=0).synthesize("Hello", "en-US-GuyNeural"))
    assert audio == b"ID3-mp3"


@patch("scene_rehearsal.tts.edge_tts.Communicate")
def test_synthesize_retry_exhausted(mock_comm):
    """Raises SynthesisFailed after all retries are used."""
    mock_comm.side_effect = _make_mock_communicate([ConnectionError("down")] * 3)
    with pytest.raises(SynthesisFailed, match="down"):
        asyncio.run(SpeechSynth(retries=3, base_delay=0).synthesize("Hello", "en-US-GuyNeural"))
    assert mock_comm.call_count == 3


def test_synthesize_blank_text():
    with pytest.raises(SynthesisFailed):
        asyncio.run(SpeechSynth().synthesize("   ", "en-US-GuyNeural"))


# --- Quota ---

@patch("scene_rehearsal.tts.edge_tts.Communicate")
def test_quota_counts_free_requests(mock_comm):
    mock_comm.side_effect = _make_mock_communicate([AUDIO, AUDIO])
    quota = QuotaService(limit=2, clock=lambda: 1000.0)
    synth = SpeechSynth(quota=quota)
    asyncio.run(synth.synthesize("One", "v", client_id="client_a"))
    asyncio.run(synth.synthesize("Two", "v", client_id="client_a"))
    assert quota.get_status("client_a").remaining == 0


@patch("scene_rehearsal.tts.edge_tts.Communicate")
def test_quota_exhausted_raises_rate_limited(mock_comm):
    """Over the limit, the request is refused without calling the service."""
    quota = QuotaService(limit=1, window_seconds=60, clock=lambda: 1000.0)
    quota.check_and_increment("client_a")
    with pytest.raises(SynthesisRateLimited) as exc:
        asyncio.run(SpeechSynth(quota=quota).synthesize("Hello", "v", client_id="client_a"))
    assert exc.value.remaining == 0
    assert exc.value.reset_time == 1060.0
    assert exc.value.upgrade_hint == UPGRADE_HINT
    mock_comm.assert_not_called()


@patch("scene_rehearsal.tts.edge_tts.Communicate")
def test_api_key_bypasses_quota(mock_comm):
    mock_comm.side_effect = _make_mock_communicate([AUDIO])
    quota = QuotaService(limit=0)
    audio = asyncio.run(SpeechSynth(quota=quota).synthesize("Hello", "v", api_key="key", client_id="c"))
    assert audio == b"ID3-mp3"


def test_free_tier_character_limit():
    quota = QuotaService(limit=10)
    with pytest.raises(SynthesisFailed) as exc:
        asyncio.run(SpeechSynth(quota=quota).synthesize("x" * (FREE_CHAR_LIMIT + 1), "v", client_id="c"))
    assert not isinstance(exc.value, SynthesisRateLimited)


# --- File output ---

@patch("scene_rehearsal.tts.edge_tts.Communicate")
def test_save_speech_writes_file(mock_comm, tmp_path):
    mock_comm.side_effect = _make_mock_communicate([AUDIO])
    output = tmp_path / "line.mp3"
    assert save_speech("Hello", "v", str(output)) == str(output)
    assert output.read_bytes() == b"ID3-mp3"
