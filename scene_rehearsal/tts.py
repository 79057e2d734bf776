"""Speech synthesis via edge-tts, behind the free-tier quota."""

import asyncio
import logging

import edge_tts

from scene_rehearsal.constants import (
    TTS_RETRY_COUNT,
    TTS_RETRY_BASE_DELAY,
    TTS_RATE,
    FREE_CHAR_LIMIT,
    UPGRADE_HINT,
)
from scene_rehearsal.errors import SynthesisFailed, SynthesisRateLimited

logger = logging.getLogger(__name__)


async def stream_speech(text: str, voice: str, rate: str = TTS_RATE) -> bytes:
    """Collect the audio/mpeg chunks edge-tts streams for one utterance."""
    communicate = edge_tts.Communicate(text, voice, rate=rate)
    audio = bytearray()
    async for chunk in communicate.stream():
        if chunk["type"] == "audio":
            audio.extend(chunk["data"])
    return bytes(audio)


class SpeechSynth:
    """Synthesis gateway used by the rehearsal engine.

    Requests without a bring-your-own credential count against the client's
    free quota; a refused request raises SynthesisRateLimited and is never
    retried. Other failures (network errors, empty audio) are retried with
    exponential backoff, then raised as SynthesisFailed.
    """

    def __init__(self, quota=None, rate: str = TTS_RATE, retries: int = TTS_RETRY_COUNT,
                 base_delay: float = TTS_RETRY_BASE_DELAY):
        self.quota = quota
        self.rate = rate
        self.retries = retries
        self.base_delay = base_delay

    def _check_quota(self, text: str, api_key: str | None, client_id: str | None) -> None:
        if api_key or self.quota is None:
            return
        if len(text) > FREE_CHAR_LIMIT:
            raise SynthesisFailed(f"Line exceeds the free tier limit of {FREE_CHAR_LIMIT} characters")
        decision = self.quota.check_and_increment(client_id or "anonymous")
        if not decision.allowed:
            raise SynthesisRateLimited(
                remaining=decision.remaining,
                reset_time=decision.reset_time,
                upgrade_hint=UPGRADE_HINT,
            )

    async def synthesize(self, text: str, voice_id: str, api_key: str | None = None,
                         client_id: str | None = None) -> bytes:
        """Return MP3 bytes for text spoken in voice_id."""
        if not text.strip():
            raise SynthesisFailed("Nothing to synthesize")
        self._check_quota(text, api_key, client_id)

        last_error = None
        for attempt in range(self.retries):
            try:
                audio = await stream_speech(text, voice_id, rate=self.rate)
                if audio:
                    return audio
                last_error = SynthesisFailed(f"TTS produced no audio for: {text[:50]}...")
            except Exception as e:
                last_error = e
            logger.debug("Synthesis attempt %d/%d failed: %s", attempt + 1, self.retries, last_error)

            if attempt < self.retries - 1:
                await asyncio.sleep(self.base_delay * (2 ** attempt))

        if isinstance(last_error, SynthesisFailed):
            raise last_error
        raise SynthesisFailed(str(last_error)) from last_error


def save_speech(text: str, voice: str, output_path: str, rate: str = TTS_RATE) -> str:
    """Synthesize one line straight to an MP3 file. Returns the path."""
    synth = SpeechSynth(rate=rate)
    audio = asyncio.run(synth.synthesize(text, voice))
    with open(output_path, "wb") as f:
        f.write(audio)
    return output_path
