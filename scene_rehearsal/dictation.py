"""Speech-to-text capture for the user's own lines."""

import io
import logging
import threading

import numpy as np
from pydub import AudioSegment

from scene_rehearsal.constants import DICTATION_SAMPLE_RATE
from scene_rehearsal.errors import DictationUnsupported, GenerationFailed

logger = logging.getLogger(__name__)


class NullDictation:
    """Dictation on a machine without a microphone or transcription service."""

    supported = False

    def start(self, on_transcript) -> None:
        raise DictationUnsupported("Speech recognition is not available")

    def stop(self) -> None:
        pass


def encode_wav(frames: np.ndarray, sample_rate: int) -> bytes:
    """Encode float32 mono frames as 16-bit WAV bytes."""
    pcm = (np.clip(frames, -1.0, 1.0) * 32767).astype(np.int16)
    segment = AudioSegment(data=pcm.tobytes(), sample_width=2, frame_rate=sample_rate, channels=1)
    buf = io.BytesIO()
    segment.export(buf, format="wav")
    return buf.getvalue()


class MicrophoneDictation:
    """Records the microphone while the user speaks and transcribes the take.

    start() opens an input stream; stop() closes it and transcribes the
    recording on a worker thread. The final transcript is delivered on the
    event loop as on_transcript(text, True).
    """

    def __init__(self, transform, loop, sample_rate: int = DICTATION_SAMPLE_RATE):
        self.transform = transform
        self.loop = loop
        self.sample_rate = sample_rate
        self._stream = None
        self._chunks = []
        self._on_transcript = None
        self._supported = None

    @property
    def supported(self) -> bool:
        if self._supported is None:
            self._supported = self._probe()
        return self._supported

    def _probe(self) -> bool:
        if self.transform is None:
            return False
        try:
            import sounddevice as sd

            sd.query_devices(kind="input")
        except Exception as e:
            logger.info("No microphone available: %s", e)
            return False
        return True

    def start(self, on_transcript) -> None:
        if not self.supported:
            raise DictationUnsupported("No microphone available")
        if self._stream is not None:
            return
        import sounddevice as sd

        self._chunks = []
        self._on_transcript = on_transcript

        def callback(indata, frames, time_info, status):
            self._chunks.append(indata.copy())

        self._stream = sd.InputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype=np.float32,
            callback=callback,
        )
        self._stream.start()

    def stop(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        stream.stop()
        stream.close()

        chunks, self._chunks = self._chunks, []
        if not chunks:
            return
        frames = np.concatenate(chunks, axis=0).reshape(-1)
        threading.Thread(
            target=self._transcribe, args=(frames, self._on_transcript), daemon=True
        ).start()

    def _transcribe(self, frames: np.ndarray, on_transcript) -> None:
        try:
            text = self.transform.transcribe(encode_wav(frames, self.sample_rate))
        except GenerationFailed as e:
            logger.error("Transcription failed: %s", e)
            return
        if on_transcript is None:
            return
        try:
            self.loop.call_soon_threadsafe(on_transcript, text, True)
        except RuntimeError:
            logger.debug("Event loop closed; dropping transcript")
