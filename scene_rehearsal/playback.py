"""Audio playback for synthesized lines."""

import io
import logging
import threading

import numpy as np
from pydub import AudioSegment

logger = logging.getLogger(__name__)


def decode_mp3(audio: bytes) -> AudioSegment:
    return AudioSegment.from_file(io.BytesIO(audio), format="mp3")


def segment_to_array(segment: AudioSegment) -> np.ndarray:
    """Convert an AudioSegment to float32 frames in [-1, 1], shape (n, channels)."""
    samples = np.array(segment.get_array_of_samples(), dtype=np.float32)
    samples /= float(1 << (8 * segment.sample_width - 1))
    return samples.reshape(-1, segment.channels)


class PlaybackHandle:
    """One playing clip. stop() silences it and suppresses its completion."""

    def __init__(self):
        self._stopped = threading.Event()
        self._lock = threading.Lock()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def start(self, frames: np.ndarray, frame_rate: int) -> bool:
        """Start the clip unless stop() already ran. Returns whether it started."""
        import sounddevice as sd

        with self._lock:
            if self._stopped.is_set():
                return False
            sd.play(frames, frame_rate)
        return True

    def stop(self) -> None:
        import sounddevice as sd

        with self._lock:
            if self._stopped.is_set():
                return
            self._stopped.set()
            sd.stop()


class SoundDevicePlayer:
    """Plays MP3 bytes on the default output device.

    Decoding and playback run on a worker thread; completion is handed back
    to the event loop that called play(). A clip that fails to decode or play
    still completes, so a broken clip never stalls the rehearsal.
    """

    def __init__(self, loop):
        self.loop = loop

    def play(self, audio: bytes, on_complete) -> PlaybackHandle:
        handle = PlaybackHandle()
        thread = threading.Thread(target=self._run, args=(handle, audio, on_complete), daemon=True)
        thread.start()
        return handle

    def _run(self, handle: PlaybackHandle, audio: bytes, on_complete) -> None:
        import sounddevice as sd

        try:
            segment = decode_mp3(audio)
            if handle.start(segment_to_array(segment), segment.frame_rate):
                sd.wait()
        except Exception as e:
            logger.error("Playback failed: %s", e)
        if handle.stopped:
            return
        try:
            self.loop.call_soon_threadsafe(on_complete)
        except RuntimeError:
            logger.debug("Event loop closed; dropping playback completion")
