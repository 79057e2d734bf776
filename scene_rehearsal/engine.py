"""Rehearsal engine: the turn-taking state machine that runs a scene.

The engine runs on a single asyncio event loop. Timers, synthesis results,
playback completions and transcripts all arrive as callbacks on that loop.
Each turn gets a token; a callback whose token is no longer current, or that
arrives while the engine is not rehearsing, is ignored. Pausing, stopping and
skipping therefore never need to wait for in-flight work to finish.
"""

import asyncio
import logging
import random
from enum import Enum
from functools import partial

from scene_rehearsal import casting
from scene_rehearsal.constants import DIRECTION_DELAY, NO_VOICE_DELAY, SYNTHESIS_ERROR_DELAY
from scene_rehearsal.dictation import NullDictation
from scene_rehearsal.errors import (
    DictationUnsupported,
    IncompleteCasting,
    ParseYieldedNoCharacters,
    RehearsalError,
    SynthesisRateLimited,
)
from scene_rehearsal.models import Cue, Cursor, DIRECTION, USER
from scene_rehearsal.parser import parse_script
from scene_rehearsal.persistence import (
    restore_session,
    save_assignments,
    save_script,
    set_api_key,
)

logger = logging.getLogger(__name__)


class Phase(Enum):
    SETUP = "setup"
    CASTING = "casting"
    REHEARSING = "rehearsing"
    PAUSED = "paused"
    COMPLETE = "complete"


class RehearsalEngine:
    """Walks a cast script cue by cue.

    Collaborators:
      synth      object with async synthesize(text, voice_id, api_key=, client_id=) -> bytes
      player     object with play(audio, on_complete) -> handle, handle.stop()
      dictation  object with supported, start(on_transcript), stop()
      store      optional LocalStore; script and assignments are saved on change
      catalog    voice catalog entries used for auto-casting
      choice     random-choice function, injectable for deterministic casting

    Listeners registered with subscribe() are called as listener(event, payload)
    for "phase", "cue", "transcript", "rate_limited", "synthesis_failed",
    "dictation_unsupported" and "complete".
    """

    def __init__(
        self,
        synth,
        player,
        dictation=None,
        store=None,
        catalog=None,
        choice=random.choice,
        api_key: str | None = None,
        client_id: str | None = None,
        direction_delay: float = DIRECTION_DELAY,
        no_voice_delay: float = NO_VOICE_DELAY,
        error_delay: float = SYNTHESIS_ERROR_DELAY,
    ):
        self.synth = synth
        self.player = player
        self.dictation = dictation or NullDictation()
        self.store = store
        self.catalog = list(catalog or [])
        self.choice = choice
        self.api_key = api_key
        self.client_id = client_id
        self.direction_delay = direction_delay
        self.no_voice_delay = no_voice_delay
        self.error_delay = error_delay

        self.phase = Phase.SETUP
        self.script = ""
        self.prompt = ""
        self.cues: list[Cue] = []
        self.characters: list[str] = []
        self.assignments = {}
        self.cursor = Cursor()
        self.rate_limit: SynthesisRateLimited | None = None
        self.transcripts = {}

        self._turn = 0
        self._timer = None
        self._task = None
        self._audio = None
        self._dictating = False
        self._listeners = []

    # --- Observation ---

    def subscribe(self, listener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: str, **payload) -> None:
        for listener in list(self._listeners):
            listener(event, payload)

    def _set_phase(self, phase: Phase) -> None:
        self.phase = phase
        self.cursor.running = phase is Phase.REHEARSING
        self._emit("phase", phase=phase)

    @property
    def current_cue(self) -> Cue | None:
        if 0 <= self.cursor.current_index < len(self.cues):
            return self.cues[self.cursor.current_index]
        return None

    # --- Setup and casting ---

    def restore(self):
        """Reload the saved script, prompt and cast. Returns the session snapshot.

        Restoring never writes to the store: a cast filled in for characters
        missing from the saved assignments is kept in memory only. A saved
        script that no longer yields characters is kept as text and the
        engine stays in setup.
        """
        if self.store is None:
            raise RehearsalError("No store configured")
        snapshot = restore_session(self.store)
        self.assignments = dict(snapshot.assignments)
        self.prompt = snapshot.prompt or ""
        if snapshot.script:
            self.script = snapshot.script
            try:
                self.confirm_script(snapshot.script, persist=False)
            except ParseYieldedNoCharacters:
                logger.info("Saved script has no characters; staying in setup")
        return snapshot

    def confirm_script(self, text: str, persist: bool = True) -> list[str]:
        """Parse the script and move to casting. Returns the roster.

        Raises ParseYieldedNoCharacters if the text is blank or no character
        is detected; the engine then stays where it was. With persist=False
        the script and merged cast are not written to the store.
        """
        if self.phase not in (Phase.SETUP, Phase.CASTING):
            raise RehearsalError("Stop the rehearsal before changing the script")

        self.script = text
        if persist and self.store is not None:
            save_script(self.store, text)

        cues, characters = parse_script(text)
        if not text.strip() or not characters:
            raise ParseYieldedNoCharacters()

        self.cues = cues
        self.characters = characters
        self.transcripts = {}
        self.cursor = Cursor()
        self.assignments = casting.merge_assignments(characters, self.assignments, self.catalog, choice=self.choice)
        if persist:
            self._save_assignments()
        self._set_phase(Phase.CASTING)
        return characters

    def set_assignment(self, character: str, role: str, voice_id: str | None = None) -> None:
        if character not in self.characters:
            raise RehearsalError(f"Unknown character: {character}")
        casting.set_assignment(self.assignments, character, role, voice_id)
        self._save_assignments()

    def _save_assignments(self) -> None:
        if self.store is not None:
            save_assignments(self.store, self.assignments)

    def missing_characters(self) -> list[str]:
        return casting.missing_characters(self.characters, self.assignments)

    def set_credential(self, api_key: str | None) -> None:
        """Switch to a bring-your-own credential, clearing any rate-limit pause reason."""
        self.api_key = api_key or None
        self.clear_rate_limit()
        if self.store is not None:
            set_api_key(self.store, self.api_key)

    def clear_rate_limit(self) -> None:
        """Forget why the rehearsal was paused so a resume retries the cue."""
        self.rate_limit = None

    # --- Rehearsal controls ---

    def begin_rehearsal(self) -> None:
        """Casting → rehearsing at the first cue."""
        if self.phase is not Phase.CASTING:
            raise RehearsalError(f"Cannot start rehearsal while {self.phase.value}")
        if not casting.is_complete(self.characters, self.assignments):
            raise IncompleteCasting(self.missing_characters())
        self._start_from(0)

    def restart(self) -> None:
        """Rehearse again from the first cue, from any phase with a cast script."""
        if not self.characters:
            raise RehearsalError("No script to rehearse")
        if not casting.is_complete(self.characters, self.assignments):
            raise IncompleteCasting(self.missing_characters())
        self._halt()
        self._start_from(0)

    def toggle_pause(self) -> Phase:
        """Pause a running rehearsal or resume a paused one."""
        if self.phase is Phase.REHEARSING:
            self._halt()
            self._set_phase(Phase.PAUSED)
        elif self.phase is Phase.PAUSED:
            self.clear_rate_limit()
            self._set_phase(Phase.REHEARSING)
            self._process_turn()
        else:
            raise RehearsalError(f"Nothing to pause while {self.phase.value}")
        return self.phase

    def stop(self) -> None:
        """Abandon the rehearsal and return to casting."""
        self._halt()
        self.cursor = Cursor()
        self.clear_rate_limit()
        self._set_phase(Phase.CASTING if self.characters else Phase.SETUP)

    def edit_script(self) -> None:
        """Abandon the rehearsal and return to setup to change the script."""
        self._halt()
        self.cursor = Cursor()
        self.clear_rate_limit()
        self._set_phase(Phase.SETUP)

    def skip(self) -> bool:
        """Move exactly one cue forward, cancelling whatever the current cue is doing."""
        if self.phase not in (Phase.REHEARSING, Phase.PAUSED):
            return False
        if self.cursor.current_index >= len(self.cues):
            return False
        self._halt()
        self.cursor.current_index += 1
        if self.phase is Phase.REHEARSING:
            self._process_turn()
        return True

    def done(self) -> bool:
        """The user has finished their line."""
        if self.phase is not Phase.REHEARSING or not self.cursor.awaiting_user:
            return False
        self._advance()
        return True

    def close(self) -> None:
        """Release audio, stop dictation and cancel pending work."""
        self._halt()

    # --- Turn protocol ---

    def _start_from(self, index: int) -> None:
        self.cursor = Cursor(current_index=index)
        self.clear_rate_limit()
        self.transcripts = {}
        self._set_phase(Phase.REHEARSING)
        self._process_turn()

    def _halt(self) -> None:
        """Invalidate the current turn and tear down everything it started."""
        self._turn += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None
        self._release_audio()
        self._stop_dictation()
        self.cursor.awaiting_user = False

    def _is_stale(self, token: int) -> bool:
        return token != self._turn or self.phase is not Phase.REHEARSING

    def _advance(self) -> None:
        self._halt()
        self.cursor.current_index += 1
        self._process_turn()

    def _process_turn(self) -> None:
        if self.phase is not Phase.REHEARSING:
            return
        self._turn += 1
        token = self._turn
        index = self.cursor.current_index

        cue = self.current_cue
        if cue is None:
            self._finish()
            return

        self._emit("cue", index=index, cue=cue)

        if cue.kind == DIRECTION:
            self._schedule(self.direction_delay, token)
            return

        assignment = self.assignments.get(cue.character)
        if assignment is not None and assignment.role == USER:
            self.cursor.awaiting_user = True
            self._start_dictation(index)
            return

        self._stop_dictation()
        voice_id = assignment.voice_id if assignment is not None else None
        if not voice_id:
            logger.info("No voice for %s; pausing instead of speaking", cue.character)
            self._schedule(self.no_voice_delay, token)
            return

        self._task = asyncio.get_running_loop().create_task(self._speak(token, cue.text, voice_id))

    def _schedule(self, delay: float, token: int) -> None:
        self._timer = asyncio.get_running_loop().call_later(delay, self._on_timer, token)

    def _on_timer(self, token: int) -> None:
        if self._is_stale(token):
            return
        self._timer = None
        self._advance()

    async def _speak(self, token: int, text: str, voice_id: str) -> None:
        try:
            audio = await self.synth.synthesize(
                text, voice_id, api_key=self.api_key, client_id=self.client_id
            )
        except SynthesisRateLimited as e:
            if self._is_stale(token):
                return
            self._task = None
            self._on_rate_limited(e)
            return
        except Exception as e:
            if self._is_stale(token):
                return
            self._task = None
            logger.warning("Synthesis failed, moving on: %s", e)
            self._emit("synthesis_failed", index=self.cursor.current_index, error=e)
            self._schedule(self.error_delay, token)
            return

        if self._is_stale(token):
            logger.debug("Discarding synthesis result for an abandoned turn")
            return
        self._task = None
        self._attach_audio(token, audio)

    def _attach_audio(self, token: int, audio: bytes) -> None:
        self._release_audio()
        # A player may complete the clip before play() returns
        self.cursor.playing_audio = True
        try:
            handle = self.player.play(audio, partial(self._on_playback_complete, token))
        except Exception as e:
            self.cursor.playing_audio = False
            if self._is_stale(token):
                return
            logger.warning("Playback failed, moving on: %s", e)
            self._emit("synthesis_failed", index=self.cursor.current_index, error=e)
            self._schedule(self.error_delay, token)
            return
        if self._is_stale(token):
            handle.stop()
            return
        self._audio = handle

    def _on_playback_complete(self, token: int) -> None:
        if self._is_stale(token):
            return
        self._audio = None
        self.cursor.playing_audio = False
        self._advance()

    def _release_audio(self) -> None:
        if self._audio is not None:
            self._audio.stop()
            self._audio = None
        self.cursor.playing_audio = False

    def _start_dictation(self, index: int) -> None:
        if not self.dictation.supported:
            self._emit("dictation_unsupported", index=index)
            return
        try:
            self.dictation.start(partial(self._on_transcript, index))
        except DictationUnsupported as e:
            logger.info("Dictation unavailable: %s", e)
            self._emit("dictation_unsupported", index=index)
            return
        self._dictating = True

    def _stop_dictation(self) -> None:
        if self._dictating:
            self._dictating = False
            self.dictation.stop()

    def _on_transcript(self, index: int, text: str, final: bool = True) -> None:
        # Transcripts are display-only and never move the cursor
        self.transcripts[index] = text
        self._emit("transcript", index=index, text=text, final=final)

    def _on_rate_limited(self, error: SynthesisRateLimited) -> None:
        self._halt()
        self.rate_limit = error
        self._set_phase(Phase.PAUSED)
        self._emit("rate_limited", index=self.cursor.current_index, error=error)

    def _finish(self) -> None:
        self._halt()
        self._set_phase(Phase.COMPLETE)
        self._emit("complete", cues=len(self.cues))
