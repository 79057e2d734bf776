"""Exception taxonomy for scene rehearsal."""


class RehearsalError(Exception):
    """Base class for all scene rehearsal errors."""


class ParseYieldedNoCharacters(RehearsalError):
    """The script is empty or no speaking character could be detected."""

    def __init__(self, message: str = "No characters detected. Use 'NAME: line' or put the name on its own line."):
        super().__init__(message)


class IncompleteCasting(RehearsalError):
    """Some characters in the roster have no role assignment."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Unassigned characters: {', '.join(self.missing)}")


class GenerationFailed(RehearsalError):
    """The text-transform service failed to produce text."""


class SynthesisFailed(RehearsalError):
    """The speech-synth service failed. Recoverable: the rehearsal moves on."""


class SynthesisRateLimited(SynthesisFailed):
    """The free synthesis quota is exhausted for this client.

    Carries the quota metadata so the caller can show when the window resets
    and how to switch to an unlimited credential.
    """

    def __init__(self, remaining: int = 0, reset_time: float | None = None, upgrade_hint: str = ""):
        self.remaining = remaining
        self.reset_time = reset_time
        self.upgrade_hint = upgrade_hint
        super().__init__("Free synthesis quota exceeded")


class DictationUnsupported(RehearsalError):
    """No speech-to-text capture is available on this machine."""


class VoiceCatalogUnavailable(RehearsalError):
    """The voice catalog could not be fetched."""


class PersonaError(RehearsalError):
    """A persona could not be created or deleted."""
