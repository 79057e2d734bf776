"""Data models for scene rehearsal."""

from dataclasses import dataclass, field

DIALOGUE = "dialogue"
DIRECTION = "direction"

USER = "user"
AI = "ai"
ROLES = (USER, AI)


@dataclass
class Cue:
    kind: str                       # "dialogue" or "direction"
    text: str
    original_line: str
    character: str | None = None    # set iff kind == "dialogue"

    @property
    def is_dialogue(self) -> bool:
        return self.kind == DIALOGUE


@dataclass
class RoleAssignment:
    role: str                       # "user" or "ai"
    voice_id: str | None = None

    def to_dict(self) -> dict:
        return {"role": self.role, "voiceId": self.voice_id}

    @classmethod
    def from_dict(cls, data: dict) -> "RoleAssignment":
        return cls(role=data["role"], voice_id=data.get("voiceId") or None)


@dataclass
class Cursor:
    current_index: int = 0
    running: bool = False
    awaiting_user: bool = False
    playing_audio: bool = False


@dataclass(frozen=True)
class VoiceEntry:
    id: str
    display_name: str
    locale: str = ""


@dataclass
class Persona:
    id: str
    label: str
    system_prompt: str
    voice_id: str
    description: str = ""
    is_custom: bool = False
    created_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "systemPrompt": self.system_prompt,
            "voiceId": self.voice_id,
            "description": self.description,
            "isCustom": self.is_custom,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict) -> "Persona":
        return cls(
            id=data.get("id", key),
            label=data.get("label", key),
            system_prompt=data.get("systemPrompt", ""),
            voice_id=data.get("voiceId", ""),
            description=data.get("description", ""),
            is_custom=data.get("isCustom", False),
            created_at=data.get("createdAt"),
        )


@dataclass
class QuotaDecision:
    allowed: bool
    remaining: int
    reset_time: float | None


@dataclass
class QuotaStatus:
    tier: str                       # "free" or "unlimited"
    remaining: float
    limit: float
    reset_time: float | None
    character_limit: int | None = None


@dataclass
class SessionSnapshot:
    script: str | None = None
    prompt: str | None = None
    assignments: dict = field(default_factory=dict)
