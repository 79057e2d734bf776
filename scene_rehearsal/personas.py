"""Persona store: built-in personas plus custom ones kept in a flat JSON file."""

import json
import logging
import os
import re
from datetime import datetime, timezone

from scene_rehearsal.constants import DATA_DIR, PERSONA_DB_FILE
from scene_rehearsal.errors import PersonaError
from scene_rehearsal.generation import write_system_prompt
from scene_rehearsal.models import Persona
from scene_rehearsal.voices import hash_voice

logger = logging.getLogger(__name__)

DEFAULT_PERSONAS = {
    "noir_detective": Persona(
        id="noir_detective",
        label="Gritty Noir Detective",
        system_prompt=(
            "A cynical, tired private investigator from the 1940s. Speak in a gravelly, "
            "world-weary tone with dramatic pauses. Reference cigarette smoke, rain-slicked "
            "streets, and moral ambiguity."
        ),
        voice_id="en-US-GuyNeural",
    ),
    "surfer_dude": Persona(
        id="surfer_dude",
        label="SoCal Surfer",
        system_prompt=(
            "A relaxed, enthusiastic surfer from Southern California. Use slang like "
            "'gnarly', 'dude' and 'stoked'. Keep it laid-back, upbeat and full of good vibes."
        ),
        voice_id="en-US-AndrewNeural",
    ),
    "hyper_news": Persona(
        id="hyper_news",
        label="1920s Transatlantic News Anchor",
        system_prompt=(
            "A fast-talking, high-energy news reporter with a mid-atlantic accent from the "
            "1920s. Use formal, dramatic language about breaking news and urgent bulletins."
        ),
        voice_id="en-GB-RyanNeural",
    ),
}


def persona_id_from_name(name: str) -> str:
    """Convert a persona name to its id.

    "Captain Jack!" → "captain_jack"
    """
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


class PersonaStore:
    def __init__(self, data_dir: str = DATA_DIR, filename: str = PERSONA_DB_FILE):
        self.path = os.path.join(data_dir, filename)

    def load_custom(self) -> dict:
        """Custom personas keyed by id. Missing or malformed file → empty."""
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("Malformed persona database: %s — ignoring", self.path)
            return {}
        return {key: Persona.from_dict(key, value) for key, value in data.items()}

    def _write(self, personas: dict) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w") as f:
            json.dump({key: p.to_dict() for key, p in personas.items()}, f, indent=2)

    def all_personas(self) -> dict:
        """Built-in personas overlaid with custom ones."""
        return {**DEFAULT_PERSONAS, **self.load_custom()}

    def get(self, persona_id: str) -> Persona | None:
        return self.all_personas().get(persona_id)

    def create(self, name: str, description: str, voice_id: str | None = None,
               transform=None, catalog=None) -> Persona:
        """Create and save a custom persona.

        The system prompt comes from the text transform when one is given,
        otherwise from a template. Without an explicit voice, one is picked
        deterministically from the catalog.
        """
        name = name.strip()
        description = description.strip()
        if len(name) < 2:
            raise PersonaError("Name must be at least 2 characters long")
        if not description:
            raise PersonaError("Description is required")

        persona_id = persona_id_from_name(name)
        if persona_id in self.all_personas():
            raise PersonaError(f'Persona with name "{name}" already exists')

        if transform is not None:
            system_prompt = write_system_prompt(transform, name, description)
        else:
            system_prompt = f"You are {name}. Your character is described as: {description}."

        voice_id = voice_id or hash_voice(name, catalog or [])
        if not voice_id:
            raise PersonaError("No voice given and the voice catalog is empty")

        persona = Persona(
            id=persona_id,
            label=name,
            system_prompt=system_prompt,
            voice_id=voice_id,
            description=description,
            is_custom=True,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        custom = self.load_custom()
        custom[persona_id] = persona
        self._write(custom)
        logger.info("Created persona %s with voice %s", persona_id, voice_id)
        return persona

    def delete(self, persona_id: str) -> bool:
        """Delete a custom persona. Built-in personas cannot be deleted."""
        if persona_id in DEFAULT_PERSONAS:
            raise PersonaError(f"Cannot delete built-in persona: {persona_id}")
        custom = self.load_custom()
        if persona_id not in custom:
            return False
        del custom[persona_id]
        self._write(custom)
        return True
