"""Client-local key/value storage so a rehearsal survives a restart."""

import json
import logging
import os
import re
import uuid

from scene_rehearsal.casting import assignments_from_dict, assignments_to_dict
from scene_rehearsal.constants import (
    DATA_DIR,
    SCRIPT_KEY,
    PROMPT_KEY,
    ASSIGNMENTS_KEY,
    CLIENT_ID_KEY,
    API_KEY_KEY,
)
from scene_rehearsal.models import SessionSnapshot

logger = logging.getLogger(__name__)

SESSION_KEYS = (SCRIPT_KEY, PROMPT_KEY, ASSIGNMENTS_KEY)


class LocalStore:
    """String-keyed slots, one JSON file per key under data_dir.

    Each slot is independent: a corrupt or missing file only affects its own
    key.
    """

    def __init__(self, data_dir: str = DATA_DIR):
        self.data_dir = data_dir

    def _path(self, key: str) -> str:
        if not re.fullmatch(r"[A-Za-z0-9_-]+", key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return os.path.join(self.data_dir, f"{key}.json")

    def save(self, key: str, value) -> str:
        """Write value to its slot. Returns path to the written file."""
        os.makedirs(self.data_dir, exist_ok=True)
        path = self._path(key)
        with open(path, "w") as f:
            json.dump(value, f, indent=2)
        return path

    def load(self, key: str, default=None):
        """Read a slot. Missing or malformed slots return default."""
        path = self._path(key)
        if not os.path.exists(path):
            return default
        try:
            with open(path) as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Malformed storage slot: %s — ignoring", path)
            return default

    def clear(self, keys) -> list[str]:
        """Delete the given slots. Returns the keys that existed."""
        cleared = []
        for key in keys:
            path = self._path(key)
            if os.path.exists(path):
                os.remove(path)
                cleared.append(key)
        return cleared


def save_script(store: LocalStore, text: str) -> None:
    store.save(SCRIPT_KEY, text)


def save_prompt(store: LocalStore, prompt: str) -> None:
    store.save(PROMPT_KEY, prompt)


def save_assignments(store: LocalStore, assignments: dict) -> None:
    store.save(ASSIGNMENTS_KEY, assignments_to_dict(assignments))


def restore_session(store: LocalStore) -> SessionSnapshot:
    """Load script, prompt and assignments, each on its own.

    Absence (or corruption) of one slot never prevents loading the others.
    """
    snapshot = SessionSnapshot()

    script = store.load(SCRIPT_KEY)
    if isinstance(script, str):
        snapshot.script = script

    prompt = store.load(PROMPT_KEY)
    if isinstance(prompt, str):
        snapshot.prompt = prompt

    assignments = store.load(ASSIGNMENTS_KEY)
    if isinstance(assignments, dict):
        snapshot.assignments = assignments_from_dict(assignments)
    elif assignments is not None:
        logger.warning("Ignoring assignments slot of type %s", type(assignments).__name__)

    return snapshot


def clear_session(store: LocalStore) -> list[str]:
    return store.clear(SESSION_KEYS)


def get_client_id(store: LocalStore) -> str:
    """Return this installation's quota client id, creating it on first use."""
    client_id = store.load(CLIENT_ID_KEY)
    if not client_id:
        client_id = f"client_{uuid.uuid4().hex[:12]}"
        store.save(CLIENT_ID_KEY, client_id)
    return client_id


def get_api_key(store: LocalStore) -> str | None:
    return store.load(API_KEY_KEY) or None


def set_api_key(store: LocalStore, api_key: str | None) -> None:
    """Store a bring-your-own credential, or remove it when api_key is empty."""
    if api_key:
        store.save(API_KEY_KEY, api_key)
    else:
        store.clear([API_KEY_KEY])
