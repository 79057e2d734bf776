"""Role assignment: who speaks each character, the user or an AI voice."""

import logging
import random

from scene_rehearsal.models import RoleAssignment, VoiceEntry, USER, AI, ROLES

logger = logging.getLogger(__name__)


def auto_assign(characters: list[str], catalog: list[VoiceEntry], choice=random.choice) -> dict:
    """Cast the first character as the user and every other character as AI.

    Each AI character gets a voice picked by `choice` from the catalog, or no
    voice when the catalog is empty.
    """
    assignments = {}
    for i, character in enumerate(characters):
        if i == 0:
            assignments[character] = RoleAssignment(role=USER)
        elif catalog:
            assignments[character] = RoleAssignment(role=AI, voice_id=choice(catalog).id)
        else:
            assignments[character] = RoleAssignment(role=AI)
    return assignments


def set_assignment(assignments: dict, character: str, role: str, voice_id: str | None = None) -> dict:
    """Overwrite one character's assignment in place and return the mapping."""
    if role not in ROLES:
        raise ValueError(f"Invalid role: {role!r} (expected one of {', '.join(ROLES)})")
    assignments[character] = RoleAssignment(role=role, voice_id=voice_id or None)
    return assignments


def missing_characters(characters: list[str], assignments: dict) -> list[str]:
    return [c for c in characters if c not in assignments]


def is_complete(characters: list[str], assignments: dict) -> bool:
    return not missing_characters(characters, assignments)


def merge_assignments(
    characters: list[str],
    saved: dict,
    catalog: list[VoiceEntry],
    choice=random.choice,
) -> dict:
    """Keep saved assignments for roster members and auto-cast the rest.

    When nothing is saved for the roster this is exactly auto_assign(). When
    the saved cast already covers some characters, the newcomers are all cast
    as AI so an existing user role is not doubled up.
    """
    kept = {c: saved[c] for c in characters if c in saved}
    if not kept:
        return auto_assign(characters, catalog, choice=choice)

    merged = dict(kept)
    for character in missing_characters(characters, kept):
        voice_id = choice(catalog).id if catalog else None
        merged[character] = RoleAssignment(role=AI, voice_id=voice_id)
        logger.debug("Auto-cast new character %s as AI (%s)", character, voice_id)
    return {c: merged[c] for c in characters}


def assignments_to_dict(assignments: dict) -> dict:
    return {name: a.to_dict() for name, a in assignments.items()}


def assignments_from_dict(data: dict) -> dict:
    """Rebuild assignments from their serialized form, skipping bad entries."""
    assignments = {}
    for name, entry in data.items():
        try:
            assignment = RoleAssignment.from_dict(entry)
        except (KeyError, TypeError, AttributeError):
            logger.warning("Ignoring malformed assignment for %s: %r", name, entry)
            continue
        if assignment.role not in ROLES:
            logger.warning("Ignoring unknown role for %s: %r", name, assignment.role)
            continue
        assignments[name] = assignment
    return assignments
