"""Parse free-form script text into dialogue and direction cues."""

import re

from scene_rehearsal.constants import MAX_NAME_LENGTH, MAX_NAME_WORDS, RESERVED_TIME_WORDS
from scene_rehearsal.models import Cue, DIALOGUE, DIRECTION

# Scene headings: INT. KITCHEN / EXT. ROOFTOP / INT./EXT. CAR / I/E HALLWAY
_SCENE_HEADING_RE = re.compile(r"^(?:INT\.?/EXT|EXT\.?/INT|INT|EXT|EST|I/E)[.\s]")

# Transitions: FADE IN: / CUT TO: / SMASH CUT TO BLACK / DISSOLVE TO:
_TRANSITION_RE = re.compile(
    r"^(?:FADE\s+(?:IN|OUT|TO)|(?:SMASH\s+|MATCH\s+|JUMP\s+)?CUT\s+TO|DISSOLVE\s+TO|FADE\s+TO\s+BLACK)\b"
)

# Continuation markers on their own line: (CONT'D) / CONTINUED:
_CONTINUED_RE = re.compile(r"^\(?(?:CONT(?:'|’)?D|CONTINUED)\)?:?$")

# Title and ending markers: THE END / END OF ACT ONE / TITLE: ...
_TITLE_RE = re.compile(r"^(?:THE END|END(?: OF [A-Z0-9 ]+)?|TITLE(?: CARD)?\s*:.*)\.?$")

# Fully parenthesized line: (He steps forward)
_PARENTHETICAL_RE = re.compile(r"^\(.*\)$")

# Heading with a time of day: KITCHEN - NIGHT / ROOFTOP — MOMENTS LATER
_TIME_OF_DAY_RE = re.compile(
    r"^[A-Z0-9 .,'’/&-]+\s+[-–—]\s+"
    r"(?:DAY|NIGHT|MORNING|EVENING|AFTERNOON|DAWN|DUSK|SUNSET|SUNRISE|LATER|CONTINUOUS|MOMENTS LATER|SAME TIME)$"
)

# Asterisk-wrapped line: *lights dim*
_ASTERISK_RE = re.compile(r"^\*.+\*$")

# Divider of repeated dashes: --- / - - -
_DIVIDER_RE = re.compile(r"^(?:[-–—]\s*){3,}$")

# Inline attribution: NAME: dialogue / NAME (V.O.): dialogue
_INLINE_RE = re.compile(r"^([A-Z][A-Z0-9 '’_-]*?)\s*(\([^)]*\))?\s*:\s*(.+)$")

# Attribution with nothing said: NAME: / NAME (V.O.):
_EMPTY_INLINE_RE = re.compile(r"^([A-Z][A-Z0-9 '’_-]*?)\s*(\([^)]*\))?\s*:$")

# Standalone heading: NAME / NAME (CONT'D)
_HEADING_RE = re.compile(r"^([A-Z0-9][A-Z0-9 '’_-]*?)\s*(\([^)]*\))?$")

_DIRECTION_PATTERNS = (
    _SCENE_HEADING_RE,
    _TRANSITION_RE,
    _CONTINUED_RE,
    _TITLE_RE,
    _TIME_OF_DAY_RE,
    _ASTERISK_RE,
    _DIVIDER_RE,
)


def _is_direction_marker(line: str) -> bool:
    """True for lines that are always stage directions, wherever they appear."""
    return any(pattern.match(line) for pattern in _DIRECTION_PATTERNS)


def _normalize_name(name: str) -> str:
    """Strip parenthetical asides and collapse whitespace."""
    name = re.sub(r"\([^)]*\)", "", name)
    return " ".join(name.split())


def _is_plausible_name(name: str) -> bool:
    """Shape checks shared by inline and standalone name detection."""
    if not name or len(name) > MAX_NAME_LENGTH or "." in name:
        return False
    if not re.search(r"[A-Z]", name):
        return False
    return not any(word in RESERVED_TIME_WORDS for word in name.split())


def _inline_attribution(line: str) -> tuple[str, str] | None:
    """Return (character, text) for a `NAME: dialogue` line, else None."""
    match = _INLINE_RE.match(line)
    if not match:
        return None
    name = _normalize_name(match.group(1))
    text = match.group(3).strip()
    if not text or not _is_plausible_name(name):
        return None
    return name, text


def _is_empty_attribution(line: str) -> bool:
    match = _EMPTY_INLINE_RE.match(line)
    return bool(match) and _is_plausible_name(_normalize_name(match.group(1)))


def _standalone_heading(line: str) -> str | None:
    """Return the character name for a line that is only a name, else None."""
    match = _HEADING_RE.match(line)
    if not match:
        return None
    name = _normalize_name(match.group(1))
    if not _is_plausible_name(name) or len(name.split()) > MAX_NAME_WORDS:
        return None
    return name


def collect_characters(cues: list[Cue]) -> list[str]:
    """Distinct dialogue characters in first-seen order."""
    seen = set()
    characters = []
    for cue in cues:
        if cue.kind != DIALOGUE or cue.character in seen:
            continue
        seen.add(cue.character)
        characters.append(cue.character)
    return characters


def parse_script(text: str) -> tuple[list[Cue], list[str]]:
    """Parse script text into cues and the character roster.

    Accepts both `NAME: line` scripts and screenplay blocks where the name sits
    on its own line above the dialogue. Name detection is conservative: a line
    that could be a scene heading becomes a direction rather than a character.
    """
    cues = []
    speaker = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        # Delivery notes inside a speech keep the current speaker
        if speaker and _PARENTHETICAL_RE.match(line):
            cues.append(Cue(kind=DIRECTION, text=line, original_line=raw_line))
            continue

        if _PARENTHETICAL_RE.match(line) or _is_direction_marker(line):
            cues.append(Cue(kind=DIRECTION, text=line, original_line=raw_line))
            speaker = None
            continue

        attribution = _inline_attribution(line)
        if attribution:
            name, spoken = attribution
            cues.append(Cue(kind=DIALOGUE, text=spoken, original_line=raw_line, character=name))
            speaker = None
            continue

        if _is_empty_attribution(line):
            cues.append(Cue(kind=DIRECTION, text=line, original_line=raw_line))
            speaker = None
            continue

        heading = _standalone_heading(line)
        if heading:
            speaker = heading
            continue

        if speaker:
            cues.append(Cue(kind=DIALOGUE, text=line, original_line=raw_line, character=speaker))
        else:
            cues.append(Cue(kind=DIRECTION, text=line, original_line=raw_line))

    return cues, collect_characters(cues)
