"""Voice catalog: the synthesis voices offered for AI characters."""

import asyncio
import hashlib
import logging

import edge_tts

from scene_rehearsal.constants import VOICE_LOCALE_PREFIX
from scene_rehearsal.errors import VoiceCatalogUnavailable
from scene_rehearsal.models import VoiceEntry

logger = logging.getLogger(__name__)


def _entry_from_raw(raw: dict) -> VoiceEntry | None:
    """Normalize one voice record from edge-tts or an ElevenLabs-style API."""
    voice_id = raw.get("ShortName") or raw.get("voice_id") or raw.get("id")
    if not voice_id:
        return None
    display = raw.get("FriendlyName") or raw.get("name") or raw.get("displayName") or voice_id
    locale = raw.get("Locale") or raw.get("locale") or ""
    return VoiceEntry(id=voice_id, display_name=display, locale=locale)


def normalize_catalog(result, locale_prefix: str = VOICE_LOCALE_PREFIX) -> list[VoiceEntry]:
    """Accept a bare list of voices or an object with a `voices` list."""
    if isinstance(result, dict):
        result = result.get("voices")
    if not isinstance(result, list):
        logger.warning("Unexpected voice catalog format: %r", type(result).__name__)
        return []

    entries = []
    for raw in result:
        if not isinstance(raw, dict):
            continue
        entry = _entry_from_raw(raw)
        if entry is None:
            continue
        if locale_prefix and entry.locale and not entry.locale.startswith(locale_prefix):
            continue
        entries.append(entry)
    return entries


async def fetch_voices():
    return await edge_tts.list_voices()


class VoiceCatalog:
    """Fetches the voice list once per session and caches it.

    By default load() never raises: on any failure it logs and returns an
    empty list, which callers treat as "no voices yet". With strict=True the
    failure is raised as VoiceCatalogUnavailable instead. reload() forces a
    fresh fetch.
    """

    def __init__(self, fetch=fetch_voices, locale_prefix: str = VOICE_LOCALE_PREFIX):
        self.fetch = fetch
        self.locale_prefix = locale_prefix
        self._entries = None

    async def load_async(self, strict: bool = False) -> list[VoiceEntry]:
        if self._entries is None:
            try:
                result = await self.fetch()
            except Exception as e:
                logger.error("Failed to fetch voices: %s", e)
                if strict:
                    raise VoiceCatalogUnavailable(str(e)) from e
                return []
            self._entries = normalize_catalog(result, self.locale_prefix)
        return list(self._entries)

    def load(self, strict: bool = False) -> list[VoiceEntry]:
        """Blocking variant for callers outside an event loop."""
        return asyncio.run(self.load_async(strict=strict))

    def reload(self) -> list[VoiceEntry]:
        self._entries = None
        return self.load()

    def find(self, voice_id: str) -> VoiceEntry | None:
        for entry in self._entries or []:
            if entry.id == voice_id:
                return entry
        return None


def hash_voice(name: str, catalog: list[VoiceEntry]) -> str | None:
    """Deterministic voice for a name via sha256 hash."""
    if not catalog:
        return None
    h = hashlib.sha256(name.lower().encode()).hexdigest()
    return catalog[int(h, 16) % len(catalog)].id
