"""Text generation via Gemini: new scripts, persona rewrites, dialogue."""

import logging
import re

from google import genai
from google.genai import types

from scene_rehearsal.constants import GEMINI_MODEL
from scene_rehearsal.errors import GenerationFailed

logger = logging.getLogger(__name__)

SCRIPT_FRAMING = (
    "You are a playwright writing short scenes for actors to rehearse.\n"
    "Write a scene for the request below. Format every spoken line as\n"
    "NAME: dialogue\n"
    "with the character NAME in capital letters, and put stage directions on\n"
    "their own line in parentheses. Output only the scene, no title or commentary."
)

REWRITE_FRAMING = "Rewrite the following text in character:"

SYSTEM_PROMPT_FRAMING = """You are a professional acting coach creating a detailed "Method Acting" system prompt for an AI voice actor.

Character Name: {name}
Character Vibe/Description: {description}

Create a detailed system prompt (3-5 sentences) covering who they are, their vocal rhythm and speech patterns, their vocabulary and catchphrases, their world, and their outlook.

Output ONLY the system prompt itself, starting with "You are"."""


class TextTransform:
    """Thin wrapper around a Gemini model: prompt in, text out.

    The client is created on first use so that importing this module or
    building the object never needs credentials.
    """

    def __init__(self, api_key: str | None = None, model: str = GEMINI_MODEL, client=None):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key) if self.api_key else genai.Client()
        return self._client

    def complete(self, contents) -> str:
        """Send contents to the model. Raises GenerationFailed on any error."""
        try:
            response = self.client.models.generate_content(model=self.model, contents=contents)
        except Exception as e:
            logger.error("Gemini request failed: %s", e)
            raise GenerationFailed(str(e)) from e
        text = (response.text or "").strip()
        if not text:
            raise GenerationFailed("Model returned no text")
        return text

    def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        """Transcribe recorded speech to plain text."""
        return self.complete([
            types.Part.from_bytes(data=audio, mime_type=mime_type),
            "Transcribe this speech exactly. Output only the words spoken.",
        ])


def _strip_fences(text: str) -> str:
    """Remove a surrounding ``` block some models wrap scripts in."""
    match = re.match(r"^```[a-zA-Z]*\n(.*)\n```$", text.strip(), re.DOTALL)
    return match.group(1) if match else text


def generate_script(transform: TextTransform, prompt: str) -> str:
    """Ask the model for a new scene. Raises GenerationFailed."""
    if not prompt.strip():
        raise GenerationFailed("Prompt is empty")
    return _strip_fences(transform.complete(f"{SCRIPT_FRAMING}\n\nRequest: {prompt}"))


def rewrite_text(transform: TextTransform, text: str, persona_prompt: str) -> str:
    return transform.complete(f"{persona_prompt}\n\n{REWRITE_FRAMING}\n{text}")


def generate_dialogue(transform: TextTransform, scenario: str, name: str, traits: str) -> str:
    prompt = (
        f"You are {name}, a character with these traits: {traits}.\n\n"
        f"Given this scenario: {scenario}\n\n"
        f"Generate a natural, in-character response as {name}."
    )
    return transform.complete(prompt)


def write_system_prompt(transform: TextTransform, name: str, description: str) -> str:
    """Persona system prompt from the model, or a template if the model fails."""
    try:
        prompt = transform.complete(SYSTEM_PROMPT_FRAMING.format(name=name, description=description))
    except GenerationFailed:
        logger.warning("Falling back to template system prompt for %s", name)
        return (
            f"You are {name}. Your character is described as: {description}. "
            "Fully embody this persona in every word you speak."
        )
    return re.sub(r"^(Here is|Here's).*?:\s*", "", prompt, flags=re.IGNORECASE).strip()
