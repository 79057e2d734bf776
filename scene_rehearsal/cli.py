"""CLI interface: load or generate a script, cast it, and rehearse it."""

import argparse
import asyncio
import logging
import sys
import threading
from datetime import datetime

from scene_rehearsal.config import load_settings, validate_settings
from scene_rehearsal.constants import VERSION, SCRIPT_KEY
from scene_rehearsal.dictation import MicrophoneDictation, NullDictation
from scene_rehearsal.engine import Phase, RehearsalEngine
from scene_rehearsal.errors import (
    GenerationFailed,
    IncompleteCasting,
    ParseYieldedNoCharacters,
    PersonaError,
    RehearsalError,
    SynthesisFailed,
    VoiceCatalogUnavailable,
)
from scene_rehearsal.generation import TextTransform, generate_dialogue, generate_script, rewrite_text
from scene_rehearsal.models import AI, DIALOGUE, ROLES, USER
from scene_rehearsal.persistence import (
    LocalStore,
    clear_session,
    get_api_key,
    get_client_id,
    save_prompt,
    set_api_key,
)
from scene_rehearsal.personas import PersonaStore
from scene_rehearsal.playback import SoundDevicePlayer
from scene_rehearsal.ratelimit import QuotaService
from scene_rehearsal.tts import SpeechSynth, save_speech
from scene_rehearsal.voices import VoiceCatalog


def _fail(message: str, hint: str | None = None):
    print(f"Error: {message}", file=sys.stderr)
    if hint:
        print(hint, file=sys.stderr)
    raise SystemExit(1)


def _open_store(args) -> LocalStore:
    return LocalStore(args.data_dir or args.settings.data_dir)


def _open_engine(args, store: LocalStore, catalog=None, player=None, dictation=None) -> RehearsalEngine:
    """Build an engine on the stored session, restoring script and cast."""
    quota = QuotaService(limit=args.settings.free_daily_limit, store=store)
    engine = RehearsalEngine(
        synth=SpeechSynth(quota=quota),
        player=player,
        dictation=dictation,
        store=store,
        catalog=catalog,
        api_key=get_api_key(store),
        client_id=get_client_id(store),
    )
    engine.restore()
    return engine


def _require_cast_script(engine: RehearsalEngine):
    if engine.phase is not Phase.CASTING:
        _fail("No script loaded.", "Run 'rehearse load <file>' or 'rehearse generate <prompt>' first.")


def _print_cast(engine: RehearsalEngine) -> None:
    print("Cast:")
    for name in engine.characters:
        assignment = engine.assignments.get(name)
        if assignment is None:
            print(f"  {name:<21} → unassigned")
        elif assignment.role == USER:
            print(f"  {name:<21} → you")
        else:
            print(f"  {name:<21} → ai ({assignment.voice_id or 'no voice'})")


def _print_summary(engine: RehearsalEngine) -> None:
    dialogue = sum(1 for c in engine.cues if c.kind == DIALOGUE)
    direction = len(engine.cues) - dialogue
    print(f"Parsed {len(engine.cues)} cues ({dialogue} dialogue, {direction} direction)")
    print(f"Characters: {', '.join(engine.characters)}")
    _print_cast(engine)


def _confirm(engine: RehearsalEngine, text: str) -> None:
    try:
        engine.confirm_script(text)
    except ParseYieldedNoCharacters as e:
        _fail(str(e))


def cmd_load(args):
    """Load a script from a text file."""
    try:
        with open(args.file) as f:
            text = f.read()
    except FileNotFoundError:
        _fail(f"File not found: {args.file}")

    if not text.strip():
        _fail(f"File is empty: {args.file}")

    store = _open_store(args)
    engine = _open_engine(args, store, catalog=VoiceCatalog().load())
    _confirm(engine, text)
    _print_summary(engine)
    print("Run 'rehearse set <CHARACTER> user|ai [voice]' to recast, or 'rehearse rehearse' to start.")


def cmd_generate(args):
    """Generate a new script from a prompt, or from the last prompt used."""
    store = _open_store(args)
    engine = _open_engine(args, store, catalog=VoiceCatalog().load())
    prompt = args.prompt or engine.prompt
    if not prompt:
        _fail("No prompt given and none saved.", "Run 'rehearse generate \"<what the scene is about>\"'.")
    save_prompt(store, prompt)
    if not args.prompt:
        print(f"Using saved prompt: {prompt}")

    transform = TextTransform(api_key=args.settings.gemini_api_key, model=args.settings.model)
    print("Generating script...")
    try:
        script = generate_script(transform, prompt)
    except GenerationFailed as e:
        _fail(f"Script generation failed: {e}", "Check GEMINI_API_KEY and try again.")

    print(script)
    print()
    _confirm(engine, script)
    _print_summary(engine)


def cmd_show(args):
    """Print the parsed cue list."""
    engine = _open_engine(args, _open_store(args))
    _require_cast_script(engine)
    for i, cue in enumerate(engine.cues):
        if cue.kind == DIALOGUE:
            print(f"{i:>3}  {cue.character}: {cue.text}")
        else:
            print(f"{i:>3}  [{cue.text}]")


def cmd_cast(args):
    """Show the cast, optionally re-running auto-casting."""
    store = _open_store(args)
    if args.auto:
        engine = _open_engine(args, store, catalog=VoiceCatalog().load())
        _require_cast_script(engine)
        engine.assignments = {}
        _confirm(engine, engine.script)
    else:
        engine = _open_engine(args, store)
        _require_cast_script(engine)
    _print_cast(engine)


def cmd_set(args):
    """Assign a character to the user or to an AI voice."""
    voices = VoiceCatalog()
    entries = voices.load()
    engine = _open_engine(args, _open_store(args), catalog=entries)
    _require_cast_script(engine)

    matches = [c for c in engine.characters if c.lower() == args.character.lower()]
    if not matches:
        _fail(f"Unknown character: {args.character}", f"Characters: {', '.join(engine.characters)}")
    character = matches[0]

    # An empty catalog means the voice list is unreachable; accept the id as given
    if args.voice and entries and voices.find(args.voice) is None:
        _fail(f"Unknown voice: {args.voice}", "Run 'rehearse voices' to list them.")
    if args.role == AI and not args.voice:
        print(f"Warning: {character} has no voice; their lines will be skipped after a pause.", file=sys.stderr)
    engine.set_assignment(character, args.role, args.voice)
    print(f"Updated: {character} → {args.role}" + (f" ({args.voice})" if args.voice else ""))


def cmd_voices(args):
    """List available synthesis voices."""
    try:
        voices = VoiceCatalog().load(strict=True)
    except VoiceCatalogUnavailable as e:
        _fail(f"Could not fetch voices: {e}", "Check your network connection and try again.")
    if args.filter:
        needle = args.filter.lower()
        voices = [v for v in voices if needle in v.id.lower() or needle in v.display_name.lower()]
    if not voices:
        print("No matching voices found.")
        return
    print("Available voices:")
    for v in voices:
        print(f"  {v.id:<32} {v.display_name}")


def cmd_reset(args):
    """Forget the saved script, prompt and cast."""
    cleared = clear_session(_open_store(args))
    print(f"Cleared: {', '.join(cleared)}" if cleared else "Nothing to clear.")


def cmd_status(args):
    """Show the saved session and synthesis quota."""
    store = _open_store(args)
    engine = _open_engine(args, store)
    client_id = get_client_id(store)
    has_key = get_api_key(store) is not None
    status = QuotaService(limit=args.settings.free_daily_limit, store=store).get_status(client_id, has_api_key=has_key)

    print(f"Client:  {client_id}")
    if engine.phase is Phase.CASTING:
        print(f"Script:  {len(engine.cues)} cues, {len(engine.characters)} characters")
        _print_cast(engine)
    elif store.load(SCRIPT_KEY):
        print("Script:  saved, but no characters detected")
    else:
        print("Script:  none")
    if engine.prompt:
        print(f"Prompt:  {engine.prompt}")

    if status.tier == "unlimited":
        print("Quota:   unlimited (own API key)")
    else:
        reset = datetime.fromtimestamp(status.reset_time).strftime("%Y-%m-%d %H:%M")
        print(f"Quota:   {status.remaining}/{status.limit} free requests left (resets {reset})")
        print(f"         {status.character_limit} characters max per line")

    for warning in validate_settings(args.settings):
        print(f"Warning: {warning}", file=sys.stderr)


def cmd_key(args):
    """Set or clear the bring-your-own API key."""
    store = _open_store(args)
    if args.action == "set":
        if not args.value:
            _fail("'key set' requires <api_key>")
        set_api_key(store, args.value)
        print("API key saved. Synthesis is no longer limited by the free quota.")
    else:
        set_api_key(store, None)
        print("API key cleared.")


def cmd_say(args):
    """Synthesize one line to an MP3 file."""
    try:
        path = save_speech(args.text, args.voice, args.output)
    except SynthesisFailed as e:
        _fail(f"Synthesis failed: {e}")
    print(f"Wrote {path}")


def cmd_rewrite(args):
    """Rewrite text in a persona's voice."""
    persona = PersonaStore(args.data_dir or args.settings.data_dir).get(args.persona)
    if persona is None:
        _fail(f"Unknown persona: {args.persona}", "Run 'rehearse personas list' to see them.")
    transform = TextTransform(api_key=args.settings.gemini_api_key, model=args.settings.model)
    try:
        print(rewrite_text(transform, args.text, persona.system_prompt))
    except GenerationFailed as e:
        _fail(f"Rewrite failed: {e}")


def cmd_dialogue(args):
    """Improvise one character's response to a scenario."""
    transform = TextTransform(api_key=args.settings.gemini_api_key, model=args.settings.model)
    try:
        print(generate_dialogue(transform, args.scenario, args.name, args.traits))
    except GenerationFailed as e:
        _fail(f"Dialogue generation failed: {e}")


def cmd_personas(args):
    """List, create or delete personas."""
    personas = PersonaStore(args.data_dir or args.settings.data_dir)

    if args.action == "list":
        for persona in personas.all_personas().values():
            marker = "*" if persona.is_custom else " "
            print(f" {marker} {persona.id:<20} {persona.label} ({persona.voice_id})")
        return

    if args.action == "create":
        if len(args.values) < 2:
            _fail("'personas create' requires <name> and <description>")
        transform = None
        if args.settings.gemini_api_key:
            transform = TextTransform(api_key=args.settings.gemini_api_key, model=args.settings.model)
        catalog = [] if args.voice else VoiceCatalog().load()
        try:
            persona = personas.create(args.values[0], args.values[1], voice_id=args.voice,
                                      transform=transform, catalog=catalog)
        except PersonaError as e:
            _fail(str(e))
        print(f"Created persona: {persona.id} ({persona.voice_id})")
        return

    if not args.values:
        _fail("'personas delete' requires <id>")
    try:
        deleted = personas.delete(args.values[0])
    except PersonaError as e:
        _fail(str(e))
    print(f"Deleted: {args.values[0]}" if deleted else f"Persona not found: {args.values[0]}")


# --- Interactive rehearsal ---

REHEARSE_HELP = "Enter = done with your line, s = skip, p = pause/resume, r = restart, e = edit script, k <KEY> = use API key, q = quit"


def _format_reset(timestamp) -> str:
    if not timestamp:
        return "later"
    return datetime.fromtimestamp(timestamp).strftime("%H:%M")


def _make_printer(engine: RehearsalEngine):
    warned = set()

    def on_event(event: str, payload: dict) -> None:
        if event == "cue":
            cue = payload["cue"]
            if cue.kind != DIALOGUE:
                print(f"   [{cue.text}]")
                return
            assignment = engine.assignments.get(cue.character)
            if assignment is not None and assignment.role == USER:
                print(f"▶  {cue.character} (you): {cue.text}")
                print("   ...your line. Press Enter when done.")
            else:
                print(f"   {cue.character}: {cue.text}")
        elif event == "transcript":
            print(f'   heard: "{payload["text"]}"')
        elif event == "synthesis_failed":
            print(f"   [could not voice this line: {payload['error']} — moving on]")
        elif event == "dictation_unsupported" and "dictation" not in warned:
            warned.add("dictation")
            print("   [speech recognition unavailable — say your lines and press Enter]")
        elif event == "rate_limited":
            error = payload["error"]
            print("!! Free synthesis quota used up. Rehearsal paused.")
            print(f"!! Quota resets at {_format_reset(error.reset_time)}. {error.upgrade_hint}")
            print("!! Type 'k <KEY>' to continue with your own key.")
        elif event == "phase":
            if payload["phase"] is Phase.PAUSED and engine.rate_limit is None:
                print("   [paused — p to resume]")
        elif event == "complete":
            print("Scene complete. r to run it again, q to quit.")

    return on_event


def _start_stdin_reader(loop, queue: asyncio.Queue) -> None:
    """Feed stdin lines into the queue from a daemon thread; None means EOF."""
    def read():
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line.strip())
        loop.call_soon_threadsafe(queue.put_nowait, None)

    threading.Thread(target=read, daemon=True).start()


def _handle_command(engine: RehearsalEngine, command: str) -> bool:
    """Apply one typed command. Returns False when the user quits."""
    if command in ("", "d"):
        if not engine.done() and engine.phase is Phase.REHEARSING:
            print("   [not your line yet]")
    elif command == "s":
        engine.skip()
    elif command == "p":
        try:
            engine.toggle_pause()
        except RehearsalError as e:
            print(f"   [{e}]")
    elif command == "r":
        engine.restart()
    elif command == "e":
        engine.edit_script()
        print("   [rehearsal ended; revise the script, then run 'rehearse load <file>']")
        return False
    elif command.startswith("k "):
        engine.set_credential(command[2:].strip())
        print("   [API key saved]")
        if engine.phase is Phase.PAUSED:
            engine.toggle_pause()
    elif command == "q":
        return False
    else:
        print(REHEARSE_HELP)
    return True


async def _rehearse(args, store: LocalStore) -> None:
    loop = asyncio.get_running_loop()
    catalog = await VoiceCatalog().load_async()

    dictation = NullDictation()
    if args.settings.gemini_api_key and not args.no_dictation:
        transform = TextTransform(api_key=args.settings.gemini_api_key, model=args.settings.model)
        dictation = MicrophoneDictation(transform, loop)

    engine = _open_engine(args, store, catalog=catalog, player=SoundDevicePlayer(loop), dictation=dictation)
    _require_cast_script(engine)
    engine.subscribe(_make_printer(engine))

    try:
        engine.begin_rehearsal()
    except IncompleteCasting as e:
        _fail(str(e), "Run 'rehearse set <CHARACTER> user|ai [voice]' for each of them.")

    print(REHEARSE_HELP)
    queue = asyncio.Queue()
    _start_stdin_reader(loop, queue)
    try:
        while True:
            command = await queue.get()
            if command is None or not _handle_command(engine, command):
                break
    finally:
        engine.stop()
        engine.close()


def cmd_rehearse(args):
    """Rehearse the loaded script interactively."""
    asyncio.run(_rehearse(args, _open_store(args)))


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="rehearse",
        description="Scene Rehearsal — run lines with AI scene partners",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--data-dir", help="Where the session is stored (default: $REHEARSE_DATA_DIR or .rehearse)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # load
    load_parser = subparsers.add_parser("load", help="Load a script from a text file")
    load_parser.add_argument("file", help="Path to the script text file")
    load_parser.set_defaults(func=cmd_load)

    # generate
    generate_parser = subparsers.add_parser("generate", help="Generate a script from a prompt")
    generate_parser.add_argument("prompt", nargs="?", help="What the scene should be about (default: the last prompt)")
    generate_parser.set_defaults(func=cmd_generate)

    # show
    show_parser = subparsers.add_parser("show", help="Show the parsed cues")
    show_parser.set_defaults(func=cmd_show)

    # cast
    cast_parser = subparsers.add_parser("cast", help="Show the cast")
    cast_parser.add_argument("--auto", action="store_true", help="Re-run automatic casting")
    cast_parser.set_defaults(func=cmd_cast)

    # set
    set_parser = subparsers.add_parser("set", help="Assign a character to you or an AI voice")
    set_parser.add_argument("character", help="Character name")
    set_parser.add_argument("role", choices=ROLES, help="Who speaks the character")
    set_parser.add_argument("voice", nargs="?", help="Voice id for AI characters")
    set_parser.set_defaults(func=cmd_set)

    # voices
    voices_parser = subparsers.add_parser("voices", help="List available voices")
    voices_parser.add_argument("--filter", help="Filter voices by substring")
    voices_parser.set_defaults(func=cmd_voices)

    # rehearse
    rehearse_parser = subparsers.add_parser("rehearse", help="Rehearse the loaded script")
    rehearse_parser.add_argument("--no-dictation", action="store_true", help="Don't record your lines")
    rehearse_parser.set_defaults(func=cmd_rehearse)

    # reset
    reset_parser = subparsers.add_parser("reset", help="Forget the saved script, prompt and cast")
    reset_parser.set_defaults(func=cmd_reset)

    # status
    status_parser = subparsers.add_parser("status", help="Show session and quota status")
    status_parser.set_defaults(func=cmd_status)

    # key
    key_parser = subparsers.add_parser("key", help="Set or clear your own API key")
    key_parser.add_argument("action", choices=("set", "clear"))
    key_parser.add_argument("value", nargs="?", help="API key")
    key_parser.set_defaults(func=cmd_key)

    # say
    say_parser = subparsers.add_parser("say", help="Synthesize one line to an MP3 file")
    say_parser.add_argument("text", help="Text to speak")
    say_parser.add_argument("--voice", required=True, help="Voice id")
    say_parser.add_argument("-o", "--output", default="line.mp3", help="Output MP3 path")
    say_parser.set_defaults(func=cmd_say)

    # rewrite
    rewrite_parser = subparsers.add_parser("rewrite", help="Rewrite text in a persona's voice")
    rewrite_parser.add_argument("text", help="Text to rewrite")
    rewrite_parser.add_argument("--persona", required=True, help="Persona id")
    rewrite_parser.set_defaults(func=cmd_rewrite)

    # dialogue
    dialogue_parser = subparsers.add_parser("dialogue", help="Improvise a character's response to a scenario")
    dialogue_parser.add_argument("scenario", help="The situation the character responds to")
    dialogue_parser.add_argument("--name", required=True, help="Character name")
    dialogue_parser.add_argument("--traits", default="", help="Personality traits")
    dialogue_parser.set_defaults(func=cmd_dialogue)

    # personas
    personas_parser = subparsers.add_parser("personas", help="List, create or delete personas")
    personas_parser.add_argument("action", choices=("list", "create", "delete"))
    personas_parser.add_argument("values", nargs="*", help="create: <name> <description>; delete: <id>")
    personas_parser.add_argument("--voice", help="Voice id for a new persona")
    personas_parser.set_defaults(func=cmd_personas)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    args.settings = load_settings()
    args.func(args)
