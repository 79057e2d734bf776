"""All magic numbers and configuration constants."""

MAX_NAME_LENGTH = 21                # chars — longest string accepted as a character name
MAX_NAME_WORDS = 3                  # words — longest standalone character heading
RESERVED_TIME_WORDS = ("LATER", "MEANWHILE", "EARLIER", "MOMENTS", "CONTINUOUS", "SAME")
DIRECTION_DELAY = 2.0               # seconds before a stage direction auto-advances
NO_VOICE_DELAY = 1.5                # seconds before an AI line with no voice auto-advances
SYNTHESIS_ERROR_DELAY = 1.0         # seconds before a failed AI line auto-advances
TTS_RETRY_COUNT = 3                 # max attempts per synthesis request
TTS_RETRY_BASE_DELAY = 1.0          # seconds — base delay for exponential backoff
TTS_RATE = "+0%"                    # edge-tts speech rate
VOICE_LOCALE_PREFIX = "en-"         # catalog filter; "" keeps every locale
FREE_DAILY_LIMIT = 10               # free synthesis requests per client per window
FREE_CHAR_LIMIT = 500               # max characters per free-tier request
QUOTA_WINDOW_SECONDS = 24 * 60 * 60 # sliding quota window
UPGRADE_HINT = "Add your own API key with 'rehearse key set <KEY>' for unlimited synthesis."
GEMINI_MODEL = "gemini-2.5-flash"
DICTATION_SAMPLE_RATE = 16000       # Hz — microphone capture rate
DATA_DIR = ".rehearse"              # local key/value store location
PERSONA_DB_FILE = "personas.json"
SCRIPT_KEY = "script"
PROMPT_KEY = "prompt"
ASSIGNMENTS_KEY = "assignments"
CLIENT_ID_KEY = "client_id"
API_KEY_KEY = "api_key"
QUOTA_KEY = "quota"
VERSION = "0.1.0"
