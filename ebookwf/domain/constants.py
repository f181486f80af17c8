from pathlib import Path

# Instance storage
DEFAULT_SESSIONS_ROOT = Path(".ebookwf/sessions")
INSTANCE_FILENAME = "instance.json"
INSTANCE_TEMP_SUFFIX = ".json.tmp"
EXPORTS_DIRNAME = "exports"

# Configuration
CONFIG_DIRNAME = ".ebookwf"
CONFIG_FILENAME = "config.yml"
API_KEY_ENV_VAR = "OPENROUTER_API_KEY"

# Generation
DEFAULT_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
SYSTEM_MESSAGE = (
    "You are an expert eBook creator assistant helping to generate high-quality, "
    "professional content for an eBook. Follow the instructions carefully and "
    "provide only the requested output format."
)

# Export
DEFAULT_EXPORT_STEM = "ebook"
