import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

SETTINGS_FILE = Path(__file__).resolve()
PACKAGE_DIR   = SETTINGS_FILE.parents[1]
PROJECT_ROOT  = PACKAGE_DIR.parent

DATA_DIR            = Path(os.getenv("DATA_DIR", PROJECT_ROOT / "data"))
PERSONAL_DATA_PATH  = Path(os.getenv("PERSONAL_DATA_PATH", DATA_DIR / "personal_data.json"))
EMBEDDINGS_PATH     = Path(os.getenv("EMBEDDINGS_PATH", DATA_DIR / "embeddings.json"))

# Google OAuth material; env JSON wins over files (hosted deploys have no disk)
CREDENTIALS_PATH = Path(os.getenv("GOOGLE_CREDENTIALS_PATH", PROJECT_ROOT / "credentials.json"))
TOKEN_PATH       = Path(os.getenv("GOOGLE_TOKEN_PATH", PROJECT_ROOT / "token.json"))
CALENDAR_MAX_RESULTS = int(os.getenv("CALENDAR_MAX_RESULTS", "100"))

EMBED_MODEL        = os.getenv("EMBED_MODEL", "text-embedding-3-small")
OPENAI_MODEL       = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TEMPERATURE = float(os.getenv("OPENAI_TEMPERATURE", "0.5"))
OPENAI_MAX_TOKENS  = int(os.getenv("OPENAI_MAX_TOKENS", "500"))

SUBJECT_NAME = os.getenv("SUBJECT_NAME", "Varun Sharma")
PROJECT_NAME = os.getenv("PROJECT_NAME", "Digital Twin")
# Calendars whose display name contains one of these are preferred over "primary"
CALENDAR_MATCH_TERMS = [
    t.strip().lower()
    for t in os.getenv("CALENDAR_MATCH_TERMS", f"{PROJECT_NAME},{SUBJECT_NAME.split()[0]}").split(",")
    if t.strip()
]

PERSONA_PROMPT_PATH = os.getenv("PERSONA_PROMPT_PATH")
