"""Configuration constants for the Riesel primality tester."""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(PROJECT_ROOT / ".env")


def _env_int(name, default):
    value = os.environ.get(name, "")
    if not value.strip():
        return default
    return int(value, 0)


# Lucas sequence
#   U(2) is the first term so that h*2^n-1 is prime iff U(n) == 0 mod h*2^n-1
FIRST_TERM_INDEX = 2
SEED_SEARCH_LIMIT = _env_int("RIESEL_SEED_SEARCH_LIMIT", 2 ** 20)
PREVIEW_WINDOW = _env_int("RIESEL_PREVIEW_WINDOW", 1000)

# Checkpointing
CHECKPOINT_FMT_VERSION = 2
DEF_CHKPT_SECS = 3600       # >0 timer, 0 every term, <0 milestones/signals only
DEF_DIR_MODE = 0o775
ROTATION_DEPTH = 3
CHECKPOINT_DIR = os.environ.get("RIESEL_CHECKPOINT_DIR") or None
CHECKPOINT_SECS = _env_int("RIESEL_CHECKPOINT_SECS", DEF_CHKPT_SECS)
CHECKPOINT_MULTIPLE = _env_int("RIESEL_CHECKPOINT_MULTIPLE", 0)

# Signal flag counters saturate here and restart at 1
FLAG_MAX = 2 ** 63 - 1

# Files inside the checkpoint directory
LOCK_FILE = "chk.lock"
CUR_FILE = "chk.cur.pt"
TMP_FILE = "chk.tmp.pt"
PREV_FILES = [f"chk.prev{k}.pt" for k in range(ROTATION_DEPTH)]
MILESTONE_FILES = {
    "first": "chk.first.pt",
    "preview": "chk.preview.pt",
    "nextlast": "chk.nextlast.pt",
    "end": "chk.end.pt",
}
RESULT_FILES = {
    "prime": "result.prime.pt",
    "composite": "result.composite.pt",
    "error": "result.error.pt",
}
