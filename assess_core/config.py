from __future__ import annotations
import os, json, pathlib, random


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str | None) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


TARGET_QUESTION_COUNT: int = 10

FETCH_TIMEOUT_SEC: float = 25.0
RETRY_MAX_ATTEMPTS: int = 2
RETRY_BASE_DELAY_SEC: float = 1.0
RETRY_MAX_DELAY_SEC: float = 10.0
RETRY_JITTER_SEC: float = 1.0

MEMORY_CACHE_TTL_SEC: float = 5 * 60
FILE_CACHE_TTL_SEC: float = 24 * 60 * 60
CACHE_SCHEMA_VERSION: int = 1

SNAPSHOT_MAX_AGE_SEC: float = 3 * 60 * 60
AUTOSAVE_INTERVAL_SEC: float = 30.0
TIMER_TICK_SEC: float = 1.0
PRELOAD_ANSWER_RATIO: float = 0.5

MIN_CATEGORY_SAMPLE: int = 3
STRENGTH_COUNT: int = 3
PERCENTILE_FACTOR: float = 0.9
READINESS_FACTOR: float = 0.95
PASS_THRESHOLD: int = 60
EASY_ACCURACY_FLOOR: float = 0.6

TELEMETRY_BUFFER_MAX: int = 100
TELEMETRY_TIMEOUT_SEC: float = 1.5

DATA_DIR: str = "data"
# // env overrides for staging/ops; defaults remain conservative.
TARGET_QUESTION_COUNT = _env_int("TARGET_QUESTION_COUNT", TARGET_QUESTION_COUNT)
FETCH_TIMEOUT_SEC = _env_float("FETCH_TIMEOUT_SEC", FETCH_TIMEOUT_SEC)
RETRY_MAX_ATTEMPTS = _env_int("RETRY_MAX_ATTEMPTS", RETRY_MAX_ATTEMPTS)
MEMORY_CACHE_TTL_SEC = _env_float("MEMORY_CACHE_TTL", MEMORY_CACHE_TTL_SEC)
FILE_CACHE_TTL_SEC = _env_float("FILE_CACHE_TTL", FILE_CACHE_TTL_SEC)
AUTOSAVE_INTERVAL_SEC = _env_float("AUTOSAVE_INTERVAL_SEC", AUTOSAVE_INTERVAL_SEC)
DATA_DIR = _env_str("DATA_DIR", DATA_DIR) or DATA_DIR


def load_config() -> dict:
    """`config.json` in the working directory, overlaid with the environment at call time."""
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except Exception: cfg = {}
    if not isinstance(cfg, dict): cfg = {}
    e = os.environ
    for k in ("QUESTION_BACKEND","QUESTION_SOURCE_URL","REPORT_SOURCE_URL","TELEMETRY_URL","DATA_DIR"):
        if e.get(k): cfg[k] = e.get(k)
    for k in ("AZURE_OPENAI_ENDPOINT","AZURE_OPENAI_API_VERSION","AZURE_OPENAI_API_KEY","AZURE_OPENAI_DEPLOYMENT"):
        if e.get(k): cfg[k] = e.get(k)
    if e.get("SEED"): cfg["SEED"] = int(e.get("SEED"))
    return cfg
def get_backend(cfg: dict) -> str|None:
    b = (cfg.get("QUESTION_BACKEND") or "").lower().strip()
    if b in ("http","azure"): return b
    return "http" if cfg.get("QUESTION_SOURCE_URL") else None
def seed_rng(cfg: dict):
    s = cfg.get("SEED")
    if s is not None:
        random.seed(int(s))
