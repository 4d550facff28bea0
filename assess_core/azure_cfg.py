# assess_core/azure_cfg.py
from __future__ import annotations
import os, json, pathlib
from dataclasses import dataclass
from openai import AsyncAzureOpenAI

_KEYS = ("endpoint", "api_key", "api_version", "deployment")


@dataclass(frozen=True)
class AzureSettings:
    endpoint: str
    api_key: str
    deployment: str
    api_version: str


def _from_env() -> dict[str, str]:
    return {k: os.getenv(f"AZURE_OPENAI_{k.upper()}", "") for k in _KEYS}


def _from_cfg(cfg: dict | None) -> dict[str, str]:
    if not cfg: return {}
    return {k: str(cfg.get(f"AZURE_OPENAI_{k.upper()}") or "") for k in _KEYS}


def _from_json(path: str = ".azure_config.json") -> dict[str, str]:
    p = pathlib.Path(path)
    if not p.exists(): return {}
    try:
        j = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    if not isinstance(j, dict): return {}
    return {k: str(j.get(k, "")) for k in _KEYS}


def settings(cfg: dict | None = None, path: str = ".azure_config.json") -> AzureSettings:
    """Env first, then the loaded config dict, then `.azure_config.json` for whatever is still missing."""

    merged = _from_env()
    for source in (_from_cfg(cfg), _from_json(path)):
        for k, v in source.items():
            if not merged.get(k): merged[k] = v
    missing = [k for k in _KEYS if not merged.get(k)]
    if missing:
        raise RuntimeError(f"Azure OpenAI not configured. Missing: {', '.join(missing)}")
    return AzureSettings(
        endpoint=merged["endpoint"],
        api_key=merged["api_key"],
        deployment=merged["deployment"],
        api_version=merged["api_version"],
    )


def client(s: AzureSettings | None = None) -> AsyncAzureOpenAI:
    s = s or settings()
    return AsyncAzureOpenAI(
        azure_endpoint=s.endpoint,
        api_key=s.api_key,
        api_version=s.api_version,
    )
