from __future__ import annotations
import json, logging, re
from typing import Any, Dict, List, Optional

import openai

from .azure_cfg import AzureSettings, client as azure_client, settings as azure_settings
from .errors import RetryableFetchError
from .question_bank import CATEGORY_VOCAB
from .remote import QuestionBatch
from .types import CandidateProfile

log = logging.getLogger(__name__)

_FENCE_RX = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.I)

_SYSTEM = ("You write multiple-choice assessment questions. "
           "Return ONLY a JSON object {\"questions\": [...]} where each item has keys: "
           "id, prompt, options (4 strings), correctAnswer (exactly one of the options), "
           "difficulty (easy|medium|hard), category, explanation. No prose.")

_SECTION_RULES = {
    "aptitude": "Quantitative and logical reasoning only. Never mention programming, code or software terms.",
    "programming": "General programming knowledge; short code snippets are allowed.",
    "employability": "Workplace scenarios and professional judgment. No code.",
}


def strip_fences(text: str) -> str:
    return _FENCE_RX.sub("", text or "").strip()


def build_prompt(section_type: str, category: Optional[str], candidate: CandidateProfile, count: int) -> str:
    cats = [category] if category else list(CATEGORY_VOCAB.get(section_type, ()))
    parts = [
        f"Section: {section_type}. {_SECTION_RULES.get(section_type, '')}",
        f"Write {count} questions. Use only these categories: {', '.join(cats)}.",
    ]
    if candidate.degree or candidate.interested_domains:
        parts.append(f"Candidate: {candidate.degree or 'graduate'}; interests: {', '.join(candidate.interested_domains) or 'general'}.")
    if section_type == "programming" and candidate.preferred_language:
        parts.append(f"Prefer {candidate.preferred_language} for any snippet.")
    return "\n".join(parts)


class LLMQuestionSource:
    """Question source backed by an Azure OpenAI chat deployment."""

    def __init__(self, settings: AzureSettings | None = None, client: Any = None, cfg: dict | None = None,
                 temperature: float = 0.4, max_tokens: int = 3000):
        self._settings = settings
        self._client = client
        self._cfg = cfg
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _ready(self) -> tuple[AzureSettings, Any]:
        if self._settings is None:
            self._settings = azure_settings(self._cfg)
        if self._client is None:
            self._client = azure_client(self._settings)
        return self._settings, self._client

    async def fetch(self, section_type: str, category: Optional[str],
                    candidate: CandidateProfile, count: int) -> QuestionBatch:
        try:
            s, cli = self._ready()
        except RuntimeError as e:
            raise RetryableFetchError(str(e), details={"backend": "azure"}) from e
        try:
            resp = await cli.chat.completions.create(
                model=s.deployment,
                messages=[{"role": "system", "content": _SYSTEM},
                          {"role": "user", "content": build_prompt(section_type, category, candidate, count)}],
                temperature=self.temperature, max_tokens=self.max_tokens, top_p=1.0,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise RetryableFetchError(f"azure error: {type(e).__name__}", details={"backend": "azure"}) from e

        raw = strip_fences(resp.choices[0].message.content or "")
        try:
            data: Dict[str, Any] = json.loads(raw)
        except ValueError as e:
            raise RetryableFetchError("azure returned non-JSON content", details={"backend": "azure"}) from e
        items: List[Any] = data.get("questions") if isinstance(data, dict) else None  # type: ignore[assignment]
        if not isinstance(items, list):
            raise RetryableFetchError("azure payload missing questions", details={"backend": "azure"})
        log.debug("azure source %s returned %d items", section_type, len(items))
        return QuestionBatch(questions=items, cache_source=None, personalized=True)
