"""HTTP collaborators: the remote question generator and the remote report builder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from .config import FETCH_TIMEOUT_SEC, get_backend
from .errors import RetryableFetchError
from .schemas import QuestionRequest, QuestionSourceResponse, ReportRequest
from .types import CandidateProfile


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuestionBatch:
    questions: List[Any]
    cache_source: Optional[str] = None
    personalized: bool = False
    cached: bool = False


class QuestionSource(Protocol):
    async def fetch(self, section_type: str, category: Optional[str],
                    candidate: CandidateProfile, count: int) -> QuestionBatch: ...


async def _post_json(client: Optional[httpx.AsyncClient], url: str, body: Dict[str, Any],
                     timeout: float) -> Any:
    try:
        if client is not None:
            resp = await client.post(url, json=body, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as c:
                resp = await c.post(url, json=body)
    except httpx.HTTPError as e:
        raise RetryableFetchError(f"transport error: {type(e).__name__}", details={"url": url, "error": str(e)}) from e

    # any non-2xx is retryable on this contract, 4xx included
    if not resp.is_success:
        raise RetryableFetchError(f"HTTP {resp.status_code}", details={"url": url, "status": resp.status_code})
    try:
        return resp.json()
    except ValueError as e:
        raise RetryableFetchError("malformed JSON", details={"url": url}) from e


class RemoteQuestionSource:
    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = FETCH_TIMEOUT_SEC):
        self.url = url
        self.client = client
        self.timeout = timeout

    async def fetch(self, section_type: str, category: Optional[str],
                    candidate: CandidateProfile, count: int) -> QuestionBatch:
        body = QuestionRequest(
            section_type=section_type,
            category=category,
            candidate_profile=candidate.to_dict(),
            requested_count=count,
        ).model_dump(by_alias=True, exclude_none=True)
        payload = await _post_json(self.client, self.url, body, self.timeout)
        try:
            parsed = QuestionSourceResponse.model_validate(payload)
        except ValidationError as e:
            raise RetryableFetchError("response schema mismatch",
                                      details={"url": self.url, "errors": e.error_count()}) from e
        log.debug("remote source %s returned %d items (cached=%s)", section_type, len(parsed.questions), parsed.cached)
        return QuestionBatch(
            questions=list(parsed.questions),
            cache_source=parsed.cache_source,
            personalized=parsed.is_personalized,
            cached=parsed.cached,
        )


class RemoteReportSource:
    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = FETCH_TIMEOUT_SEC):
        self.url = url
        self.client = client
        self.timeout = timeout

    async def build(self, candidate: CandidateProfile, scores: Dict[str, Any]) -> Dict[str, Any]:
        body = ReportRequest(candidate_profile=candidate.to_dict(), scores=scores).model_dump(by_alias=True)
        payload = await _post_json(self.client, self.url, body, self.timeout)
        if not isinstance(payload, dict):
            raise RetryableFetchError("report payload is not an object", details={"url": self.url})
        return payload


def build_question_source(cfg: dict) -> Optional[QuestionSource]:
    backend = get_backend(cfg)
    if backend == "http":
        url = cfg.get("QUESTION_SOURCE_URL")
        if not url:
            log.warning("QUESTION_BACKEND=http without QUESTION_SOURCE_URL; emergency content only")
            return None
        return RemoteQuestionSource(str(url))
    if backend == "azure":
        from .llm_bridge import LLMQuestionSource
        return LLMQuestionSource(cfg=cfg)
    return None


def build_report_source(cfg: dict) -> Optional[RemoteReportSource]:
    url = cfg.get("REPORT_SOURCE_URL")
    return RemoteReportSource(str(url)) if url else None
