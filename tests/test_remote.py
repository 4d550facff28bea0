from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from assess_core.errors import RetryableFetchError
from assess_core.remote import (
    RemoteQuestionSource,
    RemoteReportSource,
    build_question_source,
    build_report_source,
)
from tests.conftest import build_raw_questions, make_candidate

URL = "https://questions.test/generate"


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _fetch(source, section_type="aptitude", category=None, count=10):
    async def go():
        try:
            return await source.fetch(section_type, category, make_candidate(), count)
        finally:
            await source.client.aclose()
    return asyncio.run(go())


def test_posts_request_body_and_parses_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "questions": build_raw_questions("aptitude", 3),
            "cached": True,
            "cacheSource": "memory",
            "isPersonalized": True,
        })

    batch = _fetch(RemoteQuestionSource(URL, client=_client(handler)), category="logical", count=3)
    assert seen["body"]["sectionType"] == "aptitude"
    assert seen["body"]["category"] == "logical"
    assert seen["body"]["requestedCount"] == 3
    assert seen["body"]["candidateProfile"]["id"] == "cand-0001"
    assert len(batch.questions) == 3
    assert batch.cache_source == "memory"
    assert batch.personalized and batch.cached


def test_category_is_omitted_when_not_given():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"questions": []})

    _fetch(RemoteQuestionSource(URL, client=_client(handler)))
    assert "category" not in seen["body"]


@pytest.mark.parametrize("response", [
    httpx.Response(503, json={"error": "busy"}),
    httpx.Response(404, text="missing"),
    httpx.Response(200, text="<html>oops</html>"),
    httpx.Response(200, json={"items": []}),
])
def test_bad_responses_are_retryable(response):
    source = RemoteQuestionSource(URL, client=_client(lambda request: response))
    with pytest.raises(RetryableFetchError):
        _fetch(source)


def test_transport_errors_are_retryable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(RetryableFetchError) as exc:
        _fetch(RemoteQuestionSource(URL, client=_client(handler)))
    assert exc.value.details["url"] == URL


def test_report_source_returns_payload():
    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(200, json={"summary": "ok", "echo": body["scores"]["aptitude"]})

    async def go():
        src = RemoteReportSource("https://reports.test", client=_client(handler))
        try:
            return await src.build(make_candidate(), {"aptitude": 70})
        finally:
            await src.client.aclose()

    assert asyncio.run(go()) == {"summary": "ok", "echo": 70}


def test_source_selection_from_config():
    assert build_question_source({}) is None
    assert isinstance(build_question_source({"QUESTION_SOURCE_URL": URL}), RemoteQuestionSource)
    assert build_question_source({"QUESTION_BACKEND": "http"}) is None
    assert build_report_source({}) is None
    assert build_report_source({"REPORT_SOURCE_URL": "https://r"}).url == "https://r"
