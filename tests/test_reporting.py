from __future__ import annotations

import asyncio
import json

import httpx

from assess_core.remote import RemoteReportSource
from assess_core.reporting import ReportService, minimal_report, readiness_level
from assess_core.storage import MemorySnapshotStore, report_key
from assess_core.types import CategoryScore, ScoreReport


def _scores(apt=72, prog=65, total=70):
    return ScoreReport(
        aptitude=apt,
        programming=prog,
        employability={"core": 80, "soft": 60},
        total=total,
        percentile=round(total * 0.9),
        readiness_score=round(total * 0.95),
        strengths=(CategoryScore("numerical", 90, 4),),
        weaknesses=(CategoryScore("debugging", 20, 3),),
        analysis={"recommendations": [{"type": "category", "category": "debugging", "message": "m", "resources": []}]},
    )


def test_readiness_levels():
    assert readiness_level(39) == "Beginner"
    assert readiness_level(40) == "Intermediate"
    assert readiness_level(69) == "Intermediate"
    assert readiness_level(70) == "Advanced"


def test_minimal_report_outcome(candidate):
    passed = minimal_report(candidate, _scores())
    assert passed["outcome"] == "Pass"
    assert passed["skillReadinessLevel"] == "Intermediate"
    assert passed["employabilityScore"] == 70
    assert passed["strengths"] == ["numerical"]
    assert passed["areasForImprovement"] == ["debugging"]
    assert passed["generatedLocally"] is True

    failed = minimal_report(candidate, _scores(apt=59))
    assert failed["outcome"] == "Not Qualified"


def test_remote_failure_falls_back_and_saves(candidate):
    def handler(request):
        return httpx.Response(500, text="down")

    store = MemorySnapshotStore()

    async def go():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        try:
            svc = ReportService(remote=RemoteReportSource("https://reports.test", client=client), store=store)
            return await svc.build_report(candidate, _scores())
        finally:
            await client.aclose()

    report = asyncio.run(go())
    assert report["generatedLocally"] is True
    assert json.loads(store.load(report_key(candidate.id)))["outcome"] == "Pass"


def test_remote_report_is_used_when_available(candidate):
    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(200, json={"summary": "remote", "overall": body["scores"]["total"]})

    async def go():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        try:
            svc = ReportService(remote=RemoteReportSource("https://reports.test", client=client))
            return await svc.build_report(candidate, _scores())
        finally:
            await client.aclose()

    report = asyncio.run(go())
    assert report == {"summary": "remote", "overall": 70, "generatedLocally": False}


def test_save_failure_is_not_raised(candidate):
    class Broken(MemorySnapshotStore):
        def save(self, key, blob):
            raise OSError("read-only")

    svc = ReportService(store=Broken())
    report = asyncio.run(svc.build_report(candidate, _scores()))
    assert report["outcome"] == "Pass"
    assert svc.load(candidate.id) is None
