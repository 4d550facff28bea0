from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from .config import PASS_THRESHOLD
from .errors import PersistenceFailure
from .remote import RemoteReportSource
from .scoring import normalize_report, round_half_up
from .storage import SnapshotStore, report_key, utcnow_iso
from .telemetry import TelemetrySink
from .types import CandidateProfile, ScoreReport

log = logging.getLogger(__name__)


def readiness_level(score: int) -> str:
    if score < 40:
        return "Beginner"
    if score < 70:
        return "Intermediate"
    return "Advanced"


def minimal_report(profile: CandidateProfile, scores: ScoreReport) -> Dict[str, Any]:
    """Local report built from the score report alone; used whenever the remote builder fails."""

    passed = scores.aptitude >= PASS_THRESHOLD and scores.programming >= PASS_THRESHOLD
    emp_values = list(scores.employability.values())
    emp_score = round_half_up(sum(emp_values) / len(emp_values)) if emp_values else 0
    strengths = [c.category for c in scores.strengths]
    improve = [c.category for c in scores.weaknesses]
    recs: List[Dict[str, Any]] = list(scores.analysis.get("recommendations") or [])
    return {
        "candidateId": profile.id,
        "candidateName": profile.name,
        "summary": f"Overall score {scores.total}/100 (aptitude {scores.aptitude}, "
                   f"programming {scores.programming}, employability {emp_score}).",
        "outcome": "Pass" if passed else "Not Qualified",
        "skillReadinessLevel": readiness_level(scores.readiness_score),
        "aptitudeScore": scores.aptitude,
        "programmingScore": scores.programming,
        "employabilityScore": emp_score,
        "overallScore": scores.total,
        "percentile": scores.percentile,
        "readinessScore": scores.readiness_score,
        "strengths": strengths,
        "areasForImprovement": improve,
        "recommendations": recs,
        "generatedLocally": True,
        "createdAt": utcnow_iso(),
    }


class ReportService:
    def __init__(self, remote: Optional[RemoteReportSource] = None,
                 store: Optional[SnapshotStore] = None,
                 telemetry: Optional[TelemetrySink] = None):
        self.remote = remote
        self.store = store
        self.telemetry = telemetry

    async def build_report(self, profile: CandidateProfile, scores: ScoreReport) -> Dict[str, Any]:
        report: Optional[Dict[str, Any]] = None
        if self.remote is not None:
            try:
                report = await self.remote.build(profile, normalize_report(scores)["scores"] | {"total": scores.total})
                report.setdefault("generatedLocally", False)
            except Exception as e:
                log.warning("remote report failed for %s err=%s; using local report", profile.id, type(e).__name__)
                if self.telemetry is not None:
                    self.telemetry.record_error(e, candidateId=profile.id)
                report = None
        if report is None:
            report = minimal_report(profile, scores)
        self.save(profile.id, report)
        return report

    def save(self, candidate_id: str, report: Dict[str, Any]) -> bool:
        if self.store is None:
            return False
        try:
            self.store.save(report_key(candidate_id), json.dumps(report, sort_keys=True, default=str))
            return True
        except PersistenceFailure as e:
            log.warning("report save failed for %s: %s", candidate_id, e)
        except Exception as e:
            log.warning("report save failed for %s: %s", candidate_id, type(e).__name__)
        return False

    def load(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        if self.store is None:
            return None
        blob = self.store.load(report_key(candidate_id))
        if not blob:
            return None
        try:
            data = json.loads(blob)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None
