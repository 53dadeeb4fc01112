"""Exportable forensic dossier for a single result."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional

from truth_scanner.domain.models import AnalysisResult


def dossier_file_name(result: AnalysisResult) -> str:
    return f"forensic_dossier_{result.id[:12]}.json"


def export_dossier(result: AnalysisResult, generated_at: Optional[datetime] = None) -> str:
    """Render ``result`` as a pretty-printed JSON report.

    Mismatched samples were never validated in the requested language, so
    they are not exportable.
    """
    if not result.language_match:
        raise ValueError("Language-mismatched results cannot be exported")
    report = {
        "title": "Voice Truth Scanner forensic dossier",
        "generated_at": (generated_at or datetime.now(timezone.utc)).isoformat(),
        "evidence_sha256": result.evidence_sha256,
        "result": result.model_dump(mode="json", exclude={"evidence_sha256"}),
    }
    return json.dumps(report, ensure_ascii=False, indent=2)
