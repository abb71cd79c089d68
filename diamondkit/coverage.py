"""
DIAMONDKIT Coverage Verification

Checks a live composite instance against the fingerprints its interfaces
require: every required fingerprint must be routed to some module.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from diamondkit.composite import CompositeInstance, FacetInfo
from diamondkit.fingerprint import SelectorIndex
from diamondkit.hardening import CoverageGapError
from diamondkit.observability import DiamondLayer, get_logger


logger = get_logger("verifier", DiamondLayer.COVERAGE)


@dataclass(frozen=True)
class CoverageReport:
    """Required versus exposed fingerprints of one composite instance."""
    composite: str
    required: int
    exposed: int
    missing_fingerprints: Tuple[str, ...]
    missing_names: Tuple[str, ...]
    modules: Tuple[FacetInfo, ...]

    @property
    def complete(self) -> bool:
        return not self.missing_fingerprints

    def raise_if_incomplete(self) -> None:
        if not self.complete:
            raise CoverageGapError(self.missing_names, self.missing_fingerprints)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "composite": self.composite,
            "complete": self.complete,
            "required": self.required,
            "exposed": self.exposed,
            "missing": [
                {"fingerprint": fp, "name": name}
                for fp, name in zip(self.missing_fingerprints, self.missing_names)
            ],
            "modules": [m.to_dict() for m in self.modules],
        }


def coverage_report(composite: CompositeInstance, index: SelectorIndex) -> CoverageReport:
    """Compare `index` with the fingerprints visible through the loupe."""
    remaining = dict.fromkeys(index)
    modules = tuple(composite.facets())
    exposed = 0
    for module in modules:
        for fp in module.fingerprints:
            exposed += 1
            remaining.pop(fp, None)

    missing = tuple(remaining)
    return CoverageReport(
        composite=composite.address or "",
        required=len(index),
        exposed=exposed,
        missing_fingerprints=missing,
        missing_names=tuple(index.names(missing)),
        modules=modules,
    )


def verify_coverage(composite: CompositeInstance, index: SelectorIndex) -> CoverageReport:
    """Raise CoverageGapError unless every required fingerprint is routed."""
    report = coverage_report(composite, index)
    if report.complete:
        logger.info(
            "Coverage complete",
            operation="verify_coverage",
            composite=report.composite,
            required=report.required,
            exposed=report.exposed,
        )
    else:
        logger.error(
            "Coverage gap",
            error_code="COVERAGE_GAP",
            composite=report.composite,
            missing=list(report.missing_names),
        )
    report.raise_if_incomplete()
    return report
