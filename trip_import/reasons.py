"""
trip_import/reasons.py

Closed vocabularies for import outcomes.

ReasonCode says why a row did not import. CorrectionKind names the kind of
reference data an operator can supply to fix it. Only the four MISSING_*
reasons are correctable; the mapping below is exhaustive over them.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum


class ReasonCode(str, Enum):
    MISSING_SITE = "MISSING_SITE"
    MISSING_PERSONNEL = "MISSING_PERSONNEL"
    MISSING_VEHICLE = "MISSING_VEHICLE"
    MISSING_ROUTE = "MISSING_ROUTE"
    DUPLICATE_EXTERNAL_ID = "DUPLICATE_EXTERNAL_ID"
    MALFORMED_DATA = "MALFORMED_DATA"
    STILL_MISSING = "STILL_MISSING"


class CorrectionKind(str, Enum):
    SITE = "site"
    PERSONNEL = "personnel"
    VEHICLE = "vehicle"
    ROUTE = "route"


CORRECTION_KIND_BY_REASON: dict[ReasonCode, CorrectionKind] = {
    ReasonCode.MISSING_SITE: CorrectionKind.SITE,
    ReasonCode.MISSING_PERSONNEL: CorrectionKind.PERSONNEL,
    ReasonCode.MISSING_VEHICLE: CorrectionKind.VEHICLE,
    ReasonCode.MISSING_ROUTE: CorrectionKind.ROUTE,
}

CORRECTABLE_REASONS: frozenset[ReasonCode] = frozenset(CORRECTION_KIND_BY_REASON)

# Stable order for failure breakdowns and API output.
BREAKDOWN_REASONS: tuple[ReasonCode, ...] = (
    ReasonCode.MISSING_SITE,
    ReasonCode.MISSING_PERSONNEL,
    ReasonCode.MISSING_VEHICLE,
    ReasonCode.MISSING_ROUTE,
    ReasonCode.DUPLICATE_EXTERNAL_ID,
    ReasonCode.MALFORMED_DATA,
    ReasonCode.STILL_MISSING,
)


def kinds_for(reasons: Iterable[ReasonCode]) -> frozenset[CorrectionKind]:
    """Correction kinds that could resolve the given missing reasons."""
    return frozenset(
        CORRECTION_KIND_BY_REASON[reason] for reason in reasons if reason in CORRECTABLE_REASONS
    )
