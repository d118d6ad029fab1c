"""
StageStrategy: maps vendor/client identity to an ordered stage list.

Every upload runs the same canonical sequence; some stages only apply to
one vendor or client.  Gating lives in STAGE_TABLE below rather than in
the stages, so the full plan for any upload can be read (and tested) in
one place.

To add a vendor-specific stage:
    1. Create the step in steps/
    2. Add a StageRule at its canonical position with the vendor/client id
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from app.core.constants import L2_VENDOR_ID, RNC_VENDOR_ID, TARRANCE_CLIENT_ID
from app.core.logging import get_logger
from app.pipeline.step import PipelineStep
from app.pipeline.steps.age_code import AgeFromBirthYearStep, ConvertAgeCodeStep, FixAgeSentinelStep
from app.pipeline.steps.age_range import PopulateAgeRangeStep
from app.pipeline.steps.classify_source import ClassifySourceStep
from app.pipeline.steps.derive_party import DerivePartyStep
from app.pipeline.steps.format_phones import FormatPhoneNumbersStep
from app.pipeline.steps.format_rdate import FormatRDateStep
from app.pipeline.steps.pad_columns import PadColumnsStep
from app.pipeline.steps.scrub_dnc import ScrubDncStep
from app.pipeline.steps.tarrance import PadTarranceRegionStep, RouteTarrancePhonesStep
from app.pipeline.steps.voter_frequency import VoterFrequencyStep

logger = get_logger(__name__)


@dataclass(frozen=True)
class StageRule:
    """A stage factory plus the identity it is limited to (None = everyone)."""

    factory: Callable[[], PipelineStep]
    client_id: int | None = None
    vendor_id: int | None = None

    def applies(self, *, client_id: int | None, vendor_id: int | None) -> bool:
        if self.client_id is not None and self.client_id != client_id:
            return False
        if self.vendor_id is not None and self.vendor_id != vendor_id:
            return False
        return True


# ═══════════════════════════════════════════════════════════
#  Stage Table (canonical order)
# ═══════════════════════════════════════════════════════════

STAGE_TABLE: tuple[StageRule, ...] = (
    StageRule(FormatPhoneNumbersStep),
    # ─── Tarrance ──────────────────────────────────
    StageRule(RouteTarrancePhonesStep, client_id=TARRANCE_CLIENT_ID),
    StageRule(PadTarranceRegionStep, client_id=TARRANCE_CLIENT_ID),
    # ─── Vendor specific ───────────────────────────
    StageRule(DerivePartyStep, vendor_id=RNC_VENDOR_ID),
    StageRule(FormatRDateStep, vendor_id=L2_VENDOR_ID),
    StageRule(VoterFrequencyStep, vendor_id=RNC_VENDOR_ID),
    # ─── Always ────────────────────────────────────
    StageRule(ClassifySourceStep),
    StageRule(ScrubDncStep),
    StageRule(ConvertAgeCodeStep),
    StageRule(FixAgeSentinelStep),
    StageRule(AgeFromBirthYearStep),
    StageRule(PopulateAgeRangeStep),
    StageRule(PadColumnsStep),
)


class StageStrategy:
    """Resolves vendor/client identity to fresh stage instances."""

    def __init__(self, table: tuple[StageRule, ...] | None = None) -> None:
        self.table = table if table is not None else STAGE_TABLE

    def resolve(self, *, client_id: int | None, vendor_id: int | None) -> list[PipelineStep]:
        steps = [
            rule.factory()
            for rule in self.table
            if rule.applies(client_id=client_id, vendor_id=vendor_id)
        ]
        logger.debug(
            "Stage list resolved",
            client_id=client_id,
            vendor_id=vendor_id,
            steps=[s.name for s in steps],
        )
        return steps
