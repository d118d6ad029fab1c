from datetime import date, datetime

import pytest

from app.core.constants import ColumnType, PipelineStatus, StepStatus
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.engine import PipelineEngine
from app.pipeline.steps.age_code import AgeFromBirthYearStep
from app.pipeline.steps.base import TableStep
from app.pipeline.steps.classify_source import ClassifySourceStep
from app.pipeline.steps.derive_party import DerivePartyStep
from app.pipeline.steps.pad_columns import PadColumnsStep
from app.pipeline.steps.scrub_dnc import scrub_table
from app.pipeline.steps.tarrance import PadTarranceRegionStep, RouteTarrancePhonesStep
from app.pipeline.steps.voter_frequency import VoterFrequencyStep
from app.repositories import dnc as dnc_repo

TEXT = ColumnType.TEXT
INTEGER = ColumnType.INTEGER


class FailingStep(TableStep):
    name = "failing"
    description = "Always fails"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        raise RuntimeError("boom")


class CriticalFailingStep(FailingStep):
    name = "critical_failing"
    critical = True


def _context(db, store, **kwargs):
    return PipelineContext(table_name=store.table_name, db=db, store=store, **kwargs)


# ─── DNC scrub ────────────────────────────────────────

async def test_scrub_removes_landline_only_rows_and_clears_dual_rows(db, make_table):
    store = await make_table(
        "SA_1_0101_0900",
        {"LAND": TEXT, "CELL": TEXT, "SOURCE": INTEGER},
        [
            {"LAND": "2025550101", "SOURCE": 1},
            {"LAND": "2025550102", "CELL": "3015550102", "SOURCE": 3},
            {"LAND": "2025550103", "SOURCE": 1},
            {"CELL": "2025550104", "SOURCE": 2},
        ],
    )
    await dnc_repo.add_numbers(db, ["2025550101", "2025550102", "2025550104"])
    await db.commit()

    stats = await scrub_table(db, store)
    await db.commit()

    assert stats == {
        "rowsOriginal": 4,
        "rowsAfter": 3,
        "rowsRemoved": 1,
        "landlinesCleared": 1,
        "sourceUpdatedToCell": 1,
    }
    rows = await store.fetch(["LAND", "CELL", "SOURCE"])
    assert rows == [
        {"LAND": None, "CELL": "3015550102", "SOURCE": 2},
        {"LAND": "2025550103", "CELL": None, "SOURCE": 1},
        {"LAND": None, "CELL": "2025550104", "SOURCE": 2},
    ]


async def test_scrub_without_land_column_changes_nothing(db, make_table):
    store = await make_table("SA_1_0101_0901", {"CELL": TEXT, "SOURCE": INTEGER}, [{"CELL": "2025550104", "SOURCE": 2}])
    stats = await scrub_table(db, store)
    assert stats["rowsRemoved"] == 0
    assert stats["rowsAfter"] == 1


# ─── Full run ─────────────────────────────────────────

async def test_default_run_formats_classifies_scrubs_and_ages(db, make_table):
    store = await make_table(
        "SA_7_0101_0900",
        {"FNAME": TEXT, "LAND": TEXT, "CELL": TEXT, "AGE": INTEGER, "IZIP": TEXT},
        [
            {"FNAME": "Ann", "LAND": "(202) 555-0101", "AGE": 42, "IZIP": "1234"},
            {"FNAME": "Bob", "LAND": "301-555-0102", "CELL": "240 555 0103", "AGE": 5, "IZIP": "20001"},
            {"FNAME": "Cy", "LAND": "410.555.0104", "AGE": 70},
            {"FNAME": "Di", "LAND": "555", "AGE": -1},
        ],
    )
    await dnc_repo.add_numbers(db, ["3015550102", "4105550104"])
    await db.commit()

    result = await PipelineEngine().run(db=db, table_name=store.table_name)

    assert result.status == PipelineStatus.COMPLETED
    assert not result.aborted
    assert result.metadata_for("scrub_dnc")["rowsRemoved"] == 1
    store.invalidate()
    rows = await store.fetch(["FNAME", "LAND", "CELL", "SOURCE", "IAGE", "AGERANGE", "IZIP"])
    assert rows == [
        {"FNAME": "Ann", "LAND": "2025550101", "CELL": None, "SOURCE": 1, "IAGE": "42", "AGERANGE": 3, "IZIP": "01234"},
        {"FNAME": "Bob", "LAND": None, "CELL": "2405550103", "SOURCE": 2, "IAGE": "05", "AGERANGE": None, "IZIP": "20001"},
        {"FNAME": "Di", "LAND": None, "CELL": None, "SOURCE": None, "IAGE": "00", "AGERANGE": None, "IZIP": None},
    ]


async def test_progress_is_published_per_stage(db, make_table):
    store = await make_table("SA_7_0101_0901", {"LAND": TEXT}, [{"LAND": "2025550101"}])
    calls = []

    async def progress(step, total, message):
        calls.append((step, total, message))

    result = await PipelineEngine().run(db=db, table_name=store.table_name, progress=progress)

    assert len(calls) == result.total_steps
    assert calls[0] == (1, result.total_steps, "Formatting phone numbers")


async def test_critical_failure_stops_the_run(db, make_table):
    store = await make_table("SA_7_0101_0902", {"LAND": TEXT}, [{"LAND": "2025550101"}])
    ctx = _context(db, store)

    result = await PipelineEngine().run_steps(ctx, [CriticalFailingStep(), ClassifySourceStep()])

    assert result.aborted
    assert result.failed_steps == ["critical_failing"]
    assert "boom" in result.error
    assert [r["step_name"] for r in result.step_results] == ["critical_failing"]
    assert not await store.has_column("SOURCE")


async def test_non_critical_failure_is_recorded_and_run_continues(db, make_table):
    store = await make_table("SA_7_0101_0903", {"LAND": TEXT}, [{"LAND": "2025550101"}])
    ctx = _context(db, store)

    result = await PipelineEngine().run_steps(ctx, [FailingStep(), ClassifySourceStep()])

    assert result.status == PipelineStatus.PARTIALLY_COMPLETED
    assert result.failed_steps == ["failing"]
    assert result.step_results[1]["status"] == StepStatus.COMPLETED
    assert await store.fetch(["SOURCE"]) == [{"SOURCE": 1}]


# ─── Tarrance ─────────────────────────────────────────

async def _tarrance_table(make_table, name):
    return await make_table(
        name,
        {"PHONE": TEXT, "WPHONE": TEXT, "REGN": TEXT, "IZIP": TEXT, "AGE": INTEGER, "AGERANGE": INTEGER},
        [
            {"PHONE": "(202) 555-0101", "WPHONE": "N", "REGN": "5", "IZIP": "1234", "AGE": 42, "AGERANGE": 9},
            {"PHONE": "301.555.0102", "WPHONE": "Y", "REGN": "12", "IZIP": "20001", "AGE": 30, "AGERANGE": 8},
        ],
    )


async def test_tarrance_run_routes_phones_pads_region_and_keeps_age_range(db, make_table):
    store = await _tarrance_table(make_table, "SA_20_0101_0900")

    result = await PipelineEngine().run(db=db, table_name=store.table_name, client_id=102)

    assert result.status == PipelineStatus.COMPLETED
    statuses = {r["step_name"]: r["status"] for r in result.step_results}
    assert statuses["route_tarrance_phones"] == StepStatus.COMPLETED
    assert statuses["populate_age_range"] == StepStatus.SKIPPED
    store.invalidate()
    assert await store.fetch(["PHONE", "LAND", "CELL", "SOURCE", "REGN", "IZIP", "IAGE", "AGERANGE"]) == [
        {"PHONE": "2025550101", "LAND": "2025550101", "CELL": None, "SOURCE": 1,
         "REGN": "05", "IZIP": "01234", "IAGE": "42", "AGERANGE": 9},
        {"PHONE": "3015550102", "LAND": None, "CELL": "3015550102", "SOURCE": 2,
         "REGN": "12", "IZIP": "20001", "IAGE": "30", "AGERANGE": 8},
    ]


async def test_other_clients_skip_tarrance_stages_and_recompute_age_range(db, make_table):
    store = await _tarrance_table(make_table, "SA_20_0101_0901")

    result = await PipelineEngine().run(db=db, table_name=store.table_name, client_id=7)

    assert result.status == PipelineStatus.COMPLETED
    names = [r["step_name"] for r in result.step_results]
    assert "route_tarrance_phones" not in names
    assert "pad_tarrance_region" not in names
    store.invalidate()
    assert not await store.has_column("LAND")
    assert await store.fetch(["REGN", "IZIP", "AGERANGE"]) == [
        {"REGN": "5", "IZIP": "01234", "AGERANGE": 3},
        {"REGN": "12", "IZIP": "20001", "AGERANGE": 2},
    ]


@pytest.mark.parametrize("client_id, expected_regn", [(102, "05"), (None, "5")])
async def test_pad_columns_pads_region_only_for_tarrance(db, make_table, client_id, expected_regn):
    store = await make_table("SA_20_0101_0902", {"REGN": TEXT, "IZIP": TEXT}, [{"REGN": "5", "IZIP": "501"}])
    ctx = _context(db, store, client_id=client_id)

    await PipelineEngine().run_steps(ctx, [PadColumnsStep()])

    assert await store.fetch(["REGN", "IZIP"]) == [{"REGN": expected_regn, "IZIP": "00501"}]


async def test_route_tarrance_phones_fills_only_empty_slots(db, make_table):
    store = await make_table(
        "SA_20_0101_0903",
        {"PHONE": TEXT, "WPHONE": TEXT, "LAND": TEXT},
        [
            {"PHONE": "2025550101", "WPHONE": "N"},
            {"PHONE": "3015550102", "WPHONE": "y"},
            {"PHONE": "4105550103", "WPHONE": "N", "LAND": "2405550199"},
            {"PHONE": None, "WPHONE": "Y"},
            {"PHONE": "5715550104", "WPHONE": "X"},
        ],
    )
    ctx = _context(db, store, client_id=102)

    result = await PipelineEngine().run_steps(ctx, [RouteTarrancePhonesStep()])

    assert result.metadata_for("route_tarrance_phones") == {"landlineCount": 1, "cellCount": 1, "totalRouted": 2}
    assert await store.fetch(["LAND", "CELL"]) == [
        {"LAND": "2025550101", "CELL": None},
        {"LAND": None, "CELL": "3015550102"},
        {"LAND": "2405550199", "CELL": None},
        {"LAND": None, "CELL": None},
        {"LAND": None, "CELL": None},
    ]


async def test_pad_tarrance_region_keeps_non_numeric_codes(db, make_table):
    store = await make_table("SA_20_0101_0904", {"REGN": TEXT}, [{"REGN": v} for v in ("3", "11", "NE", None)])
    ctx = _context(db, store, client_id=102)

    result = await PipelineEngine().run_steps(ctx, [PadTarranceRegionStep()])

    assert result.metadata_for("pad_tarrance_region") == {"recordsPadded": 1}
    assert [r["REGN"] for r in await store.fetch(["REGN"])] == ["03", "11", "NE", None]


# ─── Party ────────────────────────────────────────────

async def test_derive_party_maps_rollup_labels(db, make_table):
    store = await make_table(
        "SA_21_0101_0900",
        {"RPARTYROLLUP": TEXT},
        [{"RPARTYROLLUP": v} for v in ("Modeled  Republican", "democrat", "N/A", "Other", None)],
    )
    ctx = _context(db, store, vendor_id=4)

    result = await PipelineEngine().run_steps(ctx, [DerivePartyStep()])

    metadata = result.metadata_for("derive_party")
    assert metadata["rowsUpdated"] == 3
    assert metadata["partyCounts"] == {"R": 1, "D": 1, "U": 1, "null": 2}
    assert [r["PARTY"] for r in await store.fetch(["PARTY"])] == ["R", "D", "U", None, None]


# ─── Age from birth year ──────────────────────────────

@pytest.mark.parametrize("mode, expected", [("january", "46"), ("today", "45")])
async def test_age_from_birth_date_by_reference_mode(db, make_table, mode, expected):
    store = await make_table("SA_8_0101_0900", {"BIRTHYEAR": INTEGER, "DOB": TEXT}, [{"BIRTHYEAR": 1980, "DOB": "1980-06-15"}])
    ctx = _context(db, store, age_calculation_mode=mode)

    result = await PipelineEngine().run_steps(ctx, [AgeFromBirthYearStep(today=date(2026, 3, 1))])

    assert result.status == PipelineStatus.COMPLETED
    assert await store.fetch(["IAGE"]) == [{"IAGE": expected}]


async def test_birth_years_out_of_range_are_left_empty(db, make_table):
    store = await make_table("SA_8_0101_0901", {"BIRTHYEAR": INTEGER}, [{"BIRTHYEAR": 1850}, {"BIRTHYEAR": None}])
    ctx = _context(db, store)

    result = await PipelineEngine().run_steps(ctx, [AgeFromBirthYearStep(today=date(2026, 3, 1))])

    metadata = result.metadata_for("age_from_birth_year")
    assert metadata["recordsWithInvalidBirthYear"] == 1
    assert metadata["recordsWithNullBirthYear"] == 1
    assert await store.fetch(["IAGE"]) == [{"IAGE": None}, {"IAGE": None}]


# ─── Voter frequency ──────────────────────────────────

async def test_voter_frequency_counts_recent_even_years(db, make_table):
    store = await make_table(
        "SA_9_0101_0900",
        {"VH2024G": TEXT, "VH2022G": TEXT, "VH2016G": TEXT, "VH2024P": TEXT},
        [{"VH2024G": "Y", "VH2022G": "Y", "VH2016G": "Y", "VH2024P": "0"}],
    )
    ctx = _context(db, store, vendor_id=4)

    await PipelineEngine().run_steps(ctx, [VoterFrequencyStep(today=date(2025, 5, 1))])

    assert await store.fetch(["VFREQGEN", "VFREQPR"]) == [{"VFREQGEN": 2, "VFREQPR": 0}]
