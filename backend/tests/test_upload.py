from datetime import datetime

import pytest
from sqlalchemy import select

from app.core.progress import ProgressNotifier
from app.db.models import ProjectFile
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.engine import PipelineEngine
from app.pipeline.errors import CriticalStageError, ValidationError
from app.pipeline.steps.base import TableStep
from app.pipeline.strategy import StageRule, StageStrategy
from app.repositories import header_mappings as mapping_repo
from app.repositories import variables as variable_repo
from app.samples.store import SampleTableStore
from app.samples.upload import StagedFile, UploadProcessor, UploadRequest, for_file, parse_json_field

CSV = "first name,Last Name,Phone Number\nAnn,Lee,(202) 555-0101\nBob,Ray,301.555.0102\n"


class RecordingNotifier(ProgressNotifier):
    def __init__(self) -> None:
        super().__init__()
        self.events = []

    async def publish(self, session_id, event, data):
        self.events.append((session_id, event, data))


class BrokenFormatStep(TableStep):
    name = "format_phone_numbers"
    critical = True

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        raise RuntimeError("disk full")


@pytest.fixture
def stage(tmp_path):
    def _stage(filename="sample.csv", content=CSV):
        path = tmp_path / f"staged_{filename}"
        path.write_text(content, encoding="utf-8")
        return StagedFile(path=path, filename=filename)

    return _stage


async def _registrations(db, project_id):
    rows = await db.execute(select(ProjectFile).where(ProjectFile.project_id == project_id))
    return list(rows.scalars().all())


# ─── Form helpers ─────────────────────────────────────

def test_for_file_accepts_lists_and_index_keyed_objects():
    assert for_file([["A"], ["B"]], 1) == ["B"]
    assert for_file({"0": ["A"]}, 0) == ["A"]
    assert for_file({"0": ["A"]}, 1) == []
    assert for_file(None, 0) == []
    with pytest.raises(ValidationError):
        for_file(["A"], 0)


def test_parse_json_field_reports_bad_json():
    assert parse_json_field('[["A"]]', "customHeaders") == [["A"]]
    assert parse_json_field("", "customHeaders") is None
    with pytest.raises(ValidationError, match="Invalid customHeaders JSON"):
        parse_json_field("[oops", "customHeaders")


# ─── Upload ───────────────────────────────────────────

async def test_upload_with_custom_headers(db, stage):
    notifier = RecordingNotifier()
    staged = stage()
    request = UploadRequest(
        files=[staged],
        project_id="12345",
        custom_headers=[["FIRSTNAME", "LASTNAME", "LAND"]],
        session_id="s1",
    )

    result = await UploadProcessor(notifier=notifier).process(db, request)

    assert result["success"] is True
    assert result["tableName"].startswith("SA_12345_")
    assert result["rowsInserted"] == 2
    assert result["fileIds"] == [1]
    assert result["mappedHeadersUsed"] is True
    assert result["systemConstantsAdded"] == ["VEND", "TFLAG", "CALLIDL1", "CALLIDL2", "CALLIDC1", "CALLIDC2"]
    names = [h["name"] for h in result["headers"]]
    assert names[:10] == [
        "FIRSTNAME", "LASTNAME", "LAND", "FILE",
        "VEND", "TFLAG", "CALLIDL1", "CALLIDL2", "CALLIDC1", "CALLIDC2",
    ]
    assert "SOURCE" in names
    assert result["pipeline"]["status"] == "COMPLETED"
    assert result["callIdAssignment"] is None

    store = SampleTableStore(db, result["tableName"])
    assert await store.fetch(["FIRSTNAME", "LAND", "FILE", "VEND", "CALLIDL1", "SOURCE"]) == [
        {"FIRSTNAME": "Ann", "LAND": "2025550101", "FILE": 1, "VEND": 5, "CALLIDL1": "9999999999", "SOURCE": 1},
        {"FIRSTNAME": "Bob", "LAND": "3015550102", "FILE": 1, "VEND": 5, "CALLIDL1": "9999999999", "SOURCE": 1},
    ]

    registrations = await _registrations(db, "12345")
    assert [(r.file_id, r.original_filename, r.table_name) for r in registrations] == [
        (1, "sample.csv", result["tableName"]),
    ]
    assert not staged.path.exists()
    assert notifier.events[0][1] == "progress"
    assert notifier.events[-1] == ("s1", "complete", {"message": "Processing complete"})


async def test_progress_stream_ends_when_the_upload_finishes(db, stage):
    notifier = ProgressNotifier(heartbeat_seconds=5)
    stream = notifier.subscribe("s9")
    assert (await anext(stream)).startswith("event: connected")

    await UploadProcessor(notifier=notifier).process(db, UploadRequest(files=[stage()], project_id="12345", session_id="s9"))

    frames = [frame async for frame in stream]
    assert frames[0].startswith("event: progress")
    assert frames[-1].startswith("event: complete")
    assert not notifier.is_subscribed("s9")


async def test_upload_applies_stored_mappings_and_exclusions(db, stage):
    await mapping_repo.save_mappings(
        db, vendor_id=4, client_id=None, mappings=[{"original": "Phone Number", "mapped": "LAND"}],
    )
    await variable_repo.add_exclusion(db, variable_name="lastname")
    await db.commit()

    result = await UploadProcessor(notifier=RecordingNotifier()).process(
        db, UploadRequest(files=[stage()], project_id="77", vendor_id=4),
    )

    names = [h["name"] for h in result["headers"]]
    assert "LAND" in names
    assert "LASTNAME" not in names
    assert result["headerMappingsApplied"] == [{"original": "PHONENUMBER", "mapped": "LAND"}]
    assert result["variableFilter"]["excludedNames"] == ["LASTNAME"]


async def test_project_inclusion_keeps_excluded_column(db, stage):
    await variable_repo.add_exclusion(db, variable_name="LASTNAME")
    await variable_repo.add_inclusion(db, project_id="88", original_variable="LASTNAME", mapped_variable="SURNAME")
    await db.commit()

    result = await UploadProcessor(notifier=RecordingNotifier()).process(
        db, UploadRequest(files=[stage()], project_id="88"),
    )

    store = SampleTableStore(db, result["tableName"])
    assert await store.fetch(["SURNAME"]) == [{"SURNAME": "Lee"}, {"SURNAME": "Ray"}]


async def test_multi_file_upload_tracks_sources(db, stage):
    first = stage("a.csv")
    second = stage("b.csv", "first name,Cell\nCy,240-555-0103\n")

    result = await UploadProcessor(notifier=RecordingNotifier()).process(
        db, UploadRequest(files=[first, second], project_id="99", requested_file_id=5),
    )

    assert result["fileIds"] == [5, 6]
    assert result["message"] == f"Successfully merged 2 files into table {result['tableName']}"
    store = SampleTableStore(db, result["tableName"])
    rows = await store.fetch(["FIRSTNAME", "CELL", "FILE", "_source_file", "_file_index"])
    assert rows[-1] == {"FIRSTNAME": "Cy", "CELL": "2405550103", "FILE": 6, "_source_file": "b.csv", "_file_index": 2}


async def test_rejected_upload_registers_nothing(db, stage):
    notifier = RecordingNotifier()
    staged = stage("sample.pdf", "%PDF")

    with pytest.raises(ValidationError, match="Unsupported file type: .pdf"):
        await UploadProcessor(notifier=notifier).process(
            db, UploadRequest(files=[staged], project_id="12345", session_id="s2"),
        )

    assert await _registrations(db, "12345") == []
    assert not staged.path.exists()
    assert notifier.events[-1][1] == "processing-error"


async def test_project_id_is_required(db, stage):
    with pytest.raises(ValidationError, match="Project ID is required"):
        await UploadProcessor(notifier=RecordingNotifier()).process(db, UploadRequest(files=[stage()], project_id=None))


async def test_critical_stage_failure_fails_the_upload(db, stage):
    pipeline = PipelineEngine(StageStrategy(table=(StageRule(BrokenFormatStep),)))

    with pytest.raises(CriticalStageError) as caught:
        await UploadProcessor(notifier=RecordingNotifier(), pipeline=pipeline).process(
            db, UploadRequest(files=[stage()], project_id="12345"),
        )

    details = caught.value.details
    assert details["tableName"].startswith("SA_12345_")
    assert details["filesProcessed"] == 1
    assert details["totalRowsProcessed"] == 2
    assert details["pipeline"]["failed_steps"] == ["format_phone_numbers"]


# ─── Header detection ─────────────────────────────────

async def test_detect_headers_splits_excluded_names(db, stage):
    await variable_repo.add_exclusion(db, variable_name="LASTNAME")
    await db.commit()
    staged = stage()

    result = await UploadProcessor(notifier=RecordingNotifier()).detect_headers(db, staged)

    assert result["allHeadersInOrder"] == ["FIRSTNAME", "LASTNAME", "PHONENUMBER"]
    assert result["headers"] == ["FIRSTNAME", "PHONENUMBER"]
    assert result["excludedHeaders"] == ["LASTNAME"]
    assert result["message"] == "Detected 2 headers (1 excluded)"
    assert not staged.path.exists()
