import asyncio
import csv

import pytest

from app.core.constants import ColumnType
from app.extraction import ExtractionEngine, ExtractionRequest, ExtractionWorkspace
from app.extraction.csv_writer import write_csv
from app.extraction.engine import dial_number, single_file_name, split_vtype, tarrance_vtype
from app.extraction.householding import group_households, process_householding
from app.extraction.stratify import assign_batches, stratify_table
from app.pipeline.errors import ExtractionError
from app.samples.store import SampleTableStore

TEXT = ColumnType.TEXT
INTEGER = ColumnType.INTEGER


# ─── CSV ──────────────────────────────────────────────

def test_write_csv_quotes_only_when_needed(tmp_path):
    path = tmp_path / "out.csv"
    rows = [
        {"NAME": "Smith, Ann", "NOTE": 'said "hi"', "AGE": 42},
        {"NAME": "Bob", "NOTE": None, "AGE": 7.0},
    ]
    count = write_csv(path, ["NAME", "NOTE", "AGE"], rows)

    raw = path.read_bytes()
    assert count == 2
    assert raw.startswith(b"\xef\xbb\xbf")
    assert raw.decode("utf-8-sig") == (
        'NAME,NOTE,AGE\r\n'
        '"Smith, Ann","said ""hi""",42\r\n'
        'Bob,,7\r\n'
    )
    with open(path, encoding="utf-8-sig", newline="") as fh:
        assert list(csv.reader(fh))[1] == ["Smith, Ann", 'said "hi"', "42"]


# ─── Workspace ────────────────────────────────────────

async def test_workspace_keeps_only_the_latest_request(tmp_path):
    workspace = ExtractionWorkspace(tmp_path)
    async with workspace.request("a.b@example.com") as first:
        (first / "old.csv").write_text("x")
    async with workspace.request("a.b@example.com") as second:
        (second / "new.csv").write_text("y")

    assert not first.exists()
    assert workspace.resolve("a.b@example.com", "new.csv") == (second / "new.csv").resolve()
    with pytest.raises(FileNotFoundError):
        workspace.resolve("a.b@example.com", "old.csv")


async def test_workspace_forgets_identity_locks_once_released(tmp_path):
    workspace = ExtractionWorkspace(tmp_path)
    order = []

    async def second():
        async with workspace.request("alice"):
            order.append("second")

    async with workspace.request("alice"):
        waiting = asyncio.create_task(second())
        await asyncio.sleep(0)
        order.append("first")
        assert list(workspace._locks) == ["alice"]
    await waiting

    assert order == ["first", "second"]
    assert workspace._locks == {}


def test_workspace_rejects_path_traversal(tmp_path):
    workspace = ExtractionWorkspace(tmp_path)
    with pytest.raises(PermissionError):
        workspace.resolve("someone", "../other/file.csv")


async def test_workspace_is_per_identity(tmp_path):
    workspace = ExtractionWorkspace(tmp_path)
    async with workspace.request("alice") as out:
        (out / "sample.csv").write_text("x")
    with pytest.raises(FileNotFoundError):
        workspace.resolve("bob", "sample.csv")
    assert workspace.cleanup("alice") is True
    assert workspace.cleanup("alice") is False


# ─── Row rules ────────────────────────────────────────

@pytest.mark.parametrize("source, age_range, threshold, expected", [
    (1, None, None, 1),
    (2, 6, 5, 2),
    (3, 6, 5, 1),
    (3, 2, 5, 2),
    (3, None, 5, 1),
    (None, None, None, 1),
])
def test_split_vtype(source, age_range, threshold, expected):
    assert split_vtype(source, age_range, threshold) == expected


def test_tarrance_vtype():
    assert tarrance_vtype("y") == 2
    assert tarrance_vtype("N") == 1
    assert tarrance_vtype(None) == 1


def test_dial_number():
    row = {"LAND": "2025550101", "CELL": "3015550102", "VTYPE": 2, "WPHONE": "Y"}
    common = {"land": "LAND", "cell": "CELL", "vtype": "VTYPE", "indicator": "WPHONE"}
    assert dial_number(row, tarrance=False, file_type=None, **common) == "3015550102"
    assert dial_number(row, tarrance=False, file_type="landline", **common) == "2025550101"
    assert dial_number(row, tarrance=True, file_type=None, **common) == "3015550102"
    assert dial_number({**row, "WPHONE": "X"}, tarrance=True, file_type=None, **common) is None


def test_single_file_name():
    assert single_file_name("SAMP_12345", "cell") == "CSAM_12345"
    assert single_file_name("SAMP_12345", None) == "LSAM_12345"
    assert single_file_name("LSAM_12345", "cell") == "LSAM_12345"


# ─── Batches ──────────────────────────────────────────

def test_assign_batches_deals_sorted_rows_round_robin():
    rows = [
        {"_ROW_ID": 1, "GEND": "M"},
        {"_ROW_ID": 2, "GEND": "F"},
        {"_ROW_ID": 3, "GEND": None},
        {"_ROW_ID": 4, "GEND": "F"},
    ]
    assert assign_batches(rows, ["GEND"], 2) == {2: 1, 4: 2, 1: 1, 3: 2}


async def test_stratify_table_uses_existing_columns(make_table):
    store = await make_table("SA_1_0101_0900", {"GEND": TEXT}, [{"GEND": g} for g in "MFMF"])
    stats = await stratify_table(store, batch_count=2)
    assert stats["columnsUsed"] == ["GEND"]
    assert "IAGE" in stats["columnsSkipped"]
    assert sorted(r["BATCH"] for r in await store.fetch(["BATCH"])) == [1, 1, 2, 2]


# ─── Householding ─────────────────────────────────────

def test_group_households_keeps_first_seen_order():
    rows = [
        {"LAND": "1", "FNAME": "A"},
        {"LAND": "2", "FNAME": "B"},
        {"LAND": "1", "FNAME": "C"},
        {"LAND": None, "FNAME": "D"},
    ]
    groups = group_households(rows, "LAND")
    assert [[r["FNAME"] for r in g] for g in groups] == [["A", "C"], ["B"]]


async def test_householding_moves_members_to_rank_tables(db, make_table):
    store = await make_table(
        "SA_5_0101_0900",
        {"FNAME": TEXT, "LAND": TEXT, "VTYPE": INTEGER},
        [
            {"FNAME": "Ann", "LAND": "2025550101", "VTYPE": 1},
            {"FNAME": "Bob", "LAND": "2025550101", "VTYPE": 1},
            {"FNAME": "Cy", "LAND": "3015550102", "VTYPE": 1},
            {"FNAME": "Di", "LAND": "2025550101", "VTYPE": 1},
            {"FNAME": "Ed", "LAND": "2025550101", "VTYPE": 2},
        ],
    )

    stats = await process_householding(store)
    await db.commit()

    assert stats["households"] == 2
    assert stats["duplicateCounts"] == {"duplicate2": 1, "duplicate3": 1, "duplicate4": 0}
    assert stats["tablesCreated"]["backup"] == "SA_5_0101_0900_BACKUP_1"
    assert stats["mainTableFinalCount"] == 3
    assert await store.fetch(["FNAME", "FNAME2", "FNAME3"]) == [
        {"FNAME": "Ann", "FNAME2": "Bob", "FNAME3": "Di"},
        {"FNAME": "Cy", "FNAME2": None, "FNAME3": None},
        {"FNAME": "Ed", "FNAME2": None, "FNAME3": None},
    ]
    rank2 = SampleTableStore(db, "SA_5_0101_0900duplicate2")
    assert await rank2.fetch(["FNAME", "FNAME2"]) == [{"FNAME": "Bob", "FNAME2": "Bob"}]
    backup = SampleTableStore(db, "SA_5_0101_0900_BACKUP_1")
    assert await backup.count() == 5


async def test_householding_requires_land(make_table):
    store = await make_table("SA_5_0101_0901", {"FNAME": TEXT}, [{"FNAME": "Ann"}])
    with pytest.raises(ValueError, match="LAND column not found"):
        await process_householding(store)


# ─── Engine ───────────────────────────────────────────

async def _processed_table(make_table, name):
    return await make_table(
        name,
        {"FNAME": TEXT, "LAND": TEXT, "CELL": TEXT, "SOURCE": INTEGER, "AGERANGE": INTEGER},
        [
            {"FNAME": "Ann", "LAND": "2025550101", "SOURCE": 1, "AGERANGE": 2},
            {"FNAME": "Bob", "CELL": "3015550102", "SOURCE": 2, "AGERANGE": 1},
            {"FNAME": "Cy", "LAND": "2025550103", "CELL": "3015550104", "SOURCE": 3, "AGERANGE": 6},
            {"FNAME": "Di", "LAND": "2025550105", "CELL": "3015550106", "SOURCE": 3, "AGERANGE": 2},
        ],
    )


async def test_single_file_extraction(db, make_table, tmp_path):
    store = await _processed_table(make_table, "SA_3_0101_0900")
    engine = ExtractionEngine(ExtractionWorkspace(tmp_path), batch_count=2)

    result = await engine.extract(
        db,
        ExtractionRequest(
            table_name=store.table_name,
            selected_headers=["fname", "LAND"],
            file_type="landline",
            file_names={"single": "SAMP_3"},
        ),
        identity="analyst",
    )

    single = result["files"]["single"]
    assert single["filename"] == "LSAM_3.csv"
    assert single["records"] == 4
    assert single["headers"] == ["FNAME", "LAND", "SOURCE", "BATCH", "VTYPE", "$N"]
    assert single["url"] == "/api/v1/sample-automation/download/LSAM_3.csv"
    path = engine.workspace.resolve("analyst", "LSAM_3.csv")
    with open(path, encoding="utf-8-sig", newline="") as fh:
        lines = list(csv.DictReader(fh))
    assert [line["$N"] for line in lines] == ["2025550101", "", "2025550103", "2025550105"]
    assert {line["VTYPE"] for line in lines} == {"1"}


async def test_split_extraction_by_age_threshold(db, make_table, tmp_path):
    store = await _processed_table(make_table, "SA_3_0101_0901")
    engine = ExtractionEngine(ExtractionWorkspace(tmp_path), batch_count=2)

    result = await engine.extract(
        db,
        ExtractionRequest(
            table_name=store.table_name,
            selected_headers=["FNAME"],
            split_mode="split",
            selected_age_range=5,
            file_names={"landline": "LSAM_3", "cell": "CSAM_3"},
        ),
        identity="analyst",
    )

    assert result["vtypeStats"]["landlineCount"] == 2
    assert result["vtypeStats"]["cellCount"] == 2
    assert result["splitTableNames"] == {"landline": "SA_3_0101_0901_LANDLINE", "cell": "SA_3_0101_0901_CELL"}
    assert result["files"]["landline"]["records"] == 2
    assert "BATCH" not in result["files"]["landline"]["headers"]
    assert "BATCH" in result["files"]["cell"]["headers"]
    cell = SampleTableStore(db, "SA_3_0101_0901_CELL")
    assert [r["$N"] for r in await cell.fetch(["$N"])] == ["3015550102", "3015550106"]


async def test_failed_extraction_leaves_no_files(db, make_table, tmp_path):
    store = await _processed_table(make_table, "SA_3_0101_0902")
    engine = ExtractionEngine(ExtractionWorkspace(tmp_path), batch_count=2)

    with pytest.raises(ExtractionError, match="not found"):
        await engine.extract(
            db,
            ExtractionRequest(table_name=store.table_name, selected_headers=["MISSING"], file_names={"single": "SAMP_3"}),
            identity="analyst",
        )

    assert list((tmp_path / "analyst").iterdir()) == []


async def test_tarrance_split_follows_the_wireless_flag(db, make_table, tmp_path):
    store = await make_table(
        "SA_11_0101_0900",
        {"FNAME": TEXT, "LAND": TEXT, "CELL": TEXT, "SOURCE": INTEGER, "WPHONE": TEXT},
        [
            {"FNAME": "Ann", "LAND": "2025550101", "SOURCE": 1, "WPHONE": "N"},
            {"FNAME": "Bob", "CELL": "3015550102", "SOURCE": 2, "WPHONE": "Y"},
            {"FNAME": "Cy", "LAND": "2025550103", "CELL": "3015550104", "SOURCE": 3, "WPHONE": "y"},
            {"FNAME": "Di", "LAND": "2025550105", "SOURCE": 1, "WPHONE": ""},
        ],
    )
    engine = ExtractionEngine(ExtractionWorkspace(tmp_path), batch_count=2)

    result = await engine.extract(
        db,
        ExtractionRequest(
            table_name=store.table_name,
            selected_headers=["FNAME"],
            split_mode="split",
            file_names={"landline": "LSAM_11", "cell": "CSAM_11"},
            client_id=102,
        ),
        identity="analyst",
    )

    assert result["vtypeStats"]["method"] == "WPHONE"
    assert result["vtypeStats"]["landlineCount"] == 2
    assert result["vtypeStats"]["cellCount"] == 2
    landline = SampleTableStore(db, "SA_11_0101_0900_LANDLINE")
    assert await landline.fetch(["FNAME", "$N"]) == [
        {"FNAME": "Ann", "$N": "2025550101"},
        {"FNAME": "Di", "$N": None},
    ]
    cell = SampleTableStore(db, "SA_11_0101_0900_CELL")
    assert await cell.fetch(["FNAME", "$N"]) == [
        {"FNAME": "Bob", "$N": "3015550102"},
        {"FNAME": "Cy", "$N": "3015550104"},
    ]


async def test_tarrance_extraction_requires_the_wireless_flag(db, make_table, tmp_path):
    store = await _processed_table(make_table, "SA_11_0101_0901")
    engine = ExtractionEngine(ExtractionWorkspace(tmp_path), batch_count=2)

    with pytest.raises(ExtractionError, match="WPHONE column not found"):
        await engine.extract(
            db,
            ExtractionRequest(
                table_name=store.table_name,
                selected_headers=["FNAME"],
                split_mode="split",
                file_names={"landline": "LSAM_11", "cell": "CSAM_11"},
                client_id=102,
            ),
            identity="analyst",
        )

    store.invalidate()
    assert not await store.has_column("VTYPE")


async def test_extraction_with_householding_writes_rank_files(db, make_table, tmp_path):
    store = await make_table(
        "SA_5_0101_0902",
        {"FNAME": TEXT, "LAND": TEXT, "SOURCE": INTEGER, "RPARTYROLLUP": TEXT},
        [
            {"FNAME": "Ann", "LAND": "2025550101", "SOURCE": 1, "RPARTYROLLUP": "Republican"},
            {"FNAME": "Bob", "LAND": "2025550101", "SOURCE": 1, "RPARTYROLLUP": "Democrat"},
            {"FNAME": "Cy", "LAND": "3015550102", "SOURCE": 1, "RPARTYROLLUP": None},
        ],
    )
    engine = ExtractionEngine(ExtractionWorkspace(tmp_path), batch_count=2)

    result = await engine.extract(
        db,
        ExtractionRequest(
            table_name=store.table_name,
            selected_headers=["FNAME", "LAND"],
            householding_enabled=True,
            file_type="landline",
            file_names={"single": "SAMP_5"},
        ),
        identity="analyst",
    )

    assert result["householdingStats"]["households"] == 2
    assert result["householdingStats"]["duplicateCounts"]["duplicate2"] == 1
    assert result["files"]["single"]["records"] == 2
    assert {"FNAME2", "PARTY2"} <= set(result["files"]["single"]["headers"])
    duplicate = result["files"]["duplicate2"]
    assert duplicate["filename"] == "SA_5_0101_0902_duplicate2.csv"
    assert duplicate["records"] == 1
    assert duplicate["rank"] == 2
    assert "BATCH" not in duplicate["headers"]

    store.invalidate()
    assert await store.fetch(["FNAME", "PARTY", "FNAME2", "PARTY2"]) == [
        {"FNAME": "Ann", "PARTY": "R", "FNAME2": "Bob", "PARTY2": "D"},
        {"FNAME": "Cy", "PARTY": None, "FNAME2": None, "PARTY2": None},
    ]
    path = engine.workspace.resolve("analyst", "SA_5_0101_0902_duplicate2.csv")
    with open(path, encoding="utf-8-sig", newline="") as fh:
        assert [line["FNAME"] for line in csv.DictReader(fh)] == ["Bob"]
