from datetime import datetime

import pytest

from app.core.constants import ColumnType
from app.pipeline.errors import TableNotFoundError, ValidationError
from app.repositories import dnc as dnc_repo
from app.samples import computed, tables
from app.samples.schema import build_table_name, unique_table_name
from app.samples.store import table_exists

TEXT = ColumnType.TEXT
INTEGER = ColumnType.INTEGER


# ─── Families ─────────────────────────────────────────

@pytest.mark.parametrize("name, expected", [
    ("SA_12_0101_0900_LANDLINE", ("SA_12_0101_0900", "LANDLINE")),
    ("SA_12_0101_0900duplicate3", ("SA_12_0101_0900", "duplicate3")),
    ("SA_12_0101_0900_WDNC", ("SA_12_0101_0900", "WDNC")),
    ("SA_12_0101_0900_BACKUP_2", ("SA_12_0101_0900", "BACKUP")),
    ("SA_12_0101_0900_2_CELL", ("SA_12_0101_0900_2", "CELL")),
    ("SA_12_0101_0900_2_BACKUP_1", ("SA_12_0101_0900_2", "BACKUP")),
    ("SA_12_0101_0900", None),
])
def test_derivative_of(name, expected):
    assert tables.derivative_of(name) == expected


def test_group_families_orders_projects_and_tables():
    counts = {
        "SA_9_0101_0900": 10,
        "SA_9_0102_0900": 20,
        "SA_9_0102_0900_CELL": 5,
        "SA_100_0101_0900": 3,
        "SA_7_0101_0900_LANDLINE": 1,
    }
    projects = tables.group_families(counts)
    assert [p["projectId"] for p in projects] == ["100", "9"]
    nine = projects[1]["tables"]
    assert [f["parentTable"]["tableName"] for f in nine] == ["SA_9_0102_0900", "SA_9_0101_0900"]
    assert nine[0]["derivatives"] == [{"tableName": "SA_9_0102_0900_CELL", "rowCount": 5, "type": "CELL"}]


def test_same_minute_upload_joins_its_project_family():
    counts = {"SA_12_0101_0900": 4, "SA_12_0101_0900_2": 6, "SA_12_0101_0900_2_CELL": 2}
    projects = tables.group_families(counts)
    assert [p["projectId"] for p in projects] == ["12"]
    second = projects[0]["tables"][0]
    assert second["parentTable"]["tableName"] == "SA_12_0101_0900_2"
    assert second["parentTable"]["timestamp"] == "0101_0900"
    assert [d["tableName"] for d in second["derivatives"]] == ["SA_12_0101_0900_2_CELL"]


def test_table_name_uses_the_project_id_as_is():
    assert build_table_name("12345", datetime(2025, 3, 7, 9, 5)) == "SA_12345_0307_0905"
    assert build_table_name("ab-12", datetime(2025, 3, 7, 9, 5)) == "SA_ab_12_0307_0905"


def test_check_table_name_rejects_non_sample_tables():
    with pytest.raises(ValidationError):
        tables.check_table_name("users; drop table x")
    with pytest.raises(ValidationError):
        tables.check_table_name("header_mappings")
    assert tables.check_table_name("SA_1_0101_0900") == "SA_1_0101_0900"


# ─── Inspection ───────────────────────────────────────

async def test_open_missing_table(db):
    with pytest.raises(TableNotFoundError):
        await tables.open_table(db, "SA_404_0101_0900")


async def test_preview_limits(db, make_table):
    await make_table("SA_1_0101_0900", {"FNAME": TEXT}, [{"FNAME": n} for n in ("Ann", "Bob", "Cy")])
    preview = await tables.preview_table(db, "SA_1_0101_0900", 2)
    assert preview["rows"] == [{"FNAME": "Ann"}, {"FNAME": "Bob"}]
    assert preview["count"] == 2
    with pytest.raises(ValidationError, match="between 1 and 100"):
        await tables.preview_table(db, "SA_1_0101_0900", 101)


async def test_distinct_age_ranges(db, make_table):
    store = await make_table("SA_1_0101_0901", {"AGERANGE": INTEGER}, [{"AGERANGE": v} for v in (3, 1, None, 3)])
    assert await tables.distinct_age_ranges(store) == [1, 3]
    plain = await make_table("SA_1_0101_0902", {"FNAME": TEXT}, [])
    assert await tables.distinct_age_ranges(plain) == []


async def test_list_sample_tables_skips_empty_tables(db, make_table):
    await make_table("SA_2_0101_0900", {"FNAME": TEXT}, [{"FNAME": "Ann"}])
    await make_table("SA_2_0101_0900_CELL", {"FNAME": TEXT}, [{"FNAME": "Ann"}])
    await make_table("SA_3_0101_0900", {"FNAME": TEXT}, [])
    projects = await tables.list_sample_tables(db)
    assert [p["projectId"] for p in projects] == ["2"]
    assert projects[0]["tables"][0]["derivatives"][0]["tableName"] == "SA_2_0101_0900_CELL"


async def test_list_sample_tables_filters_by_project(db, make_table):
    await make_table("SA_4_0101_0900", {"FNAME": TEXT}, [{"FNAME": "Ann"}])
    await make_table("SA_45_0101_0900", {"FNAME": TEXT}, [{"FNAME": "Bob"}])
    projects = await tables.list_sample_tables(db, project_id="4")
    assert [p["projectId"] for p in projects] == ["4"]


async def test_same_minute_names_get_a_suffix(db, make_table):
    now = datetime(2025, 1, 1, 9, 0)
    await make_table("SA_4_0101_0900", {"FNAME": TEXT}, [])
    assert await unique_table_name(db, "4", now) == "SA_4_0101_0900_2"


async def test_delete_with_derivatives(db, make_table):
    await make_table("SA_4_0101_0900", {"FNAME": TEXT}, [{"FNAME": "Ann"}])
    await make_table("SA_4_0101_0900_LANDLINE", {"FNAME": TEXT}, [{"FNAME": "Ann"}])
    result = await tables.delete_sample_table(db, "SA_4_0101_0900")
    assert result["success"] is True
    assert sorted(result["deletedTables"]) == ["SA_4_0101_0900", "SA_4_0101_0900_LANDLINE"]
    assert not await table_exists(db, "SA_4_0101_0900_LANDLINE")


async def test_scrub_copy_leaves_the_source_untouched(db, make_table):
    store = await make_table(
        "SA_6_0101_0900",
        {"LAND": TEXT, "SOURCE": INTEGER},
        [{"LAND": "2025550101", "SOURCE": 1}, {"LAND": "2025550102", "SOURCE": 1}],
    )
    await dnc_repo.add_numbers(db, ["2025550101"])
    await db.commit()

    result = await tables.scrub_copy(db, "SA_6_0101_0900")

    assert result["tableName"] == "SA_6_0101_0900_WDNC"
    assert result["rowsRemoved"] == 1
    assert await store.count() == 2


# ─── Computed variables ───────────────────────────────

def _definition(**overrides):
    payload = {
        "name": "AGEGROUP",
        "outputType": "TEXT",
        "rules": [
            {"conditions": [{"variable": "AGE", "operator": "less_than", "value": "30"}], "outputValue": "YOUNG"},
            {
                "conditions": [
                    {"variable": "GEND", "operator": "equals", "value": "F"},
                    {"variable": "AGE", "operator": "greater_equal", "value": 65},
                ],
                "conditionLogic": "OR",
                "outputValue": "PRIORITY",
            },
        ],
        "defaultValue": "OTHER",
    }
    payload.update(overrides)
    return payload


async def _people(make_table, name):
    return await make_table(
        name,
        {"AGE": INTEGER, "GEND": TEXT},
        [{"AGE": 25, "GEND": "M"}, {"AGE": 40, "GEND": "F"}, {"AGE": 70, "GEND": "M"}, {"AGE": 50, "GEND": "M"}],
    )


async def test_preview_computed_variable(db, make_table):
    await _people(make_table, "SA_10_0101_0900")
    preview = await computed.preview_computed_variable(db, "SA_10_0101_0900", _definition())
    assert preview["success"] is True
    assert [r["AGEGROUP"] for r in preview["sampleData"]] == ["YOUNG", "PRIORITY", "PRIORITY", "OTHER"]
    assert preview["estimatedLength"] == 10


async def test_preview_reports_unknown_variable(db, make_table):
    await _people(make_table, "SA_10_0101_0901")
    payload = _definition(rules=[{"conditions": [{"variable": "NOPE", "operator": "equals", "value": 1}], "outputValue": "X"}])
    preview = await computed.preview_computed_variable(db, "SA_10_0101_0901", payload)
    assert preview["success"] is False
    assert "Unknown variable" in preview["errors"][0]


async def test_add_and_remove_computed_variable(db, make_table):
    store = await _people(make_table, "SA_10_0101_0902")
    result = await computed.add_computed_variable(db, "SA_10_0101_0902", _definition())
    assert result["rowsUpdated"] == 4
    store.invalidate()
    assert [r["AGEGROUP"] for r in await store.fetch(["AGEGROUP"])] == ["YOUNG", "PRIORITY", "PRIORITY", "OTHER"]

    with pytest.raises(ValidationError, match="already exists"):
        await computed.add_computed_variable(db, "SA_10_0101_0902", _definition())

    removed = await computed.remove_computed_variable(db, "SA_10_0101_0902", "AGEGROUP")
    assert removed["success"] is True
    again = await computed.remove_computed_variable(db, "SA_10_0101_0902", "AGEGROUP")
    assert "already removed" in again["message"]


async def test_integer_output_rejects_text_values(db, make_table):
    store = await _people(make_table, "SA_10_0101_0903")
    with pytest.raises(ValidationError, match="not an integer"):
        await computed.add_computed_variable(db, "SA_10_0101_0903", _definition(outputType="INT"))
    store.invalidate()
    assert not await store.has_column("AGEGROUP")


def test_invalid_variable_name():
    with pytest.raises(ValidationError, match="must start with a letter"):
        computed.ComputedVariable.from_dict({"name": "1BAD"}).validate()
