"""Shared constants and enums used across the application."""

from enum import StrEnum


class PipelineStatus(StrEnum):
    """Overall status of a post-processing run."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PARTIALLY_COMPLETED = "PARTIALLY_COMPLETED"


class StepStatus(StrEnum):
    """Status of an individual pipeline stage."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class ColumnType(StrEnum):
    """Logical type detected for an uploaded column."""

    INTEGER = "INTEGER"
    REAL = "REAL"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    TEXT = "TEXT"


class SplitMode(StrEnum):
    """Extraction output layout."""

    ALL = "all"
    SPLIT = "split"


class SampleFileType(StrEnum):
    """Delivery orientation of an extracted sample."""

    LANDLINE = "landline"
    CELL = "cell"


class AgeCalculationMode(StrEnum):
    """Reference date used when deriving age from a birth year."""

    JANUARY = "january"
    TODAY = "today"


# ─── Vendor / client identities ───────────────────────
TARRANCE_CLIENT_ID = 102
RNC_VENDOR_ID = 4
L2_VENDOR_ID = 1

# ─── Columns appended to every sample table ───────────
# (name, type, default) in storage order
SYSTEM_CONSTANT_COLUMNS: tuple[tuple[str, ColumnType, object], ...] = (
    ("VEND", ColumnType.INTEGER, 5),
    ("TFLAG", ColumnType.INTEGER, 0),
    ("CALLIDL1", ColumnType.TEXT, "9999999999"),
    ("CALLIDL2", ColumnType.TEXT, "9999999999"),
    ("CALLIDC1", ColumnType.TEXT, "9999999999"),
    ("CALLIDC2", ColumnType.TEXT, "9999999999"),
)

# ─── Tracking columns (never excluded) ────────────────
FILE_COLUMN = "FILE"
SOURCE_FILE_COLUMN = "_source_file"
FILE_INDEX_COLUMN = "_file_index"
PROTECTED_COLUMNS = frozenset({FILE_COLUMN, SOURCE_FILE_COLUMN, FILE_INDEX_COLUMN})

# Stored as text regardless of the detected type
FORCED_TEXT_COLUMNS = frozenset({
    "RDATE", "REGDATE", "DOB", "BIRTHDATE",
    "PHONE", "LAND", "CELL", "WPHONE", "IZIP", "REGN", "IAGE",
})

# ─── Extraction ───────────────────────────────────────
STRATIFY_COLUMNS = ("IAGE", "GEND", "PARTY", "ETHNICITY", "IZIP")
HOUSEHOLD_RANK_BASES = ("FNAME", "LNAME", "IAGE", "GEND", "PARTY", "CALCPARTY", "VFREQGEN", "VFREQPR")
HOUSEHOLD_MAX_RANK = 4
NUMBER_COLUMN = "$N"
