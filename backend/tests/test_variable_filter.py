from app.samples.headers import Header
from app.samples.variable_filter import filter_variables, partition_headers


def _headers(*names):
    return [Header(n) for n in names]


def test_excluded_columns_are_dropped():
    rows = [{"FNAME": "Ann", "SSN": "1", "FILE": 1}]
    result = filter_variables(_headers("FNAME", "SSN", "FILE"), rows, {"SSN"})
    assert [h.name for h in result.headers] == ["FNAME", "FILE"]
    assert result.rows == [{"FNAME": "Ann", "FILE": 1}]
    assert result.excluded_count == 1
    assert result.excluded_names == ["SSN"]


def test_tracking_columns_are_never_excluded():
    rows = [{"FILE": 1, "_source_file": "a.csv", "_file_index": 1}]
    excluded = {"FILE", "_SOURCE_FILE", "_FILE_INDEX"}
    result = filter_variables(_headers("FILE", "_source_file", "_file_index"), rows, excluded)
    assert [h.name for h in result.headers] == ["FILE", "_source_file", "_file_index"]
    assert result.excluded_count == 0


def test_project_inclusion_keeps_column_under_new_name():
    rows = [{"FNAME": "Ann", "SSN": "123"}]
    result = filter_variables(_headers("FNAME", "SSN"), rows, {"SSN"}, {"SSN": "ssn last"})
    assert [h.name for h in result.headers] == ["FNAME", "SSNLAST"]
    assert result.headers[1].original_name == "SSN"
    assert result.rows == [{"FNAME": "Ann", "SSNLAST": "123"}]
    assert result.renamed == {"SSN": "SSNLAST"}
    assert result.excluded_count == 0


def test_nothing_excluded_returns_rows_untouched():
    rows = [{"FNAME": "Ann"}]
    result = filter_variables(_headers("FNAME"), rows, set())
    assert result.rows is rows
    assert result.summary() == {"excludedCount": 0, "excludedNames": [], "renamed": {}}


def test_partition_headers_for_detection():
    kept, dropped = partition_headers(["FNAME", "SSN", "FILE"], {"SSN", "FILE"})
    assert kept == ["FNAME", "FILE"]
    assert dropped == ["SSN"]


def test_inclusion_onto_a_column_already_in_the_file_is_reported_as_excluded():
    rows = [{"FNAME": "Ann", "SSN": "123", "SSNLAST": "0123"}]
    result = filter_variables(_headers("FNAME", "SSN", "SSNLAST"), rows, {"SSN"}, {"SSN": "SSNLAST"})
    assert [h.name for h in result.headers] == ["FNAME", "SSNLAST"]
    assert result.rows == [{"FNAME": "Ann", "SSNLAST": "0123"}]
    assert result.excluded_names == ["SSN"]
    assert result.excluded_count == 1
    assert result.renamed == {}
