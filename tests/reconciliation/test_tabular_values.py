from datetime import date, datetime, timezone

import pytest
from openpyxl import Workbook

from parhub.reconciliation.tabular import TabularFormatError, TabularReader, read_tabular_rows
from parhub.reconciliation.values import clean_text, coerce_bool, coerce_datetime, coerce_int


def _write_workbook(path, rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    workbook.save(path)
    return path


def test_reads_first_sheet_with_header_after_blank_rows(tmp_path):
    path = _write_workbook(
        tmp_path / "customers.xlsx",
        [
            [None, None, None],
            ["Client ID", "Phone", "Last Service"],
            [101, 5551234567.0, datetime(2024, 3, 2)],
            [None, None, None],
            [102, "555-000-1111", None],
        ],
    )

    reader = TabularReader(path)
    rows = list(reader)

    assert reader.headers == ("Client ID", "Phone", "Last Service")
    assert [row.values["Client ID"] for row in rows] == [101, 102]
    assert rows[0].values["Last Service"] == datetime(2024, 3, 2)
    assert rows[0].source_line == 3
    assert reader.statistics.rows_read == 2
    assert reader.statistics.rows_skipped_blank == 1


def test_reads_csv_with_bom(tmp_path):
    path = tmp_path / "events.csv"
    path.write_text("Title,Start\nOil change,2024-03-01\n,\nTires,2024-03-02\n", encoding="utf-8-sig")

    rows = read_tabular_rows(path)

    assert rows == [
        {"Title": "Oil change", "Start": "2024-03-01"},
        {"Title": "Tires", "Start": "2024-03-02"},
    ]


def test_short_csv_rows_fill_missing_cells(tmp_path):
    path = tmp_path / "short.csv"
    path.write_text("A,B,C\n1,2\n", encoding="utf-8")
    assert read_tabular_rows(path) == [{"A": "1", "B": "2", "C": None}]


def test_unsupported_suffix_and_empty_file(tmp_path):
    with pytest.raises(TabularFormatError):
        read_tabular_rows(tmp_path / "notes.txt")

    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(TabularFormatError):
        read_tabular_rows(empty)


def test_clean_text():
    assert clean_text("  hi ") == "hi"
    assert clean_text(101.0) == "101"
    assert clean_text("   ") is None
    assert clean_text(None) is None


def test_coerce_int():
    assert coerce_int("2003") == 2003
    assert coerce_int(2003.0) == 2003
    assert coerce_int("45,120") == 45120
    assert coerce_int(float("nan")) is None
    assert coerce_int(True) is None
    assert coerce_int("n/a") is None


def test_coerce_bool():
    assert coerce_bool("Yes") is True
    assert coerce_bool("0") is False
    assert coerce_bool(1) is True
    assert coerce_bool("maybe") is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-03-01T09:00:00Z", datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)),
        ("03/01/2024 9:00 AM", datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)),
        ("03/01/2024", datetime(2024, 3, 1, tzinfo=timezone.utc)),
        ("Mar 01, 2024", datetime(2024, 3, 1, tzinfo=timezone.utc)),
        (date(2024, 3, 1), datetime(2024, 3, 1, tzinfo=timezone.utc)),
        (datetime(2024, 3, 1, 9, 0), datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)),
    ],
)
def test_coerce_datetime(raw, expected):
    assert coerce_datetime(raw) == expected


def test_coerce_datetime_rejects_garbage():
    assert coerce_datetime("next tuesday") is None
    assert coerce_datetime("  ") is None
    assert coerce_datetime(None) is None
