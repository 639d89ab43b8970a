"""CSV encoding: escaping, validation, batching and post-processing helpers."""
import csv
import io

import pytest

from scanexport.core.errors import ValidationError
from scanexport.core.models import ExportOptions
from scanexport.export.csv_engine import (
    BOM,
    CsvEncoder,
    apply_empty_field_policy,
    csv_file_info,
    escape_value,
    render_csv,
    reorder_columns,
    validate_items,
    validate_structure,
)
from scanexport.export.headers import derive_headers


def _records(count: int):
    return [
        {"id": str(index), "type": "qr", "data": f"value {index}, with comma" if index % 3 == 0 else f"v{index}"}
        for index in range(1, count + 1)
    ]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("plain", "plain"),
        ("hello, world", '"hello, world"'),
        ('say "hi"', '"say ""hi"""'),
        ("line\nbreak", '"line\nbreak"'),
        ("carriage\rreturn", '"carriage\rreturn"'),
        (None, ""),
        (42, "42"),
    ],
)
def test_escape_value(raw, expected):
    assert escape_value(raw) == expected


def test_escaped_values_parse_back_with_csv_reader():
    content = CsvEncoder().encode([{"id": "1", "data": 'a, "quoted"\nvalue'}])

    rows = list(csv.reader(io.StringIO(content)))

    assert rows[1] == ["1", "", 'a, "quoted"\nvalue']


def test_validation_reports_every_offending_index():
    items = [
        {"id": "1", "data": "ok"},
        {"id": "", "data": "missing id"},
        {"id": "3", "data": ""},
        {"id": "4", "data": "bad time", "timestamp": "not a date"},
    ]

    with pytest.raises(ValidationError) as excinfo:
        CsvEncoder().encode(items)

    assert excinfo.value.indices == [1, 2, 3]
    assert str(excinfo.value).startswith("Data validation failed: ")
    assert "Item at index 1 missing ID" in excinfo.value.issues
    assert "Item at index 2 missing data field" in excinfo.value.issues
    assert "Item at index 3 has invalid timestamp" in excinfo.value.issues


def test_validate_items_returns_empty_list_for_valid_data():
    assert validate_items(_records(3)) == []


def test_validate_items_accepts_millisecond_timestamps():
    assert validate_items([{"id": "1", "data": "x", "timestamp": 1705314600000}]) == []


@pytest.mark.parametrize("count", [0, 1, 7, 10, 25])
@pytest.mark.parametrize("chunk_size", [1, 3, 10, 1000])
def test_chunked_output_matches_single_pass(count, chunk_size):
    records = _records(count)
    options = ExportOptions(chunk_size=chunk_size)

    chunked = CsvEncoder().encode(records, options, validate=False)

    assert chunked == render_csv(records, derive_headers(options), options)
    assert chunked.count("id,type,data") == 1


def test_progress_is_reported_per_chunk():
    events = []

    CsvEncoder(chunk_size=4).encode(_records(10), on_progress=lambda *event: events.append(event))

    assert events == [
        (4, 10, "Processing chunk 1 of 3"),
        (8, 10, "Processing chunk 2 of 3"),
        (10, 10, "Processing chunk 3 of 3"),
    ]


def test_header_only_with_timestamps():
    options = ExportOptions(include_timestamps=True)
    content = CsvEncoder().encode(
        [{"id": "1", "type": "qr", "data": "hello, world", "timestamp": "2024-01-15T10:30:00.000Z"}], options
    )

    assert content.split("\n") == ["id,type,data,timestamp", '1,qr,"hello, world",2024-01-15T10:30:00.000Z']


def test_product_columns_and_price_formatting():
    options = ExportOptions(include_product_info=True)
    record = {"id": "1", "type": "barcode", "data": "0123", "product": {"name": "Milk", "price": 3.5}}

    content = CsvEncoder().encode([record], options)

    assert content.split("\n")[1] == "1,barcode,0123,Milk,3.50,,"


def test_unknown_custom_header_yields_empty_cell():
    options = ExportOptions(custom_headers=["data", "unknown", "id"])

    content = CsvEncoder().encode([{"id": "1", "data": "x"}], options)

    assert content.split("\n") == ["data,unknown,id", "x,,1"]


def test_bom_prefix():
    content = CsvEncoder().encode([{"id": "1", "data": "x"}], ExportOptions(add_bom=True))

    assert content.startswith(BOM)
    assert content.count(BOM) == 1


def test_empty_field_policy_drops_or_substitutes():
    records = [{"id": "1", "data": "x", "location": None, "product": {"name": "", "brand": "Acme"}}]

    dropped = apply_empty_field_policy(records)
    filled = apply_empty_field_policy(records, include_empty_fields=True, placeholder="-")

    assert dropped == [{"id": "1", "data": "x", "product": {"brand": "Acme"}}]
    assert filled[0]["location"] == "-"
    assert filled[0]["product"] == {"name": "-", "brand": "Acme"}
    assert records[0]["location"] is None


def test_placeholder_reaches_csv_cells():
    options = ExportOptions(include_metadata=True, include_empty_fields=True, empty_field_placeholder="N/A")

    content = CsvEncoder().encode([{"id": "1", "data": "x", "type": "", "location": None}], options)

    assert content.split("\n")[1] == "1,N/A,x,1,N/A"


def test_reorder_columns_respects_quoted_commas():
    content = 'id,type,data\n1,qr,"hello, world"'

    reordered = reorder_columns(content, ["data", "id", "missing"])

    assert reordered.split("\n") == ["data,id,missing", '"hello, world",1,']


def test_validate_structure_flags_ragged_rows():
    content = "id,type,data\n1,qr,x\n2,qr\n3,qr,y,extra"

    assert validate_structure(content) == [3, 4]
    assert validate_structure(BOM + "a,b\n1,2") == []


def test_csv_file_info():
    info = csv_file_info("id,data\n1,x\n2,y")

    assert info["row_count"] == 2
    assert info["column_count"] == 2
    assert info["headers"] == ["id", "data"]
