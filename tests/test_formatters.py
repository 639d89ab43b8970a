"""Record formatting, timestamp rendering and header derivation."""
from datetime import datetime, timezone

import pytest

from scanexport.core.errors import ConfigurationError
from scanexport.core.models import DateFormat, ExportFormat, ExportItem, ExportOptions, Product
from scanexport.export.formatters import format_date, format_items, generate_export_filename, parse_timestamp
from scanexport.export.headers import derive_headers, resolve_headers


def test_parse_timestamp_accepts_iso_epoch_and_rfc2822():
    expected = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    assert parse_timestamp("2024-01-15T10:30:00Z") == expected
    assert parse_timestamp(expected.timestamp()) == expected
    assert parse_timestamp("Mon, 15 Jan 2024 10:30:00 +0000") == expected
    assert parse_timestamp(None) is None


def test_parse_timestamp_reads_large_numbers_as_milliseconds():
    expected = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    assert parse_timestamp(1705314600000) == expected
    assert parse_timestamp(1705314600) == expected


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timestamp("not a date")


def test_format_date_iso_uses_milliseconds_and_z_suffix():
    assert format_date("2024-01-15T10:30:00Z", DateFormat.ISO) == "2024-01-15T10:30:00.000Z"


def test_format_date_variants_and_passthrough():
    value = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    local = value.astimezone()

    assert format_date(value, "date-only") == local.strftime("%Y-%m-%d")
    assert format_date(value, "time") == local.strftime("%H:%M:%S")
    assert format_date(value, DateFormat.LOCAL) == local.strftime("%Y-%m-%d %H:%M:%S")
    assert format_date("yesterday-ish", DateFormat.ISO) == "yesterday-ish"
    assert format_date(None) is None


def test_format_items_projects_only_selected_fields(sample_items):
    records = format_items(sample_items, ExportOptions())

    assert records[0] == {"id": "1", "type": "qr", "data": "hello, world"}
    assert "product" not in records[1]


def test_format_items_includes_product_and_metadata(sample_items):
    options = ExportOptions(include_timestamps=True, include_product_info=True, include_metadata=True)
    record = format_items(sample_items, options)[1]

    assert record["timestamp"] == "2024-01-15T11:00:00.000Z"
    assert record["product"]["name"] == "Oat Milk"
    assert record["scanned_count"] == 2
    assert record["location"] == "Aisle 4"


def test_format_items_does_not_modify_inputs():
    nutrition = {"calories": 120}
    item = ExportItem(id="9", data="x", product=Product(name="Bar", nutrition=nutrition))

    records = format_items([item], ExportOptions(include_product_info=True))
    records[0]["product"]["nutrition"]["calories"] = 0

    assert item.product.nutrition == {"calories": 120}


def test_format_items_accepts_mappings_with_camel_case_keys():
    records = format_items(
        [{"id": "a", "data": "b", "scannedCount": 4}], ExportOptions(include_metadata=True)
    )

    assert records[0]["scanned_count"] == 4


def test_derive_headers_follows_fixed_order():
    options = ExportOptions(include_timestamps=True, include_product_info=True, include_metadata=True)

    assert derive_headers(options) == [
        "id",
        "type",
        "data",
        "timestamp",
        "product_name",
        "product_price",
        "product_category",
        "product_brand",
        "scanned_count",
        "location",
    ]
    assert derive_headers(ExportOptions()) == ["id", "type", "data"]


def test_custom_headers_replace_derived_headers():
    options = ExportOptions(include_timestamps=True, custom_headers=["data", "id"])

    assert resolve_headers(options) == ["data", "id"]


def test_generate_export_filename():
    when = datetime(2024, 1, 15, 9, 5, 7)

    assert generate_export_filename("export", ExportFormat.CSV, when) == "export_2024-01-15.csv"
    assert (
        generate_export_filename("scans", "json", when, include_time=True, suffix="all")
        == "scans_2024-01-15_09-05-07_all.json"
    )


def test_export_options_from_dict_maps_camel_case_and_rejects_unknown():
    options = ExportOptions.from_dict({"includeTimestamps": True, "dateFormat": "date-only", "addBom": True})

    assert options.include_timestamps is True
    assert options.date_format is DateFormat.DATE_ONLY
    assert options.add_bom is True

    with pytest.raises(ConfigurationError, match="Unknown export options"):
        ExportOptions.from_dict({"includeEverything": True})


def test_export_options_validate_email_and_chunk_size():
    with pytest.raises(ConfigurationError):
        ExportOptions(email_address="not-an-address")
    with pytest.raises(ConfigurationError):
        ExportOptions(chunk_size=0)
