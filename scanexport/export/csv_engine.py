"""CSV encoding for scanned-item exports.

Rows are produced in fixed-size batches so large exports can report progress.
The header row is computed once and written once; batching never changes the
output bytes.
"""
from __future__ import annotations

import copy
import csv
import io
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from scanexport.core.errors import ValidationError
from scanexport.core.models import ExportItem, ExportOptions
from scanexport.export.formatters import format_date, parse_timestamp
from scanexport.export.headers import resolve_headers

logger = logging.getLogger(__name__)

BOM = "\ufeff"
DEFAULT_CHUNK_SIZE = 1000
_SPECIAL_CHARS = (",", '"', "\n", "\r")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

ProgressCallback = Callable[[int, int, str], None]


def _as_record(item: ExportItem | Mapping[str, Any]) -> Dict[str, Any]:
    if isinstance(item, ExportItem):
        return item.to_dict()
    return dict(item)


def _collect_issues(records: Sequence[Mapping[str, Any]]) -> List[Tuple[int, str]]:
    issues: List[Tuple[int, str]] = []
    for index, record in enumerate(records):
        if not record.get("id"):
            issues.append((index, f"Item at index {index} missing ID"))
        if not record.get("data"):
            issues.append((index, f"Item at index {index} missing data field"))
        timestamp = record.get("timestamp")
        if timestamp:
            try:
                parse_timestamp(timestamp)
            except ValueError:
                issues.append((index, f"Item at index {index} has invalid timestamp"))
    return issues


def validate_items(items: Iterable[ExportItem | Mapping[str, Any]]) -> List[str]:
    """Return every validation issue; an empty list means all items are exportable."""

    return [message for _, message in _collect_issues([_as_record(item) for item in items])]


def ensure_valid(items: Iterable[ExportItem | Mapping[str, Any]]) -> None:
    """Raise a single ``ValidationError`` listing every offending index."""

    issues = _collect_issues([_as_record(item) for item in items])
    if issues:
        raise ValidationError([message for _, message in issues], [index for index, _ in issues])


def escape_value(value: Any) -> str:
    """Quote ``value`` when it contains a comma, a double quote or a newline."""

    if value is None:
        return ""
    text = str(value)
    if any(char in text for char in _SPECIAL_CHARS):
        return '"' + text.replace('"', '""') + '"'
    return text


def format_price(price: Any) -> str:
    if price is None or price == "":
        return ""
    try:
        return f"{float(price):.2f}"
    except (TypeError, ValueError):
        return str(price)


def _render_timestamp(value: Any, options: ExportOptions) -> str:
    if not options.include_timestamps or not value:
        return ""
    if isinstance(value, str):
        return value
    return format_date(value, options.date_format) or ""


def resolve_value(record: Mapping[str, Any], header: str, options: ExportOptions) -> Any:
    """Look up the cell for ``header``; unknown headers resolve to an empty string."""

    product = record.get("product")
    if not isinstance(product, Mapping):
        product = {}
    if header == "id":
        return record.get("id") or ""
    if header == "type":
        return record.get("type") or ""
    if header == "data":
        return record.get("data") or ""
    if header == "timestamp":
        return _render_timestamp(record.get("timestamp"), options)
    if header == "product_name":
        return product.get("name") or ""
    if header == "product_price":
        return format_price(product.get("price"))
    if header == "product_category":
        return product.get("category") or ""
    if header == "product_brand":
        return product.get("brand") or ""
    if header == "scanned_count":
        return record.get("scanned_count") or record.get("scannedCount") or 1
    if header == "location":
        return record.get("location") or ""
    return ""


def format_row(record: Mapping[str, Any], headers: Sequence[str], options: ExportOptions) -> str:
    return ",".join(escape_value(resolve_value(record, header, options)) for header in headers)


def render_csv(
    items: Iterable[ExportItem | Mapping[str, Any]],
    headers: Sequence[str],
    options: ExportOptions | None = None,
) -> str:
    """Encode every item in one pass without validation or batching."""

    options = options or ExportOptions()
    lines = [",".join(escape_value(header) for header in headers)]
    lines.extend(format_row(_as_record(item), headers, options) for item in items)
    return "\n".join(lines)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _apply_policy(record: Dict[str, Any], include_empty_fields: bool, placeholder: str) -> Dict[str, Any]:
    if include_empty_fields:
        return {key: placeholder if _is_empty(value) else value for key, value in record.items()}
    return {key: value for key, value in record.items() if not _is_empty(value)}


def apply_empty_field_policy(
    records: Iterable[Mapping[str, Any]],
    include_empty_fields: bool = False,
    placeholder: str = "N/A",
) -> List[Dict[str, Any]]:
    """Drop empty fields, or replace them with ``placeholder``.

    Applies to top-level fields and to the nested product record. Returns new
    dictionaries; the inputs are not modified.
    """

    processed: List[Dict[str, Any]] = []
    for record in records:
        updated = _apply_policy(copy.deepcopy(dict(record)), include_empty_fields, placeholder)
        if isinstance(updated.get("product"), Mapping):
            updated["product"] = _apply_policy(dict(updated["product"]), include_empty_fields, placeholder)
        processed.append(updated)
    return processed


def _read_rows(content: str) -> List[List[str]]:
    return list(csv.reader(io.StringIO(content)))


def reorder_columns(content: str, column_order: Sequence[str]) -> str:
    """Rearrange CSV columns into ``column_order``; unknown columns become empty cells."""

    if not column_order:
        return content
    rows = _read_rows(content)
    if not rows:
        return content
    index_by_header = {header: position for position, header in enumerate(rows[0])}
    lines = []
    for position, row in enumerate(rows):
        if position == 0:
            cells = list(column_order)
        else:
            cells = [
                row[index_by_header[header]]
                if header in index_by_header and index_by_header[header] < len(row)
                else ""
                for header in column_order
            ]
        lines.append(",".join(escape_value(cell) for cell in cells))
    return "\n".join(lines)


def add_bom(content: str) -> str:
    """Prefix a UTF-8 byte-order mark so spreadsheet tools detect the encoding."""

    return content if content.startswith(BOM) else BOM + content


def strip_control_chars(content: str) -> str:
    return _CONTROL_CHARS.sub("", content)


def validate_structure(content: str) -> List[int]:
    """Return 1-based row numbers whose column count differs from the header row."""

    rows = _read_rows(content.lstrip(BOM))
    if not rows:
        return []
    expected = len(rows[0])
    return [
        number
        for number, row in enumerate(rows, start=1)
        if number > 1 and row and len(row) != expected
    ]


def csv_file_info(content: str) -> Dict[str, Any]:
    rows = [row for row in _read_rows(content.lstrip(BOM)) if row]
    headers = rows[0] if rows else []
    return {
        "row_count": max(len(rows) - 1, 0),
        "column_count": len(headers),
        "headers": headers,
        "file_size": len(content.encode("utf-8")),
        "line_count": len(content.split("\n")),
    }


class CsvEncoder:
    """Tabular encoder producing comma-delimited text in batches."""

    def __init__(self, chunk_size: int | None = None) -> None:
        self.chunk_size = chunk_size

    def encode(
        self,
        items: Iterable[ExportItem | Mapping[str, Any]],
        options: ExportOptions | None = None,
        on_progress: Optional[ProgressCallback] = None,
        validate: bool = True,
    ) -> str:
        """Validate, then encode ``items`` batch by batch.

        ``validate=False`` skips the upfront check when the caller has already
        validated the raw items.
        """

        options = options or ExportOptions()
        records = [_as_record(item) for item in items]
        if validate:
            ensure_valid(records)

        headers = resolve_headers(options)
        records = apply_empty_field_policy(
            records, options.include_empty_fields, options.empty_field_placeholder
        )

        chunk_size = self.chunk_size or options.chunk_size or DEFAULT_CHUNK_SIZE
        total = len(records)
        chunk_count = (total + chunk_size - 1) // chunk_size
        lines = [",".join(escape_value(header) for header in headers)]
        for number, start in enumerate(range(0, total, chunk_size), start=1):
            batch = records[start:start + chunk_size]
            lines.extend(format_row(record, headers, options) for record in batch)
            logger.debug("Encoded CSV chunk %d/%d", number, chunk_count)
            if on_progress:
                on_progress(
                    min(start + chunk_size, total),
                    total,
                    f"Processing chunk {number} of {chunk_count}",
                )

        content = "\n".join(lines)
        if options.add_bom:
            content = add_bom(content)
        return content
