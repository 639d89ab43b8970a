"""Normalize scanned items into export-ready records."""
from __future__ import annotations

import copy
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from scanexport.core.models import DateFormat, ExportFormat, ExportItem, ExportOptions, Product, coerce_items

# Numbers at or above this are epoch milliseconds (roughly the year 5138 in seconds).
EPOCH_MILLIS_THRESHOLD = 100_000_000_000


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Return an aware UTC datetime for ``value``.

    Accepts datetimes, epoch seconds or milliseconds and ISO-8601 / RFC 2822
    strings. ``None`` and empty strings yield ``None``; anything else that
    cannot be read raises ``ValueError``.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if abs(value) >= EPOCH_MILLIS_THRESHOLD else value
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"timestamp out of range: {value!r}") from exc
    elif isinstance(value, str):
        parsed = _parse_timestamp_text(value.strip())
    else:
        raise ValueError(f"unsupported timestamp type: {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_timestamp_text(text: str) -> datetime:
    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid timestamp: {text!r}") from exc


def format_date(value: Any, date_format: DateFormat | str = DateFormat.ISO) -> Optional[str]:
    """Render a timestamp according to ``date_format``.

    Missing timestamps stay ``None`` and unreadable strings are returned as-is
    so record formatting never fails.
    """

    try:
        parsed = parse_timestamp(value)
    except ValueError:
        return str(value)
    if parsed is None:
        return None

    fmt = DateFormat.parse(date_format)
    if fmt is DateFormat.ISO:
        return parsed.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    local = parsed.astimezone()
    if fmt is DateFormat.LOCAL:
        return local.strftime("%Y-%m-%d %H:%M:%S")
    if fmt is DateFormat.DATE_ONLY:
        return local.strftime("%Y-%m-%d")
    return local.strftime("%H:%M:%S")


def _format_product(product: Product) -> Dict[str, Any]:
    formatted: Dict[str, Any] = {
        "name": product.name or "",
        "price": product.price if product.price not in ("", None) else None,
        "category": product.category or "",
        "brand": product.brand or "",
        "upc": product.upc or "",
    }
    if product.nutrition:
        formatted["nutrition"] = copy.deepcopy(product.nutrition)
    return formatted


def format_item(item: ExportItem, options: ExportOptions) -> Dict[str, Any]:
    """Project a single item into the shape selected by ``options``."""

    record: Dict[str, Any] = {"id": item.id, "type": item.type, "data": item.data}
    if options.include_timestamps:
        record["timestamp"] = format_date(item.timestamp, options.date_format)
    if options.include_metadata:
        record["scanned_count"] = item.scanned_count or 1
        record["location"] = item.location or None
    if options.include_product_info and item.product:
        record["product"] = _format_product(item.product)
    return record


def format_items(
    items: Iterable[ExportItem | Mapping[str, Any]], options: ExportOptions | None = None
) -> List[Dict[str, Any]]:
    """Format every item for export. Input items are left untouched."""

    options = options or ExportOptions()
    return [format_item(item, options) for item in coerce_items(items)]


def generate_export_filename(
    base_name: str,
    fmt: ExportFormat | str,
    when: Optional[datetime] = None,
    include_time: bool = False,
    suffix: Optional[str] = None,
) -> str:
    """Build ``base_YYYY-MM-DD[_HH-MM-SS][_suffix].ext`` for an export."""

    when = when or datetime.now()
    filename = f"{base_name}_{when.strftime('%Y-%m-%d')}"
    if include_time:
        filename += f"_{when.strftime('%H-%M-%S')}"
    if suffix:
        filename += f"_{suffix}"
    return filename + ExportFormat.parse(fmt).extension
