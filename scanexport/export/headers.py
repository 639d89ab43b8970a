"""Column derivation for tabular exports."""
from __future__ import annotations

from typing import List

from scanexport.core.models import ExportOptions

BASE_HEADERS = ["id", "type", "data"]
TIMESTAMP_HEADERS = ["timestamp"]
PRODUCT_HEADERS = ["product_name", "product_price", "product_category", "product_brand"]
METADATA_HEADERS = ["scanned_count", "location"]


def derive_headers(options: ExportOptions) -> List[str]:
    """Return the ordered column set selected by ``options``.

    The order is fixed: base columns, timestamp, product columns, metadata.
    """

    headers = list(BASE_HEADERS)
    if options.include_timestamps:
        headers.extend(TIMESTAMP_HEADERS)
    if options.include_product_info:
        headers.extend(PRODUCT_HEADERS)
    if options.include_metadata:
        headers.extend(METADATA_HEADERS)
    return headers


def resolve_headers(options: ExportOptions) -> List[str]:
    """Custom headers replace the derived set entirely when provided."""

    if options.custom_headers:
        return list(options.custom_headers)
    return derive_headers(options)
