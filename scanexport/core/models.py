"""Data models for scanned items, export options, and export results."""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from scanexport.core.errors import ConfigurationError, UnsupportedFormatError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def camel_to_snake(key: str) -> str:
    """Translate ``includeTimestamps`` style keys into ``include_timestamps``."""

    return _CAMEL_BOUNDARY.sub("_", key).lower()


class ExportFormat(str, Enum):
    """Every artifact kind the orchestrator can produce."""

    CSV = "csv"
    JSON = "json"
    PDF = "pdf"
    GOOGLE_SHEETS = "google_sheets"
    XLSX = "xlsx"

    @classmethod
    def parse(cls, tag: Any) -> "ExportFormat":
        if isinstance(tag, cls):
            return tag
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            raise UnsupportedFormatError(tag) from None

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]


_EXTENSIONS = {
    ExportFormat.CSV: ".csv",
    ExportFormat.JSON: ".json",
    ExportFormat.PDF: ".pdf",
    ExportFormat.GOOGLE_SHEETS: ".gsheet",
    ExportFormat.XLSX: ".xlsx",
}

_MIME_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
    ExportFormat.PDF: "application/pdf",
    ExportFormat.GOOGLE_SHEETS: "application/vnd.google-apps.spreadsheet",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class DateFormat(str, Enum):
    """How timestamps are rendered in exported records."""

    ISO = "iso"
    LOCAL = "local"
    DATE_ONLY = "date-only"
    TIME_ONLY = "time-only"

    @classmethod
    def parse(cls, value: Any) -> "DateFormat":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace("_", "-")
        text = {"date": "date-only", "time": "time-only"}.get(text, text)
        try:
            return cls(text)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise ConfigurationError(f"Unknown date format {value!r}; expected one of {allowed}") from None


@dataclass
class Product:
    """Product details looked up for a scanned code."""

    name: Optional[str] = None
    price: Any = None
    category: Optional[str] = None
    brand: Optional[str] = None
    upc: Optional[str] = None
    nutrition: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Product":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in raw.items() if key in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ExportItem:
    """A single scanned record as captured by the scanner."""

    id: str
    data: str
    type: str = ""
    timestamp: datetime | str | None = None
    product: Optional[Product] = None
    location: Optional[str] = None
    scanned_count: int = 1
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ExportItem":
        """Build an item from a JSON-style mapping.

        Missing ``id`` or ``data`` become empty strings so that validation, not
        construction, reports them.
        """

        product = raw.get("product")
        if isinstance(product, Mapping):
            product = Product.from_dict(product)
        scanned_count = raw.get("scannedCount", raw.get("scanned_count"))
        return cls(
            id="" if raw.get("id") is None else str(raw.get("id")),
            data="" if raw.get("data") is None else str(raw.get("data")),
            type=str(raw.get("type") or ""),
            timestamp=raw.get("timestamp"),
            product=product or None,
            location=raw.get("location"),
            scanned_count=scanned_count or 1,
            metadata=raw.get("metadata"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain dictionary representation."""

        return asdict(self)


def coerce_items(items: Iterable[ExportItem | Mapping[str, Any]]) -> List[ExportItem]:
    """Accept items as dataclasses or mappings and return dataclasses."""

    return [item if isinstance(item, ExportItem) else ExportItem.from_dict(item) for item in items]


@dataclass
class ExportOptions:
    """Recognized options for a single export call."""

    include_timestamps: bool = False
    include_product_info: bool = False
    include_metadata: bool = False
    date_format: DateFormat = DateFormat.ISO
    custom_file_name: Optional[str] = None
    custom_headers: Optional[List[str]] = None
    send_email: bool = False
    email_address: Optional[str] = None
    auto_upload: bool = False
    upload_folder: Optional[str] = None
    compress_files: bool = False
    include_empty_fields: bool = False
    empty_field_placeholder: str = "N/A"
    add_bom: bool = False
    chunk_size: int = 1000

    def __post_init__(self) -> None:
        self.date_format = DateFormat.parse(self.date_format)
        if self.custom_headers is not None:
            self.custom_headers = [str(header) for header in self.custom_headers]
        if not isinstance(self.chunk_size, int) or isinstance(self.chunk_size, bool) or self.chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be a positive integer, got {self.chunk_size!r}")
        if self.email_address:
            self.email_address = self.email_address.strip()
            if not EMAIL_PATTERN.match(self.email_address):
                raise ConfigurationError(f"Invalid email address: {self.email_address}")

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "ExportOptions":
        """Build options from camelCase or snake_case keys, rejecting unknown ones."""

        if not raw:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        unknown: List[str] = []
        for key, value in raw.items():
            name = camel_to_snake(key)
            if name not in known:
                unknown.append(key)
                continue
            kwargs[name] = value
        if unknown:
            raise ConfigurationError(f"Unknown export options: {', '.join(sorted(unknown))}")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date_format"] = self.date_format.value
        return data


@dataclass(frozen=True)
class ArtifactRef:
    """Opaque handle to a persisted or shared export output."""

    uri: str
    mime_type: str
    size: Optional[int] = None


@dataclass(frozen=True)
class EmailReceipt:
    success: bool
    message_id: str
    sent_at: str


@dataclass(frozen=True)
class ExportResult:
    """Outcome of one successful export call."""

    artifact: Optional[ArtifactRef]
    format: ExportFormat
    item_count: int
    byte_size: Optional[int] = None
    email_receipt: Optional[EmailReceipt] = None
    upload_receipt: Optional[Dict[str, Any]] = None
    compression: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["format"] = self.format.value
        return data


@dataclass(frozen=True)
class ProgressEvent:
    """One entry in the ordered progress stream of an export.

    Either ``current``/``total``/``status`` describe a phase, or ``error``
    carries the terminal failure message.
    """

    current: int = 0
    total: int = 0
    status: str = ""
    error: Optional[str] = None
    done: bool = field(default=False, compare=False)

    @property
    def percentage(self) -> float:
        return (self.current / self.total) * 100 if self.total else 0.0

    @property
    def is_terminal(self) -> bool:
        return self.done or self.error is not None
