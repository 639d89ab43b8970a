"""Format-specific encoders turning formatted records into artifacts."""
from __future__ import annotations

import io
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from scanexport.core.errors import AuthRequiredError, SinkUnavailableError
from scanexport.core.models import ArtifactRef, ExportFormat, ExportOptions
from scanexport.export.csv_engine import CsvEncoder, resolve_value
from scanexport.export.formatters import generate_export_filename
from scanexport.export.headers import resolve_headers
from scanexport.export.sinks import DocumentRenderer, PersistenceSink, SpreadsheetSink

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]
Records = Sequence[Mapping[str, Any]]


def _noop_progress(current: int, total: int, status: str) -> None:
    return None


def export_filename(fmt: ExportFormat, options: ExportOptions, when: Optional[datetime] = None) -> str:
    """Use ``custom_file_name`` (adding the extension when missing) or a timestamped default."""

    if options.custom_file_name:
        name = options.custom_file_name
        return name if name.lower().endswith(fmt.extension) else name + fmt.extension
    return generate_export_filename("export", fmt, when=when, include_time=True)


def cell_rows(records: Records, headers: Sequence[str], options: ExportOptions) -> List[List[Any]]:
    """Plain cell values for spreadsheet-style outputs."""

    return [[resolve_value(record, header, options) for header in headers] for record in records]


class ArtifactEncoder:
    """Base class: one subclass per export format."""

    format: ExportFormat

    def __init__(self, persistence: Optional[PersistenceSink] = None) -> None:
        self.persistence = persistence

    async def encode(
        self,
        records: Records,
        options: ExportOptions,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[ArtifactRef]:
        raise NotImplementedError

    def _require_persistence(self) -> PersistenceSink:
        if self.persistence is None:
            raise SinkUnavailableError("Save file functionality not available")
        return self.persistence

    async def _persist(
        self,
        content: str | bytes,
        options: ExportOptions,
        progress: ProgressCallback,
        total: int,
    ) -> Optional[ArtifactRef]:
        persistence = self._require_persistence()
        progress(total, total, "Saving file...")
        return await persistence.persist(content, export_filename(self.format, options))


class CsvArtifactEncoder(ArtifactEncoder):
    format = ExportFormat.CSV

    def __init__(self, persistence: Optional[PersistenceSink] = None, encoder: Optional[CsvEncoder] = None) -> None:
        super().__init__(persistence)
        self.encoder = encoder or CsvEncoder()

    async def encode(self, records, options, on_progress=None):
        self._require_persistence()
        progress = on_progress or _noop_progress
        progress(0, len(records), "Generating CSV...")
        # Raw items were validated by the orchestrator before formatting.
        content = self.encoder.encode(records, options, on_progress=progress, validate=False)
        return await self._persist(content, options, progress, len(records))


class JsonEncoder(ArtifactEncoder):
    format = ExportFormat.JSON

    async def encode(self, records, options, on_progress=None):
        self._require_persistence()
        progress = on_progress or _noop_progress
        progress(0, len(records), "Generating JSON...")
        content = json.dumps(list(records), indent=2, ensure_ascii=False, default=str)
        return await self._persist(content, options, progress, len(records))


class XlsxEncoder(ArtifactEncoder):
    """Plain-value workbook written with openpyxl."""

    format = ExportFormat.XLSX

    async def encode(self, records, options, on_progress=None):
        self._require_persistence()
        try:
            from openpyxl import Workbook
            from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise SinkUnavailableError("openpyxl is required for Excel exports") from exc

        progress = on_progress or _noop_progress
        progress(0, len(records), "Generating workbook...")
        headers = resolve_headers(options)
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "scan_export"
        sheet.append(headers)
        for row in cell_rows(records, headers, options):
            sheet.append([ILLEGAL_CHARACTERS_RE.sub("", value) if isinstance(value, str) else value for value in row])
        buffer = io.BytesIO()
        workbook.save(buffer)
        return await self._persist(buffer.getvalue(), options, progress, len(records))


class PdfEncoder(ArtifactEncoder):
    format = ExportFormat.PDF

    def __init__(self, renderer: Optional[DocumentRenderer] = None) -> None:
        super().__init__(None)
        self.renderer = renderer

    async def encode(self, records, options, on_progress=None):
        if self.renderer is None:
            raise SinkUnavailableError("PDF rendering is not available")
        progress = on_progress or _noop_progress
        total = len(records)
        progress(0, total, "Generating PDF...")
        ref = await self.renderer.render(
            records,
            resolve_headers(options),
            options.custom_file_name or "Scan Export",
            export_filename(self.format, options),
        )
        progress(total, total, "PDF generated")
        return ref


class SheetsEncoder(ArtifactEncoder):
    format = ExportFormat.GOOGLE_SHEETS

    def __init__(self, sink: Optional[SpreadsheetSink] = None) -> None:
        super().__init__(None)
        self.sink = sink

    async def encode(self, records, options, on_progress=None):
        if self.sink is None or not self.sink.is_authorized:
            raise AuthRequiredError("Google Sheets access not authorized; connect an account first")
        progress = on_progress or _noop_progress
        total = len(records)
        title = options.custom_file_name or f"Scan Export {datetime.now():%Y-%m-%d}"
        headers = resolve_headers(options)
        progress(0, total, "Creating spreadsheet...")
        sheet = await self.sink.create_sheet(title, cell_rows(records, headers, options), headers)
        progress(total, total, "Spreadsheet created!")
        logger.info("Created Google Sheet %s with %d rows", sheet.get("id"), total)
        return ArtifactRef(uri=sheet["url"], mime_type=self.format.mime_type)


def build_encoders(
    persistence: Optional[PersistenceSink] = None,
    spreadsheet: Optional[SpreadsheetSink] = None,
    renderer: Optional[DocumentRenderer] = None,
) -> Dict[ExportFormat, ArtifactEncoder]:
    """One encoder per export format."""

    return {
        ExportFormat.CSV: CsvArtifactEncoder(persistence),
        ExportFormat.JSON: JsonEncoder(persistence),
        ExportFormat.XLSX: XlsxEncoder(persistence),
        ExportFormat.PDF: PdfEncoder(renderer),
        ExportFormat.GOOGLE_SHEETS: SheetsEncoder(spreadsheet),
    }
