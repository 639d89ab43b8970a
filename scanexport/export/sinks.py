"""Capabilities that receive finished export artifacts.

The orchestrator never reaches for module-level handles: every sink is passed
in explicitly. Each protocol below has a default implementation backed by the
local filesystem, ``gspread`` or ``reportlab``; blocking work runs in a worker
thread so the event loop only suspends at these I/O boundaries.
"""
from __future__ import annotations

import asyncio
import logging
import mimetypes
import shutil
from xml.sax.saxutils import escape
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from scanexport.core.errors import AuthRequiredError, SinkFailureError, SinkUnavailableError
from scanexport.core.models import ArtifactRef, ExportOptions
from scanexport.export.csv_engine import resolve_value

logger = logging.getLogger(__name__)


class PersistenceSink(Protocol):
    async def persist(self, content: str | bytes, filename: str) -> Optional[ArtifactRef]:
        ...


class ShareSink(Protocol):
    async def share(self, ref: ArtifactRef, mime_type: str, title: str) -> None:
        ...


class CloudSink(Protocol):
    async def upload(self, ref: ArtifactRef, folder: Optional[str] = None) -> Dict[str, Any]:
        ...


class SpreadsheetSink(Protocol):
    @property
    def is_authorized(self) -> bool:
        ...

    async def create_sheet(
        self, title: str, rows: Sequence[Sequence[Any]], headers: Sequence[str]
    ) -> Dict[str, Any]:
        ...

    async def append_rows(self, spreadsheet_id: str, rows: Sequence[Sequence[Any]]) -> Dict[str, Any]:
        ...


class DocumentRenderer(Protocol):
    async def render(
        self,
        records: Sequence[Mapping[str, Any]],
        headers: Sequence[str],
        title: str,
        filename: str,
    ) -> ArtifactRef:
        ...


def ensure_output_dir(output_path: Path) -> None:
    """Create parent folders for sink outputs when missing."""

    output_path.parent.mkdir(parents=True, exist_ok=True)


def guess_mime_type(filename: str) -> str:
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"


class FilePersistenceSink:
    """Write artifacts under a local output directory."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    async def persist(self, content: str | bytes, filename: str) -> ArtifactRef:
        return await asyncio.to_thread(self._write, content, filename)

    def _write(self, content: str | bytes, filename: str) -> ArtifactRef:
        path = self.output_dir / Path(filename).name
        ensure_output_dir(path)
        try:
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                with path.open("w", encoding="utf-8", newline="") as handle:
                    handle.write(content)
        except OSError as exc:
            raise SinkFailureError(f"Failed to save file: {exc}") from exc
        logger.info("Saved export to %s", path)
        return ArtifactRef(uri=str(path), mime_type=guess_mime_type(filename), size=path.stat().st_size)


class LoggingShareSink:
    """Headless stand-in for a share dialog: announces where the artifact lives."""

    async def share(self, ref: ArtifactRef, mime_type: str, title: str) -> None:
        logger.info("%s: %s (%s)", title, ref.uri, mime_type)


class FolderCloudSink:
    """Copy artifacts into a folder that a desktop sync client mirrors to the cloud."""

    def __init__(self, root: Path, service: str = "folder") -> None:
        self.root = Path(root)
        self.service = service

    async def upload(self, ref: ArtifactRef, folder: Optional[str] = None) -> Dict[str, Any]:
        return await asyncio.to_thread(self._copy, ref, folder)

    def _copy(self, ref: ArtifactRef, folder: Optional[str]) -> Dict[str, Any]:
        source = Path(ref.uri)
        if not source.is_file():
            raise SinkFailureError(f"Cannot upload {ref.uri}: not a local file")
        target = self.root / (folder or "") / source.name
        ensure_output_dir(target)
        try:
            shutil.copy2(source, target)
        except OSError as exc:
            raise SinkFailureError(f"Upload to {target} failed: {exc}") from exc
        logger.info("Uploaded %s to %s", source.name, target)
        return {"service": self.service, "uri": str(target), "size": target.stat().st_size}


class GspreadSheetSink:
    """Google Sheets sink using a service account through ``gspread``.

    ``connect`` establishes the credential; until then every call fails with
    ``AuthRequiredError``.
    """

    def __init__(self, service_account_path: Path | None = None, client: Any = None) -> None:
        self.service_account_path = service_account_path
        self._client = client

    @property
    def is_authorized(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        try:
            import gspread
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise SinkUnavailableError("gspread is required for Google Sheets exports") from exc

        if not self.service_account_path:
            raise AuthRequiredError("No Google service account configured")
        self._client = gspread.service_account(filename=str(self.service_account_path))

    def disconnect(self) -> None:
        self._client = None

    def _require_client(self) -> Any:
        if self._client is None:
            raise AuthRequiredError("Google Sheets access token not set")
        return self._client

    async def create_sheet(
        self, title: str, rows: Sequence[Sequence[Any]], headers: Sequence[str]
    ) -> Dict[str, Any]:
        client = self._require_client()
        return await asyncio.to_thread(self._create_sheet, client, title, rows, headers)

    async def append_rows(self, spreadsheet_id: str, rows: Sequence[Sequence[Any]]) -> Dict[str, Any]:
        client = self._require_client()
        return await asyncio.to_thread(self._append_rows, client, spreadsheet_id, rows)

    @staticmethod
    def _create_sheet(client: Any, title: str, rows: Sequence[Sequence[Any]], headers: Sequence[str]) -> Dict[str, Any]:
        try:
            spreadsheet = client.create(title)
            values: List[List[Any]] = [list(headers)] + [list(row) for row in rows]
            spreadsheet.sheet1.append_rows(values, value_input_option="USER_ENTERED")
        except Exception as exc:
            raise SinkFailureError(f"Failed to create Google Sheet: {exc}") from exc
        return {"id": spreadsheet.id, "url": spreadsheet.url, "title": spreadsheet.title}

    @staticmethod
    def _append_rows(client: Any, spreadsheet_id: str, rows: Sequence[Sequence[Any]]) -> Dict[str, Any]:
        try:
            worksheet = client.open_by_key(spreadsheet_id).sheet1
            response = worksheet.append_rows([list(row) for row in rows], value_input_option="USER_ENTERED")
        except Exception as exc:
            raise SinkFailureError(f"Failed to append data: {exc}") from exc
        return {"id": spreadsheet_id, "appended": len(rows), "response": response}


class ReportlabDocumentRenderer:
    """Render records as a simple tabular PDF with ``reportlab``."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    async def render(
        self,
        records: Sequence[Mapping[str, Any]],
        headers: Sequence[str],
        title: str,
        filename: str,
    ) -> ArtifactRef:
        return await asyncio.to_thread(self._render, records, headers, title, filename)

    def _render(
        self,
        records: Sequence[Mapping[str, Any]],
        headers: Sequence[str],
        title: str,
        filename: str,
    ) -> ArtifactRef:
        try:
            from reportlab.lib import colors
            from reportlab.lib.pagesizes import A4, landscape
            from reportlab.lib.styles import getSampleStyleSheet
            from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise SinkUnavailableError("reportlab is required for PDF exports") from exc

        path = self.output_dir / Path(filename).name
        ensure_output_dir(path)
        options = ExportOptions(include_timestamps="timestamp" in headers)
        table_data = [list(headers)] + [
            [str(resolve_value(record, header, options)) for header in headers] for record in records
        ]
        styles = getSampleStyleSheet()
        # Paragraph parses its text as markup; titles come from user file names.
        try:
            story = [Paragraph(escape(title), styles["Title"]), Spacer(1, 12)]
            table = Table(table_data, repeatRows=1)
            table.setStyle(
                TableStyle(
                    [
                        ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
                        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
                        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                        ("FONTSIZE", (0, 0), (-1, -1), 8),
                        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
                    ]
                )
            )
            story.append(table)
            SimpleDocTemplate(str(path), pagesize=landscape(A4)).build(story)
        except Exception as exc:
            raise SinkFailureError(f"Failed to render PDF: {exc}") from exc
        logger.info("Rendered PDF export to %s", path)
        return ArtifactRef(uri=str(path), mime_type="application/pdf", size=path.stat().st_size)
