"""Top-level export entry point.

One call formats the items once, hands them to the encoder for the requested
format, then optionally emails and uploads the artifact. Every step reports
through a single :class:`ProgressTracker`; any failure aborts the remaining
steps, emits one terminal error event and propagates to the caller.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Dict, Iterable, Mapping, Optional, TypeVar

from scanexport.core.errors import (
    ConfigurationError,
    ExportError,
    SinkFailureError,
    SinkUnavailableError,
    ValidationError,
)
from scanexport.core.models import (
    ArtifactRef,
    EmailReceipt,
    ExportFormat,
    ExportItem,
    ExportOptions,
    ExportResult,
    coerce_items,
)
from scanexport.core.utils import ExportSettings
from scanexport.export.csv_engine import ensure_valid
from scanexport.export.encoders import ArtifactEncoder, build_encoders
from scanexport.export.formatters import format_items
from scanexport.export.mailer import EmailSink, SmtpEmailSink
from scanexport.export.progress import ProgressListener, ProgressTracker
from scanexport.export.sinks import (
    CloudSink,
    DocumentRenderer,
    FilePersistenceSink,
    FolderCloudSink,
    GspreadSheetSink,
    LoggingShareSink,
    PersistenceSink,
    ReportlabDocumentRenderer,
    ShareSink,
    SpreadsheetSink,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_COMPRESSION_RATIO = 0.8
T = TypeVar("T")


def summarize_compression(artifact: Optional[ArtifactRef]) -> Dict[str, Any]:
    """Report the fixed placeholder ratio; no bytes are actually compressed."""

    original = artifact.size if artifact and artifact.size is not None else 0
    return {
        "uri": artifact.uri if artifact else None,
        "original_size": original,
        "compressed_size": int(original * PLACEHOLDER_COMPRESSION_RATIO),
        "compression_ratio": PLACEHOLDER_COMPRESSION_RATIO,
    }


async def _sink_call(phase: str, call: Awaitable[T]) -> T:
    try:
        return await call
    except ExportError:
        raise
    except Exception as exc:
        raise SinkFailureError(f"{phase} failed: {exc}") from exc


class ExportOrchestrator:
    """Dispatch exports to format encoders and downstream sinks."""

    def __init__(
        self,
        persistence: Optional[PersistenceSink] = None,
        share: Optional[ShareSink] = None,
        email: Optional[EmailSink] = None,
        cloud: Optional[CloudSink] = None,
        spreadsheet: Optional[SpreadsheetSink] = None,
        renderer: Optional[DocumentRenderer] = None,
        encoders: Optional[Dict[ExportFormat, ArtifactEncoder]] = None,
        tracker: Optional[ProgressTracker] = None,
    ) -> None:
        self.share = share
        self.email = email
        self.cloud = cloud
        self.encoders = encoders if encoders is not None else build_encoders(persistence, spreadsheet, renderer)
        missing = [fmt.value for fmt in ExportFormat if fmt not in self.encoders]
        if missing:
            raise ConfigurationError(f"No encoder registered for: {', '.join(missing)}")
        self.tracker = tracker or ProgressTracker()

    @property
    def is_exporting(self) -> bool:
        return self.tracker.is_active

    async def export(
        self,
        items: Iterable[ExportItem | Mapping[str, Any]],
        fmt: ExportFormat | str,
        options: ExportOptions | Mapping[str, Any] | None = None,
        on_progress: Optional[ProgressListener] = None,
    ) -> ExportResult:
        """Run one export and return its result.

        ``on_progress`` receives every event of this call, ending with either
        a completion event (``current == total``) or a single error event.
        """

        if self.tracker.is_active:
            raise ExportError("An export is already in progress")

        unsubscribe = self.tracker.subscribe(on_progress) if on_progress else None
        items = list(items)
        self.tracker.start(len(items))
        try:
            result = await self._run(items, fmt, options)
        except Exception as exc:
            logger.error("Export failed: %s", exc)
            self.tracker.fail(str(exc))
            raise
        finally:
            self.tracker.reset()
            if unsubscribe:
                unsubscribe()
        logger.info("Exported %d items as %s", result.item_count, result.format.value)
        return result

    async def _run(
        self,
        raw_items: list,
        fmt: ExportFormat | str,
        raw_options: ExportOptions | Mapping[str, Any] | None,
    ) -> ExportResult:
        options = raw_options if isinstance(raw_options, ExportOptions) else ExportOptions.from_dict(raw_options)
        export_format = ExportFormat.parse(fmt)
        items = coerce_items(raw_items)
        total = len(items)
        if not items:
            raise ValidationError(["No data to export"])
        ensure_valid(items)

        self.tracker.report(0, total, "Formatting data...")
        records = format_items(items, options)

        encoder = self.encoders[export_format]
        artifact = await _sink_call(
            f"{export_format.value.upper()} export", encoder.encode(records, options, self.tracker.report)
        )

        if artifact is not None and self.share is not None:
            await self._share(artifact, export_format)

        compression = summarize_compression(artifact) if options.compress_files else None

        receipt = await self._maybe_email(artifact, export_format, options, total)
        upload = await self._maybe_upload(artifact, options, total)

        self.tracker.complete()
        return ExportResult(
            artifact=artifact,
            format=export_format,
            item_count=total,
            byte_size=artifact.size if artifact else None,
            email_receipt=receipt,
            upload_receipt=upload,
            compression=compression,
        )

    async def _share(self, artifact: ArtifactRef, fmt: ExportFormat) -> None:
        try:
            await self.share.share(artifact, artifact.mime_type, f"Share {fmt.value.upper()} Export")
        except Exception as exc:
            logger.warning("Sharing %s failed: %s", artifact.uri, exc)

    async def _maybe_email(
        self, artifact: Optional[ArtifactRef], fmt: ExportFormat, options: ExportOptions, total: int
    ) -> Optional[EmailReceipt]:
        if not options.send_email:
            return None
        if not options.email_address:
            logger.warning("send_email requested without an email address; skipping")
            return None
        if self.email is None:
            raise SinkUnavailableError("Email sending is not configured")
        self.tracker.report(total, total, "Sending email...")
        receipt = await _sink_call(
            "Sending email", self.email.send(artifact, options.email_address, fmt, total)
        )
        if not receipt.success:
            raise SinkFailureError(f"Sending email to {options.email_address} failed")
        return receipt

    async def _maybe_upload(
        self, artifact: Optional[ArtifactRef], options: ExportOptions, total: int
    ) -> Optional[Dict[str, Any]]:
        if not options.auto_upload:
            return None
        if self.cloud is None:
            raise SinkUnavailableError("Cloud upload is not configured")
        if artifact is None:
            raise SinkFailureError("No artifact available to upload")
        self.tracker.report(total, total, "Uploading to cloud...")
        return await _sink_call("Uploading to cloud", self.cloud.upload(artifact, options.upload_folder))


def build_orchestrator(settings: ExportSettings | None = None) -> ExportOrchestrator:
    """Wire the default sinks described by ``settings`` (environment by default)."""

    settings = settings or ExportSettings.from_env()
    email = SmtpEmailSink.from_settings(settings) if settings.smtp_host else None
    cloud = FolderCloudSink(settings.upload_dir) if settings.upload_dir else None
    return ExportOrchestrator(
        persistence=FilePersistenceSink(settings.output_dir),
        share=LoggingShareSink(),
        email=email,
        cloud=cloud,
        spreadsheet=GspreadSheetSink(settings.service_account_path),
        renderer=ReportlabDocumentRenderer(settings.output_dir),
    )
