"""Export pipeline: formatting, encoding and delivery of scanned items."""
from scanexport.export.csv_engine import CsvEncoder, ensure_valid, escape_value, validate_items, validate_structure
from scanexport.export.encoders import ArtifactEncoder, build_encoders
from scanexport.export.formatters import format_date, format_items, generate_export_filename
from scanexport.export.headers import derive_headers, resolve_headers
from scanexport.export.mailer import EmailSink, SmtpEmailSink
from scanexport.export.orchestrator import ExportOrchestrator, build_orchestrator
from scanexport.export.progress import ProgressTracker
from scanexport.export.sinks import (
    FilePersistenceSink,
    FolderCloudSink,
    GspreadSheetSink,
    LoggingShareSink,
    ReportlabDocumentRenderer,
    ensure_output_dir,
)

__all__ = [
    "ArtifactEncoder",
    "CsvEncoder",
    "EmailSink",
    "ExportOrchestrator",
    "FilePersistenceSink",
    "FolderCloudSink",
    "GspreadSheetSink",
    "LoggingShareSink",
    "ProgressTracker",
    "ReportlabDocumentRenderer",
    "SmtpEmailSink",
    "build_encoders",
    "build_orchestrator",
    "derive_headers",
    "ensure_output_dir",
    "ensure_valid",
    "escape_value",
    "format_date",
    "format_items",
    "generate_export_filename",
    "resolve_headers",
    "validate_items",
    "validate_structure",
]
