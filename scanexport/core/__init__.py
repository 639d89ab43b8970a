"""Core building blocks for the scanexport package."""
from scanexport.core.errors import (
    AuthRequiredError,
    ConditionEvaluationError,
    ConfigurationError,
    ExportError,
    SinkFailureError,
    SinkUnavailableError,
    UnsupportedFormatError,
    ValidationError,
)
from scanexport.core.logging import configure_logging
from scanexport.core.models import (
    ArtifactRef,
    DateFormat,
    EmailReceipt,
    ExportFormat,
    ExportItem,
    ExportOptions,
    ExportResult,
    Product,
    ProgressEvent,
    coerce_items,
)
from scanexport.core.utils import ExportSettings, get_config_value, load_env_file

__all__ = [
    "ArtifactRef",
    "AuthRequiredError",
    "ConditionEvaluationError",
    "ConfigurationError",
    "DateFormat",
    "EmailReceipt",
    "ExportError",
    "ExportFormat",
    "ExportItem",
    "ExportOptions",
    "ExportResult",
    "ExportSettings",
    "Product",
    "ProgressEvent",
    "SinkFailureError",
    "SinkUnavailableError",
    "UnsupportedFormatError",
    "ValidationError",
    "coerce_items",
    "configure_logging",
    "get_config_value",
    "load_env_file",
]
