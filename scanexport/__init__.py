"""Export scanned barcode data and automate exports with rules."""
from scanexport.core import (
    ExportError,
    ExportFormat,
    ExportItem,
    ExportOptions,
    ExportResult,
    configure_logging,
)
from scanexport.export import ExportOrchestrator, ProgressTracker, build_orchestrator
from scanexport.rules import AutomationRule, RuleEngine, create_default_automation_rules

__all__ = [
    "AutomationRule",
    "ExportError",
    "ExportFormat",
    "ExportItem",
    "ExportOptions",
    "ExportOrchestrator",
    "ExportResult",
    "ProgressTracker",
    "RuleEngine",
    "build_orchestrator",
    "configure_logging",
    "create_default_automation_rules",
]
