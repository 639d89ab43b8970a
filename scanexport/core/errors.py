"""Exception hierarchy shared by the export pipeline and the rule engine."""
from __future__ import annotations

from typing import Iterable, List


class ExportError(Exception):
    """Base class for every failure raised by the scanexport package."""


class ValidationError(ExportError):
    """One or more items are not exportable.

    All issues are collected before raising so callers see every offending
    index at once.
    """

    def __init__(self, issues: Iterable[str], indices: Iterable[int] = ()) -> None:
        self.issues: List[str] = list(issues)
        self.indices: List[int] = sorted(set(indices))
        super().__init__(f"Data validation failed: {', '.join(self.issues)}")


class UnsupportedFormatError(ExportError):
    """Raised when an export is requested for an unknown format tag."""

    def __init__(self, fmt: object) -> None:
        self.format = fmt
        super().__init__(f"Unsupported export format: {fmt}")


class SinkUnavailableError(ExportError):
    """A persistence, email, spreadsheet or cloud capability is not configured."""


class AuthRequiredError(SinkUnavailableError):
    """The spreadsheet sink has no established credential."""


class SinkFailureError(ExportError):
    """The underlying sink call itself failed."""


class ConfigurationError(ExportError):
    """Options, actions or settings are malformed or incomplete."""


class ConditionEvaluationError(ExportError):
    """A rule condition could not be evaluated.

    The rule engine downgrades this to "condition not met"; it never reaches
    callers of ``evaluate_rules``.
    """
