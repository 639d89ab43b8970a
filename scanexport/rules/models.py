"""Rules, conditions and actions for automated exports.

Conditions and actions are tagged variants: one frozen dataclass per type,
parsed from the plain ``{"type": ..., ...}`` mappings stored in rule files.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from scanexport.core.errors import ConfigurationError
from scanexport.core.models import EMAIL_PATTERN, ExportFormat, ExportOptions

E = TypeVar("E", bound=Enum)


def _parse_enum(enum_cls: Type[E], value: Any, what: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value))
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"Unknown {what} {value!r}; expected one of {allowed}") from None


class ConditionType(str, Enum):
    DATA_COUNT = "data_count"
    TIME_BASED = "time_based"
    DATA_TYPE = "data_type"
    PRODUCT_EXISTS = "product_exists"


class CountOperator(str, Enum):
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUALS = "equals"
    GREATER_THAN_EQUALS = "greater_than_equals"
    LESS_THAN_EQUALS = "less_than_equals"


class TimeOperator(str, Enum):
    TIME_OF_DAY = "time_of_day"
    DAY_OF_WEEK = "day_of_week"
    SCHEDULED = "scheduled"


class ScheduleKind(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class DataTypeOperator(str, Enum):
    CONTAINS = "contains"
    ALL = "all"
    PERCENTAGE = "percentage"


class ProductOperator(str, Enum):
    HAS_PRODUCT = "has_product"
    ALL_HAVE_PRODUCTS = "all_have_products"
    PERCENTAGE_WITH_PRODUCTS = "percentage_with_products"


class ActionType(str, Enum):
    EXPORT_CSV = "export_csv"
    EXPORT_PDF = "export_pdf"
    SEND_EMAIL = "send_email"
    UPLOAD_CLOUD = "upload_cloud"
    WEBHOOK = "webhook"


@dataclass(frozen=True)
class Schedule:
    """Hourly (minute 0), daily (at ``value`` hour) or weekly (on ``value`` weekday)."""

    kind: ScheduleKind
    value: Any = 0

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Schedule":
        return cls(kind=_parse_enum(ScheduleKind, raw.get("type"), "schedule type"), value=raw.get("value", 0))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "value": self.value}


@dataclass(frozen=True)
class DataCountCondition:
    type: ClassVar[ConditionType] = ConditionType.DATA_COUNT
    operator: CountOperator
    value: Any


@dataclass(frozen=True)
class TimeCondition:
    type: ClassVar[ConditionType] = ConditionType.TIME_BASED
    operator: TimeOperator
    value: Any


@dataclass(frozen=True)
class DataTypeCondition:
    type: ClassVar[ConditionType] = ConditionType.DATA_TYPE
    operator: DataTypeOperator
    value: Any
    field: Optional[str] = None
    threshold: Any = None


@dataclass(frozen=True)
class ProductCondition:
    type: ClassVar[ConditionType] = ConditionType.PRODUCT_EXISTS
    operator: ProductOperator
    value: Any = True


Condition = Union[DataCountCondition, TimeCondition, DataTypeCondition, ProductCondition]


def condition_from_dict(raw: Mapping[str, Any]) -> Condition:
    """Parse ``{"type", "operator", "value", "field", "threshold"}`` into a condition variant.

    For ``data_type`` percentage checks ``threshold`` holds the percentage;
    without it ``value`` is used as both match target and threshold.
    """

    condition_type = _parse_enum(ConditionType, raw.get("type"), "condition type")
    value = raw.get("value")
    if condition_type is ConditionType.DATA_COUNT:
        return DataCountCondition(_parse_enum(CountOperator, raw.get("operator"), "count operator"), value)
    if condition_type is ConditionType.TIME_BASED:
        operator = _parse_enum(TimeOperator, raw.get("operator"), "time operator")
        if operator is TimeOperator.SCHEDULED and isinstance(value, Mapping):
            value = Schedule.from_dict(value)
        return TimeCondition(operator, value)
    if condition_type is ConditionType.DATA_TYPE:
        return DataTypeCondition(
            _parse_enum(DataTypeOperator, raw.get("operator"), "data type operator"),
            value,
            raw.get("field"),
            raw.get("threshold"),
        )
    return ProductCondition(
        _parse_enum(ProductOperator, raw.get("operator"), "product operator"),
        True if value is None else value,
    )


def condition_to_dict(condition: Condition) -> Dict[str, Any]:
    value = condition.value.to_dict() if isinstance(condition.value, Schedule) else condition.value
    data: Dict[str, Any] = {"type": condition.type.value, "operator": condition.operator.value, "value": value}
    if isinstance(condition, DataTypeCondition):
        if condition.field:
            data["field"] = condition.field
        if condition.threshold is not None:
            data["threshold"] = condition.threshold
    return data


@dataclass(frozen=True)
class ExportCsvAction:
    type: ClassVar[ActionType] = ActionType.EXPORT_CSV
    options: ExportOptions = field(default_factory=ExportOptions)


@dataclass(frozen=True)
class ExportPdfAction:
    type: ClassVar[ActionType] = ActionType.EXPORT_PDF
    options: ExportOptions = field(default_factory=ExportOptions)


@dataclass(frozen=True)
class SendEmailAction:
    type: ClassVar[ActionType] = ActionType.SEND_EMAIL
    recipients: Tuple[str, ...] = ()
    subject: Optional[str] = None
    format: ExportFormat = ExportFormat.CSV


@dataclass(frozen=True)
class UploadCloudAction:
    type: ClassVar[ActionType] = ActionType.UPLOAD_CLOUD
    service: str = "folder"
    folder: Optional[str] = None
    format: ExportFormat = ExportFormat.CSV
    options: ExportOptions = field(default_factory=ExportOptions)


@dataclass(frozen=True)
class WebhookAction:
    type: ClassVar[ActionType] = ActionType.WEBHOOK
    url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None


Action = Union[ExportCsvAction, ExportPdfAction, SendEmailAction, UploadCloudAction, WebhookAction]


def _reject_unknown(config: Mapping[str, Any], allowed: Tuple[str, ...], action_type: ActionType) -> None:
    unknown = sorted(set(config) - set(allowed))
    if unknown:
        raise ConfigurationError(f"Unknown {action_type.value} config keys: {', '.join(unknown)}")


def action_from_dict(raw: Mapping[str, Any]) -> Action:
    """Parse ``{"type", "config"}`` into an action variant with validated fields."""

    action_type = _parse_enum(ActionType, raw.get("type"), "action type")
    config = dict(raw.get("config") or {})

    if action_type is ActionType.EXPORT_CSV:
        return ExportCsvAction(ExportOptions.from_dict(config))
    if action_type is ActionType.EXPORT_PDF:
        return ExportPdfAction(ExportOptions.from_dict(config))
    if action_type is ActionType.SEND_EMAIL:
        _reject_unknown(config, ("recipients", "subject", "format"), action_type)
        recipients = config.get("recipients") or ()
        if isinstance(recipients, str):
            recipients = (recipients,)
        invalid = [address for address in recipients if not EMAIL_PATTERN.match(str(address))]
        if invalid:
            raise ConfigurationError(f"Invalid email recipients: {', '.join(map(str, invalid))}")
        return SendEmailAction(
            tuple(recipients),
            config.get("subject"),
            ExportFormat.parse(config.get("format") or ExportFormat.CSV),
        )
    if action_type is ActionType.UPLOAD_CLOUD:
        _reject_unknown(config, ("service", "folder", "format", "options"), action_type)
        return UploadCloudAction(
            service=config.get("service") or "folder",
            folder=config.get("folder"),
            format=ExportFormat.parse(config.get("format") or ExportFormat.CSV),
            options=ExportOptions.from_dict(config.get("options")),
        )
    _reject_unknown(config, ("url", "headers", "timeout"), action_type)
    return WebhookAction(
        url=config.get("url") or None,
        headers={str(key): str(value) for key, value in (config.get("headers") or {}).items()},
        timeout=float(config["timeout"]) if config.get("timeout") else None,
    )


def action_to_dict(action: Action) -> Dict[str, Any]:
    if isinstance(action, (ExportCsvAction, ExportPdfAction)):
        config: Dict[str, Any] = action.options.to_dict()
    elif isinstance(action, SendEmailAction):
        config = {"recipients": list(action.recipients), "subject": action.subject, "format": action.format.value}
    elif isinstance(action, UploadCloudAction):
        config = {
            "service": action.service,
            "folder": action.folder,
            "format": action.format.value,
            "options": action.options.to_dict(),
        }
    else:
        config = {"url": action.url, "headers": dict(action.headers), "timeout": action.timeout}
    return {"type": action.type.value, "config": config}


@dataclass
class AutomationRule:
    """A named rule: AND-combined conditions and an ordered action list."""

    name: str = ""
    description: str = ""
    enabled: bool = True
    conditions: List[Condition] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list)
    id: str = ""
    created_at: Optional[datetime] = None
    last_triggered: Optional[datetime] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AutomationRule":
        conditions = [
            condition if not isinstance(condition, Mapping) else condition_from_dict(condition)
            for condition in raw.get("conditions") or []
        ]
        actions = [
            action if not isinstance(action, Mapping) else action_from_dict(action)
            for action in raw.get("actions") or []
        ]
        return cls(
            name=str(raw.get("name") or ""),
            description=str(raw.get("description") or ""),
            enabled=bool(raw.get("enabled", True)),
            conditions=conditions,
            actions=actions,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "conditions": [condition_to_dict(condition) for condition in self.conditions],
            "actions": [action_to_dict(action) for action in self.actions],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_triggered": self.last_triggered.isoformat() if self.last_triggered else None,
        }


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one action: ``result`` on success, ``error_message`` on failure."""

    action_type: ActionType
    success: bool
    result: Any = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"action": self.action_type.value, "success": self.success}
        if self.success:
            data["result"] = self.result
        else:
            data["error"] = self.error_message
        return data


@dataclass(frozen=True)
class RuleRun:
    rule: AutomationRule
    results: List[ActionResult]


