"""Rule engine: evaluate automation rules against scanned data and run their actions."""
from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import requests

from scanexport.core.errors import ConditionEvaluationError, ConfigurationError
from scanexport.export.mailer import EmailSink
from scanexport.export.orchestrator import ExportOrchestrator
from scanexport.export.sinks import CloudSink
from scanexport.rules.actions import ActionExecutor, Data
from scanexport.rules.conditions import evaluate_condition
from scanexport.rules.models import ActionResult, AutomationRule, RuleRun

logger = logging.getLogger(__name__)


@dataclass
class EvaluationContext:
    """Optional evaluation inputs; ``now`` overrides the engine clock."""

    now: Optional[datetime] = None


def new_rule_id() -> str:
    return f"rule-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _copy(rule: AutomationRule) -> AutomationRule:
    return replace(rule, conditions=list(rule.conditions), actions=list(rule.actions))


class RuleEngine:
    """Holds rules and runs the ones whose conditions all hold.

    Rules are stored as private copies; callers only ever receive copies back,
    so mutating a returned rule never changes engine state.
    """

    def __init__(
        self,
        rules: Optional[Iterable[AutomationRule | Mapping[str, Any]]] = None,
        exporter: Optional[ExportOrchestrator] = None,
        email: Optional[EmailSink] = None,
        cloud: Optional[CloudSink] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = datetime.now,
        webhook_timeout: float = 30,
    ) -> None:
        self.clock = clock
        self.executor = ActionExecutor(
            exporter=exporter,
            email=email,
            cloud=cloud,
            session=session,
            clock=clock,
            webhook_timeout=webhook_timeout,
        )
        self._rules: List[AutomationRule] = []
        for rule in rules or []:
            self.add_rule(rule)

    @property
    def rules(self) -> List[AutomationRule]:
        return [_copy(rule) for rule in self._rules]

    def add_rule(self, rule: AutomationRule | Mapping[str, Any]) -> AutomationRule:
        parsed = rule if isinstance(rule, AutomationRule) else AutomationRule.from_dict(rule)
        stored = replace(
            _copy(parsed),
            id=new_rule_id(),
            created_at=self.clock(),
            last_triggered=None,
        )
        self._rules.append(stored)
        logger.info("Added automation rule %s (%s)", stored.id, stored.name)
        return _copy(stored)

    def remove_rule(self, rule_id: str) -> bool:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                del self._rules[index]
                logger.info("Removed automation rule %s", rule_id)
                return True
        return False

    def get_rule(self, rule_id: str) -> Optional[AutomationRule]:
        for rule in self._rules:
            if rule.id == rule_id:
                return _copy(rule)
        return None

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> bool:
        for rule in self._rules:
            if rule.id == rule_id:
                rule.enabled = enabled
                return True
        return False

    def _now(self, context: Optional[EvaluationContext]) -> datetime:
        if context is not None and context.now is not None:
            return context.now
        return self.clock()

    def evaluate_rule(self, rule: AutomationRule, data: Data, now: datetime) -> bool:
        """AND over the rule's conditions; an empty list holds. Errors count as not met."""

        try:
            return all(evaluate_condition(condition, data, now) for condition in rule.conditions)
        except ConditionEvaluationError as exc:
            logger.warning("Error evaluating rule %s (%s): %s", rule.id, rule.name, exc)
            return False

    async def evaluate_rules(self, data: Data, context: Optional[EvaluationContext] = None) -> List[AutomationRule]:
        """Return copies of the enabled rules that triggered, stamping ``last_triggered``."""

        now = self._now(context)
        triggered: List[AutomationRule] = []
        for rule in list(self._rules):
            if not rule.enabled:
                continue
            if self.evaluate_rule(rule, data, now):
                rule.last_triggered = now
                logger.info("Rule %s (%s) triggered", rule.id, rule.name)
                triggered.append(_copy(rule))
        return triggered

    async def execute_rule_actions(self, rule: AutomationRule, data: Data) -> List[ActionResult]:
        """Run actions in order; a failing action does not stop the ones after it."""

        results: List[ActionResult] = []
        for action in rule.actions:
            try:
                outcome = await self.executor.execute(action, data)
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                logger.error("Action %s of rule %s failed: %s", action.type.value, rule.id, message)
                results.append(ActionResult(action.type, False, error_message=message))
            else:
                results.append(ActionResult(action.type, True, result=outcome))
        return results

    async def run(self, data: Data, context: Optional[EvaluationContext] = None) -> List[RuleRun]:
        runs: List[RuleRun] = []
        for rule in await self.evaluate_rules(data, context):
            runs.append(RuleRun(rule, await self.execute_rule_actions(rule, data)))
        return runs

    def get_rule_summary(self) -> Dict[str, Any]:
        enabled = [rule for rule in self._rules if rule.enabled]
        return {
            "total_rules": len(self._rules),
            "enabled_rules": len(enabled),
            "disabled_rules": len(self._rules) - len(enabled),
            "rules": [
                {
                    "id": rule.id,
                    "name": rule.name,
                    "enabled": rule.enabled,
                    "last_triggered": rule.last_triggered.isoformat() if rule.last_triggered else None,
                }
                for rule in self._rules
            ],
        }


def create_default_automation_rules() -> List[Dict[str, Any]]:
    """Starter rules in their plain mapping form, ready for :meth:`RuleEngine.add_rule`."""

    return [
        {
            "name": "Daily Backup",
            "description": "Automatically backup all scans daily at 2 AM",
            "enabled": False,
            "conditions": [
                {"type": "time_based", "operator": "scheduled", "value": {"type": "daily", "value": 2}},
            ],
            "actions": [
                {"type": "export_csv", "config": {"includeTimestamps": True, "includeMetadata": True}},
                {"type": "upload_cloud", "config": {"service": "folder", "folder": "Scan Backups"}},
            ],
        },
        {
            "name": "Large Batch Export",
            "description": "Export when more than 100 items are scanned",
            "enabled": False,
            "conditions": [{"type": "data_count", "operator": "greater_than", "value": 100}],
            "actions": [
                {
                    "type": "export_csv",
                    "config": {"includeTimestamps": True, "includeProductInfo": True, "includeMetadata": True},
                },
            ],
        },
        {
            "name": "Product Inventory Alert",
            "description": "Email a report when scanned items carry product information",
            "enabled": False,
            "conditions": [{"type": "product_exists", "operator": "has_product", "value": True}],
            "actions": [
                {
                    "type": "send_email",
                    "config": {"recipients": ["inventory@company.com"], "subject": "Product Inventory Update"},
                },
            ],
        },
    ]


def load_rules_file(path: Path | str) -> List[Dict[str, Any]]:
    """Read a JSON rule file: either a list of rules or ``{"rules": [...]}``."""

    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Rules file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Rules file {path} is not valid JSON: {exc}") from exc
    if isinstance(payload, Mapping):
        payload = payload.get("rules", [])
    if not isinstance(payload, list):
        raise ConfigurationError(f"Rules file {path} must contain a list of rules")
    return payload
