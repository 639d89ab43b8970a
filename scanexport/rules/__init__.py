"""Automation rules evaluated against scanned data."""
from scanexport.rules.actions import ActionExecutor
from scanexport.rules.conditions import evaluate_condition
from scanexport.rules.engine import (
    EvaluationContext,
    RuleEngine,
    create_default_automation_rules,
    load_rules_file,
)
from scanexport.rules.models import ActionResult, AutomationRule, RuleRun, action_from_dict, condition_from_dict

__all__ = [
    "ActionExecutor",
    "ActionResult",
    "AutomationRule",
    "EvaluationContext",
    "RuleEngine",
    "RuleRun",
    "action_from_dict",
    "condition_from_dict",
    "create_default_automation_rules",
    "evaluate_condition",
    "load_rules_file",
]
