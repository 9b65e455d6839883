"""
Rule compiler: turns a rule into the work its action's service runs.
"""

import copy
from typing import Any, Dict, List

from shared.errors import (
    MissingActionError,
    MultiActionUnsupportedError,
    TypeMismatchError,
    UnsupportedConditionError,
)
from shared.logging import get_logger
from shared.models import Link, Work
from shared.schema_template import resolve_schema

from .media_types import media_type_matches
from .models import ConditionInstance, RuleInput

logger = get_logger("rules_engine.compiler")


def check_rule_types(rule: RuleInput) -> None:
    """Raise ``TypeMismatchError`` if any condition or action rejects the rule's type."""
    for condition in rule.conditions:
        if not media_type_matches(rule.type, condition.type):
            raise TypeMismatchError(details={
                "rule_type": rule.type,
                "condition": condition.name,
                "condition_type": condition.type
            })
    for action in rule.actions:
        if not media_type_matches(rule.type, action.type):
            raise TypeMismatchError(details={
                "rule_type": rule.type,
                "action": action.name,
                "action_type": action.type
            })


def condition_schema(condition: ConditionInstance) -> Dict[str, Any]:
    """Concrete schema of a condition, with its options applied."""
    if condition.schema_ is None:
        raise UnsupportedConditionError(details={"condition": condition.name})

    schema = copy.deepcopy(condition.schema_)
    if condition.options is not None and condition.pointers:
        schema = resolve_schema(schema, condition.pointers, condition.options)
    return schema


def compile_rule(rule: RuleInput, check_types: bool = False) -> List[Work]:
    """
    Compile a rule into work.

    Conditions are merged into one ``allOf`` schema; the single action of
    the rule names the service and action that run it. The ``rule`` link of
    the returned work is a placeholder until the rule is persisted.
    """
    if check_types:
        check_rule_types(rule)

    if len(rule.actions) > 1:
        raise MultiActionUnsupportedError(details={"actions": [action.name for action in rule.actions]})
    if not rule.actions:
        raise MissingActionError(details={"path": rule.path})

    schemas = [condition_schema(condition) for condition in rule.conditions]
    schema: Dict[str, Any] = {"allOf": schemas} if schemas else {}

    action = rule.actions[0]
    work = Work(
        type=rule.type,
        service=action.service,
        action=action.name,
        options=copy.deepcopy(action.options) if action.options is not None else {},
        path=rule.path,
        on=rule.on,
        schema=schema,
        rule=Link(id="", rev=0)
    )

    logger.debug(
        "Rule compiled",
        path=rule.path,
        service=action.service,
        action=action.name,
        conditions=len(schemas)
    )
    return [work]
