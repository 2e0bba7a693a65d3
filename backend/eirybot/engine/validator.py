# /eirybot/engine/validator.py

"""
Pure validation functions for composed bot templates.

This module provides deterministic, side-effect-free checks of a template's
flow graph. The findings are advisory: the runner already degrades any broken
cursor to "completed", so callers log them instead of rejecting the bot.

All functions are:
- Pure (no side effects)
- Deterministic (same input = same output)
- No database access
- No logging
"""

from typing import List, Optional, Set, TypedDict

from eirybot.engine.runner import DEFAULT_ENTRY_FLOW
from eirybot.models.template import BotTemplate, Flow

CHOICE_STEP_TYPES = ("ask_choice", "menu")


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]


def _error(error_code: str, message: str) -> ValidationResult:
    return {
        "is_valid": False,
        "error_code": error_code,
        "message": message
    }


def validate_entry_flow(template: BotTemplate) -> List[ValidationResult]:
    """
    Check that the template defines the flow new sessions start in.

    Args:
        template: Composed bot definition

    Returns:
        A single error if the entry flow is missing, otherwise an empty list
    """
    if any(flow.id == DEFAULT_ENTRY_FLOW for flow in template.flows):
        return []
    return [_error("MISSING_ENTRY_FLOW", f"Entry flow '{DEFAULT_ENTRY_FLOW}' is not defined")]


def validate_flow(flow: Flow, flow_ids: Set[str]) -> List[ValidationResult]:
    """
    Check one flow's steps against the set of known flow ids.

    Args:
        flow: The flow to check
        flow_ids: Ids of every flow in the composed template

    Returns:
        One error per problem found
    """
    errors: List[ValidationResult] = []
    seen_step_ids: Set[str] = set()

    for step in flow.steps:
        if step.id in seen_step_ids:
            errors.append(_error(
                "DUPLICATE_STEP_ID",
                f"Step '{step.id}' appears more than once in flow '{flow.id}'"
            ))
        seen_step_ids.add(step.id)

        for cond in step.condition or []:
            if cond.next not in flow_ids:
                errors.append(_error(
                    "DANGLING_CONDITION",
                    f"Condition '{cond.value}' on step '{step.id}' of flow '{flow.id}' "
                    f"points to unknown flow '{cond.next}'"
                ))

        if step.type in CHOICE_STEP_TYPES and not step.options:
            errors.append(_error(
                "MISSING_OPTIONS",
                f"Step '{step.id}' of flow '{flow.id}' is a '{step.type}' step without options"
            ))

    return errors


def validate_template(template: BotTemplate) -> List[ValidationResult]:
    """
    Validate a composed template's flow graph.

    A step `next` that names no flow is not an error: the runner treats it as
    a plain linear advance.

    Args:
        template: Composed bot definition

    Returns:
        List of errors; empty when the template is consistent
    """
    flow_ids = {flow.id for flow in template.flows}
    errors = validate_entry_flow(template)
    for flow in template.flows:
        errors.extend(validate_flow(flow, flow_ids))
    return errors
