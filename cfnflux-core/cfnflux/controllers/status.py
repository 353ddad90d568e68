"""
Readiness of a ``CloudFormationStack``. The functions in this module never modify the given stack, they return an
updated copy which the caller persists.
"""
from typing import Optional

from cfnflux.api.v1alpha1 import CloudFormationStack, Condition
from cfnflux.constants import (
    CONDITION_FALSE,
    CONDITION_TRUE,
    CONDITION_UNKNOWN,
    PROGRESSING_REASON,
    READY_CONDITION,
    SUCCEEDED_REASON,
)
from cfnflux.utils.time import now_utc

RECONCILIATION_SUCCEEDED_MESSAGE = "Stack reconciliation succeeded"


def set_condition(stack: CloudFormationStack, condition: Condition) -> None:
    """
    Sets the condition of the condition's type, replacing an existing one. The transition time is only updated if
    the status of the condition changed.
    """
    conditions = stack.status.conditions
    for i, existing in enumerate(conditions):
        if existing.type == condition.type:
            if existing.status == condition.status and existing.last_transition_time:
                condition.last_transition_time = existing.last_transition_time
            conditions[i] = condition
            break
    else:
        conditions.append(condition)

    if condition.last_transition_time is None:
        condition.last_transition_time = now_utc()


def set_readiness(
    stack: CloudFormationStack,
    status: str,
    reason: str,
    message: str,
    revision: Optional[str] = None,
    change_set: Optional[str] = None,
) -> CloudFormationStack:
    stack = stack.model_copy(deep=True)
    set_condition(
        stack,
        Condition(
            type=READY_CONDITION,
            status=status,
            reason=reason,
            message=message,
            observed_generation=stack.metadata.generation,
        ),
    )
    stack.status.observed_generation = stack.metadata.generation
    stack.status.stack_name = stack.stack_name
    if revision:
        stack.status.last_attempted_revision = revision
    if change_set:
        stack.status.last_attempted_change_set = change_set
    return stack


def progressing(
    stack: CloudFormationStack,
    message: str,
    revision: Optional[str] = None,
    change_set: Optional[str] = None,
) -> CloudFormationStack:
    """Marks the stack as being reconciled, the Ready condition becomes Unknown."""
    return set_readiness(stack, CONDITION_UNKNOWN, PROGRESSING_REASON, message, revision, change_set)


def not_ready(
    stack: CloudFormationStack,
    reason: str,
    message: str,
    revision: Optional[str] = None,
    change_set: Optional[str] = None,
) -> CloudFormationStack:
    """Registers a failed reconciliation attempt, the Ready condition becomes False."""
    return set_readiness(stack, CONDITION_FALSE, reason, message, revision, change_set)


def ready(
    stack: CloudFormationStack,
    change_set: Optional[str] = None,
    revision: Optional[str] = None,
) -> CloudFormationStack:
    """
    Registers a successful reconciliation, the Ready condition becomes True and the last attempted revision and change
    set are recorded as applied.
    """
    stack = set_readiness(
        stack, CONDITION_TRUE, SUCCEEDED_REASON, RECONCILIATION_SUCCEEDED_MESSAGE, revision, change_set
    )
    stack.status.last_applied_revision = stack.status.last_attempted_revision
    stack.status.last_applied_change_set = stack.status.last_attempted_change_set
    return stack


def is_ready(stack: CloudFormationStack) -> bool:
    condition = stack.get_ready_condition()
    return condition is not None and condition.status == CONDITION_TRUE


def readiness_summary(stack: CloudFormationStack) -> str:
    condition = stack.get_ready_condition()
    if condition is None:
        return "Ready=<none>"
    return f"Ready={condition.status} ({condition.reason}): {condition.message}"
