"""
Classification of described stacks and change sets into the closed sets of phases the state machines act on.
Every raw status maps to exactly one phase; statuses nobody planned for end up ``UNCLASSIFIED``.
"""
import enum
from typing import Optional

from .changeset import ChangeSetDescription
from .stack import StackDescription

NO_CHANGES_REASON = "NO_CHANGES_REASON"
NO_UPDATES_REASON = "NO_UPDATES_REASON"
NO_CHANGES_MESSAGE = "didn't contain changes"

# change set statuses
CHANGE_SET_CREATE_COMPLETE = "CREATE_COMPLETE"
CHANGE_SET_DELETE_COMPLETE = "DELETE_COMPLETE"

IN_PROGRESS_CHANGE_SET_STATUSES = frozenset(
    {"CREATE_IN_PROGRESS", "CREATE_PENDING", "DELETE_IN_PROGRESS", "DELETE_PENDING"}
)
FAILED_CHANGE_SET_STATUSES = frozenset({"DELETE_FAILED", "FAILED"})

# change set execution statuses
EXECUTION_AVAILABLE = "AVAILABLE"
EXECUTION_COMPLETE = "EXECUTE_COMPLETE"

IN_PROGRESS_EXECUTION_STATUSES = frozenset({"EXECUTE_IN_PROGRESS", "UNAVAILABLE"})
FAILED_EXECUTION_STATUSES = frozenset({"EXECUTE_FAILED", "OBSOLETE"})

# stack statuses
STACK_DELETE_FAILED = "DELETE_FAILED"
STACK_UPDATE_ROLLBACK_FAILED = "UPDATE_ROLLBACK_FAILED"

SUCCESSFUL_STACK_STATUSES = frozenset({"CREATE_COMPLETE", "UPDATE_COMPLETE", "IMPORT_COMPLETE"})
IN_PROGRESS_STACK_STATUSES = frozenset(
    {
        "CREATE_IN_PROGRESS",
        "DELETE_IN_PROGRESS",
        "ROLLBACK_IN_PROGRESS",
        "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS",
        "UPDATE_IN_PROGRESS",
        "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS",
        "UPDATE_ROLLBACK_IN_PROGRESS",
        "IMPORT_IN_PROGRESS",
        "IMPORT_ROLLBACK_IN_PROGRESS",
    }
)
UNRECOVERABLE_STACK_STATUSES = frozenset(
    {"CREATE_FAILED", STACK_DELETE_FAILED, "ROLLBACK_COMPLETE", "ROLLBACK_FAILED"}
)
RECOVERABLE_STACK_STATUSES = frozenset(
    {
        "UPDATE_FAILED",
        "UPDATE_ROLLBACK_COMPLETE",
        "IMPORT_ROLLBACK_COMPLETE",
        "IMPORT_ROLLBACK_FAILED",
    }
)
# statuses in which a stack does not exist as far as the controller is concerned
ABSENT_STACK_STATUSES = frozenset({"REVIEW_IN_PROGRESS", "DELETE_COMPLETE"})


class StackPhase(enum.Enum):
    NOT_FOUND = "NotFound"
    IN_PROGRESS = "InProgress"
    SUCCESS = "Success"
    RECOVERABLE_FAILURE = "RecoverableFailure"
    UNRECOVERABLE_FAILURE = "UnrecoverableFailure"
    ROLLBACK_CONTINUATION_NEEDED = "RollbackContinuationNeeded"
    UNCLASSIFIED = "Unclassified"


class StackDeletionPhase(enum.Enum):
    NOT_FOUND = "NotFound"
    IN_PROGRESS = "InProgress"
    READY_FOR_CLEANUP = "ReadyForCleanup"


class ChangeSetPhase(enum.Enum):
    NOT_FOUND = "NotFound"
    EMPTY = "Empty"
    IN_PROGRESS = "InProgress"
    FAILED = "Failed"
    SUCCESS = "Success"
    READY_FOR_EXECUTION = "ReadyForExecution"
    UNCLASSIFIED = "Unclassified"


def is_absent_stack_status(status: str) -> bool:
    return status in ABSENT_STACK_STATUSES


def classify_stack(description: Optional[StackDescription]) -> StackPhase:
    """Maps a described stack (``None`` if it does not exist) to the phase that decides the next action."""
    if description is None or is_absent_stack_status(description.status):
        return StackPhase.NOT_FOUND

    status = description.status
    if status in IN_PROGRESS_STACK_STATUSES:
        return StackPhase.IN_PROGRESS
    if status == STACK_UPDATE_ROLLBACK_FAILED:
        return StackPhase.ROLLBACK_CONTINUATION_NEEDED
    if status in UNRECOVERABLE_STACK_STATUSES:
        return StackPhase.UNRECOVERABLE_FAILURE
    if status in SUCCESSFUL_STACK_STATUSES:
        return StackPhase.SUCCESS
    if status in RECOVERABLE_STACK_STATUSES:
        return StackPhase.RECOVERABLE_FAILURE
    return StackPhase.UNCLASSIFIED


def classify_stack_deletion(description: Optional[StackDescription]) -> StackDeletionPhase:
    """Maps a described stack to its phase with respect to deleting it. Any stack that is not busy can be deleted."""
    if description is None or is_absent_stack_status(description.status):
        return StackDeletionPhase.NOT_FOUND
    if description.status in IN_PROGRESS_STACK_STATUSES:
        return StackDeletionPhase.IN_PROGRESS
    return StackDeletionPhase.READY_FOR_CLEANUP


def is_empty_change_set(description: ChangeSetDescription) -> bool:
    reason = description.status_reason or ""
    return (
        (not description.changes and NO_CHANGES_MESSAGE in reason)
        or reason == NO_CHANGES_REASON
        or reason == NO_UPDATES_REASON
    )


def classify_change_set(description: Optional[ChangeSetDescription]) -> ChangeSetPhase:
    """Maps a described change set (``None`` if it does not exist) to the phase that decides the next action."""
    if description is None or description.status == CHANGE_SET_DELETE_COMPLETE:
        return ChangeSetPhase.NOT_FOUND
    if is_empty_change_set(description):
        return ChangeSetPhase.EMPTY

    status = description.status
    execution_status = description.execution_status
    if status in FAILED_CHANGE_SET_STATUSES or execution_status in FAILED_EXECUTION_STATUSES:
        return ChangeSetPhase.FAILED
    if status in IN_PROGRESS_CHANGE_SET_STATUSES or execution_status in IN_PROGRESS_EXECUTION_STATUSES:
        return ChangeSetPhase.IN_PROGRESS
    if status == CHANGE_SET_CREATE_COMPLETE and execution_status == EXECUTION_COMPLETE:
        return ChangeSetPhase.SUCCESS
    if status == CHANGE_SET_CREATE_COMPLETE and execution_status == EXECUTION_AVAILABLE:
        return ChangeSetPhase.READY_FOR_EXECUTION
    return ChangeSetPhase.UNCLASSIFIED
