import pytest

from cfnflux.clients.cloudformation.changeset import ChangeSetDescription, ChangeSetHandle
from cfnflux.clients.cloudformation.stack import StackDescription
from cfnflux.clients.cloudformation.status import (
    ChangeSetPhase,
    StackDeletionPhase,
    StackPhase,
    classify_change_set,
    classify_stack,
    classify_stack_deletion,
)


def _stack(status: str) -> StackDescription:
    return StackDescription(name="my-stack", status=status)


def _change_set(status: str, execution_status: str = "", reason: str = "", changes=None):
    return ChangeSetDescription(
        handle=ChangeSetHandle("flux-1-main"),
        status=status,
        execution_status=execution_status,
        status_reason=reason,
        changes=changes or [],
    )


@pytest.mark.parametrize(
    "status,phase",
    [
        ("CREATE_COMPLETE", StackPhase.SUCCESS),
        ("UPDATE_COMPLETE", StackPhase.SUCCESS),
        ("IMPORT_COMPLETE", StackPhase.SUCCESS),
        ("CREATE_IN_PROGRESS", StackPhase.IN_PROGRESS),
        ("UPDATE_COMPLETE_CLEANUP_IN_PROGRESS", StackPhase.IN_PROGRESS),
        ("ROLLBACK_IN_PROGRESS", StackPhase.IN_PROGRESS),
        ("DELETE_IN_PROGRESS", StackPhase.IN_PROGRESS),
        ("UPDATE_ROLLBACK_FAILED", StackPhase.ROLLBACK_CONTINUATION_NEEDED),
        ("CREATE_FAILED", StackPhase.UNRECOVERABLE_FAILURE),
        ("ROLLBACK_COMPLETE", StackPhase.UNRECOVERABLE_FAILURE),
        ("ROLLBACK_FAILED", StackPhase.UNRECOVERABLE_FAILURE),
        ("DELETE_FAILED", StackPhase.UNRECOVERABLE_FAILURE),
        ("UPDATE_FAILED", StackPhase.RECOVERABLE_FAILURE),
        ("UPDATE_ROLLBACK_COMPLETE", StackPhase.RECOVERABLE_FAILURE),
        ("IMPORT_ROLLBACK_COMPLETE", StackPhase.RECOVERABLE_FAILURE),
        ("REVIEW_IN_PROGRESS", StackPhase.NOT_FOUND),
        ("DELETE_COMPLETE", StackPhase.NOT_FOUND),
        ("SOMETHING_NEW", StackPhase.UNCLASSIFIED),
    ],
)
def test_classify_stack(status, phase):
    assert classify_stack(_stack(status)) is phase


def test_classify_absent_stack():
    assert classify_stack(None) is StackPhase.NOT_FOUND
    assert classify_stack_deletion(None) is StackDeletionPhase.NOT_FOUND


@pytest.mark.parametrize(
    "status,phase",
    [
        ("DELETE_COMPLETE", StackDeletionPhase.NOT_FOUND),
        ("DELETE_IN_PROGRESS", StackDeletionPhase.IN_PROGRESS),
        ("UPDATE_IN_PROGRESS", StackDeletionPhase.IN_PROGRESS),
        ("DELETE_FAILED", StackDeletionPhase.READY_FOR_CLEANUP),
        ("CREATE_COMPLETE", StackDeletionPhase.READY_FOR_CLEANUP),
        ("UPDATE_ROLLBACK_FAILED", StackDeletionPhase.READY_FOR_CLEANUP),
    ],
)
def test_classify_stack_deletion(status, phase):
    assert classify_stack_deletion(_stack(status)) is phase


@pytest.mark.parametrize(
    "description,phase",
    [
        (None, ChangeSetPhase.NOT_FOUND),
        (_change_set("DELETE_COMPLETE"), ChangeSetPhase.NOT_FOUND),
        (_change_set("FAILED", reason="The submitted information didn't contain changes."), ChangeSetPhase.EMPTY),
        (_change_set("FAILED", reason="NO_CHANGES_REASON"), ChangeSetPhase.EMPTY),
        (_change_set("CREATE_COMPLETE", "AVAILABLE", reason="NO_UPDATES_REASON"), ChangeSetPhase.EMPTY),
        (
            _change_set("FAILED", reason="didn't contain changes", changes=[{"Type": "Resource"}]),
            ChangeSetPhase.FAILED,
        ),
        (_change_set("FAILED", reason="Template error"), ChangeSetPhase.FAILED),
        (_change_set("DELETE_FAILED"), ChangeSetPhase.FAILED),
        (_change_set("CREATE_COMPLETE", "EXECUTE_FAILED"), ChangeSetPhase.FAILED),
        (_change_set("CREATE_COMPLETE", "OBSOLETE"), ChangeSetPhase.FAILED),
        (_change_set("CREATE_PENDING", "UNAVAILABLE"), ChangeSetPhase.IN_PROGRESS),
        (_change_set("CREATE_IN_PROGRESS", "UNAVAILABLE"), ChangeSetPhase.IN_PROGRESS),
        (_change_set("CREATE_COMPLETE", "EXECUTE_IN_PROGRESS"), ChangeSetPhase.IN_PROGRESS),
        (_change_set("CREATE_COMPLETE", "EXECUTE_COMPLETE"), ChangeSetPhase.SUCCESS),
        (_change_set("CREATE_COMPLETE", "AVAILABLE"), ChangeSetPhase.READY_FOR_EXECUTION),
        (_change_set("CREATE_COMPLETE", "SOMETHING_NEW"), ChangeSetPhase.UNCLASSIFIED),
    ],
)
def test_classify_change_set(description, phase):
    assert classify_change_set(description) is phase
