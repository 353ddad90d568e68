from .changeset import ChangeSetDescription, ChangeSetHandle, change_set_name
from .client import CloudFormation
from .errors import CloudFormationApiError
from .stack import StackConfig, StackDescription, WorkingStack
from .status import (
    ChangeSetPhase,
    StackDeletionPhase,
    StackPhase,
    classify_change_set,
    classify_stack,
    classify_stack_deletion,
)

__all__ = [
    "ChangeSetDescription",
    "ChangeSetHandle",
    "ChangeSetPhase",
    "CloudFormation",
    "CloudFormationApiError",
    "StackConfig",
    "StackDeletionPhase",
    "StackDescription",
    "StackPhase",
    "WorkingStack",
    "change_set_name",
    "classify_change_set",
    "classify_stack",
    "classify_stack_deletion",
]
