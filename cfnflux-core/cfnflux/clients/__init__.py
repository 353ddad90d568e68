"""
Interfaces of the AWS collaborators used by the stack reconciler. The reconciler only depends on these, which allows
to exercise it against in-memory fakes.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .cloudformation.changeset import ChangeSetDescription, ChangeSetHandle
    from .cloudformation.stack import StackDescription, WorkingStack


class CloudFormationClient(ABC):
    @abstractmethod
    def describe_stack(self, stack: WorkingStack) -> Optional[StackDescription]:
        """Returns the description of the stack, or None if it does not exist."""

    @abstractmethod
    def create_stack(self, stack: WorkingStack) -> ChangeSetHandle:
        """Creates a change set of type CREATE for the stack, returns its handle."""

    @abstractmethod
    def update_stack(self, stack: WorkingStack) -> ChangeSetHandle:
        """Creates a change set of type UPDATE for the stack, returns its handle."""

    @abstractmethod
    def delete_stack(self, stack: WorkingStack) -> None:
        pass

    @abstractmethod
    def continue_stack_rollback(self, stack: WorkingStack) -> None:
        pass

    @abstractmethod
    def describe_change_set(self, stack: WorkingStack) -> Optional[ChangeSetDescription]:
        """Returns the description of the stack's change set, or None if it does not exist."""

    @abstractmethod
    def execute_change_set(self, stack: WorkingStack) -> None:
        pass

    @abstractmethod
    def delete_change_set(self, stack: WorkingStack) -> None:
        pass


class S3Client(ABC):
    @abstractmethod
    def upload_template(self, bucket: str, region: Optional[str], key: str, data: bytes) -> str:
        """Uploads a template and returns the URL CloudFormation can read it from."""
