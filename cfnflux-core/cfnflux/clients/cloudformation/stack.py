import dataclasses
from typing import Dict, List, Optional

from .changeset import ChangeSetHandle


@dataclasses.dataclass
class StackConfig:
    """Template and settings passed to CloudFormation when creating a change set."""

    template_bucket: Optional[str] = None
    template_body: Optional[str] = None
    template_url: Optional[str] = None
    parameters: List[Dict[str, str]] = dataclasses.field(default_factory=list)
    tags: List[Dict[str, str]] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class WorkingStack:
    """
    The desired state of a single CloudFormation stack, assembled fresh on every reconcile of a
    ``CloudFormationStack`` and never persisted.
    """

    name: str
    region: Optional[str] = None
    generation: int = 0
    source_revision: str = ""
    change_set: Optional[ChangeSetHandle] = None
    config: StackConfig = dataclasses.field(default_factory=StackConfig)

    def desired_change_set(self) -> ChangeSetHandle:
        """The handle to address this stack's change set with, derived from generation and revision if unset."""
        return self.change_set or ChangeSetHandle.derive(self.generation, self.source_revision)


@dataclasses.dataclass
class StackDescription:
    name: str
    status: str
    status_reason: Optional[str] = None
    stack_id: Optional[str] = None
    outputs: List[Dict[str, str]] = dataclasses.field(default_factory=list)
