import dataclasses
from typing import Any, Dict, List, Optional

from cfnflux.constants import CHANGE_SET_NAME_PREFIX, MAX_CHANGE_SET_NAME_LENGTH
from cfnflux.utils.strings import replace_non_alphanumeric

# marker in change set ARNs, e.g., arn:aws:cloudformation:us-west-2:123456789012:changeSet/<name>/<id>
CHANGE_SET_ARN_MARKER = ":changeSet/"


def change_set_name(generation: int, revision: str) -> str:
    """
    Derives the name of the change set that deploys the given generation of a stack resource from the given source
    revision. The name only depends on its inputs, so reconciling the same desired state always targets the same
    change set.

    The name is ``flux-<generation>-<revision>``, where every run of characters outside ``[a-zA-Z0-9]`` is replaced
    by a single ``-`` and which is truncated to 128 characters. Changing this function invalidates the names of
    all change sets that were created before.
    """
    name = f"{CHANGE_SET_NAME_PREFIX}-{generation}-{revision or ''}"
    name = replace_non_alphanumeric(name, "-")
    return name[:MAX_CHANGE_SET_NAME_LENGTH]


def extract_change_set_name(identifier: Optional[str]) -> str:
    """Returns the name of the change set from a change set ARN, or the identifier itself if it is no ARN."""
    if not identifier:
        return ""
    _, marker, remainder = identifier.partition(CHANGE_SET_ARN_MARKER)
    if not marker:
        return identifier
    return remainder.split("/", 1)[0]


@dataclasses.dataclass(frozen=True)
class ChangeSetHandle:
    """
    Addresses a single change set. Before creation only the name is known, once CloudFormation returned its ARN the
    ARN is used, which also identifies the stack the change set belongs to.
    """

    name: str
    arn: Optional[str] = None

    @property
    def identifier(self) -> str:
        return self.arn or self.name

    @classmethod
    def derive(cls, generation: int, revision: str) -> "ChangeSetHandle":
        return cls(name=change_set_name(generation, revision))

    @classmethod
    def from_identifier(cls, identifier: str) -> "ChangeSetHandle":
        name = extract_change_set_name(identifier)
        return cls(name=name, arn=identifier if identifier != name else None)

    @classmethod
    def resolve(
        cls, generation: int, revision: str, last_attempted: Optional[str]
    ) -> "ChangeSetHandle":
        """
        Returns the handle of the change set to look up for the given generation and revision. The handle recorded
        by the last attempt is reused only if it addresses the same change set, otherwise a fresh handle without an
        ARN is returned so that a new change set gets created.
        """
        desired = cls.derive(generation, revision)
        if not last_attempted or extract_change_set_name(last_attempted) != desired.name:
            return desired
        return cls.from_identifier(last_attempted)

    def with_arn(self, arn: Optional[str]) -> "ChangeSetHandle":
        if not arn:
            return self
        return dataclasses.replace(self, arn=arn)

    def __str__(self):
        return self.identifier


@dataclasses.dataclass
class ChangeSetDescription:
    handle: ChangeSetHandle
    status: str
    execution_status: str = ""
    status_reason: str = ""
    changes: List[Dict[str, Any]] = dataclasses.field(default_factory=list)

    @property
    def arn(self) -> str:
        return self.handle.identifier
