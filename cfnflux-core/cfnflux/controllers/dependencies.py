import logging

from cfnflux.api.v1alpha1 import CloudFormationStack
from cfnflux.constants import CONDITION_TRUE
from cfnflux.state.store import ObjectNotFoundError, ObjectStore, split_key

LOG = logging.getLogger(__name__)


class DependencyNotReadyError(Exception):
    def __init__(self, dependency: str, message: str):
        super().__init__(message)
        self.dependency = dependency


def is_dependency_ready(dependency: CloudFormationStack) -> bool:
    """
    A dependency is ready if its current generation has been reconciled successfully: it has conditions, its status
    was observed at its current generation, and its Ready condition is True.
    """
    if not dependency.status.conditions:
        return False
    if dependency.status.observed_generation != dependency.metadata.generation:
        return False
    condition = dependency.get_ready_condition()
    return condition is not None and condition.status == CONDITION_TRUE


def check_dependencies(stack: CloudFormationStack, store: ObjectStore) -> None:
    """
    Checks that every stack the given stack depends on is ready. Dependencies without a namespace are looked up in the
    namespace of the given stack.

    :raises DependencyNotReadyError: for the first dependency that is missing or not ready
    """
    for key in stack.get_dependency_keys():
        namespace, name = split_key(key)
        try:
            dependency = store.get_stack(namespace, name)
        except ObjectNotFoundError as e:
            raise DependencyNotReadyError(key, f"unable to get '{key}' dependency: {e}") from e

        if not is_dependency_ready(dependency):
            raise DependencyNotReadyError(key, f"dependency '{key}' is not ready")
