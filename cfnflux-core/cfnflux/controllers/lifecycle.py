"""
Bookkeeping around a reconcile that does not involve AWS: finalizer registration, suspension, deletion, reconcile
requests and generation changes. ``reduce`` turns the current state of a stack and a lifecycle event into the next
state and the effects the reconciler has to carry out, without performing any of them.
"""
import dataclasses
import enum
from typing import List

from cfnflux.api.v1alpha1 import CloudFormationStack
from cfnflux.constants import CLOUDFORMATION_STACK_FINALIZER, RECONCILE_REQUEST_ANNOTATION

from . import status

RECONCILIATION_IN_PROGRESS_MESSAGE = "Stack reconciliation in progress"


class LifecycleEvent(enum.Enum):
    # a reconcile of the stack was requested
    RECONCILE_REQUESTED = "ReconcileRequested"
    # the CloudFormation stack of a stack marked for deletion is gone
    STACK_DELETED = "StackDeleted"


class Effect(enum.Enum):
    # persist the finalizers of the stack
    PERSIST_FINALIZERS = "PersistFinalizers"
    # persist the status of the stack
    PERSIST_STATUS = "PersistStatus"
    # delete the CloudFormation stack before the finalizer can be released
    DESTROY_STACK = "DestroyStack"
    # converge the CloudFormation stack to the desired state
    RECONCILE = "Reconcile"


@dataclasses.dataclass
class Transition:
    stack: CloudFormationStack
    effects: List[Effect] = dataclasses.field(default_factory=list)
    message: str = ""

    @property
    def done(self) -> bool:
        """Whether nothing but persisting remains to be done."""
        return Effect.DESTROY_STACK not in self.effects and Effect.RECONCILE not in self.effects


def has_finalizer(stack: CloudFormationStack) -> bool:
    return CLOUDFORMATION_STACK_FINALIZER in stack.metadata.finalizers


def reduce(stack: CloudFormationStack, event: LifecycleEvent) -> Transition:
    if event is LifecycleEvent.STACK_DELETED:
        stack = _release_finalizer(stack)
        return Transition(
            status.ready(stack),
            [Effect.PERSIST_FINALIZERS],
            f"Successfully deleted stack '{stack.stack_name}'",
        )

    effects = []
    if not has_finalizer(stack) and not stack.deleting:
        stack = stack.model_copy(deep=True)
        stack.metadata.finalizers.append(CLOUDFORMATION_STACK_FINALIZER)
        effects.append(Effect.PERSIST_FINALIZERS)

    if stack.deleting:
        if not has_finalizer(stack):
            return Transition(stack, effects, "Stack is being deleted")
        if stack.spec.suspend:
            return Transition(
                _release_finalizer(stack),
                effects + [Effect.PERSIST_FINALIZERS],
                f"Skipping CloudFormation stack deletion for suspended stack '{stack.key}'",
            )
        if not stack.spec.destroy_stack_on_deletion:
            return Transition(
                _release_finalizer(stack),
                effects + [Effect.PERSIST_FINALIZERS],
                f"Skipping CloudFormation stack deletion for stack '{stack.key}' "
                f"(DestroyStackOnDeletion is false)",
            )
        return Transition(stack, effects + [Effect.DESTROY_STACK])

    if stack.spec.suspend:
        return Transition(stack, effects, "Reconciliation is suspended for this object")

    requested_at = stack.metadata.annotations.get(RECONCILE_REQUEST_ANNOTATION)
    if requested_at and requested_at != stack.status.last_handled_reconcile_at:
        stack = stack.model_copy(deep=True)
        stack.status.last_handled_reconcile_at = requested_at

    if stack.status.observed_generation != stack.metadata.generation:
        stack = status.progressing(stack, RECONCILIATION_IN_PROGRESS_MESSAGE)
        effects.append(Effect.PERSIST_STATUS)

    return Transition(stack, effects + [Effect.RECONCILE])


def _release_finalizer(stack: CloudFormationStack) -> CloudFormationStack:
    stack = stack.model_copy(deep=True)
    stack.metadata.finalizers = [
        f for f in stack.metadata.finalizers if f != CLOUDFORMATION_STACK_FINALIZER
    ]
    return stack
