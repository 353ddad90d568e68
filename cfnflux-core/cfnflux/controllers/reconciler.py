"""
The ``CloudFormationStack`` reconciler. A reconcile of a stack resource reads it from the store, runs the lifecycle
bookkeeping, gates on dependencies, loads the template from the source artifact, hands over to the stack state
machine, and persists the resulting status. It returns when the stack has to be reconciled again.
"""
import dataclasses
import logging
import time
from datetime import timedelta
from typing import Dict, Optional

from cfnflux import config
from cfnflux.api.sources import Artifact
from cfnflux.api.v1alpha1 import CloudFormationStack
from cfnflux.clients import CloudFormationClient, S3Client
from cfnflux.clients.cloudformation.changeset import ChangeSetHandle
from cfnflux.clients.cloudformation.stack import StackConfig, WorkingStack
from cfnflux.constants import (
    ARTIFACT_FAILED_REASON,
    CONTROLLER_NAME,
    DEPENDENCY_NOT_READY_REASON,
    EVENT_SEVERITY_ERROR,
    EVENT_SEVERITY_INFO,
)
from cfnflux.events import EventRecorder
from cfnflux.logging.format import object_context
from cfnflux.sources import SourceNotFoundError, SourceProvider
from cfnflux.state.store import ObjectNotFoundError, ObjectStore
from cfnflux.utils.strings import to_str
from cfnflux.utils.time import format_duration

from . import lifecycle, status
from .artifacts import ArtifactError, ArtifactLoader
from .dependencies import DependencyNotReadyError, check_dependencies
from .lifecycle import Effect, LifecycleEvent
from .stack import StackStateMachine, StepResult

LOG = logging.getLogger(__name__)


@dataclasses.dataclass
class ReconcileResult:
    # when to reconcile again, None if no further reconcile is needed
    requeue_after: Optional[timedelta] = None
    # an error that the caller should back off from
    error: Optional[Exception] = None


class CloudFormationStackReconciler:
    def __init__(
        self,
        store: ObjectStore,
        cfn_client: CloudFormationClient,
        s3_client: Optional[S3Client] = None,
        recorder: EventRecorder = None,
        artifact_loader: ArtifactLoader = None,
        template_bucket: Optional[str] = None,
        stack_tags: Dict[str, str] = None,
        controller_name: str = CONTROLLER_NAME,
        controller_version: str = None,
        requeue_dependency: timedelta = None,
        no_cross_namespace_refs: bool = None,
    ):
        self.store = store
        self.recorder = recorder or EventRecorder()
        self.artifact_loader = artifact_loader or ArtifactLoader()
        self.template_bucket = template_bucket
        self.stack_tags = dict(config.STACK_TAGS if stack_tags is None else stack_tags)
        self.controller_name = controller_name
        self.controller_version = controller_version or config.CONTROLLER_VERSION
        self.requeue_dependency = (
            config.REQUEUE_DEPENDENCY if requeue_dependency is None else requeue_dependency
        )
        if no_cross_namespace_refs is None:
            no_cross_namespace_refs = config.NO_CROSS_NAMESPACE_REFS
        self.sources = SourceProvider(store, no_cross_namespace_refs=no_cross_namespace_refs)
        self.state_machine = StackStateMachine(cfn_client, s3_client, self.recorder, template_bucket)

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        with object_context(f"{namespace}/{name}"):
            return self._reconcile(namespace, name)

    def _reconcile(self, namespace: str, name: str) -> ReconcileResult:
        start = time.monotonic()
        try:
            stack = self.store.get_stack(namespace, name)
        except ObjectNotFoundError:
            LOG.debug("Stack %s/%s no longer exists", namespace, name)
            return ReconcileResult()

        transition = lifecycle.reduce(stack, LifecycleEvent.RECONCILE_REQUESTED)
        stack = transition.stack

        if Effect.PERSIST_FINALIZERS in transition.effects:
            self.store.update_metadata(stack)
        if transition.message:
            LOG.info(transition.message)

        if Effect.DESTROY_STACK in transition.effects:
            result = self.reconcile_delete(stack)
            self._log_duration("Deletion reconciliation loop", start, result)
            return result

        if transition.done:
            return ReconcileResult()

        if Effect.PERSIST_STATUS in transition.effects:
            stack = self.store.patch_status(stack)
            LOG.info(status.readiness_summary(stack))

        step = self.reconcile_stack_resource(stack)
        self.store.patch_status(step.stack)
        LOG.info(status.readiness_summary(step.stack))

        result = ReconcileResult(step.requeue_after, step.error)
        self._log_duration("Reconciliation loop", start, result)
        return result

    def reconcile_stack_resource(self, stack: CloudFormationStack) -> StepResult:
        """Runs the dependency gate, loads the template, and converges the CloudFormation stack."""
        source_ref = stack.spec.source_ref

        if stack.spec.depends_on:
            try:
                check_dependencies(stack, self.store)
            except DependencyNotReadyError as e:
                msg = f"Dependencies do not meet ready condition ({e})"
                self.recorder.event(stack, stack.status.last_attempted_revision, EVENT_SEVERITY_INFO, msg)
                LOG.info(msg)
                stack = status.not_ready(stack, DEPENDENCY_NOT_READY_REASON, msg)
                return StepResult(stack, self.requeue_dependency)

        try:
            artifact = self.sources.get_artifact(stack)
        except SourceNotFoundError:
            msg = f"Source '{source_ref}' not found"
            LOG.info(msg)
            stack = status.not_ready(stack, ARTIFACT_FAILED_REASON, msg)
            return StepResult(stack, stack.get_retry_interval())
        except Exception as e:
            msg = f"Failed to resolve source '{source_ref}': {e}"
            LOG.error(msg)
            stack = status.not_ready(stack, ARTIFACT_FAILED_REASON, msg)
            return StepResult(stack, stack.get_retry_interval(), e)

        if artifact is None:
            msg = f"Source '{source_ref}' is not ready, artifact not found"
            LOG.info(msg)
            stack = status.not_ready(stack, ARTIFACT_FAILED_REASON, msg)
            return StepResult(stack, stack.get_retry_interval())

        revision = artifact.revision
        try:
            template = self._load_template(stack, artifact)
        except ArtifactError as e:
            msg = f"Failed to load template '{stack.get_template_path()}' from source '{source_ref}'"
            LOG.error("%s: %s", msg, e)
            stack = status.not_ready(stack, ARTIFACT_FAILED_REASON, f"{msg}: {e}", revision)
            return StepResult(stack, stack.get_retry_interval(), e)

        working = self.build_working_stack(stack, template, revision)
        step = self.state_machine.reconcile_stack(stack, working)
        if step.error:
            msg = f"Failed to reconcile stack: {step.error}"
            LOG.error(msg)
            self.recorder.event(step.stack, step.stack.status.last_attempted_revision, EVENT_SEVERITY_ERROR, msg)
        return step

    def reconcile_delete(self, stack: CloudFormationStack) -> ReconcileResult:
        working = WorkingStack(
            name=stack.stack_name,
            region=stack.spec.region,
            generation=stack.metadata.generation,
            source_revision=stack.status.last_attempted_revision or "",
        )
        if stack.status.last_attempted_change_set:
            working.change_set = ChangeSetHandle.from_identifier(stack.status.last_attempted_change_set)

        step = self.state_machine.reconcile_deletion(stack, working)
        if step.deleted:
            transition = lifecycle.reduce(step.stack, LifecycleEvent.STACK_DELETED)
            try:
                self.store.update_metadata(transition.stack)
            except ObjectNotFoundError as e:
                LOG.error("Failed to remove finalizer from stack object '%s': %s", stack.key, e)
                return ReconcileResult(error=e)
            LOG.info(transition.message)
            return ReconcileResult()

        if step.requeue_after:
            self.store.patch_status(step.stack)
        return ReconcileResult(step.requeue_after, step.error)

    def _load_template(self, stack: CloudFormationStack, artifact: Artifact) -> str:
        data = self.artifact_loader.load_template(stack, artifact)
        try:
            return to_str(data)
        except UnicodeDecodeError as e:
            raise ArtifactError(f"template file '{stack.get_template_path()}' is not valid UTF-8") from e

    def build_working_stack(self, stack: CloudFormationStack, template: str, revision: str) -> WorkingStack:
        """
        Assembles the desired state of the CloudFormation stack. The controller's tags come first, followed by the
        operator's default tags and the tags of the stack resource. Duplicate keys are passed on as they are.
        """
        tags = [
            {"key": f"{self.controller_name}/version", "value": self.controller_version},
            {"key": f"{self.controller_name}/name", "value": stack.metadata.name},
            {"key": f"{self.controller_name}/namespace", "value": stack.metadata.namespace},
        ]
        tags.extend({"key": key, "value": value} for key, value in self.stack_tags.items())
        tags.extend({"key": tag.key, "value": tag.value} for tag in stack.spec.stack_tags)

        return WorkingStack(
            name=stack.stack_name,
            region=stack.spec.region,
            generation=stack.metadata.generation,
            source_revision=revision,
            change_set=ChangeSetHandle.resolve(
                stack.metadata.generation, revision, stack.status.last_attempted_change_set
            ),
            config=StackConfig(
                template_bucket=self.template_bucket,
                template_body=template,
                parameters=[{"key": p.key, "value": p.value} for p in stack.spec.stack_parameters],
                tags=tags,
            ),
        )

    @staticmethod
    def _log_duration(prefix: str, start: float, result: ReconcileResult):
        msg = f"{prefix} finished in {format_duration(timedelta(seconds=time.monotonic() - start))}"
        if result.requeue_after:
            msg = f"{msg}, next run in {format_duration(result.requeue_after)}"
        LOG.info(msg)
