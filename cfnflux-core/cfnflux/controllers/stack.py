"""
State machines converging a single CloudFormation stack. Every step describes the live stack or change set, classifies
it, issues at most one mutating call, and returns the updated ``CloudFormationStack`` with the delay after which the
stack has to be looked at again. Long-running CloudFormation operations are never waited for.
"""
import dataclasses
import logging
from datetime import timedelta
from typing import Optional

from cfnflux.api.v1alpha1 import CloudFormationStack
from cfnflux.clients import CloudFormationClient, S3Client
from cfnflux.clients.cloudformation.stack import StackDescription, WorkingStack
from cfnflux.clients.cloudformation.status import (
    STACK_DELETE_FAILED,
    ChangeSetPhase,
    StackDeletionPhase,
    StackPhase,
    classify_change_set,
    classify_stack,
    classify_stack_deletion,
)
from cfnflux.clients.s3 import TemplateUploadError
from cfnflux.constants import (
    CHANGE_SET_FAILED_REASON,
    CLOUDFORMATION_API_CALL_FAILED_REASON,
    EVENT_SEVERITY_ERROR,
    EVENT_SEVERITY_INFO,
    STACK_ROLLBACK_FAILED_REASON,
    TEMPLATE_UPLOAD_FAILED_REASON,
    UNEXPECTED_STATUS_REASON,
    UNRECOVERABLE_STACK_FAILURE_REASON,
)
from cfnflux.events import EventRecorder
from cfnflux.utils.strings import long_uid, to_bytes

from . import status

LOG = logging.getLogger(__name__)


@dataclasses.dataclass
class StepResult:
    stack: CloudFormationStack
    requeue_after: Optional[timedelta] = None
    error: Optional[Exception] = None
    # set by the deletion state machine once the CloudFormation stack is gone
    deleted: bool = False


def _with_reason(message: str, description: StackDescription) -> str:
    if description.status_reason:
        return f"{message}, reason '{description.status_reason}'"
    return message


class StackStateMachine:
    def __init__(
        self,
        cfn_client: CloudFormationClient,
        s3_client: Optional[S3Client],
        recorder: EventRecorder,
        template_bucket: Optional[str] = None,
    ):
        self.cfn_client = cfn_client
        self.s3_client = s3_client
        self.recorder = recorder
        self.template_bucket = template_bucket

    def reconcile_stack(self, stack: CloudFormationStack, working: WorkingStack) -> StepResult:
        revision = working.source_revision
        try:
            description = self.cfn_client.describe_stack(working)
        except Exception as e:
            msg = f"Failed to describe the stack '{working.name}'"
            LOG.error("%s: %s", msg, e)
            stack = status.not_ready(stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg, revision)
            return StepResult(stack, stack.get_retry_interval(), e)

        phase = classify_stack(description)

        if phase is StackPhase.NOT_FOUND:
            return self.reconcile_change_set(stack, working, is_create=True)

        if phase is StackPhase.IN_PROGRESS:
            msg = (
                f"Stack action for stack '{working.name}' is in progress (status: '{description.status}'), "
                f"waiting for stack action to complete"
            )
            LOG.info(msg)
            stack = status.progressing(stack, msg, revision)
            return StepResult(stack, stack.get_poll_interval())

        if phase is StackPhase.ROLLBACK_CONTINUATION_NEEDED:
            try:
                self.cfn_client.continue_stack_rollback(working)
            except Exception as e:
                msg = f"Failed to continue a failed rollback for stack '{working.name}'"
                LOG.error("%s: %s", msg, e)
                stack = status.not_ready(stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg, revision)
                return StepResult(stack, stack.get_retry_interval(), e)

            msg = (
                f"Stack '{working.name}' has a previously failed rollback (status '{description.status}'), "
                f"continuing rollback"
            )
            LOG.info(msg)
            self.recorder.event(stack, revision, EVENT_SEVERITY_ERROR, msg)
            stack = status.not_ready(stack, STACK_ROLLBACK_FAILED_REASON, msg, revision)
            return StepResult(stack, stack.get_retry_interval())

        if phase is StackPhase.UNRECOVERABLE_FAILURE:
            try:
                self.cfn_client.delete_stack(working)
            except Exception as e:
                msg = f"Failed to delete the failed stack '{working.name}'"
                LOG.error("%s: %s", msg, e)
                stack = status.not_ready(stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg, revision)
                return StepResult(stack, stack.get_retry_interval(), e)

            msg = _with_reason(
                f"Stack '{working.name}' is in an unrecoverable state and must be recreated: "
                f"status '{description.status}'",
                description,
            )
            LOG.info(msg)
            self.recorder.event(stack, revision, EVENT_SEVERITY_ERROR, msg)
            stack = status.not_ready(stack, UNRECOVERABLE_STACK_FAILURE_REASON, msg, revision)
            return StepResult(stack, stack.get_retry_interval())

        if phase is StackPhase.RECOVERABLE_FAILURE:
            msg = _with_reason(
                f"Stack '{working.name}' is in a failed state (status '{description.status}'", description
            )
            self.recorder.event(stack, revision, EVENT_SEVERITY_ERROR, f"{msg}), creating a new change set")
            return self.reconcile_change_set(stack, working, is_create=False)

        if phase is StackPhase.SUCCESS:
            return self.reconcile_change_set(stack, working, is_create=False)

        msg = _with_reason(
            f"Unexpected stack status for stack '{working.name}': status '{description.status}'", description
        )
        LOG.warning(msg)
        self.recorder.event(stack, revision, EVENT_SEVERITY_ERROR, msg)
        stack = status.not_ready(stack, UNEXPECTED_STATUS_REASON, msg, revision)
        return StepResult(stack, stack.get_retry_interval())

    def reconcile_change_set(
        self, stack: CloudFormationStack, working: WorkingStack, is_create: bool
    ) -> StepResult:
        revision = working.source_revision
        try:
            description = self.cfn_client.describe_change_set(working)
        except Exception as e:
            msg = f"Failed to describe a change set for stack '{working.name}'"
            LOG.error("%s: %s", msg, e)
            stack = status.not_ready(stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg, revision)
            return StepResult(stack, stack.get_retry_interval(), e)

        phase = classify_change_set(description)

        if phase is ChangeSetPhase.NOT_FOUND:
            return self._create_change_set(stack, working, is_create)

        arn = description.arn
        details = (
            f"status '{description.status}', execution status '{description.execution_status}', "
            f"reason '{description.status_reason}'"
        )

        if phase is ChangeSetPhase.EMPTY:
            try:
                self.cfn_client.delete_change_set(working)
            except Exception as e:
                msg = f"Failed to delete an empty change set for stack '{working.name}'"
                LOG.error("%s: %s", msg, e)
                stack = status.not_ready(stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg, revision)
                return StepResult(stack, stack.get_retry_interval(), e)

            LOG.info(
                "Successfully reconciled stack '%s' with change set '%s' (empty change set)", working.name, arn
            )
            stack = status.ready(stack, change_set=arn, revision=revision)
            return StepResult(stack, stack.spec.interval)

        if phase is ChangeSetPhase.FAILED:
            try:
                self.cfn_client.delete_change_set(working)
            except Exception as e:
                msg = f"Failed to delete a failed change set for stack '{working.name}'"
                LOG.error("%s: %s", msg, e)
                stack = status.not_ready(
                    stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg, revision, change_set=arn
                )
                return StepResult(stack, stack.get_retry_interval(), e)

            msg = f"Change set failed for stack '{working.name}': {details}"
            LOG.info(msg)
            stack = status.not_ready(stack, CHANGE_SET_FAILED_REASON, msg, revision, change_set=arn)
            self.recorder.event(stack, revision, EVENT_SEVERITY_ERROR, msg)
            return StepResult(stack, stack.get_retry_interval())

        if phase is ChangeSetPhase.IN_PROGRESS:
            msg = f"Change set is in progress for stack '{working.name}': {details}"
            LOG.info(msg)
            stack = status.progressing(stack, msg, revision, change_set=arn)
            return StepResult(stack, stack.get_poll_interval())

        if phase is ChangeSetPhase.SUCCESS:
            LOG.info("Successfully reconciled stack '%s' with change set '%s'", working.name, arn)
            stack = status.ready(stack, change_set=arn, revision=revision)
            return StepResult(stack, stack.spec.interval)

        if phase is ChangeSetPhase.READY_FOR_EXECUTION:
            try:
                self.cfn_client.execute_change_set(working)
            except Exception as e:
                msg = f"Failed to execute a change set for stack '{working.name}'"
                LOG.error("%s: %s", msg, e)
                stack = status.not_ready(
                    stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg, revision, change_set=arn
                )
                return StepResult(stack, stack.get_retry_interval(), e)

            msg = f"Change set execution started for stack '{working.name}' (change set {arn})"
            LOG.info(msg)
            self.recorder.event(stack, revision, EVENT_SEVERITY_INFO, msg)
            stack = status.progressing(stack, msg, revision, change_set=arn)
            return StepResult(stack, stack.get_poll_interval())

        msg = f"Unexpected change set status for stack '{working.name}': {details}"
        LOG.warning(msg)
        stack = status.not_ready(stack, UNEXPECTED_STATUS_REASON, msg, revision, change_set=arn)
        self.recorder.event(stack, revision, EVENT_SEVERITY_ERROR, msg)
        return StepResult(stack, stack.get_retry_interval())

    def _create_change_set(
        self, stack: CloudFormationStack, working: WorkingStack, is_create: bool
    ) -> StepResult:
        revision = working.source_revision
        try:
            self.upload_template(working)
        except Exception as e:
            msg = f"Failed to upload template to S3 for stack '{working.name}'"
            LOG.error("%s: %s", msg, e)
            stack = status.not_ready(stack, TEMPLATE_UPLOAD_FAILED_REASON, msg, revision)
            return StepResult(stack, stack.get_retry_interval(), e)

        LOG.info(
            "Creating a change set for stack '%s' with template '%s'",
            working.name,
            working.config.template_url or "<inline>",
        )
        try:
            if is_create:
                handle = self.cfn_client.create_stack(working)
            else:
                handle = self.cfn_client.update_stack(working)
        except Exception as e:
            msg = f"Failed to create a change set for stack '{working.name}'"
            LOG.error("%s: %s", msg, e)
            stack = status.not_ready(stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg, revision)
            return StepResult(stack, stack.get_retry_interval(), e)

        action = "Creation" if is_create else "Update"
        msg = f"{action} of stack '{working.name}' in progress (change set {handle.identifier})"
        LOG.info(msg)
        self.recorder.event(stack, revision, EVENT_SEVERITY_INFO, msg)
        stack = status.progressing(stack, msg, revision, change_set=handle.identifier)
        return StepResult(stack, stack.get_poll_interval())

    def upload_template(self, working: WorkingStack) -> None:
        """
        Uploads the template to the template bucket, if one is configured, and replaces the inline template body with
        the URL of the uploaded object. Without a bucket, the template is passed inline.
        """
        config = working.config
        bucket = config.template_bucket or self.template_bucket
        if not bucket or config.template_url:
            return
        if self.s3_client is None:
            raise TemplateUploadError(bucket, "", "no S3 client configured")

        key = f"flux-{working.name}-{long_uid()}.template"
        config.template_url = self.s3_client.upload_template(
            bucket, working.region, key, to_bytes(config.template_body or "")
        )
        config.template_body = None

    def reconcile_deletion(self, stack: CloudFormationStack, working: WorkingStack) -> StepResult:
        revision = stack.status.last_attempted_revision
        try:
            description = self.cfn_client.describe_stack(working)
        except Exception as e:
            msg = f"Failed to describe the stack '{working.name}'"
            LOG.error("%s: %s", msg, e)
            self.recorder.event(stack, revision, EVENT_SEVERITY_ERROR, f"Failed to reconcile stack: {e}")
            stack = status.not_ready(stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg)
            return StepResult(stack, stack.get_retry_interval(), e)

        phase = classify_stack_deletion(description)

        if phase is StackDeletionPhase.NOT_FOUND:
            return StepResult(stack, None, deleted=True)

        if phase is StackDeletionPhase.IN_PROGRESS:
            msg = (
                f"Stack action is in progress for stack marked for deletion '{working.name}' "
                f"(status '{description.status}'), waiting for stack action to complete"
            )
            LOG.info(msg)
            stack = status.progressing(stack, msg)
            return StepResult(stack, stack.get_poll_interval())

        if description.status == STACK_DELETE_FAILED:
            self.recorder.event(
                stack, revision, EVENT_SEVERITY_ERROR, f"Stack '{working.name}' failed to delete, retrying"
            )

        try:
            self.cfn_client.delete_stack(working)
        except Exception as e:
            msg = f"Failed to delete the stack '{working.name}'"
            LOG.error("%s: %s", msg, e)
            self.recorder.event(stack, revision, EVENT_SEVERITY_ERROR, f"Failed to reconcile stack: {e}")
            stack = status.not_ready(stack, CLOUDFORMATION_API_CALL_FAILED_REASON, msg)
            return StepResult(stack, stack.get_retry_interval(), e)

        msg = f"Started deletion of stack '{working.name}'"
        LOG.info(msg)
        self.recorder.event(stack, revision, EVENT_SEVERITY_INFO, msg)
        stack = status.progressing(stack, msg)
        return StepResult(stack, stack.get_poll_interval())
