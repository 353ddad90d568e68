import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from cfnflux.aws.connect import ClientFactory
from cfnflux.clients import CloudFormationClient
from cfnflux.constants import CHANGE_SET_DESCRIPTION

from .changeset import ChangeSetDescription, ChangeSetHandle
from .errors import CloudFormationApiError, change_set_does_not_exist, stack_does_not_exist
from .stack import StackDescription, WorkingStack
from .status import is_absent_stack_status

LOG = logging.getLogger(__name__)

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]

CHANGE_SET_TYPE_CREATE = "CREATE"
CHANGE_SET_TYPE_UPDATE = "UPDATE"


class CloudFormation(CloudFormationClient):
    """CloudFormation stack and change set operations backed by boto3."""

    def __init__(self, clients: ClientFactory = None):
        self.clients = clients or ClientFactory()

    def _client(self, stack: WorkingStack):
        return self.clients.cloudformation(stack.region)

    def describe_stack(self, stack: WorkingStack) -> Optional[StackDescription]:
        try:
            response = self._client(stack).describe_stacks(StackName=stack.name)
        except ClientError as e:
            if stack_does_not_exist(e):
                return None
            raise CloudFormationApiError(f"describe stack {stack.name}", str(e), e) from e
        except BotoCoreError as e:
            raise CloudFormationApiError(f"describe stack {stack.name}", str(e), e) from e

        stacks = response.get("Stacks") or []
        if not stacks or is_absent_stack_status(stacks[0].get("StackStatus")):
            return None

        stack_details = stacks[0]
        return StackDescription(
            name=stack_details.get("StackName", stack.name),
            status=stack_details.get("StackStatus", ""),
            status_reason=stack_details.get("StackStatusReason"),
            stack_id=stack_details.get("StackId"),
            outputs=stack_details.get("Outputs") or [],
        )

    def create_stack(self, stack: WorkingStack) -> ChangeSetHandle:
        return self._create_change_set(stack, CHANGE_SET_TYPE_CREATE)

    def update_stack(self, stack: WorkingStack) -> ChangeSetHandle:
        return self._create_change_set(stack, CHANGE_SET_TYPE_UPDATE)

    def _create_change_set(self, stack: WorkingStack, change_set_type: str) -> ChangeSetHandle:
        handle = ChangeSetHandle.derive(stack.generation, stack.source_revision)
        config = stack.config
        kwargs = {
            "ChangeSetName": handle.name,
            "StackName": stack.name,
            "Description": CHANGE_SET_DESCRIPTION,
            "ChangeSetType": change_set_type,
            "Parameters": [
                {"ParameterKey": p["key"], "ParameterValue": p["value"]} for p in config.parameters
            ],
            "Tags": [{"Key": t["key"], "Value": t["value"]} for t in config.tags],
            "IncludeNestedStacks": True,
            "Capabilities": CAPABILITIES,
        }
        if config.template_url:
            kwargs["TemplateURL"] = config.template_url
        elif config.template_body:
            kwargs["TemplateBody"] = config.template_body

        operation = f"create change set {handle.name} for stack {stack.name}"
        try:
            response = self._client(stack).create_change_set(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise CloudFormationApiError(operation, str(e), e) from e

        handle = handle.with_arn(response.get("Id"))
        stack.change_set = handle
        return handle

    def describe_change_set(self, stack: WorkingStack) -> Optional[ChangeSetDescription]:
        handle = stack.desired_change_set()
        client = self._client(stack)

        description = None
        next_token = None
        while True:
            kwargs = {"ChangeSetName": handle.identifier, "StackName": stack.name}
            if next_token:
                kwargs["NextToken"] = next_token
            try:
                response = client.describe_change_set(**kwargs)
            except ClientError as e:
                if change_set_does_not_exist(e):
                    return None
                raise CloudFormationApiError(
                    f"describe change set {handle} for stack {stack.name}", str(e), e
                ) from e
            except BotoCoreError as e:
                raise CloudFormationApiError(
                    f"describe change set {handle} for stack {stack.name}", str(e), e
                ) from e

            if description is None:
                description = ChangeSetDescription(handle=handle, status="")
            description.handle = handle.with_arn(response.get("ChangeSetId"))
            description.status = response.get("Status", "")
            description.execution_status = response.get("ExecutionStatus", "")
            description.status_reason = response.get("StatusReason") or ""
            description.changes.extend(response.get("Changes") or [])

            next_token = response.get("NextToken")
            if not next_token:
                break

        stack.change_set = description.handle
        return description

    def execute_change_set(self, stack: WorkingStack) -> None:
        handle = stack.desired_change_set()
        try:
            self._client(stack).execute_change_set(
                ChangeSetName=handle.identifier, StackName=stack.name
            )
        except (ClientError, BotoCoreError) as e:
            raise CloudFormationApiError(
                f"execute change set {handle} for stack {stack.name}", str(e), e
            ) from e

    def delete_change_set(self, stack: WorkingStack) -> None:
        handle = stack.desired_change_set()
        try:
            self._client(stack).delete_change_set(
                ChangeSetName=handle.identifier, StackName=stack.name
            )
        except ClientError as e:
            if change_set_does_not_exist(e):
                LOG.debug("Change set %s for stack %s is already gone", handle, stack.name)
                return
            raise CloudFormationApiError(
                f"delete change set {handle} for stack {stack.name}", str(e), e
            ) from e
        except BotoCoreError as e:
            raise CloudFormationApiError(
                f"delete change set {handle} for stack {stack.name}", str(e), e
            ) from e

    def delete_stack(self, stack: WorkingStack) -> None:
        try:
            self._client(stack).delete_stack(StackName=stack.name)
        except ClientError as e:
            if stack_does_not_exist(e):
                LOG.debug("Stack %s is already gone", stack.name)
                return
            raise CloudFormationApiError(f"delete stack {stack.name}", str(e), e) from e
        except BotoCoreError as e:
            raise CloudFormationApiError(f"delete stack {stack.name}", str(e), e) from e

    def continue_stack_rollback(self, stack: WorkingStack) -> None:
        try:
            self._client(stack).continue_update_rollback(StackName=stack.name)
        except (ClientError, BotoCoreError) as e:
            raise CloudFormationApiError(
                f"continue update rollback of stack {stack.name}", str(e), e
            ) from e
