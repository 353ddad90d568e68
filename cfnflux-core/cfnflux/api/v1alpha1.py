"""
Model of the ``CloudFormationStack`` resource (``cloudformation.contrib.fluxcd.io/v1alpha1``).

The models accept and produce the camelCase keys used in manifests, and can be populated by field name as well.
Durations are Go-style strings (``"10m"``, ``"30s"``) which are parsed into ``timedelta`` objects.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from cfnflux.constants import (
    API_VERSION,
    CLOUDFORMATION_STACK_KIND,
    DEFAULT_TEMPLATE_PATH,
    READY_CONDITION,
)
from cfnflux.utils.time import format_duration, parse_duration


class ResourceModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, validate_assignment=False)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ObjectMeta(ResourceModel):
    name: str
    namespace: str = "default"
    generation: int = 1
    resource_version: int = Field(0, alias="resourceVersion")
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    finalizers: List[str] = Field(default_factory=list)
    deletion_timestamp: Optional[datetime] = Field(None, alias="deletionTimestamp")

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


class SourceReference(ResourceModel):
    """Reference to the Flux source object holding the template."""

    api_version: Optional[str] = Field(None, alias="apiVersion")
    kind: str
    name: str
    namespace: Optional[str] = None

    def __str__(self):
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


class NamespacedObjectReference(ResourceModel):
    name: str
    namespace: Optional[str] = None


class StackParameter(ResourceModel):
    key: str
    value: str


class StackTag(ResourceModel):
    key: str
    value: str


class Condition(ResourceModel):
    type: str
    status: str
    reason: str
    message: str = ""
    observed_generation: int = Field(0, alias="observedGeneration")
    last_transition_time: Optional[datetime] = Field(None, alias="lastTransitionTime")


class CloudFormationStackSpec(ResourceModel):
    # name of the CloudFormation stack, defaults to the resource name
    stack_name: Optional[str] = Field(None, alias="stackName")
    region: Optional[str] = None
    template_path: Optional[str] = Field(None, alias="templatePath")
    source_ref: SourceReference = Field(alias="sourceRef")
    interval: timedelta
    poll_interval: Optional[timedelta] = Field(None, alias="pollInterval")
    retry_interval: Optional[timedelta] = Field(None, alias="retryInterval")
    suspend: bool = False
    destroy_stack_on_deletion: bool = Field(False, alias="destroyStackOnDeletion")
    depends_on: List[NamespacedObjectReference] = Field(default_factory=list, alias="dependsOn")
    stack_parameters: List[StackParameter] = Field(default_factory=list, alias="stackParameters")
    stack_tags: List[StackTag] = Field(default_factory=list, alias="stackTags")

    @field_validator("interval", "poll_interval", "retry_interval", mode="before")
    @classmethod
    def _parse_duration(cls, value):
        if value is None:
            return None
        return parse_duration(value)

    @field_serializer("interval", "poll_interval", "retry_interval")
    def _format_duration(self, value: Optional[timedelta]):
        return format_duration(value) if value is not None else None


class CloudFormationStackStatus(ResourceModel):
    observed_generation: int = Field(0, alias="observedGeneration")
    conditions: List[Condition] = Field(default_factory=list)
    last_applied_revision: Optional[str] = Field(None, alias="lastAppliedRevision")
    last_attempted_revision: Optional[str] = Field(None, alias="lastAttemptedRevision")
    last_applied_change_set: Optional[str] = Field(None, alias="lastAppliedChangeSet")
    last_attempted_change_set: Optional[str] = Field(None, alias="lastAttemptedChangeSet")
    stack_name: Optional[str] = Field(None, alias="stackName")
    last_handled_reconcile_at: Optional[str] = Field(None, alias="lastHandledReconcileAt")

    def get_condition(self, condition_type: str = READY_CONDITION) -> Optional[Condition]:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


class CloudFormationStack(ResourceModel):
    api_version: str = Field(API_VERSION, alias="apiVersion")
    kind: str = CLOUDFORMATION_STACK_KIND
    metadata: ObjectMeta
    spec: CloudFormationStackSpec
    status: CloudFormationStackStatus = Field(default_factory=CloudFormationStackStatus)

    @property
    def key(self) -> str:
        return self.metadata.key

    @property
    def stack_name(self) -> str:
        return self.spec.stack_name or self.metadata.name

    @property
    def deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def get_template_path(self) -> str:
        return self.spec.template_path or DEFAULT_TEMPLATE_PATH

    def get_poll_interval(self) -> timedelta:
        """The interval at which in-progress stack operations are checked, defaults to ``interval``."""
        return self.spec.poll_interval if self.spec.poll_interval is not None else self.spec.interval

    def get_retry_interval(self) -> timedelta:
        """The interval at which failed reconciles are retried, defaults to ``interval``."""
        return self.spec.retry_interval if self.spec.retry_interval is not None else self.spec.interval

    def get_source_namespace(self) -> str:
        return self.spec.source_ref.namespace or self.metadata.namespace

    def get_dependency_keys(self) -> List[str]:
        return [
            f"{dependency.namespace or self.metadata.namespace}/{dependency.name}"
            for dependency in self.spec.depends_on
        ]

    def get_ready_condition(self) -> Optional[Condition]:
        return self.status.get_condition(READY_CONDITION)
