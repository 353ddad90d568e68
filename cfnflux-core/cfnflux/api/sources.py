"""Flux source objects that can hold CloudFormation templates. Only the artifact contract of their status is modeled."""
from __future__ import annotations

from typing import Optional

from pydantic import Field

from cfnflux.constants import BUCKET_KIND, GIT_REPOSITORY_KIND, OCI_REPOSITORY_KIND

from .v1alpha1 import ObjectMeta, ResourceModel


class Artifact(ResourceModel):
    """The latest artifact produced by a source: where to fetch it, its revision and its digest."""

    url: str
    revision: str
    digest: Optional[str] = None
    path: Optional[str] = None
    size: Optional[int] = None


class SourceStatus(ResourceModel):
    artifact: Optional[Artifact] = None
    observed_generation: int = Field(0, alias="observedGeneration")


class Source(ResourceModel):
    api_version: Optional[str] = Field(None, alias="apiVersion")
    kind: str
    metadata: ObjectMeta
    spec: dict = Field(default_factory=dict)
    status: SourceStatus = Field(default_factory=SourceStatus)

    @property
    def key(self) -> str:
        return self.metadata.key

    def get_artifact(self) -> Optional[Artifact]:
        return self.status.artifact


class GitRepository(Source):
    kind: str = GIT_REPOSITORY_KIND


class Bucket(Source):
    kind: str = BUCKET_KIND


class OCIRepository(Source):
    kind: str = OCI_REPOSITORY_KIND


SOURCE_TYPES = {
    GIT_REPOSITORY_KIND: GitRepository,
    BUCKET_KIND: Bucket,
    OCI_REPOSITORY_KIND: OCIRepository,
}
