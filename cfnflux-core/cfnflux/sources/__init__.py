"""
Resolution of the source referenced by a ``CloudFormationStack`` into the artifact that holds its template.
"""
import logging
from typing import Optional

from cfnflux.api.sources import Artifact, Source
from cfnflux.api.v1alpha1 import CloudFormationStack
from cfnflux.constants import SOURCE_KINDS
from cfnflux.state.store import ObjectNotFoundError, ObjectStore

LOG = logging.getLogger(__name__)


class SourceError(Exception):
    pass


class SourceNotFoundError(SourceError):
    pass


class SourceAccessDeniedError(SourceError):
    pass


class UnsupportedSourceKindError(SourceError):
    pass


class SourceProvider:
    """
    Looks up sources in the object store. Distinguishes a source that does not exist (``SourceNotFoundError``) from
    a source that exists but has not produced an artifact yet (``get_artifact`` returns ``None``).
    """

    def __init__(self, store: ObjectStore, no_cross_namespace_refs: bool = False):
        self.store = store
        self.no_cross_namespace_refs = no_cross_namespace_refs

    def get_source(self, stack: CloudFormationStack) -> Source:
        """
        :raises SourceAccessDeniedError: if cross-namespace references are blocked and the source lives elsewhere
        :raises UnsupportedSourceKindError: if the referenced kind cannot hold templates
        :raises SourceNotFoundError: if the referenced source does not exist
        """
        source_ref = stack.spec.source_ref
        namespace = stack.get_source_namespace()

        if self.no_cross_namespace_refs and namespace != stack.metadata.namespace:
            raise SourceAccessDeniedError(
                f"can't access '{source_ref.kind}/{namespace}/{source_ref.name}', "
                f"cross-namespace references have been blocked"
            )

        if source_ref.kind not in SOURCE_KINDS:
            raise UnsupportedSourceKindError(
                f"source `{source_ref.name}` kind '{source_ref.kind}' not supported"
            )

        try:
            return self.store.get(source_ref.kind, namespace, source_ref.name)
        except ObjectNotFoundError as e:
            raise SourceNotFoundError(str(e)) from e

    def get_artifact(self, stack: CloudFormationStack) -> Optional[Artifact]:
        return self.get_source(stack).get_artifact()
