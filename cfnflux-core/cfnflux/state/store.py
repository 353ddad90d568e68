"""
In-memory store of the objects the controller works on: ``CloudFormationStack`` resources and the Flux sources they
reference. Objects are loaded from YAML manifests and handed out as copies; changes are written back explicitly.
"""
import logging
import threading
from datetime import datetime
from typing import IO, Dict, Iterable, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from cfnflux.api.sources import SOURCE_TYPES, Source
from cfnflux.api.v1alpha1 import CloudFormationStack
from cfnflux.constants import CLOUDFORMATION_STACK_KIND
from cfnflux.utils.time import now_utc

LOG = logging.getLogger(__name__)

StoredObject = Union[CloudFormationStack, Source]
ObjectKey = Tuple[str, str, str]


class StoreError(Exception):
    pass


class ObjectNotFoundError(StoreError):
    def __init__(self, kind: str, namespace: str, name: str):
        super().__init__(f"{kind} '{namespace}/{name}' not found")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class InvalidManifestError(StoreError):
    pass


def _key(kind: str, namespace: str, name: str) -> ObjectKey:
    return kind, namespace, name


def split_key(key: str) -> Tuple[str, str]:
    """Splits a ``namespace/name`` key, the namespace defaults to ``default``."""
    namespace, sep, name = key.partition("/")
    if not sep:
        return "default", key
    return namespace, name


class ObjectStore:
    """
    Thread-safe store keyed by kind, namespace and name. Every write increments the object's ``resourceVersion``.
    Spec changes of stacks increment their ``generation``, like an API server does.
    """

    def __init__(self):
        self._objects: Dict[ObjectKey, StoredObject] = {}
        self._version = 0
        self._mutex = threading.RLock()

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def get(self, kind: str, namespace: str, name: str) -> StoredObject:
        with self._mutex:
            obj = self._objects.get(_key(kind, namespace, name))
            if obj is None:
                raise ObjectNotFoundError(kind, namespace, name)
            return obj.model_copy(deep=True)

    def get_stack(self, namespace: str, name: str) -> CloudFormationStack:
        return self.get(CLOUDFORMATION_STACK_KIND, namespace, name)

    def find_stack(self, namespace: str, name: str) -> Optional[CloudFormationStack]:
        try:
            return self.get_stack(namespace, name)
        except ObjectNotFoundError:
            return None

    def list(self, kind: str, namespace: str = None) -> List[StoredObject]:
        with self._mutex:
            return [
                obj.model_copy(deep=True)
                for (obj_kind, obj_namespace, _), obj in sorted(self._objects.items())
                if obj_kind == kind and (namespace is None or obj_namespace == namespace)
            ]

    def list_stacks(self, namespace: str = None) -> List[CloudFormationStack]:
        return self.list(CLOUDFORMATION_STACK_KIND, namespace)

    def apply(self, obj: StoredObject) -> StoredObject:
        """
        Creates or updates an object from its desired state. For existing objects, status, finalizers, and deletion
        state are kept, and the generation is bumped if the spec changed.
        """
        with self._mutex:
            key = _key(obj.kind, obj.metadata.namespace, obj.metadata.name)
            obj = obj.model_copy(deep=True)
            existing = self._objects.get(key)
            if existing is None:
                obj.metadata.generation = max(obj.metadata.generation, 1)
            else:
                spec_changed = obj.spec != existing.spec
                # sources in manifests carry their status, it is produced outside of this controller
                if isinstance(obj, CloudFormationStack):
                    obj.status = existing.status.model_copy(deep=True)
                    obj.metadata.finalizers = list(existing.metadata.finalizers)
                    obj.metadata.deletion_timestamp = existing.metadata.deletion_timestamp
                obj.metadata.generation = existing.metadata.generation + (1 if spec_changed else 0)
            obj.metadata.resource_version = self._next_version()
            self._objects[key] = obj
            return obj.model_copy(deep=True)

    def update_metadata(self, stack: CloudFormationStack) -> CloudFormationStack:
        """Writes the finalizers and annotations of the given stack to the stored object."""
        with self._mutex:
            latest = self._get_stored(stack)
            latest.metadata.finalizers = list(stack.metadata.finalizers)
            latest.metadata.annotations = dict(stack.metadata.annotations)
            latest.metadata.resource_version = self._next_version()
            self._remove_if_released(latest)
            stack.metadata.resource_version = latest.metadata.resource_version
            return latest.model_copy(deep=True)

    def patch_status(self, stack: CloudFormationStack) -> CloudFormationStack:
        """
        Overwrites the status of the latest stored version of the stack with the status of the given stack.
        The latest object is read right before the status is replaced, concurrent status changes are overwritten.
        """
        with self._mutex:
            latest = self._get_stored(stack)
            latest.status = stack.status.model_copy(deep=True)
            latest.metadata.resource_version = self._next_version()
            stack.metadata.resource_version = latest.metadata.resource_version
            return latest.model_copy(deep=True)

    def delete(self, kind: str, namespace: str, name: str, timestamp: datetime = None) -> bool:
        """
        Requests the deletion of an object. Objects with finalizers are only marked for deletion and removed once the
        last finalizer is released.

        :return: whether the object was removed right away
        """
        with self._mutex:
            key = _key(kind, namespace, name)
            obj = self._objects.get(key)
            if obj is None:
                raise ObjectNotFoundError(kind, namespace, name)
            if not obj.metadata.finalizers:
                del self._objects[key]
                return True
            if obj.metadata.deletion_timestamp is None:
                obj.metadata.deletion_timestamp = timestamp or now_utc()
                obj.metadata.resource_version = self._next_version()
            return False

    def _get_stored(self, stack: CloudFormationStack) -> CloudFormationStack:
        key = _key(stack.kind, stack.metadata.namespace, stack.metadata.name)
        latest = self._objects.get(key)
        if latest is None:
            raise ObjectNotFoundError(stack.kind, stack.metadata.namespace, stack.metadata.name)
        return latest

    def _remove_if_released(self, obj: StoredObject):
        if obj.metadata.deletion_timestamp is not None and not obj.metadata.finalizers:
            LOG.debug("Removing %s %s, all finalizers released", obj.kind, obj.metadata.key)
            self._objects.pop(_key(obj.kind, obj.metadata.namespace, obj.metadata.name), None)


def parse_object(document: dict) -> StoredObject:
    if not isinstance(document, dict):
        raise InvalidManifestError(f"expected a mapping, got {type(document).__name__}")
    kind = document.get("kind")
    try:
        if kind == CLOUDFORMATION_STACK_KIND:
            return CloudFormationStack.model_validate(document)
        if kind in SOURCE_TYPES:
            return SOURCE_TYPES[kind].model_validate(document)
    except ValidationError as e:
        name = (document.get("metadata") or {}).get("name")
        raise InvalidManifestError(f"invalid {kind} '{name}': {e}") from e
    raise InvalidManifestError(f"unsupported kind '{kind}'")


def load_manifests(stream: Union[str, IO]) -> List[StoredObject]:
    """
    Parses all objects from a (multi-document) YAML string or stream. ``List`` documents are flattened.

    :raises InvalidManifestError: if a document is not valid YAML or not a supported object
    """
    try:
        documents = list(yaml.safe_load_all(stream))
    except yaml.YAMLError as e:
        raise InvalidManifestError(f"unable to parse manifests: {e}") from e

    objects = []
    for document in documents:
        if not document:
            continue
        if isinstance(document, dict) and document.get("kind") == "List":
            objects.extend(parse_object(item) for item in document.get("items") or [])
        else:
            objects.append(parse_object(document))
    return objects


def load_manifest_files(paths: Iterable[str]) -> List[StoredObject]:
    objects = []
    for path in paths:
        with open(path, "r") as f:
            objects.extend(load_manifests(f))
    return objects


def dump_objects(objects: Iterable[StoredObject]) -> str:
    return yaml.safe_dump_all([obj.to_dict() for obj in objects], sort_keys=False)
