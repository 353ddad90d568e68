"""
Events describing what happened to a ``CloudFormationStack``. Events are logged, kept in a bounded in-memory history,
and forwarded to an events receiver (e.g., the Flux notification-controller) if one is configured.
"""
import collections
import dataclasses
import logging
import threading
from typing import Deque, Dict, List, Optional

import requests

from cfnflux.api.v1alpha1 import CloudFormationStack
from cfnflux.constants import (
    CONTROLLER_NAME,
    EVENT_REVISION_METADATA_KEY,
    EVENT_SEVERITY_ERROR,
    EVENT_TYPE_NORMAL,
    EVENT_TYPE_WARNING,
)
from cfnflux.utils.time import timestamp

LOG = logging.getLogger(__name__)

MAX_EVENT_HISTORY = 1000
EVENT_POST_TIMEOUT = 15


@dataclasses.dataclass
class Event:
    namespace: str
    name: str
    kind: str
    type: str
    severity: str
    message: str
    metadata: Dict[str, str]
    timestamp: str

    def to_payload(self, reporting_controller: str) -> dict:
        return {
            "involvedObject": {
                "kind": self.kind,
                "namespace": self.namespace,
                "name": self.name,
            },
            "severity": self.severity,
            "timestamp": self.timestamp,
            "message": self.message,
            "reason": self.severity,
            "metadata": self.metadata,
            "reportingController": reporting_controller,
        }


class EventRecorder:
    def __init__(
        self,
        events_addr: Optional[str] = None,
        controller_name: str = CONTROLLER_NAME,
        session: requests.Session = None,
        max_history: int = MAX_EVENT_HISTORY,
    ):
        self.events_addr = events_addr
        self.controller_name = controller_name
        self._session = session
        self._events: Deque[Event] = collections.deque(maxlen=max_history)
        self._mutex = threading.Lock()

    def event(self, stack: CloudFormationStack, revision: Optional[str], severity: str, message: str) -> Event:
        """
        Records an event for the given stack. Events with error severity are of type ``Warning``, all others of type
        ``Normal``. The revision, if given, is attached as metadata.
        """
        metadata = {EVENT_REVISION_METADATA_KEY: revision} if revision else {}
        event = Event(
            namespace=stack.metadata.namespace,
            name=stack.metadata.name,
            kind=stack.kind,
            type=EVENT_TYPE_WARNING if severity == EVENT_SEVERITY_ERROR else EVENT_TYPE_NORMAL,
            severity=severity,
            message=message,
            metadata=metadata,
            timestamp=timestamp(),
        )

        if event.type == EVENT_TYPE_WARNING:
            LOG.warning("Event %s/%s (%s): %s", event.namespace, event.name, severity, message)
        else:
            LOG.info("Event %s/%s (%s): %s", event.namespace, event.name, severity, message)

        with self._mutex:
            self._events.append(event)

        if self.events_addr:
            self._forward(event)
        return event

    def _forward(self, event: Event):
        if self._session is None:
            self._session = requests.Session()
        try:
            response = self._session.post(
                self.events_addr,
                json=event.to_payload(self.controller_name),
                timeout=EVENT_POST_TIMEOUT,
            )
            if not response.ok:
                LOG.warning(
                    "Events receiver %s rejected event for %s/%s: %s",
                    self.events_addr,
                    event.namespace,
                    event.name,
                    response.status_code,
                )
        except requests.exceptions.RequestException as e:
            LOG.warning("Unable to forward event to %s: %s", self.events_addr, e)

    def events(self, namespace: str = None, name: str = None) -> List[Event]:
        with self._mutex:
            return [
                e
                for e in self._events
                if (namespace is None or e.namespace == namespace) and (name is None or e.name == name)
            ]
