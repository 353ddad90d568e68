"""
Creation of the boto3 clients used to talk to CloudFormation, S3 and STS.
"""
import logging
import threading
from typing import Dict, Optional, Tuple

from boto3.session import Session
from botocore.client import BaseClient
from botocore.config import Config

from cfnflux import config as cfnflux_config
from cfnflux.constants import CONTROLLER_NAME, MAX_POOL_CONNECTIONS, VERSION

LOG = logging.getLogger(__name__)

AWS_REGION_US_EAST_1 = "us-east-1"


class ClientFactory:
    """
    Factory to build AWS clients.

    Boto client creation is resource intensive. This class caches all clients it creates, one per service and
    region, and must be used instead of directly using the boto lib. Stacks can be deployed to different regions,
    which is why the region is part of every lookup.
    """

    def __init__(
        self,
        session: Session = None,
        config: Config = None,
        endpoint_url: Optional[str] = None,
        default_region: Optional[str] = None,
    ):
        """
        :param session: Session to be used for client creation. Will create a new session if not provided.
            Sessions are not thread safe, the factory guards the session with a lock.
        :param config: Config used as default for client creation.
        :param endpoint_url: Endpoint override for all clients, defaults to ``AWS_ENDPOINT_URL``.
        :param default_region: Region for clients requested without one, defaults to ``AWS_REGION``, then the
            session region, then us-east-1.
        """
        self._config: Config = config or Config(
            max_pool_connections=MAX_POOL_CONNECTIONS,
            user_agent_extra=f"{CONTROLLER_NAME}/{VERSION}",
        )
        self._session: Session = session or Session()
        self._endpoint_url = endpoint_url or cfnflux_config.AWS_ENDPOINT_URL
        self._default_region = default_region or cfnflux_config.AWS_REGION
        self._clients: Dict[Tuple[str, str], BaseClient] = {}
        self._create_client_lock = threading.RLock()

    @property
    def endpoint_url(self) -> Optional[str]:
        return self._endpoint_url

    def get_region(self, region_name: Optional[str] = None) -> str:
        """
        Return the AWS region name from following sources, in order of availability.
        - the given region
        - the configured default region
        - Boto session
        - us-east-1
        """
        return (
            region_name
            or self._default_region
            or self._session.region_name
            or AWS_REGION_US_EAST_1
        )

    def get_client(self, service_name: str, region_name: Optional[str] = None) -> BaseClient:
        """
        Returns a cached boto3 client for the given service and region.
        Client creation is behind a lock as it is not generally thread safe.
        """
        region = self.get_region(region_name)
        key = (service_name, region)
        with self._create_client_lock:
            client = self._clients.get(key)
            if client is None:
                LOG.debug("Creating %s client for region %s", service_name, region)
                client = self._session.client(
                    service_name=service_name,
                    region_name=region,
                    endpoint_url=self._endpoint_url,
                    config=self._config,
                )
                self._clients[key] = client
        return client

    def cloudformation(self, region_name: Optional[str] = None):
        return self.get_client("cloudformation", region_name)

    def s3(self, region_name: Optional[str] = None):
        return self.get_client("s3", region_name)

    def sts(self, region_name: Optional[str] = None):
        return self.get_client("sts", region_name)
