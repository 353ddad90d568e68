"""
Loading of CloudFormation templates from source artifacts: download, digest verification, extraction, and reading the
template from the extracted files.
"""
import logging
import os
import tarfile

import requests

from cfnflux import config
from cfnflux.api.sources import Artifact
from cfnflux.api.v1alpha1 import CloudFormationStack
from cfnflux.utils import archives, files, http
from cfnflux.utils.digest import Digest, DigestMismatchError, InvalidDigestError

LOG = logging.getLogger(__name__)


class ArtifactError(Exception):
    pass


class ArtifactLoader:
    def __init__(
        self,
        session: requests.Session = None,
        retries: int = None,
        timeout: float = None,
        localhost: str = None,
    ):
        """
        :param session: the HTTP session used for downloads, by default a session retrying up to ``retries`` times
        :param retries: the maximum number of download retries, defaults to ``HTTP_RETRY``
        :param timeout: the timeout of a single download request, defaults to ``HTTP_TIMEOUT``
        :param localhost: replaces the host of artifact URLs, defaults to ``SOURCE_CONTROLLER_LOCALHOST``
        """
        if session is None:
            session = http.new_retrying_session(
                config.HTTP_RETRY if retries is None else retries,
                wait_min=config.HTTP_RETRY_WAIT_MIN,
                wait_max=config.HTTP_RETRY_WAIT_MAX,
            )
        self.session = session
        self.timeout = config.HTTP_TIMEOUT if timeout is None else timeout
        self.localhost = config.SOURCE_CONTROLLER_LOCALHOST if localhost is None else localhost

    def load_template(self, stack: CloudFormationStack, artifact: Artifact) -> bytes:
        """
        Downloads the artifact, verifies it against its advertised digest, and returns the content of the stack's
        template file within it. No template is ever read from an artifact that failed verification.

        :raises ArtifactError: if any of the steps fail
        """
        url = http.replace_host(artifact.url, self.localhost)
        data = self.fetch(url, artifact)

        template_path = stack.get_template_path()
        with files.tmp_dir(prefix=f"{stack.metadata.namespace}-{stack.metadata.name}-") as tmp_dir:
            try:
                archives.untar(data, tmp_dir)
            except (tarfile.TarError, files.UnsafePathError, OSError) as e:
                LOG.debug("Unable to extract artifact %s: %s", url, e)
                raise ArtifactError(
                    f"failed to untar artifact, namespace {stack.metadata.namespace}, "
                    f"name {stack.metadata.name}: {e}"
                ) from e

            try:
                template_file = files.secure_join(tmp_dir, template_path)
            except files.UnsafePathError as e:
                raise ArtifactError(
                    f"unable to join securely the artifact temp directory with template path '{template_path}'"
                ) from e

            if os.path.isdir(template_file):
                raise ArtifactError(f"template path '{template_path}' is a directory")
            if not os.path.isfile(template_file):
                raise ArtifactError(
                    f"unable to read template file '{template_path}' in the artifact temp directory"
                )
            try:
                with open(template_file, "rb") as f:
                    return f.read()
            except OSError as e:
                raise ArtifactError(
                    f"unable to read template file '{template_path}' in the artifact temp directory"
                ) from e

    def fetch(self, url: str, artifact: Artifact) -> bytes:
        """Downloads the artifact and verifies its digest while it is streamed into memory."""
        try:
            digest = Digest.parse(artifact.digest)
        except InvalidDigestError as e:
            raise ArtifactError(f"failed to verify artifact: {e}") from e

        verifier = digest.verifier()
        try:
            data = http.download(self.session, url, verifier=verifier, timeout=self.timeout)
        except http.DownloadError as e:
            raise ArtifactError(str(e)) from e

        try:
            verifier.verify()
        except DigestMismatchError as e:
            raise ArtifactError(
                f"failed to verify artifact: computed digest doesn't match advertised '{digest}'"
            ) from e
        return data
