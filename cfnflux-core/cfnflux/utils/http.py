import logging
from typing import Optional
from urllib.parse import urlparse, urlunparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from cfnflux.constants import CONTROLLER_NAME, VERSION

from .digest import Verifier

# chunk size for artifact downloads
DOWNLOAD_CHUNK_SIZE = 1024 * 1024

# status codes that are worth retrying
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)

LOG = logging.getLogger(__name__)


class DownloadError(Exception):
    def __init__(self, url: str, message: str, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def replace_host(url: str, host: Optional[str]) -> str:
    """Replaces the network location of ``url`` with ``host`` (``host[:port]``), if ``host`` is set."""
    if not host:
        return url
    parsed = urlparse(url)
    return urlunparse(parsed._replace(netloc=host))


def new_retrying_session(retries: int, wait_min: float = 1, wait_max: float = 30) -> requests.Session:
    """
    Creates a session that retries connection errors and retryable status codes up to ``retries`` times, waiting
    exponentially longer (starting around ``wait_min``, capped at ``wait_max`` seconds) between attempts. When the
    retries are exhausted, the last response is returned instead of raising.
    """
    retry = Retry(
        total=max(retries, 0),
        connect=max(retries, 0),
        read=max(retries, 0),
        status=max(retries, 0),
        backoff_factor=wait_min,
        backoff_max=wait_max,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["User-Agent"] = f"{CONTROLLER_NAME}/{VERSION}"
    return session


def download(
    session: requests.Session,
    url: str,
    verifier: Verifier = None,
    timeout: float = None,
) -> bytes:
    """
    Downloads the content at ``url`` into memory, feeding every chunk to the optional digest ``verifier``.

    :raises DownloadError: if the request fails or the response code is not 200
    """
    r = None
    try:
        r = session.get(url, stream=True, timeout=timeout)
        # check status code before attempting to read body
        if r.status_code != 200:
            raise DownloadError(
                url,
                f"failed to download artifact from {url}, status: {r.status_code} {r.reason}",
                status_code=r.status_code,
            )

        LOG.debug("Starting download from %s (%s bytes)", url, r.headers.get("Content-Length"))
        buffer = bytearray()
        for chunk in r.iter_content(DOWNLOAD_CHUNK_SIZE):
            if not chunk:  # filter out keep-alive new chunks
                continue
            if verifier:
                verifier.update(chunk)
            buffer.extend(chunk)
        LOG.debug("Done downloading %s, total bytes %d", url, len(buffer))
        return bytes(buffer)
    except requests.exceptions.RequestException as e:
        raise DownloadError(url, f"failed to download artifact from {url}: {e}") from e
    finally:
        if r is not None:
            r.close()
