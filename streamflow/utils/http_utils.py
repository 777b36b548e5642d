import logging
from urllib.parse import urlparse

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from streamflow.configs import settings

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    def __init__(self, status_code, message):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def create_httpx_client(follow_redirects: bool = True, **kwargs) -> httpx.AsyncClient:
    """
    Create an HTTPX AsyncClient honouring the configured proxy and SSL routes.

    Args:
        follow_redirects (bool): Whether to follow 3xx redirects automatically.
        **kwargs: Additional AsyncClient keyword arguments.

    Returns:
        httpx.AsyncClient: Configured client.
    """
    mounts = settings.transport_config.get_mounts()
    kwargs.setdefault("timeout", settings.transport_config.timeout)
    return httpx.AsyncClient(mounts=mounts, follow_redirects=follow_redirects, **kwargs)


def get_origin(url: str) -> str:
    """Return scheme://host[:port] of a URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def browser_headers(url: str, **extra: str) -> dict:
    """Headers that look like a browser navigating from the target's own origin."""
    headers = {
        "user-agent": settings.user_agent,
        "referer": get_origin(url) + "/",
    }
    headers.update(extra)
    return headers


@retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
    retry=retry_if_exception_type(DownloadError),
    reraise=True,
)
async def fetch_with_retry(client, method, url, headers, follow_redirects=True, **kwargs):
    """
    Fetch a URL, retrying once on timeouts and server errors.

    Args:
        client (httpx.AsyncClient): HTTP client to use for the request.
        method (str): HTTP method (e.g., GET, HEAD).
        url (str): Target URL.
        headers (dict): Request headers.
        follow_redirects (bool): Whether to follow redirects.
        **kwargs: Additional request arguments.

    Returns:
        httpx.Response: HTTP response.

    Raises:
        DownloadError: For timeouts and 5xx responses, after retries.
        httpx.HTTPStatusError: For 4xx responses, which are not retried.
    """
    try:
        response = await client.request(method, url, headers=headers, follow_redirects=follow_redirects, **kwargs)
        response.raise_for_status()
        return response
    except httpx.TimeoutException:
        logger.warning(f"Timeout while fetching {url}")
        raise DownloadError(504, f"Timeout while fetching {url}")
    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error {e.response.status_code} while fetching {url}")
        if e.response.status_code < 500:
            raise e
        raise DownloadError(e.response.status_code, f"HTTP error {e.response.status_code} while fetching {url}")
