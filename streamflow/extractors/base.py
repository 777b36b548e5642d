from abc import ABC, abstractmethod
from typing import Dict, Optional
from urllib.parse import urljoin

import asyncio
import html
import httpx
import logging

from streamflow.configs import settings
from streamflow.schemas import ExtractionResult, MediaKind
from streamflow.utils.http_utils import DownloadError, browser_headers, create_httpx_client

logger = logging.getLogger(__name__)


class ExtractorError(Exception):
    """Base exception for all extractors."""
    pass


def classify_media_kind(url: str, hint: Optional[MediaKind] = None) -> MediaKind:
    """
    Classify a video URL by its extension, falling back to the hint of the matching rule.

    `.m3u8` is HLS, `.mpd` is DASH, `.mp4` is a direct file; anything else is an embeddable page.
    """
    lowered = url.lower()
    if ".m3u8" in lowered:
        return MediaKind.HLS
    if ".mpd" in lowered:
        return MediaKind.DASH
    if ".mp4" in lowered:
        return MediaKind.MP4
    return hint or MediaKind.IFRAME


def normalize_video_url(url: str, page_url: Optional[str] = None) -> str:
    """
    Unescape markup entities, upgrade protocol-relative URLs and anchor relative ones to the page.

    Raises:
        ValueError: If a relative URL cannot be parsed, e.g. a broken IPv6 host.
    """
    url = html.unescape(url.strip())
    if url.startswith("//"):
        return "https:" + url
    if page_url and not url.startswith(("http://", "https://")):
        return urljoin(page_url, url)
    return url


class BaseExtractor(ABC):
    """Base class for provider extraction strategies.

    A strategy performs one fetch of a provider URL and turns the response into an
    ExtractionResult. Upstream failures never escape `extract`: HTTP errors, network
    errors and unparsable payloads all come back as a failed result.
    """

    def __init__(self, provider_id: str, request_headers: Optional[dict] = None, retries: int = 1):
        self.provider_id = provider_id
        self.retries = max(1, retries)
        self.base_headers = {
            "user-agent": settings.user_agent,
        }
        self.base_headers.update(request_headers or {})

    async def _make_request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        backoff_factor: float = 0.5,
        **kwargs,
    ) -> httpx.Response:
        """
        Make an HTTP request with a bounded timeout.

        Parameters
        ----------
        timeout : float | None
            Seconds to wait for the request. Defaults to settings.extraction_timeout.
        retries : int | None
            Number of attempts for transient network errors. Defaults to the extractor's own count.
        backoff_factor : float
            Base for exponential backoff between retries.

        Raises
        ------
        DownloadError
            On a non-2xx response (not retried).
        ExtractorError
            When every attempt failed with a network error.
        """
        retries = retries or self.retries
        attempt = 0
        last_exc = None

        request_headers = browser_headers(url)
        request_headers.update(self.base_headers)
        if headers:
            request_headers.update(headers)

        timeout_cfg = httpx.Timeout(timeout or settings.extraction_timeout)

        while attempt < retries:
            try:
                async with create_httpx_client(timeout=timeout_cfg) as client:
                    response = await client.request(method, url, headers=request_headers, **kwargs)
                    try:
                        response.raise_for_status()
                    except httpx.HTTPStatusError as e:
                        logger.debug(
                            "HTTPStatusError for %s (status=%s) -- body preview: %s",
                            url,
                            e.response.status_code,
                            e.response.text[:500],
                        )
                        raise DownloadError(
                            e.response.status_code, f"HTTP error {e.response.status_code} while requesting {url}"
                        )
                    return response

            except DownloadError:
                raise
            except httpx.HTTPError as e:
                last_exc = e
                attempt += 1
                if attempt < retries:
                    sleep_for = backoff_factor * (2 ** (attempt - 1))
                    logger.warning(
                        "Transient network error (attempt %s/%s) for %s: %s, retrying in %.1fs",
                        attempt,
                        retries,
                        url,
                        e,
                        sleep_for,
                    )
                    await asyncio.sleep(sleep_for)
            except Exception as e:
                logger.exception("Unhandled exception while requesting %s: %s", url, e)
                raise ExtractorError(f"Request failed for URL {url}: {e}")

        logger.warning("Request failed for %s: %r", url, last_exc)
        raise ExtractorError(f"Request failed: {type(last_exc).__name__}")

    async def extract(self, url: str) -> ExtractionResult:
        """Extract a playable URL from the provider page at `url`."""
        try:
            return await self._extract(url)
        except DownloadError as e:
            logger.info(f"[{self.provider_id}] HTTP {e.status_code} from {url}")
            return ExtractionResult.failure(self.provider_id, f"HTTP {e.status_code}")
        except ExtractorError as e:
            logger.info(f"[{self.provider_id}] Extraction failed for {url}: {e}")
            return ExtractionResult.failure(self.provider_id, str(e))
        except Exception as e:
            logger.exception(f"[{self.provider_id}] Unexpected error while extracting {url}: {e}")
            return ExtractionResult.failure(self.provider_id, f"Unexpected error: {type(e).__name__}")

    @abstractmethod
    async def _extract(self, url: str) -> ExtractionResult:
        """Fetch `url` and build the result; may raise DownloadError or ExtractorError."""
        pass
