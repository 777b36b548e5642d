import asyncio
import logging
import time
from typing import List, Optional, Sequence

import httpx

from streamflow.configs import settings
from streamflow.const import REACHABLE_STATUS_CODES
from streamflow.providers import metrics
from streamflow.providers.registry import ProviderDescriptor, priority_of
from streamflow.schemas import MediaType, ProbeOutcome, ProbeRanking
from streamflow.utils.http_utils import browser_headers, create_httpx_client

logger = logging.getLogger(__name__)


def rank_outcomes(outcomes: Sequence[ProbeOutcome]) -> Optional[ProbeOutcome]:
    """Pick the reachable outcome with the lowest latency; ties go to the higher registry priority."""
    reachable = [outcome for outcome in outcomes if outcome.reachable]
    if not reachable:
        return None
    return min(reachable, key=lambda outcome: (outcome.response_time_ms, priority_of(outcome.provider_id)))


class ProbeService:
    """Races providers for reachability and ranks them by response time."""

    def __init__(self, timeout: Optional[float] = None, record_metrics: bool = True):
        self.timeout = timeout if timeout is not None else settings.probe_timeout
        self.record_metrics = record_metrics

    async def probe(
        self,
        candidates: Sequence[ProviderDescriptor],
        media_id: int,
        media_type: MediaType = MediaType.MOVIE,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> ProbeRanking:
        """
        Probe every candidate concurrently and build the ranking.

        A provider that times out or fails is recorded as unreachable; it never
        fails or delays the ranking beyond its own timeout.
        """
        media_type = MediaType(media_type)
        async with create_httpx_client() as client:
            outcomes: List[ProbeOutcome] = await asyncio.gather(
                *(self._probe_provider(client, provider, media_id, media_type, season, episode) for provider in candidates)
            )

        fastest = rank_outcomes(outcomes)
        if fastest:
            logger.info(f"Fastest provider for {media_type.value}:{media_id} is {fastest.provider_id} ({fastest.response_time_ms}ms)")
        else:
            logger.warning(f"No reachable provider for {media_type.value}:{media_id} among {len(outcomes)} candidates")

        return ProbeRanking(media_id=media_id, fastest_provider=fastest, all_outcomes=outcomes)

    async def _probe_provider(
        self,
        client: httpx.AsyncClient,
        provider: ProviderDescriptor,
        media_id: int,
        media_type: MediaType,
        season: Optional[int],
        episode: Optional[int],
    ) -> ProbeOutcome:
        url = provider.build_url(media_id, media_type, season, episode)
        start_time = time.perf_counter()
        status_code = None
        error_reason = None

        try:
            status_code = await asyncio.wait_for(self._send_probe(client, url), timeout=self.timeout)
            reachable = 200 <= status_code < 300 or status_code in REACHABLE_STATUS_CODES
            if not reachable:
                error_reason = f"HTTP {status_code}"
        except asyncio.TimeoutError:
            reachable = False
            error_reason = "Timeout"
        except httpx.HTTPError as e:
            reachable = False
            error_reason = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
        except Exception as e:
            logger.exception(f"Unexpected error while probing {provider.id}: {e}")
            reachable = False
            error_reason = str(e) or type(e).__name__

        response_time_ms = round((time.perf_counter() - start_time) * 1000)

        if self.record_metrics:
            if reachable:
                metrics.record_success(provider.id, response_time_ms)
            else:
                metrics.record_failure(provider.id)

        logger.debug(f"Probe {provider.id}: reachable={reachable} in {response_time_ms}ms ({error_reason or status_code})")
        return ProbeOutcome(
            provider_id=provider.id,
            provider_name=provider.name,
            url=url,
            reachable=reachable,
            response_time_ms=response_time_ms,
            status_code=status_code,
            error_reason=error_reason,
        )

    async def _send_probe(self, client: httpx.AsyncClient, url: str) -> int:
        """Issue the lightweight reachability request and return its status code."""
        response = await client.head(url, headers=browser_headers(url), timeout=self.timeout)
        return response.status_code
