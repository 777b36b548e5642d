import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx

from streamflow.configs import settings
from streamflow.extractors.factory import ExtractorFactory
from streamflow.probe.service import ProbeService
from streamflow.providers import metrics
from streamflow.providers.registry import TIER_CONFIGS, ProviderDescriptor, extraction_candidates, find_provider
from streamflow.schemas import ExtractionResult, MediaType, ProbeRanking
from streamflow.utils.cache_utils import (
    TTLCache,
    build_embed_cache,
    build_ranking_cache,
    build_resolution_cache,
)
from streamflow.utils.html_utils import sanitize_embed_html
from streamflow.utils.http_utils import (
    DownloadError,
    browser_headers,
    create_httpx_client,
    fetch_with_retry,
    get_origin,
)
from streamflow.utils.request_coordinator import RequestCoordinator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbedPage:
    status: int
    html: str
    origin: str


def resolution_cache_key(provider_id: str, media_id: int, season: Optional[int], episode: Optional[int]) -> str:
    return f"{provider_id}|{media_id}|{season if season is not None else 'movie'}|{episode if episode is not None else 0}"


def ranking_cache_key(media_id: int, media_type: MediaType = MediaType.MOVIE) -> str:
    return f"{MediaType(media_type).value}:{media_id}"


def build_embed_target_url(base: str, movie_id: str) -> str:
    """
    Build the embed page URL of a movie from the configured base.

    Supports template bases such as https://vidsrc.cc/v2/embed/movie/{id}; vidsrc.cc only
    serves movies under its embed paths.
    """
    clean_base = base.rstrip("/")

    if "{id}" in clean_base:
        return clean_base.replace("{id}", movie_id)

    if "vidsrc.cc" in clean_base:
        if "/v2/embed/movie" in clean_base or "/embed/movie" in clean_base:
            return f"{clean_base}/{movie_id}"
        if "/v2/embed" in clean_base or "/embed" in clean_base:
            return f"{clean_base}/movie/{movie_id}"
        return f"{clean_base}/v2/embed/movie/{movie_id}"

    if clean_base.endswith("/movie"):
        return f"{clean_base}/{movie_id}"
    return f"{clean_base}/movie/{movie_id}"


class StreamResolver:
    """Resolves playable streams for media items across the provider registry.

    Holds the resolution, ranking and embed caches together with the
    coordinators that deduplicate upstream work on them.
    """

    def __init__(
        self,
        resolution_cache: Optional[TTLCache] = None,
        ranking_cache: Optional[TTLCache] = None,
        embed_cache: Optional[TTLCache] = None,
        prober: Optional[ProbeService] = None,
        debounce_ms: Optional[int] = None,
    ):
        debounce_ms = settings.stream_api_debounce_ms if debounce_ms is None else debounce_ms
        self.resolution_cache = resolution_cache or build_resolution_cache()
        self.ranking_cache = ranking_cache or build_ranking_cache()
        self.embed_cache = embed_cache or build_embed_cache()
        self.prober = prober or ProbeService()
        self.resolutions = RequestCoordinator(self.resolution_cache, debounce_ms)
        self.rankings = RequestCoordinator(self.ranking_cache, debounce_ms)
        self.embeds = RequestCoordinator(self.embed_cache, debounce_ms)

    def _candidates(self, media_id: int, media_type: MediaType, provider_id: Optional[str]) -> List[ProviderDescriptor]:
        if provider_id:
            provider = find_provider(provider_id)
            if provider:
                return [provider]
            logger.warning(f'Provider "{provider_id}" not found, falling back to provider list')

        candidates = extraction_candidates(settings.extraction_max_tier)
        if provider_id:
            return candidates

        ranking = self.get_cached_ranking(media_id, media_type)
        fastest = ranking.fastest_provider if ranking else None
        if fastest and any(p.id == fastest.provider_id for p in candidates):
            logger.info(f"Trying probed provider {fastest.provider_id} first for {media_type.value}:{media_id}")
            candidates.sort(key=lambda p: p.id != fastest.provider_id)
        return candidates

    async def _extract_with(self, provider: ProviderDescriptor, url: str) -> ExtractionResult:
        extractor = ExtractorFactory.get_extractor(provider.id, url, retries=TIER_CONFIGS[provider.tier].retry_count)
        start_time = time.perf_counter()
        result = await extractor.extract(url)
        if result.success:
            metrics.record_success(provider.id, round((time.perf_counter() - start_time) * 1000))
        else:
            metrics.record_failure(provider.id)
        return result

    async def extract(
        self,
        media_id: int,
        media_type: MediaType = MediaType.MOVIE,
        season: Optional[int] = None,
        episode: Optional[int] = None,
        provider_id: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Return the first successful extraction among the candidate providers.

        Candidates are the requested provider, or the extraction providers in priority
        order when none (or an unknown one) was requested. Each attempt goes through the
        resolution cache and its coordinator; failures are never cached.

        Returns:
            ExtractionResult: The winning result, or a failure carrying the last provider error.
        """
        media_type = MediaType(media_type)
        if media_type == MediaType.MOVIE:
            season = episode = None

        last_error = "No providers available"
        for provider in self._candidates(media_id, media_type, provider_id):
            url = provider.build_url(media_id, media_type, season, episode)
            key = resolution_cache_key(provider.id, media_id, season, episode)
            logger.info(f"Trying provider {provider.id} for {key}")

            result = await self.resolutions.resolve(
                key,
                lambda provider=provider, url=url: self._extract_with(provider, url),
                is_success=lambda r: r.success and bool(r.video_url),
            )
            if result.success and result.video_url:
                return result

            last_error = result.error or "Unknown error"

        logger.warning(f"All providers failed for {media_type.value}:{media_id}: {last_error}")
        return ExtractionResult.failure(None, last_error)

    async def probe(
        self,
        media_id: int,
        media_type: MediaType = MediaType.MOVIE,
        season: Optional[int] = None,
        episode: Optional[int] = None,
        candidates: Optional[Sequence[ProviderDescriptor]] = None,
    ) -> ProbeRanking:
        """
        Race the candidates and cache a ranking that found a provider.

        Without explicit candidates the top probing providers are raced, and the call is
        deduplicated and served from the ranking cache under `<type>:<mediaId>`. An explicit
        candidate set always runs its own probe; a ranking it produces with a reachable
        provider replaces the cached one.
        """
        media_type = MediaType(media_type)
        key = ranking_cache_key(media_id, media_type)

        if candidates is not None:
            ranking = await self.prober.probe(candidates, media_id, media_type, season, episode)
            if ranking.fastest_provider is not None:
                self.ranking_cache.set(key, ranking)
            return ranking

        candidates = metrics.get_top_providers_for_probing(settings.probe_top_providers)
        return await self.rankings.resolve(
            key,
            lambda: self.prober.probe(candidates, media_id, media_type, season, episode),
            is_success=lambda ranking: ranking.fastest_provider is not None,
        )

    def get_cached_ranking(self, media_id: int, media_type: MediaType = MediaType.MOVIE) -> Optional[ProbeRanking]:
        entry = self.ranking_cache.peek(ranking_cache_key(media_id, media_type))
        return entry.value if entry else None

    async def proxy_embed(self, movie_id: str) -> EmbedPage:
        """
        Fetch and sanitize the embed page of a movie.

        Raises:
            httpx.HTTPError, DownloadError: On network failures; the caller maps them to a 500.
        """
        target_url = build_embed_target_url(settings.embed_base_url, movie_id)
        return await self.embeds.resolve(
            target_url,
            lambda: self._fetch_embed(target_url),
            is_success=lambda page: page.status == 200,
        )

    def embed_cache_seconds(self) -> int:
        return int(settings.embed_cache_ttl_ms / 1000)

    @staticmethod
    async def _fetch_embed(target_url: str) -> EmbedPage:
        origin = get_origin(target_url)
        async with create_httpx_client() as client:
            try:
                response = await fetch_with_retry(client, "GET", target_url, browser_headers(target_url))
            except httpx.HTTPStatusError as e:
                logger.warning(f"Embed upstream answered {e.response.status_code} for {target_url}")
                return EmbedPage(status=404, html="Stream not found", origin=origin)
            except DownloadError as e:
                if e.status_code == 504:
                    raise
                logger.warning(f"Embed upstream failed for {target_url}: {e}")
                return EmbedPage(status=404, html="Stream not found", origin=origin)

        return EmbedPage(status=200, html=sanitize_embed_html(response.text, origin), origin=origin)


stream_resolver = StreamResolver()


def get_stream_resolver() -> StreamResolver:
    return stream_resolver
