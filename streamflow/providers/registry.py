"""
Static provider catalog.

Providers are grouped in tiers and listed in priority order:

- Tier 1 (Primary): VidSrc.wtf API endpoints, answer with JSON and usually a direct stream.
- Tier 2 (Stable): VidSrc.xyz and VidSrc.cc embed pages.
- Tier 3 (Fallback): other embed aggregators, used for probing and explicit requests.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional

from streamflow.schemas import MediaType


class ProviderTier(IntEnum):
    PRIMARY = 1
    STABLE = 2
    FALLBACK = 3


@dataclass(frozen=True)
class TierConfig:
    tier: ProviderTier
    name: str
    description: str
    retry_count: int


@dataclass(frozen=True)
class ProviderDescriptor:
    id: str
    name: str
    tier: ProviderTier
    movie_url_template: str
    tv_url_template: str

    def build_url(
        self,
        media_id: int,
        media_type: MediaType = MediaType.MOVIE,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> str:
        """
        Build the provider URL for a movie or a TV episode.

        Raises:
            ValueError: If a TV URL is requested without season and episode.
        """
        if MediaType(media_type) == MediaType.TV:
            if season is None or episode is None:
                raise ValueError("season and episode are required for tv")
            return self.tv_url_template.format(id=media_id, season=season, episode=episode)
        return self.movie_url_template.format(id=media_id)


TIER_CONFIGS: Dict[ProviderTier, TierConfig] = {
    ProviderTier.PRIMARY: TierConfig(
        tier=ProviderTier.PRIMARY,
        name="Primary (Fastest)",
        description="VidSrc.wtf API endpoints - fastest response times",
        retry_count=2,
    ),
    ProviderTier.STABLE: TierConfig(
        tier=ProviderTier.STABLE,
        name="Stable Alternatives",
        description="VidSrc.xyz, VidSrc.cc - reliable alternatives",
        retry_count=1,
    ),
    ProviderTier.FALLBACK: TierConfig(
        tier=ProviderTier.FALLBACK,
        name="Fallback Aggregator",
        description="MultiEmbed and other fallback providers",
        retry_count=1,
    ),
}


def _provider(provider_id: str, name: str, tier: ProviderTier, movie: str, tv: str) -> ProviderDescriptor:
    return ProviderDescriptor(id=provider_id, name=name, tier=tier, movie_url_template=movie, tv_url_template=tv)


PROVIDERS: tuple[ProviderDescriptor, ...] = (
    _provider(
        "vidsrc-wtf-1",
        "VidSrc.wtf (API 1)",
        ProviderTier.PRIMARY,
        "https://vidsrc.wtf/api/1/movie/?id={id}",
        "https://vidsrc.wtf/api/1/tv/?id={id}&s={season}&e={episode}",
    ),
    _provider(
        "vidsrc-wtf-2",
        "VidSrc.wtf (API 2)",
        ProviderTier.PRIMARY,
        "https://vidsrc.wtf/api/2/movie/?id={id}&color=8B5CF6",
        "https://vidsrc.wtf/api/2/tv/?id={id}&s={season}&e={episode}&color=8B5CF6",
    ),
    _provider(
        "vidsrc-wtf-3",
        "VidSrc.wtf (API 3)",
        ProviderTier.PRIMARY,
        "https://vidsrc.wtf/api/3/movie/?id={id}",
        "https://vidsrc.wtf/api/3/tv/?id={id}&s={season}&e={episode}",
    ),
    _provider(
        "vidsrc-wtf-4",
        "VidSrc.wtf (API 4)",
        ProviderTier.PRIMARY,
        "https://vidsrc.wtf/api/4/movie/?id={id}",
        "https://vidsrc.wtf/api/4/tv/?id={id}&s={season}&e={episode}",
    ),
    _provider(
        "vidsrc-xyz",
        "VidSrc.xyz",
        ProviderTier.STABLE,
        "https://vidsrc.xyz/embed/movie/{id}",
        "https://vidsrc.xyz/embed/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "vidsrc-cc",
        "VidSrc.cc",
        ProviderTier.STABLE,
        "https://vidsrc.cc/v2/embed/movie/{id}",
        "https://vidsrc.cc/v2/embed/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "vidsrc-to",
        "VidSrc.to",
        ProviderTier.FALLBACK,
        "https://vidsrc.to/embed/movie/{id}",
        "https://vidsrc.to/embed/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "vidzee",
        "Vidzee",
        ProviderTier.FALLBACK,
        "https://vidzee.wtf/movie/{id}",
        "https://vidzee.wtf/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "vidrock",
        "VidRock",
        ProviderTier.FALLBACK,
        "https://vidrock.pro/e/movie/{id}",
        "https://vidrock.pro/e/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "vidnest",
        "Vidnest RiveEmbed",
        ProviderTier.FALLBACK,
        "https://vidnest.stream/movie/{id}",
        "https://vidnest.stream/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "smashy",
        "SmashyStream",
        ProviderTier.FALLBACK,
        "https://player.smashy.stream/movie/{id}",
        "https://player.smashy.stream/tv/{id}?s={season}&e={episode}",
    ),
    _provider(
        "111movies",
        "111Movies",
        ProviderTier.FALLBACK,
        "https://111movies.com/movie/{id}",
        "https://111movies.com/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "videasy",
        "Videasy",
        ProviderTier.FALLBACK,
        "https://player.videasy.net/movie/{id}",
        "https://player.videasy.net/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "vidlink",
        "VidLink",
        ProviderTier.FALLBACK,
        "https://vidlink.pro/movie/{id}",
        "https://vidlink.pro/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "vidfast",
        "VidFast",
        ProviderTier.FALLBACK,
        "https://vidfast.pro/movie/{id}",
        "https://vidfast.pro/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "embed-su",
        "Embed.su",
        ProviderTier.FALLBACK,
        "https://embed.su/embed/movie/{id}",
        "https://embed.su/embed/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "2embed",
        "2Embed",
        ProviderTier.FALLBACK,
        "https://www.2embed.cc/embed/movie?tmdb={id}",
        "https://www.2embed.cc/embedtv/{id}&s={season}&e={episode}",
    ),
    _provider(
        "moviesapi",
        "MoviesAPI",
        ProviderTier.FALLBACK,
        "https://moviesapi.club/movie/{id}",
        "https://moviesapi.club/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "autoembed",
        "AutoEmbed",
        ProviderTier.FALLBACK,
        "https://player.autoembed.cc/embed/movie/{id}",
        "https://player.autoembed.cc/embed/tv/{id}/{season}/{episode}",
    ),
    _provider(
        "multiembed",
        "MultiEmbed",
        ProviderTier.FALLBACK,
        "https://multiembed.mov/?video_id={id}&tmdb=1",
        "https://multiembed.mov/?video_id={id}&tmdb=1&s={season}&e={episode}",
    ),
    _provider(
        "primewire",
        "PrimeWire",
        ProviderTier.FALLBACK,
        "https://primewire.tf/embed/movie?tmdb={id}",
        "https://primewire.tf/embed/tv?tmdb={id}&season={season}&episode={episode}",
    ),
    _provider(
        "warezcdn",
        "WarezCDN",
        ProviderTier.FALLBACK,
        "https://embed.warezcdn.com/filme/{id}",
        "https://embed.warezcdn.com/serie/{id}/{season}/{episode}",
    ),
)

# Sorting is stable, so declaration order is kept inside a tier.
_ORDERED: tuple[ProviderDescriptor, ...] = tuple(sorted(PROVIDERS, key=lambda p: p.tier))
_BY_ID: Dict[str, ProviderDescriptor] = {p.id: p for p in _ORDERED}
_PRIORITY: Dict[str, int] = {p.id: index for index, p in enumerate(_ORDERED)}


def list_providers() -> List[ProviderDescriptor]:
    """Return all providers in priority order, tier 1 first."""
    return list(_ORDERED)


def find_provider(provider_id: Optional[str]) -> Optional[ProviderDescriptor]:
    if not provider_id:
        return None
    return _BY_ID.get(provider_id)


def priority_of(provider_id: str) -> int:
    """Registry position of a provider; unknown ids sort last."""
    return _PRIORITY.get(provider_id, len(_ORDERED))


def get_providers_by_tier(tier: int) -> List[ProviderDescriptor]:
    return [p for p in _ORDERED if p.tier == tier]


def extraction_candidates(max_tier: int) -> List[ProviderDescriptor]:
    """Providers the extraction endpoint walks through when no provider is requested."""
    return [p for p in _ORDERED if p.tier <= max_tier]
