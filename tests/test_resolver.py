import asyncio

import httpx
import pytest
import respx

from streamflow.configs import settings
from streamflow.providers.registry import TIER_CONFIGS, ProviderTier, find_provider
from streamflow.resolver import (
    build_embed_target_url,
    ranking_cache_key,
    resolution_cache_key,
)
from streamflow.schemas import MediaKind, MediaType, ProbeOutcome, ProbeRanking
from streamflow.utils.html_utils import GUARD_MARKER

WTF_1 = "https://vidsrc.wtf/api/1/movie/?id=550"
XYZ = "https://vidsrc.xyz/embed/movie/550"


def mock_all_extraction_providers_down():
    respx.route(host="vidsrc.wtf").respond(500)
    respx.route(host="vidsrc.xyz").respond(404)
    respx.route(host="vidsrc.cc").respond(503)


def test_cache_keys():
    assert resolution_cache_key("vidsrc-xyz", 550, None, None) == "vidsrc-xyz|550|movie|0"
    assert resolution_cache_key("vidsrc-xyz", 1399, 1, 2) == "vidsrc-xyz|1399|1|2"
    assert ranking_cache_key(550) == "movie:550"
    assert ranking_cache_key(1399, "tv") == "tv:1399"


@pytest.mark.parametrize(
    "base,expected",
    [
        ("https://vidsrc.xyz/embed", "https://vidsrc.xyz/embed/movie/tt0137523"),
        ("https://vidsrc.xyz/embed/movie/", "https://vidsrc.xyz/embed/movie/tt0137523"),
        ("https://vidsrc.cc", "https://vidsrc.cc/v2/embed/movie/tt0137523"),
        ("https://vidsrc.cc/v2/embed", "https://vidsrc.cc/v2/embed/movie/tt0137523"),
        ("https://vidsrc.cc/v2/embed/movie", "https://vidsrc.cc/v2/embed/movie/tt0137523"),
        ("https://player.example/e/{id}?autoplay=1", "https://player.example/e/tt0137523?autoplay=1"),
    ],
)
def test_build_embed_target_url(base, expected):
    assert build_embed_target_url(base, "tt0137523") == expected


class TestExtract:
    @respx.mock
    @pytest.mark.asyncio
    async def test_first_provider_success(self, resolver):
        respx.get(WTF_1).respond(200, json={"url": "https://cdn.x/a.m3u8"})

        result = await resolver.extract(550)

        assert result.success
        assert result.video_url == "https://cdn.x/a.m3u8"
        assert result.media_kind == MediaKind.HLS
        assert result.provider_id == "vidsrc-wtf-1"

    @respx.mock
    @pytest.mark.asyncio
    async def test_concurrent_requests_fetch_upstream_once(self, resolver):
        route = respx.get(WTF_1).respond(200, json={"url": "https://cdn.x/a.m3u8"})

        results = await asyncio.gather(*(resolver.extract(550) for _ in range(5)))

        assert route.call_count == 1
        assert {result.video_url for result in results} == {"https://cdn.x/a.m3u8"}

    @respx.mock
    @pytest.mark.asyncio
    async def test_every_provider_failing_reports_last_error(self, resolver):
        mock_all_extraction_providers_down()

        result = await resolver.extract(550)

        assert not result.success
        assert result.error == "HTTP 503"
        assert result.provider_id is None
        assert len(resolver.resolution_cache) == 0

    @respx.mock
    @pytest.mark.asyncio
    async def test_falls_through_to_next_provider(self, resolver):
        respx.route(host="vidsrc.wtf").respond(200, json={"error": "Not available"})
        respx.get(XYZ).respond(200, text='<iframe src="https://player.x/e/abc"></iframe>')

        result = await resolver.extract(550)

        assert result.provider_id == "vidsrc-xyz"
        assert result.media_kind == MediaKind.IFRAME

    @respx.mock
    @pytest.mark.asyncio
    async def test_repeated_request_is_served_from_cache_and_verified(self, resolver):
        route = respx.get(WTF_1).respond(200, json={"url": "https://cdn.x/a.m3u8"})

        first = await resolver.extract(550)
        second = await resolver.extract(550)

        assert first == second
        assert route.call_count == 1
        entry = resolver.resolution_cache.peek(resolution_cache_key("vidsrc-wtf-1", 550, None, None))
        assert entry.verified

    @respx.mock
    @pytest.mark.asyncio
    async def test_requested_provider_is_the_only_candidate(self, resolver):
        wtf = respx.route(host="vidsrc.wtf").respond(200, json={"url": "https://cdn.x/a.m3u8"})
        respx.get("https://vidsrc.to/embed/movie/550").respond(200, text='<video src="https://cdn.y/b.mp4"></video>')

        result = await resolver.extract(550, provider_id="vidsrc-to")

        assert result.provider_id == "vidsrc-to"
        assert result.media_kind == MediaKind.MP4
        assert not wtf.called

    @respx.mock
    @pytest.mark.asyncio
    async def test_requested_provider_failure_is_not_retried_elsewhere(self, resolver):
        respx.get("https://vidsrc.to/embed/movie/550").respond(404)

        result = await resolver.extract(550, provider_id="vidsrc-to")

        assert not result.success
        assert result.error == "HTTP 404"

    @respx.mock
    @pytest.mark.asyncio
    async def test_unknown_provider_falls_back_to_the_list(self, resolver):
        respx.get(WTF_1).respond(200, json={"url": "https://cdn.x/a.m3u8"})

        result = await resolver.extract(550, provider_id="nope")

        assert result.provider_id == "vidsrc-wtf-1"

    @respx.mock
    @pytest.mark.asyncio
    async def test_probed_provider_is_tried_first(self, resolver):
        wtf = respx.route(host="vidsrc.wtf").respond(200, json={"url": "https://cdn.x/a.m3u8"})
        respx.get(XYZ).respond(200, text='<video src="https://cdn.y/b.mp4"></video>')
        fastest = ProbeOutcome(
            provider_id="vidsrc-xyz", provider_name="VidSrc.xyz", url=XYZ, reachable=True, response_time_ms=80
        )
        resolver.ranking_cache.set(
            ranking_cache_key(550), ProbeRanking(media_id=550, fastest_provider=fastest, all_outcomes=[fastest])
        )

        result = await resolver.extract(550)

        assert result.provider_id == "vidsrc-xyz"
        assert not wtf.called

    @respx.mock
    @pytest.mark.asyncio
    async def test_malformed_markup_moves_on_to_the_next_provider(self, resolver):
        respx.route(host="vidsrc.wtf").respond(404)
        respx.get(XYZ).respond(200, text='<video src="x://[bad"></video>')
        respx.get("https://vidsrc.cc/v2/embed/movie/550").respond(200, text='<video src="https://cdn.y/b.mp4"></video>')

        result = await resolver.extract(550)

        assert result.success
        assert result.provider_id == "vidsrc-cc"
        assert result.video_url == "https://cdn.y/b.mp4"

    @respx.mock
    @pytest.mark.asyncio
    async def test_primary_tier_retries_network_errors(self, resolver):
        route = respx.get(WTF_1).mock(
            side_effect=[httpx.ConnectError("reset"), httpx.Response(200, json={"url": "https://cdn.x/a.m3u8"})]
        )

        result = await resolver.extract(550)

        assert result.provider_id == "vidsrc-wtf-1"
        assert route.call_count == TIER_CONFIGS[ProviderTier.PRIMARY].retry_count

    @respx.mock
    @pytest.mark.asyncio
    async def test_tv_episode_url(self, resolver):
        route = respx.get("https://vidsrc.wtf/api/1/tv/?id=1399&s=1&e=2").respond(
            200, json={"url": "https://cdn.x/got.m3u8"}
        )

        result = await resolver.extract(1399, MediaType.TV, season=1, episode=2)

        assert result.success
        assert route.called


class TestProbe:
    @pytest.mark.asyncio
    async def test_probe_result_is_cached(self, resolver, monkeypatch):
        calls = []

        async def send_probe(client, url):
            calls.append(url)
            return 200

        monkeypatch.setattr(resolver.prober, "_send_probe", send_probe)

        first = await resolver.probe(550)
        second = await resolver.probe(550)

        assert first.fastest_provider is not None
        assert second is first
        assert len(calls) == settings.probe_top_providers
        assert resolver.get_cached_ranking(550) is first

    @pytest.mark.asyncio
    async def test_explicit_candidates_run_their_own_probe(self, resolver, monkeypatch):
        calls = []

        async def send_probe(client, url):
            calls.append(url)
            return 200

        monkeypatch.setattr(resolver.prober, "_send_probe", send_probe)

        default = await resolver.probe(550)
        explicit = await resolver.probe(550, candidates=[find_provider("vidsrc-cc")])

        assert explicit is not default
        assert [outcome.provider_id for outcome in explicit.all_outcomes] == ["vidsrc-cc"]
        assert calls[-1] == "https://vidsrc.cc/v2/embed/movie/550"
        assert resolver.get_cached_ranking(550) is explicit

    @pytest.mark.asyncio
    async def test_probe_without_reachable_provider_is_not_cached(self, resolver, monkeypatch):
        async def send_probe(client, url):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(resolver.prober, "_send_probe", send_probe)

        ranking = await resolver.probe(550)

        assert ranking.fastest_provider is None
        assert resolver.get_cached_ranking(550) is None


class TestProxyEmbed:
    EMBED = "https://vidsrc.xyz/embed/movie/tt0137523"

    @respx.mock
    @pytest.mark.asyncio
    async def test_page_is_sanitized_and_cached(self, resolver):
        route = respx.get(self.EMBED).respond(200, text="<html><head><title>x</title></head><body></body></html>")

        page = await resolver.proxy_embed("tt0137523")
        again = await resolver.proxy_embed("tt0137523")

        assert page.status == 200
        assert page.origin == "https://vidsrc.xyz"
        assert '<base href="https://vidsrc.xyz/">' in page.html
        assert page.html.count(GUARD_MARKER) == 1
        assert again is page
        assert route.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_upstream_not_found_is_not_cached(self, resolver):
        route = respx.get(self.EMBED).respond(404)

        page = await resolver.proxy_embed("tt0137523")
        await resolver.proxy_embed("tt0137523")

        assert page.status == 404
        assert page.html == "Stream not found"
        assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_network_error_propagates(self, resolver):
        respx.get(self.EMBED).mock(side_effect=httpx.ConnectError("failed"))

        with pytest.raises(httpx.ConnectError):
            await resolver.proxy_embed("tt0137523")
