import logging
import re
from dataclasses import dataclass
from typing import Optional

from streamflow.const import HEURISTIC_PLAYER_HOSTS
from streamflow.extractors.base import BaseExtractor, classify_media_kind, normalize_video_url
from streamflow.schemas import ExtractionResult, MediaKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractorRule:
    """A named pattern that recognises one way of embedding a video in a page.

    The first capture group of `pattern` is the video URL.
    """

    name: str
    pattern: re.Pattern
    kind_hint: Optional[MediaKind] = None
    requires_absolute: bool = False
    needs_verification: bool = False

    def match(self, markup: str, page_url: str) -> Optional[str]:
        found = self.pattern.search(markup)
        if not found:
            return None
        raw = found.group(1)
        if self.requires_absolute and not raw.startswith(("http://", "https://", "//")):
            return None
        try:
            return normalize_video_url(raw, page_url)
        except ValueError:
            logger.debug(f"Rule '{self.name}' matched an unparsable URL: {raw!r}")
            return None


EMBED_RULES: tuple[ExtractorRule, ...] = (
    ExtractorRule(
        name="video-src",
        pattern=re.compile(r"""<video[^>]+src=["']([^"']+)["']""", re.IGNORECASE),
        kind_hint=MediaKind.MP4,
    ),
    ExtractorRule(
        name="source-hls",
        pattern=re.compile(
            r"""<source[^>]+src=["']([^"']+)["'][^>]+type=["']application/x-mpegURL["']""", re.IGNORECASE
        ),
        kind_hint=MediaKind.HLS,
    ),
    ExtractorRule(
        name="data-src-hls",
        pattern=re.compile(r"""data-src=["']([^"']+\.m3u8[^"']*)["']""", re.IGNORECASE),
        kind_hint=MediaKind.HLS,
    ),
    ExtractorRule(
        name="script-variable",
        pattern=re.compile(
            r"""(?:videoUrl|video_src|streamUrl|file_name|file|source)\s*=\s*["']([^"']+\.(?:mp4|m3u8)[^"']*)["']""",
            re.IGNORECASE,
        ),
    ),
    ExtractorRule(
        name="iframe-src",
        pattern=re.compile(r"""<iframe[^>]+src=["']([^"']+)["']""", re.IGNORECASE),
        kind_hint=MediaKind.IFRAME,
        requires_absolute=True,
    ),
    ExtractorRule(
        name="cdn-hostname",
        pattern=re.compile(
            r"""(?:%s)[^"']*["']([^"']+)["']""" % "|".join(re.escape(host) for host in HEURISTIC_PLAYER_HOSTS),
            re.IGNORECASE,
        ),
        kind_hint=MediaKind.IFRAME,
        needs_verification=True,
    ),
)


def find_video_source(markup: str, page_url: str, rules=EMBED_RULES) -> Optional[tuple[ExtractorRule, str]]:
    """Run the rules in order and return the first one that matches with its URL."""
    for rule in rules:
        video_url = rule.match(markup, page_url)
        if video_url:
            return rule, video_url
    return None


class EmbedPageExtractor(BaseExtractor):
    """Extractor for HTML embed pages."""

    async def _extract(self, url: str) -> ExtractionResult:
        response = await self._make_request(url)
        markup = response.text or ""

        found = find_video_source(markup, url)
        if found is None:
            return ExtractionResult.failure(self.provider_id, "No video source found in page")

        rule, video_url = found
        if rule.needs_verification:
            logger.warning(f"[{self.provider_id}] Heuristic '{rule.name}' matched {video_url}; result needs verification")
        else:
            logger.debug(f"[{self.provider_id}] Rule '{rule.name}' matched {video_url}")

        return ExtractionResult(
            success=True,
            video_url=video_url,
            media_kind=classify_media_kind(video_url, rule.kind_hint),
            provider_id=self.provider_id,
            needs_verification=rule.needs_verification,
        )
