import logging
from typing import Any, Optional

from streamflow.const import VIDEO_URL_FIELDS
from streamflow.extractors.base import BaseExtractor, ExtractorError, classify_media_kind, normalize_video_url
from streamflow.schemas import ExtractionResult, MediaKind

logger = logging.getLogger(__name__)


class JsonApiExtractor(BaseExtractor):
    """Extractor for provider APIs that answer with a JSON document describing the stream."""

    async def _extract(self, url: str) -> ExtractionResult:
        response = await self._make_request(url, headers={"accept": "application/json"})
        try:
            data = response.json()
        except ValueError:
            raise ExtractorError("Invalid JSON response")

        if not isinstance(data, dict):
            return ExtractionResult.failure(self.provider_id, "No video URL found in response")

        video_url = self._find_video_url(data)
        if not video_url:
            message = data.get("error") or data.get("message")
            if message:
                return ExtractionResult.failure(self.provider_id, str(message))
            return ExtractionResult.failure(self.provider_id, "No video URL found in response")

        video_url = normalize_video_url(video_url)
        if data.get("type") == "hls":
            media_kind = MediaKind.HLS
        else:
            media_kind = classify_media_kind(video_url)
        default_quality = "unknown" if media_kind == MediaKind.MP4 else "auto"

        return ExtractionResult(
            success=True,
            video_url=video_url,
            media_kind=media_kind,
            quality=str(data.get("quality") or default_quality),
            provider_id=self.provider_id,
        )

    @staticmethod
    def _find_video_url(data: dict[str, Any]) -> Optional[str]:
        for field in VIDEO_URL_FIELDS:
            value = data.get(field)
            if isinstance(value, str) and value.strip():
                return value
        return None
