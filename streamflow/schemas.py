from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MediaType(str, Enum):
    MOVIE = "movie"
    TV = "tv"


class MediaKind(str, Enum):
    MP4 = "mp4"
    HLS = "hls"
    DASH = "dash"
    IFRAME = "iframe"


class ExtractionResult(BaseModel):
    """Outcome of a single extraction attempt against one provider."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool
    video_url: Optional[str] = Field(None, alias="videoUrl", description="Playable or embeddable URL.")
    media_kind: Optional[MediaKind] = Field(None, alias="type", description="How the URL should be played.")
    quality: Optional[str] = Field(None, description="Quality label reported by the provider.")
    provider_id: Optional[str] = Field(None, alias="provider", description="The provider that produced the URL.")
    error: Optional[str] = Field(None, description="Failure reason when success is false.")
    needs_verification: bool = Field(
        False,
        alias="needsVerification",
        description="Set when the URL came from a heuristic match that may be a false positive.",
    )

    @classmethod
    def failure(cls, provider_id: Optional[str], error: str) -> "ExtractionResult":
        return cls(success=False, provider_id=provider_id, error=error)

    def to_response(self) -> dict:
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        if not self.needs_verification:
            data.pop("needsVerification", None)
        return data


class ProbeOutcome(BaseModel):
    provider_id: str = Field(..., alias="providerId")
    provider_name: str = Field(..., alias="providerName")
    url: str
    reachable: bool
    response_time_ms: int = Field(..., alias="responseTimeMs", description="Wall-clock latency in milliseconds")
    status_code: Optional[int] = Field(None, alias="statusCode")
    error_reason: Optional[str] = Field(None, alias="errorReason")

    model_config = ConfigDict(populate_by_name=True)


class ProbeRanking(BaseModel):
    media_id: int = Field(..., alias="mediaId")
    fastest_provider: Optional[ProbeOutcome] = Field(None, alias="fastestProvider")
    all_outcomes: List[ProbeOutcome] = Field(default_factory=list, alias="allOutcomes")
    resolved_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc), alias="resolvedAt")

    model_config = ConfigDict(populate_by_name=True)


class ProviderMetrics(BaseModel):
    provider_id: str = Field(..., alias="providerId")
    success_count: int = Field(0, alias="successCount")
    failure_count: int = Field(0, alias="failureCount")
    total_response_time_ms: int = Field(0, alias="totalResponseTimeMs")
    last_success: Optional[datetime] = Field(None, alias="lastSuccess")
    last_failure: Optional[datetime] = Field(None, alias="lastFailure")
    success_rate: float = Field(1.0, alias="successRate")
    average_response_time_ms: float = Field(0.0, alias="averageResponseTimeMs")
    is_healthy: bool = Field(True, alias="isHealthy")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def attempts(self) -> int:
        return self.success_count + self.failure_count


class ProviderInfo(BaseModel):
    id: str
    name: str
    tier: int
    tier_name: str = Field(..., alias="tierName")
    metrics: ProviderMetrics

    model_config = ConfigDict(populate_by_name=True)
