import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from streamflow.providers.registry import find_provider
from streamflow.resolver import StreamResolver, get_stream_resolver
from streamflow.schemas import MediaType

probe_router = APIRouter()
logger = logging.getLogger(__name__)


async def run_background_probe(
    resolver: StreamResolver,
    media_id: int,
    media_type: MediaType,
    season: Optional[int],
    episode: Optional[int],
    provider_ids: Optional[List[str]],
):
    """Warm the ranking cache ahead of playback."""
    try:
        candidates = None
        if provider_ids:
            candidates = [p for p in (find_provider(pid) for pid in provider_ids) if p is not None] or None
        ranking = await resolver.probe(media_id, media_type, season, episode, candidates)
        logger.info(
            f"Background probe for {media_type.value}:{media_id} finished, fastest: "
            f"{ranking.fastest_provider.provider_id if ranking.fastest_provider else None}"
        )
    except Exception as e:
        logger.error(f"Background probe failed for {media_type.value}:{media_id}: {e}")


@probe_router.post("/{media_id}", summary="Schedule a background probe")
async def schedule_probe(
    media_id: int,
    background_tasks: BackgroundTasks,
    resolver: Annotated[StreamResolver, Depends(get_stream_resolver)],
    media_type: Annotated[MediaType, Query(alias="type")] = MediaType.MOVIE,
    season: Optional[int] = None,
    episode: Optional[int] = None,
    provider: Annotated[Optional[List[str]], Query()] = None,
):
    """Start probing providers for a media item unless a fresh ranking is already cached."""
    if media_type == MediaType.TV and (season is None or episode is None):
        raise HTTPException(status_code=400, detail="Missing season or episode parameter")

    ranking = resolver.get_cached_ranking(media_id, media_type)
    if ranking is not None and not provider:
        return ranking.model_dump(by_alias=True, mode="json")

    background_tasks.add_task(run_background_probe, resolver, media_id, media_type, season, episode, provider)
    return JSONResponse(status_code=202, content={"status": "scheduled"})


@probe_router.get("/{media_id}", summary="Get the cached probe ranking")
async def get_probe_ranking(
    media_id: int,
    resolver: Annotated[StreamResolver, Depends(get_stream_resolver)],
    media_type: Annotated[MediaType, Query(alias="type")] = MediaType.MOVIE,
):
    """Return the fastest known provider for a media item, if any."""
    ranking = resolver.get_cached_ranking(media_id, media_type)
    if ranking is None:
        raise HTTPException(status_code=404, detail="No probe ranking cached for this media")
    return ranking.model_dump(by_alias=True, mode="json")
