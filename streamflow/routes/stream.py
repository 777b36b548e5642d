import logging
import re
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from streamflow.const import EMBED_RESPONSE_HEADERS
from streamflow.resolver import EmbedPage, StreamResolver, get_stream_resolver
from streamflow.schemas import MediaType

stream_router = APIRouter()
logger = logging.getLogger(__name__)

_MOVIE_ID = re.compile(r"[A-Za-z0-9_-]+")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def build_embed_response(page: EmbedPage, max_age: int) -> Response:
    """Wrap a sanitized embed page with the security and caching headers the player frame expects."""
    origin = page.origin
    headers = {
        "Cache-Control": f"public, max-age={max_age}, s-maxage={max_age}, stale-while-revalidate={max_age}",
        # Video CDNs rotate, so media and connect sources stay open.
        "Content-Security-Policy": (
            f"default-src 'self' {origin}; "
            f"script-src 'self' 'unsafe-inline' {origin}; "
            f"style-src 'self' 'unsafe-inline' {origin}; "
            "img-src 'self' data: https:; "
            "media-src * blob:; "
            "connect-src *; "
            f"frame-src 'self' {origin}; "
            "frame-ancestors 'self';"
        ),
        **EMBED_RESPONSE_HEADERS,
    }
    return Response(content=page.html, status_code=page.status, media_type="text/html", headers=headers)


@stream_router.get("/extract")
async def extract_stream(
    resolver: Annotated[StreamResolver, Depends(get_stream_resolver)],
    media_id: Annotated[Optional[str], Query(alias="mediaId")] = None,
    media_type: Annotated[Optional[str], Query(alias="type")] = None,
    season: Optional[str] = None,
    episode: Optional[str] = None,
    provider: Optional[str] = None,
):
    """Extract a playable video URL for a movie or TV episode."""
    if not media_id:
        return _error(400, "Missing mediaId parameter")

    parsed_id = _parse_int(media_id)
    if parsed_id is None:
        return _error(400, "Invalid mediaId parameter")

    try:
        kind = MediaType(media_type or MediaType.MOVIE.value)
    except ValueError:
        return _error(400, "Invalid type parameter")

    parsed_season = _parse_int(season)
    parsed_episode = _parse_int(episode)
    if kind == MediaType.TV and (parsed_season is None or parsed_episode is None):
        return _error(400, "Missing season or episode parameter")

    try:
        result = await resolver.extract(parsed_id, kind, parsed_season, parsed_episode, provider)
    except Exception as e:
        logger.exception(f"Extraction failed: {e}")
        return _error(500, "Internal Server Error")

    if not result.success:
        return _error(404, result.error or "Unknown error")
    return result.to_response()


@stream_router.get("")
async def proxy_embed(
    resolver: Annotated[StreamResolver, Depends(get_stream_resolver)],
    movie_id: Annotated[Optional[str], Query(alias="movieId")] = None,
):
    """Serve a provider embed page with popups and ad injection neutralised."""
    if not movie_id:
        return PlainTextResponse("Missing Movie ID", status_code=400)
    if not _MOVIE_ID.fullmatch(movie_id):
        return PlainTextResponse("Invalid Movie ID", status_code=400)

    try:
        page = await resolver.proxy_embed(movie_id)
    except Exception as e:
        logger.exception(f"Stream proxy error: {e}")
        return PlainTextResponse("Internal Server Error", status_code=500)

    if page.status != 200:
        return PlainTextResponse(page.html, status_code=page.status)
    return build_embed_response(page, resolver.embed_cache_seconds())
