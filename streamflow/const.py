AD_SOURCE_PATTERNS = [
    "ads",
    "tracker",
    "analytics",
]

HEURISTIC_PLAYER_HOSTS = [
    "cloudflare",
    "bunny",
    "jwplayer",
    "vimeo",
    "mp4upload",
    "vidguard",
    "streamtape",
]

VIDEO_URL_FIELDS = [
    "url",
    "videoUrl",
    "link",
    "source",
]

EMBED_RESPONSE_HEADERS = {
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-Content-Type-Options": "nosniff",
}

# Any answer from these statuses means the provider host is up.
REACHABLE_STATUS_CODES = [403, 404]
