from .stream import stream_router
from .probe import probe_router
from .providers import providers_router

__all__ = ["stream_router", "probe_router", "providers_router"]
