import re
from typing import List, Optional, Tuple, Type

from streamflow.extractors.base import BaseExtractor
from streamflow.extractors.embed_page import EmbedPageExtractor
from streamflow.extractors.json_api import JsonApiExtractor


class ExtractorFactory:
    """Factory choosing an extraction strategy from the shape of a provider URL."""

    _families: List[Tuple[re.Pattern, Type[BaseExtractor]]] = [
        (re.compile(r"^https?://[^/]+/api/\d+/", re.IGNORECASE), JsonApiExtractor),
        (re.compile(r"^https?://api\.", re.IGNORECASE), JsonApiExtractor),
    ]
    _default: Type[BaseExtractor] = EmbedPageExtractor

    @classmethod
    def get_extractor_class(cls, url: str) -> Type[BaseExtractor]:
        for pattern, extractor_class in cls._families:
            if pattern.search(url):
                return extractor_class
        return cls._default

    @classmethod
    def get_extractor(
        cls, provider_id: str, url: str, request_headers: Optional[dict] = None, retries: int = 1
    ) -> BaseExtractor:
        """Get the extractor instance for a provider URL."""
        return cls.get_extractor_class(url)(provider_id, request_headers, retries=retries)
