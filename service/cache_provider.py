from typing import Any, Optional

from flask_caching import Cache

from config import FILTERS_CACHE_TIMEOUT_SECONDS, logger

_CACHE_STATE: dict[str, Optional[Cache]] = {"cache": None}


def set_cache(instance: Cache) -> None:
    """Register the shared cache instance."""
    _CACHE_STATE["cache"] = instance


def _filters_key(area_id: Optional[str], outlet_id: Optional[str], language_code: str) -> str:
    return f"filters:{area_id or '-'}:{outlet_id or '-'}:{language_code}"


def get_filters_document(area_id: Optional[str], outlet_id: Optional[str], language_code: str) -> Optional[dict[str, Any]]:
    """Return the cached GetFilters document, if any."""
    cache = _CACHE_STATE["cache"]
    if cache is None:
        return None
    return cache.get(_filters_key(area_id, outlet_id, language_code))


def set_filters_document(area_id: Optional[str], outlet_id: Optional[str], language_code: str, document: dict[str, Any]) -> None:
    """Write a GetFilters document to cache if a cache is configured."""
    cache = _CACHE_STATE["cache"]
    if cache is None:
        return

    key = _filters_key(area_id, outlet_id, language_code)
    cache.set(key, document, timeout=FILTERS_CACHE_TIMEOUT_SECONDS)
    logger.info("Updated Cache", cache_key=key)
