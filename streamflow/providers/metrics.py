import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from streamflow.providers.registry import ProviderDescriptor, list_providers
from streamflow.schemas import ProviderMetrics

logger = logging.getLogger(__name__)

# Below this success rate a provider is skipped unless nothing healthy is left.
HEALTHY_SUCCESS_RATE = 0.3

_metrics: Dict[str, ProviderMetrics] = {}
_lock = threading.Lock()


def _get_or_create(provider_id: str) -> ProviderMetrics:
    metrics = _metrics.get(provider_id)
    if metrics is None:
        metrics = ProviderMetrics(provider_id=provider_id)
        _metrics[provider_id] = metrics
    return metrics


def get_provider_metrics(provider_id: str) -> ProviderMetrics:
    with _lock:
        return _get_or_create(provider_id).model_copy()


def get_all_provider_metrics() -> List[ProviderMetrics]:
    with _lock:
        return [_get_or_create(p.id).model_copy() for p in list_providers()]


def record_success(provider_id: str, response_time_ms: int) -> None:
    with _lock:
        metrics = _get_or_create(provider_id)
        metrics.success_count += 1
        metrics.total_response_time_ms += response_time_ms
        metrics.last_success = datetime.now(tz=timezone.utc)
        metrics.average_response_time_ms = metrics.total_response_time_ms / metrics.success_count
        metrics.success_rate = metrics.success_count / metrics.attempts
        metrics.is_healthy = metrics.success_rate >= HEALTHY_SUCCESS_RATE


def record_failure(provider_id: str) -> None:
    with _lock:
        metrics = _get_or_create(provider_id)
        metrics.failure_count += 1
        metrics.last_failure = datetime.now(tz=timezone.utc)
        metrics.success_rate = metrics.success_count / metrics.attempts
        metrics.is_healthy = metrics.success_rate >= HEALTHY_SUCCESS_RATE
        if not metrics.is_healthy:
            logger.warning(f"Provider {provider_id} marked unhealthy (success rate {metrics.success_rate:.2f})")


def reset_provider_metrics(provider_id: Optional[str] = None) -> None:
    """Reset the metrics of one provider, or of every provider when no id is given."""
    with _lock:
        if provider_id is None:
            _metrics.clear()
        else:
            _metrics[provider_id] = ProviderMetrics(provider_id=provider_id)


def _sort_key(provider: ProviderDescriptor, snapshot: Dict[str, ProviderMetrics]):
    metrics = snapshot[provider.id]
    if metrics.attempts == 0:
        # Untested providers go after tested ones of the same tier, in registry order.
        return provider.tier, 1, 0.0, 0.0
    return provider.tier, 0, -metrics.success_rate, metrics.average_response_time_ms


def get_providers_by_priority(include_unhealthy: bool = False) -> List[ProviderDescriptor]:
    """
    Order providers by tier, then by observed performance inside each tier.

    Args:
        include_unhealthy (bool): Whether to keep providers whose success rate fell below the threshold.

    Returns:
        List[ProviderDescriptor]: Providers, best candidates first.
    """
    providers = list_providers()
    with _lock:
        snapshot = {p.id: _get_or_create(p.id).model_copy() for p in providers}

    ordered = sorted(providers, key=lambda p: _sort_key(p, snapshot))
    if include_unhealthy:
        return ordered
    return [p for p in ordered if snapshot[p.id].is_healthy]


def get_top_providers_for_probing(count: int) -> List[ProviderDescriptor]:
    """Return the best `count` providers, falling back to unhealthy ones when too few are healthy."""
    healthy = get_providers_by_priority(include_unhealthy=False)
    if len(healthy) >= count:
        return healthy[:count]
    rest = [p for p in get_providers_by_priority(include_unhealthy=True) if p not in healthy]
    return (healthy + rest)[:count]
