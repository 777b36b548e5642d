from fastapi import APIRouter

from streamflow.providers.metrics import get_all_provider_metrics
from streamflow.providers.registry import TIER_CONFIGS, list_providers
from streamflow.schemas import ProviderInfo

providers_router = APIRouter()


@providers_router.get("", summary="List providers in priority order")
async def get_providers():
    metrics_by_id = {m.provider_id: m for m in get_all_provider_metrics()}
    return [
        ProviderInfo(
            id=provider.id,
            name=provider.name,
            tier=int(provider.tier),
            tier_name=TIER_CONFIGS[provider.tier].name,
            metrics=metrics_by_id[provider.id],
        ).model_dump(by_alias=True, mode="json")
        for provider in list_providers()
    ]
