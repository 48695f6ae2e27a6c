"""Provider registry: the catalog of providers and the models they offer."""

from orchestra.clients.base import ProviderService
from orchestra.exceptions import ModelResolutionError
from orchestra.models.execution import ModelInfo
from orchestra.utils.logging import get_logger
from orchestra.utils.models import parse_model_id

logger = get_logger(__name__)


class ProviderRegistry:
    """Registry of initialized provider services."""

    def __init__(self, providers: list[ProviderService] | None = None):
        self._providers: dict[str, ProviderService] = {}
        for provider in providers or []:
            self.register_provider(provider)

    def register_provider(self, provider: ProviderService) -> None:
        """Register a provider service under its provider type."""
        self._providers[provider.provider_type] = provider
        logger.debug(f"Registered provider: {provider.provider_type}")

    def get_provider(self, provider_type: str) -> ProviderService | None:
        return self._providers.get(provider_type)

    def get_provider_types(self) -> list[str]:
        return list(self._providers)

    def get_all_available_models(self) -> list[ModelInfo]:
        """Get every model offered by a registered provider."""
        models: list[ModelInfo] = []
        for provider in self._providers.values():
            models.extend(provider.get_available_models())
        return models

    def has_model(self, model_key: str) -> bool:
        """Check whether a ``provider/model-id`` key is in the catalog."""
        return any(model.key == model_key for model in self.get_all_available_models())

    def resolve(self, model_key: str) -> tuple[ProviderService, str]:
        """Resolve a ``provider/model-id`` key to its provider and bare model id.

        Raises:
            ModelResolutionError: If the key is malformed, its provider is not
                registered or the model is not offered
        """
        try:
            provider_type, model_id = parse_model_id(model_key)
        except ValueError as e:
            raise ModelResolutionError(str(e)) from e

        provider = self._providers.get(provider_type)
        if provider is None:
            raise ModelResolutionError(f"Provider {provider_type} is not available")

        if not self.has_model(model_key):
            raise ModelResolutionError(f"Unknown model: {model_key}")

        return provider, model_id
