"""Helpers for the ``provider/model-id`` model key format."""


def parse_model_id(model_string: str) -> tuple[str, str]:
    """Split a ``provider/model-id`` key into its provider and model id.

    Model ids may themselves contain slashes; only the first one separates
    the provider.

    Raises:
        ValueError: If the key has no provider prefix or no model id
    """
    provider, slash, model_id = model_string.partition("/")
    if not slash or not provider or not model_id:
        raise ValueError(f'Invalid model format: "{model_string}". Expected "provider/model-id".')
    return provider, model_id


def format_model_id(provider: str, model_id: str) -> str:
    """Build a ``provider/model-id`` key."""
    return f"{provider}/{model_id}"
