# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Transcription provider factory and registry.

This module provides a factory for creating transcription providers and
chooses a model for a BCP-47 language tag.
"""

from collections.abc import Callable

from ..transcription_provider import (
    ModelInfo,
    TranscriptionProvider,
    TranscriptionUnavailableError,
)
from .vosk_provider import VoskProvider

# Registry of available providers
PROVIDER_REGISTRY: dict[str, type[TranscriptionProvider]] = {
    "vosk": VoskProvider,
}


def create_provider(
    provider_name: str, model_id: str, sample_rate: int = 16000
) -> TranscriptionProvider:
    """
    Factory function to create a transcription provider.

    Args:
        provider_name: Name of the provider ("vosk")
        model_id: Model identifier to use
        sample_rate: Audio sample rate in Hz (default: 16000)

    Returns:
        Initialized transcription provider instance

    Raises:
        TranscriptionUnavailableError: If the provider is not registered or
            the model is not installed
    """
    provider_class = PROVIDER_REGISTRY.get(provider_name)
    if not provider_class:
        available = ", ".join(PROVIDER_REGISTRY.keys())
        raise TranscriptionUnavailableError(
            f"Unknown provider: {provider_name}. Available providers: {available}"
        )

    return provider_class(model_id, sample_rate)


def get_all_available_models() -> list[ModelInfo]:
    """
    Get all available models from all registered providers.

    Returns:
        List of ModelInfo objects from all providers
    """
    models: list[ModelInfo] = []
    for provider_class in PROVIDER_REGISTRY.values():
        models.extend(provider_class.get_available_models())
    return models


def model_for_language(language: str, provider_name: str = "vosk") -> str:
    """
    Choose a model for a language tag.

    An exact tag match ("en-GB") wins; otherwise the first model for the same
    primary language ("en") is used.

    Raises:
        TranscriptionUnavailableError: If no model supports the language
    """
    tag: str = language.replace("_", "-").lower()
    primary: str = tag.split("-")[0]
    models: list[ModelInfo] = [
        m for m in get_all_available_models() if m.provider == provider_name
    ]
    for model in models:
        if model.language.lower() == tag:
            return model.id
    for model in models:
        if model.language.lower().split("-")[0] == primary:
            return model.id
    raise TranscriptionUnavailableError(
        f"No {provider_name} model available for language {language!r}"
    )


def is_model_downloaded(provider_name: str, model_id: str) -> bool:
    """
    Check if a model is already downloaded.

    Args:
        provider_name: Name of the provider ("vosk")
        model_id: Model identifier

    Returns:
        True if the model is downloaded, False otherwise
    """
    if provider_name == "vosk":
        model_path = VoskProvider.model_dir(model_id)
        return model_path is not None and model_path.exists()
    return False


def download_model_with_progress(
    provider_name: str,
    model_id: str,
    progress_callback: Callable[[str, int], None] | None = None
) -> str:
    """
    Download a model with progress tracking.

    Args:
        provider_name: Name of the provider ("vosk")
        model_id: Model identifier
        progress_callback: Optional callback(stage, percent) for progress updates

    Returns:
        Path to the downloaded model

    Raises:
        ValueError: If provider or model is not recognized
    """
    provider_class = PROVIDER_REGISTRY.get(provider_name)
    if not provider_class:
        available = ", ".join(PROVIDER_REGISTRY.keys())
        raise ValueError(
            f"Unknown provider: {provider_name}. Available providers: {available}"
        )

    return provider_class.download_model(model_id, progress_callback=progress_callback)


__all__ = [
    "create_provider",
    "get_all_available_models",
    "model_for_language",
    "is_model_downloaded",
    "download_model_with_progress",
    "PROVIDER_REGISTRY",
    "VoskProvider",
]
