"""
LM Studio implementation of AI provider.
"""

import json
import requests
from typing import Dict, Any, List, Optional, Set

from .config import AppConfig, LLMConfig
from .ai_providers import AiProvider
from .logging_setup import get_logger
from . import lmstudio

logger = get_logger(__name__)


class LMStudioProvider(AiProvider):
    """LM Studio local server implementation of AI provider."""

    def __init__(self, config: AppConfig):
        """
        Initialize the LM Studio provider.

        Args:
            config: Application configuration

        Raises:
            ValueError: If the configured provider is not LM Studio
        """
        super().__init__(config)

        if config.llm.provider_type != 'lmstudio':
            raise ValueError("Invalid provider configuration for LM Studio")

        self._loaded_models: Set[str] = set()

    def _ensure_model_loaded(self, settings: LLMConfig) -> None:
        """
        Load the model with the requested GPU offload through the ``lms`` CLI.

        Only done when both a model and an explicit offload ratio are set;
        otherwise LM Studio's just-in-time loading is used.
        """
        if not settings.model or settings.gpu is None or settings.gpu < 0:
            return
        key = f"{settings.model}@{settings.gpu}"
        if key in self._loaded_models:
            return
        try:
            lmstudio.load_model(settings.model, gpu=settings.gpu, ttl=settings.ttl)
            self._loaded_models.add(key)
        except (RuntimeError, OSError) as e:
            logger.warning(f"Could not preload model {settings.model}: {str(e)}")

    def complete(self, settings: LLMConfig, messages: List[Dict[str, Any]],
                 response_format: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        Call the LM Studio chat-completion endpoint.

        Args:
            settings: Effective generation settings
            messages: Chat messages
            response_format: Optional structured-output request

        Returns:
            Assistant text if successful, None otherwise
        """
        self._ensure_model_loaded(settings)

        payload = self.build_payload(settings, messages, response_format)
        if settings.ttl is not None and settings.ttl > 0:
            payload["ttl"] = settings.ttl

        headers = {"Content-Type": "application/json"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"

        try:
            response = requests.post(settings.api_url, json=payload, headers=headers, timeout=settings.timeout)
            response.raise_for_status()
            return self.parse_completion(response.json())
        except requests.RequestException as e:
            logger.error(f"LM Studio API network error: {str(e)}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"LM Studio API JSON parsing error: {str(e)}")
            return None
