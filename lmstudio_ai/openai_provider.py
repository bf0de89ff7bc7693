"""
Hosted OpenAI-compatible API implementation of AI provider.
"""

import json
import requests
from typing import Dict, Any, List, Optional

from .config import AppConfig, LLMConfig
from .ai_providers import AiProvider
from .logging_setup import get_logger

logger = get_logger(__name__)


class OpenAIProvider(AiProvider):
    """Provider for hosted endpoints that require an API key."""

    def __init__(self, config: AppConfig):
        """
        Initialize the provider.

        Args:
            config: Application configuration

        Raises:
            ValueError: If no API key is configured
        """
        super().__init__(config)

        if not config.llm.api_key:
            raise ValueError("An API key is required for the 'openai' provider")

        logger.info(f"Initialized OpenAI-compatible provider with model: {config.llm.model or '(default)'}")

    def complete(self, settings: LLMConfig, messages: List[Dict[str, Any]],
                 response_format: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        Call the chat-completion endpoint.

        Args:
            settings: Effective generation settings
            messages: Chat messages
            response_format: Optional structured-output request

        Returns:
            Assistant text if successful, None otherwise
        """
        payload = self.build_payload(settings, messages, response_format)
        # Hosted APIs reject the LM Studio "unlimited" marker
        if payload.get("max_tokens", 0) <= 0:
            payload.pop("max_tokens", None)

        headers = {
            "Authorization": f"Bearer {settings.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = requests.post(settings.api_url, json=payload, headers=headers, timeout=settings.timeout)
            response.raise_for_status()
            return self.parse_completion(response.json())
        except requests.RequestException as e:
            logger.error(f"API network error: {str(e)}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"API JSON parsing error: {str(e)}")
            return None
