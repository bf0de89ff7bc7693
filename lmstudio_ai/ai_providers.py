"""
AI provider interface and factory.

Providers talk to an OpenAI-compatible chat-completion endpoint. Callers
hand over an instruction string, the user text and optional generation
overrides; the provider returns the assistant text.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Any, Optional, List, Callable
import time

from .config import AppConfig, LLMConfig
from .logging_setup import get_logger

logger = get_logger(__name__)

# Generation settings a caller may override per call
OVERRIDABLE_SETTINGS = ("model", "temperature", "max_tokens", "api_url", "api_key", "timeout", "gpu", "ttl")


class AiProvider(ABC):
    """Abstract base class for AI providers."""

    @staticmethod
    def get_provider(config: AppConfig) -> 'AiProvider':
        """
        Factory method to get the appropriate AI provider based on configuration.

        Args:
            config: Application configuration

        Returns:
            An instance of the appropriate AiProvider subclass
        """
        provider_type = config.llm.provider_type.lower()

        if provider_type == 'lmstudio':
            from .lmstudio_provider import LMStudioProvider
            return LMStudioProvider(config)
        elif provider_type == 'openai':
            from .openai_provider import OpenAIProvider
            return OpenAIProvider(config)
        else:
            logger.warning(f"Unknown provider type: {provider_type}, using LM Studio")
            from .lmstudio_provider import LMStudioProvider
            return LMStudioProvider(replace(config, llm=replace(config.llm, provider_type="lmstudio")))

    def __init__(self, config: AppConfig):
        """
        Initialize the AI provider.

        Args:
            config: Application configuration
        """
        self.config = config
        self.llm = config.llm
        self.max_retries = max(1, config.max_retries)

    def call_with_retries(self, request_func: Callable[[], Optional[str]]) -> Optional[str]:
        """
        Call an API function with retries.

        Args:
            request_func: Function to call that returns a response or None

        Returns:
            API response if successful, None otherwise
        """
        for attempt in range(self.max_retries):
            try:
                result = request_func()
                if result is not None:
                    return result

                if attempt < self.max_retries - 1:
                    logger.info(f"Retrying API call in {2 ** attempt} seconds (attempt {attempt + 1}/{self.max_retries})")
                    time.sleep(2 ** attempt)
            except Exception as e:
                logger.error(f"Error in API call (attempt {attempt + 1}): {str(e)}")
                if attempt < self.max_retries - 1:
                    logger.info(f"Retrying in {2 ** attempt} seconds")
                    time.sleep(2 ** attempt)

        logger.error(f"Failed to get valid response after {self.max_retries} attempts")
        return None

    def settings_for(self, overrides: Dict[str, Any]) -> LLMConfig:
        """
        Per-call settings: the configured ones with non-None overrides applied.

        Raises:
            ValueError: If an override name is not a generation setting
        """
        unknown = set(overrides) - set(OVERRIDABLE_SETTINGS)
        if unknown:
            raise ValueError(f"Unknown generation settings: {', '.join(sorted(unknown))}")
        return replace(self.llm, **{k: v for k, v in overrides.items() if v is not None})

    @staticmethod
    def build_messages(instructions: str, text: str, images_b64: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """
        Build the chat message list: the instructions as system message and
        the text (plus any base64 JPEG images) as user message.
        """
        if images_b64:
            content: Any = [{"type": "text", "text": text}]
            for image_b64 in images_b64:
                content.append({
                    "type": "image_url",
                    "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"}
                })
        else:
            content = text

        return [
            {"role": "system", "content": instructions},
            {"role": "user", "content": content},
        ]

    @staticmethod
    def build_payload(settings: LLMConfig, messages: List[Dict[str, Any]],
                      response_format: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "messages": messages,
            "temperature": settings.temperature,
            "max_tokens": settings.max_tokens,
            "stream": False,
        }
        if settings.model:
            payload["model"] = settings.model
        if response_format:
            payload["response_format"] = response_format
        return payload

    @staticmethod
    def parse_completion(result: Dict[str, Any]) -> Optional[str]:
        """Assistant text of the first choice of a chat-completion response."""
        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.error("Unexpected chat-completion response structure")
            return None
        return content.strip() if isinstance(content, str) else None

    def transform_text(self, instructions: str, text: str, images_b64: Optional[List[str]] = None,
                       response_format: Optional[Dict[str, Any]] = None, **overrides: Any) -> str:
        """
        Send instructions and text to the model and return its answer.

        Args:
            instructions: System instructions
            text: User text
            images_b64: Optional base64 encoded JPEG images
            response_format: Optional structured-output request, see ``build_response_format``
            **overrides: Generation settings for this call (see OVERRIDABLE_SETTINGS)

        Returns:
            Assistant text

        Raises:
            RuntimeError: If no response was received after all retries
        """
        settings = self.settings_for(overrides)
        messages = self.build_messages(instructions, text, images_b64)

        def make_request() -> Optional[str]:
            return self.complete(settings, messages, response_format)

        response = self.call_with_retries(make_request)
        if response is None:
            raise RuntimeError(f"No response from {settings.api_url} after {self.max_retries} attempts")
        return response

    @abstractmethod
    def complete(self, settings: LLMConfig, messages: List[Dict[str, Any]],
                 response_format: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        Perform one chat-completion request.

        Args:
            settings: Effective generation settings
            messages: Chat messages
            response_format: Optional structured-output request

        Returns:
            Assistant text if successful, None otherwise
        """
        pass
