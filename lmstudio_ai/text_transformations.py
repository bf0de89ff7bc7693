"""
Thin wrappers that pair an instruction template with the shared LLM call.
"""

from typing import Any, List, Optional

from .ai_providers import AiProvider
from .image_preferences import get_ai_meta_language
from .languages import validate_language
from .logging_setup import get_logger
from .preferences import PreferenceResolver
from .prompt_templates import (
    BOOLEAN_EVALUATION_INSTRUCTIONS,
    SPELL_CHECK_INSTRUCTIONS,
    STRING_LIST_INSTRUCTIONS,
    TRANSLATION_INSTRUCTIONS,
    build_instructions,
    build_response_format,
)
from .utils import extract_json

logger = get_logger(__name__)


def invoke_llm_text_transformation(provider: AiProvider, text: str, instructions: str,
                                   **settings: Any) -> str:
    """
    Transform text according to free-form instructions.

    Args:
        provider: AI provider
        text: Text to transform
        instructions: System instructions
        **settings: Generation overrides (model, temperature, max_tokens, ...)

    Returns:
        Transformed text
    """
    if not instructions or not instructions.strip():
        raise ValueError("instructions is required")
    return provider.transform_text(instructions, text, **settings)


def invoke_spell_check(provider: AiProvider, text: str, extra_instructions: Optional[str] = None,
                       **settings: Any) -> str:
    """Spelling and grammar corrected text."""
    instructions = build_instructions(SPELL_CHECK_INSTRUCTIONS, extra_instructions)
    return provider.transform_text(instructions, text, **settings)


def get_text_translation(provider: AiProvider, text: str, language: Optional[str] = None,
                         extra_instructions: Optional[str] = None,
                         resolver: Optional[PreferenceResolver] = None, **settings: Any) -> str:
    """
    Translate text.

    When no language is given, the AIMetaLanguage preference is used.

    Args:
        provider: AI provider
        text: Text to translate
        language: Target language
        extra_instructions: Appended to the translation instructions
        resolver: Resolver for the language preference
        **settings: Generation overrides

    Returns:
        Translated text
    """
    if language and language.strip():
        target = validate_language(language)
    else:
        target = get_ai_meta_language(resolver or PreferenceResolver(config=provider.config))

    logger.debug(f"Translating {len(text)} characters into {target}")
    instructions = build_instructions(TRANSLATION_INSTRUCTIONS, extra_instructions, language=target)
    return provider.transform_text(instructions, text, **settings)


def invoke_llm_boolean_evaluation(provider: AiProvider, statement: str,
                                  extra_instructions: Optional[str] = None, **settings: Any) -> bool:
    """
    Ask the model whether a statement is true.

    Raises:
        ValueError: If the answer is not a recognizable boolean
    """
    instructions = build_instructions(BOOLEAN_EVALUATION_INSTRUCTIONS, extra_instructions)
    response = provider.transform_text(instructions, statement,
                                       response_format=build_response_format("boolean_evaluation", result=bool),
                                       **settings)

    parsed = extract_json(response, provider.config.debug_mode)
    if isinstance(parsed, dict) and isinstance(parsed.get("result"), bool):
        return parsed["result"]
    if isinstance(parsed, bool):
        return parsed

    answer = response.strip().strip('."\'').lower()
    if answer in ("true", "yes"):
        return True
    if answer in ("false", "no"):
        return False
    raise ValueError(f"Could not interpret model answer as boolean: {response[:100]}")


def invoke_llm_string_list_evaluation(provider: AiProvider, text: str,
                                      extra_instructions: Optional[str] = None,
                                      **settings: Any) -> List[str]:
    """
    Ask the model for a list of strings about the text.

    Returns:
        List of strings; empty when the answer has no JSON array
    """
    instructions = build_instructions(STRING_LIST_INSTRUCTIONS, extra_instructions)
    response = provider.transform_text(instructions, text,
                                       response_format=build_response_format("string_list", items=[str]),
                                       **settings)

    parsed = extract_json(response, provider.config.debug_mode)
    if isinstance(parsed, dict):
        # Some models wrap the list in an object
        parsed = next((v for v in parsed.values() if isinstance(v, list)), None)
    if not isinstance(parsed, list):
        logger.warning("Model answer did not contain a list")
        return []
    return [str(item).strip() for item in parsed if item is not None and str(item).strip()]
