"""
Shared instruction templates for the text and image wrappers.
"""

from typing import Any, Dict, Optional

from .utils import convert_type_to_llm_type

SPELL_CHECK_INSTRUCTIONS = (
    "Correct the spelling and grammar of the text the user provides. "
    "Keep the original language, tone, formatting and meaning. "
    "Respond with the corrected text only, without explanations."
)

TRANSLATION_INSTRUCTIONS = (
    "Translate the text the user provides into {language}. "
    "Preserve formatting, markdown, code blocks and line breaks. "
    "Respond with the translation only."
)

BOOLEAN_EVALUATION_INSTRUCTIONS = (
    "Evaluate whether the statement the user provides is true. "
    'Respond with a JSON object of the form {"result": true} or {"result": false} '
    "and nothing else."
)

STRING_LIST_INSTRUCTIONS = (
    "Analyse the text the user provides and answer with a list of short strings. "
    'Respond with a JSON object of the form {"items": ["first", "second"]} '
    "and nothing else."
)

IMAGE_DESCRIPTION_INSTRUCTIONS = (
    "Analyze the image and respond with a single JSON object with these fields:\n"
    '  "short_description": one sentence, at most 80 characters,\n'
    '  "long_description": a detailed description,\n'
    '  "has_nudity": boolean,\n'
    '  "has_explicit_content": boolean,\n'
    '  "overall_mood_of_image": one or two words,\n'
    '  "picture_type": for example photo, screenshot, drawing, diagram,\n'
    '  "style_type": for example realistic, cartoon, abstract,\n'
    '  "keywords": an array of at most 15 single-word or short keywords.\n'
    "Write all text values in {language}. Respond with the JSON object only."
)


def build_instructions(template: str, extra_instructions: Optional[str] = None, **values: str) -> str:
    """
    Fill in a template and append the caller's extra instructions.

    Args:
        template: One of the templates in this module, or any string
        extra_instructions: Free text appended after the template
        **values: Placeholder values such as ``language``

    Returns:
        Instruction string for the system message
    """
    instructions = template.format(**values) if values else template
    if extra_instructions and extra_instructions.strip():
        instructions = f"{instructions}\n\n{extra_instructions.strip()}"
    return instructions


def build_response_format(name: str, **fields: Any) -> Dict[str, Any]:
    """
    Structured-output request for a JSON object with typed fields.

    Field values are Python types; a one-element list such as ``[str]``
    stands for an array of that type.

    Args:
        name: Schema name sent to the server
        **fields: Field names mapped to their types

    Returns:
        ``response_format`` value for an OpenAI-compatible chat completion
    """
    properties = {}
    for field_name, field_type in fields.items():
        if isinstance(field_type, list):
            properties[field_name] = {
                "type": "array",
                "items": {"type": convert_type_to_llm_type(field_type[0])},
            }
        else:
            properties[field_name] = {"type": convert_type_to_llm_type(field_type)}

    return {
        "type": "json_schema",
        "json_schema": {
            "name": name,
            "strict": True,
            "schema": {
                "type": "object",
                "properties": properties,
                "required": list(fields),
                "additionalProperties": False,
            },
        },
    }
