"""
Shared helpers: JSON extraction from model output, path expansion,
wildcard matching and small numeric utilities.
"""

import fnmatch
import json
import os
import re
from typing import Any, Iterable, List, Optional, Sequence

import numpy as np

from .logging_setup import get_logger

logger = get_logger(__name__)

_LLM_TYPE_NAMES = {
    "str": "string",
    "int": "number",
    "float": "number",
    "bool": "boolean",
    "list": "array",
    "tuple": "array",
    "dict": "object",
}


def expand_path(path: str, create_parent: bool = False) -> str:
    """
    Expand ``~`` and environment variables and make the path absolute.

    Args:
        path: Path as typed by the user
        create_parent: Create the parent directory when it does not exist

    Returns:
        Absolute, normalized path

    Raises:
        OSError: If the parent directory cannot be created
    """
    expanded = os.path.abspath(os.path.expandvars(os.path.expanduser(path.strip())))

    if create_parent:
        parent = os.path.dirname(expanded)
        if parent and not os.path.isdir(parent):
            try:
                os.makedirs(parent, exist_ok=True)
                logger.debug(f"Created parent directory: {parent}")
            except OSError as e:
                raise OSError(f"Failed to create parent directory '{parent}': {str(e)}") from e

    return expanded


def wildcard_match(value: str, pattern: str) -> bool:
    """Case-insensitive glob match of the whole value (``*``, ``?``, ``[..]``)."""
    return fnmatch.fnmatchcase(value.lower(), pattern.lower())


def matches_any(values: Iterable[str], patterns: Sequence[str]) -> bool:
    """True if any value matches any of the patterns."""
    for value in values:
        if value is None:
            continue
        for pattern in patterns:
            if wildcard_match(str(value), pattern):
                return True
    return False


def extract_json(response_text: str, debug_mode: bool = False) -> Optional[Any]:
    """
    Extract a JSON value (object or array) from a model response.

    Args:
        response_text: Text containing JSON, possibly wrapped in prose or
            a fenced code block
        debug_mode: Whether to log debug information

    Returns:
        Parsed JSON value or None if extraction failed
    """
    if not response_text:
        return None

    try:
        return json.loads(response_text)
    except json.JSONDecodeError:
        if debug_mode:
            logger.debug("Direct JSON parsing failed, trying alternative methods")

    # Fenced code blocks
    for match in re.findall(r'```(?:json)?\s*([\s\S]*?)\s*```', response_text):
        try:
            return json.loads(match)
        except json.JSONDecodeError:
            continue

    # Outermost object, then outermost array
    for open_char, close_char in (("{", "}"), ("[", "]")):
        start = response_text.find(open_char)
        end = response_text.rfind(close_char)
        if start == -1 or end <= start:
            continue
        candidate = response_text[start:end + 1]
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            if debug_mode:
                logger.debug(f"Failed to parse JSON candidate: {candidate[:100]}...")

    logger.error("Failed to extract JSON block from AI response")
    if debug_mode:
        logger.debug(f"Response text: {response_text[:500]}...")

    return None


def get_vector_similarity(vector1: Sequence[float], vector2: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, mapped from [-1, 1] onto [0, 1].

    Args:
        vector1: First vector
        vector2: Second vector

    Returns:
        Similarity rounded to 6 decimals; 0.0 when either vector has zero magnitude

    Raises:
        ValueError: If a vector is missing, empty or the lengths differ
    """
    if vector1 is None or vector2 is None:
        raise ValueError("Both vector1 and vector2 must contain values.")
    if len(vector1) != len(vector2):
        raise ValueError("vector1 and vector2 must have the same length.")
    if len(vector1) == 0:
        raise ValueError("Vectors cannot be empty.")

    a = np.asarray(vector1, dtype=float)
    b = np.asarray(vector2, dtype=float)

    magnitude1 = np.linalg.norm(a)
    magnitude2 = np.linalg.norm(b)
    if magnitude1 == 0 or magnitude2 == 0:
        logger.debug("One or both vectors have zero magnitude. Similarity is undefined.")
        return 0.0

    similarity = float(np.dot(a, b) / (magnitude1 * magnitude2))
    similarity = min(max(similarity, -1.0), 1.0)
    return round((similarity + 1) / 2, 6)


def convert_type_to_llm_type(type_name: Any) -> str:
    """
    Map a Python type (or its name) to the type name used in LLM tool schemas.

    Unknown types map to ``object``.
    """
    if isinstance(type_name, type):
        type_name = type_name.__name__
    result = _LLM_TYPE_NAMES.get(str(type_name).split(".")[-1], "object")
    logger.debug(f"Converted '{type_name}' to '{result}'")
    return result


def to_string_list(value: Any) -> List[str]:
    """
    Normalize a stored or user-supplied value to a list of strings.

    JSON array text (as written to the preference store) is decoded;
    any other string becomes a single-element list.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    text = str(value).strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            decoded = json.loads(text)
            if isinstance(decoded, list):
                return [str(v) for v in decoded if v is not None and str(v).strip()]
        except json.JSONDecodeError:
            logger.debug(f"Stored list value is not valid JSON: {text[:100]}")
    return [text]
