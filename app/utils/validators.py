"""
Input validation utilities for API requests.

Validators collect every violation before raising, so a client sees all of
its field errors at once.
"""

import re
from typing import Any, Optional

from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import ValidationError
from app.models import ContentIntent


class GenerationRequest(BaseModel):
    """Normalized, validated generation request."""
    topic: str
    intent: str
    additional_context: Optional[str] = None
    temperature: float
    top_k_user: int
    top_k_viral: int


class RetrieveRequest(BaseModel):
    """Normalized, validated retrieval request."""
    topic: str
    intent: Optional[str] = None
    top_k_user: int
    top_k_viral: int
    use_cache: bool = True


def sanitize_user_input(text: str, max_length: int = 10000) -> str:
    """
    Sanitize user input text for safety.

    - Truncates to max length
    - Removes control characters
    - Normalizes whitespace
    """
    text = text[:max_length]
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]', '', text)
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def validate_intent(intent: Any) -> bool:
    """Check if intent is one of the known content intents."""
    return isinstance(intent, str) and intent in ContentIntent.values()


def _check_topic(topic: Any, errors: dict[str, str]) -> str:
    if not isinstance(topic, str) or not topic.strip():
        errors["topic"] = "Topic is required"
        return ""
    topic = sanitize_user_input(topic, max_length=settings.topic_max_length)
    if len(topic) < settings.topic_min_length:
        errors["topic"] = f"Topic must be at least {settings.topic_min_length} characters"
    return topic


def _check_top_k(
    name: str,
    value: Any,
    default: int,
    maximum: int,
    errors: dict[str, str],
) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        errors[name] = "Must be an integer"
        return default
    if value < 1 or value > maximum:
        errors[name] = f"Must be between 1 and {maximum}"
        return default
    return value


def validate_generation_request(data: dict[str, Any]) -> GenerationRequest:
    """
    Validate and normalize a generation request.

    Raises:
        ValidationError: With one entry per invalid field
    """
    errors: dict[str, str] = {}

    topic = _check_topic(data.get("topic"), errors)

    intent = data.get("intent")
    if not validate_intent(intent):
        errors["intent"] = f"Intent must be one of: {', '.join(ContentIntent.values())}"

    additional_context = data.get("additional_context")
    if additional_context is not None:
        if not isinstance(additional_context, str):
            errors["additional_context"] = "Must be a string"
            additional_context = None
        elif len(additional_context) > settings.additional_context_max_length:
            errors["additional_context"] = (
                f"Must be at most {settings.additional_context_max_length} characters"
            )
        else:
            additional_context = sanitize_user_input(additional_context) or None

    temperature = data.get("temperature")
    if temperature is None:
        temperature = settings.generation_temperature
    elif isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
        errors["temperature"] = "Must be a number"
    elif not 0 <= temperature <= 2:
        errors["temperature"] = "Must be between 0 and 2"

    top_k_user = _check_top_k(
        "top_k_user",
        data.get("top_k_user"),
        settings.rag_default_top_k_user,
        settings.rag_max_top_k_user,
        errors,
    )
    top_k_viral = _check_top_k(
        "top_k_viral",
        data.get("top_k_viral"),
        settings.rag_default_top_k_viral,
        settings.rag_max_top_k_viral,
        errors,
    )

    if errors:
        raise ValidationError("Invalid generation request", fields=errors)

    return GenerationRequest(
        topic=topic,
        intent=intent,
        additional_context=additional_context,
        temperature=float(temperature),
        top_k_user=top_k_user,
        top_k_viral=top_k_viral,
    )


def validate_retrieve_request(data: dict[str, Any]) -> RetrieveRequest:
    """
    Validate and normalize a retrieval request. Intent is optional here.

    Raises:
        ValidationError: With one entry per invalid field
    """
    errors: dict[str, str] = {}

    topic = _check_topic(data.get("topic"), errors)

    intent = data.get("intent")
    if intent is not None and not validate_intent(intent):
        errors["intent"] = f"Intent must be one of: {', '.join(ContentIntent.values())}"

    top_k_user = _check_top_k(
        "top_k_user",
        data.get("top_k_user"),
        settings.rag_default_top_k_user,
        settings.rag_max_top_k_user,
        errors,
    )
    top_k_viral = _check_top_k(
        "top_k_viral",
        data.get("top_k_viral"),
        settings.rag_default_top_k_viral,
        settings.rag_max_top_k_viral,
        errors,
    )

    use_cache = data.get("use_cache")
    if use_cache is None:
        use_cache = True
    elif not isinstance(use_cache, bool):
        errors["use_cache"] = "Must be a boolean"

    if errors:
        raise ValidationError("Invalid retrieval request", fields=errors)

    return RetrieveRequest(
        topic=topic,
        intent=intent,
        top_k_user=top_k_user,
        top_k_viral=top_k_viral,
        use_cache=use_cache,
    )
