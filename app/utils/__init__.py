"""Utility functions and helpers"""

from app.utils.prompts import LinkedInPromptBuilder, parse_variants
from app.utils.validators import (
    validate_generation_request,
    validate_retrieve_request,
    sanitize_user_input,
)

__all__ = [
    "LinkedInPromptBuilder",
    "parse_variants",
    "validate_generation_request",
    "validate_retrieve_request",
    "sanitize_user_input",
]
