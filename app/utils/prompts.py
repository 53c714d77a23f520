"""
Prompt engineering utilities and templates.
Builds the grounded LinkedIn generation prompt and parses the model's reply.
"""

import json
import re
from typing import TYPE_CHECKING, Optional, Sequence

from app.core.errors import MalformedGenerationError

if TYPE_CHECKING:
    from app.services.similarity_store import SimilarPost

VARIANT_KEYS = ("variantA", "variantB")

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class LinkedInPromptBuilder:
    """
    Builds the two-message prompt for A/B LinkedIn post generation.

    Prompt Structure:
    1. Role
    2. User examples (style)
    3. Viral examples (patterns)
    4. Generation instructions
    5. Output format
    """

    ROLE = (
        "You are an expert at writing high-performing LinkedIn content. "
        "Your posts must:\n"
        "1. Keep the user's own voice and style\n"
        "2. Apply proven viral content techniques\n"
        "3. Feel authentic, never generic or forced\n"
        "4. Earn real engagement (likes, comments, shares)"
    )

    INSTRUCTIONS = [
        "Write TWO different versions of the post (A and B)",
        "Stay faithful to the user's voice, based on their examples",
        "Use viral techniques: hooks, storytelling, a call to action",
        "Use LinkedIn formatting: short paragraphs, white space, deliberate emojis",
        "Length: 150-300 words for variant A, 300-600 words for variant B",
        "Use at most 3 hashtags",
        "Put a strong hook in the first 2 lines",
        "End with a question or a call to action that invites comments",
    ]

    OUTPUT_FORMAT = (
        "Reply ONLY with a valid JSON object with exactly these keys:\n"
        "{\n"
        '  "variantA": "Full text of variant A...",\n'
        '  "variantB": "Full text of variant B..."\n'
        "}\n\n"
        "Do not add comments, explanations or markdown. Only the JSON."
    )

    @staticmethod
    def _percent(value: float) -> str:
        return f"{value * 100:.1f}%"

    @classmethod
    def build_system_prompt(
        cls,
        user_posts: Sequence["SimilarPost"],
        viral_posts: Sequence["SimilarPost"],
    ) -> str:
        """Role, labelled examples, instructions and output format."""
        parts = [cls.ROLE, "", "## USER CONTEXT", ""]

        if user_posts:
            parts.append(
                "Below are previous posts by the user. Study their tone, "
                "structure, recurring themes and how they address their audience."
            )
            parts.append("")
            for i, post in enumerate(user_posts, start=1):
                parts.append(f"### User Example {i} (Similarity: {cls._percent(post.similarity)})")
                parts.append(post.content)
                parts.append("")
        else:
            parts.append("The user has no previous posts. Use a professional but approachable tone.")
            parts.append("")

        parts.append("## VIRAL CONTENT EXAMPLES")
        parts.append("")
        parts.append("These posts earned high engagement. Identify the patterns that worked:")
        parts.append("")
        for i, post in enumerate(viral_posts, start=1):
            engagement = f"{post.engagement_rate or 0.0:.2f}%"
            parts.append(
                f"### Viral Example {i} "
                f"(Engagement: {engagement}, Similarity: {cls._percent(post.similarity)})"
            )
            parts.append(post.content)
            parts.append("")

        parts.append("## GENERATION INSTRUCTIONS")
        parts.append("")
        parts.extend(f"{i}. {line}" for i, line in enumerate(cls.INSTRUCTIONS, start=1))
        parts.append("")
        parts.append("## RESPONSE FORMAT")
        parts.append("")
        parts.append(cls.OUTPUT_FORMAT)

        return "\n".join(parts)

    @staticmethod
    def build_user_prompt(
        topic: str,
        intent: str,
        additional_context: Optional[str] = None,
    ) -> str:
        """Topic, intent and optional extra context for this request."""
        parts = [
            "Write two versions of a LinkedIn post about the following topic:",
            "",
            f"**Topic:** {topic.strip()}",
            f"**Intent:** {intent}",
        ]
        if additional_context and additional_context.strip():
            parts.append(f"**Additional context:** {additional_context.strip()}")

        parts.extend([
            "",
            "Remember:",
            "- Variant A: shorter and direct (150-300 words)",
            "- Variant B: deeper and more elaborate (300-600 words)",
            "- Keep the user's style based on their examples",
            "- Borrow techniques from the viral posts",
            "- Open with a strong hook",
            "- Close with a call to action or a question",
            "",
            "Reply only with the requested JSON.",
        ])
        return "\n".join(parts)


def parse_variants(raw: Optional[str]) -> tuple[str, str]:
    """
    Extract both variants from the model reply.

    A surrounding ```json fence is tolerated; anything else that is not a
    JSON object with two non-empty string variants is rejected.

    Raises:
        MalformedGenerationError: If the reply cannot be used
    """
    if raw is None or not raw.strip():
        raise MalformedGenerationError("empty response")

    text = raw.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedGenerationError(f"invalid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise MalformedGenerationError("response is not a JSON object")

    variants = []
    for key in VARIANT_KEYS:
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise MalformedGenerationError(f"missing or empty '{key}'")
        variants.append(value.strip())

    return variants[0], variants[1]
