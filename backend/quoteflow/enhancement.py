"""
Description enhancement.

An optional assist the client can run on their event description before
submitting. It never touches lifecycle state, and if the enhancer fails
the client keeps their own text and can still submit.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

from .validation import require_text

logger = logging.getLogger(__name__)


class DescriptionEnhancer(Protocol):
    async def enhance(self, text: str, context: Mapping[str, str]) -> str:
        ...


@dataclass(frozen=True)
class EnhancementResult:
    text: str
    enhanced: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"text": self.text, "enhanced": self.enhanced, "error": self.error}


async def refine_description(
    enhancer: Optional[DescriptionEnhancer],
    description: str,
    **context: str,
) -> EnhancementResult:
    """Run ``enhancer`` over ``description``, falling back to the original text."""
    original = require_text(description, "description", "Description")

    if enhancer is None:
        return EnhancementResult(text=original, enhanced=False, error="Enhancement is not configured")

    clean_context = {k: v for k, v in context.items() if v}
    try:
        revised = await enhancer.enhance(original, clean_context)
    except Exception as e:
        logger.warning(f"Description enhancement failed, keeping original text: {e}")
        return EnhancementResult(text=original, enhanced=False, error=str(e) or type(e).__name__)

    revised = (revised or "").strip()
    if not revised:
        return EnhancementResult(text=original, enhanced=False, error="Enhancer returned no text")
    return EnhancementResult(text=revised, enhanced=True)
