"""
OpenAI-backed description enhancer

Rewrites a client's event description in a clearer, more professional
tone before they submit the inquiry. Purely a text transform: it never
sees or changes lifecycle state.
"""
import logging
from typing import Mapping, Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class OpenAIDescriptionEnhancer:
    """quoteflow.DescriptionEnhancer implemented with a chat completion."""

    def __init__(self, openai_client: Optional[AsyncOpenAI] = None, api_key: Optional[str] = None,
                 model: str = "gpt-4o-mini"):
        self.openai_client = openai_client or AsyncOpenAI(api_key=api_key)
        self.model = model

    async def enhance(self, text: str, context: Mapping[str, str]) -> str:
        details = "\n".join(f"- {key.replace('_', ' ')}: {value}" for key, value in context.items())

        prompt = f"""You help people describe an event they want quotes for.

Rewrite the description below so an event organizer can price it:
- Keep every fact the client gave (dates, numbers, services, constraints)
- Do NOT invent requirements, budgets or guest counts
- Use a clear, friendly, professional tone
- Plain text, at most 150 words

Known details:
{details or '- none'}

Description:
{text}"""

        response = await self.openai_client.chat.completions.create(
            messages=[{"role": "user", "content": prompt}],
            model=self.model,
            temperature=0.3
        )

        revised = (response.choices[0].message.content or "").strip()
        logger.info(f"✨ Enhanced description: {len(text)} -> {len(revised)} chars")
        return revised
