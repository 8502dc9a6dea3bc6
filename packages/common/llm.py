"""
Text generation client

Thin wrapper over the Anthropic async SDK shared by vendor verification and
line-item categorization. Both callers treat a missing client as "skip the step".
"""
from typing import Optional, Protocol

import anthropic
import structlog

from packages.common.config import get_settings

logger = structlog.get_logger()


class TextGenerator(Protocol):
    async def generate(self, prompt: str, max_tokens: int = 256) -> str:
        ...


class AnthropicTextGenerator:
    """
    Single-turn, deterministic completions.

    Usage:
        generator = AnthropicTextGenerator(api_key="...")
        text = await generator.generate("Say hi", max_tokens=16)
    """

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5"):
        self.model = model
        self.client = anthropic.AsyncAnthropic(api_key=api_key)

    async def generate(self, prompt: str, max_tokens: int = 256) -> str:
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=0.0,
            messages=[{"role": "user", "content": prompt}],
        )

        logger.debug("llm_completion",
                     model=self.model,
                     input_tokens=response.usage.input_tokens,
                     output_tokens=response.usage.output_tokens)

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )


_generator: Optional[TextGenerator] = None
_resolved = False


def get_text_generator() -> Optional[TextGenerator]:
    """Process-wide generator, or None when ANTHROPIC_API_KEY is not set"""
    global _generator, _resolved
    if not _resolved:
        settings = get_settings()
        if settings.anthropic_api_key:
            _generator = AnthropicTextGenerator(settings.anthropic_api_key, settings.llm_model)
        else:
            logger.warning("anthropic_api_key_missing",
                           message="ANTHROPIC_API_KEY not set, vendor verification and categorization are disabled")
        _resolved = True
    return _generator
