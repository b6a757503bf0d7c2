"""Narrative commentary and advisory hints from an external text service."""

from .advisor import FALLBACK_PHRASES, NarrativeAdvisor, NarrativeContext, fallback_thought, parse_advisory
from .providers import OpenAICompatibleGenerator, StaticGenerator, TextGenerationError, TextGenerator

__all__ = [
    "FALLBACK_PHRASES",
    "NarrativeAdvisor",
    "NarrativeContext",
    "OpenAICompatibleGenerator",
    "StaticGenerator",
    "TextGenerationError",
    "TextGenerator",
    "fallback_thought",
    "parse_advisory",
]
