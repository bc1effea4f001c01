"""LLM agents - tag generation and full-text summaries."""

from legistrack.agents.tagging import (
    LLMTagStrategy,
    RuleBasedTagStrategy,
    TagGenerator,
    build_default_strategies,
    fallback_tags,
    parse_tag_response,
)
from legistrack.agents.summarizer import BillTextSummarizer, build_default_summarizer

__all__ = [
    "LLMTagStrategy",
    "RuleBasedTagStrategy",
    "TagGenerator",
    "build_default_strategies",
    "fallback_tags",
    "parse_tag_response",
    "BillTextSummarizer",
    "build_default_summarizer",
]
