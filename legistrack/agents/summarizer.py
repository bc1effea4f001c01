"""
Full-text summarizer agent.

When a bill's document cannot be downloaded directly, an LLM writes a
plain-text summary of the bill instead.
"""
# Load environment variables FIRST so provider SDKs see the API keys
from dotenv import load_dotenv
load_dotenv()

import logging
from typing import Optional

from pydantic_ai import Agent

from legistrack.agents.prompts import SUMMARY_SYSTEM_PROMPT, build_full_text_summary_prompt
from legistrack.agents.providers import export_provider_keys, model_has_key
from legistrack.config import settings
from legistrack.models import Bill

logger = logging.getLogger(__name__)


class BillTextSummarizer:
    """
    Wraps a pydantic_ai Agent that turns bill metadata into a summary.

    Usage:
        summarizer = build_default_summarizer()
        if summarizer:
            text = await summarizer.summarize(bill)
    """

    def __init__(self, agent: Agent):
        self.agent = agent

    async def summarize(self, bill: Bill) -> Optional[str]:
        logger.info(f"Generating AI summary for {bill.bill_id}")
        result = await self.agent.run(build_full_text_summary_prompt(bill))
        text = (result.output or "").strip()
        return text or None


def build_default_summarizer() -> Optional[BillTextSummarizer]:
    """
    Build the summarizer for settings.SUMMARY_MODEL.

    Returns:
        None when the API key for that model is not configured
    """
    model_name = settings.SUMMARY_MODEL
    if not model_has_key(model_name):
        logger.info(f"No API key for {model_name}; AI summaries disabled")
        return None
    export_provider_keys()
    return BillTextSummarizer(Agent(model_name, system_prompt=SUMMARY_SYSTEM_PROMPT))
