"""
Tag Generator - assigns subject tags with confidence scores to bills.

Tags come from an ordered chain of strategies: an OpenAI agent, a Gemini
agent, and finally a deterministic rule-based fallback built from the
bill's own policy area and subjects. The first strategy that returns
without raising wins.
"""
# Load environment variables FIRST so provider SDKs see the API keys
from dotenv import load_dotenv
load_dotenv()

import asyncio
import json
import logging
import re
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence

from pydantic import ValidationError
from pydantic_ai import Agent

from legistrack.agents.prompts import TAGGING_SYSTEM_PROMPT, bill_payload, build_tagging_prompt
from legistrack.agents.providers import export_provider_keys, model_has_key
from legistrack.config import settings
from legistrack.config.constants import (
    FEEDBACK_CONFIDENCE_PENALTY,
    MIN_CONFIDENCE_SCORE,
    POLICY_AREA_CONFIDENCE,
    SUBJECT_CONFIDENCE,
    TAG_BATCH_DELAY,
    TAG_BATCH_SIZE,
    TAG_ITEM_DELAY,
)
from legistrack.database.store import BillStore
from legistrack.errors import StoreWriteError, TaggingError
from legistrack.models import (
    Bill,
    BillSubject,
    BillTag,
    SubjectType,
    TagFeedback,
    TaggingResult,
    TagSource,
    TagSuggestion,
)
from legistrack.timeutils import utcnow

logger = logging.getLogger(__name__)


class TagStrategy(Protocol):
    name: str

    async def __call__(self, bill_data: dict, subjects: List[BillSubject]) -> List[TagSuggestion]:
        ...


# ============================================================================
# Response parsing
# ============================================================================

def clean_json_response(text: str) -> str:
    """Strip markdown code fences around a JSON answer."""
    cleaned = text.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned)
    cleaned = re.sub(r"\s*```$", "", cleaned)
    return cleaned.strip()


def parse_tag_response(text: str) -> List[TagSuggestion]:
    """
    Parse an LLM answer into tag suggestions.

    Scores are rounded and clamped into [0, 100]; entries without a
    subject_id or with a non-numeric score are dropped.

    Raises:
        TaggingError: the answer is not a JSON array
    """
    try:
        data = json.loads(clean_json_response(text or ""))
    except ValueError as e:
        raise TaggingError(f"Invalid response format from AI service: {e}") from e

    if not isinstance(data, list):
        raise TaggingError("Invalid response format: expected an array")

    suggestions = []
    for item in data:
        if not isinstance(item, dict) or not item.get("subject_id"):
            continue
        try:
            suggestions.append(TagSuggestion.model_validate(item))
        except (ValidationError, TypeError, ValueError) as e:
            logger.debug(f"Skipping unusable tag {item!r}: {e}")
    return suggestions


# ============================================================================
# Strategies
# ============================================================================

class LLMTagStrategy:
    """Ask a pydantic_ai Agent to tag a bill against the taxonomy."""

    def __init__(self, agent: Agent, name: str = "llm"):
        self.agent = agent
        self.name = name

    async def __call__(self, bill_data: dict, subjects: List[BillSubject]) -> List[TagSuggestion]:
        logger.info(f"🧠 Generating tags with {self.name}...")
        result = await self.agent.run(build_tagging_prompt(bill_data, subjects))
        return parse_tag_response(result.output)


def fallback_tags(bill_data: dict, subjects: List[BillSubject]) -> List[TagSuggestion]:
    """
    Deterministic tags from the bill's own metadata.

    - policy area -> matching policy subject at 90
    - each legislative subject string -> matching legislative subject at 80

    Only subjects present in the taxonomy are tagged (case-insensitive name match).
    """
    by_name = {(s.type, s.name.lower()): s for s in subjects}
    tags: List[TagSuggestion] = []

    policy_area = bill_data.get("policy_area")
    if policy_area:
        subject = by_name.get((SubjectType.POLICY, policy_area.lower()))
        if subject:
            tags.append(TagSuggestion(
                subject_id=subject.subject_id, name=subject.name, confidence_score=POLICY_AREA_CONFIDENCE
            ))

    for subject_name in bill_data.get("subjects") or []:
        subject = by_name.get((SubjectType.LEGISLATIVE, subject_name.lower()))
        if subject:
            tags.append(TagSuggestion(
                subject_id=subject.subject_id, name=subject.name, confidence_score=SUBJECT_CONFIDENCE
            ))

    return tags


class RuleBasedTagStrategy:
    name = "rules"

    async def __call__(self, bill_data: dict, subjects: List[BillSubject]) -> List[TagSuggestion]:
        return fallback_tags(bill_data, subjects)


def build_default_strategies() -> List[TagStrategy]:
    """
    OpenAI agent (if keyed) -> Gemini agent (if keyed) -> rules.

    Agents are only constructed when their key exists.
    """
    strategies: List[TagStrategy] = []
    export_provider_keys()

    for model_name, label in (
        (settings.TAGGING_MODEL, "primary"),
        (settings.FALLBACK_TAGGING_MODEL, "fallback"),
    ):
        if model_has_key(model_name):
            agent = Agent(model_name, system_prompt=TAGGING_SYSTEM_PROMPT)
            strategies.append(LLMTagStrategy(agent, name=f"{label}:{model_name}"))
        else:
            logger.info(f"No API key for {model_name}; skipping {label} tagging model")

    strategies.append(RuleBasedTagStrategy())
    return strategies


# ============================================================================
# Tag Generator
# ============================================================================

class TagGenerator:
    """
    Generates, stores and curates AI tags.

    Usage:
        tagger = TagGenerator(store)
        result = await tagger.process_all_bills(limit=50)
    """

    def __init__(
        self,
        store: BillStore,
        strategies: Optional[Sequence[TagStrategy]] = None,
        subject_source: Optional[Callable[[], Awaitable[List[BillSubject]]]] = None,
        min_confidence: int = MIN_CONFIDENCE_SCORE,
        batch_size: int = TAG_BATCH_SIZE,
        batch_delay: float = TAG_BATCH_DELAY,
        item_delay: float = TAG_ITEM_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.store = store
        self.strategies = list(strategies) if strategies is not None else build_default_strategies()
        self.subject_source = subject_source or store.list_subjects
        self.min_confidence = min_confidence
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.item_delay = item_delay
        self._sleep = sleep
        self._clock = clock

    async def get_all_subjects(self) -> List[BillSubject]:
        try:
            return await self.subject_source()
        except Exception as e:
            self.logger.error(f"Error fetching subjects: {e}")
            return []

    async def _run_strategies(self, bill_data: dict, subjects: List[BillSubject]) -> List[TagSuggestion]:
        for strategy in self.strategies:
            try:
                return await strategy(bill_data, subjects)
            except Exception as e:
                self.logger.warning(f"Tag strategy {strategy.name} failed: {e}")
        return []

    async def generate_tags_for_bill(self, bill: Bill) -> List[TagSuggestion]:
        """
        Generate tags for one bill.

        Returns:
            Suggestions at or above the confidence threshold, restricted to
            known subjects; [] on any failure
        """
        try:
            self.logger.info(f"🏷️ Generating tags for bill: {bill.bill_id}")

            subjects = await self.get_all_subjects()
            if not subjects:
                self.logger.warning("No subjects available for tagging")
                return []

            known = {s.subject_id: s for s in subjects}
            tags = await self._run_strategies(bill_payload(bill), subjects)

            filtered = []
            for tag in tags:
                subject = known.get(tag.subject_id)
                if subject is None or tag.confidence_score < self.min_confidence:
                    continue
                filtered.append(tag.model_copy(update={"name": tag.name or subject.name}))

            self.logger.info(f"✅ Generated {len(filtered)} tags for bill: {bill.bill_id}")
            return filtered

        except Exception as e:
            self.logger.error(f"❌ Error generating tags for bill {bill.bill_id}: {e}")
            return []

    async def save_tags_for_bill(
        self,
        bill_id: str,
        tags: Sequence[TagSuggestion],
        source: TagSource = TagSource.AI,
    ) -> bool:
        """
        Upsert tags on (bill_id, subject_id). Scores below the threshold are dropped.

        Returns:
            True on success (including nothing to save), False on a store failure
        """
        to_save = [tag for tag in tags if tag.confidence_score >= self.min_confidence]
        if not to_save:
            return True
        try:
            await self.store.upsert_tags(bill_id, to_save, source, now=self._clock())
            self.logger.info(f"💾 Saved {len(to_save)} tags for bill: {bill_id}")
            return True
        except StoreWriteError as e:
            self.logger.error(f"Error saving tags for bill {bill_id}: {e}")
            return False

    async def tag_bill(self, bill: Bill, force: bool = False, source: TagSource = TagSource.AI) -> bool:
        """
        Generate and save tags for one bill, skipping already-tagged bills.

        Never raises.

        Returns:
            True if tags were generated and saved
        """
        try:
            if not force and await self.store.has_tags(bill.bill_id):
                self.logger.debug(f"Bill {bill.bill_id} already tagged; skipping")
                return False
            tags = await self.generate_tags_for_bill(bill)
            if not tags:
                return False
            return await self.save_tags_for_bill(bill.bill_id, tags, source)
        except Exception as e:
            self.logger.error(f"Error tagging bill {bill.bill_id}: {e}")
            return False

    async def process_bill_batch(self, bills: Sequence[Bill], source: TagSource = TagSource.AI) -> TaggingResult:
        """Tag bills one at a time with a short pause between them."""
        processed = failed = 0

        for index, bill in enumerate(bills):
            try:
                tags = await self.generate_tags_for_bill(bill)
                if tags and await self.save_tags_for_bill(bill.bill_id, tags, source):
                    processed += 1
                else:
                    failed += 1
            except Exception as e:
                self.logger.error(f"Error processing bill {bill.bill_id}: {e}")
                failed += 1

            if index < len(bills) - 1 and self.item_delay > 0:
                await self._sleep(self.item_delay)

        return TaggingResult(
            success=processed > 0 or not bills,
            processed=processed,
            failed=failed,
            message=f"Processed {processed} bills, {failed} failed",
        )

    async def process_all_bills(self, limit: int = 50, skip_tagged: bool = True) -> TaggingResult:
        """
        Tag up to `limit` bills, most recently updated first.

        Args:
            limit: Maximum bills to process
            skip_tagged: Leave bills that already have tags alone
        """
        try:
            filters = {}
            if skip_tagged:
                tagged = await self.store.tagged_bill_ids()
                if tagged:
                    filters = {"bill_id": {"$nin": tagged}}

            bills = await self.store.find_bills(filters, sort=[("updated_at", -1)], limit=limit)
        except Exception as e:
            self.logger.error(f"Error loading bills to tag: {e}")
            return TaggingResult(success=False, message=f"Error processing bills: {e}")

        if not bills:
            return TaggingResult(success=True, message="No bills to process")

        processed = failed = 0
        for index in range(0, len(bills), self.batch_size):
            batch = bills[index:index + self.batch_size]
            result = await self.process_bill_batch(batch)
            processed += result.processed
            failed += result.failed

            if index + self.batch_size < len(bills) and self.batch_delay > 0:
                await self._sleep(self.batch_delay)

        return TaggingResult(
            success=processed > 0,
            processed=processed,
            failed=failed,
            message=f"Processed {processed} bills, {failed} failed",
        )

    async def get_tags_for_bill(self, bill_id: str, min_confidence: int = 0) -> List[BillTag]:
        try:
            return await self.store.get_tags(bill_id, min_confidence)
        except Exception as e:
            self.logger.error(f"Error getting tags for bill {bill_id}: {e}")
            return []

    async def submit_tag_feedback(self, tag_id: str, is_accurate: bool) -> bool:
        """
        Record a user's verdict on a tag.

        Keeps a running weighted accuracy and count. The first negative
        verdict on a tag lowers its confidence by 20 (floor 0).

        Returns:
            True if the tag exists and was updated
        """
        try:
            tag = await self.store.get_tag(tag_id)
            if tag is None:
                self.logger.warning(f"Tag not found: {tag_id}")
                return False

            previous = tag.user_feedback or TagFeedback()
            count = previous.feedback_count + 1

            accurate = is_accurate
            if previous.accurate is not None and previous.feedback_count > 0:
                weighted = (int(previous.accurate) * previous.feedback_count + int(is_accurate)) / count
                accurate = weighted >= 0.5

            now = self._clock()
            fields = {
                "user_feedback": TagFeedback(accurate=accurate, feedback_count=count, last_feedback=now),
                "updated_at": now,
            }
            if not is_accurate and previous.feedback_count == 0:
                fields["confidence_score"] = max(0, tag.confidence_score - FEEDBACK_CONFIDENCE_PENALTY)

            return await self.store.update_tag(tag_id, fields)

        except Exception as e:
            self.logger.error(f"Error submitting feedback for tag {tag_id}: {e}")
            return False
