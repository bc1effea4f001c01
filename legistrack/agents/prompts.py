"""
System prompts and prompt builders for the LLM agents.

These prompts define the tagging and summarization tasks.
"""
import json
from typing import List

from legistrack.config.constants import FULL_TEXT_EXCERPT_CHARS, MAX_TAGS_PER_BILL, MIN_CONFIDENCE_SCORE
from legistrack.models import Bill, BillSubject

TAGGING_SYSTEM_PROMPT = (
    "You are an expert legislative analyst specializing in categorizing bills by subject matter."
)

SUMMARY_SYSTEM_PROMPT = """You are a nonpartisan legislative research assistant.
You explain what federal bills do in plain language for ordinary citizens.

- Be factual and neutral: present what the bill does without political bias
- Be specific: name the programs, agencies, dollar amounts and deadlines involved
- If you are unsure about a detail, say so rather than speculating
"""


def bill_payload(bill: Bill) -> dict:
    """The bill fields an LLM sees when tagging; full text is truncated."""
    return {
        "id": bill.bill_id,
        "title": bill.title,
        "short_title": bill.short_title,
        "summary": bill.summary,
        "policy_area": bill.policy_area,
        "subjects": bill.subjects,
        "full_text_excerpt": (
            bill.full_text_content[:FULL_TEXT_EXCERPT_CHARS] if bill.full_text_content else None
        ),
    }


def build_tagging_prompt(bill_data: dict, subjects: List[BillSubject]) -> str:
    """
    Build the tagging prompt for one bill against the full taxonomy.

    Args:
        bill_data: Output of bill_payload()
        subjects: Every subject the model may choose from
    """
    subject_data = [
        {"subject_id": s.subject_id, "name": s.name, "type": s.type.value} for s in subjects
    ]
    return f"""
Analyze this bill and identify the most relevant subjects from the provided taxonomy.

BILL DATA:
{json.dumps(bill_data, indent=2)}

AVAILABLE SUBJECTS:
{json.dumps(subject_data, indent=2)}

For each subject that is relevant to this bill, assign a confidence score (0-100) indicating how strongly the bill relates to that subject.

INSTRUCTIONS:
1. Analyze the bill's title, summary, and any available text
2. Compare the bill's content against the provided subject taxonomy
3. For each relevant subject, determine a confidence score (0-100)
4. Only include subjects with meaningful relevance (don't force matches)
5. Consider both policy areas and legislative subjects
6. If the bill already has subjects or a policy area, prioritize those but don't limit yourself to them

FORMAT YOUR RESPONSE AS A JSON ARRAY with the following structure:
[
  {{"subject_id": "policy-health", "name": "Health", "confidence_score": 85}},
  {{"subject_id": "legislative-medicare", "name": "Medicare", "confidence_score": 75}}
]

IMPORTANT:
- Return ONLY the JSON array with no additional text
- Include the subject_id exactly as provided in the available subjects list
- Ensure confidence scores are integers between 0 and 100
- Only include subjects with a confidence score of {MIN_CONFIDENCE_SCORE} or higher
- Limit your response to the {MAX_TAGS_PER_BILL} most relevant subjects maximum
"""


def build_full_text_summary_prompt(bill: Bill) -> str:
    """Prompt asking for a plain-text explanation of a bill whose text we could not download."""
    return f"""
Provide a comprehensive summary of {bill.bill_type} {bill.number} from the {bill.congress}th Congress.

Title: {bill.title}
Policy area: {bill.policy_area or "unknown"}
Official summary: {bill.summary or "not available"}

Cover:
1. The bill's main purpose
2. Its key provisions, section by section where possible
3. Who it affects and how
4. Its current status ({bill.latest_action.text if bill.latest_action and bill.latest_action.text else "unknown"})

Respond in plain text without markdown headings.
"""
