"""
Triage Domain Entities
======================

Domain entities for the ticket triage module.

Contains pure Python business objects for ticket classification, the
defensive parser that turns untrusted model text into a structured result,
and the audit record written for every processing attempt.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from src.config import (
    DEFAULT_CATEGORY,
    DEFAULT_SENTIMENT,
    DEFAULT_URGENCY,
    SENTIMENT_MAX,
    SENTIMENT_MIN,
    TriageCategory,
    UrgencyLevel,
    WorkerProcessStatus,
)


@dataclass
class TriageResult:
    """
    Structured output of classification.

    Always fully populated after normalization; not guaranteed correct.
    """
    ticket_id: str
    category: TriageCategory
    sentiment_score: int
    urgency: UrgencyLevel
    response_draft: str

    def to_dict(self) -> dict:
        return {
            "ticket_id": self.ticket_id,
            "category": self.category.value,
            "sentiment_score": self.sentiment_score,
            "urgency": self.urgency.value,
            "response_draft": self.response_draft,
        }


@dataclass
class TriageOutcome:
    """
    What a classification attempt produced.

    ``raw`` is the model text exactly as received. ``result`` is present
    whenever the text parsed as a JSON object, even if the outcome is invalid.
    """
    valid: bool
    raw: str
    result: Optional[TriageResult] = None
    reason: Optional[str] = None

    @classmethod
    def accepted(cls, result: TriageResult, raw: str) -> "TriageOutcome":
        return cls(valid=True, raw=raw, result=result)

    @classmethod
    def rejected(
        cls,
        raw: str,
        reason: str,
        result: Optional[TriageResult] = None
    ) -> "TriageOutcome":
        return cls(valid=False, raw=raw, result=result, reason=reason)


@dataclass
class WorkerProcessRecord:
    """
    Append-only audit entry, one per processing attempt.
    """
    worker_id: str
    ticket_id: int
    status: WorkerProcessStatus
    attempt: int = 1
    reply_text: Optional[str] = None
    raw_model_output: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None


class TriagePromptBuilder:
    """
    Builds prompts for ticket triage.

    All prompt logic in one place.
    """

    SYSTEM_PROMPT = """You are the triage engine of a customer support backend. You run inside a background worker and your output is stored directly in a database, so it must be machine-readable.

You receive: ticket_id (string), title (a short summary of the issue), content (the full message from the customer) and, optionally, user_context (free text, may be absent). Always use BOTH title and content.

Tasks:
1. Category: exactly one of "Billing", "Technical", "Feature Request".
2. Sentiment: an integer sentiment_score from 1 (very negative) to 10 (very positive), based on title and content.
3. Urgency: exactly one of "High" (service down, payment blocked, severe frustration), "Medium" (workaround exists or issue is not critical), "Low" (suggestions, nice-to-have requests).
4. Draft reply: a polite, empathetic, context-aware response_draft ready to send to the customer. Do not mention internal systems, internal processes or AI. Do not promise anything you cannot be sure of.

Output rules:
- Return exactly ONE JSON object and nothing else: no markdown, no explanations, no comments.
- Schema: {"ticket_id": "string", "category": "Billing | Technical | Feature Request", "sentiment_score": 1, "urgency": "High | Medium | Low", "response_draft": "string"}
- sentiment_score must be an integer between 1 and 10.
- category and urgency must match the allowed values exactly.
- No extra fields, no arrays, no null values.

Output that violates these rules is discarded."""

    @classmethod
    def build_prompt(
        cls,
        ticket_id: str,
        title: str,
        content: str,
        context: Optional[str] = None
    ) -> str:
        """Build the user message; context is included only when non-blank."""
        lines = [
            f"ticket_id: {ticket_id}",
            f"title: {title}",
            f"content: {content}",
        ]
        if context and context.strip():
            lines.append(f"user_context: {context}")
        return "\n".join(lines)

    @classmethod
    def get_system_prompt(cls) -> str:
        """Get the system prompt for triage."""
        return cls.SYSTEM_PROMPT

    @classmethod
    def build_messages(
        cls,
        ticket_id: str,
        title: str,
        content: str,
        context: Optional[str] = None
    ) -> list[dict]:
        return [
            {"role": "system", "content": cls.get_system_prompt()},
            {"role": "user", "content": cls.build_prompt(ticket_id, title, content, context)},
        ]


_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


class TriageResponseParser:
    """
    Turns untrusted model text into a ``TriageOutcome``.

    Two stages: tolerant per-field defaulting, then a single validity gate
    on the response draft.
    """

    @staticmethod
    def strip_code_fence(raw: str) -> str:
        """Trim and remove an optional surrounding ``` / ```json fence."""
        text = raw.strip()
        text = _FENCE_OPEN.sub("", text)
        text = _FENCE_CLOSE.sub("", text)
        return text.strip()

    @staticmethod
    def normalize_category(value: Any) -> TriageCategory:
        if isinstance(value, str):
            try:
                return TriageCategory(value.strip())
            except ValueError:
                pass
        return DEFAULT_CATEGORY

    @staticmethod
    def normalize_urgency(value: Any) -> UrgencyLevel:
        if isinstance(value, str):
            try:
                return UrgencyLevel(value.strip())
            except ValueError:
                pass
        return DEFAULT_URGENCY

    @staticmethod
    def normalize_sentiment(value: Any) -> int:
        """Integer in [1, 10]; integral floats and numeric strings are coerced."""
        score: Optional[int] = None

        if isinstance(value, bool):
            score = None
        elif isinstance(value, int):
            score = value
        elif isinstance(value, float):
            if value.is_integer():
                score = int(value)
        elif isinstance(value, str):
            text = value.strip()
            try:
                score = int(text)
            except ValueError:
                try:
                    as_float = float(text)
                except ValueError:
                    as_float = None
                if as_float is not None and as_float.is_integer():
                    score = int(as_float)

        if score is None or not SENTIMENT_MIN <= score <= SENTIMENT_MAX:
            return DEFAULT_SENTIMENT
        return score

    @classmethod
    def parse(cls, raw: str, fallback_ticket_id: str) -> TriageOutcome:
        """
        Parse and normalize model output.

        Args:
            raw: Model text, untouched
            fallback_ticket_id: Used when the payload has no string ticket_id

        Returns:
            TriageOutcome; never raises for malformed input
        """
        try:
            parsed = json.loads(cls.strip_code_fence(raw))
        except (json.JSONDecodeError, ValueError):
            return TriageOutcome.rejected(raw, "Model output is not valid JSON")

        if not isinstance(parsed, dict):
            return TriageOutcome.rejected(raw, "Model output is not a JSON object")

        ticket_id = parsed.get("ticket_id")
        draft = parsed.get("response_draft")

        result = TriageResult(
            ticket_id=ticket_id if isinstance(ticket_id, str) else fallback_ticket_id,
            category=cls.normalize_category(parsed.get("category")),
            sentiment_score=cls.normalize_sentiment(parsed.get("sentiment_score")),
            urgency=cls.normalize_urgency(parsed.get("urgency")),
            response_draft=draft if isinstance(draft, str) else "",
        )

        if not result.response_draft.strip():
            return TriageOutcome.rejected(raw, "Model output has an empty response_draft", result)

        return TriageOutcome.accepted(result, raw)
