"""
Document Classifier  —  best-effort AI metadata
════════════════════════════════════════════════

Derives a Classification (type, tags, summary, priority) for a whole document
with one chat-completion call constrained to a JSON object.

Only the head of the document (settings.classifier_prefix_chars, default 4000)
is sent — enough for the model to recognise the document type, and it keeps
the call fast and cheap regardless of document size.

Failure policy
──────────────
Classification must never block ingestion. ``classify()`` always returns a
valid Classification:

  - fields missing (or empty) in the model's JSON → per-field defaults
  - call fails (network, auth, missing key, timeout) → full default
  - response is not valid JSON / not an object    → full default

The cause is logged; nothing is raised.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from knowledge_factory.core.clients import get_openai_client
from knowledge_factory.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_TYPE     = "General"
DEFAULT_TAGS     = ("Unclassified",)
DEFAULT_SUMMARY  = "Content uploaded via Knowledge Factory."
DEFAULT_PRIORITY = 3

MIN_PRIORITY = 1
MAX_PRIORITY = 5

SYSTEM_PROMPT = "You are a professional knowledge librarian for an internal sales and operations knowledge base."

USER_PROMPT_TEMPLATE = """Analyze the following document content and provide a classification in JSON format.
Include:
- type: (e.g., "Case Study", "Product Manual", "SOP", "Avatar Info", "Objection Handling")
- tags: Array of keywords (e.g., ["Cloud", "Security", "Law Enforcement"])
- summary: A 1-sentence summary of the content.
- priority: (1-5)

Document Name: {file_name}
Content Snippet (first {prefix_chars} chars):
{snippet}

Return ONLY valid JSON."""


# ---------------------------------------------------------------------------
# Classification value
# ---------------------------------------------------------------------------

@dataclass
class Classification:
    type:     str       = DEFAULT_TYPE
    tags:     list[str] = field(default_factory=lambda: list(DEFAULT_TAGS))
    summary:  str       = DEFAULT_SUMMARY
    priority: int       = DEFAULT_PRIORITY

    @classmethod
    def default(cls) -> "Classification":
        return cls()

    @classmethod
    def from_payload(cls, payload: Any) -> "Classification":
        """Build from the model's parsed JSON, substituting defaults per field."""
        if not isinstance(payload, dict):
            return cls.default()

        doc_type = payload.get("type")
        summary  = payload.get("summary")

        return cls(
            type=str(doc_type) if doc_type else DEFAULT_TYPE,
            tags=_coerce_tags(payload.get("tags")),
            summary=str(summary) if summary else DEFAULT_SUMMARY,
            priority=_coerce_priority(payload.get("priority")),
        )

    def as_metadata(self) -> dict:
        """
        Fresh dict for one stored record. Called once per chunk so no two
        records share a mutable tags list.
        """
        return {
            "type":     self.type,
            "tags":     list(self.tags),
            "summary":  self.summary,
            "priority": self.priority,
        }


def _coerce_tags(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else list(DEFAULT_TAGS)
    if isinstance(value, (list, tuple)) and value:
        return [str(tag) for tag in value]
    return list(DEFAULT_TAGS)


def _coerce_priority(value: Any) -> int:
    if not value or isinstance(value, bool):
        return DEFAULT_PRIORITY
    try:
        priority = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PRIORITY
    return min(MAX_PRIORITY, max(MIN_PRIORITY, priority))


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

class DocumentClassifier:
    """
    Usage:
        classifier = DocumentClassifier()
        classification = await classifier.classify(text, "pricing.pdf")
    """

    def __init__(
        self,
        client=None,
        model:        str | None = None,
        prefix_chars: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._client       = client
        self._model        = model or settings.classifier_model
        self._prefix_chars = prefix_chars or settings.classifier_prefix_chars
        self._timeout      = timeout_seconds if timeout_seconds is not None else settings.classifier_timeout_seconds

    async def classify(self, text: str, file_name: str) -> Classification:
        try:
            payload = await asyncio.wait_for(
                self._request_classification(text, file_name),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Classification timed out, falling back to default | file=%s timeout=%gs",
                file_name, self._timeout,
            )
            return Classification.default()
        except Exception as exc:
            logger.warning(
                "Classification failed, falling back to default | file=%s error=%s: %s",
                file_name, type(exc).__name__, exc,
            )
            return Classification.default()

        classification = Classification.from_payload(payload)
        logger.info(
            "Classified | file=%s type=%s priority=%d tags=%s",
            file_name, classification.type, classification.priority, classification.tags,
        )
        return classification

    async def _request_classification(self, text: str, file_name: str) -> Any:
        client = self._client or get_openai_client()

        prompt = USER_PROMPT_TEMPLATE.format(
            file_name=file_name,
            prefix_chars=self._prefix_chars,
            snippet=text[: self._prefix_chars],
        )

        response = await client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user",   "content": prompt},
            ],
            response_format={"type": "json_object"},
        )

        return json.loads(response.choices[0].message.content or "{}")
