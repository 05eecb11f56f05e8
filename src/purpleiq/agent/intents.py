"""Intent classification.

A short provider call asks for one category token. If the call fails or the
answer is not a recognised category, deterministic keyword matching decides,
defaulting to GENERAL_QA_QUESTION.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from enum import Enum

from purpleiq.errors import ProviderError
from purpleiq.providers.gateway import ProviderGateway
from purpleiq.rag.prompts import CLASSIFIER_SYSTEM_PROMPT, classification_prompt

logger = logging.getLogger(__name__)


class IntentType(str, Enum):
    TEST_CASE_GENERATION = "TEST_CASE_GENERATION"
    BUG_REPORT_FORMATTING = "BUG_REPORT_FORMATTING"
    TEST_PLAN_CREATION = "TEST_PLAN_CREATION"
    AUTOMATION_SUGGESTION = "AUTOMATION_SUGGESTION"
    DOCUMENT_ANALYSIS = "DOCUMENT_ANALYSIS"
    GENERAL_QA_QUESTION = "GENERAL_QA_QUESTION"


WORKFLOW_NAMES: dict[IntentType, str] = {
    IntentType.TEST_CASE_GENERATION: "Test Case Generation",
    IntentType.BUG_REPORT_FORMATTING: "Bug Report Formatting",
    IntentType.TEST_PLAN_CREATION: "Test Plan Creation",
    IntentType.AUTOMATION_SUGGESTION: "Automation Suggestion",
    IntentType.DOCUMENT_ANALYSIS: "Document Analysis",
    IntentType.GENERAL_QA_QUESTION: "General QA Answer",
}

# Checked in this order; the first category with a matching keyword wins.
_KEYWORDS: tuple[tuple[IntentType, tuple[str, ...]], ...] = (
    (IntentType.TEST_CASE_GENERATION, ("test case", "test scenario", "generate test")),
    (IntentType.BUG_REPORT_FORMATTING, ("bug report", "format bug", "bug template")),
    (IntentType.TEST_PLAN_CREATION, ("test plan", "test strategy", "testing approach")),
    (IntentType.AUTOMATION_SUGGESTION, ("automation", "automate", "playwright")),
    (IntentType.DOCUMENT_ANALYSIS, ("explain", "analyze", "what does", "understand")),
)

_NON_TOKEN_RE = re.compile(r"[^A-Z_]")


def classify_by_keywords(message: str) -> IntentType:
    """Case-insensitive keyword match; GENERAL_QA_QUESTION when nothing matches."""
    lowered = message.lower()
    for intent, keywords in _KEYWORDS:
        if any(k in lowered for k in keywords):
            return intent
    return IntentType.GENERAL_QA_QUESTION


def parse_intent(token: str) -> IntentType | None:
    """Map a model answer such as ``"BUG_REPORT_FORMATTING."`` to an IntentType."""
    normalized = _NON_TOKEN_RE.sub("", token.upper())
    if not normalized:
        return None
    for intent in IntentType:
        if normalized == intent.value:
            return intent
    for intent in IntentType:
        if intent.value in normalized:
            return intent
    return None


class IntentClassifier:
    """Classify requests through the gateway with a keyword fallback.

    Args:
        gateway: Provider gateway used for the classification call.
        timeout: Per-attempt deadline for the classification call.
    """

    def __init__(self, gateway: ProviderGateway, timeout: float = 10.0) -> None:
        self._gateway = gateway
        self._timeout = timeout

    async def classify(
        self,
        message: str,
        preferred_provider: str | None = None,
        credentials: Mapping[str, str] | None = None,
    ) -> IntentType:
        try:
            result = await self._gateway.call(
                classification_prompt(message),
                CLASSIFIER_SYSTEM_PROMPT,
                preferred_provider,
                credentials,
                timeout=self._timeout,
                max_tokens=50,
                temperature=0.3,
                allow_fallback=False,
            )
        except ProviderError as exc:
            intent = classify_by_keywords(message)
            logger.warning("intent classification call failed (%s); keyword match -> %s", exc.kind.value, intent.value)
            return intent

        intent = parse_intent(result.content)
        if intent is None:
            intent = classify_by_keywords(message)
            logger.info("unrecognised intent %r; keyword match -> %s", result.content[:40], intent.value)
        return intent
