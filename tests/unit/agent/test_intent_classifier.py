"""Tests for intent classification and canned fallback answers."""

from __future__ import annotations

import pytest

from purpleiq.agent.fallbacks import FALLBACK_ANSWERS, fallback_answer
from purpleiq.agent.intents import IntentClassifier, IntentType, classify_by_keywords, parse_intent
from purpleiq.errors import AllProvidersFailedError
from purpleiq.providers.gateway import ProviderCallResult


class FakeGateway:
    def __init__(self, reply: object) -> None:
        self.reply = reply
        self.kwargs: list[dict] = []

    async def call(self, prompt, system_prompt=None, preferred_provider=None, credentials=None, **kwargs):
        self.kwargs.append({"preferred_provider": preferred_provider, **kwargs})
        if isinstance(self.reply, BaseException):
            raise self.reply
        return ProviderCallResult(provider="openai", model="openai/gpt-4o-mini", content=str(self.reply))


# ---------------------------------------------------------------------------
# Keyword fallback
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "message, intent",
    [
        ("Generate test cases for checkout", IntentType.TEST_CASE_GENERATION),
        ("Please write a Bug Report for this crash", IntentType.BUG_REPORT_FORMATTING),
        ("We need a test strategy for release 2", IntentType.TEST_PLAN_CREATION),
        ("How do I automate the signup flow?", IntentType.AUTOMATION_SUGGESTION),
        ("Explain the refund requirement", IntentType.DOCUMENT_ANALYSIS),
        ("What is regression?", IntentType.GENERAL_QA_QUESTION),
    ],
)
def test_classify_by_keywords(message: str, intent: IntentType) -> None:
    assert classify_by_keywords(message) is intent


def test_keyword_order_decides_ties() -> None:
    # Matches both test-case and automation keywords; test cases are checked first.
    assert classify_by_keywords("generate test cases and automate them") is IntentType.TEST_CASE_GENERATION


# ---------------------------------------------------------------------------
# Token parsing
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "token, intent",
    [
        ("BUG_REPORT_FORMATTING", IntentType.BUG_REPORT_FORMATTING),
        ("  test_plan_creation.\n", IntentType.TEST_PLAN_CREATION),
        ('"DOCUMENT_ANALYSIS"', IntentType.DOCUMENT_ANALYSIS),
        ("Category: AUTOMATION_SUGGESTION", IntentType.AUTOMATION_SUGGESTION),
    ],
)
def test_parse_intent(token: str, intent: IntentType) -> None:
    assert parse_intent(token) is intent


@pytest.mark.parametrize("token", ["", "banana", "42"])
def test_parse_intent_unrecognised(token: str) -> None:
    assert parse_intent(token) is None


# ---------------------------------------------------------------------------
# IntentClassifier
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_classifier_uses_model_answer() -> None:
    gateway = FakeGateway("TEST_CASE_GENERATION")
    intent = await IntentClassifier(gateway, timeout=7.0).classify("anything", preferred_provider="gemini")

    assert intent is IntentType.TEST_CASE_GENERATION
    kwargs = gateway.kwargs[0]
    assert kwargs["preferred_provider"] == "gemini"
    assert kwargs["timeout"] == 7.0
    assert kwargs["max_tokens"] == 50
    assert kwargs["temperature"] == 0.3
    assert kwargs["allow_fallback"] is False


@pytest.mark.asyncio
async def test_classifier_falls_back_to_keywords_on_failure() -> None:
    gateway = FakeGateway(AllProvidersFailedError(["openai"], []))
    intent = await IntentClassifier(gateway).classify("Format this bug report please")
    assert intent is IntentType.BUG_REPORT_FORMATTING


@pytest.mark.asyncio
async def test_classifier_falls_back_to_keywords_on_unknown_answer() -> None:
    intent = await IntentClassifier(FakeGateway("I am not sure")).classify("Explain the PRD")
    assert intent is IntentType.DOCUMENT_ANALYSIS


@pytest.mark.asyncio
async def test_classifier_defaults_to_general() -> None:
    intent = await IntentClassifier(FakeGateway("???")).classify("hello")
    assert intent is IntentType.GENERAL_QA_QUESTION


# ---------------------------------------------------------------------------
# Fallback answers
# ---------------------------------------------------------------------------


def test_every_intent_has_a_fallback_answer() -> None:
    assert set(FALLBACK_ANSWERS) == set(IntentType)
    assert all(answer.strip() for answer in FALLBACK_ANSWERS.values())


def test_fallback_answer_lookup() -> None:
    assert fallback_answer("BUG_REPORT_FORMATTING") == FALLBACK_ANSWERS[IntentType.BUG_REPORT_FORMATTING]
    assert fallback_answer("UNKNOWN") is None
