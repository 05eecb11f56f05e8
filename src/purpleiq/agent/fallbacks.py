"""Canned answers used when every provider has failed."""

from __future__ import annotations

from purpleiq.agent.intents import IntentType

_SERVICE_NOTE = (
    "_The AI service is currently unavailable, so this is a generic response. "
    "Please try again in a few minutes for an answer based on your project documents._"
)

FALLBACK_ANSWERS: dict[IntentType, str] = {
    IntentType.TEST_CASE_GENERATION: (
        "## Test Case Checklist\n\n"
        "While generation is unavailable, cover at least these categories for the feature:\n\n"
        "1. Positive paths: the main user flows with valid input.\n"
        "2. Negative paths: invalid input, missing required fields, unauthorized access.\n"
        "3. Edge cases: boundary values, empty states, very long input, concurrent actions.\n"
        "4. Error handling: network failures, timeouts, server errors.\n\n"
        f"{_SERVICE_NOTE}"
    ),
    IntentType.BUG_REPORT_FORMATTING: (
        "## Bug Report Template\n\n"
        "**Title:** One line describing the defect\n\n"
        "**Description:** What is wrong and where\n\n"
        "**Steps to Reproduce:**\n1. ...\n2. ...\n3. ...\n\n"
        "**Expected Behavior:** What should happen\n\n"
        "**Actual Behavior:** What happens instead\n\n"
        "**Environment:** Browser, OS, device, build\n\n"
        "**Priority/Severity:** High / Medium / Low\n\n"
        f"{_SERVICE_NOTE}"
    ),
    IntentType.TEST_PLAN_CREATION: (
        "## Test Plan Outline\n\n"
        "1. Test Objectives\n2. Scope (in scope / out of scope)\n3. Test Approach\n"
        "4. Test Types\n5. Environment and Test Data\n6. Risks\n7. Schedule and Resources\n"
        "8. Entry and Exit Criteria\n\n"
        f"{_SERVICE_NOTE}"
    ),
    IntentType.AUTOMATION_SUGGESTION: (
        "## Automation Starting Points\n\n"
        "- Automate stable, high-value regression flows first.\n"
        "- Prefer a modern framework such as Playwright or Cypress for web UIs.\n"
        "- Keep tests independent and data-driven; run them in CI on every change.\n\n"
        f"{_SERVICE_NOTE}"
    ),
    IntentType.DOCUMENT_ANALYSIS: (
        "Document analysis is temporarily unavailable. Your documents are still indexed "
        "and will be used once the service recovers.\n\n"
        f"{_SERVICE_NOTE}"
    ),
    IntentType.GENERAL_QA_QUESTION: (
        "I can't reach the AI service right now, so I can't answer this question.\n\n"
        f"{_SERVICE_NOTE}"
    ),
}


def fallback_answer(intent: str) -> str | None:
    """Canned answer for *intent* (an IntentType value), or None if unknown."""
    try:
        return FALLBACK_ANSWERS[IntentType(intent)]
    except ValueError:
        return None
