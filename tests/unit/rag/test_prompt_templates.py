"""Tests for prompt template builders."""

from __future__ import annotations

import json

from purpleiq.rag import prompts


def test_user_prompt_sections() -> None:
    text = prompts.user_prompt("CTX", "Format this bug", "Bug Description", "Produce a report.")
    assert text.startswith("Context from Project Documents:\n\nCTX")
    assert "Bug Description: Format this bug" in text
    assert text.endswith("Produce a report.")


def test_user_prompt_without_context() -> None:
    assert prompts.NO_CONTEXT in prompts.user_prompt("", "q", "Question", "Answer.")


def test_classification_prompt_embeds_message() -> None:
    text = prompts.classification_prompt("automate login with playwright")
    assert 'User message: "automate login with playwright"' in text
    assert "TEST_CASE_GENERATION" in text


def test_case_generation_prompt() -> None:
    text = prompts.case_generation_prompt(
        "User Login", ["lock after 5 attempts"], [], "CTX", min_cases=12
    )
    assert "Module/Feature: User Login" in text
    assert json.dumps(["lock after 5 attempts"]) in text
    assert "at least 12 test cases" in text
    assert "TC_USER_LOGIN_001" in text


def test_improvement_prompt_lists_feedback() -> None:
    text = prompts.improvement_prompt("ORIGINAL", ["Missing steps"], ["Add numbered steps"])
    assert text.startswith("ORIGINAL")
    assert "ISSUES FOUND:\n1. Missing steps" in text
    assert "SUGGESTIONS FOR IMPROVEMENT:\n1. Add numbered steps" in text
    assert text.endswith("Please regenerate the response addressing all issues above.")
