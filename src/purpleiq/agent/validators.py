"""Output validators for the QA workflows.

Text validators (bug report, test plan, automation) start from a score of
100 and subtract penalties for missing sections and weak structure. The
test-case validator works on parsed JSON and scores 0–10 on count,
coverage, completeness and validity.
"""

from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

MIN_TEST_CASES = 10
REQUIRED_TEST_CASE_FIELDS = (
    "testCaseId",
    "description",
    "preconditions",
    "steps",
    "expectedResults",
    "priority",
    "type",
)
POSITIVE_MIN = 30
NEGATIVE_MIN = 20
EDGE_MIN = 20

_PLACEHOLDER_RE = re.compile(r"\[TODO\]|TBD|placeholder", re.I)
_NUMBERED_RE = re.compile(r"\d+\.")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating one workflow output.

    Attributes:
        valid: True if no issues were found.
        issues: Problems that make the output fail validation.
        suggestions: Non-blocking improvement hints.
        quality_score: 0–100 for text outputs, 0–10 for test cases.
        metrics: Validator-specific details (coverage, counts).
    """

    valid: bool
    issues: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    quality_score: float = 0.0
    metrics: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Text validators
# ---------------------------------------------------------------------------


def _check_sections(
    text: str,
    sections: tuple[tuple[str, str], ...],
    label: str,
    issues: list[str],
) -> int:
    penalty = 0
    for name, pattern in sections:
        if not re.search(pattern, text, re.I):
            issues.append(f"Missing required {label}: {name}")
            penalty += 15
    return penalty


def _finish(issues: list[str], suggestions: list[str], score: int) -> ValidationResult:
    return ValidationResult(
        valid=not issues,
        issues=tuple(issues),
        suggestions=tuple(suggestions),
        quality_score=float(max(0, score)),
    )


_BUG_SECTIONS = (
    ("Title/Summary", r"title|summary|subject"),
    ("Description", r"description|overview"),
    ("Steps to Reproduce", r"steps? to reproduce|reproduction steps"),
    ("Expected Behavior", r"expected (?:behavior|result)"),
    ("Actual Behavior", r"actual (?:behavior|result)"),
)


def validate_bug_report(text: str) -> ValidationResult:
    issues: list[str] = []
    suggestions: list[str] = []
    score = 100 - _check_sections(text, _BUG_SECTIONS, "section", issues)

    if _PLACEHOLDER_RE.search(text):
        issues.append("Contains placeholder text (TODO/TBD)")
        suggestions.append("Replace all placeholders with specific information")
        score -= 10

    if len(_NUMBERED_RE.findall(text)) < 3:
        issues.append("Steps to reproduce should have at least 3 numbered steps")
        suggestions.append("Add more detailed reproduction steps")
        score -= 10

    if not re.search(r"environment|browser|os|device", text, re.I):
        suggestions.append("Consider adding environment details (browser, OS, device)")
        score -= 5

    if not re.search(r"priority|severity|critical|high|medium|low", text, re.I):
        suggestions.append("Consider adding priority/severity level")
        score -= 5

    return _finish(issues, suggestions, score)


_PLAN_SECTIONS = (
    ("Test Objectives", r"test objectives?|objectives?"),
    ("Scope", r"scope|in scope|out of scope"),
    ("Test Approach", r"test approach|strategy|methodology"),
    ("Test Types", r"test types?|functional|regression|performance"),
)


def validate_test_plan(text: str) -> ValidationResult:
    issues: list[str] = []
    suggestions: list[str] = []
    score = 100 - _check_sections(text, _PLAN_SECTIONS, "section", issues)

    if _PLACEHOLDER_RE.search(text):
        issues.append("Contains placeholder text (TODO/TBD)")
        suggestions.append("Replace all placeholders with specific information")
        score -= 10

    if len(re.findall(r"##?\s+", text)) < 5:
        issues.append("Test plan should have more structured sections")
        suggestions.append("Add more detailed sections with clear headers")
        score -= 10

    if not re.search(r"bullet|list|•|\d+\.", text, re.I):
        issues.append("Test plan should include actionable items (bullets or numbered lists)")
        suggestions.append("Use bullet points or numbered lists for clarity")
        score -= 10

    return _finish(issues, suggestions, score)


_FRAMEWORKS = ("playwright", "selenium", "cypress", "puppeteer", "webdriver", "testcafe")


def validate_automation(text: str) -> ValidationResult:
    issues: list[str] = []
    suggestions: list[str] = []
    score = 100
    lowered = text.lower()

    if not re.search(r"```|code|example|sample|playwright|selenium|cypress", text, re.I):
        issues.append("Should include code examples or framework recommendations")
        suggestions.append("Add code examples or specific framework suggestions")
        score -= 20

    if not any(fw in lowered for fw in _FRAMEWORKS):
        issues.append("Should recommend specific automation framework")
        suggestions.append("Recommend a specific framework (Playwright, Selenium, Cypress, ...)")
        score -= 15

    if _PLACEHOLDER_RE.search(text):
        issues.append("Contains placeholder text (TODO/TBD)")
        suggestions.append("Replace all placeholders with specific information")
        score -= 10

    if not re.search(r"should|recommend|suggest|consider|implement", text, re.I):
        issues.append("Should include actionable recommendations")
        suggestions.append("Add specific, actionable recommendations")
        score -= 10

    if len(re.findall(r"\d+\.|•|- ", text)) < 3:
        issues.append("Should include at least 3-5 specific suggestions")
        suggestions.append("Expand with more specific automation suggestions")
        score -= 10

    return _finish(issues, suggestions, score)


# ---------------------------------------------------------------------------
# Test cases
# ---------------------------------------------------------------------------


def _case_type(case: dict[str, Any]) -> str:
    return str(case.get("type") or "").lower()


def type_coverage(cases: list[dict[str, Any]]) -> dict[str, int]:
    """Rounded percentage of positive, negative and edge cases."""
    total = len(cases)
    counts = {"positive": 0, "negative": 0, "edge": 0}
    for case in cases:
        kind = _case_type(case)
        for name in counts:
            if name in kind:
                counts[name] += 1
    if total == 0:
        return {name: 0 for name in counts}
    return {name: round(n / total * 100) for name, n in counts.items()}


def _is_complete(case: dict[str, Any]) -> bool:
    return all(case.get(f) not in (None, "", []) for f in REQUIRED_TEST_CASE_FIELDS)


def score_test_cases(cases: list[dict[str, Any]], valid: bool, issue_count: int) -> float:
    """Score a test-case set from 0 to 10."""
    total = len(cases)
    score = 0.0
    if total >= 15:
        score += 2
    elif total >= 10:
        score += 1.5
    elif total >= 5:
        score += 1

    cov = type_coverage(cases)
    if cov["positive"] >= POSITIVE_MIN:
        score += 1
    if cov["negative"] >= NEGATIVE_MIN:
        score += 1
    if cov["edge"] >= EDGE_MIN:
        score += 1

    if total:
        score += sum(1 for c in cases if _is_complete(c)) / total * 3

    if valid:
        score += 2
    elif issue_count <= 2:
        score += 1

    return min(round(score, 1), 10.0)


def validate_test_cases(cases: list[dict[str, Any]], min_cases: int = MIN_TEST_CASES) -> ValidationResult:
    """Check count, coverage mix and required fields of generated test cases."""
    issues: list[str] = []
    suggestions: list[str] = []
    total = len(cases)

    if total < min_cases:
        issues.append(f"Only {total} test cases generated, minimum {min_cases} required")
        suggestions.append(f"Generate at least {min_cases - total} more test cases")

    cov = type_coverage(cases)
    if cov["positive"] < POSITIVE_MIN:
        issues.append(f"Positive test coverage is {cov['positive']}%, should be at least {POSITIVE_MIN}%")
        suggestions.append("Add more positive test cases covering the main user flows")
    if cov["negative"] < NEGATIVE_MIN:
        issues.append(f"Negative test coverage is {cov['negative']}%, should be at least {NEGATIVE_MIN}%")
        suggestions.append("Add more negative test cases for invalid input and error handling")
    if cov["edge"] < EDGE_MIN:
        issues.append(f"Edge case coverage is {cov['edge']}%, should be at least {EDGE_MIN}%")
        suggestions.append("Add more edge cases for boundary values and unusual conditions")

    for i, case in enumerate(cases):
        missing = [f for f in REQUIRED_TEST_CASE_FIELDS if case.get(f) in (None, "", [])]
        if missing:
            label = case.get("testCaseId") or f"#{i + 1}"
            issues.append(f"Test case {label} is missing fields: {', '.join(missing)}")

    valid = not issues and total >= min_cases
    return ValidationResult(
        valid=valid,
        issues=tuple(issues),
        suggestions=tuple(suggestions),
        quality_score=score_test_cases(cases, valid, len(issues)),
        metrics={"coverage": cov, "total": total},
    )


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Parse the outermost ``{...}`` span of *text*; None if absent or invalid."""
    m = _JSON_OBJECT_RE.search(text)
    if not m:
        return None
    try:
        value = json.loads(m.group(0))
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def parse_test_cases(text: str) -> list[dict[str, Any]] | None:
    """Extract the test-case list from a model response.

    Accepts ``{"testCases": [...]}`` or a bare JSON array.
    """
    obj = parse_json_object(text)
    if obj is not None and isinstance(obj.get("testCases"), list):
        return [c for c in obj["testCases"] if isinstance(c, dict)]

    m = _JSON_ARRAY_RE.search(text)
    if m:
        try:
            value = json.loads(m.group(0))
        except json.JSONDecodeError:
            return None
        if isinstance(value, list):
            return [c for c in value if isinstance(c, dict)]
    return None


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _truncate(value: str, limit: int) -> str:
    return value[:limit] + "..." if len(value) > limit else value


def _as_text(value: Any, sep: str) -> str:
    if isinstance(value, list):
        return sep.join(str(v) for v in value)
    return str(value or "")


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def format_test_cases_markdown(cases: list[dict[str, Any]]) -> str:
    """Render test cases as a markdown table."""
    lines = [
        "# Test Cases",
        "",
        "| Test Case ID | Description | Type | Priority | Preconditions | Steps | Expected Results |",
        "|---|---|---|---|---|---|---|",
    ]
    for case in cases:
        row = [
            str(case.get("testCaseId") or ""),
            _truncate(str(case.get("description") or ""), 100),
            str(case.get("type") or ""),
            str(case.get("priority") or ""),
            _truncate(_as_text(case.get("preconditions"), "; "), 50),
            _truncate(_as_text(case.get("steps"), " → "), 80),
            _truncate(_as_text(case.get("expectedResults"), "; "), 100),
        ]
        lines.append("| " + " | ".join(_cell(v) for v in row) + " |")
    return "\n".join(lines)


def summarize_test_cases(
    cases: list[dict[str, Any]],
    module: str,
    validation: ValidationResult,
) -> str:
    """Summary block shown above the test-case table."""
    cov = validation.metrics.get("coverage") or type_coverage(cases)
    priorities = Counter(str(c.get("priority") or "Unspecified") for c in cases)
    lines = [
        "## Test Cases Summary",
        "",
        f"**Module/Feature:** {module}",
        f"**Total Test Cases:** {len(cases)}",
        f"**Coverage:** Positive {cov['positive']}%, Negative {cov['negative']}%, Edge {cov['edge']}%",
        f"**Quality Score:** {validation.quality_score}/10",
    ]
    if validation.issues:
        lines.append("")
        lines.append("**Validation Issues:**")
        lines.extend(f"- {issue}" for issue in validation.issues)
    if priorities:
        lines.append("")
        lines.append("**Priority Distribution:**")
        lines.extend(f"- {name}: {n}" for name, n in priorities.most_common())
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Request analysis fallbacks
# ---------------------------------------------------------------------------

_MODULE_PATTERNS = (
    re.compile(r"(?:for|of|on)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"),
    re.compile(r"(?:module|feature|functionality)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)", re.I),
    re.compile(r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\s+(?:test|testing|cases)", re.I),
)
_REQUIREMENT_PATTERNS = (
    re.compile(r"(?:requirement|should|must|need)\s+([^.!?]+)", re.I),
    re.compile(r"(?:test|verify|check)\s+([^.!?]+)", re.I),
)


def extract_module_name(message: str) -> str:
    for pattern in _MODULE_PATTERNS:
        m = pattern.search(message)
        if m:
            return m.group(1).strip()
    return "General"


def extract_requirements(message: str) -> list[str]:
    found: list[str] = []
    for pattern in _REQUIREMENT_PATTERNS:
        for m in pattern.finditer(message):
            req = m.group(1).strip()
            if len(req) > 5 and req not in found:
                found.append(req)
    return found or ["General functionality"]
