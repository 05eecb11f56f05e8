"""QA workflows, one per intent.

Every workflow turns a request plus assembled document context into an
answer through the provider gateway. Validated workflows check the output
and regenerate with the validator's feedback up to ``max_attempts`` times,
keeping the best-scoring attempt.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from purpleiq.agent.intents import WORKFLOW_NAMES, IntentType
from purpleiq.agent.validators import (
    ValidationResult,
    extract_module_name,
    extract_requirements,
    format_test_cases_markdown,
    parse_json_object,
    parse_test_cases,
    summarize_test_cases,
    validate_automation,
    validate_bug_report,
    validate_test_cases,
    validate_test_plan,
)
from purpleiq.config import WorkflowsCfg
from purpleiq.errors import ProviderError
from purpleiq.providers.gateway import ProviderCallResult, ProviderGateway
from purpleiq.rag import prompts

logger = logging.getLogger(__name__)

VALIDATION_WARNING = "Response did not pass all validation checks. Review issues and suggestions."

Validator = Callable[[str], ValidationResult]


@dataclass(frozen=True)
class WorkflowRequest:
    message: str
    context: str = ""
    preferred_provider: str | None = None
    credentials: Mapping[str, str] | None = None


@dataclass
class WorkflowResult:
    """Outcome of one workflow run.

    Attributes:
        answer: Final answer text.
        workflow: Display name of the workflow.
        call: Gateway result of the call that produced ``answer``.
        validated: True if the answer passed its validator.
        quality_score: Validator score of the answer (None if unvalidated).
        issues: Validator issues of the answer.
        attempts: Generation calls made.
        retries: Backoff retries summed across all gateway calls.
        failover_used: True if any gateway call failed over.
        warnings: User-facing warnings.
        metadata: Workflow-specific extras.
    """

    answer: str
    workflow: str
    call: ProviderCallResult
    validated: bool = False
    quality_score: float | None = None
    issues: tuple[str, ...] = ()
    attempts: int = 1
    retries: int = 0
    failover_used: bool = False
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def fallback_used(self) -> bool:
        return self.call.fallback_used


class Workflow(ABC):
    """Base class for intent workflows."""

    intent: IntentType
    system_prompt: str = prompts.GENERAL_SYSTEM_PROMPT
    label: str = "User Question"
    instruction: str = "Answer based on the context above."
    validates: bool = False

    def __init__(self, gateway: ProviderGateway, config: WorkflowsCfg | None = None) -> None:
        self._gateway = gateway
        self._config = config or WorkflowsCfg()

    @property
    def name(self) -> str:
        return WORKFLOW_NAMES[self.intent]

    async def _call(
        self,
        calls: list[ProviderCallResult],
        request: WorkflowRequest,
        prompt: str,
        system_prompt: str,
        **kwargs: Any,
    ) -> ProviderCallResult:
        result = await self._gateway.call(
            prompt,
            system_prompt,
            request.preferred_provider,
            request.credentials,
            intent=self.intent.value,
            **kwargs,
        )
        calls.append(result)
        return result

    def _result(
        self,
        calls: list[ProviderCallResult],
        answer: str,
        call: ProviderCallResult,
        **kwargs: Any,
    ) -> WorkflowResult:
        return WorkflowResult(
            answer=answer,
            workflow=self.name,
            call=call,
            retries=sum(c.retries for c in calls),
            failover_used=any(c.failover_used for c in calls),
            **kwargs,
        )

    def user_prompt(self, request: WorkflowRequest) -> str:
        return prompts.user_prompt(request.context, request.message, self.label, self.instruction)

    @abstractmethod
    async def run(self, request: WorkflowRequest) -> WorkflowResult:
        """Produce an answer for *request*."""


class AnswerWorkflow(Workflow):
    """Single call, no validation."""

    async def run(self, request: WorkflowRequest) -> WorkflowResult:
        calls: list[ProviderCallResult] = []
        call = await self._call(calls, request, self.user_prompt(request), self.system_prompt)
        return self._result(calls, call.content, call)


class ValidatedWorkflow(Workflow):
    """Generate, validate, and regenerate with feedback."""

    validates = True
    validator: Validator

    async def run(self, request: WorkflowRequest) -> WorkflowResult:
        calls: list[ProviderCallResult] = []
        base_prompt = self.user_prompt(request)
        prompt = base_prompt
        best: tuple[ProviderCallResult, ValidationResult] | None = None
        attempts = 0

        for attempt in range(1, self._config.max_attempts + 1):
            try:
                call = await self._call(calls, request, prompt, self.system_prompt)
            except ProviderError:
                if best is None:
                    raise
                logger.warning("%s attempt %d failed; keeping best earlier response", self.name, attempt)
                break
            if call.fallback_used:
                if best is None:
                    return self._result(calls, call.content, call, attempts=attempt)
                logger.warning(
                    "%s attempt %d fell back to a canned answer; keeping best earlier response",
                    self.name,
                    attempt,
                )
                break
            attempts = attempt

            validation = type(self).validator(call.content)
            logger.debug(
                "%s attempt %d: valid=%s score=%.1f issues=%d",
                self.name,
                attempt,
                validation.valid,
                validation.quality_score,
                len(validation.issues),
            )
            if best is None or validation.quality_score > best[1].quality_score:
                best = (call, validation)
            if validation.valid:
                break
            if attempt < self._config.max_attempts:
                prompt = prompts.improvement_prompt(
                    base_prompt, list(validation.issues), list(validation.suggestions)
                )

        assert best is not None
        call, validation = best
        warnings = [] if validation.valid else [VALIDATION_WARNING]
        return self._result(
            calls,
            call.content,
            call,
            validated=validation.valid,
            quality_score=validation.quality_score,
            issues=validation.issues,
            attempts=attempts,
            warnings=warnings,
            metadata={"suggestions": list(validation.suggestions)},
        )


class BugReportWorkflow(ValidatedWorkflow):
    intent = IntentType.BUG_REPORT_FORMATTING
    system_prompt = prompts.BUG_REPORT_SYSTEM_PROMPT
    label = "User's Bug Description"
    instruction = "Format this into a professional bug report, referencing the project documents where relevant."
    validator = staticmethod(validate_bug_report)


class TestPlanWorkflow(ValidatedWorkflow):
    intent = IntentType.TEST_PLAN_CREATION
    system_prompt = prompts.TEST_PLAN_SYSTEM_PROMPT
    label = "User Request"
    instruction = "Create a comprehensive test plan based on the project documents."
    validator = staticmethod(validate_test_plan)


class AutomationWorkflow(ValidatedWorkflow):
    intent = IntentType.AUTOMATION_SUGGESTION
    system_prompt = prompts.AUTOMATION_SYSTEM_PROMPT
    label = "User Request"
    instruction = "Provide specific, actionable automation suggestions based on the project documents."
    validator = staticmethod(validate_automation)


class DocumentAnalysisWorkflow(AnswerWorkflow):
    intent = IntentType.DOCUMENT_ANALYSIS
    system_prompt = prompts.DOCUMENT_ANALYSIS_SYSTEM_PROMPT
    label = "User Request"
    instruction = "Explain and analyze the relevant project documents in detail."


class GeneralAnswerWorkflow(AnswerWorkflow):
    intent = IntentType.GENERAL_QA_QUESTION
    system_prompt = prompts.GENERAL_SYSTEM_PROMPT


class TestCaseWorkflow(Workflow):
    """Analyse the request, then generate and validate JSON test cases."""

    intent = IntentType.TEST_CASE_GENERATION
    system_prompt = prompts.TEST_CASE_SYSTEM_PROMPT
    validates = True

    async def analyse(
        self,
        request: WorkflowRequest,
        calls: list[ProviderCallResult] | None = None,
    ) -> dict[str, Any]:
        """Module name, requirements and constraints for the request.

        Uses a low-temperature model call; falls back to regex extraction if
        the call fails or does not return JSON.
        """
        calls = calls if calls is not None else []
        try:
            call = await self._call(
                calls,
                request,
                prompts.analysis_prompt(request.message),
                prompts.BASE_SYSTEM_PROMPT,
                temperature=0.3,
                max_tokens=500,
            )
            parsed = None if call.fallback_used else parse_json_object(call.content)
        except ProviderError as exc:
            logger.warning("request analysis failed (%s); using pattern extraction", exc.kind.value)
            parsed = None

        if parsed is None:
            parsed = {}
        requirements = parsed.get("requirements")
        constraints = parsed.get("constraints")
        return {
            "moduleName": str(parsed.get("moduleName") or extract_module_name(request.message)),
            "requirements": requirements if isinstance(requirements, list) and requirements
            else extract_requirements(request.message),
            "constraints": constraints if isinstance(constraints, list) else [],
            "focusAreas": parsed.get("focusAreas") if isinstance(parsed.get("focusAreas"), list) else [],
        }

    async def run(self, request: WorkflowRequest) -> WorkflowResult:
        calls: list[ProviderCallResult] = []
        cfg = self._config
        analysis = await self.analyse(request, calls)
        base_prompt = prompts.case_generation_prompt(
            analysis["moduleName"],
            analysis["requirements"],
            analysis["constraints"],
            request.context,
            cfg.min_test_cases,
        )
        prompt = base_prompt
        best: tuple[ProviderCallResult, list[dict[str, Any]], ValidationResult] | None = None
        last_call: ProviderCallResult | None = None
        attempts = 0

        for attempt in range(1, cfg.max_attempts + 1):
            try:
                call = await self._call(calls, request, prompt, self.system_prompt)
            except ProviderError:
                if best is None and last_call is None:
                    raise
                logger.warning("test case attempt %d failed; keeping best earlier response", attempt)
                break
            if call.fallback_used:
                if last_call is None:
                    return self._result(calls, call.content, call, attempts=attempt, metadata={"analysis": analysis})
                logger.warning(
                    "test case attempt %d fell back to a canned answer; keeping best earlier response", attempt
                )
                break
            attempts = attempt
            last_call = call

            cases = parse_test_cases(call.content)
            if cases is None:
                logger.warning("test case attempt %d returned no parseable JSON", attempt)
                issues = ["Response was not valid JSON with a testCases array"]
                suggestions = ['Respond with ONLY a JSON object of the form {"testCases": [...]}']
            else:
                validation = validate_test_cases(cases, cfg.min_test_cases)
                if best is None or validation.quality_score > best[2].quality_score:
                    best = (call, cases, validation)
                if validation.valid:
                    break
                issues = list(validation.issues)
                suggestions = list(validation.suggestions)
            if attempt < cfg.max_attempts:
                prompt = prompts.improvement_prompt(base_prompt, issues, suggestions)

        if best is None:
            assert last_call is not None
            return self._result(
                calls,
                last_call.content,
                last_call,
                attempts=attempts,
                issues=("Response was not valid JSON with a testCases array",),
                warnings=[VALIDATION_WARNING],
                metadata={"analysis": analysis},
            )

        call, cases, validation = best
        answer = (
            summarize_test_cases(cases, analysis["moduleName"], validation)
            + "\n\n"
            + format_test_cases_markdown(cases)
        )
        return self._result(
            calls,
            answer,
            call,
            validated=validation.valid,
            quality_score=validation.quality_score,
            issues=validation.issues,
            attempts=attempts,
            warnings=[] if validation.valid else [VALIDATION_WARNING],
            metadata={
                "testCases": cases,
                "coverageAnalysis": validation.metrics.get("coverage", {}),
                "qualityScore": validation.quality_score,
                "analysis": analysis,
            },
        )


WORKFLOW_CLASSES: dict[IntentType, type[Workflow]] = {
    IntentType.TEST_CASE_GENERATION: TestCaseWorkflow,
    IntentType.BUG_REPORT_FORMATTING: BugReportWorkflow,
    IntentType.TEST_PLAN_CREATION: TestPlanWorkflow,
    IntentType.AUTOMATION_SUGGESTION: AutomationWorkflow,
    IntentType.DOCUMENT_ANALYSIS: DocumentAnalysisWorkflow,
    IntentType.GENERAL_QA_QUESTION: GeneralAnswerWorkflow,
}


def build_workflows(gateway: ProviderGateway, config: WorkflowsCfg | None = None) -> dict[IntentType, Workflow]:
    """One workflow instance per intent."""
    return {intent: cls(gateway, config) for intent, cls in WORKFLOW_CLASSES.items()}
