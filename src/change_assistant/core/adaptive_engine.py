# src/change_assistant/core/adaptive_engine.py
"""
Adaptive Execution Engine - realizes a change through escalating strategies.

The strategy chain is an explicit list, [recommended, *fallbacks], consumed
front to back and capped by the retry budget. Each attempt renders a prompt,
calls the generation backend and validates the answer. Attempts never run in
parallel: a fallback prompt carries the previous attempt's errors.

Terminal outcomes:
- SUCCEEDED: an attempt passed validation
- EXHAUSTED: the chain or the retry budget ran out; last validation returned verbatim
- ABORTED: the backend reported a permanent failure
"""

import asyncio
import re
from typing import List, Optional, Tuple
import logging

from change_assistant.api.client import (
    FailureKind, GenerationBackend, GenerationBackendError, GenerationResult, failure_from_error
)
from change_assistant.config import AssistantSettings
from change_assistant.core.change_models import (
    ChangeAction, ChangeApproach, ChangeConfidenceAssessment, ChangeImpactAnalysis,
    ChangeIntent, ExecutionOutcome, ExecutionResult, ExecutionStrategy, GeneratedChange,
    RepoSymbolicModel, ValidationLevel, ValidationResult
)
from change_assistant.core.events import EventReporter
from change_assistant.core.prompt_builder import BuiltPrompt, ContextualPromptBuilder, PromptContext
from change_assistant.core.validation_engine import SmartValidationEngine

logger = logging.getLogger(__name__)

STRATEGY_DESCRIPTORS = {
    ChangeApproach.HIGH_CONFIDENCE_DIRECT: ExecutionStrategy(
        approach=ChangeApproach.HIGH_CONFIDENCE_DIRECT,
        steps=['analyze', 'generate', 'validate', 'apply'],
        validation_level=ValidationLevel.STANDARD,
    ),
    ChangeApproach.MEDIUM_CONFIDENCE_GUIDED: ExecutionStrategy(
        approach=ChangeApproach.MEDIUM_CONFIDENCE_GUIDED,
        steps=['analyze', 'generate', 'validate', 'verify', 'apply'],
        validation_level=ValidationLevel.STRICT,
    ),
    ChangeApproach.LOW_CONFIDENCE_CONSERVATIVE: ExecutionStrategy(
        approach=ChangeApproach.LOW_CONFIDENCE_CONSERVATIVE,
        steps=['analyze', 'generate', 'validate', 'verify', 'apply'],
        validation_level=ValidationLevel.PARANOID,
    ),
    ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW: ExecutionStrategy(
        approach=ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW,
        steps=['analyze', 'generate', 'validate'],
        validation_level=ValidationLevel.PARANOID,
    ),
}

CODE_BLOCK = re.compile(r"```(?:tsx?|jsx?|javascript|typescript)?\n?([\s\S]*?)\n?```")
ANY_CODE_BLOCK = re.compile(r"```[\s\S]*?```")

PROPOSAL_HEADER = "CHANGE PROPOSAL - REQUIRES HUMAN REVIEW"


def strategy_for(approach: ChangeApproach) -> ExecutionStrategy:
    return STRATEGY_DESCRIPTORS[approach]


def extract_code(response: str) -> str:
    """First fenced code block of a response, else the trimmed response."""
    match = CODE_BLOCK.search(response)
    if match:
        return match.group(1)
    return response.strip()


def _comment(line: str, file_path: str) -> str:
    path = file_path.lower()
    if path.endswith(('.css', '.scss')):
        line = line.replace('*/', '* /')
        return f"/* {line} */" if line else "/* */"
    if path.endswith(('.html', '.htm', '.vue', '.svelte')):
        line = re.sub(r'-(?=-)', '- ', line)
        return f"<!-- {line} -->" if line else "<!-- -->"
    return f"// {line}".rstrip()


def build_proposal(intent: ChangeIntent, assessment: ChangeConfidenceAssessment,
                   analysis: Optional[str] = None) -> str:
    """Wrap an analysis as comments above the untouched original source."""
    component = intent.target_component
    lines = [
        PROPOSAL_HEADER,
        "",
        f"Intent: {intent.description}",
        f"Target: {component.name} ({component.file_path})",
        f"Risk: {assessment.risk_level.value} (confidence {assessment.confidence:.0%})",
    ]
    if intent.request.edits:
        lines.append("Requested edits:")
        lines.extend(f"  - {e.property}: {e.before} → {e.after}" for e in intent.request.edits)

    if analysis:
        lines.append("")
        for raw in ANY_CODE_BLOCK.sub('', analysis).strip().splitlines():
            text = raw.strip()
            if text.startswith('//'):
                text = text[2:].strip()
            elif text.startswith('/*') or text.startswith('*/'):
                text = text.strip('/* ').strip()
            elif text.startswith('*'):
                text = text.lstrip('* ').strip()
            lines.append(text)
    else:
        lines.append("")
        lines.append("No automated analysis available.")

    lines.append("")
    lines.append("Original code preserved below:")

    header = '\n'.join(_comment(line, component.file_path) for line in lines)
    return f"{header}\n\n{component.content}"


class AdaptiveChangeEngine:
    """Drives prompt -> generate -> validate with fallback escalation."""

    def __init__(self, backend: GenerationBackend,
                 validator: Optional[SmartValidationEngine] = None,
                 prompt_builder: Optional[ContextualPromptBuilder] = None,
                 settings: Optional[AssistantSettings] = None,
                 reporter: Optional[EventReporter] = None,
                 call_timeout: Optional[float] = None):
        self.backend = backend
        self.settings = settings or AssistantSettings()
        self.reporter = reporter or EventReporter()
        self.validator = validator or SmartValidationEngine(self.settings, reporter=self.reporter)
        self.prompt_builder = prompt_builder or ContextualPromptBuilder(self.settings)
        self.call_timeout = call_timeout

    async def execute(self, intent: ChangeIntent, assessment: ChangeConfidenceAssessment,
                      impact_analysis: ChangeImpactAnalysis,
                      repo_context: RepoSymbolicModel) -> ExecutionResult:
        """Run the strategy chain until an attempt passes or options run out."""
        chain = assessment.strategy_chain[:self.settings.max_retries]
        component = intent.target_component
        log: List[str] = []
        attempted: List[ChangeApproach] = []
        previous_errors: Tuple[str, ...] = ()
        file_changes: List[GeneratedChange] = []
        validation = ValidationResult.no_changes("no attempt was made")
        backend_error: Optional[str] = None

        self.reporter.phase_started('execution', chain=[a.value for a in chain])
        logger.info(f"Executing {intent.id} on {component.file_path} with chain {[a.value for a in chain]}")

        for attempt, approach in enumerate(chain, start=1):
            attempted.append(approach)
            descriptor = strategy_for(approach)
            log.append(
                f"Attempt {attempt}: {approach.value} "
                f"(steps: {', '.join(descriptor.steps)}; nominal validation: {descriptor.validation_level.value})"
            )
            self.reporter.step(f"Attempt {attempt} with {approach.value}", attempt=attempt)

            context = PromptContext(
                intent=intent,
                assessment=assessment,
                impact_analysis=impact_analysis,
                repo_context=repo_context,
                approach=approach,
                previous_errors=previous_errors,
            )
            prompt = self.prompt_builder.build(context)
            log.append(f"Prompt built: ~{prompt.token_estimate} tokens")

            if approach == ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW:
                file_changes, failure = await self._propose(intent, assessment, prompt, log)
                if failure:
                    backend_error = failure.message
                validation = self.validator.validate(
                    component.content, file_changes[0].new_content, intent, assessment, impact_analysis)
            else:
                file_changes, failure = await self._generate_change(intent, context, prompt, log)
                if failure:
                    backend_error = failure.message
                    if failure.failure == FailureKind.PERMANENT:
                        log.append(f"Permanent backend failure, aborting: {failure.message}")
                        self.reporter.warning(f"Backend failure aborted execution: {failure.message}")
                        return self._finish(file_changes=[], approach=approach, attempted=attempted,
                                            validation=ValidationResult.no_changes(failure.message),
                                            log=log, outcome=ExecutionOutcome.ABORTED,
                                            backend_error=backend_error)
                    validation = ValidationResult.no_changes(failure.message)
                else:
                    validation = self.validator.validate(
                        component.content, file_changes[0].new_content, intent, assessment, impact_analysis)

            if validation.passed:
                log.append(f"Attempt {attempt} passed validation ({validation.confidence:.2f})")
                return self._finish(file_changes, approach, attempted, validation, log,
                                    ExecutionOutcome.SUCCEEDED, backend_error)

            previous_errors = tuple(issue.message for issue in validation.errors)
            log.append(f"Attempt {attempt} failed validation: {'; '.join(previous_errors)}")
            self.reporter.warning(f"{approach.value} attempt failed", errors=len(previous_errors))

        log.append(f"Strategies exhausted after {len(attempted)} attempt(s)")
        return self._finish(file_changes, attempted[-1] if attempted else assessment.recommended_approach,
                            attempted, validation, log, ExecutionOutcome.EXHAUSTED, backend_error)

    # ============================================================================
    # ATTEMPTS
    # ============================================================================

    async def _generate_change(self, intent: ChangeIntent, context: PromptContext, prompt: BuiltPrompt,
                               log: List[str]) -> Tuple[List[GeneratedChange], Optional[GenerationResult]]:
        """One modifying attempt, with the length guard's single feedback retry."""
        component = intent.target_component
        original = component.content

        result = await self._generate(prompt.content, component.file_path, original, log)
        if not result.ok:
            log.append(f"Backend failure ({result.failure.value}): {result.message}")
            return [], result

        proposed = extract_code(result.content)

        if self._is_truncated(original, proposed) and self.settings.feedback_retry:
            log.append(
                f"Response looks truncated ({len(proposed)} of {len(original)} chars), "
                f"retrying with feedback"
            )
            self.reporter.warning("Generated content much shorter than original",
                                  proposed=len(proposed), original=len(original))
            feedback = (
                f"Your previous response was {len(proposed)} characters long but the original file "
                f"is {len(original)} characters. You deleted too much code. Return the COMPLETE file "
                f"with ONLY the requested change applied; every other line must stay exactly as it is."
            )
            retry_prompt = self.prompt_builder.build(PromptContext(
                intent=context.intent,
                assessment=context.assessment,
                impact_analysis=context.impact_analysis,
                repo_context=context.repo_context,
                approach=context.approach,
                previous_errors=context.previous_errors,
                feedback=feedback,
            ))
            retry = await self._generate(retry_prompt.content, component.file_path, original, log)
            if retry.ok:
                proposed = extract_code(retry.content)
            elif retry.failure == FailureKind.PERMANENT:
                return [], retry
            else:
                log.append(f"Feedback retry failed ({retry.failure.value}), keeping first response")

        if original.endswith('\n') and proposed and not proposed.endswith('\n'):
            proposed += '\n'

        change = GeneratedChange(
            file_path=component.file_path,
            action=ChangeAction.MODIFY,
            old_content=original,
            new_content=proposed,
            reasoning=f"Generated with {context.active_approach.value} strategy",
        )
        return [change], None

    async def _propose(self, intent: ChangeIntent, assessment: ChangeConfidenceAssessment,
                       prompt: BuiltPrompt,
                       log: List[str]) -> Tuple[List[GeneratedChange], Optional[GenerationResult]]:
        """Human-review attempt: a commented proposal above the original."""
        component = intent.target_component
        result = await self._generate(prompt.content, component.file_path, component.content, log)

        analysis = None
        failure = None
        if result.ok:
            analysis = result.content
        else:
            failure = result
            log.append(f"Proposal analysis unavailable ({result.failure.value}): {result.message}")

        change = GeneratedChange(
            file_path=component.file_path,
            action=ChangeAction.MODIFY,
            old_content=component.content,
            new_content=build_proposal(intent, assessment, analysis),
            reasoning="Change proposal for human review; original code left untouched",
        )
        log.append("Built change proposal for human review")
        return [change], failure

    async def _generate(self, instruction: str, file_path: str, current_content: str,
                        log: List[str]) -> GenerationResult:
        """Call the backend, waiting out rate limits without spending an attempt."""
        waits = 0
        while True:
            result = await self._call_backend(instruction, file_path, current_content)
            if result.failure != FailureKind.RATE_LIMITED:
                return result

            if waits >= self.settings.max_rate_limit_waits:
                log.append(f"Rate limit persisted after {waits} waits")
                return GenerationResult.failed(
                    FailureKind.TRANSIENT, f"Rate limit persisted after {waits} waits: {result.message}")

            waits += 1
            delay = result.retry_after if result.retry_after is not None else self.settings.default_retry_after
            log.append(f"Rate limited, waiting {delay:.1f}s ({waits}/{self.settings.max_rate_limit_waits})")
            self.reporter.metric('rate_limit_wait', delay)
            await asyncio.sleep(delay)

    async def _call_backend(self, instruction: str, file_path: str,
                            current_content: str) -> GenerationResult:
        try:
            return await asyncio.wait_for(
                self.backend.generate(instruction, file_path=file_path, current_content=current_content),
                timeout=self.call_timeout,
            )
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.warning(f"Generation call for {file_path} was cancelled")
            return GenerationResult.failed(FailureKind.CANCELLED, "Generation call was cancelled")
        except asyncio.TimeoutError:
            logger.warning(f"Generation call for {file_path} timed out after {self.call_timeout}s")
            return GenerationResult.failed(FailureKind.TRANSIENT, f"Generation timed out after {self.call_timeout}s")
        except GenerationBackendError as e:
            return failure_from_error(e)
        except Exception as e:
            logger.error(f"Generation backend raised {type(e).__name__} for {file_path}: {e}")
            return GenerationResult.failed(FailureKind.TRANSIENT, f"{type(e).__name__}: {e}")

    def _is_truncated(self, original: str, proposed: str) -> bool:
        if not original:
            return False
        return len(proposed) < len(original) * self.settings.length_guard_ratio

    def _finish(self, file_changes: List[GeneratedChange], approach: ChangeApproach,
                attempted: List[ChangeApproach], validation: ValidationResult, log: List[str],
                outcome: ExecutionOutcome, backend_error: Optional[str]) -> ExecutionResult:
        requires_review = approach == ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW
        self.reporter.phase_completed('execution', outcome=outcome.value, strategy=approach.value,
                                      attempts=len(attempted))
        self.reporter.decision(f"Execution {outcome.value} with {approach.value}", validation.confidence)
        logger.info(f"Execution {outcome.value} after {len(attempted)} attempt(s) using {approach.value}")

        return ExecutionResult(
            file_changes=file_changes,
            strategy_used=approach,
            validation=validation,
            execution_log=log,
            outcome=outcome,
            attempts=len(attempted),
            strategies_attempted=list(attempted),
            requires_human_review=requires_review,
            backend_error=backend_error,
        )
