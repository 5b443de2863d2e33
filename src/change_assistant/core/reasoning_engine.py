# src/change_assistant/core/reasoning_engine.py
"""
Reasoning Orchestrator - the top-level entry point of the change pipeline.

SYNC for local operations (assessment, dry-run previews, summaries)
ASYNC for the execution loop (generation backend calls)

Flow: assess -> execute (prompt, generate, validate, fall back) -> summarize.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence
import logging

from change_assistant.api.client import GenerationBackend
from change_assistant.config import AssistantSettings
from change_assistant.core.adaptive_engine import AdaptiveChangeEngine, STRATEGY_DESCRIPTORS
from change_assistant.core.bundle_loader import ChangeBundle
from change_assistant.core.change_models import (
    BatchResult, ChangeApproach, ChangeAssistantError, ChangeConfidenceAssessment,
    ChangeImpactAnalysis, ChangeIntent, ChangePreview, ChangeRequest, ChangeResult,
    DryRunResult, ExecutionOutcome, ExecutionResult, ReasoningError, RepoSymbolicModel,
    RiskLevel, Severity, TargetComponent, ValidationLevel
)
from change_assistant.core.confidence_engine import ChangeConfidenceEngine
from change_assistant.core.events import EventReporter, EventSink
from change_assistant.core.prompt_builder import ContextualPromptBuilder
from change_assistant.core.validation_engine import SmartValidationEngine

logger = logging.getLogger(__name__)


class ReasoningOrchestrator:
    """
    Sequences the confidence engine, the execution engine and summary generation.

    SYNC methods: assess, dry_run, generate_summary, capabilities
    ASYNC methods: run, process_batch
    """

    def __init__(self, backend: Optional[GenerationBackend] = None,
                 settings: Optional[AssistantSettings] = None,
                 sink: Optional[EventSink] = None):
        self.settings = settings or AssistantSettings()
        self.reporter = EventReporter(sink)
        self.backend = backend

        self.confidence_engine = ChangeConfidenceEngine(self.settings)
        self.prompt_builder = ContextualPromptBuilder(self.settings)
        self.validator = SmartValidationEngine(self.settings, reporter=self.reporter)
        self.execution_engine: Optional[AdaptiveChangeEngine] = None
        if backend is not None:
            self.execution_engine = AdaptiveChangeEngine(
                backend,
                validator=self.validator,
                prompt_builder=self.prompt_builder,
                settings=self.settings,
                reporter=self.reporter,
            )

        logger.info(f"ReasoningOrchestrator initialized (backend: {type(backend).__name__ if backend else 'none'})")

    # ============================================================================
    # ANALYSIS (SYNC)
    # ============================================================================

    def assess(self, request: ChangeRequest, impact_analysis: ChangeImpactAnalysis,
               target_component: TargetComponent,
               repo_model: RepoSymbolicModel) -> ChangeConfidenceAssessment:
        """Confidence assessment. Any failure here is fatal for the run."""
        self.reporter.phase_started('assessment', request_id=request.id)
        try:
            assessment = self.confidence_engine.assess(request, impact_analysis, target_component, repo_model)
        except Exception as e:
            raise ReasoningError(f"Could not assess request {request.id}: {e}") from e

        self.reporter.metric('confidence', assessment.confidence)
        self.reporter.decision(f"Recommended {assessment.recommended_approach.value}", assessment.confidence)
        self.reporter.phase_completed('assessment', risk=assessment.risk_level.value)
        return assessment

    def dry_run(self, request: ChangeRequest, impact_analysis: ChangeImpactAnalysis,
                target_component: TargetComponent, repo_model: RepoSymbolicModel) -> DryRunResult:
        """Assessment plus preview. Never calls the backend or the validator."""
        logger.info(f"Dry run for {request.id}")
        assessment = self.assess(request, impact_analysis, target_component, repo_model)

        preview = ChangePreview(
            approach=assessment.recommended_approach,
            expected_changes=self._expected_changes(impact_analysis),
            risks=self._identify_risks(assessment),
            recommendations=self._recommendations(assessment, impact_analysis),
        )
        return DryRunResult(assessment=assessment, impact_analysis=impact_analysis, preview=preview)

    # ============================================================================
    # EXECUTION (ASYNC)
    # ============================================================================

    async def run(self, request: ChangeRequest, impact_analysis: ChangeImpactAnalysis,
                  target_component: TargetComponent, repo_model: RepoSymbolicModel) -> ChangeResult:
        """
        Full pipeline for one request.

        Raises ReasoningError when the request cannot be assessed or prompted.
        Validation failures are returned in the result, never raised.
        """
        if self.execution_engine is None:
            raise ChangeAssistantError("No generation backend configured; use dry_run for previews")

        logger.info(f"Processing {request.id}: {request.summary()}")
        self.reporter.phase_started('run', request_id=request.id)

        assessment = self.assess(request, impact_analysis, target_component, repo_model)
        intent = ChangeIntent(request=request, target_component=target_component)

        execution = await self.execution_engine.execute(intent, assessment, impact_analysis, repo_model)

        success = (execution.outcome == ExecutionOutcome.SUCCEEDED and execution.validation.passed
                   and not execution.requires_human_review)
        summary = self.generate_summary(request, target_component, assessment, impact_analysis, execution)

        self.reporter.phase_completed('run', success=success, strategy=execution.strategy_used.value)
        logger.info(f"Request {request.id} {'succeeded' if success else 'failed'} "
                    f"with {execution.strategy_used.value}")

        return ChangeResult(
            success=success,
            request_id=request.id,
            file_changes=execution.file_changes,
            assessment=assessment,
            validation=execution.validation,
            execution=execution,
            summary=summary,
            error=None if success else self._failure_reason(execution),
        )

    async def process_batch(self, jobs: Sequence[ChangeBundle]) -> BatchResult:
        """Run independent requests concurrently. One job's fatal error is reported, not propagated."""
        logger.info(f"Processing batch of {len(jobs)} requests")
        outcomes = await asyncio.gather(
            *(self.run(job.request, job.impact_analysis, job.target_component, job.repo_model) for job in jobs),
            return_exceptions=True,
        )

        results: List[ChangeResult] = []
        for job, outcome in zip(jobs, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Request {job.request.id} failed: {type(outcome).__name__}: {outcome}")
                results.append(ChangeResult(success=False, request_id=job.request.id, error=str(outcome)))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)

        assessments = [r.assessment for r in results if r.assessment is not None]
        if assessments:
            overall_confidence = sum(a.confidence for a in assessments) / len(assessments)
            overall_risk = max((a.risk_level for a in assessments), key=lambda r: r.rank)
            approach = max((a.recommended_approach for a in assessments), key=lambda a: a.conservatism)
        else:
            overall_confidence = 0.0
            overall_risk = RiskLevel.CRITICAL
            approach = ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW

        by_component: Dict[str, List[str]] = {}
        for job in jobs:
            by_component.setdefault(job.target_component.file_path, []).append(job.request.id)

        batch = BatchResult(
            results=results,
            overall_confidence=round(overall_confidence, 4),
            overall_risk=overall_risk,
            recommended_approach=approach,
            by_component=by_component,
        )
        logger.info(f"Batch complete: {sum(1 for r in results if r.success)}/{len(results)} succeeded")
        return batch

    # ============================================================================
    # SUMMARY
    # ============================================================================

    def generate_summary(self, request: ChangeRequest, target_component: TargetComponent,
                         assessment: ChangeConfidenceAssessment, impact_analysis: ChangeImpactAnalysis,
                         execution: ExecutionResult) -> str:
        """Narrative explanation of what was attempted and why."""
        f = assessment.factors
        scope = impact_analysis.expected_scope
        validation = execution.validation
        metrics = validation.metrics
        critical_rules = sum(1 for r in impact_analysis.preservation_rules if r.critical)

        lines = [
            "CHANGE REQUEST",
            f"  Intent: {request.summary()}",
            f"  Target: {target_component.name} ({target_component.file_path})",
        ]
        lines.extend(f"  - {e.property}: {e.before} → {e.after} ({e.category.value})" for e in request.edits)

        lines += [
            "",
            "INTELLIGENCE ANALYSIS",
            f"  Overall confidence: {assessment.confidence:.1%}",
            f"  Visual clarity: {f.visual_clarity:.0%}",
            f"  Component understanding: {f.component_understanding:.0%}",
            f"  Change simplicity: {f.change_complexity:.0%}",
            f"  Context completeness: {f.context_completeness:.0%}",
            f"  Risk level: {assessment.risk_level.value}",
            f"  Recommended approach: {assessment.recommended_approach.value}",
            "",
            "IMPACT ANALYSIS",
            f"  Scope: {scope.change_type.value} (~{scope.expected_lines} lines, {scope.expected_files} files)",
            f"  Direct changes: {len(impact_analysis.direct_changes)}",
            f"  Cascade changes: {len(impact_analysis.cascade_changes)} "
            f"({len(impact_analysis.required_cascades)} required)",
            f"  Preservation rules: {len(impact_analysis.preservation_rules)} ({critical_rules} critical)",
            "",
            "EXECUTION RESULTS",
            f"  Strategy used: {execution.strategy_used.value}",
            f"  Strategies attempted: {', '.join(a.value for a in execution.strategies_attempted) or 'none'}",
            f"  Attempts: {execution.attempts}",
            f"  Files modified: {metrics.files_modified}",
            f"  Lines added: {metrics.lines_added}, removed: {metrics.lines_removed}, "
            f"modified: {metrics.lines_modified}",
            f"  Change ratio: {metrics.change_ratio:.1%}",
            "",
            "VALIDATION RESULTS",
            f"  Status: {'PASSED' if validation.passed else 'FAILED'}"
            + (f" ({validation.level.value} validation)" if validation.level else ""),
            f"  Validation confidence: {validation.confidence:.1%}",
        ]

        if validation.issues:
            lines += ["", "ISSUES"]
            for issue in validation.issues:
                lines.append(f"  - [{issue.severity.value}] {issue.type.value}: {issue.message}")
                if issue.suggestion:
                    lines.append(f"    Suggestion: {issue.suggestion}")

        if validation.warnings:
            lines += ["", "WARNINGS"]
            for warning in validation.warnings:
                lines.append(f"  - {warning.type}: {warning.message}")

        lines += ["", "OUTCOME", f"  {self._outcome_text(execution)}"]
        return '\n'.join(lines)

    def capabilities(self) -> Dict[str, Any]:
        """What this orchestrator can do."""
        return {
            'intelligence': [
                'Multi-factor confidence assessment (visual clarity, component understanding, '
                'change complexity, context completeness)',
                'Risk tier adjustment from confidence and required cascades',
                'Confidence-proportional strategy selection with ordered fallbacks',
            ],
            'strategies': {
                approach.value: {
                    'threshold': self.confidence_engine.confidence_threshold(approach),
                    'steps': descriptor.steps,
                    'validation_level': descriptor.validation_level.value,
                }
                for approach, descriptor in STRATEGY_DESCRIPTORS.items()
            },
            'validation': {
                'levels': [level.value for level in ValidationLevel],
                'checks': ['syntax', 'intent-alignment', 'preservation', 'scope', 'confidence-limits'],
                'reflection': ['literal', *self.validator.reflection_registry.approaches],
            },
            'features': [
                'Dry-run previews without backend calls',
                'Rate-limit waits that do not spend the retry budget',
                'Length guard with a feedback retry',
                'Human-review change proposals',
                'Concurrent batch processing',
            ],
        }

    # ============================================================================
    # PREVIEW HELPERS
    # ============================================================================

    def _expected_changes(self, impact: ChangeImpactAnalysis) -> List[str]:
        scope = impact.expected_scope
        changes = [f"{scope.change_type.value} change affecting ~{scope.expected_lines} lines"]
        changes.extend(f"{c.type} modification: {c.target}" for c in impact.direct_changes)
        if impact.cascade_changes:
            changes.append(f"{len(impact.cascade_changes)} related changes required")
        return changes

    def _identify_risks(self, assessment: ChangeConfidenceAssessment) -> List[str]:
        risks = []
        if assessment.risk_level != RiskLevel.LOW:
            risks.append(f"{assessment.risk_level.value} risk change")
        if assessment.confidence < self.settings.medium_confidence:
            risks.append("Low confidence in change execution")
        if assessment.factors.visual_clarity < 0.5:
            risks.append("Unclear visual intent")
        if assessment.factors.component_understanding < 0.5:
            risks.append("Limited component understanding")
        return risks or ["Low risk change"]

    def _recommendations(self, assessment: ChangeConfidenceAssessment,
                         impact: ChangeImpactAnalysis) -> List[str]:
        recommendations = []
        if assessment.factors.visual_clarity < 0.5:
            recommendations.append("Consider providing more specific visual guidance")
        if impact.expected_scope.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            recommendations.append("Consider breaking this into smaller changes")
        if assessment.factors.context_completeness < 0.7:
            recommendations.append("Repository analysis could be improved for better results")
        if assessment.recommended_approach == ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW:
            recommendations.append("Human review is recommended before applying changes")
        return recommendations or ["Change is ready for execution"]

    @staticmethod
    def _outcome_text(execution: ExecutionResult) -> str:
        if execution.outcome == ExecutionOutcome.ABORTED:
            return f"Execution aborted by a backend failure: {execution.backend_error}"
        if execution.requires_human_review:
            return "Change proposal generated; human review required before applying"
        if execution.outcome == ExecutionOutcome.SUCCEEDED:
            return "Change validated and ready to apply"
        return (f"Change failed validation after {execution.attempts} attempt(s); "
                f"review the issues above before applying anything")

    @staticmethod
    def _failure_reason(execution: ExecutionResult) -> str:
        if execution.outcome == ExecutionOutcome.ABORTED:
            return f"Backend failure: {execution.backend_error}"
        if execution.requires_human_review and execution.validation.passed:
            return "Human review required before applying the proposal"
        errors = [i.message for i in execution.validation.issues if i.severity == Severity.ERROR]
        if errors:
            return errors[0]
        return f"Execution {execution.outcome.value}"


def create_orchestrator(backend: Optional[GenerationBackend] = None,
                        settings: Optional[AssistantSettings] = None,
                        sink: Optional[EventSink] = None) -> ReasoningOrchestrator:
    """Factory function to create an orchestrator."""
    return ReasoningOrchestrator(backend=backend, settings=settings, sink=sink)
