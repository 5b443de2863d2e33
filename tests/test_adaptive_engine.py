# FILE: tests/test_adaptive_engine.py
"""
Tests for the Adaptive Execution Engine.

The backend is always a ScriptedBackend or a local stand-in; nothing here
touches the network.
"""

import asyncio

import pytest

from change_assistant.api.client import FailureKind, GenerationResult, RateLimitError
from change_assistant.config import AssistantSettings
from change_assistant.core.adaptive_engine import (
    PROPOSAL_HEADER, AdaptiveChangeEngine, build_proposal, extract_code, strategy_for
)
from change_assistant.core.change_models import (
    ChangeApproach, ChangeIntent, ExecutionOutcome, IssueType, TargetComponent, ValidationLevel
)
from change_assistant.core.events import EventReporter
from conftest import BUTTON_FONT_SIZE_CHANGED, BUTTON_GUTTED, BUTTON_SOURCE, ScriptedBackend

BROKEN_BRACE = BUTTON_FONT_SIZE_CHANGED + "{\n"

DIRECT = ChangeApproach.HIGH_CONFIDENCE_DIRECT
GUIDED = ChangeApproach.MEDIUM_CONFIDENCE_GUIDED
CONSERVATIVE = ChangeApproach.LOW_CONFIDENCE_CONSERVATIVE
HUMAN = ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW


class SlowBackend:
    """Never answers in time."""

    def __init__(self):
        self.calls = 0

    async def generate(self, instruction, *, file_path, current_content):
        self.calls += 1
        await asyncio.sleep(10)
        return GenerationResult.success(current_content)


@pytest.fixture
def run_direct(font_size_intent, direct_assessment, minimal_impact, repo_model, sink):
    """Execute the font-size request against a backend."""
    async def _run(backend, settings=None, **kwargs):
        engine = AdaptiveChangeEngine(backend, settings=settings, reporter=EventReporter(sink), **kwargs)
        return await engine.execute(font_size_intent, direct_assessment, minimal_impact, repo_model)
    return _run


# =============================================================================
# HAPPY PATH
# =============================================================================

class TestFirstAttempt:
    @pytest.mark.asyncio
    async def test_direct_success(self, run_direct):
        backend = ScriptedBackend([BUTTON_FONT_SIZE_CHANGED])
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.SUCCEEDED
        assert result.strategy_used == DIRECT
        assert result.attempts == 1
        assert result.validation.passed
        assert not result.requires_human_review
        assert len(backend.calls) == 1
        assert result.file_changes[0].new_content == BUTTON_FONT_SIZE_CHANGED
        assert result.file_changes[0].old_content == BUTTON_SOURCE

    @pytest.mark.asyncio
    async def test_fenced_response_is_extracted(self, run_direct):
        backend = ScriptedBackend([f"Here you go:\n```tsx\n{BUTTON_FONT_SIZE_CHANGED}```\nDone."])
        result = await run_direct(backend)

        assert result.validation.passed
        assert result.file_changes[0].new_content == BUTTON_FONT_SIZE_CHANGED

    @pytest.mark.asyncio
    async def test_execution_events(self, run_direct, sink):
        await run_direct(ScriptedBackend([BUTTON_FONT_SIZE_CHANGED]))

        assert [e.message for e in sink.of_kind('phase_started')] == ['execution']
        completed = sink.of_kind('phase_completed')
        assert completed[0].data['outcome'] == 'succeeded'
        assert sink.of_kind('decision')[0].message == "Execution succeeded with high-confidence-direct"


# =============================================================================
# FALLBACK ESCALATION
# =============================================================================

class TestFallback:
    @pytest.mark.asyncio
    async def test_validation_errors_feed_next_prompt(self, run_direct):
        backend = ScriptedBackend([BROKEN_BRACE, BUTTON_FONT_SIZE_CHANGED])
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.SUCCEEDED
        assert result.strategies_attempted == [DIRECT, GUIDED]
        assert result.strategy_used == GUIDED
        assert "## PREVIOUS ATTEMPT FAILED" not in backend.calls[0]
        assert "## PREVIOUS ATTEMPT FAILED" in backend.calls[1]
        assert "- Unclosed brace detected" in backend.calls[1]
        assert "## SPECIFIC REQUIREMENTS" in backend.calls[1]

    @pytest.mark.asyncio
    async def test_exhausted_chain_returns_last_validation(self, run_direct):
        backend = ScriptedBackend(default=BUTTON_GUTTED)
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.EXHAUSTED
        assert result.strategies_attempted == [DIRECT, GUIDED, CONSERVATIVE]
        assert result.strategy_used == CONSERVATIVE
        assert result.attempts == 3
        assert not result.validation.passed
        assert result.validation.has_issue(IssueType.SCOPE_EXCEEDED)
        # each attempt spends one feedback retry on the truncated answer
        assert len(backend.calls) == 6
        assert result.execution_log[-1] == "Strategies exhausted after 3 attempt(s)"

    @pytest.mark.asyncio
    async def test_retry_budget_caps_chain(self, run_direct):
        backend = ScriptedBackend(default=BUTTON_GUTTED)
        result = await run_direct(backend, settings=AssistantSettings(max_retries=1, feedback_retry=False))

        assert result.outcome == ExecutionOutcome.EXHAUSTED
        assert result.attempts == 1
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_transient_failure_escalates(self, run_direct):
        backend = ScriptedBackend([
            GenerationResult.failed(FailureKind.TRANSIENT, "upstream 503"),
            BUTTON_FONT_SIZE_CHANGED,
        ])
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.SUCCEEDED
        assert result.strategies_attempted == [DIRECT, GUIDED]
        assert result.backend_error == "upstream 503"
        assert "No file changes generated: upstream 503" in backend.calls[1]

    @pytest.mark.asyncio
    async def test_permanent_failure_aborts(self, run_direct):
        backend = ScriptedBackend([GenerationResult.failed(FailureKind.PERMANENT, "Invalid API key")],
                                  default=BUTTON_FONT_SIZE_CHANGED)
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.ABORTED
        assert result.attempts == 1
        assert result.file_changes == []
        assert result.backend_error == "Invalid API key"
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_backend_exception_is_mapped(self, run_direct):
        backend = ScriptedBackend([RateLimitError("slow down", retry_after=0.0), BUTTON_FONT_SIZE_CHANGED])
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.SUCCEEDED
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_unexpected_backend_exception_escalates(self, run_direct):
        backend = ScriptedBackend([ConnectionError("connection reset by peer"), BUTTON_FONT_SIZE_CHANGED])
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.SUCCEEDED
        assert result.strategies_attempted == [DIRECT, GUIDED]
        assert result.backend_error == "ConnectionError: connection reset by peer"

    @pytest.mark.asyncio
    async def test_backend_that_always_raises_exhausts(self, run_direct):
        backend = ScriptedBackend(default=ConnectionError("connection reset by peer"))
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.EXHAUSTED
        assert result.file_changes == []
        assert not result.validation.passed


# =============================================================================
# RATE LIMITS, TIMEOUTS, CANCELLATION
# =============================================================================

class TestBackendPacing:
    @pytest.mark.asyncio
    async def test_rate_limit_wait_does_not_spend_an_attempt(self, run_direct, sink):
        backend = ScriptedBackend([
            GenerationResult.failed(FailureKind.RATE_LIMITED, "slow down", retry_after=0.0),
            BUTTON_FONT_SIZE_CHANGED,
        ])
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.SUCCEEDED
        assert result.attempts == 1
        assert len(backend.calls) == 2
        assert any(line.startswith("Rate limited, waiting 0.0s") for line in result.execution_log)
        assert [e.data['value'] for e in sink.of_kind('metric') if e.message == 'rate_limit_wait'] == [0.0]

    @pytest.mark.asyncio
    async def test_persistent_rate_limit_becomes_transient(self, run_direct):
        limited = GenerationResult.failed(FailureKind.RATE_LIMITED, "slow down", retry_after=0.0)
        backend = ScriptedBackend(default=limited)
        result = await run_direct(backend, settings=AssistantSettings(max_rate_limit_waits=2))

        assert result.outcome == ExecutionOutcome.EXHAUSTED
        assert result.attempts == 3
        # one call plus two waits per attempt
        assert len(backend.calls) == 9
        assert "Rate limit persisted after 2 waits" in result.validation.issues[0].message

    @pytest.mark.asyncio
    async def test_call_timeout_is_transient(self, run_direct):
        backend = SlowBackend()
        result = await run_direct(backend, call_timeout=0.01)

        assert result.outcome == ExecutionOutcome.EXHAUSTED
        assert backend.calls == 3
        assert "timed out" in result.backend_error

    @pytest.mark.asyncio
    async def test_cancelled_call_escalates(self, run_direct):
        backend = ScriptedBackend([asyncio.CancelledError(), BUTTON_FONT_SIZE_CHANGED])
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.SUCCEEDED
        assert result.strategies_attempted == [DIRECT, GUIDED]
        assert result.backend_error == "Generation call was cancelled"

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self, run_direct):
        task = asyncio.create_task(run_direct(SlowBackend()))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


# =============================================================================
# LENGTH GUARD
# =============================================================================

class TestLengthGuard:
    @pytest.mark.asyncio
    async def test_truncated_answer_gets_feedback_retry(self, run_direct):
        backend = ScriptedBackend(["export const Button = () => null;", BUTTON_FONT_SIZE_CHANGED])
        result = await run_direct(backend)

        assert result.outcome == ExecutionOutcome.SUCCEEDED
        assert result.attempts == 1
        assert len(backend.calls) == 2
        assert "You deleted too much code" in backend.calls[1]
        assert "You deleted too much code" not in backend.calls[0]

    @pytest.mark.asyncio
    async def test_feedback_retry_can_be_disabled(self, run_direct):
        backend = ScriptedBackend(["export const Button = () => null;"], default=BUTTON_FONT_SIZE_CHANGED)
        result = await run_direct(backend, settings=AssistantSettings(feedback_retry=False))

        assert result.strategies_attempted == [DIRECT, GUIDED]
        assert len(backend.calls) == 2
        assert "You deleted too much code" not in backend.calls[1]

    @pytest.mark.asyncio
    async def test_failed_retry_keeps_first_answer(self, run_direct):
        backend = ScriptedBackend([
            "export const Button = () => null;",
            GenerationResult.failed(FailureKind.TRANSIENT, "upstream 503"),
        ], default=BUTTON_FONT_SIZE_CHANGED)
        result = await run_direct(backend)

        assert result.strategies_attempted == [DIRECT, GUIDED]
        assert any("keeping first response" in line for line in result.execution_log)


# =============================================================================
# HUMAN REVIEW
# =============================================================================

class TestHumanReview:
    @pytest.mark.asyncio
    async def test_proposal_keeps_original_code(self, vague_intent, human_assessment, risky_impact, empty_repo):
        backend = ScriptedBackend(["// The request names no property.\n// Ask which style should change."])
        engine = AdaptiveChangeEngine(backend)

        result = await engine.execute(vague_intent, human_assessment, risky_impact, empty_repo)

        assert result.strategy_used == HUMAN
        assert result.requires_human_review
        assert result.attempts == 1
        content = result.file_changes[0].new_content
        assert content.startswith(f"// {PROPOSAL_HEADER}")
        assert "// The request names no property." in content
        assert content.endswith(BUTTON_SOURCE)
        assert result.validation.level == ValidationLevel.PARANOID

    @pytest.mark.asyncio
    async def test_backend_failure_still_yields_proposal(self, vague_intent, human_assessment,
                                                         risky_impact, empty_repo):
        backend = ScriptedBackend([GenerationResult.failed(FailureKind.PERMANENT, "Invalid API key")])
        engine = AdaptiveChangeEngine(backend)

        result = await engine.execute(vague_intent, human_assessment, risky_impact, empty_repo)

        assert result.requires_human_review
        assert result.backend_error == "Invalid API key"
        assert "// No automated analysis available." in result.file_changes[0].new_content


# =============================================================================
# HELPERS
# =============================================================================

class TestHelpers:
    def test_extract_code(self):
        assert extract_code("```jsx\nconst a = 1;\n```") == "const a = 1;"
        assert extract_code("```\nplain\n```") == "plain"
        assert extract_code("  no fences  \n") == "no fences"

    def test_strategy_descriptors(self):
        assert strategy_for(DIRECT).applies_changes
        assert strategy_for(GUIDED).steps == ['analyze', 'generate', 'validate', 'verify', 'apply']
        assert not strategy_for(HUMAN).applies_changes
        assert strategy_for(CONSERVATIVE).validation_level == ValidationLevel.PARANOID

    def test_css_proposal_uses_block_comments(self, vague_request, human_assessment):
        component = TargetComponent(name="site", file_path="styles/site.css", content=".a { color: red; }\n")
        proposal = build_proposal(ChangeIntent(request=vague_request, target_component=component),
                                  human_assessment)

        assert proposal.startswith(f"/* {PROPOSAL_HEADER} */")
        assert proposal.endswith(".a { color: red; }\n")

    @pytest.mark.parametrize("file_path", ["templates/card.html", "src/Card.vue"])
    def test_markup_proposal_uses_html_comments(self, vague_request, human_assessment, file_path):
        component = TargetComponent(name="Card", file_path=file_path, content="<div class=\"card\"></div>\n")
        proposal = build_proposal(ChangeIntent(request=vague_request, target_component=component),
                                  human_assessment, analysis="Use a -- separator --> here")

        header = proposal.split("\n\n<div")[0].splitlines()
        assert header[0] == f"<!-- {PROPOSAL_HEADER} -->"
        assert all(line.startswith("<!--") and line.endswith("-->") for line in header)
        assert all("--" not in line[4:-3] for line in header)
        assert proposal.endswith("<div class=\"card\"></div>\n")
