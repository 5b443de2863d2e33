# src/change_assistant/core/prompt_builder.py
"""
Contextual Prompt Builder - renders generation instructions per strategy.

All SYNC and deterministic: the same context always renders the same text.
Verbosity and constraints scale with confidence:

- high-confidence-direct: full context, trust the generator
- medium-confidence-guided: adds impact analysis, preservation rules, checks
- low-confidence-conservative: hard line ceiling, no structural changes
- very-low-confidence-human-review: proposal only, original left untouched
"""

import math
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple
import logging

from change_assistant.config import AssistantSettings
from change_assistant.core.change_models import (
    ChangeApproach, ChangeConfidenceAssessment, ChangeImpactAnalysis,
    ChangeIntent, EditCategory, RepoSymbolicModel, ReasoningError
)

logger = logging.getLogger(__name__)

BASE_RESPONSE_TOKENS = 500
CONSERVATIVE_LINE_CEILING = 5

LANGUAGE_BY_EXTENSION = {
    'tsx': 'tsx',
    'jsx': 'jsx',
    'ts': 'typescript',
    'js': 'javascript',
    'vue': 'vue',
    'svelte': 'svelte',
    'css': 'css',
    'scss': 'scss',
    'html': 'html',
}

FACTOR_DESCRIPTIONS = {
    'visual': {
        'Excellent': 'Clear visual intent with specific changes',
        'Good': 'Well-defined visual changes',
        'Fair': 'Somewhat clear visual intent',
        'Poor': 'Unclear or vague visual changes',
    },
    'component': {
        'Excellent': 'Component fully analyzed and understood',
        'Good': 'Component well understood',
        'Fair': 'Component partially understood',
        'Poor': 'Component poorly understood',
    },
    'complexity': {
        'Excellent': 'Very simple change',
        'Good': 'Simple change',
        'Fair': 'Moderate complexity',
        'Poor': 'High complexity change',
    },
    'context': {
        'Excellent': 'Complete repository context available',
        'Good': 'Good repository context',
        'Fair': 'Partial repository context',
        'Poor': 'Limited repository context',
    },
}


@dataclass(frozen=True)
class PromptContext:
    """Everything a prompt is rendered from."""
    intent: ChangeIntent
    assessment: ChangeConfidenceAssessment
    impact_analysis: ChangeImpactAnalysis
    repo_context: RepoSymbolicModel
    approach: Optional[ChangeApproach] = None  # overrides the recommended approach
    previous_errors: Tuple[str, ...] = ()
    feedback: Optional[str] = None

    @property
    def active_approach(self) -> ChangeApproach:
        return self.approach or self.assessment.recommended_approach


@dataclass
class BuiltPrompt:
    """Rendered instruction plus pacing metadata."""
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def token_estimate(self) -> int:
        return self.metadata.get('token_estimate', 0)


def estimate_tokens(content: str) -> int:
    """Rough estimation: ~4 characters per token."""
    return math.ceil(len(content) / 4)


def language_for(file_path: str) -> str:
    ext = PurePosixPath(file_path).suffix.lstrip('.').lower()
    return LANGUAGE_BY_EXTENSION.get(ext, 'javascript')


def _factor_level(value: float) -> str:
    if value > 0.8:
        return 'Excellent'
    if value > 0.6:
        return 'Good'
    if value > 0.4:
        return 'Fair'
    return 'Poor'


def _first_keys(mapping: Dict[str, Any], limit: int = 5) -> str:
    keys = list(mapping.keys())
    text = ', '.join(str(k) for k in keys[:limit])
    return text + ('...' if len(keys) > limit else '')


class ContextualPromptBuilder:
    """Builds strategy-specific prompts from repository knowledge."""

    def __init__(self, settings: Optional[AssistantSettings] = None):
        self.settings = settings or AssistantSettings()

    def build(self, context: PromptContext) -> BuiltPrompt:
        """Render the prompt for the context's active approach."""
        approach = context.active_approach
        renderers = {
            ChangeApproach.HIGH_CONFIDENCE_DIRECT: self._build_direct_prompt,
            ChangeApproach.MEDIUM_CONFIDENCE_GUIDED: self._build_guided_prompt,
            ChangeApproach.LOW_CONFIDENCE_CONSERVATIVE: self._build_conservative_prompt,
            ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW: self._build_human_review_prompt,
        }

        try:
            sections = renderers[approach](context)
        except (KeyError, AttributeError, TypeError, ValueError) as e:
            raise ReasoningError(f"Could not build {approach.value} prompt: {e}") from e

        sections = [s for s in sections if s]
        content = '\n\n'.join(sections)

        token_estimate = estimate_tokens(content)
        exceeds_budget = token_estimate > self.settings.max_context_tokens
        if exceeds_budget:
            logger.warning(
                f"Prompt for {context.intent.target_component.file_path} is ~{token_estimate} tokens "
                f"(budget {self.settings.max_context_tokens})"
            )

        metadata = {
            'approach': approach.value,
            'confidence': context.assessment.confidence,
            'token_estimate': token_estimate,
            'expected_response_tokens': self.estimate_response_tokens(context.impact_analysis),
            'exceeds_context_budget': exceeds_budget,
            'sections': [s.split('\n', 1)[0].lstrip('# ').strip() for s in sections if s.startswith('## ')],
        }
        logger.debug(f"Built {approach.value} prompt ({token_estimate} tokens)")

        return BuiltPrompt(content=content, metadata=metadata)

    @staticmethod
    def estimate_response_tokens(impact_analysis: ChangeImpactAnalysis) -> int:
        return BASE_RESPONSE_TOKENS * impact_analysis.expected_scope.change_type.multiplier

    # ============================================================================
    # STRATEGY PROMPTS
    # ============================================================================

    def _build_direct_prompt(self, ctx: PromptContext) -> List[str]:
        framework = ctx.repo_context.primary_framework
        return [
            f"You are an expert {framework} developer with deep knowledge of this codebase.",
            self._repository_context(ctx.repo_context),
            self._change_context(ctx),
            self._component_analysis(ctx),
            self._styling_context(ctx),
            self._current_code(ctx),
            self._retry_feedback(ctx),
            f"""## INSTRUCTIONS (High Confidence Execution)

Based on the analysis above, you have high confidence to:

1. **Apply the visual change precisely**: {ctx.intent.description}
2. **Leverage established patterns**: Use the same styling approach and component patterns shown above
3. **Maintain all functionality**: Preserve all props, exports, imports, and behavior
4. **Follow framework conventions**: Use {framework} conventions

## EXPECTED OUTCOME
- Minimal, targeted changes
- Consistent with codebase patterns
- Every line not related to the change stays exactly as it is

Return the complete modified file content:""",
        ]

    def _build_guided_prompt(self, ctx: PromptContext) -> List[str]:
        scope = ctx.impact_analysis.expected_scope
        checks = ctx.impact_analysis.validation_checks
        check_lines = '\n'.join(f"- {check.description}" for check in checks) or (
            "- Syntax sanity\n- Intent alignment\n- Preservation rules\n- Change scope limits")
        return [
            f"You are an expert {ctx.repo_context.primary_framework} developer. "
            f"Apply this change with guided precision.",
            self._repository_context(ctx.repo_context),
            self._change_context(ctx),
            self._impact_analysis(ctx.impact_analysis),
            self._component_analysis(ctx),
            self._preservation_requirements(ctx.impact_analysis),
            self._current_code(ctx),
            self._retry_feedback(ctx),
            f"""## GUIDED INSTRUCTIONS (Medium Confidence)

Follow these guided constraints carefully:

1. **Scope Limitation**: Expected ~{scope.expected_lines} lines changed
2. **Change Type**: {scope.change_type.value} modification only
3. **Risk Management**: This is a {scope.risk_level.value} risk change
4. **Preservation**: Follow all preservation requirements above
5. **Validation**: Changes will be strictly validated

## SPECIFIC REQUIREMENTS
{self._specific_requirements(ctx)}

## VALIDATION CHECKS
Your changes will be validated for:
{check_lines}

Return the complete modified file content with guided precision:""",
        ]

    def _build_conservative_prompt(self, ctx: PromptContext) -> List[str]:
        max_lines = min(ctx.impact_analysis.expected_scope.expected_lines, CONSERVATIVE_LINE_CEILING)
        critical = [r for r in ctx.impact_analysis.preservation_rules if r.critical]
        critical_lines = '\n'.join(f"- {r.description} (MUST PRESERVE)" for r in critical) or (
            "- All existing imports, exports, props and behavior (MUST PRESERVE)")
        return [
            f"You are an expert {ctx.repo_context.primary_framework} developer. "
            f"Apply this change with MAXIMUM CAUTION.",
            f"**LOW CONFIDENCE SCENARIO**\nThis change has low confidence "
            f"({ctx.assessment.confidence * 100:.1f}%). Be extremely conservative.",
            self._repository_context(ctx.repo_context),
            self._change_context(ctx),
            self._component_analysis(ctx),
            f"""## CRITICAL CONSTRAINTS (Low Confidence)

**STRICT LIMITATIONS**:
- Maximum {max_lines} lines changed
- NO structural modifications
- NO new dependencies or imports
- NO functionality changes
- ONLY the minimal change required

**PRESERVATION REQUIREMENTS** (CRITICAL):
{critical_lines}""",
            self._current_code(ctx),
            self._retry_feedback(ctx),
            f"""## CONSERVATIVE INSTRUCTIONS

1. **Minimal Change Only**: Apply the smallest possible modification
2. **Preserve Everything**: Keep all existing code structure intact
3. **No Assumptions**: If unclear, prefer NO change over wrong change
4. **Exact Match**: Only change what directly relates to: {ctx.intent.description}

## CHANGE TO APPLY
{self._minimal_change_description(ctx)}

Return the complete file with minimal, conservative modifications:""",
        ]

    def _build_human_review_prompt(self, ctx: PromptContext) -> List[str]:
        return [
            f"You are an expert {ctx.repo_context.primary_framework} developer "
            f"creating a change proposal for human review.",
            f"## CHANGE PROPOSAL GENERATION\n\nThis change has very low confidence "
            f"({ctx.assessment.confidence * 100:.1f}%) and requires human review.",
            self._repository_context(ctx.repo_context),
            self._change_context(ctx),
            self._component_analysis(ctx),
            f"## CONFIDENCE FACTORS\n{self._confidence_factors(ctx.assessment)}",
            self._current_code(ctx),
            """## INSTRUCTIONS (Proposal Generation)

Create a change proposal that includes:

1. **Analysis Summary**: What you understand about the change
2. **Proposed Approach**: How you would implement it
3. **Risk Assessment**: What could go wrong
4. **Alternative Options**: Different ways to implement
5. **Recommendation**: Your suggested approach

Write the proposal as code comments (`// ...`). Do NOT modify or repeat the code:
the original code is preserved unchanged below your proposal.

Return only the proposal comments:""",
        ]

    # ============================================================================
    # SECTIONS
    # ============================================================================

    def _repository_context(self, repo: RepoSymbolicModel) -> str:
        return f"""## REPOSITORY CONTEXT

**Framework**: {repo.primary_framework}
**Styling System**: {repo.styling_approach or 'unknown'}
**Components**: {repo.component_count} analyzed components
**Design System**: {'Available' if repo.has_design_tokens else 'Not detected'}
**Analysis Confidence**: {repo.analysis_confidence * 100:.1f}%

**Component Patterns**:
{self._describe_patterns(repo.component_patterns, 'No component patterns recorded')}

**Styling Patterns**:
{self._describe_patterns(repo.styling_patterns, 'No specific patterns detected')}"""

    def _change_context(self, ctx: PromptContext) -> str:
        request = ctx.intent.request
        edits = '\n'.join(
            f"- **{e.property}**: `{e.before}` → `{e.after}` ({e.category.value})"
            for e in request.edits
        ) or 'No specific visual changes defined'
        category = request.change_category.value if request.change_category else 'unspecified'
        return f"""## CHANGE CONTEXT (Confidence: {ctx.assessment.confidence * 100:.1f}%)

**Intent**: {ctx.intent.description}
**Type**: {category}
**Risk Level**: {ctx.assessment.risk_level.value}
**Approach**: {ctx.active_approach.value}

**Visual Changes**:
{edits}

**Target Element**: `{request.element.tag_name or 'unknown'}` (selector: `{request.element.selector or 'unknown'}`)"""

    def _component_analysis(self, ctx: PromptContext) -> str:
        component = ctx.intent.target_component
        props = '\n'.join(
            f"- {p.name}: {p.type}{' (required)' if p.required else ''}" for p in component.props
        )
        text = f"""## COMPONENT ANALYSIS

**Component**: {component.name}
**File**: {component.file_path}
**Complexity**: {component.complexity.value}
**Framework**: {component.framework}
**Styling Approach**: {component.styling_approach or ctx.repo_context.styling_approach or 'unknown'}

**Props**: {len(component.props)} defined"""
        if props:
            text += f"\n{props}"
        text += f"\n\n**Exports**: {', '.join(component.exports) or 'default'}"
        return text

    def _styling_context(self, ctx: PromptContext) -> str:
        component = ctx.intent.target_component
        repo = ctx.repo_context
        text = f"## STYLING CONTEXT\n\n**Approach**: {component.styling_approach or repo.styling_approach or 'unknown'}"
        tokens = repo.design_tokens
        if tokens and tokens.is_present:
            text += "\n\n**Design Tokens Available**:"
            if tokens.colors:
                text += f"\n- Colors: {_first_keys(tokens.colors)}"
            if tokens.spacing:
                text += f"\n- Spacing: {_first_keys(tokens.spacing)}"
            if tokens.typography:
                text += f"\n- Typography: {_first_keys(tokens.typography)}"
        return text

    def _impact_analysis(self, impact: ChangeImpactAnalysis) -> str:
        scope = impact.expected_scope
        direct = '\n'.join(
            f"- {c.type}: {c.target} (confidence: {c.confidence * 100:.0f}%)" for c in impact.direct_changes
        )
        cascade = '\n'.join(
            f"- {c.type}: {c.reason} ({'required' if c.required else 'optional'})"
            for c in impact.cascade_changes
        )
        text = f"""## IMPACT ANALYSIS

**Expected Scope**: {scope.change_type.value} ({scope.expected_lines} lines)
**Risk Level**: {scope.risk_level.value}

**Direct Changes**: {len(impact.direct_changes)}"""
        if direct:
            text += f"\n{direct}"
        text += f"\n\n**Cascade Changes**: {len(impact.cascade_changes)}"
        if cascade:
            text += f"\n{cascade}"
        return text

    def _preservation_requirements(self, impact: ChangeImpactAnalysis) -> str:
        critical = [r for r in impact.preservation_rules if r.critical]
        important = [r for r in impact.preservation_rules if not r.critical]
        if not critical and not important:
            return ""

        text = "## PRESERVATION REQUIREMENTS"
        if critical:
            text += "\n\n**CRITICAL (Must Preserve)**:\n" + '\n'.join(f"- {r.description}" for r in critical)
        if important:
            text += "\n\n**Important**:\n" + '\n'.join(f"- {r.description}" for r in important)
        return text

    def _current_code(self, ctx: PromptContext) -> str:
        component = ctx.intent.target_component
        return f"""## CURRENT CODE

**File**: {component.file_path}

```{language_for(component.file_path)}
{component.content or '// No content available'}
```"""

    def _retry_feedback(self, ctx: PromptContext) -> str:
        if not ctx.previous_errors and not ctx.feedback:
            return ""
        text = "## PREVIOUS ATTEMPT FAILED"
        if ctx.previous_errors:
            text += "\n\nThe previous attempt was rejected by validation:\n"
            text += '\n'.join(f"- {message}" for message in ctx.previous_errors)
        if ctx.feedback:
            text += f"\n\n{ctx.feedback}"
        return text

    def _specific_requirements(self, ctx: PromptContext) -> str:
        request = ctx.intent.request
        requirements: List[str] = []

        if request.change_category == EditCategory.STYLING:
            requirements.append('Focus only on styling properties')
            requirements.append('Do not modify component structure')
        elif request.change_category == EditCategory.LAYOUT:
            requirements.append('Modify layout properties carefully')
            requirements.append('Consider responsive implications')

        for edit in request.edits:
            if edit.property == 'font-size':
                requirements.append('Update font-size property only')
                requirements.append('Consider line-height adjustments if needed')
            elif edit.property == 'color':
                requirements.append('Update color property only')
                requirements.append('Ensure sufficient contrast')

        if not requirements:
            requirements.append('Change only what the request describes')
        return '\n'.join(f"- {req}" for req in dict.fromkeys(requirements))

    def _minimal_change_description(self, ctx: PromptContext) -> str:
        edits = ctx.intent.request.edits
        if not edits:
            return f"Apply: {ctx.intent.description}"
        return '\n'.join(
            f"**{e.property}**: Change from `{e.before}` to `{e.after}` ONLY" for e in edits
        )

    def _confidence_factors(self, assessment: ChangeConfidenceAssessment) -> str:
        f = assessment.factors
        rows = [
            ('Visual Clarity', 'visual', f.visual_clarity),
            ('Component Understanding', 'component', f.component_understanding),
            ('Change Complexity', 'complexity', f.change_complexity),
            ('Context Completeness', 'context', f.context_completeness),
        ]
        lines = [
            f"**{label}**: {value * 100:.0f}% - {FACTOR_DESCRIPTIONS[kind][_factor_level(value)]}"
            for label, kind, value in rows
        ]
        fallbacks = ', '.join(a.value for a in assessment.fallback_strategies) or 'none'
        lines.append("")
        lines.append(f"**Overall Risk**: {assessment.risk_level.value}")
        lines.append(f"**Fallback Strategies**: {fallbacks}")
        return '\n'.join(lines)

    @staticmethod
    def _describe_patterns(patterns: Dict[str, Any], empty: str) -> str:
        if not patterns:
            return f"- {empty}"
        lines = []
        for name, value in list(patterns.items())[:5]:
            if isinstance(value, dict):
                values = value.get('values', value)
                shown = _first_keys(values) if isinstance(values, dict) else str(values)
            elif isinstance(value, (list, tuple)):
                shown = ', '.join(str(v) for v in value[:3]) + ('...' if len(value) > 3 else '')
            else:
                shown = str(value)
            lines.append(f"- {name}: {shown}")
        return '\n'.join(lines)
