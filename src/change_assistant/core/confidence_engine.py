# src/change_assistant/core/confidence_engine.py
"""
Change Confidence Engine - scores how well a requested change is understood.

All SYNC - pure computation over the request, its impact analysis, the
target component and the symbolic repository model. No I/O, no mutation.

FACTORS (each clamped to [0, 1]):
1. Visual clarity - how precisely the request says what should change
2. Component understanding - how well the target component is known
3. Change complexity - scored as simplicity, higher is simpler
4. Context completeness - how much repository context is available
"""

from typing import Dict, List, Optional
import logging

from change_assistant.config import AssistantSettings
from change_assistant.core.change_models import (
    ChangeApproach, ChangeConfidenceAssessment, ChangeImpactAnalysis,
    ChangeRequest, ComplexityTier, ConfidenceFactors, RepoSymbolicModel,
    RiskLevel, ScopeTier, TargetComponent, ValidationLevel
)

logger = logging.getLogger(__name__)


FACTOR_WEIGHTS: Dict[str, float] = {
    'visual_clarity': 0.30,
    'component_understanding': 0.30,
    'change_complexity': 0.25,
    'context_completeness': 0.15,
}

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0

PROPERTY_FAMILIES = (
    'font', 'color', 'colour', 'size', 'background', 'margin', 'padding',
    'spacing', 'border', 'width', 'height', 'weight', 'radius', 'shadow'
)

LOW_AMBIGUITY_STYLING = ('tailwind', 'css-modules', 'styled-components')

COMPLEXITY_BONUS = {
    ComplexityTier.SIMPLE: 0.4,
    ComplexityTier.MODERATE: 0.2,
    ComplexityTier.COMPLEX: 0.0,
}

SCOPE_PENALTY = {
    ScopeTier.MINIMAL: 0.0,
    ScopeTier.MODERATE: 0.1,
    ScopeTier.SIGNIFICANT: 0.3,
    ScopeTier.MAJOR: 0.5,
}

RISK_PENALTY = {
    RiskLevel.LOW: 0.0,
    RiskLevel.MEDIUM: 0.1,
    RiskLevel.HIGH: 0.2,
    RiskLevel.CRITICAL: 0.2,
}

# Each approach may only fall back to strictly more conservative ones
FALLBACK_CHAINS: Dict[ChangeApproach, List[ChangeApproach]] = {
    ChangeApproach.HIGH_CONFIDENCE_DIRECT: [
        ChangeApproach.MEDIUM_CONFIDENCE_GUIDED,
        ChangeApproach.LOW_CONFIDENCE_CONSERVATIVE,
    ],
    ChangeApproach.MEDIUM_CONFIDENCE_GUIDED: [
        ChangeApproach.LOW_CONFIDENCE_CONSERVATIVE,
        ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW,
    ],
    ChangeApproach.LOW_CONFIDENCE_CONSERVATIVE: [
        ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW,
    ],
    ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW: [],
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _bump_risk(risk: RiskLevel) -> RiskLevel:
    return {RiskLevel.LOW: RiskLevel.MEDIUM, RiskLevel.MEDIUM: RiskLevel.HIGH}.get(risk, risk)


def _relax_risk(risk: RiskLevel) -> RiskLevel:
    return {RiskLevel.HIGH: RiskLevel.MEDIUM, RiskLevel.MEDIUM: RiskLevel.LOW}.get(risk, risk)


class ChangeConfidenceEngine:
    """Derives a ChangeConfidenceAssessment from a request and its context."""

    def __init__(self, settings: Optional[AssistantSettings] = None):
        self.settings = settings or AssistantSettings()

    # ============================================================================
    # PUBLIC API
    # ============================================================================

    def assess(self, request: ChangeRequest, impact_analysis: ChangeImpactAnalysis,
               target_component: TargetComponent,
               repo_context: RepoSymbolicModel) -> ChangeConfidenceAssessment:
        """Assess a request. Identical inputs always give identical assessments."""
        factors = ConfidenceFactors(
            visual_clarity=self._score_visual_clarity(request),
            component_understanding=self._score_component_understanding(target_component, repo_context),
            change_complexity=self._score_change_complexity(impact_analysis),
            context_completeness=self._score_context_completeness(repo_context),
        )

        confidence = self._calculate_overall_confidence(factors)
        risk_level = self._determine_risk_level(impact_analysis, confidence)
        # Strategy follows the predicted risk; the adjusted tier is reported only
        approach = self.select_approach(confidence, impact_analysis.expected_scope.risk_level)
        fallbacks = self.fallback_strategies(approach, factors)

        logger.info(
            f"Assessed {request.id}: confidence={confidence:.2f} risk={risk_level.value} "
            f"approach={approach.value} fallbacks={[a.value for a in fallbacks]}"
        )

        return ChangeConfidenceAssessment(
            confidence=confidence,
            factors=factors,
            recommended_approach=approach,
            fallback_strategies=fallbacks,
            risk_level=risk_level,
        )

    def select_approach(self, confidence: float, risk_level: RiskLevel) -> ChangeApproach:
        """Pick the strategy for a confidence and risk tier."""
        s = self.settings
        if confidence >= s.high_confidence and risk_level == RiskLevel.LOW:
            return ChangeApproach.HIGH_CONFIDENCE_DIRECT
        if confidence >= s.medium_confidence and risk_level.rank < RiskLevel.HIGH.rank:
            return ChangeApproach.MEDIUM_CONFIDENCE_GUIDED
        if confidence >= s.low_confidence:
            return ChangeApproach.LOW_CONFIDENCE_CONSERVATIVE
        return ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW

    def fallback_strategies(self, approach: ChangeApproach,
                            factors: ConfidenceFactors) -> List[ChangeApproach]:
        """Ordered fallbacks for an approach, most preferred first."""
        if not self.settings.fallback_enabled:
            return []

        fallbacks = list(FALLBACK_CHAINS[approach])

        # Unclear intent always ends in human review
        human_review = ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW
        if (factors.visual_clarity < 0.5 and approach != human_review
                and human_review not in fallbacks):
            fallbacks.append(human_review)

        return fallbacks

    def confidence_threshold(self, approach: ChangeApproach) -> float:
        """Lower bound of the confidence band an approach is bound to."""
        s = self.settings
        return {
            ChangeApproach.HIGH_CONFIDENCE_DIRECT: s.high_confidence,
            ChangeApproach.MEDIUM_CONFIDENCE_GUIDED: s.medium_confidence,
            ChangeApproach.LOW_CONFIDENCE_CONSERVATIVE: s.low_confidence,
            ChangeApproach.VERY_LOW_CONFIDENCE_HUMAN_REVIEW: 0.0,
        }[approach]

    def meets_confidence_threshold(self, assessment: ChangeConfidenceAssessment,
                                   approach: ChangeApproach) -> bool:
        return assessment.confidence >= self.confidence_threshold(approach)

    def recommended_validation_level(self, assessment: ChangeConfidenceAssessment) -> ValidationLevel:
        """Validation level the assessment suggests, ignoring risk."""
        if assessment.confidence >= self.settings.high_confidence:
            return ValidationLevel.STANDARD
        if assessment.confidence >= self.settings.medium_confidence:
            return ValidationLevel.STRICT
        return ValidationLevel.PARANOID

    # ============================================================================
    # FACTOR SCORING
    # ============================================================================

    def _score_visual_clarity(self, request: ChangeRequest) -> float:
        score = 0.5

        description = request.description.strip().lower()
        if len(description) > 20 and any(family in description for family in PROPERTY_FAMILIES):
            score += 0.2

        if request.edits:
            score += 0.2
            if len(request.edits) == 1:
                score += 0.1  # a single edit is the most precise request

        selector = request.element.selector.strip()
        if selector:
            score += 0.1
            if '#' in selector or '.' in selector:
                score += 0.1

        return _clamp(score)

    def _score_component_understanding(self, component: TargetComponent,
                                       repo: RepoSymbolicModel) -> float:
        score = 0.3
        score += COMPLEXITY_BONUS[component.complexity]

        styling = (component.styling_approach or repo.styling_approach or '').lower()
        if styling in LOW_AMBIGUITY_STYLING:
            score += 0.2

        if component.props:
            score += 0.1
        if component.exports:
            score += 0.1
        if repo.component_count > 50:
            score += 0.1

        return _clamp(score)

    def _score_change_complexity(self, impact: ChangeImpactAnalysis) -> float:
        score = 0.8

        direct_count = len(impact.direct_changes)
        if direct_count > 3:
            score -= 0.2
        elif direct_count > 1:
            score -= 0.1

        if impact.required_cascades:
            score -= 0.3

        score -= SCOPE_PENALTY[impact.expected_scope.change_type]
        score -= RISK_PENALTY[impact.expected_scope.risk_level]

        return _clamp(score, low=0.1)

    def _score_context_completeness(self, repo: RepoSymbolicModel) -> float:
        score = 0.4
        count = repo.component_count
        score += min(count / 100, 0.3)

        if count > 10:
            score += 0.1
        if repo.has_design_tokens:
            score += 0.1
        if repo.styling_patterns:
            score += 0.1
        if repo.dom_mappings:
            score += 0.1
        if repo.transformation_rules:
            score += 0.1

        return _clamp(score)

    def _calculate_overall_confidence(self, factors: ConfidenceFactors) -> float:
        weighted = sum(getattr(factors, name) * weight for name, weight in FACTOR_WEIGHTS.items())
        # Rounded so band boundaries are not decided by float noise
        return round(_clamp(weighted, MIN_CONFIDENCE, MAX_CONFIDENCE), 4)

    def _determine_risk_level(self, impact: ChangeImpactAnalysis, confidence: float) -> RiskLevel:
        """Adjust the impact risk tier. Each rule moves at most one step from the base tier."""
        risk = impact.expected_scope.risk_level

        if confidence < self.settings.low_confidence:
            risk = _bump_risk(risk)
        elif confidence > self.settings.high_confidence:
            risk = _relax_risk(risk)

        if len(impact.required_cascades) > 2:
            risk = _bump_risk(risk)

        return risk
