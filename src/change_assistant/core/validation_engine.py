# src/change_assistant/core/validation_engine.py
"""
Smart Validation Engine - the safety net between generation and a commit.

SYNC only - pure computation over text, never touches I/O.

CHECKS (all run on every call, in this order):
1. Syntax sanity - shallow bracket balance and dangling import/export
2. Intent alignment - every declared edit shows up in the proposed code
3. Preservation - preservation rules survive (critical ones exactly)
4. Scope - over-deletion and change-ratio ceilings by category and strictness
5. Confidence limits - tighter ceilings when confidence is low
"""

import difflib
import re
from typing import Dict, List, Optional, Tuple
import logging

from change_assistant.config import AssistantSettings
from change_assistant.core.change_models import (
    ChangeConfidenceAssessment, ChangeImpactAnalysis, ChangeIntent,
    EditCategory, IssueType, PreservationRule, RiskLevel, Severity,
    ValidationIssue, ValidationLevel, ValidationMetrics, ValidationResult,
    ValidationWarning
)
from change_assistant.core.events import EventReporter
from change_assistant.core.intent_reflection import ReflectionRegistry, default_reflection_registry

logger = logging.getLogger(__name__)

Findings = Tuple[List[ValidationIssue], List[ValidationWarning]]


DELETION_BASE: Dict[EditCategory, int] = {
    EditCategory.STYLING: 3,
    EditCategory.LAYOUT: 8,
    EditCategory.STRUCTURE: 15,
}
DEFAULT_DELETION_BASE = 10

RATIO_BASE: Dict[EditCategory, float] = {
    EditCategory.STYLING: 0.1,
    EditCategory.LAYOUT: 0.2,
    EditCategory.STRUCTURE: 0.4,
}
DEFAULT_RATIO_BASE = 0.3

DELETION_MULTIPLIER: Dict[ValidationLevel, float] = {
    ValidationLevel.BASIC: 2.0,
    ValidationLevel.STANDARD: 1.5,
    ValidationLevel.STRICT: 1.0,
    ValidationLevel.PARANOID: 0.5,
}

RATIO_MULTIPLIER: Dict[ValidationLevel, float] = {
    ValidationLevel.BASIC: 2.0,
    ValidationLevel.STANDARD: 1.5,
    ValidationLevel.STRICT: 1.0,
    ValidationLevel.PARANOID: 0.7,
}

FONT_SIZE_REMOVAL_LIMIT = 5
STYLING_CHANGED_LINES_WARNING = 10
LOW_CONFIDENCE = 0.5
LOW_CONFIDENCE_MAX_RATIO = 0.3
LOW_CONFIDENCE_MAX_REMOVED = 10
COMPLEXITY_DELTA_WARNING = 5

COMPLEXITY_PATTERNS = [
    r'function\s+\w+',
    r'const\s+\w+\s*=',
    r'=>\s*{',
    r'if\s*\(',
    r'for\s*\(',
    r'while\s*\(',
    r'<\w+',
]

BRACKET_NAMES = {'{': 'brace', '(': 'parenthesis', '[': 'bracket'}
CLOSERS = {'}': '{', ')': '(', ']': '['}

SYNTAX_SUGGESTION = "Fix the syntax error before proceeding"


def scan_brackets(code: str) -> Tuple[Dict[str, int], Dict[str, int]]:
    """
    Count unclosed openers and unexpected closers.

    Skips string literals, template literals and comments. Quote strings end
    at a newline, so a stray apostrophe in JSX text only hides one line.
    """
    unclosed = {'{': 0, '(': 0, '[': 0}
    unexpected = {'{': 0, '(': 0, '[': 0}
    state = None
    i = 0
    n = len(code)

    while i < n:
        c = code[i]
        if state == '//':
            if c == '\n':
                state = None
        elif state == '/*':
            if code.startswith('*/', i):
                state = None
                i += 1
        elif state in ("'", '"'):
            if c == '\\':
                i += 1
            elif c == state or c == '\n':
                state = None
        elif state == '`':
            if c == '\\':
                i += 1
            elif c == '`':
                state = None
        elif code.startswith('//', i) and (i == 0 or code[i - 1] != ':'):
            state = '//'
            i += 1
        elif code.startswith('/*', i):
            state = '/*'
            i += 1
        elif c in ("'", '"', '`'):
            state = c
        elif c in unclosed:
            unclosed[c] += 1
        elif c in CLOSERS:
            opener = CLOSERS[c]
            if unclosed[opener] > 0:
                unclosed[opener] -= 1
            else:
                unexpected[opener] += 1
        i += 1

    return unclosed, unexpected


def calculate_metrics(original: str, proposed: str) -> ValidationMetrics:
    """
    Line-level metrics of a proposed change.

    A replaced line counts as modified; only net growth or shrinkage inside
    a hunk counts as added or removed.
    """
    old_lines = original.split('\n') if original else []
    new_lines = proposed.split('\n') if proposed else []

    added = removed = modified = 0
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == 'insert':
            added += j2 - j1
        elif tag == 'delete':
            removed += i2 - i1
        elif tag == 'replace':
            old_span, new_span = i2 - i1, j2 - j1
            modified += min(old_span, new_span)
            if new_span > old_span:
                added += new_span - old_span
            else:
                removed += old_span - new_span

    changed = added + removed + modified
    return ValidationMetrics(
        lines_added=added,
        lines_removed=removed,
        lines_modified=modified,
        lines_changed=changed,
        files_modified=1 if changed else 0,
        change_ratio=changed / max(len(old_lines), 1),
        complexity_delta=_complexity(proposed) - _complexity(original),
    )


def _complexity(code: str) -> int:
    return sum(len(re.findall(pattern, code)) for pattern in COMPLEXITY_PATTERNS)


def _is_font_size_edit(property_name: str) -> bool:
    prop = property_name.lower().replace('_', '-')
    return 'font-size' in prop or prop in ('fontsize', 'text-size')


class SmartValidationEngine:
    """Validates proposed file content against the request that produced it."""

    def __init__(self, settings: Optional[AssistantSettings] = None,
                 reflection_registry: Optional[ReflectionRegistry] = None,
                 reporter: Optional[EventReporter] = None):
        self.settings = settings or AssistantSettings()
        self.reflection_registry = reflection_registry or default_reflection_registry()
        self.reporter = reporter or EventReporter()

    def validate(self, original: str, proposed: str, intent: ChangeIntent,
                 assessment: ChangeConfidenceAssessment,
                 impact_analysis: Optional[ChangeImpactAnalysis] = None,
                 level: Optional[ValidationLevel] = None) -> ValidationResult:
        """Run every check and aggregate the verdict."""
        level = level or self.determine_validation_level(assessment)
        metrics = calculate_metrics(original, proposed)

        issues: List[ValidationIssue] = []
        warnings: List[ValidationWarning] = []

        checks = [
            self.check_syntax(original, proposed),
            self.check_intent_alignment(original, proposed, intent, level),
            self.check_preservation(original, proposed,
                                    impact_analysis.preservation_rules if impact_analysis else []),
            self.check_scope(metrics, intent, level),
            self.check_confidence_limits(metrics, assessment),
        ]
        for check_issues, check_warnings in checks:
            issues.extend(check_issues)
            warnings.extend(check_warnings)

        errors = [i for i in issues if i.severity == Severity.ERROR]
        confidence = self._calculate_validation_confidence(
            assessment.confidence, len(errors), len(warnings), metrics)
        passed = not errors

        logger.info(
            f"Validation complete: {'PASS' if passed else 'FAIL'} at {level.value} "
            f"({len(errors)} errors, {len(warnings)} warnings, "
            f"{metrics.lines_removed} removed, ratio {metrics.change_ratio:.2f})"
        )
        self.reporter.metric('validation_confidence', round(confidence, 3))

        return ValidationResult(
            passed=passed,
            confidence=confidence,
            issues=issues,
            warnings=warnings,
            metrics=metrics,
            level=level,
        )

    def determine_validation_level(self, assessment: ChangeConfidenceAssessment) -> ValidationLevel:
        """Strictness for an assessment, unless configuration pins one."""
        if self.settings.validation_level:
            return self.settings.validation_level
        if assessment.confidence >= self.settings.high_confidence and assessment.risk_level == RiskLevel.LOW:
            return ValidationLevel.STANDARD
        if assessment.confidence >= self.settings.medium_confidence:
            return ValidationLevel.STRICT
        return ValidationLevel.PARANOID

    # ============================================================================
    # CHECKS
    # ============================================================================

    def check_syntax(self, original: str, proposed: str) -> Findings:
        """
        Shallow syntax sanity.

        Every bracket imbalance the proposal introduces is an error. An imbalance
        the original already has (the scan does not understand regex literals or
        JSX text) is reported as a warning, so an unchanged quirk of the source
        file cannot block an otherwise valid change.
        """
        issues: List[ValidationIssue] = []
        warnings: List[ValidationWarning] = []

        new_unclosed, new_unexpected = scan_brackets(proposed)
        old_unclosed, old_unexpected = scan_brackets(original) if original else ({}, {})

        for opener, name in BRACKET_NAMES.items():
            for counts, old_counts, message in (
                    (new_unclosed, old_unclosed, f"Unclosed {name} detected"),
                    (new_unexpected, old_unexpected, f"Unexpected closing {name} detected")):
                if counts[opener] == 0:
                    continue
                if counts[opener] <= old_counts.get(opener, 0):
                    warnings.append(ValidationWarning(
                        type='syntax',
                        message=f"{message} (also present in original)",
                        suggestion="Check whether the original file parses"
                    ))
                else:
                    issues.append(ValidationIssue(
                        type=IssueType.SYNTAX,
                        severity=Severity.ERROR,
                        message=message,
                        suggestion=SYNTAX_SUGGESTION
                    ))

        tail = proposed.rstrip()
        if re.search(r'\bimport\b[^;\n]*\bfrom\s*$', tail):
            issues.append(ValidationIssue(
                type=IssueType.SYNTAX, severity=Severity.ERROR,
                message="Incomplete import statement", suggestion=SYNTAX_SUGGESTION))
        if re.search(r'\bexport\s*$', tail):
            issues.append(ValidationIssue(
                type=IssueType.SYNTAX, severity=Severity.ERROR,
                message="Incomplete export statement", suggestion=SYNTAX_SUGGESTION))

        return issues, warnings

    def check_intent_alignment(self, original: str, proposed: str, intent: ChangeIntent,
                               level: ValidationLevel) -> Findings:
        """Every declared edit must be visible in the proposed code."""
        issues: List[ValidationIssue] = []
        warnings: List[ValidationWarning] = []

        component = intent.target_component
        strategy = self.reflection_registry.for_approach(component.styling_approach)

        for edit in intent.request.edits:
            if strategy.is_reflected(edit, original, proposed):
                continue

            message = f'Visual change not reflected in code: {edit.property} "{edit.before}" → "{edit.after}"'
            suggestion = f"Ensure {edit.property} is set to {edit.after} in the modified code"
            if level == ValidationLevel.PARANOID:
                issues.append(ValidationIssue(
                    type=IssueType.INTENT_MISMATCH,
                    severity=Severity.ERROR,
                    message=message,
                    suggestion=suggestion
                ))
            else:
                warnings.append(ValidationWarning(
                    type='intent-alignment', message=message, suggestion=suggestion))

        return issues, warnings

    def check_preservation(self, original: str, proposed: str,
                           rules: List[PreservationRule]) -> Findings:
        """Critical rules keep their exact multiplicity; others must survive."""
        issues: List[ValidationIssue] = []
        warnings: List[ValidationWarning] = []

        for rule in rules:
            if not rule.pattern:
                continue
            try:
                before = rule.count_in(original)
                after = rule.count_in(proposed)
            except re.error as e:
                warnings.append(ValidationWarning(
                    type='preservation',
                    message=f"Preservation rule could not be evaluated: {rule.description} ({e})",
                    suggestion="Fix the rule's regular expression"
                ))
                continue

            message = f"Preservation rule violated: {rule.description}"
            if rule.critical and after != before:
                issues.append(ValidationIssue(
                    type=IssueType.PRESERVATION_VIOLATION,
                    severity=Severity.ERROR,
                    message=f"{message} (expected {before} occurrence(s), found {after})",
                    suggestion=f"Restore the preserved code matching: {rule.pattern}"
                ))
            elif not rule.critical and before > 0 and after == 0:
                warnings.append(ValidationWarning(
                    type='preservation',
                    message=message,
                    suggestion=f"Consider keeping code matching: {rule.pattern}"
                ))

        return issues, warnings

    def check_scope(self, metrics: ValidationMetrics, intent: ChangeIntent,
                    level: ValidationLevel) -> Findings:
        """The over-deletion guard."""
        issues: List[ValidationIssue] = []
        warnings: List[ValidationWarning] = []
        category = intent.request.change_category

        deletion_threshold = self.deletion_threshold(category, level)
        if metrics.lines_removed > deletion_threshold:
            issues.append(ValidationIssue(
                type=IssueType.SCOPE_EXCEEDED,
                severity=Severity.ERROR,
                message=(f"Excessive code deletion detected: {metrics.lines_removed} lines removed "
                         f"(threshold: {deletion_threshold})"),
                suggestion="Review the change to ensure only necessary code is being removed"
            ))

        ratio_threshold = self.change_ratio_threshold(category, level)
        if metrics.change_ratio > ratio_threshold:
            message = (f"Change ratio exceeded: {metrics.change_ratio * 100:.1f}% of file changed "
                       f"(threshold: {ratio_threshold * 100:.1f}%)")
            suggestion = "Consider if such a large change is necessary for the visual intent"
            if level == ValidationLevel.PARANOID:
                issues.append(ValidationIssue(
                    type=IssueType.SCOPE_EXCEEDED, severity=Severity.ERROR,
                    message=message, suggestion=suggestion))
            else:
                warnings.append(ValidationWarning(type='scope', message=message, suggestion=suggestion))

        if category == EditCategory.STYLING and metrics.lines_changed > STYLING_CHANGED_LINES_WARNING:
            warnings.append(ValidationWarning(
                type='scope',
                message=f"Simple styling change resulted in {metrics.lines_changed} lines changed",
                suggestion="Verify this change scope is appropriate for a styling modification"
            ))

        touches_font_size = any(_is_font_size_edit(e.property) for e in intent.request.edits)
        if touches_font_size and metrics.lines_removed > FONT_SIZE_REMOVAL_LIMIT:
            issues.append(ValidationIssue(
                type=IssueType.SCOPE_EXCEEDED,
                severity=Severity.ERROR,
                message=f"Font size change should not remove {metrics.lines_removed} lines of code",
                suggestion="Font size changes should be minimal and targeted"
            ))

        return issues, warnings

    def check_confidence_limits(self, metrics: ValidationMetrics,
                                assessment: ChangeConfidenceAssessment) -> Findings:
        """Tighter limits for low-confidence or high-risk changes."""
        issues: List[ValidationIssue] = []
        warnings: List[ValidationWarning] = []

        if assessment.confidence < LOW_CONFIDENCE:
            if metrics.change_ratio > LOW_CONFIDENCE_MAX_RATIO:
                issues.append(ValidationIssue(
                    type=IssueType.SCOPE_EXCEEDED,
                    severity=Severity.ERROR,
                    message=(f"Low confidence change ({assessment.confidence * 100:.1f}%) with high "
                             f"change ratio ({metrics.change_ratio * 100:.1f}%)"),
                    suggestion="Use a more conservative approach for low confidence changes"
                ))
            if metrics.lines_removed > LOW_CONFIDENCE_MAX_REMOVED:
                issues.append(ValidationIssue(
                    type=IssueType.SCOPE_EXCEEDED,
                    severity=Severity.ERROR,
                    message=f"Low confidence change removes {metrics.lines_removed} lines",
                    suggestion="Low confidence changes should not delete significant code"
                ))

        if (assessment.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
                and abs(metrics.complexity_delta) > COMPLEXITY_DELTA_WARNING):
            warnings.append(ValidationWarning(
                type='complexity',
                message=(f"High risk change with significant complexity change "
                         f"({metrics.complexity_delta:+d})"),
                suggestion="Consider breaking this change into smaller parts"
            ))

        return issues, warnings

    # ============================================================================
    # THRESHOLDS AND SCORING
    # ============================================================================

    @staticmethod
    def deletion_threshold(category: Optional[EditCategory], level: ValidationLevel) -> int:
        base = DELETION_BASE.get(category, DEFAULT_DELETION_BASE)
        return int(base * DELETION_MULTIPLIER[level])

    @staticmethod
    def change_ratio_threshold(category: Optional[EditCategory], level: ValidationLevel) -> float:
        base = RATIO_BASE.get(category, DEFAULT_RATIO_BASE)
        return base * RATIO_MULTIPLIER[level]

    @staticmethod
    def _calculate_validation_confidence(base: float, errors: int, warnings: int,
                                         metrics: ValidationMetrics) -> float:
        confidence = base - 0.2 * errors - 0.05 * warnings
        if metrics.change_ratio > 0.5:
            confidence -= 0.2
        return max(0.1, confidence)
