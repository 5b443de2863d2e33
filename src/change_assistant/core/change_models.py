# src/change_assistant/core/change_models.py
"""
Data models for the Visual Change Assistant.

All sync - no async needed for data structures. These models describe a
requested UI change, the symbolic repository context it is made against,
the confidence assessment, and the results of generation and validation.

Input models are frozen: a request, its impact analysis and its assessment
are snapshots shared by every stage of a run.

Designed for JSON serialization with to_dict()/from_dict() methods.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
from datetime import datetime
from pathlib import Path
import json
import re
import uuid


# ============================================================================
# ERRORS
# ============================================================================

class ChangeAssistantError(Exception):
    """Base exception for the change assistant core."""
    pass


class ReasoningError(ChangeAssistantError):
    """Raised when a request cannot be assessed or a prompt cannot be built."""
    pass


class ModelLoadError(ChangeAssistantError):
    """Raised when a request bundle cannot be turned into models."""
    pass


# ============================================================================
# ENUMS
# ============================================================================

class ChangeApproach(str, Enum):
    """Execution strategy, ordered from least to most conservative."""
    HIGH_CONFIDENCE_DIRECT = "high-confidence-direct"
    MEDIUM_CONFIDENCE_GUIDED = "medium-confidence-guided"
    LOW_CONFIDENCE_CONSERVATIVE = "low-confidence-conservative"
    VERY_LOW_CONFIDENCE_HUMAN_REVIEW = "very-low-confidence-human-review"

    @property
    def conservatism(self) -> int:
        return list(ChangeApproach).index(self)


class RiskLevel(str, Enum):
    """Risk tier of a change."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(RiskLevel).index(self)


class ValidationLevel(str, Enum):
    """Strictness applied by the validation engine."""
    BASIC = "basic"
    STANDARD = "standard"
    STRICT = "strict"
    PARANOID = "paranoid"


class EditCategory(str, Enum):
    """Category of a property-level visual edit."""
    STYLING = "styling"
    LAYOUT = "layout"
    STRUCTURE = "structure"
    CONTENT = "content"


class ImpactLevel(str, Enum):
    """Declared impact of a single edit."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ComplexityTier(str, Enum):
    """Coarse complexity of a component."""
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class ScopeTier(str, Enum):
    """Predicted size of a change."""
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"
    MAJOR = "major"

    @property
    def multiplier(self) -> int:
        return list(ScopeTier).index(self) + 1


class ChangeAction(str, Enum):
    """What a generated change does to its file."""
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class IssueType(str, Enum):
    """Validation issue taxonomy."""
    SYNTAX = "syntax"
    INTENT_MISMATCH = "intent-mismatch"
    PRESERVATION_VIOLATION = "preservation-violation"
    SCOPE_EXCEEDED = "scope-exceeded"


class Severity(str, Enum):
    """Severity of a validation issue."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ExecutionOutcome(str, Enum):
    """Terminal state of an execution run."""
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"  # every strategy in the chain failed validation
    ABORTED = "aborted"      # permanent backend failure, chain not continued


# Broadest category first; a request is scoped by the broadest edit it holds
_CATEGORY_BREADTH = [EditCategory.STRUCTURE, EditCategory.CONTENT,
                     EditCategory.LAYOUT, EditCategory.STYLING]


def _freeze_sequences(instance: Any, *names: str) -> None:
    """Store list arguments of a frozen model as tuples."""
    for name in names:
        object.__setattr__(instance, name, tuple(getattr(instance, name)))


# ============================================================================
# CHANGE REQUEST
# ============================================================================

@dataclass(frozen=True)
class ElementDescriptor:
    """The on-page element a change was captured from."""
    tag_name: str
    selector: str = ""
    class_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'tag_name': self.tag_name,
            'selector': self.selector,
            'class_name': self.class_name
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ElementDescriptor':
        """Create from dictionary."""
        return cls(
            tag_name=data.get('tag_name', ''),
            selector=data.get('selector') or '',
            class_name=data.get('class_name')
        )


@dataclass(frozen=True)
class PropertyEdit:
    """A single property-level visual edit."""
    property: str
    before: str
    after: str
    category: EditCategory = EditCategory.STYLING
    impact: ImpactLevel = ImpactLevel.LOW

    @property
    def camel_property(self) -> str:
        """CSS property in camelCase (font-size -> fontSize)."""
        head, *rest = self.property.split('-')
        return head + ''.join(part.capitalize() for part in rest)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'property': self.property,
            'before': self.before,
            'after': self.after,
            'category': self.category.value,
            'impact': self.impact.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PropertyEdit':
        """Create from dictionary."""
        return cls(
            property=data['property'],
            before=str(data.get('before', '')),
            after=str(data.get('after', '')),
            category=EditCategory(data.get('category', 'styling')),
            impact=ImpactLevel(data.get('impact', 'low'))
        )


@dataclass(frozen=True)
class ChangeRequest:
    """A requested UI change: target element, edits and optional intent."""
    element: ElementDescriptor
    edits: Tuple[PropertyEdit, ...] = ()
    description: str = ""
    id: str = field(default_factory=lambda: f"request_{uuid.uuid4().hex[:8]}")

    def __post_init__(self):
        _freeze_sequences(self, 'edits')

    @property
    def change_category(self) -> Optional[EditCategory]:
        """Broadest category among the edits, None when there are no edits."""
        categories = {edit.category for edit in self.edits}
        for category in _CATEGORY_BREADTH:
            if category in categories:
                return category
        return None

    def summary(self) -> str:
        """Human-readable one-line intent."""
        if self.description.strip():
            return self.description.strip()
        if not self.edits:
            return f"Unspecified change to {self.element.selector or self.element.tag_name}"
        parts = [f"{e.property} from {e.before} to {e.after}" for e in self.edits]
        target = self.element.selector or self.element.tag_name
        return f"Change {', '.join(parts)} on {target}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'element': self.element.to_dict(),
            'edits': [e.to_dict() for e in self.edits],
            'description': self.description
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChangeRequest':
        """Create from dictionary."""
        kwargs = {}
        if data.get('id'):
            kwargs['id'] = data['id']
        return cls(
            element=ElementDescriptor.from_dict(data.get('element', {})),
            edits=[PropertyEdit.from_dict(e) for e in data.get('edits', [])],
            description=data.get('description') or '',
            **kwargs
        )


# ============================================================================
# SYMBOLIC REPOSITORY MODEL (consumed, never produced)
# ============================================================================

@dataclass(frozen=True)
class ComponentProp:
    """A declared component prop."""
    name: str
    type: str = "any"
    required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {'name': self.name, 'type': self.type, 'required': self.required}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComponentProp':
        """Create from dictionary."""
        return cls(
            name=data['name'],
            type=data.get('type', 'any'),
            required=data.get('required', False)
        )


@dataclass(frozen=True)
class TargetComponent:
    """The component whose source file the change lands in."""
    name: str
    file_path: str
    framework: str = "react"
    complexity: ComplexityTier = ComplexityTier.MODERATE
    props: Tuple[ComponentProp, ...] = ()
    exports: Tuple[str, ...] = ()
    styling_approach: Optional[str] = None
    content: str = ""

    def __post_init__(self):
        _freeze_sequences(self, 'props', 'exports')

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'name': self.name,
            'file_path': self.file_path,
            'framework': self.framework,
            'complexity': self.complexity.value,
            'props': [p.to_dict() for p in self.props],
            'exports': list(self.exports),
            'styling_approach': self.styling_approach,
            'content': self.content
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TargetComponent':
        """Create from dictionary."""
        return cls(
            name=data['name'],
            file_path=data['file_path'],
            framework=data.get('framework', 'react'),
            complexity=ComplexityTier(data.get('complexity', 'moderate')),
            props=[ComponentProp.from_dict(p) for p in data.get('props', [])],
            exports=data.get('exports', []),
            styling_approach=data.get('styling_approach'),
            content=data.get('content', '')
        )


@dataclass(frozen=True)
class DesignTokens:
    """Design tokens known to the repository."""
    colors: Dict[str, str] = field(default_factory=dict)
    spacing: Dict[str, str] = field(default_factory=dict)
    typography: Dict[str, str] = field(default_factory=dict)

    @property
    def is_present(self) -> bool:
        return bool(self.colors or self.spacing or self.typography)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {'colors': self.colors, 'spacing': self.spacing, 'typography': self.typography}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DesignTokens':
        """Create from dictionary."""
        return cls(
            colors=data.get('colors', {}),
            spacing=data.get('spacing', {}),
            typography=data.get('typography', {})
        )


@dataclass(frozen=True)
class RepoSymbolicModel:
    """Precomputed description of the target repository."""
    primary_framework: str = "react"
    styling_approach: Optional[str] = None
    components: Tuple[TargetComponent, ...] = ()
    component_patterns: Dict[str, Any] = field(default_factory=dict)
    styling_patterns: Dict[str, Any] = field(default_factory=dict)
    dom_mappings: Dict[str, str] = field(default_factory=dict)
    transformation_rules: Tuple[Dict[str, Any], ...] = ()
    design_tokens: Optional[DesignTokens] = None
    analysis_confidence: float = 0.0
    declared_component_count: Optional[int] = None  # inventory size when components are not inlined

    def __post_init__(self):
        _freeze_sequences(self, 'components', 'transformation_rules')

    @property
    def component_count(self) -> int:
        if self.declared_component_count is not None:
            return max(self.declared_component_count, len(self.components))
        return len(self.components)

    @property
    def has_design_tokens(self) -> bool:
        return self.design_tokens is not None and self.design_tokens.is_present

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'primary_framework': self.primary_framework,
            'styling_approach': self.styling_approach,
            'components': [c.to_dict() for c in self.components],
            'component_patterns': self.component_patterns,
            'styling_patterns': self.styling_patterns,
            'dom_mappings': self.dom_mappings,
            'transformation_rules': list(self.transformation_rules),
            'design_tokens': self.design_tokens.to_dict() if self.design_tokens else None,
            'analysis_confidence': self.analysis_confidence,
            'declared_component_count': self.declared_component_count
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RepoSymbolicModel':
        """Create from dictionary."""
        tokens = data.get('design_tokens')
        return cls(
            primary_framework=data.get('primary_framework', 'react'),
            styling_approach=data.get('styling_approach'),
            components=[TargetComponent.from_dict(c) for c in data.get('components', [])],
            component_patterns=data.get('component_patterns', {}),
            styling_patterns=data.get('styling_patterns', {}),
            dom_mappings=data.get('dom_mappings', {}),
            transformation_rules=data.get('transformation_rules', []),
            design_tokens=DesignTokens.from_dict(tokens) if tokens else None,
            analysis_confidence=data.get('analysis_confidence', 0.0),
            declared_component_count=data.get('declared_component_count')
        )


# ============================================================================
# IMPACT ANALYSIS (consumed, never produced)
# ============================================================================

@dataclass(frozen=True)
class ChangeScope:
    """Predicted footprint of a change."""
    expected_lines: int = 1
    expected_files: int = 1
    change_type: ScopeTier = ScopeTier.MINIMAL
    risk_level: RiskLevel = RiskLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'expected_lines': self.expected_lines,
            'expected_files': self.expected_files,
            'change_type': self.change_type.value,
            'risk_level': self.risk_level.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChangeScope':
        """Create from dictionary."""
        return cls(
            expected_lines=data.get('expected_lines', 1),
            expected_files=data.get('expected_files', 1),
            change_type=ScopeTier(data.get('change_type', 'minimal')),
            risk_level=RiskLevel(data.get('risk_level', 'low'))
        )


@dataclass(frozen=True)
class DirectChange:
    """A selector/property/value change the request implies directly."""
    type: str
    target: str
    old_value: str
    new_value: str
    confidence: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'type': self.type,
            'target': self.target,
            'old_value': self.old_value,
            'new_value': self.new_value,
            'confidence': self.confidence
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DirectChange':
        """Create from dictionary."""
        return cls(
            type=data.get('type', 'style'),
            target=data['target'],
            old_value=str(data.get('old_value', '')),
            new_value=str(data.get('new_value', '')),
            confidence=data.get('confidence', 1.0)
        )


@dataclass(frozen=True)
class CascadeChange:
    """A related change elsewhere that may be needed."""
    type: str
    target: str
    reason: str
    required: bool = False
    confidence: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'type': self.type,
            'target': self.target,
            'reason': self.reason,
            'required': self.required,
            'confidence': self.confidence
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CascadeChange':
        """Create from dictionary."""
        return cls(
            type=data.get('type', 'related-component'),
            target=data['target'],
            reason=data.get('reason', ''),
            required=data.get('required', False),
            confidence=data.get('confidence', 0.5)
        )


@dataclass(frozen=True)
class PreservationRule:
    """
    Invariant the proposed code must keep.

    The pattern is a literal substring unless is_regex is set, in which case
    it is a multiline regular expression.
    """
    type: str
    description: str
    pattern: str
    critical: bool = False
    is_regex: bool = False

    def count_in(self, content: str) -> int:
        """Count occurrences of the pattern. Raises re.error for a bad regex."""
        if not self.pattern:
            return 0
        if self.is_regex:
            return len(re.findall(self.pattern, content, re.MULTILINE))
        return content.count(self.pattern)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'type': self.type,
            'description': self.description,
            'pattern': self.pattern,
            'critical': self.critical,
            'is_regex': self.is_regex
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PreservationRule':
        """Create from dictionary."""
        return cls(
            type=data.get('type', 'functionality'),
            description=data.get('description', ''),
            pattern=data.get('pattern', ''),
            critical=data.get('critical', False),
            is_regex=data.get('is_regex', False)
        )


@dataclass(frozen=True)
class ValidationCheck:
    """Descriptor of a check that will run after generation."""
    type: str
    description: str
    validator: str = ""
    required: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'type': self.type,
            'description': self.description,
            'validator': self.validator,
            'required': self.required
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationCheck':
        """Create from dictionary."""
        return cls(
            type=data.get('type', 'scope'),
            description=data.get('description', ''),
            validator=data.get('validator', ''),
            required=data.get('required', True)
        )


@dataclass(frozen=True)
class ChangeImpactAnalysis:
    """Precomputed impact of a request on the codebase."""
    expected_scope: ChangeScope = field(default_factory=ChangeScope)
    direct_changes: Tuple[DirectChange, ...] = ()
    cascade_changes: Tuple[CascadeChange, ...] = ()
    preservation_rules: Tuple[PreservationRule, ...] = ()
    validation_checks: Tuple[ValidationCheck, ...] = ()

    def __post_init__(self):
        _freeze_sequences(self, 'direct_changes', 'cascade_changes', 'preservation_rules', 'validation_checks')

    @property
    def required_cascades(self) -> List[CascadeChange]:
        return [c for c in self.cascade_changes if c.required]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'expected_scope': self.expected_scope.to_dict(),
            'direct_changes': [c.to_dict() for c in self.direct_changes],
            'cascade_changes': [c.to_dict() for c in self.cascade_changes],
            'preservation_rules': [r.to_dict() for r in self.preservation_rules],
            'validation_checks': [c.to_dict() for c in self.validation_checks]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChangeImpactAnalysis':
        """Create from dictionary."""
        return cls(
            expected_scope=ChangeScope.from_dict(data.get('expected_scope', {})),
            direct_changes=[DirectChange.from_dict(c) for c in data.get('direct_changes', [])],
            cascade_changes=[CascadeChange.from_dict(c) for c in data.get('cascade_changes', [])],
            preservation_rules=[PreservationRule.from_dict(r) for r in data.get('preservation_rules', [])],
            validation_checks=[ValidationCheck.from_dict(c) for c in data.get('validation_checks', [])]
        )


# ============================================================================
# CONFIDENCE ASSESSMENT
# ============================================================================

@dataclass(frozen=True)
class ConfidenceFactors:
    """The four independent factor scores, each in [0, 1]."""
    visual_clarity: float
    component_understanding: float
    change_complexity: float  # scored as simplicity: higher is simpler
    context_completeness: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'visual_clarity': self.visual_clarity,
            'component_understanding': self.component_understanding,
            'change_complexity': self.change_complexity,
            'context_completeness': self.context_completeness
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConfidenceFactors':
        """Create from dictionary."""
        return cls(
            visual_clarity=data['visual_clarity'],
            component_understanding=data['component_understanding'],
            change_complexity=data['change_complexity'],
            context_completeness=data['context_completeness']
        )


@dataclass(frozen=True)
class ChangeConfidenceAssessment:
    """How safely a request can be executed, and with which strategy."""
    confidence: float
    factors: ConfidenceFactors
    recommended_approach: ChangeApproach
    fallback_strategies: List[ChangeApproach]
    risk_level: RiskLevel

    @property
    def strategy_chain(self) -> List[ChangeApproach]:
        """Recommended approach followed by its fallbacks, in order."""
        return [self.recommended_approach, *self.fallback_strategies]

    def describe(self) -> str:
        """Short text summary of the assessment."""
        f = self.factors
        return (
            f"Confidence {self.confidence:.0%} ({self.risk_level.value} risk) -> "
            f"{self.recommended_approach.value}. "
            f"Visual clarity {f.visual_clarity:.0%}, "
            f"component understanding {f.component_understanding:.0%}, "
            f"simplicity {f.change_complexity:.0%}, "
            f"context {f.context_completeness:.0%}."
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'confidence': self.confidence,
            'factors': self.factors.to_dict(),
            'recommended_approach': self.recommended_approach.value,
            'fallback_strategies': [a.value for a in self.fallback_strategies],
            'risk_level': self.risk_level.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChangeConfidenceAssessment':
        """Create from dictionary."""
        return cls(
            confidence=data['confidence'],
            factors=ConfidenceFactors.from_dict(data['factors']),
            recommended_approach=ChangeApproach(data['recommended_approach']),
            fallback_strategies=[ChangeApproach(a) for a in data.get('fallback_strategies', [])],
            risk_level=RiskLevel(data['risk_level'])
        )


@dataclass(frozen=True)
class ChangeIntent:
    """A request bound to the component it will be applied to."""
    request: ChangeRequest
    target_component: TargetComponent
    id: str = field(default_factory=lambda: f"intent_{uuid.uuid4().hex[:8]}")

    @property
    def description(self) -> str:
        return self.request.summary()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'request': self.request.to_dict(),
            'target_component': self.target_component.to_dict()
        }


# ============================================================================
# GENERATION AND VALIDATION RESULTS
# ============================================================================

@dataclass
class GeneratedChange:
    """Proposed content for one file."""
    file_path: str
    action: ChangeAction
    old_content: str
    new_content: str
    reasoning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'file_path': self.file_path,
            'action': self.action.value,
            'old_content': self.old_content,
            'new_content': self.new_content,
            'reasoning': self.reasoning
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeneratedChange':
        """Create from dictionary."""
        return cls(
            file_path=data['file_path'],
            action=ChangeAction(data.get('action', 'modify')),
            old_content=data.get('old_content', ''),
            new_content=data.get('new_content', ''),
            reasoning=data.get('reasoning', '')
        )


@dataclass
class ValidationIssue:
    """A typed validation finding."""
    type: IssueType
    severity: Severity
    message: str
    suggestion: Optional[str] = None
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'type': self.type.value,
            'severity': self.severity.value,
            'message': self.message,
            'suggestion': self.suggestion,
            'line': self.line
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationIssue':
        """Create from dictionary."""
        return cls(
            type=IssueType(data['type']),
            severity=Severity(data['severity']),
            message=data['message'],
            suggestion=data.get('suggestion'),
            line=data.get('line')
        )


@dataclass
class ValidationWarning:
    """A softer finding that never blocks a result."""
    type: str  # syntax, intent-alignment, preservation, scope, complexity
    message: str
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {'type': self.type, 'message': self.message, 'suggestion': self.suggestion}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationWarning':
        """Create from dictionary."""
        return cls(type=data['type'], message=data['message'], suggestion=data.get('suggestion'))


@dataclass
class ValidationMetrics:
    """Size of a proposed change relative to the original."""
    lines_added: int = 0
    lines_removed: int = 0
    lines_modified: int = 0
    lines_changed: int = 0  # added + removed + modified
    files_modified: int = 0
    change_ratio: float = 0.0
    complexity_delta: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'lines_added': self.lines_added,
            'lines_removed': self.lines_removed,
            'lines_modified': self.lines_modified,
            'lines_changed': self.lines_changed,
            'files_modified': self.files_modified,
            'change_ratio': self.change_ratio,
            'complexity_delta': self.complexity_delta
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationMetrics':
        """Create from dictionary."""
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass
class ValidationResult:
    """Verdict of one validation pass."""
    passed: bool
    confidence: float
    issues: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationWarning] = field(default_factory=list)
    metrics: ValidationMetrics = field(default_factory=ValidationMetrics)
    level: Optional[ValidationLevel] = None

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    def has_issue(self, issue_type: IssueType) -> bool:
        return any(i.type == issue_type for i in self.issues)

    @classmethod
    def no_changes(cls, reason: str = "") -> 'ValidationResult':
        """Failed result for an attempt that produced no file change."""
        message = "No file changes generated"
        if reason:
            message = f"{message}: {reason}"
        return cls(
            passed=False,
            confidence=0.0,
            issues=[ValidationIssue(
                type=IssueType.SCOPE_EXCEEDED,
                severity=Severity.ERROR,
                message=message,
                suggestion="Retry the request or review it manually"
            )]
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'passed': self.passed,
            'confidence': self.confidence,
            'issues': [i.to_dict() for i in self.issues],
            'warnings': [w.to_dict() for w in self.warnings],
            'metrics': self.metrics.to_dict(),
            'level': self.level.value if self.level else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationResult':
        """Create from dictionary."""
        return cls(
            passed=data['passed'],
            confidence=data['confidence'],
            issues=[ValidationIssue.from_dict(i) for i in data.get('issues', [])],
            warnings=[ValidationWarning.from_dict(w) for w in data.get('warnings', [])],
            metrics=ValidationMetrics.from_dict(data.get('metrics', {})),
            level=ValidationLevel(data['level']) if data.get('level') else None
        )


# ============================================================================
# EXECUTION AND ORCHESTRATION RESULTS
# ============================================================================

@dataclass(frozen=True)
class ExecutionStrategy:
    """Steps and nominal validation level of one approach."""
    approach: ChangeApproach
    steps: List[str]
    validation_level: ValidationLevel

    @property
    def applies_changes(self) -> bool:
        return 'apply' in self.steps


@dataclass
class ExecutionResult:
    """Outcome of the adaptive execution loop."""
    file_changes: List[GeneratedChange]
    strategy_used: ChangeApproach
    validation: ValidationResult
    execution_log: List[str] = field(default_factory=list)
    outcome: ExecutionOutcome = ExecutionOutcome.SUCCEEDED
    attempts: int = 0
    strategies_attempted: List[ChangeApproach] = field(default_factory=list)
    requires_human_review: bool = False
    backend_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'file_changes': [c.to_dict() for c in self.file_changes],
            'strategy_used': self.strategy_used.value,
            'validation': self.validation.to_dict(),
            'execution_log': self.execution_log,
            'outcome': self.outcome.value,
            'attempts': self.attempts,
            'strategies_attempted': [a.value for a in self.strategies_attempted],
            'requires_human_review': self.requires_human_review,
            'backend_error': self.backend_error
        }


@dataclass
class ChangePreview:
    """What a run would do, without doing it."""
    approach: ChangeApproach
    expected_changes: List[str]
    risks: List[str]
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'approach': self.approach.value,
            'expected_changes': self.expected_changes,
            'risks': self.risks,
            'recommendations': self.recommendations
        }


@dataclass
class DryRunResult:
    """Assessment plus preview."""
    assessment: ChangeConfidenceAssessment
    impact_analysis: ChangeImpactAnalysis
    preview: ChangePreview

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'assessment': self.assessment.to_dict(),
            'impact_analysis': self.impact_analysis.to_dict(),
            'preview': self.preview.to_dict()
        }


@dataclass
class ChangeResult:
    """Structured result of a full run, suitable for turning into a PR."""
    success: bool
    request_id: str
    file_changes: List[GeneratedChange] = field(default_factory=list)
    assessment: Optional[ChangeConfidenceAssessment] = None
    validation: Optional[ValidationResult] = None
    execution: Optional[ExecutionResult] = None
    summary: str = ""
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'success': self.success,
            'request_id': self.request_id,
            'file_changes': [c.to_dict() for c in self.file_changes],
            'assessment': self.assessment.to_dict() if self.assessment else None,
            'validation': self.validation.to_dict() if self.validation else None,
            'execution': self.execution.to_dict() if self.execution else None,
            'summary': self.summary,
            'error': self.error,
            'created_at': self.created_at.isoformat()
        }


@dataclass
class BatchResult:
    """Results of independently processed requests."""
    results: List[ChangeResult]
    overall_confidence: float
    overall_risk: RiskLevel
    recommended_approach: ChangeApproach
    by_component: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.results) and all(r.success for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'success': self.success,
            'overall_confidence': self.overall_confidence,
            'overall_risk': self.overall_risk.value,
            'recommended_approach': self.recommended_approach.value,
            'by_component': self.by_component,
            'results': [r.to_dict() for r in self.results]
        }


# ============================================================================
# SERIALIZATION HELPERS
# ============================================================================

class EnhancedJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles models, enums and datetime objects."""

    def default(self, obj):
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Path):
            return str(obj)
        if hasattr(obj, 'to_dict'):
            return obj.to_dict()
        return super().default(obj)


def save_model_to_json(model: Any, filepath: Path) -> None:
    """Save any model to JSON file."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(model, f, cls=EnhancedJSONEncoder, indent=2)


def load_model_from_json(filepath: Path, model_class: Any) -> Any:
    """Load a model from JSON file."""
    with open(filepath, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if hasattr(model_class, 'from_dict'):
        return model_class.from_dict(data)
    return data


# ============================================================================
# FACTORY FUNCTIONS FOR COMMON CREATIONS
# ============================================================================

def create_change_request(
        selector: str,
        edits: List[Dict[str, Any]],
        description: str = "",
        tag_name: str = "div",
        class_name: Optional[str] = None
) -> ChangeRequest:
    """Factory function to create a ChangeRequest from plain edit dicts."""
    return ChangeRequest(
        element=ElementDescriptor(tag_name=tag_name, selector=selector, class_name=class_name),
        edits=[PropertyEdit.from_dict(e) for e in edits],
        description=description
    )


def create_preservation_rule(
        description: str,
        pattern: str,
        critical: bool = False,
        is_regex: bool = False,
        rule_type: str = "functionality"
) -> PreservationRule:
    """Factory function to create a PreservationRule."""
    return PreservationRule(
        type=rule_type,
        description=description,
        pattern=pattern,
        critical=critical,
        is_regex=is_regex
    )
