# FILE: tests/conftest.py
"""
Pytest configuration for the change assistant test suite.

Configures:
- pytest-asyncio for async test support
- a small tailwind Button component and the repository model around it
- a scripted generation backend, so no test touches the network
"""
import pytest
import yaml

from change_assistant.api.client import FailureKind, GenerationResult
from change_assistant.config import AssistantSettings
from change_assistant.core.change_models import (
    ChangeImpactAnalysis, ChangeIntent, ChangeRequest, ChangeScope, ComplexityTier, ComponentProp,
    DesignTokens, DirectChange, ElementDescriptor, PropertyEdit, RepoSymbolicModel,
    RiskLevel, ScopeTier, TargetComponent, create_preservation_rule
)
from change_assistant.core.confidence_engine import ChangeConfidenceEngine
from change_assistant.core.events import RecordingEventSink

pytest_plugins = ["pytest_asyncio"]


BUTTON_SOURCE = """import React from 'react';

interface ButtonProps {
  label: string;
  onClick?: () => void;
  disabled?: boolean;
}

export const Button: React.FC<ButtonProps> = ({ label, onClick, disabled = false }) => {
  const classes = [
    'btn-primary',
    'px-4',
    'py-2',
    'rounded-md',
    'text-sm',
    'font-medium',
    'bg-gray-800',
    'text-white',
  ].join(' ');

  return (
    <button
      type="button"
      className={classes}
      onClick={onClick}
      disabled={disabled}
    >
      {label}
    </button>
  );
};

export default Button;
"""

# One-line font-size change
BUTTON_FONT_SIZE_CHANGED = BUTTON_SOURCE.replace("'text-sm',", "'text-base',")

# One-line background change through an arbitrary-value utility
BUTTON_BACKGROUND_CHANGED = BUTTON_SOURCE.replace("'bg-gray-800',", "'bg-[#3B82F6]',")

# The failure mode: a one-line style request that guts the component
BUTTON_GUTTED = """import React from 'react';

export const Button = ({ label }) => (
  <button className="text-base">{label}</button>
);

export default Button;
"""


class ScriptedBackend:
    """Generation backend that replays a script of responses.

    Items may be strings (success), GenerationResult values or exceptions
    to raise. Once the script runs out, `default` is replayed.
    """

    def __init__(self, responses=None, default=None):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []

    async def generate(self, instruction, *, file_path, current_content):
        self.calls.append(instruction)
        item = self.responses.pop(0) if self.responses else self.default
        if item is None:
            return GenerationResult.failed(FailureKind.TRANSIENT, "script exhausted")
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return GenerationResult.success(item)
        return item


@pytest.fixture
def settings():
    return AssistantSettings()


@pytest.fixture
def sink():
    return RecordingEventSink()


@pytest.fixture
def button_component():
    return TargetComponent(
        name="Button",
        file_path="src/components/Button.tsx",
        framework="react",
        complexity=ComplexityTier.SIMPLE,
        props=[
            ComponentProp(name="label", type="string", required=True),
            ComponentProp(name="onClick", type="() => void"),
            ComponentProp(name="disabled", type="boolean"),
        ],
        exports=["Button", "default"],
        styling_approach="tailwind",
        content=BUTTON_SOURCE,
    )


@pytest.fixture
def repo_model():
    return RepoSymbolicModel(
        primary_framework="react",
        styling_approach="tailwind",
        design_tokens=DesignTokens(
            colors={"primary": "#3B82F6", "secondary": "#1F2937"},
            spacing={"sm": "0.5rem", "md": "1rem"},
            typography={"base": "16px"},
        ),
        analysis_confidence=0.85,
        declared_component_count=20,
    )


@pytest.fixture
def empty_repo():
    return RepoSymbolicModel()


@pytest.fixture
def font_size_request():
    return ChangeRequest(
        element=ElementDescriptor(tag_name="button", selector="button.btn-primary", class_name="btn-primary"),
        edits=[PropertyEdit(property="font-size", before="14px", after="16px")],
        description="Increase the font size of the primary button label",
    )


@pytest.fixture
def background_request():
    return ChangeRequest(
        element=ElementDescriptor(tag_name="button", selector="button.btn-primary"),
        edits=[PropertyEdit(property="background-color", before="#1F2937", after="#3B82F6")],
    )


@pytest.fixture
def vague_request():
    return ChangeRequest(element=ElementDescriptor(tag_name="div"))


@pytest.fixture
def complex_component():
    return TargetComponent(
        name="Dashboard",
        file_path="src/pages/Dashboard.jsx",
        complexity=ComplexityTier.COMPLEX,
        content=BUTTON_SOURCE,
    )


@pytest.fixture
def minimal_impact():
    return ChangeImpactAnalysis(
        expected_scope=ChangeScope(expected_lines=1, change_type=ScopeTier.MINIMAL, risk_level=RiskLevel.LOW),
        direct_changes=[DirectChange(type="style", target="button.btn-primary",
                                     old_value="14px", new_value="16px", confidence=0.95)],
        preservation_rules=[
            create_preservation_rule("Default export", "export default Button", critical=True),
            create_preservation_rule("Click handler wiring", "onClick={onClick}"),
        ],
    )


@pytest.fixture
def risky_impact():
    return ChangeImpactAnalysis(
        expected_scope=ChangeScope(expected_lines=40, expected_files=2,
                                   change_type=ScopeTier.SIGNIFICANT, risk_level=RiskLevel.HIGH),
    )


@pytest.fixture
def confidence_engine(settings):
    return ChangeConfidenceEngine(settings)


@pytest.fixture
def font_size_intent(font_size_request, button_component):
    return ChangeIntent(request=font_size_request, target_component=button_component)


@pytest.fixture
def direct_assessment(confidence_engine, font_size_request, minimal_impact, button_component, repo_model):
    """0.92 confidence, low risk: high-confidence-direct."""
    return confidence_engine.assess(font_size_request, minimal_impact, button_component, repo_model)


@pytest.fixture
def vague_intent(vague_request, complex_component):
    return ChangeIntent(request=vague_request, target_component=complex_component)


@pytest.fixture
def human_assessment(confidence_engine, vague_request, risky_impact, complex_component, empty_repo):
    """0.375 confidence, high risk: very-low-confidence-human-review."""
    return confidence_engine.assess(vague_request, risky_impact, complex_component, empty_repo)


def write_bundle(path, request, impact_analysis, target_component, repo_model=None):
    """Write a request bundle as YAML and return its path as a string."""
    data = {
        'request': request.to_dict(),
        'impact_analysis': impact_analysis.to_dict(),
        'target_component': target_component.to_dict(),
    }
    if repo_model is not None:
        data['repo_model'] = repo_model.to_dict()
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding='utf-8')
    return str(path)
