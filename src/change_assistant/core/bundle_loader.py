# src/change_assistant/core/bundle_loader.py
"""
Loads request bundles: a change request plus the collaborator inputs it needs
(impact analysis, target component, symbolic repository model). SYNC.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import yaml

from change_assistant.core.change_models import (
    ChangeImpactAnalysis, ChangeRequest, ModelLoadError, RepoSymbolicModel, TargetComponent
)

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ('request', 'impact_analysis', 'target_component')


@dataclass(frozen=True)
class ChangeBundle:
    """Everything one run consumes."""
    request: ChangeRequest
    impact_analysis: ChangeImpactAnalysis
    target_component: TargetComponent
    repo_model: RepoSymbolicModel
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'request': self.request.to_dict(),
            'impact_analysis': self.impact_analysis.to_dict(),
            'target_component': self.target_component.to_dict(),
            'repo_model': self.repo_model.to_dict()
        }


class BundleLoader:
    """Reads YAML or JSON bundles from disk."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()

    def load_bundle(self, path: str) -> ChangeBundle:
        """Load a single bundle file."""
        file_path = self._resolve(path)
        data = self._read(file_path)
        bundle = self.bundle_from_dict(data, source=str(file_path))
        logger.info(f"Loaded bundle {bundle.request.id} for {bundle.target_component.file_path}")
        return bundle

    def load_batch(self, path: str) -> List[ChangeBundle]:
        """Load a file holding a `bundles:` list."""
        file_path = self._resolve(path)
        data = self._read(file_path)

        entries = data.get('bundles')
        if not isinstance(entries, list) or not entries:
            raise ModelLoadError(f"{file_path} has no 'bundles' list")

        bundles = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ModelLoadError(f"{file_path}: bundle #{index} is not a mapping")
            bundles.append(self.bundle_from_dict(entry, source=f"{file_path}#{index}"))

        logger.info(f"Loaded {len(bundles)} bundles from {file_path}")
        return bundles

    def bundle_from_dict(self, data: Dict[str, Any], source: Optional[str] = None) -> ChangeBundle:
        """Build a bundle from plain data. A `content_file` key loads component source from disk."""
        missing = [key for key in REQUIRED_KEYS if key not in data]
        if missing:
            raise ModelLoadError(f"Bundle {source or ''} is missing keys: {', '.join(missing)}")

        component_data = dict(data['target_component'])
        content_file = component_data.pop('content_file', None)
        if content_file and not component_data.get('content'):
            component_data['content'] = self._resolve(content_file).read_text(encoding='utf-8')

        try:
            return ChangeBundle(
                request=ChangeRequest.from_dict(data['request']),
                impact_analysis=ChangeImpactAnalysis.from_dict(data['impact_analysis']),
                target_component=TargetComponent.from_dict(component_data),
                repo_model=RepoSymbolicModel.from_dict(data.get('repo_model') or {}),
                source=source,
            )
        except (KeyError, ValueError, TypeError) as e:
            raise ModelLoadError(f"Invalid bundle {source or ''}: {e}") from e

    def _resolve(self, path: str) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.base_dir / candidate
        if not candidate.exists():
            raise ModelLoadError(f"File not found: {candidate}")
        return candidate

    def _read(self, file_path: Path) -> Dict[str, Any]:
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if file_path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ModelLoadError(f"Could not parse {file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ModelLoadError(f"{file_path} does not contain a mapping")
        return data
