# FILE: tests/test_bundle_loader.py
"""
Tests for loading request bundles from YAML and JSON files.
"""

import json

import pytest
import yaml

from change_assistant.core.bundle_loader import BundleLoader
from change_assistant.core.change_models import ComplexityTier, ModelLoadError, RepoSymbolicModel
from conftest import BUTTON_SOURCE, write_bundle


@pytest.fixture
def bundle_data(font_size_request, minimal_impact, button_component, repo_model):
    return {
        'request': font_size_request.to_dict(),
        'impact_analysis': minimal_impact.to_dict(),
        'target_component': button_component.to_dict(),
        'repo_model': repo_model.to_dict(),
    }


class TestLoadBundle:
    def test_yaml_bundle(self, tmp_path, font_size_request, minimal_impact, button_component, repo_model):
        path = write_bundle(tmp_path / "bundle.yaml", font_size_request, minimal_impact,
                            button_component, repo_model)

        bundle = BundleLoader().load_bundle(path)

        assert bundle.request == font_size_request
        assert bundle.impact_analysis == minimal_impact
        assert bundle.target_component == button_component
        assert bundle.repo_model == repo_model
        assert bundle.source == path

    def test_json_bundle(self, tmp_path, bundle_data, button_component):
        path = tmp_path / "bundle.json"
        path.write_text(json.dumps(bundle_data), encoding='utf-8')

        bundle = BundleLoader().load_bundle(str(path))

        assert bundle.target_component.content == BUTTON_SOURCE
        assert bundle.target_component.complexity == ComplexityTier.SIMPLE

    def test_relative_path_uses_base_dir(self, tmp_path, bundle_data):
        (tmp_path / "bundle.yaml").write_text(yaml.safe_dump(bundle_data), encoding='utf-8')
        bundle = BundleLoader(base_dir=tmp_path).load_bundle("bundle.yaml")
        assert bundle.request.id == bundle_data['request']['id']

    def test_content_file(self, tmp_path, bundle_data):
        (tmp_path / "Button.tsx").write_text(BUTTON_SOURCE, encoding='utf-8')
        component = dict(bundle_data['target_component'], content="", content_file="Button.tsx")
        data = dict(bundle_data, target_component=component)

        bundle = BundleLoader(base_dir=tmp_path).bundle_from_dict(data)

        assert bundle.target_component.content == BUTTON_SOURCE

    def test_missing_repo_model_defaults(self, bundle_data):
        del bundle_data['repo_model']
        bundle = BundleLoader().bundle_from_dict(bundle_data)
        assert bundle.repo_model == RepoSymbolicModel()

    def test_round_trip_through_to_dict(self, bundle_data):
        bundle = BundleLoader().bundle_from_dict(bundle_data)
        again = BundleLoader().bundle_from_dict(bundle.to_dict())
        assert again.request == bundle.request
        assert again.target_component == bundle.target_component


class TestLoadErrors:
    def test_missing_keys(self, bundle_data):
        del bundle_data['impact_analysis']
        with pytest.raises(ModelLoadError, match="impact_analysis"):
            BundleLoader().bundle_from_dict(bundle_data)

    def test_invalid_enum_value(self, bundle_data):
        bundle_data['target_component']['complexity'] = "enormous"
        with pytest.raises(ModelLoadError, match="Invalid bundle"):
            BundleLoader().bundle_from_dict(bundle_data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ModelLoadError, match="File not found"):
            BundleLoader(base_dir=tmp_path).load_bundle("nope.yaml")

    def test_missing_content_file(self, tmp_path, bundle_data):
        bundle_data['target_component'] = dict(bundle_data['target_component'], content="",
                                               content_file="Gone.tsx")
        with pytest.raises(ModelLoadError, match="Gone.tsx"):
            BundleLoader(base_dir=tmp_path).bundle_from_dict(bundle_data)

    def test_unparseable_yaml(self, tmp_path):
        path = tmp_path / "bundle.yaml"
        path.write_text("request: [unclosed\n", encoding='utf-8')
        with pytest.raises(ModelLoadError, match="Could not parse"):
            BundleLoader().load_bundle(str(path))

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "bundle.yaml"
        path.write_text("- one\n- two\n", encoding='utf-8')
        with pytest.raises(ModelLoadError, match="does not contain a mapping"):
            BundleLoader().load_bundle(str(path))


class TestLoadBatch:
    def test_batch(self, tmp_path, bundle_data):
        second = dict(bundle_data, request=dict(bundle_data['request'], id="request_second"))
        path = tmp_path / "batch.yaml"
        path.write_text(yaml.safe_dump({'bundles': [bundle_data, second]}), encoding='utf-8')

        bundles = BundleLoader().load_batch(str(path))

        assert [b.request.id for b in bundles] == [bundle_data['request']['id'], "request_second"]
        assert bundles[1].source.endswith("batch.yaml#1")

    def test_batch_without_bundles(self, tmp_path):
        path = tmp_path / "batch.yaml"
        path.write_text("bundles: []\n", encoding='utf-8')
        with pytest.raises(ModelLoadError, match="no 'bundles' list"):
            BundleLoader().load_batch(str(path))

    def test_batch_entry_must_be_mapping(self, tmp_path, bundle_data):
        path = tmp_path / "batch.yaml"
        path.write_text(yaml.safe_dump({'bundles': [bundle_data, "oops"]}), encoding='utf-8')
        with pytest.raises(ModelLoadError, match="bundle #1"):
            BundleLoader().load_batch(str(path))


class TestLoadedModelsAreSnapshots:
    def test_sequences_are_tuples(self, bundle_data):
        bundle = BundleLoader().bundle_from_dict(bundle_data)

        assert isinstance(bundle.request.edits, tuple)
        assert isinstance(bundle.target_component.props, tuple)
        assert isinstance(bundle.target_component.exports, tuple)
        assert isinstance(bundle.impact_analysis.preservation_rules, tuple)
        assert isinstance(bundle.repo_model.components, tuple)

    def test_list_arguments_compare_equal_to_loaded_models(self, bundle_data, font_size_request):
        bundle = BundleLoader().bundle_from_dict(bundle_data)
        assert bundle.request == font_size_request
        assert bundle.request.edits == tuple(font_size_request.edits)

    def test_snapshot_serializes_back_to_yaml(self, bundle_data):
        bundle = BundleLoader().bundle_from_dict(bundle_data)
        data = yaml.safe_load(yaml.safe_dump(bundle.to_dict()))
        assert data['target_component']['exports'] == ["Button", "default"]
