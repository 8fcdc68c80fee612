"""
Tests for settings.py - YAML inference settings.
"""

import logging

import pytest

from src.latent_labels import settings
from src.latent_labels.errors import ConfigurationError


class TestLoadInferenceSettings:
    """Tests for load_inference_settings()"""

    def test_explicit_file(self, tmp_path):
        path = tmp_path / "inference.yaml"
        path.write_text("epsilon: 1.0e-6\nmissing_policy: exclude\nshard_size: 500\nworkers: 4\n")
        cfg = settings.load_inference_settings(path)
        assert cfg["epsilon"] == 1e-6
        assert cfg["missing_policy"] == "exclude"
        assert cfg["degenerate_policy"] == "raise"
        assert cfg["shard_size"] == 500
        assert cfg["workers"] == 4

    def test_exponent_without_dot(self, tmp_path):
        """'1e-9' is read as a string by YAML and converted."""
        path = tmp_path / "inference.yaml"
        path.write_text("epsilon: 1e-9\n")
        assert settings.load_inference_settings(path)["epsilon"] == 1e-9

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "inference.yaml"
        path.write_text("")
        assert settings.load_inference_settings(path) == settings.DEFAULT_SETTINGS

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "inference.yaml"
        path.write_text("learning_rate: 0.1\n")
        cfg = settings.load_inference_settings(path)
        assert "learning_rate" not in cfg

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            settings.load_inference_settings(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "inference.yaml"
        path.write_text("epsilon: [1, 2\n")
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            settings.load_inference_settings(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "inference.yaml"
        path.write_text("- epsilon\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            settings.load_inference_settings(path)

    @pytest.mark.parametrize("content,key", [
        ("epsilon: 0.7\n", "epsilon"),
        ("missing_policy: impute\n", "missing_policy"),
        ("degenerate_policy: skip\n", "degenerate_policy"),
        ("shard_size: 0\n", "shard_size"),
        ("workers: two\n", "workers"),
        ("id_column: ''\n", "id_column"),
    ])
    def test_invalid_values(self, tmp_path, content, key):
        path = tmp_path / "inference.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationError, match=key):
            settings.load_inference_settings(path)

    def test_no_file_uses_defaults(self, tmp_path, monkeypatch, caplog):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(settings, "DEFAULT_SETTINGS_PATHS", [str(tmp_path / "config/inference.yaml")])
        with caplog.at_level(logging.WARNING):
            cfg = settings.load_inference_settings()
        assert cfg == settings.DEFAULT_SETTINGS
        assert "using defaults" in caplog.text

    def test_project_settings_file_is_valid(self):
        """The shipped config/inference.yaml loads cleanly."""
        cfg = settings.load_inference_settings()
        assert settings.validate_settings(cfg) == []
