"""
Tests for model.py - LatentClassModel construction, named access and JSON interchange.
"""

import dataclasses
import json

import numpy as np
import pytest

from src.latent_labels.model import (
    LatentClassModel,
    load_model,
    model_from_dict,
    model_to_dict,
    save_model,
    validate_model_structure,
)
from src.latent_labels.errors import ConfigurationError, ValidationError


@pytest.fixture
def tb_model():
    """Two-class model for three tuberculosis tests."""
    return LatentClassModel(
        outcome_probabilities=np.array([
            [0.95, 0.80, 0.60],
            [0.05, 0.02, 0.10],
        ]),
        class_priors=np.array([0.3, 0.7]),
        indicator_names=("PCR", "Culture", "Smear"),
        class_names=("Diseased", "Healthy"),
        fit_statistics={"bic": 1234.5},
    )


class TestValidateModelStructure:
    """Tests for validate_model_structure()"""

    def test_valid_model_has_no_errors(self):
        errors = validate_model_structure([[0.9, 0.1], [0.1, 0.9]], [0.5, 0.5], ["A", "B"], ["X", "Y"])
        assert errors == []

    def test_prior_length_mismatch(self):
        """Prior vector length must equal the matrix row count."""
        errors = validate_model_structure([[0.9, 0.1], [0.1, 0.9]], [1.0])
        assert any("class_priors has 1 entries" in e for e in errors)

    def test_indicator_name_count_mismatch(self):
        errors = validate_model_structure([[0.9, 0.1], [0.1, 0.9]], [0.5, 0.5], ["A"])
        assert any("indicator names" in e for e in errors)

    def test_class_name_count_mismatch(self):
        errors = validate_model_structure([[0.9, 0.1], [0.1, 0.9]], [0.5, 0.5], class_names=["X"])
        assert any("class names" in e for e in errors)

    def test_probability_out_of_range(self):
        errors = validate_model_structure([[1.2, 0.1], [0.1, 0.9]], [0.5, 0.5])
        assert any("outside [0, 1]" in e for e in errors)

    def test_nan_probability(self):
        errors = validate_model_structure([[np.nan, 0.1], [0.1, 0.9]], [0.5, 0.5])
        assert any("NaN" in e for e in errors)

    def test_priors_must_sum_to_one(self):
        errors = validate_model_structure([[0.9], [0.1]], [0.5, 0.6])
        assert any("sum to" in e for e in errors)

    def test_priors_within_tolerance_accepted(self):
        errors = validate_model_structure([[0.9], [0.1]], [0.5, 0.5 + 1e-8])
        assert errors == []

    def test_one_dimensional_matrix_rejected(self):
        errors = validate_model_structure([0.9, 0.1], [1.0])
        assert any("2-dimensional" in e for e in errors)

    def test_ragged_matrix_rejected(self):
        errors = validate_model_structure([[0.9, 0.1], [0.1]], [0.5, 0.5])
        assert errors

    def test_duplicate_names_reported(self):
        errors = validate_model_structure([[0.9, 0.1]], [1.0], ["A", "A"])
        assert any("duplicate indicator names" in e for e in errors)


class TestLatentClassModel:
    """Tests for LatentClassModel construction and named access."""

    def test_fallback_names(self):
        """Names default to Test1..TestM and Class_1..Class_K."""
        model = LatentClassModel([[0.9, 0.2, 0.3], [0.1, 0.4, 0.5]], [0.4, 0.6])
        assert model.indicator_names == ("Test1", "Test2", "Test3")
        assert model.class_names == ("Class_1", "Class_2")
        assert model.n_classes == 2
        assert model.n_indicators == 3

    def test_invalid_model_raises(self):
        with pytest.raises(ValidationError, match="class_priors"):
            LatentClassModel([[0.9, 0.1], [0.1, 0.9]], [0.2, 0.3, 0.5])

    def test_all_errors_listed(self):
        """The error message lists every structural problem."""
        with pytest.raises(ValidationError) as exc_info:
            LatentClassModel([[0.9, 0.1]], [1.0], indicator_names=("A",), class_names=("X", "Y"))
        message = str(exc_info.value)
        assert "indicator names" in message
        assert "class names" in message

    def test_model_is_frozen(self, tb_model):
        with pytest.raises(dataclasses.FrozenInstanceError):
            tb_model.class_priors = np.array([0.5, 0.5])

    def test_arrays_are_read_only(self, tb_model):
        with pytest.raises(ValueError):
            tb_model.outcome_probabilities[0, 0] = 0.5

    def test_input_array_is_copied(self):
        """Mutating the caller's array does not change the model."""
        probs = np.array([[0.9, 0.1], [0.1, 0.9]])
        model = LatentClassModel(probs, np.array([0.5, 0.5]))
        probs[0, 0] = 0.0
        assert model.outcome_probabilities[0, 0] == 0.9

    def test_named_lookup(self, tb_model):
        assert tb_model.probability("Diseased", "Culture") == 0.80
        np.testing.assert_array_equal(tb_model.indicator_column("Smear"), [0.60, 0.10])
        np.testing.assert_array_equal(tb_model.class_row("Healthy"), [0.05, 0.02, 0.10])

    def test_index_mappings(self, tb_model):
        assert tb_model.indicator_index == {"PCR": 0, "Culture": 1, "Smear": 2}
        assert tb_model.class_index == {"Diseased": 0, "Healthy": 1}

    def test_unknown_indicator(self, tb_model):
        with pytest.raises(ConfigurationError, match="unknown indicator"):
            tb_model.indicator_column("Xray")

    def test_unknown_class(self, tb_model):
        with pytest.raises(ConfigurationError, match="unknown class"):
            tb_model.class_row("Latent")

    def test_restrict_keeps_requested_order(self, tb_model):
        sub = tb_model.restrict(["Smear", "PCR"])
        np.testing.assert_array_equal(sub, [[0.60, 0.95], [0.10, 0.05]])

    def test_fit_statistics_carried(self, tb_model):
        assert tb_model.fit_statistics == {"bic": 1234.5}


class TestModelDocuments:
    """Tests for JSON interchange."""

    def test_from_dict_without_names(self):
        model = model_from_dict({
            "outcome_probabilities": [[0.9, 0.1], [0.1, 0.9]],
            "class_priors": [0.5, 0.5],
        })
        assert model.indicator_names == ("Test1", "Test2")

    def test_from_dict_missing_priors(self):
        with pytest.raises(ValidationError, match="class_priors"):
            model_from_dict({"outcome_probabilities": [[0.9, 0.1]]})

    def test_from_dict_schema_range(self):
        """Schema rejects probabilities above 1 and names the path."""
        with pytest.raises(ValidationError, match="outcome_probabilities.0.1"):
            model_from_dict({
                "outcome_probabilities": [[0.9, 1.5]],
                "class_priors": [1.0],
            })

    def test_from_dict_non_numeric_fit_statistic(self):
        with pytest.raises(ValidationError):
            model_from_dict({
                "outcome_probabilities": [[0.9]],
                "class_priors": [1.0],
                "fit_statistics": {"bic": "low"},
            })

    def test_to_dict_includes_names(self, tb_model):
        doc = model_to_dict(tb_model)
        assert doc["indicator_names"] == ["PCR", "Culture", "Smear"]
        assert doc["class_names"] == ["Diseased", "Healthy"]
        assert doc["fit_statistics"] == {"bic": 1234.5}

    def test_save_and_load(self, tb_model, tmp_path):
        path = tmp_path / "models" / "tb.json"
        save_model(tb_model, path)
        loaded = load_model(path)
        np.testing.assert_array_equal(loaded.outcome_probabilities, tb_model.outcome_probabilities)
        np.testing.assert_array_equal(loaded.class_priors, tb_model.class_priors)
        assert loaded.indicator_names == tb_model.indicator_names
        assert loaded.class_names == tb_model.class_names

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ValidationError, match="invalid JSON"):
            load_model(path)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_model(tmp_path / "absent.json")

    def test_load_structurally_invalid(self, tmp_path):
        """Schema-valid documents still go through the structural checks."""
        path = tmp_path / "model.json"
        path.write_text(json.dumps({
            "outcome_probabilities": [[0.9, 0.1], [0.1, 0.9]],
            "class_priors": [0.5, 0.5],
            "indicator_names": ["A", "B", "C"],
        }))
        with pytest.raises(ValidationError, match="3 indicator names"):
            load_model(path)
