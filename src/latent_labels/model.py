"""
Fitted latent-class model: the contract consumed from the external fitter.

A model has K latent classes and M binary indicators. Its outcome
probability matrix holds P(indicator m positive | class k) and its prior
vector holds the class prevalences. Both axes carry names with a
bijective name-to-index mapping that is checked once, at construction.

Models are immutable: the arrays are copied and marked read-only, so a
model can be shared by any number of concurrent inference calls.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import jsonschema
import numpy as np

from . import naming
from .errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

# Tolerance for class prior sum validation
PRIOR_SUM_TOLERANCE = 1e-6

MODEL_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "LatentClassModel",
    "type": "object",
    "required": ["outcome_probabilities", "class_priors"],
    "properties": {
        "outcome_probabilities": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "array",
                "minItems": 1,
                "items": {"type": "number", "minimum": 0, "maximum": 1},
            },
        },
        "class_priors": {
            "type": "array",
            "minItems": 1,
            "items": {"type": "number", "minimum": 0, "maximum": 1},
        },
        "indicator_names": {
            "type": ["array", "null"],
            "items": {"type": "string", "minLength": 1},
        },
        "class_names": {
            "type": ["array", "null"],
            "items": {"type": "string", "minLength": 1},
        },
        "fit_statistics": {
            "type": "object",
            "additionalProperties": {"type": "number"},
        },
    },
}


def validate_model_structure(
    outcome_probabilities: Any,
    class_priors: Any,
    indicator_names: Optional[Sequence[str]] = None,
    class_names: Optional[Sequence[str]] = None,
) -> List[str]:
    """
    Check the structural invariants of a latent-class model.

    Checks:
    1. Outcome probabilities form a non-empty K x M matrix of finite values in [0, 1]
    2. Class priors form a vector of length K, non-negative, summing to 1 (tolerance 1e-6)
    3. Indicator names (if given) number M and are unique
    4. Class names (if given) number K and are unique

    Args:
        outcome_probabilities: K x M array-like
        class_priors: length-K array-like
        indicator_names: Optional indicator names
        class_names: Optional class names

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    try:
        probs = np.asarray(outcome_probabilities, dtype=float)
    except (TypeError, ValueError):
        return ["outcome_probabilities is not a numeric matrix"]
    try:
        priors = np.asarray(class_priors, dtype=float)
    except (TypeError, ValueError):
        return ["class_priors is not a numeric vector"]

    if probs.ndim != 2:
        errors.append(f"outcome_probabilities must be 2-dimensional, got {probs.ndim} dimension(s)")
        return errors
    n_classes, n_indicators = probs.shape
    if n_classes == 0 or n_indicators == 0:
        errors.append(f"outcome_probabilities must be non-empty, got shape {probs.shape}")
        return errors

    if not np.all(np.isfinite(probs)):
        errors.append("outcome_probabilities contains NaN or infinite values")
    elif np.any(probs < 0.0) or np.any(probs > 1.0):
        errors.append("outcome_probabilities has entries outside [0, 1]")

    if priors.ndim != 1:
        errors.append(f"class_priors must be 1-dimensional, got {priors.ndim} dimension(s)")
    elif len(priors) != n_classes:
        errors.append(
            f"class_priors has {len(priors)} entries but outcome_probabilities has {n_classes} rows"
        )
    elif not np.all(np.isfinite(priors)):
        errors.append("class_priors contains NaN or infinite values")
    else:
        if np.any(priors < 0.0):
            errors.append("class_priors has negative entries")
        total = float(priors.sum())
        if abs(total - 1.0) > PRIOR_SUM_TOLERANCE:
            errors.append(f"class_priors sum to {total}, expected 1.0")

    if indicator_names is not None:
        if len(indicator_names) != n_indicators:
            errors.append(
                f"{len(indicator_names)} indicator names supplied but "
                f"outcome_probabilities has {n_indicators} columns"
            )
        duplicates = naming.find_duplicate_names(indicator_names)
        if duplicates:
            errors.append(f"duplicate indicator names: {duplicates}")

    if class_names is not None:
        if len(class_names) != n_classes:
            errors.append(
                f"{len(class_names)} class names supplied but "
                f"outcome_probabilities has {n_classes} rows"
            )
        duplicates = naming.find_duplicate_names(class_names)
        if duplicates:
            errors.append(f"duplicate class names: {duplicates}")

    return errors


@dataclass(frozen=True, eq=False)
class LatentClassModel:
    """
    Immutable K x M latent-class model with named axes.

    Indicator names fall back to Test1..TestM and class names to
    Class_1..Class_K when the fitter supplied none.

    Raises:
        ValidationError: On construction, listing every structural problem
    """
    outcome_probabilities: np.ndarray
    class_priors: np.ndarray
    indicator_names: Optional[Tuple[str, ...]] = None
    class_names: Optional[Tuple[str, ...]] = None
    fit_statistics: Dict[str, float] = field(default_factory=dict)
    indicator_index: Dict[str, int] = field(init=False, repr=False)
    class_index: Dict[str, int] = field(init=False, repr=False)

    def __post_init__(self):
        errors = validate_model_structure(
            self.outcome_probabilities,
            self.class_priors,
            self.indicator_names,
            self.class_names,
        )
        if errors:
            raise ValidationError("invalid latent class model: " + "; ".join(errors))

        probs = np.array(self.outcome_probabilities, dtype=float)
        priors = np.array(self.class_priors, dtype=float)
        probs.setflags(write=False)
        priors.setflags(write=False)
        n_classes, n_indicators = probs.shape

        indicators = tuple(naming.resolve_names(
            self.indicator_names, n_indicators, naming.default_indicator_name
        ))
        classes = tuple(naming.resolve_names(
            self.class_names, n_classes, naming.default_class_name
        ))

        object.__setattr__(self, "outcome_probabilities", probs)
        object.__setattr__(self, "class_priors", priors)
        object.__setattr__(self, "indicator_names", indicators)
        object.__setattr__(self, "class_names", classes)
        object.__setattr__(self, "fit_statistics", dict(self.fit_statistics or {}))
        object.__setattr__(self, "indicator_index", naming.build_index(indicators, "indicator"))
        object.__setattr__(self, "class_index", naming.build_index(classes, "class"))

    @property
    def n_classes(self) -> int:
        return self.outcome_probabilities.shape[0]

    @property
    def n_indicators(self) -> int:
        return self.outcome_probabilities.shape[1]

    def probability(self, class_name: str, indicator_name: str) -> float:
        """P(indicator positive | class)."""
        return float(self.outcome_probabilities[
            self.class_position(class_name), self.indicator_position(indicator_name)
        ])

    def class_position(self, class_name: str) -> int:
        try:
            return self.class_index[class_name]
        except KeyError:
            raise ConfigurationError(
                f"unknown class '{class_name}'; model classes are {list(self.class_names)}"
            ) from None

    def indicator_position(self, indicator_name: str) -> int:
        try:
            return self.indicator_index[indicator_name]
        except KeyError:
            raise ConfigurationError(
                f"unknown indicator '{indicator_name}'; model indicators are {list(self.indicator_names)}"
            ) from None

    def class_row(self, class_name: str) -> np.ndarray:
        """Positive probabilities of every indicator for one class."""
        return self.outcome_probabilities[self.class_position(class_name)]

    def indicator_column(self, indicator_name: str) -> np.ndarray:
        """Positive probability of one indicator in every class."""
        return self.outcome_probabilities[:, self.indicator_position(indicator_name)]

    def restrict(self, indicators: Sequence[str]) -> np.ndarray:
        """
        Sub-matrix (K x m) restricted to ``indicators``, in the order given.

        Raises:
            ConfigurationError: If an indicator is not known to the model
        """
        columns = [self.indicator_position(name) for name in indicators]
        return self.outcome_probabilities[:, columns]


def model_from_dict(data: Dict[str, Any]) -> LatentClassModel:
    """
    Build a model from its JSON document form.

    The document is checked against MODEL_SCHEMA first, then against
    the structural invariants.

    Raises:
        ValidationError: If the document or the model it describes is invalid
    """
    try:
        jsonschema.validate(data, MODEL_SCHEMA)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else "<root>"
        raise ValidationError(f"model document invalid at {path}: {e.message}") from None

    indicator_names = data.get("indicator_names")
    class_names = data.get("class_names")
    return LatentClassModel(
        outcome_probabilities=np.asarray(data["outcome_probabilities"], dtype=float),
        class_priors=np.asarray(data["class_priors"], dtype=float),
        indicator_names=tuple(indicator_names) if indicator_names is not None else None,
        class_names=tuple(class_names) if class_names is not None else None,
        fit_statistics=data.get("fit_statistics", {}),
    )


def model_to_dict(model: LatentClassModel) -> Dict[str, Any]:
    """JSON document form of a model (names always included)."""
    return {
        "outcome_probabilities": model.outcome_probabilities.tolist(),
        "class_priors": model.class_priors.tolist(),
        "indicator_names": list(model.indicator_names),
        "class_names": list(model.class_names),
        "fit_statistics": {
            k: v for k, v in model.fit_statistics.items()
            if isinstance(v, (int, float)) and math.isfinite(v)
        },
    }


def load_model(path: Path) -> LatentClassModel:
    """
    Load a fitted model from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the file is not valid JSON or not a valid model
    """
    with open(path, 'r') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"{path}: invalid JSON ({e})") from None

    model = model_from_dict(data)
    logger.debug(
        "Loaded model from %s: %d classes x %d indicators",
        path, model.n_classes, model.n_indicators,
    )
    return model


def save_model(model: LatentClassModel, path: Path) -> None:
    """Write a model as a JSON document."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(model_to_dict(model), f, indent=2)
