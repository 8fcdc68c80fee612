"""
Posterior class-membership inference for batches of subjects.

Given a fitted latent-class model and each subject's binary test
results, computes P(class | results) by Bayes' rule, assuming the
indicators are independent conditional on the latent class:

    log L(i, k) = sum_m [ x(i,m) log p(k,m) + (1 - x(i,m)) log(1 - p(k,m)) ]
    post(i, k)  = L(i, k) prior(k) / sum_j L(i, j) prior(j)

Before taking logarithms every p(k,m) is clamped into [eps, 1 - eps].
Fitted sensitivities and specificities can be exactly 0 or 1; without
the clamp one contradicting result would send a class likelihood to
zero for every subject showing that pattern.

The computation is a pure function of its inputs. Each subject row is
independent, so large batches can be split into shards and evaluated
by a process pool with no coordination.
"""

import logging
import math
import multiprocessing as mp
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import (
    ConfigurationError,
    DegenerateLikelihoodError,
    MissingIndicatorError,
    ValidationError,
)
from .model import LatentClassModel

logger = logging.getLogger(__name__)

DEFAULT_EPSILON = 1e-9

MISSING_POLICIES = {"raise", "exclude"}
DEGENERATE_POLICIES = {"raise", "nan"}

SubjectVector = Mapping[str, Any]
SubjectBatch = Union[Mapping[Any, SubjectVector], Sequence[SubjectVector]]


@dataclass
class PosteriorBatch:
    """
    Posterior class probabilities for a batch of subjects.

    ``probabilities`` is N x K, rows in the order of ``subject_ids`` and
    columns in the order of ``class_names``. Rows of subjects listed in
    ``degenerate_subjects`` are NaN.
    """
    subject_ids: List[Any]
    class_names: Tuple[str, ...]
    indicators: Tuple[str, ...]
    probabilities: np.ndarray
    target_class: Optional[str] = None
    degenerate_subjects: List[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.subject_ids)

    def _class_column(self, class_name: str) -> int:
        try:
            return self.class_names.index(class_name)
        except ValueError:
            raise ConfigurationError(
                f"unknown target class '{class_name}'; model classes are {list(self.class_names)}"
            ) from None

    def for_class(self, class_name: str) -> np.ndarray:
        """Length-N vector of P(class_name | results)."""
        return self.probabilities[:, self._class_column(class_name)].copy()

    def as_array(self, target_class: Optional[str] = None) -> np.ndarray:
        """N-vector for a target class (default: the batch's own), else the N x K matrix."""
        target = target_class if target_class is not None else self.target_class
        if target is not None:
            return self.for_class(target)
        return self.probabilities.copy()

    def to_records(self, target_class: Optional[str] = None) -> List[Dict[str, Any]]:
        """One dict per subject keyed by ``subject_id``, for use as soft labels."""
        target = target_class if target_class is not None else self.target_class
        records = []
        if target is not None:
            column = self._class_column(target)
            for sid, row in zip(self.subject_ids, self.probabilities):
                records.append({"subject_id": sid, f"P({target})": float(row[column])})
            return records

        for sid, row in zip(self.subject_ids, self.probabilities):
            record = {"subject_id": sid}
            record.update({name: float(p) for name, p in zip(self.class_names, row)})
            records.append(record)
        return records


def bayes_update(
    prior: float,
    sensitivity: float,
    false_positive_rate: float,
    positive: bool,
) -> float:
    """
    Closed-form Bayes' theorem for one binary test and two outcomes.

    Args:
        prior: P(condition)
        sensitivity: P(positive | condition)
        false_positive_rate: P(positive | no condition)
        positive: Observed test result

    Returns:
        P(condition | result)
    """
    if positive:
        numerator = sensitivity * prior
        denominator = numerator + false_positive_rate * (1.0 - prior)
    else:
        numerator = (1.0 - sensitivity) * prior
        denominator = numerator + (1.0 - false_positive_rate) * (1.0 - prior)
    if denominator == 0:
        raise ZeroDivisionError("both outcomes have zero probability for this result")
    return numerator / denominator


def resolve_indicators(
    model: LatentClassModel,
    selected_indicators: Optional[Sequence[str]] = None,
) -> Tuple[str, ...]:
    """
    Resolve the effective indicator set for inference.

    Returns every model indicator when no selection is given.

    Raises:
        ConfigurationError: If the selection is empty, repeats a name,
            or names indicators the model does not know
    """
    if selected_indicators is None:
        return tuple(model.indicator_names)

    if isinstance(selected_indicators, str):
        selected_indicators = [selected_indicators]
    selected = list(selected_indicators)
    if not selected:
        raise ConfigurationError("selected_indicators must not be empty")

    unknown = [name for name in selected if name not in model.indicator_index]
    if unknown:
        raise ConfigurationError(
            f"unknown indicator(s) {unknown}; model indicators are {list(model.indicator_names)}"
        )
    if len(set(selected)) != len(selected):
        raise ConfigurationError(f"selected_indicators contains duplicates: {selected}")
    return tuple(selected)


def _split_batch(subjects: SubjectBatch) -> Tuple[List[Any], List[SubjectVector]]:
    """Separate subject ids from their test vectors."""
    if isinstance(subjects, Mapping):
        ids = list(subjects.keys())
        vectors = [subjects[sid] for sid in ids]
    else:
        vectors = list(subjects)
        ids = list(range(len(vectors)))

    for sid, vector in zip(ids, vectors):
        if not isinstance(vector, Mapping):
            raise ValidationError(
                f"subject {sid!r}: test vector must map indicator names to results, "
                f"got {type(vector).__name__}"
            )
    return ids, vectors


def _is_missing_value(value: Any) -> bool:
    if value is None:
        return True
    try:
        return math.isnan(value)
    except (TypeError, OverflowError):
        return False


def _binary_value(subject_id: Any, indicator: str, value: Any) -> int:
    if isinstance(value, (bool, np.bool_)):
        return int(value)
    numeric = None
    # Results are numeric; strings are rejected rather than parsed
    if not isinstance(value, (str, bytes)):
        try:
            numeric = float(value)
        except (TypeError, ValueError, OverflowError):
            numeric = None
    if numeric == 0.0:
        return 0
    if numeric == 1.0:
        return 1
    raise ValidationError(
        f"subject {subject_id!r}: indicator '{indicator}' must be 0 or 1, got {value!r}"
    )


def build_observations(
    subject_ids: Sequence[Any],
    vectors: Sequence[SubjectVector],
    indicators: Sequence[str],
    missing: str = "raise",
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build the N x m observation matrix and its observed-mask.

    Missing cells (``None`` or NaN values) hold 0 in the observation
    matrix and False in the mask.

    Raises:
        MissingIndicatorError: If a subject lacks a required indicator, or
            has a missing value for one under the "raise" policy
        ValidationError: If a result is not binary
    """
    n_subjects, n_indicators = len(vectors), len(indicators)
    observations = np.zeros((n_subjects, n_indicators), dtype=float)
    observed = np.ones((n_subjects, n_indicators), dtype=bool)

    for i, (sid, vector) in enumerate(zip(subject_ids, vectors)):
        for m, indicator in enumerate(indicators):
            if indicator not in vector:
                raise MissingIndicatorError(sid, indicator)
            value = vector[indicator]
            if _is_missing_value(value):
                if missing == "raise":
                    raise MissingIndicatorError(sid, indicator, reason="has no value")
                observed[i, m] = False
                continue
            observations[i, m] = _binary_value(sid, indicator, value)

    return observations, observed


def clamp_probabilities(probabilities: np.ndarray, epsilon: float = DEFAULT_EPSILON) -> np.ndarray:
    """Clamp conditional probabilities into [epsilon, 1 - epsilon]."""
    return np.clip(probabilities, epsilon, 1.0 - epsilon)


def _joint_probabilities(
    shard: Tuple[np.ndarray, np.ndarray],
    log_p: np.ndarray,
    log_q: np.ndarray,
    priors: np.ndarray,
) -> np.ndarray:
    """
    Unnormalised posterior L(i, k) * prior(k) for one shard of subjects.

    Must be at module level for multiprocessing pickling.
    """
    observations, observed = shard
    positives = observations * observed
    negatives = (1.0 - observations) * observed
    log_likelihood = positives @ log_p.T + negatives @ log_q.T  # (n, K)
    return np.exp(log_likelihood) * priors


def _evaluate(
    observations: np.ndarray,
    observed: np.ndarray,
    log_p: np.ndarray,
    log_q: np.ndarray,
    priors: np.ndarray,
    shard_size: Optional[int],
    workers: Optional[int],
) -> np.ndarray:
    n_subjects = observations.shape[0]
    worker_fn = partial(_joint_probabilities, log_p=log_p, log_q=log_q, priors=priors)

    if not shard_size or n_subjects <= shard_size or workers == 1:
        return worker_fn((observations, observed))

    shards = [
        (observations[start:start + shard_size], observed[start:start + shard_size])
        for start in range(0, n_subjects, shard_size)
    ]
    logger.debug("Evaluating %d subjects in %d shards", n_subjects, len(shards))
    with mp.Pool(processes=workers) as pool:
        results = pool.map(worker_fn, shards)
    return np.concatenate(results, axis=0)


def compute_posteriors(
    model: LatentClassModel,
    subjects: SubjectBatch,
    selected_indicators: Optional[Sequence[str]] = None,
    target_class: Optional[str] = None,
    epsilon: float = DEFAULT_EPSILON,
    missing: str = "raise",
    on_degenerate: str = "raise",
    shard_size: Optional[int] = None,
    workers: Optional[int] = None,
) -> PosteriorBatch:
    """
    Compute posterior class probabilities for a batch of subjects.

    Args:
        model: Fitted latent-class model
        subjects: Mapping of subject id -> {indicator: 0/1}, or a sequence of
            such vectors (subject ids are then their positions)
        selected_indicators: Indicators to condition on (default: all)
        target_class: Class whose probability ``as_array()`` returns by default
        epsilon: Clamp for conditional probabilities, 0 < epsilon < 0.5
        missing: "raise" or "exclude" for present-but-empty results
        on_degenerate: "raise", or "nan" to mark the subject and continue
        shard_size: Subjects per shard for process-pool evaluation
        workers: Pool size, at least 1 (default: CPU count)

    Returns:
        PosteriorBatch with one row per subject

    Raises:
        ConfigurationError: Bad selection, target class, epsilon, policy,
            shard size or worker count
        MissingIndicatorError: A subject lacks a required indicator
        ValidationError: A result is not binary
        DegenerateLikelihoodError: A subject's likelihoods all underflow
            (only with on_degenerate="raise")
    """
    if not (0.0 < epsilon < 0.5):
        raise ConfigurationError(f"epsilon must be in (0, 0.5), got {epsilon}")
    if missing not in MISSING_POLICIES:
        raise ConfigurationError(f"missing policy must be one of {sorted(MISSING_POLICIES)}, got '{missing}'")
    if on_degenerate not in DEGENERATE_POLICIES:
        raise ConfigurationError(
            f"degenerate policy must be one of {sorted(DEGENERATE_POLICIES)}, got '{on_degenerate}'"
        )
    if shard_size is not None and shard_size < 1:
        raise ConfigurationError(f"shard_size must be >= 1, got {shard_size}")
    if workers is not None and workers < 1:
        raise ConfigurationError(f"workers must be >= 1, got {workers}")

    indicators = resolve_indicators(model, selected_indicators)
    if target_class is not None:
        model.class_position(target_class)

    subject_ids, vectors = _split_batch(subjects)
    observations, observed = build_observations(subject_ids, vectors, indicators, missing=missing)

    p = clamp_probabilities(model.restrict(indicators), epsilon)
    log_p = np.log(p)
    log_q = np.log1p(-p)

    joint = _evaluate(
        observations, observed, log_p, log_q, model.class_priors, shard_size, workers
    )
    denominators = joint.sum(axis=1)
    degenerate = ~(np.isfinite(denominators) & (denominators > 0))

    probabilities = np.full_like(joint, np.nan)
    healthy = ~degenerate
    probabilities[healthy] = joint[healthy] / denominators[healthy, np.newaxis]

    degenerate_ids = []
    for i in np.flatnonzero(degenerate):
        sid = subject_ids[i]
        if on_degenerate == "raise":
            raise DegenerateLikelihoodError(int(i), sid, float(denominators[i]))
        logger.warning("Subject %r: all class likelihoods underflowed; posterior set to NaN", sid)
        degenerate_ids.append(sid)

    logger.debug(
        "Computed posteriors for %d subjects over %d indicator(s) and %d classes",
        len(subject_ids), len(indicators), model.n_classes,
    )

    return PosteriorBatch(
        subject_ids=subject_ids,
        class_names=tuple(model.class_names),
        indicators=indicators,
        probabilities=probabilities,
        target_class=target_class,
        degenerate_subjects=degenerate_ids,
    )


def posterior_matrix(
    model: LatentClassModel,
    subjects: SubjectBatch,
    selected_indicators: Optional[Sequence[str]] = None,
    target_class: Optional[str] = None,
    **kwargs: Any,
) -> np.ndarray:
    """
    Bare-array form of ``compute_posteriors``.

    Returns:
        Length-N vector of P(target_class | results) when a target class is
        given, else the N x K posterior matrix
    """
    batch = compute_posteriors(
        model, subjects,
        selected_indicators=selected_indicators,
        target_class=target_class,
        **kwargs,
    )
    return batch.as_array()
