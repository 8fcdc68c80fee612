"""
Conditional probability table extraction.

Turns a fitted latent-class model into a long-form, named table:
one record per (class, indicator) pair with the probability of a
positive and a negative result, plus one prevalence record per class.
The table is recomputed on every call and owned by the caller.
"""

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from . import naming
from .errors import ValidationError
from .model import LatentClassModel, PRIOR_SUM_TOLERANCE


@dataclass(frozen=True)
class ConditionalProbabilityRecord:
    """P(result | class) for one class and one indicator."""
    class_id: str
    indicator: str
    p_positive: float
    p_negative: float


@dataclass(frozen=True)
class ClassPrevalenceRecord:
    """Estimated prevalence (prior) of one latent class."""
    class_id: str
    prevalence: float


def _complementary_pair(p: float) -> Tuple[float, float]:
    """
    Return (positive, negative) that sum to exactly 1.0 in floating point.

    p is returned unchanged. For p >= 0.5 the subtraction 1 - p is exact;
    below 0.5 it is off by at most 2**-54, so p + (1 - p) still rounds to 1.0.
    """
    return p, 1.0 - p


def extract_from_arrays(
    outcome_probabilities: Any,
    class_priors: Any,
    indicator_names: Optional[Sequence[str]] = None,
    class_names: Optional[Sequence[str]] = None,
) -> Tuple[List[ConditionalProbabilityRecord], List[ClassPrevalenceRecord]]:
    """
    Build the table from raw fitter output.

    Names default to Test1..TestM and Class_1..Class_K when absent.

    Args:
        outcome_probabilities: K x M matrix of P(positive | class)
        class_priors: length-K prevalence vector
        indicator_names: Optional indicator names (length M)
        class_names: Optional class names (length K)

    Returns:
        (records, prevalences) with K*M records ordered class-major, and K prevalences

    Raises:
        ValidationError: If the name counts disagree with the matrix shape
    """
    probs = np.asarray(outcome_probabilities, dtype=float)
    priors = np.asarray(class_priors, dtype=float)
    if probs.ndim != 2:
        raise ValidationError(
            f"outcome_probabilities must be 2-dimensional, got {probs.ndim} dimension(s)"
        )
    n_classes, n_indicators = probs.shape

    indicators = naming.resolve_names(indicator_names, n_indicators, naming.default_indicator_name)
    classes = naming.resolve_names(class_names, n_classes, naming.default_class_name)

    if len(indicators) != n_indicators:
        raise ValidationError(
            f"{len(indicators)} indicator names supplied but "
            f"outcome_probabilities has {n_indicators} columns"
        )
    if len(classes) != n_classes:
        raise ValidationError(
            f"{len(classes)} class names supplied but "
            f"outcome_probabilities has {n_classes} rows"
        )
    if priors.shape != (n_classes,):
        raise ValidationError(
            f"class_priors has shape {priors.shape}, expected ({n_classes},)"
        )

    records = []
    for k, class_id in enumerate(classes):
        for m, indicator in enumerate(indicators):
            p_positive, p_negative = _complementary_pair(float(probs[k, m]))
            records.append(ConditionalProbabilityRecord(
                class_id=class_id,
                indicator=indicator,
                p_positive=p_positive,
                p_negative=p_negative,
            ))

    prevalences = [
        ClassPrevalenceRecord(class_id=class_id, prevalence=float(priors[k]))
        for k, class_id in enumerate(classes)
    ]
    return records, prevalences


def extract_conditional_probabilities(
    model: LatentClassModel,
    indicator_names: Optional[Sequence[str]] = None,
    class_names: Optional[Sequence[str]] = None,
) -> Tuple[List[ConditionalProbabilityRecord], List[ClassPrevalenceRecord]]:
    """
    Extract the conditional probability table of a fitted model.

    Explicit names override the model's own metadata.

    Raises:
        ValidationError: If supplied names disagree with the model's shape
    """
    return extract_from_arrays(
        model.outcome_probabilities,
        model.class_priors,
        indicator_names=indicator_names if indicator_names is not None else model.indicator_names,
        class_names=class_names if class_names is not None else model.class_names,
    )


def check_table_invariants(
    records: Sequence[ConditionalProbabilityRecord],
    prevalences: Sequence[ClassPrevalenceRecord],
) -> List[str]:
    """
    Check the table invariants.

    1. p_positive + p_negative == 1 exactly for every record
    2. Prevalences sum to 1 (tolerance 1e-6)

    Returns:
        List of violations (empty if the table is consistent)
    """
    errors = []
    for rec in records:
        if rec.p_positive + rec.p_negative != 1.0:
            errors.append(
                f"{rec.class_id}/{rec.indicator}: p_positive + p_negative = "
                f"{rec.p_positive + rec.p_negative!r}"
            )
    total = math.fsum(p.prevalence for p in prevalences)
    if abs(total - 1.0) > PRIOR_SUM_TOLERANCE:
        errors.append(f"prevalences sum to {total}, expected 1.0")
    return errors


def records_to_rows(
    records: Sequence[ConditionalProbabilityRecord],
    prevalences: Sequence[ClassPrevalenceRecord],
) -> Dict[str, List[Dict[str, Any]]]:
    """Plain-dict form of the table for JSON or markdown reporting."""
    return {
        "conditional_probabilities": [asdict(r) for r in records],
        "class_prevalences": [asdict(p) for p in prevalences],
    }


def format_markdown(
    records: Sequence[ConditionalProbabilityRecord],
    prevalences: Sequence[ClassPrevalenceRecord],
) -> str:
    """Render the table as two markdown tables."""
    lines = [
        "## Class prevalences",
        "",
        "| Class | Prevalence |",
        "|-------|-----------:|",
    ]
    for p in prevalences:
        lines.append(f"| {p.class_id} | {p.prevalence:.4f} |")

    lines += [
        "",
        "## Conditional probabilities",
        "",
        "| Class | Indicator | P(positive) | P(negative) |",
        "|-------|-----------|------------:|------------:|",
    ]
    for r in records:
        lines.append(f"| {r.class_id} | {r.indicator} | {r.p_positive:.4f} | {r.p_negative:.4f} |")
    lines.append("")
    return "\n".join(lines)
