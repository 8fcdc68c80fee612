"""
Tabular subject batches.

Reads subjects' binary test results from CSV (one row per subject,
keyed by a subject identifier column) and writes posterior soft labels
back out as CSV or JSON. Merging the output into other tables is left
to the caller.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .errors import ConfigurationError, ValidationError
from .posterior import PosteriorBatch

logger = logging.getLogger(__name__)

DEFAULT_ID_COLUMN = "subject_id"

MISSING_CELLS = {"", "na", "nan", "null"}


def _parse_cell(subject_id: str, column: str, raw: str) -> Optional[int]:
    text = raw.strip()
    if text.lower() in MISSING_CELLS:
        return None
    try:
        value = float(text)
    except ValueError:
        raise ValidationError(
            f"subject '{subject_id}': column '{column}' is not numeric: {raw!r}"
        ) from None
    if value not in (0.0, 1.0):
        raise ValidationError(
            f"subject '{subject_id}': column '{column}' must be 0 or 1, got {raw!r}"
        )
    return int(value)


def load_subjects_csv(
    path: Path,
    id_column: str = DEFAULT_ID_COLUMN,
    indicators: Optional[Sequence[str]] = None,
) -> Dict[str, Dict[str, Optional[int]]]:
    """
    Load a batch of subject test vectors from CSV.

    Args:
        path: CSV file with a header row
        id_column: Column holding the subject identifier
        indicators: Columns to read (default: every column except the id).
            Requested columns absent from the file are simply not loaded,
            so inference reports them per subject.

    Returns:
        Ordered mapping subject_id -> {indicator: 0, 1 or None}

    Raises:
        ConfigurationError: If the id column is absent
        ValidationError: If a cell is not 0/1/empty or a subject id repeats
    """
    subjects: Dict[str, Dict[str, Optional[int]]] = {}
    with open(path, 'r', newline='') as f:
        reader = csv.DictReader(f)
        header = reader.fieldnames or []
        if id_column not in header:
            raise ConfigurationError(f"{path}: id column '{id_column}' not found in header {header}")

        if indicators is None:
            columns = [c for c in header if c != id_column]
        else:
            columns = [c for c in indicators if c in header]

        for row in reader:
            sid = row[id_column]
            if sid in subjects:
                raise ValidationError(f"{path}: duplicate subject id '{sid}'")
            subjects[sid] = {c: _parse_cell(sid, c, row[c] or "") for c in columns}

    logger.debug("Loaded %d subject(s) from %s", len(subjects), path)
    return subjects


def posterior_rows(batch: PosteriorBatch, target_class: Optional[str] = None) -> List[Dict[str, Any]]:
    """Rows for writing, with probability columns after the subject id."""
    return batch.to_records(target_class=target_class)


def write_posteriors_csv(
    batch: PosteriorBatch,
    path: Path,
    target_class: Optional[str] = None,
) -> None:
    """Write one row per subject: subject_id plus one probability column per class."""
    rows = posterior_rows(batch, target_class)
    target = target_class if target_class is not None else batch.target_class
    if target is not None:
        fieldnames = ["subject_id", f"P({target})"]
    else:
        fieldnames = ["subject_id"] + list(batch.class_names)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)
    logger.info("Wrote %d posterior row(s) to %s", len(rows), path)


def write_posteriors_json(
    batch: PosteriorBatch,
    path: Path,
    target_class: Optional[str] = None,
) -> None:
    """Write posteriors as JSON, with degenerate subjects listed separately."""
    payload = {
        "class_names": list(batch.class_names),
        "indicators": list(batch.indicators),
        "target_class": target_class if target_class is not None else batch.target_class,
        "degenerate_subjects": list(batch.degenerate_subjects),
        "posteriors": posterior_rows(batch, target_class),
    }
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        # NaN rows of degenerate subjects are written as null
        json.dump(nan_to_none(payload), f, indent=2)
    logger.info("Wrote %d posterior row(s) to %s", len(batch), path)


def nan_to_none(obj: Any) -> Any:
    """Replace NaN floats in nested dicts and lists with None, for strict JSON."""
    if isinstance(obj, float) and obj != obj:
        return None
    if isinstance(obj, dict):
        return {k: nan_to_none(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [nan_to_none(v) for v in obj]
    return obj
