"""
Canonical names for latent classes and indicators.

Fitted models do not always carry metadata. These helpers give every
index a deterministic name and check that supplied names can serve as
a bijective name-to-index mapping.
"""

from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence

from .errors import ValidationError

INDICATOR_PREFIX = "Test"
CLASS_PREFIX = "Class_"


def default_indicator_name(index: int) -> str:
    """Name for the indicator at zero-based position ``index`` (Test1, Test2, ...)."""
    if index < 0:
        raise ValueError(f"index must be >= 0, got {index}")
    return f"{INDICATOR_PREFIX}{index + 1}"


def default_class_name(index: int) -> str:
    """Name for the class at zero-based position ``index`` (Class_1, Class_2, ...)."""
    if index < 0:
        raise ValueError(f"index must be >= 0, got {index}")
    return f"{CLASS_PREFIX}{index + 1}"


def default_indicator_names(count: int) -> List[str]:
    return [default_indicator_name(i) for i in range(count)]


def default_class_names(count: int) -> List[str]:
    return [default_class_name(i) for i in range(count)]


def resolve_names(
    names: Optional[Sequence[str]],
    count: int,
    fallback: Callable[[int], str],
) -> List[str]:
    """
    Return ``names`` as a list, or the fallback sequence if names are absent.

    The length is not checked here; callers compare it with the matrix
    shape so the error can say which axis disagrees.
    """
    if names is None:
        return [fallback(i) for i in range(count)]
    return [str(n) for n in names]


def find_duplicate_names(names: Sequence[str]) -> List[str]:
    """Return the sorted list of names that occur more than once."""
    counts = Counter(names)
    return sorted(name for name, n in counts.items() if n > 1)


def build_index(names: Sequence[str], axis: str) -> Dict[str, int]:
    """
    Build the name -> position mapping for one axis of a model.

    Raises:
        ValidationError: If a name is repeated (the mapping would not be bijective)
    """
    duplicates = find_duplicate_names(names)
    if duplicates:
        raise ValidationError(f"duplicate {axis} names: {duplicates}")
    return {name: i for i, name in enumerate(names)}
