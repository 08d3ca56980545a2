"""
Balanced target cost.

Class-imbalanced training data lets frequent classes dominate the total
error: a network minimizing the plain per-sample error is rewarded for always
predicting the majority class. This module derives a per-sample *target cost*
that rescales each sample's error according to how common its class is.

---------------------------------------------------------------------
Balanced weight
---------------------------------------------------------------------
Given:
- N samples in total,
- K classes (K = max(label) + 1, gaps included),
- n_c samples observed for class c,

the balanced weight of class c is:

    b_c = N / (K * n_c)

so that every class carries the same total mass ``b_c * n_c = N / K`` and
the masses still add up to N (the overall scale of the loss is unchanged).

---------------------------------------------------------------------
Interpolation
---------------------------------------------------------------------
A factor w ∈ [0, 1] blends uniform and balanced weighting:

    weight_w(c) = (1 − w) · 1 + w · b_c

w = 0 leaves every sample at cost 1, w = 1 is fully class-balanced.
Values outside [0, 1] are rejected rather than extrapolated.

---------------------------------------------------------------------
Target cost matrix
---------------------------------------------------------------------
Sample i with label y_i gets a cost vector of length K whose entries all
equal ``weight_w(y_i)``. The matrix (n_samples, K) is returned read-only;
it is computed once from the complete label sequence and never updated.
"""

from __future__ import annotations

import logging
from typing import Dict, Sequence, Union

import numpy as np

from balcost.errors import InvalidInput, PreconditionViolation

logger = logging.getLogger(__name__)

LabelsLike = Union[Sequence[int], np.ndarray]


# =============================================================================
# Helper functions
# =============================================================================

def _as_label_array(labels: LabelsLike) -> np.ndarray:
    """
    Validate a label sequence and return it as a 1-D int64 array.

    Raises
    ------
    InvalidInput
        If labels are empty, not 1-D, non-integral or negative.
    """
    arr = np.asarray(labels)
    if arr.ndim != 1:
        raise InvalidInput(f"labels must be a 1-D sequence, got shape {arr.shape}.")
    if arr.size == 0:
        raise InvalidInput("labels must not be empty.")

    if arr.dtype == np.bool_:
        arr = arr.astype(np.int64)
    elif np.issubdtype(arr.dtype, np.floating):
        if not np.all(np.isfinite(arr)) or not np.all(arr == np.floor(arr)):
            raise InvalidInput("labels must be integers.")
        arr = arr.astype(np.int64)
    elif not np.issubdtype(arr.dtype, np.integer):
        raise InvalidInput(f"labels must be integers, got dtype {arr.dtype}.")

    if arr.min() < 0:
        raise InvalidInput("labels must be non-negative class ids.")
    return arr.astype(np.int64, copy=False)


def _check_interpolation(w: float) -> float:
    w = float(w)
    # NaN fails both comparisons
    if not 0.0 <= w <= 1.0:
        raise InvalidInput(f"w must lie in [0, 1], got {w}.")
    return w


def _effective_weights(counts: np.ndarray, total: int, w: float) -> Dict[int, float]:
    """
    Interpolated weight for every class with at least one sample.

    Gap classes (count 0) are skipped: no sample carries their label, so
    their balanced weight is never needed.
    """
    num_classes = len(counts)
    weights: Dict[int, float] = {}
    for label in np.flatnonzero(counts):
        balanced = get_sample_weight_for_balanced_target_cost(
            num_classes, total, int(counts[label])
        )
        weights[int(label)] = (1.0 - w) * 1.0 + w * balanced
    return weights


# =============================================================================
# Public API
# =============================================================================

def calculate_label_counts(labels: LabelsLike) -> np.ndarray:
    """
    Count how many samples carry each label.

    Parameters
    ----------
    labels:
        Sequence of non-negative integer class ids.

    Returns
    -------
    np.ndarray
        int64 array of length ``max(labels) + 1``. ``counts[i]`` is the number
        of samples labelled ``i``; labels that never occur but lie below the
        maximum keep a 0 entry.

    Raises
    ------
    InvalidInput
        If ``labels`` is empty (no maximum is defined) or is not a sequence of
        non-negative integers.

    Examples
    --------
    >>> calculate_label_counts([0, 1, 4, 0, 1, 2]).tolist()
    [2, 2, 1, 0, 1]
    """
    return np.bincount(_as_label_array(labels)).astype(np.int64)


def get_sample_weight_for_balanced_target_cost(
    class_count: int,
    total_samples: int,
    class_sample_count: int,
) -> float:
    """
    Balanced weight of a single class.

    Returns ``total_samples / (class_count * class_sample_count)``, using
    real division. Over any partition of ``total_samples`` into classes,
    ``sum_c weight(c) * count(c) == total_samples``.

    Parameters
    ----------
    class_count:
        Number of classes K.
    total_samples:
        Number of samples N across all classes.
    class_sample_count:
        Number of samples n_c observed for this class.

    Raises
    ------
    PreconditionViolation
        If ``class_count`` or ``class_sample_count`` is not positive.
    """
    if class_count <= 0:
        raise PreconditionViolation(f"class_count must be > 0, got {class_count}.")
    if class_sample_count <= 0:
        raise PreconditionViolation(
            f"class_sample_count must be > 0, got {class_sample_count}; "
            "weights are undefined for classes without samples."
        )
    return float(total_samples) / (float(class_count) * float(class_sample_count))


def balanced_class_weights(labels: LabelsLike, w: float = 1.0) -> Dict[int, float]:
    """
    Interpolated per-class weights for the classes present in ``labels``.

    Parameters
    ----------
    labels:
        Complete, static label sequence of the training set.
    w:
        Interpolation factor in [0, 1].

    Returns
    -------
    dict
        ``{label: weight}`` for each label with at least one sample.
    """
    w = _check_interpolation(w)
    arr = _as_label_array(labels)
    counts = np.bincount(arr)
    return _effective_weights(counts, len(arr), w)


def create_balanced_target_cost(labels: LabelsLike, w: float = 1.0) -> np.ndarray:
    """
    Build the per-sample target cost matrix.

    Parameters
    ----------
    labels:
        Complete, static label sequence of the training set.
    w:
        Interpolation factor. 0 gives unit cost everywhere, 1 (default) gives
        fully class-balanced cost.

    Returns
    -------
    np.ndarray
        Read-only float64 array of shape ``(len(labels), max(labels) + 1)``.
        Row i holds the cost of sample i broadcast across all output
        positions.

    Raises
    ------
    InvalidInput
        If ``labels`` is invalid or ``w`` lies outside [0, 1].
    """
    w = _check_interpolation(w)
    arr = _as_label_array(labels)
    counts = np.bincount(arr)
    num_samples, num_classes = len(arr), len(counts)

    if w == 0.0:
        cost = np.ones((num_samples, num_classes), dtype=np.float64)
    else:
        weights = _effective_weights(counts, num_samples, w)
        logger.debug("Label counts: %s", counts.tolist())
        logger.debug("Class weights (w=%.3f): %s", w, weights)

        # Lookup table indexed by label; gap entries are never read.
        table = np.ones(num_classes, dtype=np.float64)
        for label, weight in weights.items():
            table[label] = weight

        per_sample = table[arr]  # (N,)
        cost = np.repeat(per_sample[:, None], num_classes, axis=1)

    cost.flags.writeable = False
    return cost
