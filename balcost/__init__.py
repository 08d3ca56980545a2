"""
balcost: Balanced Target Cost for feed-forward network training

Per-sample cost vectors that correct for class-imbalanced training data by
interpolating between uniform weighting and fully class-balanced weighting.
"""

from balcost.errors import InvalidInput, PreconditionViolation
from balcost.target_cost import (
    balanced_class_weights,
    calculate_label_counts,
    create_balanced_target_cost,
    get_sample_weight_for_balanced_target_cost,
)

__version__ = "0.1.0"

__all__ = [
    "InvalidInput",
    "PreconditionViolation",
    "balanced_class_weights",
    "calculate_label_counts",
    "create_balanced_target_cost",
    "get_sample_weight_for_balanced_target_cost",
]
