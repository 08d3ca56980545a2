"""
PyTorch side of balcost: the training loop that consumes a target cost
matrix, its cost-scaled error, and the small networks used with it.
"""

from balcost.nn.loss import TargetCostLossOutput, TargetCostMSELoss
from balcost.nn.network import fully_connected_network, labels_to_targets, predict_label
from balcost.nn.train import EvaluationResult, TrainConfig, Trainer, TrainingLoop, evaluate, nop

__all__ = [
    "EvaluationResult",
    "TargetCostLossOutput",
    "TargetCostMSELoss",
    "TrainConfig",
    "Trainer",
    "TrainingLoop",
    "evaluate",
    "fully_connected_network",
    "labels_to_targets",
    "nop",
    "predict_label",
]
