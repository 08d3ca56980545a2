"""
Training loop that consumes a target cost matrix.

The balanced target cost is produced once, before training, by
:func:`balcost.target_cost.create_balanced_target_cost`. The loop here is
its consumer: it owns the matrix for the duration of one ``train`` call and
scales every sample's per-output error by the sample's cost row before
backpropagation.

Only :class:`TrainingLoop` is the contract the cost matrix is built for.
:class:`Trainer` is a small concrete implementation (fully-connected
network, half squared error, Adagrad) sufficient to train on imbalanced
data and compare weighted against unweighted training.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Union

import numpy as np
import torch
import torch.nn as nn
from sklearn.metrics import confusion_matrix
from torch import Tensor
from tqdm import tqdm

from balcost.errors import InvalidInput
from balcost.nn.loss import TargetCostMSELoss
from balcost.nn.network import TANH_TARGET_RANGE, labels_to_targets, output_width
from balcost.target_cost import LabelsLike, _as_label_array

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, Tensor]
EpochCallback = Callable[[int], None]
MinibatchCallback = Callable[[float], None]

# Default number of shards a mini-batch is split into.
DEFAULT_TASK_GRANULARITY = 8


def nop(*args, **kwargs) -> None:
    """Callback that does nothing."""


class TrainingLoop(Protocol):
    """
    Interface of a training routine that accepts a target cost matrix.

    ``target_cost`` is optional. When given, it holds one row per training
    sample in the order of ``labels``, and each row scales that sample's
    per-output error elementwise. When None, every sample has unit cost.
    """

    def train(
        self,
        model: nn.Module,
        inputs: ArrayLike,
        labels: LabelsLike,
        batch_size: int,
        epochs: int,
        pre_epoch_callback: EpochCallback = nop,
        post_minibatch_callback: MinibatchCallback = nop,
        shuffle: bool = True,
        task_granularity: int = DEFAULT_TASK_GRANULARITY,
        target_cost: Optional[ArrayLike] = None,
    ) -> nn.Module:
        ...


@dataclass(frozen=True)
class TrainConfig:
    """
    Settings of :class:`Trainer` that are not part of the ``train`` call.

    Attributes
    ----------
    lr:
        Adagrad learning rate.
    target_low, target_high:
        Values used to encode labels as target vectors.
    seed:
        Seed of the shuffling generator. None draws a fresh seed.
    progress:
        Show a tqdm progress bar over epochs.
    """
    lr: float = 0.01
    target_low: float = TANH_TARGET_RANGE[0]
    target_high: float = TANH_TARGET_RANGE[1]
    seed: Optional[int] = None
    progress: bool = False


@dataclass
class EvaluationResult:
    """Classification outcome of :func:`evaluate`."""
    num_success: int
    num_total: int
    confusion: np.ndarray = field(repr=False)

    @property
    def errors(self) -> int:
        return self.num_total - self.num_success

    @property
    def accuracy(self) -> float:
        return self.num_success / self.num_total if self.num_total else 0.0


def _as_input_tensor(inputs: ArrayLike) -> Tensor:
    x = torch.from_numpy(np.array(inputs, dtype=np.float32))
    if x.ndim != 2:
        raise InvalidInput(f"inputs must have shape (N,D), got {tuple(x.shape)}.")
    return x


def _as_cost_tensor(target_cost: ArrayLike, num_samples: int, width: int) -> Tensor:
    # Copy: the matrix is read-only and shared, the tensor is ours.
    cost = torch.from_numpy(np.array(target_cost, dtype=np.float32))
    if cost.ndim != 2:
        raise InvalidInput(f"target_cost must have shape (N,K), got {tuple(cost.shape)}.")
    if cost.shape[0] != num_samples:
        raise InvalidInput(
            f"target_cost has {cost.shape[0]} rows but there are {num_samples} samples."
        )
    if cost.shape[1] != width:
        raise InvalidInput(
            f"target_cost rows have length {cost.shape[1]} but the network has {width} outputs."
        )
    return cost


class Trainer:
    """
    Mini-batch Adagrad training with optional per-sample target cost.

    Parameters
    ----------
    config:
        Learning rate, target encoding, shuffling seed, progress display.
    """

    def __init__(self, config: Optional[TrainConfig] = None) -> None:
        self.config = config or TrainConfig()
        self.loss_fn = TargetCostMSELoss()

    def train(
        self,
        model: nn.Module,
        inputs: ArrayLike,
        labels: LabelsLike,
        batch_size: int,
        epochs: int,
        pre_epoch_callback: EpochCallback = nop,
        post_minibatch_callback: MinibatchCallback = nop,
        shuffle: bool = True,
        task_granularity: int = DEFAULT_TASK_GRANULARITY,
        target_cost: Optional[ArrayLike] = None,
    ) -> nn.Module:
        """
        Train ``model`` in place and return it.

        Parameters
        ----------
        model:
            Network whose last ``Linear`` layer defines the output width.
        inputs:
            Features of shape (N, D).
        labels:
            N integer labels, each below the output width.
        batch_size:
            Samples per gradient update.
        epochs:
            Number of passes over the data.
        pre_epoch_callback:
            Called with the epoch index before each epoch.
        post_minibatch_callback:
            Called with the mini-batch loss after each update.
        shuffle:
            Permute the sample order at every epoch.
        task_granularity:
            Number of shards each mini-batch is split into. Shard gradients
            are accumulated, so the update equals the full-batch update.
        target_cost:
            Optional (N, K) cost matrix, K the output width.

        Raises
        ------
        InvalidInput
            On inconsistent sizes or invalid loop settings.
        """
        if batch_size <= 0:
            raise InvalidInput("batch_size must be > 0.")
        if epochs < 0:
            raise InvalidInput("epochs must be >= 0.")
        if task_granularity <= 0:
            raise InvalidInput("task_granularity must be > 0.")

        x = _as_input_tensor(inputs)
        y = torch.from_numpy(_as_label_array(labels).copy())
        n = x.shape[0]
        if y.shape[0] != n:
            raise InvalidInput(f"{n} inputs but {y.shape[0]} labels.")

        width = output_width(model)
        if int(y.max()) >= width:
            raise InvalidInput(f"label {int(y.max())} out of range for {width} outputs.")

        cost = _as_cost_tensor(target_cost, n, width) if target_cost is not None else None

        device = next(model.parameters()).device
        x = x.to(device)
        t = labels_to_targets(y, width, self.config.target_low, self.config.target_high).to(device)
        if cost is not None:
            cost = cost.to(device)

        optimizer = torch.optim.Adagrad(model.parameters(), lr=self.config.lr)

        gen = torch.Generator()
        if self.config.seed is not None:
            gen.manual_seed(self.config.seed)
        else:
            gen.seed()

        logger.info(
            "Training on %d samples (%s target cost), batch_size=%d, epochs=%d",
            n, "with" if cost is not None else "without", batch_size, epochs,
        )

        model.train()
        epoch_iter = range(epochs)
        if self.config.progress:
            epoch_iter = tqdm(epoch_iter, desc="Training", total=epochs)

        for epoch in epoch_iter:
            pre_epoch_callback(epoch)

            order = torch.randperm(n, generator=gen) if shuffle else torch.arange(n)
            epoch_loss_sum = 0.0
            epoch_steps = 0

            for start in range(0, n, batch_size):
                idx = order[start:start + batch_size].to(device)
                batch_len = idx.shape[0]

                optimizer.zero_grad()
                batch_loss = 0.0
                for shard in idx.tensor_split(task_granularity):
                    if shard.numel() == 0:
                        continue
                    out = model(x[shard])
                    shard_cost = cost[shard] if cost is not None else None
                    loss, _ = self.loss_fn(out, t[shard], shard_cost)
                    # Shard means weighted by shard size add up to the batch mean.
                    loss = loss * (shard.numel() / batch_len)
                    loss.backward()
                    batch_loss += float(loss.detach().item())
                optimizer.step()

                post_minibatch_callback(batch_loss)
                epoch_loss_sum += batch_loss
                epoch_steps += 1

            logger.info(
                "Epoch %02d | Mean loss: %.4f", epoch + 1, epoch_loss_sum / max(1, epoch_steps)
            )

        return model


def evaluate(model: nn.Module, inputs: ArrayLike, labels: LabelsLike) -> EvaluationResult:
    """
    Count correct arg-max predictions and build a confusion matrix.

    Returns
    -------
    EvaluationResult
        Confusion matrix rows are true labels, columns predicted labels, over
        all output positions of the network.
    """
    x = _as_input_tensor(inputs)
    y = _as_label_array(labels)
    width = output_width(model)

    device = next(model.parameters()).device
    model.eval()
    with torch.no_grad():
        pred = model(x.to(device)).argmax(dim=1).cpu().numpy()

    cm = confusion_matrix(y, pred, labels=list(range(width)))
    return EvaluationResult(
        num_success=int((pred == y).sum()),
        num_total=int(len(y)),
        confusion=cm,
    )
