"""
Minimal fully-connected networks and label/target conversion.
"""

from __future__ import annotations

from typing import Sequence

import torch
import torch.nn as nn
from torch import Tensor

from balcost.errors import InvalidInput

_ACTIVATIONS = {
    "tanh": nn.Tanh,
    "sigmoid": nn.Sigmoid,
    "relu": nn.ReLU,
}

# Target range used for one-hot vectors with tanh outputs.
TANH_TARGET_RANGE = (-0.8, 0.8)


def fully_connected_network(sizes: Sequence[int], activation: str = "tanh") -> nn.Sequential:
    """
    Stack of ``Linear`` layers, each followed by ``activation``.

    Parameters
    ----------
    sizes:
        Layer widths including input and output, e.g. ``(1, 10, 2)``.
    activation:
        One of ``"tanh"``, ``"sigmoid"``, ``"relu"``.

    Returns
    -------
    nn.Sequential
    """
    if len(sizes) < 2:
        raise InvalidInput("sizes must contain at least an input and an output width.")
    if activation not in _ACTIVATIONS:
        raise InvalidInput(f"Invalid activation: {activation}")

    layers = []
    for d_in, d_out in zip(sizes[:-1], sizes[1:]):
        layers.append(nn.Linear(int(d_in), int(d_out)))
        layers.append(_ACTIVATIONS[activation]())
    return nn.Sequential(*layers)


def output_width(model: nn.Module) -> int:
    """Number of outputs of the last ``Linear`` layer in ``model``."""
    linears = [m for m in model.modules() if isinstance(m, nn.Linear)]
    if not linears:
        raise InvalidInput("model has no Linear layer.")
    return linears[-1].out_features


def labels_to_targets(
    labels: Tensor,
    num_outputs: int,
    low: float = TANH_TARGET_RANGE[0],
    high: float = TANH_TARGET_RANGE[1],
) -> Tensor:
    """
    Encode integer labels as target vectors.

    Returns a float tensor of shape (B, num_outputs) holding ``high`` at the
    label's position and ``low`` everywhere else.
    """
    targets = torch.full((labels.shape[0], num_outputs), float(low))
    targets.scatter_(1, labels.long().view(-1, 1), float(high))
    return targets


def predict_label(model: nn.Module, x: Tensor) -> Tensor:
    """
    Arg-max of the model outputs.

    ``x`` may be a single sample (D,) or a batch (B, D); the result has shape
    () or (B,) accordingly.
    """
    single = x.ndim == 1
    with torch.no_grad():
        out = model(x.unsqueeze(0) if single else x)
    pred = out.argmax(dim=1)
    return pred.squeeze(0) if single else pred
