"""
Cost-scaled mean-squared error.

The training loop consumes a target cost matrix by scaling each sample's
per-output error elementwise before backpropagation:

    ℓ_i = ½ Σ_k cost_{i,k} · (y_{i,k} − t_{i,k})²

where ``y`` are the network outputs and ``t`` the target vectors. The batch
loss is the mean of ℓ_i. With ``cost = 1`` this is the plain half-squared
error, i.e. the unweighted case.

Design
------
- The forward pass returns **both** the weighted loss (differentiable) and
  the unweighted loss (a Python float, for logging only).
- Backpropagation is performed **only** on the weighted loss.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

import torch
from torch import Tensor
from torch.nn import Module


class TargetCostLossOutput(NamedTuple):
    """
    Output of :class:`TargetCostMSELoss`.

    Attributes
    ----------
    loss:
        Scalar torch tensor (mean cost-scaled error). Backpropagate through this only.
    loss_unweighted:
        Python float (mean error with unit cost). For logging/plotting only.
    """
    loss: Tensor
    loss_unweighted: float


class TargetCostMSELoss(Module):
    """
    Half squared error with optional per-sample, per-output cost.

    Notes
    -----
    ``cost`` may be shape (B, K) (one row of a target cost matrix per sample)
    or None for unit cost.
    """

    def forward(
        self,
        outputs: Tensor,
        targets: Tensor,
        cost: Optional[Tensor] = None,
    ) -> TargetCostLossOutput:
        """
        Parameters
        ----------
        outputs:
            Network outputs of shape (B, K).
        targets:
            Target vectors of shape (B, K).
        cost:
            Cost rows of shape (B, K), or None.

        Returns
        -------
        TargetCostLossOutput
            ``(loss, loss_unweighted)``.
        """
        if outputs.ndim != 2:
            raise ValueError("outputs must have shape (B,K).")
        if targets.shape != outputs.shape:
            raise ValueError("targets must have the same shape as outputs.")

        sq = 0.5 * (outputs - targets) ** 2  # (B,K)

        if cost is None:
            loss = sq.sum(dim=1).mean()
            return TargetCostLossOutput(loss=loss, loss_unweighted=float(loss.detach().item()))

        if cost.shape != outputs.shape:
            raise ValueError(
                f"cost must have shape {tuple(outputs.shape)}, got {tuple(cost.shape)}."
            )

        cost = cost.to(device=outputs.device, dtype=outputs.dtype)
        loss = (cost * sq).sum(dim=1).mean()

        with torch.no_grad():
            loss_unweighted = float(sq.sum(dim=1).mean().item())

        return TargetCostLossOutput(loss=loss, loss_unweighted=loss_unweighted)
