"""
utils
==============

Small helpers for the balcost demo script.

- logging configuration
- device selection (CUDA / MPS / CPU)
- a TrainingState container recording per-mini-batch losses of several runs
- plotting loss trajectories and confusion matrices
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns
import torch


PathLike = Union[str, Path]


@dataclass
class TrainingState:
    """
    Loss history of one or more training runs.

    Attributes
    ----------
    loss_history:
        Run name -> list of mini-batch losses, one value per optimization step.
    epoch_iterations:
        Iteration indices at epoch boundaries (shared by all runs, same data).
        Convention: starts with [0].
    batch_size:
        Batch size, used only for plot annotation.
    """
    loss_history: Dict[str, List[float]] = field(default_factory=dict)
    epoch_iterations: List[int] = field(default_factory=lambda: [0])
    batch_size: int = 0

    def recorder(self, run: str):
        """Post-minibatch callback appending to ``loss_history[run]``."""
        history = self.loss_history.setdefault(run, [])
        return history.append


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure basic logging for the demo.

    Parameters
    ----------
    level:
        Logging level (e.g., logging.INFO).
    """
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def get_device() -> torch.device:
    """
    Return the best available PyTorch device.

    Returns
    -------
    torch.device
        "cuda" if available, else "mps" if available, else "cpu".
    """
    if torch.cuda.is_available():
        return torch.device("cuda")
    if torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


def moving_average(input_x: np.ndarray, window_size: int) -> np.ndarray:
    """
    Causal moving average of a 1D array.

    The first ``window_size`` values average over the samples seen so far,
    so the output has the same length as the input.
    """
    x = np.asarray(input_x, dtype=np.float64)
    if window_size < 1:
        raise ValueError("window_size must be >= 1")
    if x.size == 0:
        return x

    y = np.cumsum(x)
    y[window_size:] = y[window_size:] - y[:-window_size]
    denom = np.minimum(np.arange(1, x.size + 1), window_size)
    return y / denom


def plot_loss_trajectory(
    state: TrainingState,
    *,
    out_path: PathLike = "images/loss_trajectory.png",
    title: str = "Training loss",
    ylabel: str = "Loss",
    ma_window: Optional[int] = 50,
) -> None:
    """
    Plot the mini-batch loss of every recorded run.

    Parameters
    ----------
    state:
        Training state containing recorded losses.
    out_path:
        Where to save the figure. Parent directories are created.
    title:
        Title of the plot.
    ylabel:
        Y-axis label.
    ma_window:
        Moving-average window drawn over each curve. None to disable.
    """
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    plt.figure(figsize=(18, 6))

    for run, history in state.loss_history.items():
        line, = plt.plot(history, label=f"{run} (step-wise)", alpha=0.3)
        if ma_window is not None and len(history) >= ma_window:
            smoothed = moving_average(np.asarray(history), ma_window)
            plt.plot(smoothed, label=f"{run} ({ma_window}-moving-average)",
                     linewidth=3, color=line.get_color())

    # Epoch markers, labelled once
    for i, it in enumerate(state.epoch_iterations):
        plt.axvline(it, color="gray", linestyle=":", alpha=0.3, label="Epochs" if i == 0 else None)

    plt.xlabel(f"Iterations (1 iter = 1 mini-batch; batch_size={state.batch_size})")
    plt.ylabel(ylabel)
    plt.title(title)

    ax = plt.gca()
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)

    plt.legend(loc="upper right")
    plt.tight_layout()
    plt.savefig(out_path)
    plt.close()


def plot_confusion_matrix(
    cm: np.ndarray,
    class_names: Sequence[str],
    *,
    out_path: PathLike,
    title: str,
) -> None:
    """Save a confusion matrix heatmap (rows: true, columns: predicted)."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    plt.figure(figsize=(5, 4))
    sns.heatmap(cm, annot=True, fmt="d", cmap="viridis",
                xticklabels=class_names, yticklabels=class_names)
    plt.xlabel("Predicted")
    plt.ylabel("True")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_path)
    plt.close()
