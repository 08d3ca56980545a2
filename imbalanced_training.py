"""
balcost demo: training on class-imbalanced data
===============================================

This script trains two identical networks on noisy, imbalanced synthetic
data:

1) with equal cost for each training *sample* (no target cost). The total
   error is rightly minimized by always guessing the majority class;
2) with equal cost for each *class* (balanced target cost, w = 1). The
   underlying function can be learned.

Both networks are then evaluated on a class-balanced test set.

Problems
--------
- ``1d``: one binary input, P(in=1) = 0.9,
  P(label=1 | in=1) = 0.9, P(label=1 | in=0) = 0.6. The true function is the
  identity.
- ``xor``: two binary inputs, P(label=1) = 0.9, in1 = in0 XOR label, with
  in1 flipped with probability 0.25. The true function is XOR.

Run
---
    PYTHONPATH=. python imbalanced_training.py --problem 1d --epochs 100

Dependencies
------------
    pip install torch numpy scikit-learn tqdm matplotlib seaborn pandas
"""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Tuple

import numpy as np
import pandas as pd
import torch

from balcost import balanced_class_weights, calculate_label_counts, create_balanced_target_cost
from balcost.nn import TrainConfig, Trainer, evaluate, fully_connected_network
from utils import TrainingState, get_device, plot_confusion_matrix, plot_loss_trajectory, setup_logging

# ============================================================
# Constants & configuration
# ============================================================

# 1d problem
P_IN = 0.9        # p(in == 1)
P_LABEL_IN0 = 0.6  # p(label == 1 | in == 0)
P_LABEL_IN1 = 0.9  # p(label == 1 | in == 1)

# xor problem
P_LABEL = 0.9     # p(label == 1)
XOR_NOISE = 0.25  # p(in1 flipped)

HIDDEN = 10
CLASS_NAMES = ["0", "1"]


# ============================================================
# Data
# ============================================================

def make_1d_train(rng: np.random.Generator, n: int) -> Tuple[np.ndarray, np.ndarray]:
    """Noisy, imbalanced samples of the identity on one binary input."""
    x = rng.random(n) < P_IN
    p = np.where(x, P_LABEL_IN1, P_LABEL_IN0)
    y = rng.random(n) < p
    return x.astype(np.float32).reshape(-1, 1), y.astype(np.int64)


def make_1d_test(rng: np.random.Generator, n: int) -> Tuple[np.ndarray, np.ndarray]:
    """Balanced, noiseless samples: label equals input."""
    x = rng.random(n) < 0.5
    return x.astype(np.float32).reshape(-1, 1), x.astype(np.int64)


def make_xor_train(rng: np.random.Generator, n: int) -> Tuple[np.ndarray, np.ndarray]:
    """Noisy, imbalanced samples of XOR on two binary inputs."""
    y = rng.random(n) < P_LABEL
    in0 = rng.random(n) < 0.5
    in1 = in0 ^ y
    in1 = in1 ^ (rng.random(n) < XOR_NOISE)
    x = np.stack([in0, in1], axis=1).astype(np.float32)
    return x, y.astype(np.int64)


def make_xor_test(rng: np.random.Generator, n: int) -> Tuple[np.ndarray, np.ndarray]:
    """Balanced, noiseless samples of XOR."""
    x = rng.random((n, 2)) < 0.5
    y = x[:, 0] ^ x[:, 1]
    return x.astype(np.float32), y.astype(np.int64)


PROBLEMS = {
    "1d": (1, 1000, make_1d_train, make_1d_test),
    "xor": (2, 2000, make_xor_train, make_xor_test),
}


# ============================================================
# Main
# ============================================================

def main() -> None:
    parser = argparse.ArgumentParser(description="balcost imbalanced training demo")
    parser.add_argument("--problem", choices=sorted(PROBLEMS), default="1d", help="Synthetic problem")
    parser.add_argument("--epochs", type=int, default=100, help="Number of epochs")
    parser.add_argument("--batch-size", type=int, default=10, help="Mini-batch size")
    parser.add_argument("--lr", type=float, default=0.1, help="Adagrad learning rate")
    parser.add_argument("--w", type=float, default=1.0, help="Interpolation factor in [0, 1]")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--quick", action="store_true", help="Quick run (few epochs)")
    parser.add_argument("--out", type=str, default="imbalanced_output", help="Output directory")
    args = parser.parse_args()

    setup_logging()
    device = get_device()
    logging.info("Using device: %s", device)

    OUTPUT_DIR = args.out
    Path(OUTPUT_DIR).mkdir(parents=True, exist_ok=True)

    epochs = min(args.epochs, 5) if args.quick else args.epochs

    # --------------------------------------------------------
    # Data
    # --------------------------------------------------------
    rng = np.random.default_rng(args.seed)
    dim, n, make_train, make_test = PROBLEMS[args.problem]
    x_train, y_train = make_train(rng, n)
    x_test, y_test = make_test(rng, n)

    counts = calculate_label_counts(y_train)
    logging.info("Training label counts: %s", counts.tolist())
    logging.info("Class weights (w=%.2f): %s", args.w, balanced_class_weights(y_train, args.w))

    balanced_cost = create_balanced_target_cost(y_train, args.w)

    # --------------------------------------------------------
    # Models
    # --------------------------------------------------------
    torch.manual_seed(args.seed)
    net_equal_sample_cost = fully_connected_network((dim, HIDDEN, 2)).to(device)
    net_equal_class_cost = fully_connected_network((dim, HIDDEN, 2)).to(device)

    trainer = Trainer(TrainConfig(lr=args.lr, seed=args.seed, progress=True))
    state = TrainingState(batch_size=args.batch_size)
    steps_per_epoch = -(-n // args.batch_size)
    state.epoch_iterations = [e * steps_per_epoch for e in range(epochs + 1)]

    # --------------------------------------------------------
    # Training
    # --------------------------------------------------------
    runs = {
        "equal sample cost": (net_equal_sample_cost, None),
        "equal class cost": (net_equal_class_cost, balanced_cost),
    }

    rows = []
    for name, (model, cost) in runs.items():
        logging.info("Training with %s...", name)
        trainer.train(
            model, x_train, y_train,
            batch_size=args.batch_size,
            epochs=epochs,
            post_minibatch_callback=state.recorder(name),
            shuffle=True,
            target_cost=cost,
        )

        result = evaluate(model, x_test, y_test)
        logging.info("%s | errors: %d / %d (accuracy %.3f)",
                     name, result.errors, result.num_total, result.accuracy)

        plot_confusion_matrix(
            result.confusion, CLASS_NAMES,
            out_path=os.path.join(OUTPUT_DIR, f"confusion_{name.replace(' ', '_')}.png"),
            title=f"{args.problem}: {name}",
        )
        rows.append({
            "problem": args.problem,
            "run": name,
            "w": args.w if cost is not None else 0.0,
            "errors": result.errors,
            "total": result.num_total,
            "accuracy": result.accuracy,
        })

    plot_loss_trajectory(
        state,
        out_path=os.path.join(OUTPUT_DIR, f"{args.problem}_loss_trajectory.png"),
        title=f"Mini-batch loss ({args.problem}, imbalanced training data)",
    )

    out_csv = os.path.join(OUTPUT_DIR, f"{args.problem}_summary.csv")
    pd.DataFrame(rows).to_csv(out_csv, index=False)
    logging.info("Saved summary to: %s", out_csv)

    logging.info("Demo finished successfully.")


if __name__ == "__main__":
    main()
