import copy

import numpy as np
import pytest
import torch

from balcost import InvalidInput, calculate_label_counts, create_balanced_target_cost
from balcost.nn import TrainConfig, Trainer, evaluate, fully_connected_network, predict_label


def _small_problem(n=40, seed=0):
    rng = np.random.default_rng(seed)
    x = rng.random((n, 2)).astype(np.float32)
    y = (x[:, 0] > 0.7).astype(np.int64)
    return x, y


def _assert_same_parameters(a, b, atol=1e-5):
    for pa, pb in zip(a.parameters(), b.parameters()):
        torch.testing.assert_close(pa, pb, atol=atol, rtol=0)


def test_callbacks_are_called_per_epoch_and_minibatch():
    x, y = _small_problem(n=25)
    torch.manual_seed(0)
    model = fully_connected_network((2, 4, 2))

    epochs_seen = []
    losses = []
    Trainer(TrainConfig(seed=0)).train(
        model, x, y, batch_size=10, epochs=3,
        pre_epoch_callback=epochs_seen.append,
        post_minibatch_callback=losses.append,
    )

    assert epochs_seen == [0, 1, 2]
    assert len(losses) == 3 * 3  # ceil(25 / 10) batches per epoch
    assert all(isinstance(v, float) for v in losses)


def test_task_granularity_does_not_change_the_update():
    x, y = _small_problem()
    cost = create_balanced_target_cost(y)
    torch.manual_seed(0)
    a = fully_connected_network((2, 4, 2))
    b = copy.deepcopy(a)

    trainer = Trainer(TrainConfig(lr=0.05))
    trainer.train(a, x, y, batch_size=8, epochs=2, shuffle=False, task_granularity=1, target_cost=cost)
    trainer.train(b, x, y, batch_size=8, epochs=2, shuffle=False, task_granularity=4, target_cost=cost)

    _assert_same_parameters(a, b)


def test_missing_target_cost_means_unit_cost():
    x, y = _small_problem()
    torch.manual_seed(0)
    a = fully_connected_network((2, 4, 2))
    b = copy.deepcopy(a)

    trainer = Trainer(TrainConfig(lr=0.05))
    trainer.train(a, x, y, batch_size=8, epochs=2, shuffle=False)
    trainer.train(b, x, y, batch_size=8, epochs=2, shuffle=False, target_cost=create_balanced_target_cost(y, 0.0))

    _assert_same_parameters(a, b)


def test_target_cost_changes_training():
    x, y = _small_problem()
    torch.manual_seed(0)
    a = fully_connected_network((2, 4, 2))
    b = copy.deepcopy(a)

    trainer = Trainer(TrainConfig(lr=0.05))
    trainer.train(a, x, y, batch_size=8, epochs=1, shuffle=False)
    trainer.train(b, x, y, batch_size=8, epochs=1, shuffle=False, target_cost=create_balanced_target_cost(y))

    assert any(not torch.allclose(pa, pb) for pa, pb in zip(a.parameters(), b.parameters()))


def test_rejects_mismatched_target_cost():
    x, y = _small_problem()
    model = fully_connected_network((2, 4, 2))
    trainer = Trainer()

    # one row short
    with pytest.raises(InvalidInput):
        trainer.train(model, x, y, 8, 1, target_cost=create_balanced_target_cost(y[:-1]))

    # rows wider than the network output
    wide = np.ones((len(y), 3))
    with pytest.raises(InvalidInput):
        trainer.train(model, x, y, 8, 1, target_cost=wide)


@pytest.mark.parametrize("kwargs", [
    {"batch_size": 0, "epochs": 1},
    {"batch_size": 4, "epochs": -1},
    {"batch_size": 4, "epochs": 1, "task_granularity": 0},
])
def test_rejects_invalid_loop_settings(kwargs):
    x, y = _small_problem()
    model = fully_connected_network((2, 4, 2))
    with pytest.raises(InvalidInput):
        Trainer().train(model, x, y, **kwargs)


def test_rejects_inconsistent_data():
    x, y = _small_problem()
    model = fully_connected_network((2, 4, 2))
    with pytest.raises(InvalidInput):
        Trainer().train(model, x[:-1], y, 8, 1)
    with pytest.raises(InvalidInput):
        Trainer().train(model, x, np.full_like(y, 2), 8, 1)


def test_evaluate_reports_confusion_matrix():
    x, y = _small_problem()
    model = fully_connected_network((2, 4, 3))

    result = evaluate(model, x, y)

    assert result.num_total == len(y)
    assert result.confusion.shape == (3, 3)
    assert result.confusion.sum() == len(y)
    assert result.num_success == int(np.trace(result.confusion))
    assert result.errors == result.num_total - result.num_success
    assert 0.0 <= result.accuracy <= 1.0


def test_train_unbalanced_data_1dim():
    """
    Train the identity on one binary input with noisy, unbalanced labels:

    1) equal cost for each training sample: the total error is rightly
       minimized by always guessing the majority class (1);
    2) equal cost for each class: the identity can be learned.
    """
    p = 0.9   # p(in == 1)
    p0 = 0.6  # p(label == 1 | in == 0)
    p1 = 0.9  # p(label == 1 | in == 1)
    tnum = 1000

    rng = np.random.default_rng(42)
    inputs = rng.random(tnum) < p
    labels = (rng.random(tnum) < np.where(inputs, p1, p0)).astype(np.int64)
    data = inputs.astype(np.float32).reshape(-1, 1)

    # p(label == 1) = p0 * (1 - p) + p1 * p
    n_label1 = int(calculate_label_counts(labels)[1])
    assert n_label1 / tnum == pytest.approx(p0 * (1 - p) + p1 * p, abs=0.05)
    assert 800 <= n_label1 <= 900

    balanced_cost = create_balanced_target_cost(labels)

    torch.manual_seed(0)
    net_equal_sample_cost = fully_connected_network((1, 10, 2))
    net_equal_class_cost = fully_connected_network((1, 10, 2))

    trainer = Trainer(TrainConfig(lr=0.1, seed=0))
    trainer.train(net_equal_sample_cost, data, labels, 10, 100, shuffle=True, task_granularity=1)
    trainer.train(net_equal_class_cost, data, labels, 10, 100, shuffle=True, task_granularity=1,
                  target_cost=balanced_cost)

    # the test data is balanced between the classes
    test_in = rng.random(tnum) < 0.5
    test_data = test_in.astype(np.float32).reshape(-1, 1)
    expected = test_in.astype(np.int64)

    # the first net always guesses the majority class
    for value in (0.0, 1.0):
        assert int(predict_label(net_equal_sample_cost, torch.tensor([value]))) == 1

    result_equal_sample_cost = evaluate(net_equal_sample_cost, test_data, expected)
    result_equal_class_cost = evaluate(net_equal_class_cost, test_data, expected)

    assert result_equal_sample_cost.errors >= 0.25 * tnum
    assert result_equal_class_cost.errors == 0
