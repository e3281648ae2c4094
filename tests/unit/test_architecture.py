import logging

import numpy as np
import pytest

from flavnet.core.architecture import Architecture
from flavnet.core.types import NetworkType, TrainingMode


def _half_squared_error(network, event, target):
    return 0.5 * float(np.sum(np.square(network.test(event) - target)))


def _numeric_gradient(network, layer_index, event, target, h=1e-6):
    W = network.layers[layer_index].W
    grad = np.zeros_like(W)
    for idx in np.ndindex(W.shape):
        original = W[idx]
        W[idx] = original + h
        plus = _half_squared_error(network, event, target)
        W[idx] = original - h
        minus = _half_squared_error(network, event, target)
        W[idx] = original
        grad[idx] = (plus - minus) / (2 * h)
    return grad


def test_structure_validation():
    with pytest.raises(ValueError):
        Architecture([3])
    with pytest.raises(ValueError):
        Architecture([3, 0, 1])
    with pytest.raises(ValueError):
        Architecture([2, 1], net_type="ranking")


def test_layers_follow_structure():
    network = Architecture([4, 5, 3, 2])
    assert [layer.W.shape for layer in network.layers] == [(5, 4), (3, 5), (2, 3)]
    assert network.parameter_count() == 5 * 4 + 5 + 3 * 5 + 3 + 2 * 3 + 2
    description = network.describe()
    assert description.structure == [4, 5, 3, 2]
    assert description.net_type is NetworkType.CLASSIFICATION
    assert description.activation == "sigmoid"


def test_test_is_deterministic_and_pure():
    network = Architecture([3, 4, 2], seed=5)
    event = np.array([0.3, -1.2, 0.8])
    before = {k: v.copy() for k, v in network.state_dict().items()}

    first = network.test(event)
    second = network.test(event)

    assert first.shape == (2,)
    assert np.array_equal(first, second)
    for key, value in network.state_dict().items():
        assert np.array_equal(value, before[key])
    assert np.array_equal(Architecture([3, 4, 2], seed=5).test(event), first)


def test_test_rejects_wrong_length():
    network = Architecture([3, 2])
    with pytest.raises(ValueError):
        network.test(np.zeros(4))


def test_backpropagate_rejects_wrong_error_length():
    network = Architecture([3, 2])
    with pytest.raises(ValueError):
        network.backpropagate(np.zeros(3), np.zeros(3))


def test_single_linear_layer_matches_finite_difference():
    network = Architecture([3, 2], "regression", "linear", learning=1e-3, seed=1)
    event = np.array([0.5, -1.0, 2.0])
    target = np.array([0.25, -0.75])
    numeric = _numeric_gradient(network, 0, event, target)
    W0 = network.layers[0].W.copy()

    network.backpropagate(network.test(event) - target, event)

    analytic = (W0 - network.layers[0].W) / network.learning_rate
    assert np.allclose(analytic, numeric, atol=1e-6)


def test_hidden_sigmoid_layer_matches_finite_difference():
    network = Architecture([2, 3, 1], learning=0.1, seed=2, init_scale=0.5)
    event = np.array([0.4, -0.7])
    target = np.array([1.0])
    numeric = _numeric_gradient(network, 0, event, target)
    W0 = network.layers[0].W.copy()

    network.backpropagate(network.test(event) - target, event)

    analytic = (W0 - network.layers[0].W) / network.learning_rate
    assert np.allclose(analytic, numeric, atol=1e-7)


def test_weight_scales_the_update():
    event = np.array([1.0, -0.5])
    error = np.array([0.3])
    base = Architecture([2, 1], "regression", "linear", learning=0.1, seed=0)
    weighted = Architecture([2, 1], "regression", "linear", learning=0.1, seed=0)
    doubled_rate = Architecture([2, 1], "regression", "linear", learning=0.2, seed=0)
    W0 = base.layers[0].W.copy()

    base.backpropagate(error, event, weight=0.0)
    weighted.backpropagate(error, event, weight=2.0)
    doubled_rate.backpropagate(error, event)

    assert np.array_equal(base.layers[0].W, W0)
    assert np.allclose(weighted.layers[0].W, doubled_rate.layers[0].W)


def test_anneal_scales_subsequent_updates():
    event = np.array([1.0, 2.0])
    error = np.array([0.5])
    annealed = Architecture([2, 1], "regression", "linear", seed=0)
    annealed.set_learning(0.1)
    annealed.anneal(0.9)
    reference = Architecture([2, 1], "regression", "linear", learning=0.09, seed=0)

    assert annealed.learning_rate == pytest.approx(0.09)
    annealed.backpropagate(error, event)
    reference.backpropagate(error, event)
    assert np.allclose(annealed.layers[0].W, reference.layers[0].W)


@pytest.mark.parametrize("factor", [0.0, -0.5, 1.5])
def test_anneal_rejects_out_of_range(factor):
    with pytest.raises(ValueError):
        Architecture([2, 1]).anneal(factor)


def test_negative_hyper_parameters_rejected():
    network = Architecture([2, 1])
    with pytest.raises(ValueError):
        network.set_learning(-0.1)
    with pytest.raises(ValueError):
        network.set_momentum(-0.1)


def test_make_denoising_is_one_way():
    network = Architecture([3, 2, 3], "autoencoder")
    assert network.mode is TrainingMode.STANDARD
    network.make_denoising()
    assert network.is_denoising
    network.make_denoising("gaussian", 0.1)
    assert network.mode is TrainingMode.DENOISING
    with pytest.raises(ValueError):
        network.make_denoising("salt", 0.1)
    with pytest.raises(ValueError):
        network.make_denoising("mask", 1.0)
    assert network.is_denoising


def test_encode_validates_arguments():
    network = Architecture([3, 2, 3], "autoencoder")
    inputs = [np.zeros(3), np.ones(3)]
    with pytest.raises(ValueError):
        network.encode(inputs, 0.1, [1.0])
    with pytest.raises(ValueError):
        network.encode(inputs, 0.1, [1.0, 1.0], epochs=0)
    with pytest.raises(ValueError):
        Architecture([3, 2, 2]).encode(inputs, 0.1, [1.0, 1.0])


def test_encode_reduces_reconstruction_error():
    rng = np.random.default_rng(0)
    inputs = list(rng.uniform(0.7, 0.95, size=(20, 4)))
    network = Architecture([4, 3, 4], "autoencoder", seed=0)

    history = network.encode(inputs, 0.5, [1.0] * len(inputs), epochs=30)

    assert len(history) == 30
    assert history[-1] < history[0]
    assert network.reconstruction_error == tuple(history)
    assert network.learning_rate == pytest.approx(0.5)


def test_encode_reports_each_epoch():
    network = Architecture([2, 2], "autoencoder")
    seen = []
    network.encode(
        [np.array([0.1, 0.9])],
        0.1,
        [1.0],
        verbose=True,
        epochs=3,
        reporter=lambda epoch, metrics: seen.append((epoch, metrics["reconstruction_error"])),
    )
    assert [epoch for epoch, _ in seen] == [1, 2, 3]


def test_encode_verbose_logs_without_reporter(caplog):
    caplog.set_level(logging.INFO, logger="flavnet.core.architecture")
    network = Architecture([2, 2], "autoencoder")
    network.encode([np.array([0.1, 0.9])], 0.1, [1.0], verbose=True, epochs=2)
    assert sum("reconstruction error" in record.getMessage() for record in caplog.records) == 2


def test_denoising_corrupts_inputs_but_not_targets():
    rng = np.random.default_rng(1)
    inputs = list(rng.uniform(0.2, 0.9, size=(10, 4)))
    snapshot = [x.copy() for x in inputs]
    clean = Architecture([4, 2, 4], "autoencoder", seed=3)
    noisy = Architecture([4, 2, 4], "autoencoder", seed=3)
    noisy.make_denoising("mask", 0.5)

    clean.encode(inputs, 0.2, [1.0] * 10, epochs=2)
    history = noisy.encode(inputs, 0.2, [1.0] * 10, epochs=2)

    assert all(np.array_equal(a, b) for a, b in zip(inputs, snapshot))
    assert np.all(np.isfinite(history))
    assert not np.allclose(clean.layers[0].W, noisy.layers[0].W)


def test_single_event_converges_towards_target():
    network = Architecture([2, 3, 1], learning=0.1)
    event = np.array([0.5, -0.5])
    target = np.array([1.0])
    initial = float(network.test(event)[0])

    for _ in range(100):
        network.backpropagate(network.test(event) - target, event)

    final = float(network.test(event)[0])
    assert abs(final - 1.0) < abs(initial - 1.0)


def test_save_and_load_round_trip(tmp_path):
    network = Architecture([3, 4, 3], "autoencoder", "tanh", learning=0.05, momentum=0.3, seed=9)
    network.make_denoising("gaussian", 0.05)
    path = network.save(tmp_path / "net.npz")

    restored = Architecture.load(path)

    event = np.array([0.1, 0.2, 0.3])
    assert restored.structure == [3, 4, 3]
    assert restored.net_type is NetworkType.AUTOENCODER
    assert restored.activation.name == "tanh"
    assert restored.learning_rate == pytest.approx(0.05)
    assert restored.momentum == pytest.approx(0.3)
    assert restored.is_denoising
    assert np.array_equal(restored.test(event), network.test(event))


def test_reloaded_denoising_network_keeps_its_seed(tmp_path):
    inputs = [np.array([0.2, 0.8, 0.5]), np.array([0.6, 0.1, 0.9])]
    network = Architecture([3, 2, 3], "autoencoder", seed=21)
    network.make_denoising("mask", 0.4)
    path = network.save(tmp_path / "dae.npz")

    restored = Architecture.load(path)
    assert restored.seed == 21

    network.encode(inputs, 0.1, [1.0, 1.0], epochs=3)
    restored.encode(inputs, 0.1, [1.0, 1.0], epochs=3)
    assert np.array_equal(restored.layers[0].W, network.layers[0].W)
