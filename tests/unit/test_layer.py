import numpy as np
import pytest

from flavnet.core import activations
from flavnet.core.layer import Layer


def _layer(in_dim=3, out_dim=2, name="linear", seed=0):
    return Layer(in_dim, out_dim, activations.get(name), np.random.default_rng(seed))


def test_forward_caches_and_evaluate_does_not():
    layer = _layer(name="sigmoid")
    x = np.array([0.2, -0.4, 1.0])

    out = layer.evaluate(x)
    assert out.shape == (2,)
    assert layer.last_input is None

    forwarded = layer.forward(x)
    assert np.array_equal(out, forwarded)
    assert np.array_equal(layer.last_input, x)
    assert np.allclose(layer.last_summed, layer.W @ x + layer.b)


def test_initialisation_is_seeded():
    assert np.array_equal(_layer(seed=4).W, _layer(seed=4).W)
    assert np.all(_layer().b == 0.0)


def test_backward_before_forward_raises():
    layer = _layer()
    with pytest.raises(RuntimeError):
        layer.backward(np.zeros(2), 0.1, 0.0)


def test_input_and_error_shapes_are_checked():
    layer = _layer()
    with pytest.raises(ValueError):
        layer.forward(np.zeros(4))
    layer.forward(np.zeros(3))
    with pytest.raises(ValueError):
        layer.backward(np.zeros(3), 0.1, 0.0)


def test_backward_returns_error_through_old_weights():
    layer = _layer()
    x = np.array([1.0, 2.0, -1.0])
    error = np.array([0.5, -0.25])
    W_old = layer.W.copy()
    b_old = layer.b.copy()

    layer.forward(x)
    upstream = layer.backward(error, 0.1, 0.0)

    assert np.allclose(upstream, W_old.T @ error)
    assert np.allclose(layer.W, W_old - 0.1 * np.outer(error, x))
    assert np.allclose(layer.b, b_old - 0.1 * error)


def test_momentum_accumulates_velocity():
    layer = _layer()
    x = np.array([1.0, 0.0, 0.5])
    error = np.array([1.0, -1.0])
    grad = np.outer(error, x)
    W0 = layer.W.copy()

    for _ in range(2):
        layer.forward(x)
        layer.backward(error, 0.1, 0.5)

    # second step moves by 0.5 * v1 + lr * g
    assert np.allclose(layer.W, W0 - 2.5 * 0.1 * grad)

    layer.reset_momentum()
    W1 = layer.W.copy()
    layer.forward(x)
    layer.backward(error, 0.1, 0.5)
    assert np.allclose(layer.W, W1 - 0.1 * grad)


def test_load_state_dict_rejects_wrong_shapes():
    layer = _layer()
    with pytest.raises(ValueError):
        layer.load_state_dict({"W": np.zeros((3, 3)), "b": np.zeros(2)})
