"""Tests for Network: construction, forward chaining, staged backprop and persistence."""

import numpy as np
import pytest

from clear_fc.activations import CustomSpec, get_activation
from clear_fc.errors import ConfigurationError, LayerError, RangeError, StateError, UsabilityError
from clear_fc.layer import LayerConfig
from clear_fc.network import Network


def identity_net(input_size, sizes):
    return Network(input_size, [LayerConfig(size=s, activation="identity", keep_state=True) for s in sizes])


def test_layers_are_chained():
    net = Network(3, [
        LayerConfig(size=4, activation="relu"),
        {"size": 2, "activation": "leaky_relu", "params": [0.1]},
        (1, "sigmoid", True),
    ])
    assert len(net) == 3
    assert [(l.input_size, l.output_size) for l in net.layers] == [(3, 4), (4, 2), (2, 1)]
    assert net.output_size == 1
    assert net.layers[2].keep_state
    assert not net.layers[0].keep_state


def test_construction_errors():
    with pytest.raises(ConfigurationError, match="minimum input size is 1"):
        Network(0, [LayerConfig(size=1)])
    with pytest.raises(ConfigurationError, match="must have at least one layer"):
        Network(3, [])
    with pytest.raises(ConfigurationError, match=r"configs\[1\]: size must be >0"):
        Network(3, [LayerConfig(size=2), LayerConfig(size=0)])
    with pytest.raises(ConfigurationError, match=r"configs\[0\]"):
        Network(3, [LayerConfig(size=2, activation=CustomSpec(lambda x: x, None))])
    with pytest.raises(ConfigurationError, match=r"configs\[0\]"):
        Network(3, [{"size": 2, "colour": "red"}])


def test_from_config():
    net = Network.from_config({
        "input_size": 3,
        "layers": [
            {"size": 4, "activation": "elu", "params": [1.0]},
            {"size": 1, "activation": "identity", "keep_state": True},
        ],
    })
    assert [l.output_size for l in net.layers] == [4, 1]
    assert net.layers[0].activation_fn.name == "elu"
    with pytest.raises(ConfigurationError):
        Network.from_config({"layers": []})


def test_single_identity_layer_forward():
    net = identity_net(2, [1])
    net.set_layer_data(0, [2, -1, 0.5])
    np.testing.assert_allclose(net.forward([3, 4]), [[2 * 3 - 4 + 0.5]])


def test_forward_chains_outputs():
    net = identity_net(2, [2, 1])
    net.set_layer_data(0, [1, 1, 1, 1, 0, 0])
    net.set_layer_data(1, [1, 1, 0])
    np.testing.assert_allclose(net.forward([1, 2]), [[6.0]])
    np.testing.assert_allclose(net.get_state(0), [[3.0], [3.0]])


def test_forward_failure_reports_layer_index():
    net = identity_net(2, [2, 1])
    with pytest.raises(LayerError) as excinfo:
        net.forward([1, 2, 3])
    assert excinfo.value.layer_index == 0

    net.layers[1].weights = None
    with pytest.raises(LayerError) as excinfo:
        net.forward([1, 2])
    assert excinfo.value.layer_index == 1
    assert isinstance(excinfo.value.__cause__, UsabilityError)


def test_single_layer_backprop_scenario():
    net = identity_net(2, [1])
    net.set_layer_data(0, [1, 1, 0])
    x = np.array([[1.0], [2.0]])
    net.forward(x)
    net.backprop(0.5, x, np.array([[1.0]]))
    np.testing.assert_allclose(net.layers[0].weights, [[0.5, 0.0]])
    np.testing.assert_allclose(net.layers[0].biases, [[-0.5]])


def test_two_layer_backprop_scenario():
    net = identity_net(2, [2, 1])
    net.set_layer_data(0, [1, 1, 1, 1, 0, 0])
    net.set_layer_data(1, [1, 1, 0])
    x = np.array([[1.0], [2.0]])
    net.forward(x)
    net.backprop(0.5, x, np.array([[1.0]]))
    np.testing.assert_allclose(net.layers[0].weights, [[1.25, 1.5], [1.25, 1.5]])
    np.testing.assert_allclose(net.layers[0].biases, [[0.25], [0.25]])
    np.testing.assert_allclose(net.layers[1].weights, [[-0.5, -0.5]])
    np.testing.assert_allclose(net.layers[1].biases, [[-0.5]])


def test_zero_deviation_leaves_weights_unchanged():
    net = Network(3, [
        LayerConfig(size=4, activation="tanh", keep_state=True),
        LayerConfig(size=2, activation="sigmoid", keep_state=True),
    ])
    before = [l.get_data() for l in net.layers]
    x = np.array([0.2, -0.4, 0.9])
    prediction = net.forward(x)
    cost = get_activation("power", [0.5, 2])
    net.backprop(0.3, x, cost.backward(prediction - prediction))
    for layer, data in zip(net.layers, before):
        np.testing.assert_array_equal(layer.get_data(), data)


def test_failed_backprop_commits_nothing():
    net = identity_net(2, [2, 1])
    net.set_layer_data(0, [1, 1, 1, 1, 0, 0])
    net.set_layer_data(1, [1, 1, 0])
    net.forward([1, 2])
    before = [l.get_data() for l in net.layers]
    # the output layer step succeeds, the first layer gets an input of the wrong size
    with pytest.raises(LayerError) as excinfo:
        net.backprop(0.5, [1, 2, 3], [1])
    assert excinfo.value.layer_index == 0
    for layer, data in zip(net.layers, before):
        np.testing.assert_array_equal(layer.get_data(), data)


def test_backprop_without_snapshots():
    net = Network(2, [LayerConfig(size=2), LayerConfig(size=1)])
    net.forward([1, 2])
    with pytest.raises(LayerError) as excinfo:
        net.backprop(0.5, [1, 2], [1])
    assert excinfo.value.layer_index == 1
    assert isinstance(excinfo.value.cause, StateError)


def test_backprop_argument_checks():
    net = identity_net(2, [1])
    net.forward([1, 2])
    with pytest.raises(ConfigurationError):
        net.backprop(0.5, None, [1])
    with pytest.raises(ConfigurationError):
        net.backprop(0.5, [1, 2], None)
    with pytest.raises(LayerError) as excinfo:
        net.backprop(2.0, [1, 2], [1])
    assert isinstance(excinfo.value.cause, RangeError)


def test_layer_index_range():
    net = identity_net(2, [1])
    with pytest.raises(RangeError, match="layer index must be between 0 and 0"):
        net.set_layer_data(1, [1, 1, 0])
    with pytest.raises(RangeError):
        net.get_state(-1)


def test_get_state_requires_snapshot():
    net = Network(3, [LayerConfig(size=3, activation="sigmoid")])
    with pytest.raises(StateError, match="state is empty"):
        net.get_state(0)
    net.set_keep_state(True)
    net.forward([0, 0, 0])
    state = net.get_state(0)
    assert state.shape == (3, 1)
    assert np.all((state > 0.0) & (state < 1.0))


def test_dropout_masks_per_layer():
    net = identity_net(2, [2, 1])
    with pytest.raises(ConfigurationError):
        net.set_dropout([None])
    net.set_dropout([np.array([[0.0], [2.0]]), None])
    assert net.layers[1].drop_mask is None
    net.clear_dropout()
    assert all(l.drop_mask is None for l in net.layers)


def test_is_usable_reports_index():
    net = identity_net(2, [2, 1])
    net.is_usable()
    net.layers[1].biases = None
    with pytest.raises(UsabilityError, match=r"layer \[1\]"):
        net.is_usable()


def test_save_and_load_weights(tmp_path):
    net = Network(3, [
        LayerConfig(size=4, activation="leaky_relu", params=(0.05,)),
        LayerConfig(size=1, activation="power", params=(0.5, 2), keep_state=True),
    ])
    path = net.save_weights(str(tmp_path / "model"))
    assert path.endswith(".npz")

    loaded = Network.load_weights(path)
    assert loaded.input_size == 3
    assert [l.output_size for l in loaded.layers] == [4, 1]
    assert loaded.layers[0].activation_fn.alpha == 0.05
    assert loaded.layers[1].activation_fn.params == [0.5, 2.0]
    assert loaded.layers[1].keep_state
    for a, b in zip(net.layers, loaded.layers):
        np.testing.assert_array_equal(a.get_data(), b.get_data())
    x = np.array([0.1, 0.2, 0.3])
    np.testing.assert_allclose(net.forward(x), loaded.forward(x))


def test_custom_activation_cannot_be_saved(tmp_path):
    net = Network(1, [LayerConfig(size=1, activation=CustomSpec(lambda x: x, lambda x: 1.0))])
    with pytest.raises(ConfigurationError):
        net.save_weights(str(tmp_path / "custom.npz"))


def test_predict_rows():
    net = identity_net(2, [1])
    net.set_layer_data(0, [1, 1, 0])
    np.testing.assert_allclose(net.predict([[1, 2], [3, 4]]), [[3.0], [7.0]])


def test_summary_mentions_every_layer():
    net = identity_net(2, [3, 1])
    text = net.summary()
    assert "Layer 0" in text and "Layer 1" in text
    assert "Total: 4 neuron(s), 13 parameter(s)" in text
