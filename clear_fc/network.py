import numpy as np
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
import logging

from clear_fc.activations import CustomActivation, NamedActivation
from clear_fc.errors import (
    ClearFCError,
    ConfigurationError,
    LayerError,
    RangeError,
    StateError,
    UsabilityError,
)
from clear_fc.layer import Layer, LayerConfig, as_column

LayerConfigLike = Union[LayerConfig, Mapping[str, Any], Sequence[Any]]


def _coerce_config(entry: LayerConfigLike) -> LayerConfig:
    """Accepts a LayerConfig, a mapping with LayerConfig keys, or a (size, activation[, keep_state]) tuple."""
    if isinstance(entry, LayerConfig):
        return entry
    if entry is None:
        raise ConfigurationError("layer config is None")
    if isinstance(entry, Mapping):
        unknown = set(entry) - {"size", "activation", "params", "keep_state"}
        if unknown:
            raise ConfigurationError(f"unknown layer config keys: {sorted(unknown)}")
        if "size" not in entry:
            raise ConfigurationError("layer config has no 'size'")
        return LayerConfig(
            size=entry["size"],
            activation=entry.get("activation", "identity"),
            params=tuple(entry.get("params") or ()),
            keep_state=bool(entry.get("keep_state", False)),
        )
    if isinstance(entry, (tuple, list)) and 1 <= len(entry) <= 3:
        return LayerConfig(*entry[:2], keep_state=bool(entry[2]) if len(entry) == 3 else False)
    raise ConfigurationError(f"unsupported layer config {entry!r}")


class Network:
    """
    A fully connected feedforward network: an ordered stack of Layers.

    Layer i's output size equals layer i+1's input size and the first layer's
    input size is the network's input size. The network drives the forward
    pass layer by layer and the backward pass in reverse order, wiring each
    layer's cached snapshot into the next backward step.

    Backward passes are committed atomically: every layer's update is computed
    against staged copies first and W/b are only written once all layers
    succeeded.
    """

    def __init__(
        self,
        input_size: int,
        configs: Sequence[LayerConfigLike],
        weight_init: str = 'xavier',
    ):
        """
        Initializes the neural network.

        Args:
            input_size: Size of the input column vector. Must be >= 1.
            configs: One entry per layer (LayerConfig, mapping or tuple), input to output.
            weight_init: Weight initialization strategy passed to every layer.

        Raises:
            ConfigurationError: If the input size is invalid, the list is empty or
                                an entry is invalid (reported as configs[i]).
        """
        if not isinstance(input_size, (int, np.integer)) or input_size < 1:
            raise ConfigurationError("minimum input size is 1")
        if configs is None or len(configs) < 1:
            raise ConfigurationError("must have at least one layer")

        self.input_size = int(input_size)
        self.layers: List[Layer] = []
        prev_size = self.input_size
        for i, entry in enumerate(configs):
            try:
                config = _coerce_config(entry)
                layer = Layer.from_config(prev_size, config, id=i, weight_init=weight_init)
            except ConfigurationError as err:
                raise ConfigurationError(f"configs[{i}]: {err}") from err
            self.layers.append(layer)
            prev_size = config.size

        logging.info(
            f"Created network with architecture: "
            f"{[self.input_size] + [l.output_size for l in self.layers]}"
        )
        logging.debug(f"Layer activations: {[repr(l.activation_fn) for l in self.layers]}")

    @classmethod
    def from_config(cls, config: Mapping[str, Any], weight_init: str = 'xavier') -> 'Network':
        """Builds a network from a JSON-compatible mapping.

        Expected form::

            {"input_size": 3,
             "layers": [{"size": 4, "activation": "leaky_relu", "params": [0.01]},
                        {"size": 1, "activation": "identity", "keep_state": true}]}
        """
        if "input_size" not in config:
            raise ConfigurationError("network config has no 'input_size'")
        return cls(config["input_size"], config.get("layers") or [], weight_init=weight_init)

    @property
    def output_size(self) -> int:
        return self.layers[-1].output_size

    def __len__(self) -> int:
        return len(self.layers)

    def _check_index(self, layer_index: int):
        n = len(self.layers)
        if layer_index < 0 or layer_index > n - 1:
            raise RangeError(f"layer index must be between 0 and {n - 1}")

    # --- Parameter access ---

    def set_layer_data(self, layer_index: int, data: Sequence[float]):
        """Sets W and b of one layer from a flat array (W row-major, then b)."""
        self._check_index(layer_index)
        self.layers[layer_index].update_data(data)

    def get_layer_data(self, layer_index: int) -> np.ndarray:
        self._check_index(layer_index)
        return self.layers[layer_index].get_data()

    def get_state(self, layer_index: int) -> np.ndarray:
        """Returns the cached output of a layer.

        Raises:
            RangeError: If the index is out of range.
            StateError: If the layer holds no snapshot (keep_state off or no forward pass yet).
        """
        self._check_index(layer_index)
        state = self.layers[layer_index].state
        if state is None:
            raise StateError("state is empty")
        return state

    def set_keep_state(self, keep_state: bool = True):
        """Turns snapshot keeping on (or off) for every layer."""
        for layer in self.layers:
            layer.keep_state = keep_state

    # --- Validation ---

    def validate(self):
        """Checks every layer definition; failures carry the layer index."""
        if not self.layers:
            raise UsabilityError("network has no layers")
        for i, layer in enumerate(self.layers):
            try:
                layer.validate()
            except UsabilityError as err:
                raise UsabilityError(f"layers[{i}]: {err}") from err

    def is_usable(self):
        """Checks every layer can be run and trained; failures carry the layer index."""
        if not self.layers:
            raise UsabilityError("network has no layers")
        for i, layer in enumerate(self.layers):
            try:
                layer.is_usable()
            except UsabilityError as err:
                raise UsabilityError(f"layer [{i}]: {err}") from err

    # --- Dropout ---

    def set_dropout(self, masks: Sequence[Optional[np.ndarray]]):
        """Installs one scaled drop mask per layer (None leaves a layer untouched)."""
        if len(masks) != len(self.layers):
            raise ConfigurationError(
                f"expected {len(self.layers)} drop masks, got {len(masks)}"
            )
        for layer, mask in zip(self.layers, masks):
            layer.set_drop_mask(mask)

    def clear_dropout(self):
        for layer in self.layers:
            layer.set_drop_mask(None)

    # --- Forward / backward ---

    def forward(self, inputs) -> np.ndarray:
        """
        Feeds `inputs` through every layer in order.

        Args:
            inputs: Column vector of shape (input_size, 1), or a 1-D array.

        Returns:
            The last layer's output, shape (output_size, 1).

        Raises:
            LayerError: Wrapping the failure of the offending layer with its index.
        """
        current_output = inputs
        for i, layer in enumerate(self.layers):
            try:
                current_output = layer.forward(current_output)
            except (ClearFCError, ValueError) as err:
                raise LayerError(i, err) from err
        return current_output

    feed_forward = forward

    def predict(self, inputs) -> np.ndarray:
        """Forward pass over a batch of row samples (n_samples, input_size); returns (n_samples, output_size)."""
        inputs = np.asarray(inputs, dtype=float)
        if inputs.ndim == 1:
            return self.forward(inputs).ravel()
        return np.vstack([self.forward(row).ravel() for row in inputs])

    def backprop(self, learning_rate: float, network_input, cost_gradient) -> np.ndarray:
        """
        Propagates the cost gradient from the output layer back to the first layer
        and updates every layer's weights and biases.

        Walks the layers in reverse. The last layer uses the cost gradient as its
        local error; each earlier layer pulls the error back through the next layer's
        cached activation derivative and (already stepped) weight matrix. Layer i's
        input is layer i-1's cached output, or `network_input` for the first layer.

        All steps are computed on staged copies and committed only if every layer
        succeeds, so a failure leaves the network exactly as it was.

        Args:
            learning_rate: Step size in (0, 1].
            network_input: The input of the forward pass that filled the caches.
            cost_gradient: Derivative of the cost with respect to the network output.

        Returns:
            The local error of the first layer.

        Raises:
            ConfigurationError: If the input or cost gradient is None.
            LayerError: Wrapping the failure of the offending layer with its index.
        """
        if network_input is None:
            raise ConfigurationError("input is None")
        if cost_gradient is None:
            raise ConfigurationError("cost gradient is None")

        n = len(self.layers)
        staged_weights: List[Optional[np.ndarray]] = [None] * n
        steps = [None] * n
        gradient = cost_gradient
        for ind in reversed(range(n)):
            layer = self.layers[ind]
            try:
                if ind == 0:
                    layer_input = as_column(network_input, "network input")
                else:
                    layer_input = self.layers[ind - 1].state
                    if layer_input is None:
                        raise StateError(f"layer {ind - 1} holds no state to feed layer {ind}")
                if ind == n - 1:
                    grad_w, grad_b, gradient = layer.compute_update(
                        learning_rate, layer_input, gradient, is_output_layer=True,
                    )
                else:
                    grad_w, grad_b, gradient = layer.compute_update(
                        learning_rate, layer_input, gradient,
                        self.layers[ind + 1].activation_grad, staged_weights[ind + 1],
                        is_output_layer=False,
                    )
            except (ClearFCError, ValueError) as err:
                raise LayerError(ind, err) from err
            steps[ind] = (grad_w, grad_b)
            staged_weights[ind] = layer.weights - grad_w

        for layer, (grad_w, grad_b) in zip(self.layers, steps):
            layer.apply_update(grad_w, grad_b)
        logging.debug(f"Backward pass committed on {n} layer(s), lr={learning_rate}")
        return gradient

    # --- Persistence ---

    def save_weights(self, filename: str) -> str:
        """
        Saves the network's weights, biases and architecture to a compressed .npz file.

        Args:
            filename: Path to the file. '.npz' is appended if missing.

        Returns:
            The path written.

        Raises:
            ConfigurationError: If a layer uses a custom activation (functions cannot be stored).
        """
        save_dict: Dict[str, np.ndarray] = {
            'layer_sizes': np.array([self.input_size] + [l.output_size for l in self.layers]),
            'keep_state': np.array([l.keep_state for l in self.layers]),
        }
        activation_names = []
        for i, layer in enumerate(self.layers):
            if isinstance(layer.activation_fn, CustomActivation):
                raise ConfigurationError(f"layers[{i}]: custom activations cannot be saved")
            save_dict[f'layer_{i}_weights'] = layer.weights
            save_dict[f'layer_{i}_biases'] = layer.biases
            save_dict[f'layer_{i}_activation_params'] = np.array(layer.activation_fn.params, dtype=float)
            activation_names.append(layer.activation_fn.name)
        save_dict['activation_names'] = np.array(activation_names, dtype=str)

        if not filename.endswith('.npz'):
            filename += '.npz'
        np.savez_compressed(filename, **save_dict)
        logging.info(f"Network weights and configuration saved to {filename}")
        return filename

    @classmethod
    def load_weights(cls, filename: str) -> 'Network':
        """
        Loads weights, biases and configuration from an .npz file written by save_weights.

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigurationError: If the file structure is incompatible or incomplete.
        """
        with np.load(filename) as data:
            try:
                layer_sizes = [int(s) for s in data['layer_sizes']]
                names = [str(n) for n in data['activation_names']]
                keep_state = [bool(k) for k in data['keep_state']]
                num_layers = len(layer_sizes) - 1
                if len(names) != num_layers or len(keep_state) != num_layers:
                    raise ConfigurationError("Mismatch between number of activations and layer sizes in file.")
                configs = [
                    LayerConfig(
                        size=layer_sizes[i + 1],
                        activation=NamedActivation(names[i], tuple(data[f'layer_{i}_activation_params'].tolist())),
                        keep_state=keep_state[i],
                    )
                    for i in range(num_layers)
                ]
                network = cls(layer_sizes[0], configs, weight_init='zeros')
                for i, layer in enumerate(network.layers):
                    layer.update_data(np.concatenate([
                        data[f'layer_{i}_weights'].ravel(), data[f'layer_{i}_biases'].ravel(),
                    ]))
            except KeyError as err:
                raise ConfigurationError(f"Incompatible or incomplete weight file {filename}: {err}") from err
        logging.info(f"Network loaded successfully from {filename}")
        return network

    # --- Introspection ---

    def summary(self) -> str:
        """
        Generates a text summary of the network architecture and parameters.

        Returns:
            A string containing the network summary.
        """
        summary_str = "\n" + "="*50 + "\n"
        summary_str += "Fully Connected Network Summary\n"
        summary_str += "="*50 + "\n"
        summary_str += f"Input size: {self.input_size}\n"
        summary_str += "-"*50 + "\n"
        total_params = 0
        total_neurons = 0
        for i, layer in enumerate(self.layers):
            total_params += layer.data_size()
            total_neurons += layer.output_size
            summary_str += f"Layer {i}:\n"
            summary_str += f"  Neurons: {layer.output_size}\n"
            summary_str += f"  Activation: {layer.activation_fn!r}\n"
            summary_str += f"  Keep state: {layer.keep_state}\n"
            summary_str += f"  Weight Shape: {layer.weights.shape}\n"
            summary_str += f"  Parameters: {layer.data_size()}\n"
            summary_str += "-"*50 + "\n"
        summary_str += f"Total: {total_neurons} neuron(s), {total_params} parameter(s)\n"
        summary_str += "="*50 + "\n"
        return summary_str

    def __repr__(self):
        sizes = [self.input_size] + [l.output_size for l in self.layers]
        return f"Network(sizes={sizes})"
