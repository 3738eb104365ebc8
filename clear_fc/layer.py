import numpy as np
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple
import logging

from clear_fc.activations import Activation, ActivationSpec, resolve_activation
from clear_fc.errors import ConfigurationError, DimensionError, RangeError, StateError, UsabilityError


def as_column(values, name: str = "vector") -> np.ndarray:
    """Returns `values` as a float column vector of shape (n, 1).

    1-D inputs are reshaped; 2-D inputs must already have a single column.
    """
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 0:
        return arr.reshape(1, 1)
    if arr.ndim == 1:
        return arr.reshape(-1, 1)
    if arr.ndim == 2 and arr.shape[1] == 1:
        return arr
    raise DimensionError(f"{name} must be a column vector, got shape {arr.shape}")


@dataclass
class LayerConfig:
    """Describes one layer of a network.

    Attributes:
        size: Number of neurons (output size of the layer).
        activation: Catalog name, NamedActivation, CustomSpec or Activation instance.
        params: Parameters for a catalog name given as a plain string.
        keep_state: Whether the layer keeps the forward-pass snapshot needed by backprop.
    """

    size: int
    activation: ActivationSpec = "identity"
    params: Sequence[float] = field(default_factory=tuple)
    keep_state: bool = False

    def validate(self) -> Activation:
        """Checks the configuration and returns the resolved activation.

        Raises:
            ConfigurationError: On a non-positive size or an unresolvable activation.
        """
        if not isinstance(self.size, (int, np.integer)) or isinstance(self.size, bool):
            raise ConfigurationError(f"size must be an integer, got {self.size!r}")
        if self.size <= 0:
            raise ConfigurationError("size must be >0")
        return resolve_activation(self.activation, self.params)


@dataclass(frozen=True)
class LayerCache:
    """Forward-pass snapshot consumed by the matching backward step.

    Attributes:
        output: Activated output of the layer, shape (output_size, 1).
        activation_grad: Derivative of the activation at the pre-activation sum,
                         shape (output_size, 1).
    """

    output: np.ndarray
    activation_grad: np.ndarray


class Layer:
    """
    A fully connected layer computing output = f(W @ x + b) on column vectors.

    Key Attributes:
        weights (np.ndarray): Weight matrix of shape (output_size, input_size). Each row
                              holds the weights of one neuron.
        biases (np.ndarray): Bias column of shape (output_size, 1).
        activation_fn (Activation): The (value, derivative) pair applied element-wise.
        cache (LayerCache | None): Snapshot of the last forward pass, present only when
                                   keep_state is on and a forward pass has run.
        drop_mask (np.ndarray | None): Scaled dropout mask of shape (output_size, 1);
                                       dropped neurons hold 0.
    """

    def __init__(
        self,
        input_size: int,
        output_size: int,
        activation: ActivationSpec = 'identity',
        keep_state: bool = False,
        weight_init: str = 'xavier',
        initial_weights: Optional[np.ndarray] = None,  # Expected shape (output_size, input_size)
        initial_biases: Optional[np.ndarray] = None,   # Expected shape (output_size,) or (output_size, 1)
        activation_params: Optional[Sequence[float]] = None,
        id: int = 0,
    ):
        """
        Initializes the layer.

        Args:
            input_size: Number of input features (size of the previous layer).
            output_size: Number of neurons in this layer.
            activation: Activation identifier (e.g. 'relu'), spec or Activation instance.
            keep_state: Whether forward passes store the snapshot used by backprop.
            weight_init: 'xavier', 'random', 'ones' or 'zeros'. Ignored if initial_weights is given.
            initial_weights: Optional pre-defined weight matrix.
            initial_biases: Optional pre-defined bias vector.
            activation_params: Parameters for a catalog name given as a string.
            id: An identifier for the layer (its index in a network).
        """
        if input_size <= 0:
            raise ConfigurationError(f"Layer {id}: input size must be >0")
        if output_size <= 0:
            raise ConfigurationError(f"Layer {id}: output size must be >0")
        self.input_size = input_size
        self.output_size = output_size
        self.id = id
        self.weight_init = weight_init
        self.activation_fn = resolve_activation(activation, activation_params)

        if initial_weights is not None:
            initial_weights = np.asarray(initial_weights, dtype=float)
            if initial_weights.shape != (output_size, input_size):
                raise DimensionError(
                    f"Layer {id}: Initial weights shape {initial_weights.shape} "
                    f"does not match expected shape ({output_size}, {input_size})"
                )
            self.weights = initial_weights.copy()
        else:
            self.weights = self._init_weights(weight_init)

        if initial_biases is not None:
            initial_biases = np.asarray(initial_biases, dtype=float)
            if initial_biases.size != output_size or initial_biases.ndim > 2:
                raise DimensionError(
                    f"Layer {id}: Initial biases shape {initial_biases.shape} "
                    f"does not match expected shape ({output_size}, 1)"
                )
            self.biases = initial_biases.reshape(output_size, 1).copy()
        elif weight_init == 'ones':
            self.biases = np.ones((output_size, 1), dtype=float)
        else:
            self.biases = np.zeros((output_size, 1), dtype=float)

        self._keep_state = bool(keep_state)
        self.cache: Optional[LayerCache] = None
        self.drop_mask: Optional[np.ndarray] = None

        logging.debug(
            f"Layer #{self.id} created: input_size={input_size}, "
            f"output_size={output_size}, activation={self.activation_fn!r}, "
            f"keep_state={self._keep_state}, weight_shape={self.weights.shape}"
        )

    def _init_weights(self, weight_init: str) -> np.ndarray:
        shape = (self.output_size, self.input_size)
        if weight_init == 'xavier':
            # Xavier/Glorot uniform limits: sqrt(6 / (fan_in + fan_out))
            limit = np.sqrt(6.0 / (self.input_size + self.output_size))
            return np.random.uniform(-limit, limit, shape)
        if weight_init == 'random':
            return np.random.randn(*shape) * 0.01
        if weight_init == 'ones':
            return np.ones(shape, dtype=float)
        if weight_init == 'zeros':
            return np.zeros(shape, dtype=float)
        raise ConfigurationError(f"Layer {self.id}: Unknown weight_init '{weight_init}'")

    @classmethod
    def from_config(cls, input_size: int, config: LayerConfig, id: int = 0, weight_init: str = 'xavier') -> 'Layer':
        """Builds a layer from a validated LayerConfig."""
        activation = config.validate()
        return cls(
            input_size=input_size,
            output_size=config.size,
            activation=activation,
            keep_state=config.keep_state,
            weight_init=weight_init,
            id=id,
        )

    @property
    def keep_state(self) -> bool:
        return self._keep_state

    @keep_state.setter
    def keep_state(self, value: bool):
        self._keep_state = bool(value)
        if not self._keep_state:
            self.cache = None

    @property
    def state(self) -> Optional[np.ndarray]:
        """Last activated output, or None if no snapshot is held."""
        return self.cache.output if self.cache is not None else None

    @property
    def activation_grad(self) -> Optional[np.ndarray]:
        """Activation derivative from the last forward pass, or None."""
        return self.cache.activation_grad if self.cache is not None else None

    # --- Validation ---

    def validate(self):
        """Checks sizes and the activation pair.

        Raises:
            UsabilityError: If the layer definition is broken.
        """
        if self.input_size <= 0:
            raise UsabilityError("input size must be >0")
        if self.output_size <= 0:
            raise UsabilityError("output size must be >0")
        if self.activation_fn is None or not isinstance(self.activation_fn, Activation):
            raise UsabilityError("activation function is missing")

    def is_usable(self):
        """Checks the layer can be run: definition plus weight and bias shapes.

        Raises:
            UsabilityError: If the layer cannot be run or trained.
        """
        self.validate()
        if self.weights is None:
            raise UsabilityError("weight matrix is None")
        if self.biases is None:
            raise UsabilityError("bias vector is None")
        rows, cols = self.weights.shape
        if rows != self.output_size:
            raise UsabilityError(f"weight matrix should have {self.output_size} rows not {rows}")
        if cols != self.input_size:
            raise UsabilityError(f"weight matrix should have {self.input_size} columns not {cols}")
        if self.biases.shape != (self.output_size, 1):
            raise UsabilityError(
                f"bias vector should have shape ({self.output_size}, 1) not {self.biases.shape}"
            )

    # --- Flat parameter access ---

    def data_size(self) -> int:
        """Number of values in W plus b: out*in + out*1 = out*(in+1)."""
        return self.output_size * (self.input_size + 1)

    def update_data(self, data: Sequence[float]):
        """Replaces W and b from a flat array.

        The first out*in values fill W row-major, the remaining `out` values fill b.

        Raises:
            DimensionError: If the array length differs from data_size().
        """
        data = np.asarray(data, dtype=float).ravel()
        size = self.data_size()
        if data.size != size:
            raise DimensionError(f"expected {size} values, got {data.size}")
        lim = self.output_size * self.input_size
        self.weights = data[:lim].reshape(self.output_size, self.input_size).copy()
        self.biases = data[lim:].reshape(self.output_size, 1).copy()

    def get_data(self) -> np.ndarray:
        """Flat copy of W (row-major) followed by b, the layout update_data expects."""
        return np.concatenate([self.weights.ravel(), self.biases.ravel()])

    # --- Dropout ---

    def set_drop_mask(self, mask: Optional[np.ndarray]):
        """Installs a scaled dropout mask (0 for dropped neurons), or removes it with None."""
        if mask is None:
            self.drop_mask = None
            return
        mask = as_column(mask, "drop mask")
        if mask.shape != (self.output_size, 1):
            raise DimensionError(
                f"Layer {self.id}: drop mask shape {mask.shape} does not match ({self.output_size}, 1)"
            )
        self.drop_mask = mask

    # --- Forward / backward ---

    def forward(self, inputs) -> np.ndarray:
        """
        Performs the forward pass through the layer.

        Computes z = W @ x + b, then output = activation_fn(z). When keep_state is on,
        the activation derivative is evaluated on z before the activation is applied
        (the only point where z is available) and stored with the output.

        Args:
            inputs: Input column vector of shape (input_size, 1), or a 1-D array.

        Returns:
            Output column vector of shape (output_size, 1).

        Raises:
            UsabilityError: If weights or biases are missing.
            DimensionError: If the input shape is incorrect.
        """
        if self.weights is None:
            raise UsabilityError("weight matrix is None")
        if self.biases is None:
            raise UsabilityError("bias vector is None")
        x = as_column(inputs, "input")
        if x.shape[0] != self.input_size:
            raise DimensionError(f"expected {self.input_size} inputs, got {x.shape[0]}")

        try:
            z = self.weights @ x + self.biases
        except ValueError as err:
            raise DimensionError(f"w*x+b failed: {err}") from err

        activation_grad = self.activation_fn.backward(z) if self._keep_state else None
        output = self.activation_fn.forward(z)

        if self.drop_mask is not None:
            output = output * self.drop_mask
            if activation_grad is not None:
                activation_grad = activation_grad * self.drop_mask

        if self._keep_state:
            self.cache = LayerCache(output=output, activation_grad=activation_grad)
        return output

    feed_forward = forward

    def compute_update(
        self,
        learning_rate: float,
        layer_input,
        cost_gradient,
        next_activation_grad=None,
        next_weights=None,
        is_output_layer: bool = False,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Computes the weight and bias steps for this layer without touching W or b.

        For the output layer the incoming cost gradient is the local error. Otherwise
        the error is pulled back from layer l+1:
            local_error = W_next.T @ (next_activation_grad * cost_gradient)
        then
            grad_b = learning_rate * (activation_grad * local_error)
            grad_w = grad_b @ layer_input.T

        Args:
            learning_rate: Step size in (0, 1].
            layer_input: Input this layer was fed during the matching forward pass.
            cost_gradient: Gradient coming from the cost (output layer) or the local
                           error returned by layer l+1.
            next_activation_grad: Cached activation derivative of layer l+1.
            next_weights: Weight matrix of layer l+1.
            is_output_layer: Whether this is the last layer of the network.

        Returns:
            (grad_w, grad_b, local_error); local_error is not scaled by the learning rate.
        """
        if self.weights is None:
            raise UsabilityError("weight matrix is None")
        if self.biases is None:
            raise UsabilityError("bias vector is None")
        if not 0.0 < learning_rate <= 1.0:
            raise RangeError("learning rate must be in range ]0;1]")
        if cost_gradient is None:
            raise ConfigurationError("cost gradient vector is None")
        if layer_input is None:
            raise ConfigurationError("local input vector is None")
        if self.cache is None:
            raise StateError(f"Layer {self.id}: no forward-pass snapshot, run forward() with keep_state on first")

        cost_gradient = as_column(cost_gradient, "cost gradient")
        layer_input = as_column(layer_input, "layer input")

        if is_output_layer:
            local_error = cost_gradient
        else:
            if next_activation_grad is None:
                raise ConfigurationError("activation gradient vector is None")
            if next_weights is None:
                raise ConfigurationError("next weight matrix is None")
            next_activation_grad = as_column(next_activation_grad, "next activation gradient")
            if next_activation_grad.shape != cost_gradient.shape:
                raise DimensionError(
                    f"failed to compute gradSig*gradCost: shapes {next_activation_grad.shape} "
                    f"and {cost_gradient.shape}"
                )
            try:
                local_error = np.asarray(next_weights, dtype=float).T @ (next_activation_grad * cost_gradient)
            except ValueError as err:
                raise DimensionError(f"failed to compute wT*gradSig*gradCost: {err}") from err

        if local_error.shape != (self.output_size, 1):
            raise DimensionError(
                f"local error shape {local_error.shape} does not match ({self.output_size}, 1)"
            )
        if layer_input.shape != (self.input_size, 1):
            raise DimensionError(
                f"layer input shape {layer_input.shape} does not match ({self.input_size}, 1)"
            )

        grad_b = learning_rate * (self.cache.activation_grad * local_error)
        grad_w = grad_b @ layer_input.T
        return grad_w, grad_b, local_error

    def apply_update(self, grad_w: np.ndarray, grad_b: np.ndarray):
        """Commits a step computed by compute_update: W -= grad_w, b -= grad_b."""
        if grad_w.shape != self.weights.shape or grad_b.shape != self.biases.shape:
            raise DimensionError(
                f"Layer {self.id}: update shapes {grad_w.shape}/{grad_b.shape} do not match "
                f"{self.weights.shape}/{self.biases.shape}"
            )
        self.weights = self.weights - grad_w
        self.biases = self.biases - grad_b

    def backprop(
        self,
        learning_rate: float,
        layer_input,
        cost_gradient,
        next_activation_grad=None,
        next_weights=None,
        is_output_layer: bool = False,
    ) -> np.ndarray:
        """Updates W and b in place and returns the local error for layer l-1.

        See compute_update for the arguments and the gradient formulas.
        """
        grad_w, grad_b, local_error = self.compute_update(
            learning_rate, layer_input, cost_gradient,
            next_activation_grad, next_weights, is_output_layer,
        )
        self.apply_update(grad_w, grad_b)
        logging.debug(f"Layer #{self.id}: updated, |grad_w|={np.linalg.norm(grad_w):.3e}")
        return local_error

    # --- Introspection ---

    def get_weights(self) -> Tuple[np.ndarray, np.ndarray]:
        """Returns copies of the current weights and biases of the layer."""
        return self.weights.copy(), self.biases.copy()

    def summary(self) -> str:
        """Returns a string summary of the layer's configuration."""
        return (
            f"Layer Summary (id={self.id}):\n"
            f"  Type: Fully Connected\n"
            f"  Input size: {self.input_size}\n"
            f"  Output size: {self.output_size}\n"
            f"  Activation: {self.activation_fn!r}\n"
            f"  Keep state: {self.keep_state}\n"
            f"  Parameters: {self.data_size():,} parameters\n"
        )

    def __repr__(self):
        return (f"Layer(id={self.id}, input_size={self.input_size}, "
                f"output_size={self.output_size}, "
                f"activation={self.activation_fn!r}, "
                f"keep_state={self.keep_state})")
