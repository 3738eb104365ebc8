import numpy as np
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type, Union
import logging

from clear_fc.errors import ConfigurationError

ArrayLike = Union[float, np.ndarray]
ScalarFunction = Callable[[float], float]


class Activation:
    """Base class for all activation functions.

    An activation is a (value, derivative) pair over reals. Both methods work
    element-wise on numpy arrays. Subclasses declare how many numeric
    parameters they take through ``arity``.
    """

    name = "activation"
    arity = 0

    @property
    def params(self) -> List[float]:
        """Numeric parameters the activation was built with (empty for most)."""
        return []

    def forward(self, x: ArrayLike) -> np.ndarray:
        """Compute the activation function value.

        Args:
            x: Input data (scalar or numpy array).

        Returns:
            Activated output.
        """
        raise NotImplementedError

    def backward(self, x: ArrayLike) -> np.ndarray:
        """Compute the derivative of the activation function with respect to its input 'x'.
           Note: 'x' here is the *input* to the activation function (the pre-activation sum 'z').

        Args:
            x: Input data where the derivative is evaluated (scalar or numpy array).

        Returns:
            Derivative of the activation function evaluated at x.
        """
        raise NotImplementedError

    def __repr__(self):
        if self.params:
            return f"{self.__class__.__name__}({', '.join(str(p) for p in self.params)})"
        return f"{self.__class__.__name__}()"


class Sigmoid(Activation):
    """Sigmoid (logistic) activation function.

    Mathematical form:
        forward: f(x) = 1 / (1 + e^-x)
        backward: f'(x) = f(x) * (1 - f(x))
    """

    name = "sigmoid"

    def forward(self, x: ArrayLike) -> np.ndarray:
        """Compute sigmoid activation with clipping for numerical stability."""
        x = np.asarray(x, dtype=float)
        # Clip input to avoid overflow in exp(-x) for large negative x
        clipped_x = np.clip(x, -500, 500)
        return 1.0 / (1.0 + np.exp(-clipped_x))

    def backward(self, x: ArrayLike) -> np.ndarray:
        """Compute sigmoid derivative from the pre-activation input."""
        sig = self.forward(x)
        return sig * (1.0 - sig)


class Tanh(Activation):
    """Hyperbolic tangent activation function.

    Mathematical form:
        forward: f(x) = tanh(x) = (e^x - e^-x)/(e^x + e^-x)
        backward: f'(x) = 1 - tanh^2(x)
    """

    name = "tanh"

    def forward(self, x: ArrayLike) -> np.ndarray:
        return np.tanh(np.asarray(x, dtype=float))

    def backward(self, x: ArrayLike) -> np.ndarray:
        return 1.0 - np.tanh(np.asarray(x, dtype=float)) ** 2


class ReLU(Activation):
    """Rectified Linear Unit activation function.

    Mathematical form:
        forward: f(x) = max(0, x)
        backward: f'(x) = 1 if x > 0 else 0 (undefined at 0, taken as 0)
    """

    name = "relu"

    def forward(self, x: ArrayLike) -> np.ndarray:
        return np.maximum(0.0, np.asarray(x, dtype=float))

    def backward(self, x: ArrayLike) -> np.ndarray:
        return np.where(np.asarray(x, dtype=float) > 0, 1.0, 0.0)


class LeakyReLU(Activation):
    """Leaky ReLU: a slight slope for x <= 0.

    Mathematical form:
        forward: f(x) = x if x > 0 else alpha * x
        backward: f'(x) = 1 if x > 0 else alpha
    """

    name = "leaky_relu"
    arity = 1

    def __init__(self, alpha: float):
        self.alpha = float(alpha)

    @property
    def params(self) -> List[float]:
        return [self.alpha]

    def forward(self, x: ArrayLike) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        return np.where(x > 0, x, self.alpha * x)

    def backward(self, x: ArrayLike) -> np.ndarray:
        return np.where(np.asarray(x, dtype=float) > 0, 1.0, self.alpha)


class ELU(Activation):
    """Exponential Linear Unit.

    Mathematical form:
        forward: f(x) = x if x > 0 else alpha * (e^x - 1)
        backward: f'(x) = 1 if x > 0 else alpha * e^x
    """

    name = "elu"
    arity = 1

    def __init__(self, alpha: float):
        self.alpha = float(alpha)

    @property
    def params(self) -> List[float]:
        return [self.alpha]

    def forward(self, x: ArrayLike) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        # exp only on the non-positive side to avoid overflow warnings
        return np.where(x > 0, x, self.alpha * (np.exp(np.minimum(x, 0.0)) - 1.0))

    def backward(self, x: ArrayLike) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        return np.where(x > 0, 1.0, self.alpha * np.exp(np.minimum(x, 0.0)))


class Power(Activation):
    """Power activation function.

    Mathematical form:
        forward: f(x) = coef * x^n
        backward: f'(x) = coef * n * x^(n-1)
    """

    name = "power"
    arity = 2

    def __init__(self, coef: float = 1.0, n: float = 2.0):
        """Initialize with coefficient and power value.

        Args:
            coef: Multiplier applied to the power.
            n: Power to raise input to (default: 2 for square)
        """
        self.coef = float(coef)
        self.n = float(n)

    @property
    def params(self) -> List[float]:
        return [self.coef, self.n]

    def forward(self, x: ArrayLike) -> np.ndarray:
        logging.debug(f"Power forward - coef: {self.coef}, power: {self.n}")
        return self.coef * np.power(np.asarray(x, dtype=float), self.n)

    def backward(self, x: ArrayLike) -> np.ndarray:
        if self.n == 0:
            return np.zeros_like(np.asarray(x, dtype=float))
        return self.coef * self.n * np.power(np.asarray(x, dtype=float), self.n - 1)


class Identity(Activation):
    """Identity (linear) activation function.

    Mathematical form:
        forward: f(x) = x
        backward: f'(x) = 1
    """

    name = "identity"

    def forward(self, x: ArrayLike) -> np.ndarray:
        return np.array(x, dtype=float)

    def backward(self, x: ArrayLike) -> np.ndarray:
        # Returns an array of ones with the same shape as the input x
        return np.ones_like(np.asarray(x, dtype=float))


class Abs(Activation):
    """Absolute value.

    Mathematical form:
        forward: f(x) = |x|
        backward: f'(x) = -1 if x < 0 else 1
    """

    name = "abs"

    def forward(self, x: ArrayLike) -> np.ndarray:
        return np.abs(np.asarray(x, dtype=float))

    def backward(self, x: ArrayLike) -> np.ndarray:
        return np.where(np.asarray(x, dtype=float) < 0, -1.0, 1.0)


class CustomActivation(Activation):
    """A user-supplied (function, derivative) pair of scalar callables.

    The callables are vectorized with ``np.vectorize`` so they run element-wise
    over arrays like the built-in activations.
    """

    name = "custom"

    def __init__(self, func: Optional[ScalarFunction], deriv: Optional[ScalarFunction]):
        if func is None:
            raise ConfigurationError("activation function is None")
        if deriv is None:
            raise ConfigurationError("derivative of activation function is None")
        self.func = func
        self.deriv = deriv
        self._forward = np.vectorize(func, otypes=[float])
        self._backward = np.vectorize(deriv, otypes=[float])

    def forward(self, x: ArrayLike) -> np.ndarray:
        return self._forward(np.asarray(x, dtype=float))

    def backward(self, x: ArrayLike) -> np.ndarray:
        return self._backward(np.asarray(x, dtype=float))


# Dictionary mapping activation function names to their classes
ACTIVATION_FUNCTIONS: Dict[str, Type[Activation]] = {
    'sigmoid': Sigmoid,
    'tanh': Tanh,
    'relu': ReLU,
    'leaky_relu': LeakyReLU,
    'elu': ELU,
    'identity': Identity,
    'power': Power,
    'abs': Abs,
}

ALIASES = {
    'sig': 'sigmoid',
    'iden': 'identity',
    'linear': 'identity',
}


def valid_activation_names() -> List[str]:
    """Sorted list of the names accepted by :func:`get_activation`."""
    return sorted(ACTIVATION_FUNCTIONS)


def _normalize_name(name: str) -> str:
    key = name.strip().lower().replace('-', '_')
    return ALIASES.get(key, key)


def get_activation(name: str, params: Optional[Sequence[float]] = None) -> Activation:
    """Factory function to get an activation function instance by name.

    Args:
        name: Name of the activation function (case-insensitive, '-' and '_' are
              interchangeable, e.g. 'leaky-relu').
        params: Numeric parameters; their count must match the function's arity
                (leaky_relu and elu take a slope/alpha, power takes coef and n).

    Returns:
        An instance of the requested Activation class.

    Raises:
        ConfigurationError: If the name is not recognized or the parameter count
                            does not match.
    """
    if not isinstance(name, str):
        raise ConfigurationError(f"activation name must be a string, got {type(name).__name__}")
    key = _normalize_name(name)
    if key not in ACTIVATION_FUNCTIONS:
        raise ConfigurationError(
            f"invalid activation function type '{name}': "
            f"expected one of [{', '.join(valid_activation_names())}]"
        )
    cls = ACTIVATION_FUNCTIONS[key]
    params = list(params) if params is not None else []
    if len(params) != cls.arity:
        raise ConfigurationError(f"expected {cls.arity} parameter(s) for activation '{key}'")
    return cls(*params)


@dataclass(frozen=True)
class NamedActivation:
    """Activation selected by name from the catalog."""

    name: str
    params: Tuple[float, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CustomSpec:
    """Activation supplied directly as a (function, derivative) pair."""

    func: Optional[ScalarFunction]
    deriv: Optional[ScalarFunction]


ActivationSpec = Union[str, Activation, NamedActivation, CustomSpec]


def resolve_activation(spec: ActivationSpec, params: Optional[Sequence[float]] = None) -> Activation:
    """Turns any accepted activation description into a concrete Activation.

    Args:
        spec: A catalog name, a NamedActivation, a CustomSpec or an Activation instance.
        params: Parameters for a plain string name (ignored otherwise).

    Raises:
        ConfigurationError: If the description cannot be resolved.
    """
    if isinstance(spec, Activation):
        return spec
    if isinstance(spec, str):
        return get_activation(spec, params)
    if isinstance(spec, NamedActivation):
        return get_activation(spec.name, spec.params)
    if isinstance(spec, CustomSpec):
        return CustomActivation(spec.func, spec.deriv)
    if spec is None:
        raise ConfigurationError("activation is None")
    raise ConfigurationError(f"unsupported activation type '{type(spec).__name__}'")
