"""Exception types raised by the clear_fc engine.

Configuration, dimension and range problems also derive from ``ValueError`` so
callers that only know about the built-in exceptions can still catch them.
"""

from typing import Optional


class ClearFCError(Exception):
    """Base class for every error raised by the engine."""


class ConfigurationError(ClearFCError, ValueError):
    """Invalid layer size, activation, cost or trainer setting."""


class DimensionError(ClearFCError, ValueError):
    """Matrix or vector shapes do not line up."""


class UsabilityError(ClearFCError):
    """A layer or network is not in a state that can be run or trained."""


class RangeError(ClearFCError, ValueError):
    """A runtime argument (learning rate, dropout ratio, dataset, index) is out of range."""


class StateError(ClearFCError, RuntimeError):
    """A backward step was requested without the forward-pass snapshot it needs."""


class LayerError(ClearFCError):
    """Failure of a single layer inside a network pass.

    Attributes:
        layer_index: Position of the failing layer in the network.
        cause: The underlying exception (also available as ``__cause__``).
    """

    def __init__(self, layer_index: int, cause: Exception):
        self.layer_index = layer_index
        self.cause = cause
        super().__init__(f"layer {layer_index}: {cause}")


class TrainingError(ClearFCError):
    """Failure inside a training or evaluation loop.

    Attributes:
        iteration: 1-based pass over the dataset, or None during evaluation.
        sample_index: 0-based index of the sample within the pass.
        cause: The underlying exception.
    """

    def __init__(self, message: str, cause: Exception,
                 iteration: Optional[int] = None, sample_index: Optional[int] = None):
        self.iteration = iteration
        self.sample_index = sample_index
        self.cause = cause
        prefix = ""
        if iteration is not None:
            prefix += f"iteration {iteration}: "
        if sample_index is not None:
            prefix += f"sample {sample_index}: "
        super().__init__(f"{prefix}{message}: {cause}")
