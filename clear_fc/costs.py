"""Element-wise cost functions.

A cost is applied to the deviation ``prediction - expected`` one output at a
time, so it is just another (value, derivative) pair and reuses the
Activation interface.
"""

from typing import Callable, Dict, Optional

from clear_fc.activations import (
    Abs,
    Activation,
    ActivationSpec,
    Identity,
    Power,
    resolve_activation,
)
from clear_fc.errors import ConfigurationError

# Dictionary mapping cost names to factories
COST_FUNCTIONS: Dict[str, Callable[[], Activation]] = {
    "half_squared": lambda: Power(0.5, 2),  # derivative is the deviation itself
    "squared": lambda: Power(1.0, 2),
    "absolute": Abs,
    "identity": Identity,
}


def get_cost(name: str) -> Activation:
    """Returns a fresh cost pair by name.

    Raises:
        ConfigurationError: If the cost name is not recognized.
    """
    key = name.strip().lower().replace('-', '_')
    if key not in COST_FUNCTIONS:
        raise ConfigurationError(
            f"Unsupported cost '{name}'. Valid options: {sorted(COST_FUNCTIONS)}"
        )
    return COST_FUNCTIONS[key]()


def resolve_cost(cost: Optional[ActivationSpec]) -> Activation:
    """Accepts a cost name, an Activation, a NamedActivation or a CustomSpec."""
    if cost is None:
        raise ConfigurationError("cost function is None")
    if isinstance(cost, str):
        return get_cost(cost)
    return resolve_activation(cost)
