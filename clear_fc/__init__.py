"""clear_fc: a NumPy fully connected feedforward network trained by backpropagation."""

from clear_fc.activations import (
    Activation,
    CustomActivation,
    CustomSpec,
    NamedActivation,
    get_activation,
    resolve_activation,
)
from clear_fc.costs import get_cost
from clear_fc.datasets import ArrayDataset, CsvDataset, Datapoint, Dataset, RandomDataset, select_drops
from clear_fc.errors import (
    ClearFCError,
    ConfigurationError,
    DimensionError,
    LayerError,
    RangeError,
    StateError,
    TrainingError,
    UsabilityError,
)
from clear_fc.layer import Layer, LayerCache, LayerConfig
from clear_fc.network import Network
from clear_fc.rates import ConstantRate, LearningRate, StepDecayRate
from clear_fc.trainer import Trainer, TrainerConfig, TrainingReport

__version__ = "0.1.0"
