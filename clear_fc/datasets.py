import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Set
import logging

from clear_fc.errors import ConfigurationError, DimensionError
from clear_fc.layer import as_column

TargetFunction = Callable[[np.ndarray], Sequence[float]]


@dataclass(frozen=True)
class Datapoint:
    """An input column vector paired with its expected output column vector."""

    input: np.ndarray
    expected: np.ndarray

    @classmethod
    def of(cls, inputs, expected) -> 'Datapoint':
        return cls(as_column(inputs, "input"), as_column(expected, "expected output"))


class Dataset:
    """Anything able to provide Datapoints one at a time.

    Subclasses implement next(), size(), left() and reset(). Iterating a
    dataset restarts it from the beginning.
    """

    def next(self) -> Optional[Datapoint]:
        """Returns the next sample, or None once the dataset is exhausted."""
        raise NotImplementedError

    def size(self) -> int:
        raise NotImplementedError

    def left(self) -> int:
        """Number of samples not handed out yet."""
        raise NotImplementedError

    def reset(self):
        raise NotImplementedError

    def __len__(self) -> int:
        return self.size()

    def __iter__(self) -> Iterator[Datapoint]:
        self.reset()
        while True:
            point = self.next()
            if point is None:
                return
            yield point


class ArrayDataset(Dataset):
    """In-memory dataset: one row of `inputs` and `targets` per sample."""

    def __init__(self, inputs, targets):
        inputs = np.asarray(inputs, dtype=float)
        targets = np.asarray(targets, dtype=float)
        if inputs.ndim == 1:
            inputs = inputs.reshape(-1, 1)
        if targets.ndim == 1:
            targets = targets.reshape(-1, 1)
        if inputs.shape[0] != targets.shape[0]:
            raise DimensionError(
                f"Number of samples in inputs ({inputs.shape[0]}) and targets ({targets.shape[0]}) must match."
            )
        self.inputs = inputs
        self.targets = targets
        self.ind = 0

    def next(self) -> Optional[Datapoint]:
        if self.ind >= self.inputs.shape[0]:
            return None
        point = Datapoint.of(self.inputs[self.ind], self.targets[self.ind])
        self.ind += 1
        return point

    def size(self) -> int:
        return self.inputs.shape[0]

    def left(self) -> int:
        return self.size() - self.ind

    def reset(self):
        self.ind = 0


class CsvDataset(ArrayDataset):
    """File-backed dataset read with pandas.

    Args:
        path: CSV file path (anything pandas.read_csv accepts).
        input_columns: Column names used as the input vector.
        target_columns: Column names used as the expected output vector.
        **read_csv_kwargs: Forwarded to pandas.read_csv.
    """

    def __init__(self, path, input_columns: Sequence[str], target_columns: Sequence[str], **read_csv_kwargs):
        frame = pd.read_csv(path, **read_csv_kwargs)
        missing = [c for c in list(input_columns) + list(target_columns) if c not in frame.columns]
        if missing:
            raise ConfigurationError(f"columns not found in {path}: {missing}")
        frame = frame.dropna(subset=list(input_columns) + list(target_columns))
        logging.info(f"Loaded {len(frame)} samples from {path}")
        super().__init__(
            frame[list(input_columns)].to_numpy(dtype=float),
            frame[list(target_columns)].to_numpy(dtype=float),
        )


def sum_target(x: np.ndarray) -> List[float]:
    """Default target for RandomDataset: the sum of the inputs."""
    return [float(np.sum(x))]


class RandomDataset(Dataset):
    """Seeded random inputs in [-1, 1) with targets computed by `fn`.

    Inputs are drawn on a grid of step 1/max_value. reset() reseeds the
    generator, so every pass replays exactly the same samples.

    Args:
        seed: Seed of the generator.
        input_size: Length of each input vector.
        max_value: Controls the dispersion of the grid.
        n_samples: Number of samples; negative counts are made positive, 0 becomes 10.
        fn: Maps an input array to the expected output values (default: sum).
    """

    def __init__(self, seed: int, input_size: int, max_value: int, n_samples: int,
                 fn: Optional[TargetFunction] = None):
        if input_size < 1:
            raise ConfigurationError("input size must be >0")
        if max_value < 1:
            raise ConfigurationError("max value must be >0")
        n_samples = abs(n_samples)
        if n_samples == 0:
            n_samples = 10
        self.seed = seed
        self.input_size = input_size
        self.max_value = max_value
        self.n = n_samples
        self.fn = fn if fn is not None else sum_target
        self.reset()

    def next(self) -> Optional[Datapoint]:
        if self.ind >= self.n:
            return None
        arr = self.rng.integers(-self.max_value, self.max_value, size=self.input_size) / self.max_value
        self.ind += 1
        return Datapoint.of(arr, self.fn(arr))

    def size(self) -> int:
        return self.n

    def left(self) -> int:
        return self.n - self.ind

    def reset(self):
        self.rng = np.random.default_rng(self.seed)
        self.ind = 0


def select_drops(rng: np.random.Generator, drop_size: int, fleet_size: int) -> Set[int]:
    """Random selection of distinct neuron indices to deactivate.

    Returns an empty set for a non-positive fleet or a zero drop size. A negative
    drop size uses its absolute value and the selection is capped to the fleet size.
    """
    if fleet_size <= 0:
        return set()
    drop_size = min(abs(int(drop_size)), fleet_size)
    if drop_size == 0:
        return set()
    return {int(i) for i in rng.choice(fleet_size, size=drop_size, replace=False)}
