import numpy as np
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Mapping, Optional, Union
import logging
import time

from clear_fc.activations import Activation, ActivationSpec
from clear_fc.costs import resolve_cost
from clear_fc.datasets import Dataset, select_drops
from clear_fc.errors import (
    ClearFCError,
    ConfigurationError,
    DimensionError,
    RangeError,
    TrainingError,
)
from clear_fc.network import Network
from clear_fc.rates import ConstantRate, LearningRate

MIN_DROPOUT = 0.0
MAX_DROPOUT = 0.9

default_logger = logging.getLogger("clear_fc.trainer")

RandomSource = Union[None, int, np.random.Generator]


@dataclass
class TrainerConfig:
    """Settings of a training run.

    Attributes:
        max_iterations: Number of passes over the training set (>= 1).
        tolerance: A pass stops early once a batch's average cost is <= tolerance.
        batch_size: Samples whose cost is averaged before one backward pass (>= 1).
        dropout_period: Batches between two dropout mask draws; 0 disables dropout.
        dropout_ratio: Fraction of hidden neurons dropped, in ]0;0.9].
        seed: Seed of the random source used for dropout.
    """

    max_iterations: int = 1
    tolerance: float = 0.0
    batch_size: int = 1
    dropout_period: int = 0
    dropout_ratio: float = 0.5
    seed: Optional[int] = None

    def __post_init__(self):
        self.tolerance = abs(float(self.tolerance))
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be >= 1")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be >= 1")
        if self.dropout_period < 0:
            raise ConfigurationError("dropout_period must be >= 0")
        if not MIN_DROPOUT < self.dropout_ratio <= MAX_DROPOUT:
            raise ConfigurationError(
                f"dropout_ratio must be between {MIN_DROPOUT:.1f} and {MAX_DROPOUT:.1f}"
            )

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'TrainerConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigurationError(f"unknown trainer settings: {sorted(unknown)}")
        return cls(**values)


@dataclass
class TrainingReport:
    """Outcome of Trainer.train_with_backprop.

    The network is always returned, possibly partially trained, together with
    the first error encountered (None on success).
    """

    network: Network
    training_cost: Optional[float] = None
    validation_cost: Optional[float] = None
    test_cost: Optional[float] = None
    error: Optional[ClearFCError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self):
        if self.error is not None:
            raise self.error


class Trainer:
    """
    Trains a Network with backpropagation and mini-batch gradient descent, and
    evaluates it on a test set.

    Training stops after `max_iterations` passes; within a pass, it stops as soon
    as a batch's average cost drops to `tolerance` or below.
    """

    def __init__(
        self,
        network: Network,
        learning_rate: Union[LearningRate, float],
        cost: ActivationSpec = "half_squared",
        max_iterations: int = 1,
        tolerance: float = 0.0,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            network: The network to train.
            learning_rate: A learning-rate source (anything with get_rate()), or a
                           number wrapped into a ConstantRate.
            cost: Element-wise cost applied to prediction - expected: a cost name
                  ('half_squared', 'squared', 'absolute', 'identity'), an Activation
                  or a CustomSpec.
            max_iterations: Maximum number of passes over the training set (>= 1).
            tolerance: Convergence tolerance on the batch average cost (absolute value is used).
            logger: Where training progress is narrated; defaults to the
                    'clear_fc.trainer' logger.

        The remaining run settings (batch size, dropout, seed) take their
        TrainerConfig defaults; use from_config to set them.

        Raises:
            ConfigurationError / UsabilityError: If the trainer definition is not usable.
        """
        self.network = network
        if isinstance(learning_rate, (int, float)) and not isinstance(learning_rate, bool):
            learning_rate = ConstantRate(learning_rate)
        self.lr = learning_rate
        self.logger = logger if logger is not None else default_logger
        self.config = TrainerConfig(max_iterations=int(max_iterations), tolerance=tolerance)
        self.cost: Optional[Activation] = resolve_cost(cost) if cost is not None else None

        self.history: Dict[str, List] = {
            'iteration': [],
            'cost': [],
            'learning_rate': [],
            'time': [],
        }
        self.validate()

    @classmethod
    def from_config(cls, network: Network, learning_rate: Union[LearningRate, float],
                    config: TrainerConfig, cost: ActivationSpec = "half_squared",
                    logger: Optional[logging.Logger] = None) -> 'Trainer':
        """Builds a trainer whose runs default to the settings of `config`."""
        trainer = cls(network, learning_rate, cost=cost, max_iterations=config.max_iterations,
                      tolerance=config.tolerance, logger=logger)
        trainer.config = config
        return trainer

    @property
    def max_iterations(self) -> int:
        return self.config.max_iterations

    @property
    def tolerance(self) -> float:
        return self.config.tolerance

    def validate(self):
        """Checks the trainer definition is OK."""
        if self.network is None:
            raise ConfigurationError("neural network is None")
        if self.lr is None or not callable(getattr(self.lr, 'get_rate', None)):
            raise ConfigurationError("learning rate source is None")
        self.network.is_usable()
        if self.cost is None:
            raise ConfigurationError("cost function is None")
        if self.logger is None:
            self.logger = default_logger

    def _sample_cost(self, prediction: np.ndarray, expected: np.ndarray):
        """Returns (deviation, mean cost over the outputs) for one sample."""
        if prediction.shape != expected.shape:
            raise DimensionError(
                f"failed to compute deviation: prediction shape {prediction.shape} "
                f"does not match expected shape {expected.shape}"
            )
        deviation = prediction - expected
        return deviation, float(np.mean(self.cost.forward(deviation)))

    def _draw_drop_masks(self, rng: np.random.Generator, ratio: float) -> List[Optional[np.ndarray]]:
        """One scaled mask per hidden layer; the output layer is never dropped."""
        masks: List[Optional[np.ndarray]] = []
        for layer in self.network.layers[:-1]:
            size = layer.output_size
            dropped = select_drops(rng, int(ratio * size), size)
            mask = np.ones((size, 1), dtype=float)
            if dropped:
                mask[sorted(dropped)] = 0.0
                mask *= size / (size - len(dropped))
            masks.append(mask)
        masks.append(None)
        return masks

    def _run_settings(self, batch_size, rng, dropout_period, dropout_ratio):
        """Fills unset run settings from self.config and turns rng into a Generator."""
        if batch_size is None:
            batch_size = self.config.batch_size
        if dropout_period is None:
            dropout_period = self.config.dropout_period
        if dropout_ratio is None:
            dropout_ratio = self.config.dropout_ratio
        if rng is None:
            rng = self.config.seed
        if not isinstance(rng, np.random.Generator):
            rng = np.random.default_rng(rng)
        return batch_size, rng, dropout_period, dropout_ratio

    def train_loop(
        self,
        dataset: Dataset,
        batch_size: Optional[int] = None,
        rng: RandomSource = None,
        dropout_period: Optional[int] = None,
        dropout_ratio: Optional[float] = None,
    ) -> float:
        """
        Runs up to `max_iterations` passes of backpropagation over `dataset`.

        Each sample's cost (mean of the element-wise cost of prediction - expected)
        is accumulated; every `batch_size` samples the gradient of the batch's last
        sample is propagated back with the current learning rate and the
        accumulator is reset. A pass ends early once a batch average is <= tolerance.

        Settings left to None fall back to the trainer's TrainerConfig.

        Args:
            dataset: Training samples.
            batch_size: Samples per weight update.
            rng: Random source for dropout (Generator or seed); None uses config.seed.
            dropout_period: Batches between two dropout draws; 0 disables dropout.
            dropout_ratio: Fraction of hidden neurons dropped, in ]0;0.9].

        Returns:
            The last batch average cost (or the running average if no batch completed).

        Raises:
            RangeError: On an empty dataset or an out-of-range dropout ratio.
            TrainingError: Wrapping any forward/backward failure with iteration and sample index.
        """
        batch_size, rng, dropout_period, dropout_ratio = self._run_settings(
            batch_size, rng, dropout_period, dropout_ratio,
        )
        self.logger.info("Check if trainable")
        self.validate()
        if not MIN_DROPOUT < dropout_ratio <= MAX_DROPOUT:
            raise RangeError(f"dropout must be between {MIN_DROPOUT:.1f} and {MAX_DROPOUT:.1f}")
        if dataset is None or dataset.size() == 0:
            raise RangeError("dataset is empty")
        if batch_size < 1:
            raise RangeError("batch size must be >= 1")
        if dropout_period < 0:
            raise RangeError("dropout period must be >= 0")

        self.logger.info("Start training ...")
        counter = 0
        accumulated = 0.0
        last_average: Optional[float] = None
        batches = 0
        try:
            for iteration in range(1, self.max_iterations + 1):
                start = time.time()
                dataset.reset()
                sample_index = 0
                while True:
                    point = dataset.next()
                    if point is None:
                        break
                    if dropout_period > 0 and batches % dropout_period == 0 and counter == 0:
                        self.network.set_dropout(self._draw_drop_masks(rng, dropout_ratio))
                    try:
                        prediction = self.network.forward(point.input)
                        deviation, cost = self._sample_cost(prediction, point.expected)
                    except (ClearFCError, ValueError) as err:
                        raise TrainingError("forward pass failed", err, iteration, sample_index) from err
                    accumulated += cost
                    counter += 1
                    if counter == batch_size:
                        rate = self.lr.get_rate()
                        try:
                            gradient = self.cost.backward(deviation)
                            self.network.backprop(rate, point.input, gradient)
                        except (ClearFCError, ValueError) as err:
                            raise TrainingError("failed to backpropagate", err, iteration, sample_index) from err
                        self.lr.step()
                        last_average = accumulated / batch_size
                        counter = 0
                        accumulated = 0.0
                        batches += 1
                        if last_average <= self.tolerance:
                            self.logger.info(
                                f"Iteration {iteration}: batch cost {last_average:.6f} <= tolerance {self.tolerance}, stopping pass"
                            )
                            break
                    sample_index += 1

                pass_cost = last_average if last_average is not None else accumulated / max(counter, 1)
                self.history['iteration'].append(iteration)
                self.history['cost'].append(pass_cost)
                self.history['learning_rate'].append(self.lr.get_rate())
                self.history['time'].append(time.time() - start)
                self.logger.debug(f"Iteration {iteration}/{self.max_iterations} - cost: {pass_cost:.6f}")
        finally:
            self.network.clear_dropout()

        result = last_average if last_average is not None else accumulated / max(counter, 1)
        self.logger.info(f"Total Average Cost = {result:f}")
        return result

    def test_with(self, dataset: Dataset) -> float:
        """
        Evaluates the network on `dataset` without updating it.

        Returns:
            The average over samples of the per-sample mean cost.

        Raises:
            RangeError: If the dataset is empty.
            TrainingError: Wrapping a forward failure with the sample index.
        """
        if dataset is None or dataset.size() == 0:
            raise RangeError("no test data")
        dataset.reset()
        self.logger.info("Start Evaluation ...")
        performance = 0.0
        count = 0
        while True:
            point = dataset.next()
            if point is None:
                break
            try:
                prediction = self.network.forward(point.input)
                _, cost = self._sample_cost(prediction, point.expected)
            except (ClearFCError, ValueError) as err:
                raise TrainingError("evaluation failed", err, sample_index=count) from err
            performance += cost
            count += 1
        if count == 0:
            raise RangeError("no test data")
        performance = performance / count
        self.logger.info(f"Evaluation: Total Average Cost = {performance:f}")
        return performance

    def train_with_backprop(
        self,
        training: Dataset,
        test: Dataset,
        validation: Optional[Dataset] = None,
        batch_size: Optional[int] = None,
        rng: RandomSource = None,
        dropout_period: Optional[int] = None,
        dropout_ratio: Optional[float] = None,
    ) -> TrainingReport:
        """
        Trains on `training`, runs a batch_size=1 pass over `validation` if given,
        then evaluates on `test`.

        Every layer is switched to keep_state first, since backpropagation needs
        the forward-pass snapshots. Settings left to None fall back to the
        trainer's TrainerConfig; training and validation share one random source.

        Returns:
            A TrainingReport holding the network (trained as far as it got), the
            costs reached, and the first error encountered, if any.
        """
        report = TrainingReport(network=self.network)
        try:
            batch_size, rng, dropout_period, dropout_ratio = self._run_settings(
                batch_size, rng, dropout_period, dropout_ratio,
            )
            self.validate()
            self.network.set_keep_state(True)
            if training is None or training.size() == 0:
                raise RangeError("training set is empty")
            if test is None or test.size() == 0:
                raise RangeError("test set is empty")

            self.logger.info("--- Training set ---")
            report.training_cost = self.train_loop(
                training, batch_size, rng, dropout_period, dropout_ratio,
            )
            if validation is not None and validation.size() > 0:
                self.logger.info("--- Validation set ---")
                report.validation_cost = self.train_loop(
                    validation, 1, rng, dropout_period, dropout_ratio,
                )
            self.logger.info("--- Test set ---")
            report.test_cost = self.test_with(test)
        except ClearFCError as err:
            self.logger.error(f"Training failed: {err}")
            report.error = err
        return report
