"""Learning-rate sources for the trainer."""

from clear_fc.errors import RangeError


def _check_rate(value: float, name: str = "learning rate") -> float:
    value = float(value)
    if not 0.0 < value <= 1.0:
        raise RangeError(f"{name} must be in range ]0;1], got {value}")
    return value


class LearningRate:
    """Base learning-rate source.

    `get_rate` is a pure query; `step` is called by the trainer after every
    weight update so scheduled sources can advance.
    """

    def get_rate(self) -> float:
        raise NotImplementedError

    def step(self):
        """Advance the schedule by one update. No-op for constant sources."""


class ConstantRate(LearningRate):
    """Always returns the same rate."""

    def __init__(self, value: float):
        self.value = _check_rate(value)

    def get_rate(self) -> float:
        return self.value

    def __repr__(self):
        return f"ConstantRate({self.value})"


class StepDecayRate(LearningRate):
    """Rate multiplied by `decay` every `every` updates, never below `minimum`.

    rate = max(minimum, initial * decay ** (step_num // every))
    """

    def __init__(self, initial: float, decay: float = 0.5, every: int = 100, minimum: float = 1e-6):
        self.initial = _check_rate(initial, "initial learning rate")
        if not 0.0 < decay <= 1.0:
            raise RangeError(f"decay must be in range ]0;1], got {decay}")
        if every < 1:
            raise RangeError(f"decay period must be >= 1, got {every}")
        self.decay = float(decay)
        self.every = int(every)
        self.minimum = _check_rate(minimum, "minimum learning rate")
        self.step_num = 0

    def get_rate(self) -> float:
        return max(self.minimum, self.initial * self.decay ** (self.step_num // self.every))

    def step(self):
        self.step_num += 1

    def state_dict(self):
        return {
            "initial": self.initial,
            "decay": self.decay,
            "every": self.every,
            "minimum": self.minimum,
            "step_num": self.step_num,
        }

    def load_state_dict(self, state):
        self.initial = state["initial"]
        self.decay = state["decay"]
        self.every = state["every"]
        self.minimum = state["minimum"]
        self.step_num = state["step_num"]

    def __repr__(self):
        return f"StepDecayRate(initial={self.initial}, decay={self.decay}, every={self.every})"
