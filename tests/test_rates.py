import pytest

from clear_fc.errors import RangeError
from clear_fc.rates import ConstantRate, StepDecayRate


def test_constant_rate():
    rate = ConstantRate(0.3)
    assert rate.get_rate() == 0.3
    rate.step()
    assert rate.get_rate() == 0.3


@pytest.mark.parametrize("value", [0.0, -0.5, 1.01])
def test_constant_rate_range(value):
    with pytest.raises(RangeError):
        ConstantRate(value)


def test_step_decay_schedule():
    rate = StepDecayRate(0.8, decay=0.5, every=2, minimum=0.1)
    seen = []
    for _ in range(8):
        seen.append(rate.get_rate())
        rate.step()
    assert seen == pytest.approx([0.8, 0.8, 0.4, 0.4, 0.2, 0.2, 0.1, 0.1])
    # floor reached
    assert rate.get_rate() == pytest.approx(0.1)


def test_get_rate_does_not_advance():
    rate = StepDecayRate(0.5, every=1)
    assert rate.get_rate() == rate.get_rate()
    assert rate.step_num == 0


def test_state_dict_round_trip():
    rate = StepDecayRate(0.5, decay=0.9, every=3)
    for _ in range(7):
        rate.step()
    restored = StepDecayRate(0.1)
    restored.load_state_dict(rate.state_dict())
    assert restored.step_num == 7
    assert restored.get_rate() == rate.get_rate()


def test_step_decay_rejects_bad_settings():
    with pytest.raises(RangeError):
        StepDecayRate(0.5, decay=0.0)
    with pytest.raises(RangeError):
        StepDecayRate(0.5, every=0)
    with pytest.raises(RangeError):
        StepDecayRate(2.0)
