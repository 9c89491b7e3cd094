import math

import numpy as np
import pytest

from revenue_selection.metrics import interval_coverage, mase, wmape


def test_wmape():
    assert wmape([100.0, 200.0], [110.0, 180.0]) == pytest.approx(0.1)
    assert math.isnan(wmape([0.0, 0.0], [1.0, 1.0]))


def test_mase_uses_seasonal_naive_scale():
    insample = np.array([1.0, 2.0, 3.0, 5.0, 6.0, 7.0])
    assert mase([10.0], [12.0], insample, 3) == pytest.approx(2.0 / 4.0)
    assert math.isnan(mase([1.0], [1.0], insample[:3], 3))


def test_interval_coverage():
    assert interval_coverage([1.0, 5.0, 9.0], [0.0, 0.0, 0.0], [2.0, 6.0, 8.0]) == pytest.approx(2 / 3)
    assert math.isnan(interval_coverage([], [], []))
