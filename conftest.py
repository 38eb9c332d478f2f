# conftest.py
import matplotlib
import numpy as np
import pytest


@pytest.fixture(autouse=True)
def mpl_test_backend():
    """Non-interactive plotting for every test."""
    matplotlib.use('Agg')


@pytest.fixture
def rng():
    return np.random.default_rng(20240611)


@pytest.fixture
def centered_square():
    """4x4 biquadratic-level quad mesh of [-1/2, 1/2]^2."""
    from pyadfem.utils.meshgen import structured_quad
    return structured_quad(1.0, 1.0, 4, 4, offset=(-0.5, -0.5))
