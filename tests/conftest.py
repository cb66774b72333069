import numpy as np
import pytest
from loguru import logger

from jdsd.execution import HostContext


@pytest.fixture(scope="session")
def host():
    """Host execution context shared by all tests."""
    return HostContext()


@pytest.fixture
def reset_logger():
    """Drop the sinks a test installed through setup_logging."""
    yield
    logger.remove()


def _particle_frame(positions, radii, forces):
    positions = np.asarray(positions, dtype=float).reshape(-1, 3)
    radii = np.asarray(radii, dtype=float).reshape(-1, 1)
    forces = np.asarray(forces, dtype=float).reshape(-1, 6)
    return np.hstack([positions, radii, forces])


@pytest.fixture
def make_frame():
    """Stack positions, radii and forces into one (N, 10) particle file frame."""
    return _particle_frame

