import os
import shutil
import sys
import tempfile

import numpy as np
import pytest
import torch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from experience_replay import ContinuousSpace, DiscreteSpace


@pytest.fixture
def numpy_rng():
    """Seeded generator so sampling tests are reproducible."""
    return np.random.default_rng(0)


@pytest.fixture
def temp_dir():
    """Temporary directory removed after the test."""
    directory = tempfile.mkdtemp()
    yield directory
    shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
def scalar_space():
    return ContinuousSpace(1)


@pytest.fixture
def state_space():
    return ContinuousSpace(3)


@pytest.fixture
def action_space():
    return DiscreteSpace(2)


@pytest.fixture
def device():
    return torch.device('cpu')
