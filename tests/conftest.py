from __future__ import annotations

import numpy as np
import pytest

from _systems import make_mixed_system
from ppnl.system import ParticleSet


@pytest.fixture
def mixed_system() -> ParticleSet:
    return make_mixed_system()


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)
