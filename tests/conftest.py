import pytest

from drive_control.sim import Simulation, build_simulation

from .fakes import FakeClock


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def simulation() -> Simulation:
    """Simulated robot at the origin facing +x, localized by odometry."""
    return build_simulation()
