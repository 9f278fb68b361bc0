import numpy as np
import pytest

from wavefield.errors import ConfigurationError
from wavefield.recording import ElectrodeGrid
from wavefield.sampler import SampledState
from wavefield.velocity import VelocityFieldEstimator, phase_gradient


@pytest.fixture
def grid() -> ElectrodeGrid:
    return ElectrodeGrid(columns=8, rows=4, pitch=100.0)


def test_zero_gradient_gives_finite_zero_velocity(grid):
    estimator = VelocityFieldEstimator(grid)
    phase = np.full(32, 1.234)
    rate = np.full(32, 1e6)

    vx, vy, gx, gy = estimator.velocity(phase, rate)

    assert np.all(np.isfinite(vx)) and np.all(np.isfinite(vy))
    np.testing.assert_array_equal(vx, 0.0)
    np.testing.assert_array_equal(vy, 0.0)


def test_tiny_gradient_stays_finite(grid):
    estimator = VelocityFieldEstimator(grid)
    _, row = np.divmod(np.arange(32), 8)
    phase = 1e-12 * row
    vx, vy, _, _ = estimator.velocity(phase, np.full(32, 80.0))
    assert np.all(np.isfinite(vx)) and np.all(np.isfinite(vy))


def test_plane_wave_along_x(grid):
    omega = 2 * np.pi * 13.0
    col = np.arange(32) % 8
    # +1 rad per unit with a grid step of 2 units between electrodes
    phase = 2.0 * col
    estimator = VelocityFieldEstimator(grid, spacing=2.0)

    vx, vy, gx, gy = estimator.velocity(phase, np.full(32, omega))

    np.testing.assert_allclose(gx, 1.0)
    np.testing.assert_array_equal(gy, 0.0)
    np.testing.assert_allclose(vx, -omega)
    np.testing.assert_array_equal(vy, 0.0)


def test_plane_wave_along_y_sign(grid):
    row = np.arange(32) // 8
    phase = -0.5 * 2.0 * row
    vx, vy, _, gy = VelocityFieldEstimator(grid).velocity(phase, np.full(32, 10.0))
    np.testing.assert_allclose(gy, -0.5)
    np.testing.assert_allclose(vy, -10.0 * -0.5 / 0.25)
    np.testing.assert_array_equal(vx, 0.0)


def test_gradient_one_sided_at_borders():
    lattice = np.array([[0.0, 1.0, 4.0, 9.0]])
    dx, dy = phase_gradient(lattice, spacing=2.0)
    np.testing.assert_allclose(dx[0], [0.5, 1.0, 2.0, 2.5])
    np.testing.assert_array_equal(dy, 0.0)


def test_single_column_has_zero_x_gradient():
    lattice = np.array([[0.0], [2.0], [4.0]])
    dx, dy = phase_gradient(lattice, spacing=2.0)
    np.testing.assert_array_equal(dx, 0.0)
    np.testing.assert_allclose(dy, 1.0)


def test_estimate_advects_rest_positions(grid):
    col = np.arange(32) % 8
    state = SampledState(
        index=5.0,
        amplitude=np.zeros(32),
        phase=2.0 * col,
        phase_rate=np.full(32, 100.0),
    )
    dt = 1.0 / 1000.0

    field = VelocityFieldEstimator(grid).estimate(state, dt)

    x_rest, y_rest = grid.positions()
    np.testing.assert_allclose(field.x, x_rest - 100.0 * dt)
    np.testing.assert_allclose(field.y, y_rest)
    np.testing.assert_allclose(field.speed, 100.0)


@pytest.mark.parametrize("epsilon", [0.0, -1.0, float("nan")])
def test_epsilon_must_be_positive(grid, epsilon):
    with pytest.raises(ConfigurationError):
        VelocityFieldEstimator(grid, epsilon=epsilon)
