import numpy as np
import pytest
import taichi as ti

from mpm_fluid import FluidMPMSolver


def isolated_particle_scene(volume_ratio=1.0, n_particles=100, **overrides):
    # Particle 0 sits on the grid node (32, 32), the rest are parked far away
    mpm = FluidMPMSolver(n_particles=n_particles, **overrides)
    x = np.full((n_particles, 2), 0.1, dtype=np.float32)
    x[0] = [0.5, 0.5]
    J = np.ones(n_particles, dtype=np.float32)
    J[0] = volume_ratio
    mpm.load_state(x, volume_ratio=J)
    return mpm


def test_initial_state():
    mpm = FluidMPMSolver()
    particles = mpm.particle_info()
    x = particles['position']
    assert x.shape == (12000, 2)
    assert x.min() >= 0.15 and x.max() <= 0.85
    assert np.all(particles['velocity'] == 0)
    assert np.all(particles['affine_velocity'] == 0)
    assert np.all(particles['volume_ratio'] == 1)
    assert mpm.interaction[1] is False


def test_incompressible_under_gravity():
    mpm = FluidMPMSolver()
    # 5000 steps at dt=2e-4 is one second
    for _ in range(5000):
        mpm.step()

    J = mpm.particle_info()['volume_ratio']
    assert np.all(np.isfinite(J))
    assert J.min() > 0.8
    assert mpm.compute_min_volume_ratio() == pytest.approx(J.min())


def test_compression_pushes_outward():
    mpm = isolated_particle_scene(volume_ratio=0.5)
    mpm.step()
    grid_v = mpm.grid_info()['velocity']
    assert grid_v[33, 32, 0] > 0
    assert grid_v[31, 32, 0] < 0


def test_tension_pulls_inward_weakly():
    compressed = isolated_particle_scene(volume_ratio=0.5)
    compressed.step()
    push = compressed.grid_info()['velocity'][33, 32, 0]

    expanded = isolated_particle_scene(volume_ratio=2.0)
    expanded.step()
    grid_v = expanded.grid_info()['velocity']
    assert grid_v[33, 32, 0] < 0
    assert grid_v[31, 32, 0] > 0
    assert abs(push) > 10 * abs(grid_v[33, 32, 0])


def test_grid_mass_matches_particle_mass():
    mpm = FluidMPMSolver(gravity=0.0)
    mpm.step()
    grid_m = mpm.grid_info()['mass'].astype(np.float64)
    assert grid_m.sum() == pytest.approx(mpm.n_particles * mpm.p_mass,
                                         rel=1e-4)


def test_grid_momentum_matches_particle_momentum():
    n = 2000
    mpm = FluidMPMSolver(n_particles=n, gravity=0.0)
    rng = np.random.default_rng(1)
    x = rng.uniform(0.2, 0.8, size=(n, 2)).astype(np.float32)
    v = rng.uniform(-1, 1, size=(n, 2)).astype(np.float32)
    mpm.load_state(x, velocity=v)
    mpm.step()

    grid = mpm.grid_info()
    grid_m = grid['mass'].astype(np.float64)
    momentum = (grid['velocity'].astype(np.float64) *
                grid_m[:, :, None]).sum(axis=(0, 1))
    expected = mpm.p_mass * v.astype(np.float64).sum(axis=0)
    np.testing.assert_allclose(momentum, expected, atol=1e-6)


def test_positions_stay_inside_walls():
    n = 1000
    mpm = FluidMPMSolver(n_particles=n)
    rng = np.random.default_rng(2)
    x = rng.uniform(0.05, 0.95, size=(n, 2)).astype(np.float32)
    v = rng.uniform(-50, 50, size=(n, 2)).astype(np.float32)
    mpm.load_state(x, velocity=v)

    for _ in range(50):
        mpm.step()
        x = mpm.particle_info()['position']
        assert x.min() >= np.float32(mpm.lower_limit)
        assert x.max() <= np.float32(mpm.upper_limit)


def test_resting_particle_stays_put():
    mpm = isolated_particle_scene(gravity=0.0)
    mpm.step()
    particles = mpm.particle_info()
    np.testing.assert_allclose(particles['position'][0], [0.5, 0.5],
                               atol=1e-7)
    np.testing.assert_allclose(particles['velocity'][0], [0, 0], atol=1e-7)
    assert particles['volume_ratio'][0] == pytest.approx(1.0)


def test_interaction_on_particle_is_ignored():
    mpm = isolated_particle_scene(gravity=0.0)
    mpm.set_interaction((0.5, 0.5))
    mpm.step()
    v = mpm.particle_info()['velocity'][0]
    assert np.linalg.norm(v) < 1e-6


def test_interaction_repels_nearby_particle():
    mpm = isolated_particle_scene(gravity=0.0)
    mpm.set_interaction((0.48, 0.5))
    mpm.step()
    v = mpm.particle_info()['velocity'][0]
    # (radius - distance) * strength along +x
    np.testing.assert_allclose(v, [(0.05 - 0.02) * 200, 0], atol=1e-3)


def test_interaction_out_of_range():
    mpm = isolated_particle_scene(gravity=0.0)
    mpm.set_interaction((0.4, 0.5))
    mpm.step()
    v = mpm.particle_info()['velocity'][0]
    assert np.linalg.norm(v) < 1e-6


def test_interaction_state():
    mpm = FluidMPMSolver(n_particles=10)
    mpm.set_interaction([0.25, 0.75])
    point, active = mpm.interaction
    assert point == pytest.approx((0.25, 0.75))
    assert active

    mpm.release_interaction()
    assert mpm.interaction[1] is False

    with pytest.raises(ValueError):
        mpm.set_interaction((0.1, 0.2, 0.3))


def test_released_interaction_has_no_effect():
    mpm = isolated_particle_scene(gravity=0.0)
    mpm.set_interaction((0.48, 0.5))
    mpm.release_interaction()
    mpm.step()
    v = mpm.particle_info()['velocity'][0]
    assert np.linalg.norm(v) < 1e-6


def test_volume_ratio_floor():
    mpm = isolated_particle_scene(volume_ratio=0.5,
                                  gravity=0.0,
                                  min_volume_ratio=0.9)
    mpm.step()
    J = mpm.particle_info()['volume_ratio']
    assert J[0] == pytest.approx(0.9)
    assert J.min() >= np.float32(0.9)


def test_degenerate_volume_ratio_asserts_in_debug():
    ti.init(arch=ti.cpu, debug=True)
    mpm = isolated_particle_scene(volume_ratio=-0.5, n_particles=10)
    with pytest.raises(AssertionError):
        mpm.step()


def test_advance_frame(capsys):
    mpm = FluidMPMSolver(n_particles=500)
    mpm.advance_frame(print_stat=True)
    assert mpm.total_substeps == 25
    assert mpm.t == pytest.approx(25 * 2e-4)
    out = capsys.readouterr().out
    assert 'total substeps: 25' in out
    assert 'max velocity' in out
    assert 'CFL' in out
    assert 'J range' in out


def test_reset():
    mpm = FluidMPMSolver(n_particles=500)
    mpm.set_interaction((0.5, 0.5))
    for _ in range(10):
        mpm.step()
    mpm.reset()
    particles = mpm.particle_info()
    assert np.all(particles['volume_ratio'] == 1)
    assert np.all(particles['velocity'] == 0)
    assert mpm.total_substeps == 0
    assert mpm.interaction[1] is False


def test_statistics():
    mpm = FluidMPMSolver(n_particles=500)
    for _ in range(100):
        mpm.step()
    particles = mpm.particle_info()
    J = particles['volume_ratio']
    assert mpm.compute_min_volume_ratio() == pytest.approx(J.min())
    assert mpm.compute_max_volume_ratio() == pytest.approx(J.max())
    assert mpm.compute_max_velocity() == pytest.approx(
        np.abs(particles['velocity']).max())


def test_load_state_validation():
    mpm = FluidMPMSolver(n_particles=10)
    with pytest.raises(ValueError):
        mpm.load_state(np.full((9, 2), 0.5))
    with pytest.raises(ValueError):
        mpm.load_state(np.full((10, 2), 0.01))
    with pytest.raises(ValueError):
        mpm.load_state(np.full((10, 2), 0.5), volume_ratio=np.ones(3))


def wall_scene(position, velocity, **overrides):
    n_particles = 10
    mpm = FluidMPMSolver(n_particles=n_particles, **overrides)
    x = np.full((n_particles, 2), 0.5, dtype=np.float32)
    v = np.zeros((n_particles, 2), dtype=np.float32)
    x[0] = position
    v[0] = velocity
    mpm.load_state(x, velocity=v)
    return mpm


def test_lower_walls_stop_inward_velocity():
    mpm = wall_scene((3 / 64, 3 / 64), (-5, -5))
    mpm.step()
    grid_v = mpm.grid_info()['velocity']
    assert np.all(grid_v[:3, :, 0] >= 0)
    assert np.all(grid_v[:, :3, 1] >= 0)
    # Stencil spans nodes 2..4, only node 2 lies inside the wall
    np.testing.assert_array_equal(grid_v[2, 2:5, 0], 0)
    assert grid_v[3, 3, 0] == pytest.approx(-5, rel=1e-4)


def test_upper_walls_stop_outward_velocity():
    mpm = wall_scene((61 / 64, 61 / 64), (5, 5), gravity=0.0)
    mpm.step()
    grid_v = mpm.grid_info()['velocity']
    # Nodes with index > n_grid - bound belong to the wall
    assert np.all(grid_v[62:, :, 0] <= 0)
    assert np.all(grid_v[:, 62:, 1] <= 0)
    assert grid_v[62, 61, 0] == 0
    assert grid_v[61, 61, 0] == pytest.approx(5, rel=1e-4)
    assert grid_v[61, 62, 1] == 0
    assert grid_v[61, 61, 1] == pytest.approx(5, rel=1e-4)


def test_gravity_on_grid():
    mpm = isolated_particle_scene()
    mpm.step()
    grid = mpm.grid_info()
    grid_v = grid['velocity']
    stencil = grid_v[31:34, 31:34]
    np.testing.assert_allclose(stencil[:, :, 0], 0, atol=1e-7)
    np.testing.assert_allclose(stencil[:, :, 1], -9.8 * 2e-4, rtol=1e-5)
    # Empty nodes carry no velocity
    assert grid['mass'][20, 20] == 0
    np.testing.assert_array_equal(grid_v[20, 20], 0)
