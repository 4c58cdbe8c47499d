import time

import numpy as np
import taichi as ti

from .config import FluidConfig


@ti.data_oriented
class FluidMPMSolver:
    """Weakly-compressible 2D fluid with MLS-MPM and APIC transfers.

    The domain is the unit square. Particle state (x, v, C, J) persists across
    steps, the grid is rebuilt from scratch every step.
    """

    # Interaction is skipped when the particle sits on the target
    interaction_eps = 1e-6

    def __init__(self, config=None, **overrides):
        if config is None:
            config = FluidConfig(**overrides)
        elif overrides:
            config = config.replace(**overrides)
        self.config = config

        self.dim = 2
        self.n_particles = config.n_particles
        self.n_grid = config.n_grid
        self.dx = config.dx
        self.inv_dx = config.inv_dx
        self.dt = config.dt
        self.p_vol = config.p_vol
        self.p_mass = config.p_mass
        self.gravity = config.gravity
        self.bound = config.bound
        self.bulk_modulus = config.bulk_modulus
        self.tension_limit = config.tension_limit
        self.lower_limit = config.lower_limit
        self.upper_limit = config.upper_limit
        self.min_volume_ratio = config.min_volume_ratio
        self.clamp_volume_ratio = config.min_volume_ratio is not None
        self.substeps_per_frame = config.substeps_per_frame

        self.t = 0.0
        self.total_substeps = 0

        # Position
        self.x = ti.Vector.field(self.dim,
                                 dtype=ti.f32,
                                 shape=self.n_particles)
        # Velocity
        self.v = ti.Vector.field(self.dim,
                                 dtype=ti.f32,
                                 shape=self.n_particles)
        # Affine velocity field
        self.C = ti.Matrix.field(self.dim,
                                 self.dim,
                                 dtype=ti.f32,
                                 shape=self.n_particles)
        # Volume ratio
        self.J = ti.field(dtype=ti.f32, shape=self.n_particles)

        # Grid node momentum/velocity
        self.grid_v = ti.Vector.field(self.dim,
                                      dtype=ti.f32,
                                      shape=(self.n_grid, self.n_grid))
        # Grid node mass
        self.grid_m = ti.field(dtype=ti.f32, shape=(self.n_grid, self.n_grid))

        self.interaction_point = ti.Vector.field(self.dim,
                                                 dtype=ti.f32,
                                                 shape=())
        self.interaction_active = ti.field(dtype=ti.i32, shape=())
        self.interaction_radius = config.interaction_radius
        self.interaction_strength = config.interaction_strength

        self.reset()

    def stencil_range(self):
        return ti.ndrange(*((3, ) * self.dim))

    @ti.kernel
    def seed(self, lower: ti.f32, upper: ti.f32):
        for p in range(self.n_particles):
            for k in ti.static(range(self.dim)):
                self.x[p][k] = lower + ti.random() * (upper - lower)
            self.v[p] = ti.Vector.zero(ti.f32, self.dim)
            self.C[p] = ti.Matrix.zero(ti.f32, self.dim, self.dim)
            self.J[p] = 1.0

    def reset(self):
        self.seed(self.config.seed_lower, self.config.seed_upper)
        self.clear_grid()
        self.release_interaction()
        self.t = 0.0
        self.total_substeps = 0

    @ti.kernel
    def clear_grid(self):
        for I in ti.grouped(self.grid_m):
            self.grid_v[I] = ti.Vector.zero(ti.f32, self.dim)
            self.grid_m[I] = 0

    @ti.kernel
    def p2g(self):
        for p in self.x:
            base = ti.floor(self.x[p] * self.inv_dx - 0.5).cast(int)
            fx = self.x[p] * self.inv_dx - base.cast(float)
            # Quadratic kernels  [http://mpm.graphics   Eqn. 123, with x=fx, fx-1,fx-2]
            w = [0.5 * (1.5 - fx)**2, 0.75 - (fx - 1)**2, 0.5 * (fx - 0.5)**2]
            # Tension is capped, compression is not
            pressure = min(self.tension_limit,
                           self.bulk_modulus * (self.J[p] - 1))
            stress = -pressure * 4 * self.dt * self.inv_dx**2 * self.p_vol
            affine = ti.Matrix.identity(ti.f32, self.dim) * stress + \
                self.p_mass * self.C[p]

            # Loop over 3x3 grid node neighborhood
            for offset in ti.static(ti.grouped(self.stencil_range())):
                dpos = (offset.cast(float) - fx) * self.dx
                weight = 1.0
                for d in ti.static(range(self.dim)):
                    weight *= w[offset[d]][d]
                self.grid_v[base + offset] += weight * (
                    self.p_mass * self.v[p] + affine @ dpos)
                self.grid_m[base + offset] += weight * self.p_mass

    @ti.kernel
    def grid_normalization_and_gravity(self):
        for I in ti.grouped(self.grid_m):
            if self.grid_m[I] > 0:  # No need for epsilon here
                self.grid_v[I] = (1 / self.grid_m[I]) * self.grid_v[I]
                self.grid_v[I][1] -= self.dt * self.gravity

    @ti.kernel
    def grid_bounding_box(self):
        for I in ti.grouped(self.grid_v):
            for d in ti.static(range(self.dim)):
                if I[d] < self.bound and self.grid_v[I][d] < 0:
                    self.grid_v[I][d] = 0  # Boundary conditions
                if I[d] > self.n_grid - self.bound and self.grid_v[I][d] > 0:
                    self.grid_v[I][d] = 0

    @ti.func
    def interaction_impulse(self, x):
        impulse = ti.Vector.zero(ti.f32, self.dim)
        offset = x - self.interaction_point[None]
        dist_sqr = offset.norm_sqr()
        if dist_sqr < self.interaction_radius**2:
            if dist_sqr > self.interaction_eps:
                dist = ti.sqrt(dist_sqr)
                impulse = offset / dist * (self.interaction_radius -
                                           dist) * self.interaction_strength
        return impulse

    @ti.kernel
    def g2p(self):
        for p in self.x:
            base = ti.floor(self.x[p] * self.inv_dx - 0.5).cast(int)
            fx = self.x[p] * self.inv_dx - base.cast(float)
            w = [
                0.5 * (1.5 - fx)**2, 0.75 - (fx - 1.0)**2, 0.5 * (fx - 0.5)**2
            ]
            new_v = ti.Vector.zero(ti.f32, self.dim)
            new_C = ti.Matrix.zero(ti.f32, self.dim, self.dim)
            # Loop over 3x3 grid node neighborhood
            for offset in ti.static(ti.grouped(self.stencil_range())):
                dpos = offset.cast(float) - fx
                g_v = self.grid_v[base + offset]
                weight = 1.0
                for d in ti.static(range(self.dim)):
                    weight *= w[offset[d]][d]
                new_v += weight * g_v
                new_C += 4 * self.inv_dx * weight * g_v.outer_product(dpos)

            if self.interaction_active[None] != 0:
                new_v += self.interaction_impulse(self.x[p])

            self.v[p], self.C[p] = new_v, new_C
            # Advection, clamped so that the next stencil stays in the grid
            self.x[p] = min(max(self.x[p] + self.dt * new_v, self.lower_limit),
                            self.upper_limit)

            self.J[p] *= 1 + self.dt * new_C.trace()
            if ti.static(self.clamp_volume_ratio):
                self.J[p] = max(self.J[p], self.min_volume_ratio)
            assert self.J[p] > 0, 'Volume ratio must stay positive'

    def step(self):
        self.clear_grid()
        self.p2g()
        self.grid_normalization_and_gravity()
        self.grid_bounding_box()
        self.g2p()
        self.total_substeps += 1
        self.t += self.dt

    def advance_frame(self, print_stat=False):
        begin_t = time.time()
        begin_substep = self.total_substeps

        for _ in range(self.substeps_per_frame):
            self.step()

        if print_stat:
            ti.sync()
            frame_time = time.time() - begin_t
            cur_frame_velocity = self.compute_max_velocity()
            print(f'total substeps: {self.total_substeps}')
            print(f'max velocity: {cur_frame_velocity:.4f}')
            print(f'CFL: {cur_frame_velocity * self.dt / self.dx}')
            print(f'J range: [{self.compute_min_volume_ratio():.4f}, '
                  f'{self.compute_max_volume_ratio():.4f}]')
            print(f'  simulated time {self.t:.4f} s')
            print(f'  frame time {frame_time:.3f} s')
            print(
                f'  substep time {1000 * frame_time / (self.total_substeps - begin_substep):.3f} ms'
            )

    def set_interaction(self, point, active=True):
        point = list(point)
        if len(point) != self.dim:
            raise ValueError(
                f'Interaction point must have {self.dim} components.')
        self.interaction_point[None] = point
        self.interaction_active[None] = int(bool(active))

    def release_interaction(self):
        self.interaction_active[None] = 0

    @property
    def interaction(self):
        point = self.interaction_point.to_numpy()
        return (float(point[0]), float(point[1])), bool(
            self.interaction_active[None])

    @ti.kernel
    def compute_max_velocity(self) -> ti.f32:
        max_velocity = 0.0
        for p in self.v:
            v = self.v[p]
            v_max = 0.0
            for i in ti.static(range(self.dim)):
                v_max = max(v_max, abs(v[i]))
            ti.atomic_max(max_velocity, v_max)
        return max_velocity

    @ti.kernel
    def compute_min_volume_ratio(self) -> ti.f32:
        min_J = self.J[0]
        for p in self.J:
            ti.atomic_min(min_J, self.J[p])
        return min_J

    @ti.kernel
    def compute_max_volume_ratio(self) -> ti.f32:
        max_J = self.J[0]
        for p in self.J:
            ti.atomic_max(max_J, self.J[p])
        return max_J

    def particle_info(self):
        return {
            'position': self.x.to_numpy(),
            'velocity': self.v.to_numpy(),
            'affine_velocity': self.C.to_numpy(),
            'volume_ratio': self.J.to_numpy()
        }

    def grid_info(self):
        return {
            'mass': self.grid_m.to_numpy(),
            'velocity': self.grid_v.to_numpy()
        }

    def load_state(self,
                   position,
                   velocity=None,
                   affine_velocity=None,
                   volume_ratio=None):
        n, dim = self.n_particles, self.dim

        def as_array(a, shape):
            a = np.ascontiguousarray(a, dtype=np.float32)
            if a.shape != shape:
                raise ValueError(f'Expected shape {shape}, got {a.shape}.')
            return a

        position = as_array(position, (n, dim))
        if position.min() < self.lower_limit or position.max(
        ) > self.upper_limit:
            raise ValueError(
                f'Positions must lie in [{self.lower_limit}, '
                f'{self.upper_limit}] on every axis.')
        if velocity is None:
            velocity = np.zeros((n, dim), dtype=np.float32)
        if affine_velocity is None:
            affine_velocity = np.zeros((n, dim, dim), dtype=np.float32)
        if volume_ratio is None:
            volume_ratio = np.ones((n, ), dtype=np.float32)

        velocity = as_array(velocity, (n, dim))
        affine_velocity = as_array(affine_velocity, (n, dim, dim))
        volume_ratio = as_array(volume_ratio, (n, ))

        self.x.from_numpy(position)
        self.v.from_numpy(velocity)
        self.C.from_numpy(affine_velocity)
        self.J.from_numpy(volume_ratio)
