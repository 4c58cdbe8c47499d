"""Construction-time constants of the fluid solver.

All values are fixed once a solver is built. Use `FluidConfig.replace` to
derive a variant (e.g. zero gravity for a test scene).
"""
import dataclasses
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FluidConfig:
    n_particles: int = 12000
    n_grid: int = 64
    dt: float = 2e-4
    # Rest density, particle rest area is (dx / 2)^2
    p_rho: float = 1.0
    # Magnitude of gravitational acceleration along -y
    gravity: float = 9.8
    # Wall thickness in grid cells
    bound: int = 3
    bulk_modulus: float = 1000.0
    # Cap on negative pressure (tension)
    tension_limit: float = 0.1
    # Particles are seeded uniformly in [seed_lower, seed_upper]^2
    seed_lower: float = 0.15
    seed_upper: float = 0.85
    interaction_radius: float = 0.05
    interaction_strength: float = 200.0
    substeps_per_frame: int = 25
    # None keeps J unclamped
    min_volume_ratio: Optional[float] = None

    def __post_init__(self):
        if self.n_particles <= 0:
            raise ValueError('n_particles must be positive.')
        if self.n_grid <= 0:
            raise ValueError('n_grid must be positive.')
        if self.dt <= 0:
            raise ValueError('dt must be positive.')
        if self.p_rho <= 0:
            raise ValueError('p_rho must be positive.')
        if self.bound < 2 or 2 * self.bound >= self.n_grid:
            raise ValueError(
                f'bound must be in [2, {self.n_grid // 2}) cells, '
                f'got {self.bound}.')
        if self.tension_limit < 0:
            raise ValueError('tension_limit must be non-negative.')
        if self.interaction_radius < 0 or self.interaction_strength < 0:
            raise ValueError('Interaction radius and strength must be '
                             'non-negative.')
        if self.substeps_per_frame <= 0:
            raise ValueError('substeps_per_frame must be positive.')
        if not (self.lower_limit <= self.seed_lower < self.seed_upper <=
                self.upper_limit):
            raise ValueError(
                f'Seeding range [{self.seed_lower}, {self.seed_upper}] must '
                f'lie inside [{self.lower_limit}, {self.upper_limit}].')
        if self.min_volume_ratio is not None and self.min_volume_ratio <= 0:
            raise ValueError('min_volume_ratio must be positive.')

    @property
    def dx(self):
        return 1.0 / self.n_grid

    @property
    def inv_dx(self):
        return float(self.n_grid)

    @property
    def p_vol(self):
        return (self.dx * 0.5)**2

    @property
    def p_mass(self):
        return self.p_vol * self.p_rho

    @property
    def lower_limit(self):
        return self.bound * self.dx

    @property
    def upper_limit(self):
        return 1 - self.bound * self.dx

    def replace(self, **overrides):
        return dataclasses.replace(self, **overrides)
