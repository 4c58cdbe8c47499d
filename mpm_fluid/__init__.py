from .config import FluidConfig
from .mpm_solver import FluidMPMSolver
from .particle_io import ParticleIO, write_point_cloud
