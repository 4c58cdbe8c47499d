import taichi as ti
import utils
from mpm_fluid import FluidMPMSolver
import argparse


def parse_args():
    parser = argparse.ArgumentParser()
    parser.add_argument('-f',
                        '--frames',
                        type=int,
                        default=100,
                        help='Number of frames')
    parser.add_argument('-n',
                        '--num-particles',
                        type=int,
                        default=12000,
                        help='Number of particles')
    parser.add_argument('-r',
                        '--res',
                        type=int,
                        default=64,
                        help='Grid resolution')
    args = parser.parse_args()
    print(args)
    return args


args = parse_args()

ti.init(arch=ti.cpu, kernel_profiler=True)

mpm = FluidMPMSolver(n_particles=args.num_particles, n_grid=args.res)

for frame in range(args.frames):
    mpm.advance_frame(print_stat=True)

ti.profiler.print_kernel_profiler_info()
