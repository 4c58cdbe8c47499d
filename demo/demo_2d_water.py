import taichi as ti
import utils
from mpm_fluid import FluidMPMSolver, ParticleIO
import argparse


def parse_args():
    parser = argparse.ArgumentParser()
    parser.add_argument('-o', '--out-dir', type=str, help='Output folder prefix')
    parser.add_argument('-f',
                        '--frames',
                        type=int,
                        default=2000,
                        help='Number of frames')
    parser.add_argument('-s',
                        '--stat',
                        action='store_true',
                        help='Print per-frame statistics')
    args = parser.parse_args()
    print(args)
    return args


args = parse_args()

write_to_disk = args.out_dir is not None
if write_to_disk:
    out_dir = utils.create_output_folder(args.out_dir)
    print(f'Writing frames to {out_dir}')

ti.init(arch=ti.cpu)

gui = ti.GUI("MLS-MPM Water", res=512, background_color=0x112F41)

mpm = FluidMPMSolver()

print("[Hint] Drag with the left mouse button to push the fluid, "
      "press R to reset.")

for frame in range(args.frames):
    if not gui.running:
        break
    for e in gui.get_events(ti.GUI.PRESS):
        if e.key == 'r':
            mpm.reset()
        elif e.key == ti.GUI.ESCAPE:
            gui.running = False

    # GUI cursor coordinates are already in the normalized domain
    if gui.is_pressed(ti.GUI.LMB):
        mpm.set_interaction(gui.get_cursor_pos())
    else:
        mpm.release_interaction()

    mpm.advance_frame(print_stat=args.stat)

    particles = mpm.particle_info()
    if write_to_disk:
        ParticleIO.write_particles(mpm, f'{out_dir}/{frame:06d}.npz')
    gui.circles(particles['position'], radius=1.5, color=0x068587)
    gui.show()
