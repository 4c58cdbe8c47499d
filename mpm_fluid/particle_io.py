import time

import numpy as np


def write_point_cloud(fn, x, volume_ratio, z=0.5):
    """Write 2D particles as a binary PLY point cloud lifted onto plane `z`."""
    num_particles = len(x)
    data = np.empty(num_particles,
                    dtype=[('x', '<f4'), ('y', '<f4'), ('z', '<f4'),
                           ('volume_ratio', '<f4')])
    data['x'] = x[:, 0]
    data['y'] = x[:, 1]
    data['z'] = z
    data['volume_ratio'] = volume_ratio
    with open(fn, 'wb') as f:
        header = f"""ply
format binary_little_endian 1.0
comment Created by taichi
element vertex {num_particles}
property float x
property float y
property float z
property float volume_ratio
end_header
"""
        f.write(str.encode(header))
        f.write(data.tobytes())


class ParticleIO:
    v_bits = 8
    x_bits = 32 - v_bits

    @staticmethod
    def write_particles(solver, fn):
        t = time.time()
        particles = solver.particle_info()
        x = particles['position']
        v = particles['velocity']
        n_particles, dim = x.shape

        x_and_v = np.ndarray((n_particles, dim), dtype=np.uint32)
        x_max = 2**ParticleIO.x_bits - 1
        v_max = 2**ParticleIO.v_bits - 1
        # Value ranges of x and v components, for quantization
        ranges = np.ndarray((2, dim, 2), dtype=np.float32)

        for d in range(dim):
            np_x = x[:, d].astype(np.float64)
            np_v = v[:, d].astype(np.float64)
            ranges[0, d] = [np.min(np_x), np.max(np_x)]
            ranges[1, d] = [np.min(np_v), np.max(np_v)]

            # Avoid too narrow ranges
            for c in range(2):
                ranges[c, d, 1] = max(ranges[c, d, 0] + 1e-5, ranges[c, d, 1])
            np_x = np.clip((np_x - ranges[0, d, 0]) *
                           (1 / (ranges[0, d, 1] - ranges[0, d, 0])) * x_max +
                           0.499, 0, x_max).astype(np.uint32)
            np_v = np.clip((np_v - ranges[1, d, 0]) *
                           (1 / (ranges[1, d, 1] - ranges[1, d, 0])) * v_max +
                           0.499, 0, v_max).astype(np.uint32)
            x_and_v[:, d] = (np_x << ParticleIO.v_bits) + np_v

        np.savez(fn,
                 ranges=ranges,
                 x_and_v=x_and_v,
                 volume_ratio=particles['volume_ratio'].astype(np.float32))

        print(f'Writing to disk: {time.time() - t:.3f} s')

    @staticmethod
    def read_particles(fn):
        with np.load(fn) as data:
            ranges = data['ranges']
            x_and_v = data['x_and_v']
            volume_ratio = data['volume_ratio']
        dim = x_and_v.shape[1]
        x = (x_and_v >> ParticleIO.v_bits).astype(np.float32) / (
            (2**ParticleIO.x_bits - 1))
        for c in range(dim):
            x[:, c] = x[:, c] * (ranges[0, c, 1] -
                                 ranges[0, c, 0]) + ranges[0, c, 0]
        v = (x_and_v & (2**ParticleIO.v_bits - 1)).astype(
            np.float32) / (2**ParticleIO.v_bits - 1)
        for c in range(dim):
            v[:, c] = v[:, c] * (ranges[1, c, 1] -
                                 ranges[1, c, 0]) + ranges[1, c, 0]
        return x, v, volume_ratio

    @staticmethod
    def convert_particle_to_ply(fns):
        for fn in fns:
            print(f'Converting {fn}...')
            x, _, volume_ratio = ParticleIO.read_particles(fn)
            write_point_cloud(fn + ".ply", x, volume_ratio)


if __name__ == '__main__':
    import sys
    ParticleIO.convert_particle_to_ply(sys.argv[1:])
