project_name = 'taichi_mpm_fluid'

version = '0.1.0'
import setuptools

classifiers = [
    'Development Status :: 3 - Alpha',
    'Topic :: Multimedia :: Graphics',
    'Topic :: Games/Entertainment :: Simulation',
    'Topic :: Scientific/Engineering :: Physics',
    'Intended Audience :: Science/Research',
    'Intended Audience :: Developers',
    'License :: OSI Approved :: MIT License',
    'Programming Language :: Python :: 3',
]

packages = setuptools.find_packages(include=['mpm_fluid', 'mpm_fluid.*'])

setuptools.setup(name=project_name,
                 packages=packages,
                 version=version,
                 description='Weakly-compressible MLS-MPM fluid in Taichi',
                 author='Taichi MPM Fluid Developers',
                 install_requires=[
                     'taichi>=1.4.0',
                     'numpy',
                 ],
                 extras_require={
                     'test': ['pytest', 'coverage'],
                 },
                 python_requires='>=3.7',
                 keywords=['graphics', 'simulation', 'mpm', 'fluid'],
                 license='MIT',
                 include_package_data=True,
                 classifiers=classifiers)
