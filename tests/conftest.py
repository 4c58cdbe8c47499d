import pytest
import taichi as ti


@pytest.fixture(autouse=True)
def taichi_runtime():
    ti.init(arch=ti.cpu, random_seed=0)
    yield
    ti.reset()
