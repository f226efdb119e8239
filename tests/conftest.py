import numpy as np
import pytest
import trimesh as tm


def make_grid(nx: int = 40, ny: int = 25) -> tm.Trimesh:
    """Flat nx-by-ny vertex grid triangulated into 2*(nx-1)*(ny-1) faces."""
    xs, ys = np.meshgrid(np.arange(nx, dtype=float), np.arange(ny, dtype=float))
    V = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(nx * ny)])
    F = []
    for j in range(ny - 1):
        for i in range(nx - 1):
            a = j * nx + i
            b, c = a + 1, a + nx
            F.append([a, b, c + 1])
            F.append([a, c + 1, c])
    return tm.Trimesh(vertices=V, faces=np.asarray(F), process=False)


@pytest.fixture
def grid_mesh() -> tm.Trimesh:
    return make_grid()


@pytest.fixture
def grid_file(tmp_path, grid_mesh) -> str:
    path = tmp_path / "grid.ply"
    grid_mesh.export(str(path))
    return str(path)
