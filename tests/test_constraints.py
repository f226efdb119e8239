import numpy as np
import pytest
import trimesh as tm

from pyacvdq.constraints import ConstraintSource, read_ids, resolve
from pyacvdq.errors import InvalidConstraintFile


def _write(tmp_path, name, text):
    p = tmp_path / name
    p.write_text(text)
    return str(p)


def test_vertex_ids_keep_file_order_and_drop_duplicates(tmp_path, grid_mesh):
    path = _write(tmp_path, "fixed.txt", "5 12 5 40\n")
    anchors = resolve(ConstraintSource("vertices", path), grid_mesh)

    assert anchors.tolist() == [5, 12, 40]
    assert anchors.read_count == 4
    assert len(anchors) == 3


def test_vertex_ids_any_whitespace(tmp_path, grid_mesh):
    path = _write(tmp_path, "fixed.txt", "40\n\t3   7\n\n1")
    anchors = resolve(ConstraintSource("vertices", path), grid_mesh)
    assert anchors.tolist() == [40, 3, 7, 1]


def test_face_ids_expand_to_sorted_unique_corners(tmp_path, grid_mesh):
    path = _write(tmp_path, "faces.txt", "0 1 0")
    anchors = resolve(ConstraintSource("faces", path), grid_mesh)

    expected = np.unique(grid_mesh.faces[[0, 1]].ravel())
    assert anchors.tolist() == expected.tolist()
    assert anchors.read_count == 3
    assert len(set(anchors.tolist())) == len(anchors)


def test_face_ids_order_does_not_matter(tmp_path):
    mesh = tm.creation.icosphere(subdivisions=2)
    face_ids = [3, 17, 42, 5, 17, 100, 64]
    a = resolve(ConstraintSource("faces", _write(tmp_path, "a.txt", " ".join(map(str, face_ids)))), mesh)
    b = resolve(
        ConstraintSource("faces", _write(tmp_path, "b.txt", " ".join(map(str, reversed(face_ids))))),
        mesh,
    )

    assert set(a.tolist()) == set(b.tolist())
    assert len(set(a.tolist())) == len(a)


def test_empty_file_gives_no_anchors(tmp_path, grid_mesh):
    anchors = resolve(ConstraintSource("vertices", _write(tmp_path, "e.txt", "")), grid_mesh)
    assert len(anchors) == 0


def test_non_integer_token_rejected(tmp_path):
    with pytest.raises(InvalidConstraintFile):
        read_ids(_write(tmp_path, "bad.txt", "1 2 three"))
    with pytest.raises(InvalidConstraintFile):
        read_ids(_write(tmp_path, "float.txt", "1 2.5"))
    with pytest.raises(InvalidConstraintFile):
        read_ids(_write(tmp_path, "neg.txt", "1 -2"))


@pytest.mark.parametrize(
    "text",
    [
        "1 99999999999999999999999",
        "1_000",
        "1e3",
        "١٢",  # Arabic-Indic digits
        "１",  # fullwidth one
    ],
)
def test_non_plain_integer_tokens_rejected(tmp_path, text):
    with pytest.raises(InvalidConstraintFile):
        read_ids(_write(tmp_path, "bad.txt", text))


def test_signed_ids_accepted(tmp_path):
    assert read_ids(_write(tmp_path, "ids.txt", "+5 0 -0")).tolist() == [5, 0, 0]


def test_missing_file_rejected(tmp_path, grid_mesh):
    with pytest.raises(InvalidConstraintFile):
        resolve(ConstraintSource("vertices", str(tmp_path / "nope.txt")), grid_mesh)


def test_out_of_range_ids_rejected(tmp_path, grid_mesh):
    with pytest.raises(InvalidConstraintFile):
        resolve(ConstraintSource("vertices", _write(tmp_path, "v.txt", "1000")), grid_mesh)
    n_faces = len(grid_mesh.faces)
    with pytest.raises(InvalidConstraintFile):
        resolve(ConstraintSource("faces", _write(tmp_path, "f.txt", str(n_faces))), grid_mesh)


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        ConstraintSource("edges", "x.txt")
