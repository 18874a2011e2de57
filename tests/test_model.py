"""Tests for mesh extraction"""

import numpy as np
import pytest

from PySkinBake.document import Document, Geometry, MeshObject, Primitive, VertexWeight
from PySkinBake.model import (EmptyFileError, IncompleteTriangle, InvalidVertexWeightError, PrimitiveNotTrianglesError,
                              Vertices, build_vertices)

from conftest import quad_object, rig_document


def test_build_static_vertices():
    """Triangles are flattened with one vertex per corner"""
    vertices = build_vertices(Document(objects=[quad_object()]))

    assert vertices.positions.shape == (6, 3)
    assert np.allclose(vertices.positions[3:6], [(0, 0, 0), (1, 1, 0), (0, 1, 0)])
    assert np.allclose(vertices.normals, [(0, 0, 1)] * 6)
    assert np.allclose(vertices.texcoords[1], (1, 0))
    assert vertices.indices.tolist() == [0, 1, 2, 3, 4, 5]
    assert vertices.weights is None
    assert vertices.bone_ids is None
    assert not vertices.skinned


def test_build_skinned_vertices(document):
    """Each corner carries up to two influences of its position"""
    vertices = build_vertices(document)

    assert vertices.skinned
    assert vertices.weights.shape == (6, 2)
    # corners of the first triangle are positions 0, 1, 2
    assert vertices.bone_ids[0:3].tolist() == [[0, 0], [1, 2], [2, 0]]
    assert np.allclose(vertices.weights[0:3], [[1.0, 0.0], [0.75, 0.25], [1.0, 0.0]])
    # second triangle: positions 0, 2, 3
    assert vertices.bone_ids[5].tolist() == [1, 0]


def test_non_triangle_primitive():
    """Only triangle lists can be baked"""
    with pytest.raises(PrimitiveNotTrianglesError):
        build_vertices(rig_document(kind='polylist'))


def test_no_mesh_object():
    with pytest.raises(EmptyFileError):
        build_vertices(Document())


def test_triangle_out_of_range():
    """Triangles referencing missing positions are refused"""
    mesh_object = MeshObject("Broken", vertices=[(0, 0, 0)], normals=[(0, 0, 1)], tex_vertices=[(0, 0)],
                             geometry=[Geometry([Primitive('triangles', [(0, 1, 2)], [(0, 0, 0)], [(0, 0, 0)])])])

    with pytest.raises(IncompleteTriangle):
        build_vertices(Document(objects=[mesh_object]))


def test_triangles_without_normals():
    mesh_object = MeshObject("Flat", vertices=[(0, 0, 0)] * 3, tex_vertices=[(0, 0)],
                             geometry=[Geometry([Primitive('triangles', [(0, 1, 2)], None, [(0, 0, 0)])])])

    with pytest.raises(IncompleteTriangle):
        build_vertices(Document(objects=[mesh_object]))


def test_vertices_equality(document):
    """Vertices compare field for field"""
    a = build_vertices(document)
    b = build_vertices(rig_document())
    assert a == b

    b.positions[0, 0] = 42.0
    assert a != b
    assert build_vertices(Document(objects=[quad_object()])) != a


def test_empty_geometry():
    vertices = build_vertices(Document(objects=[MeshObject("Empty")]))

    assert len(vertices.positions) == 0
    assert vertices == Vertices(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros((0, 2)), [])


@pytest.mark.parametrize("vertex_weight", [VertexWeight(0, 0, 99), VertexWeight(99, 0, 0), VertexWeight(0, 99, 0),
                                           VertexWeight(-1, 0, 0)])
def test_vertex_weight_out_of_range(vertex_weight):
    """Vertex weights referencing missing vertices, joints or weights are refused"""
    document = rig_document()
    document.bind_data[0].vertex_weights.append(vertex_weight)

    with pytest.raises(InvalidVertexWeightError):
        build_vertices(document)
