from typing import List, Optional, Tuple
import logging

import numpy as np

from PySkinBake.animation import Animations
from PySkinBake.common_types import BakeError
from PySkinBake.document import BindData, Document, MeshObject

logger = logging.getLogger(__name__)

MAX_INFLUENCES = 2  # bones kept per vertex, later influences are dropped
NO_BONE = 0


class EmptyFileError(BakeError):
    """
    Nothing to bake: the document has no mesh object
    """


class PrimitiveNotTrianglesError(BakeError):
    """
    The mesh contains primitives other than triangle lists
    """


class IncompleteTriangle(BakeError):
    """
    A triangle references missing vertex attributes
    """


class InvalidVertexWeightError(BakeError):
    """
    A vertex weight references a vertex, joint or weight the skin does not have
    """


class Vertices:
    """
    Static, de-indexed triangle mesh. Every triangle corner is its own vertex.
    weights and bone_ids are only set for skinned meshes.
    """
    positions: np.ndarray  # (N, 3) float32
    normals: np.ndarray  # (N, 3) float32
    texcoords: np.ndarray  # (N, 2) float32
    weights: Optional[np.ndarray]  # (N, 2) float32
    bone_ids: Optional[np.ndarray]  # (N, 2) int32, output slots of the influencing bones
    indices: np.ndarray  # (M,) uint32

    def __init__(self, positions, normals, texcoords, indices, weights=None, bone_ids=None):
        self.positions = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
        self.normals = np.asarray(normals, dtype=np.float32).reshape(-1, 3)
        self.texcoords = np.asarray(texcoords, dtype=np.float32).reshape(-1, 2)
        self.indices = np.asarray(indices, dtype=np.uint32).reshape(-1)
        self.weights = None if weights is None else np.asarray(weights, dtype=np.float32).reshape(-1, MAX_INFLUENCES)
        self.bone_ids = None if bone_ids is None else np.asarray(bone_ids, dtype=np.int32).reshape(-1, MAX_INFLUENCES)

    @property
    def skinned(self) -> bool:
        return self.weights is not None

    def __eq__(self, other):
        if not isinstance(other, Vertices):
            return NotImplemented
        return all(_optional_array_equal(getattr(self, field), getattr(other, field))
                   for field in ('positions', 'normals', 'texcoords', 'weights', 'bone_ids', 'indices'))

    __hash__ = None

    def __repr__(self):
        return f"Vertices(vertices={len(self.positions)}, indices={len(self.indices)}, skinned={self.skinned})"


def _optional_array_equal(a: Optional[np.ndarray], b: Optional[np.ndarray]) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return np.array_equal(a, b)


class Data:
    """
    A baked asset: the mesh and, for skinned meshes, the clips deforming it
    """
    vertices: Vertices
    animations: Optional[Animations]

    def __init__(self, vertices: Vertices, animations: Optional[Animations] = None):
        self.vertices = vertices
        self.animations = animations


def _influences(bind_data: BindData, num_vertices: int) -> Tuple[np.ndarray, np.ndarray]:
    weights = np.zeros((num_vertices, MAX_INFLUENCES), dtype=np.float32)
    bone_ids = np.full((num_vertices, MAX_INFLUENCES), NO_BONE, dtype=np.int32)
    counts = np.zeros(num_vertices, dtype=np.int64)

    dropped = 0
    for vertex_weight in bind_data.vertex_weights:
        if not 0 <= vertex_weight.vertex < num_vertices:
            raise InvalidVertexWeightError(f"Vertex weight references vertex {vertex_weight.vertex}, "
                                           f"the mesh has {num_vertices}")
        if not 0 <= vertex_weight.joint < len(bind_data.joint_names):
            raise InvalidVertexWeightError(f"Vertex weight references joint {vertex_weight.joint}, "
                                           f"the skin has {len(bind_data.joint_names)}")
        if not 0 <= vertex_weight.weight < len(bind_data.weights):
            raise InvalidVertexWeightError(f"Vertex weight references weight {vertex_weight.weight}, "
                                           f"the skin has {len(bind_data.weights)}")
        slot = counts[vertex_weight.vertex]
        if slot >= MAX_INFLUENCES:
            dropped += 1
            continue
        weights[vertex_weight.vertex, slot] = bind_data.weights[vertex_weight.weight]
        bone_ids[vertex_weight.vertex, slot] = vertex_weight.joint
        counts[vertex_weight.vertex] += 1

    if dropped:
        logger.debug(f"Dropped {dropped} vertex influences beyond {MAX_INFLUENCES} per vertex")
    return weights, bone_ids


def _triangle_corners(mesh_object: MeshObject):
    for geometry in mesh_object.geometry:
        for primitive in geometry.primitives:
            if primitive.kind != 'triangles':
                raise PrimitiveNotTrianglesError(f"Mesh '{mesh_object.name}' contains '{primitive.kind}', "
                                                 "only triangles are supported")
            if primitive.normals is None or primitive.tex_vertices is None:
                raise IncompleteTriangle(f"Triangles of mesh '{mesh_object.name}' have no normals or texcoords")
            if not len(primitive.vertices) == len(primitive.normals) == len(primitive.tex_vertices):
                raise IncompleteTriangle(f"Triangles of mesh '{mesh_object.name}' have "
                                         "different position, normal and texcoord counts")
            if not primitive.vertices:
                continue
            yield (np.asarray(primitive.vertices, dtype=np.int64).reshape(-1),
                   np.asarray(primitive.normals, dtype=np.int64).reshape(-1),
                   np.asarray(primitive.tex_vertices, dtype=np.int64).reshape(-1))


def build_vertices(document: Document) -> Vertices:
    """
    Flattens the triangles of the first mesh object of document
    :param document: parsed source document
    :return: the de-indexed mesh, with bone influences when the document is animated
    """
    if not document.objects:
        raise EmptyFileError("The document has no mesh object")
    mesh_object = document.objects[0]

    p = np.asarray(mesh_object.vertices, dtype=np.float32).reshape(-1, 3)
    n = np.asarray(mesh_object.normals, dtype=np.float32).reshape(-1, 3)
    t = np.asarray(mesh_object.tex_vertices, dtype=np.float32).reshape(-1, 2)

    skinned = bool(document.animations) and bool(document.bind_data)
    if skinned:
        w, b = _influences(document.bind_data[0], len(p))

    positions: List[np.ndarray] = []
    normals: List[np.ndarray] = []
    texcoords: List[np.ndarray] = []
    weights: List[np.ndarray] = []
    bone_ids: List[np.ndarray] = []
    try:
        for position_idx, normal_idx, texcoord_idx in _triangle_corners(mesh_object):
            positions.append(p[position_idx])
            normals.append(n[normal_idx])
            texcoords.append(t[texcoord_idx])
            if skinned:
                weights.append(w[position_idx])
                bone_ids.append(b[position_idx])
    except IndexError:
        raise IncompleteTriangle(f"Triangles of mesh '{mesh_object.name}' reference missing vertices")

    def stack(arrays, width, dtype):
        return np.concatenate(arrays) if arrays else np.zeros((0, width), dtype=dtype)

    positions = stack(positions, 3, np.float32)
    vertices = Vertices(positions,
                        stack(normals, 3, np.float32),
                        stack(texcoords, 2, np.float32),
                        np.arange(len(positions), dtype=np.uint32),
                        weights=stack(weights, MAX_INFLUENCES, np.float32) if skinned else None,
                        bone_ids=stack(bone_ids, MAX_INFLUENCES, np.int32) if skinned else None)
    logger.info(f"Extracted {vertices} from mesh '{mesh_object.name}'")
    return vertices
