"""
Records handed over by a scene document reader.

They describe a parsed COLLADA document at the level of detail the baker needs and nothing more:
the joint hierarchy, the skin bind data, the per joint animation tracks and the raw mesh arrays.
"""
from typing import List, Optional, Sequence, Tuple

import numpy as np

ROOT_PARENT_INDEX = -1  # parent index of the root joint


class Joint:
    """
    A joint of the skeleton in bind pose order. Parents always come before their children.
    """
    index: int
    parent_index: int  # ROOT_PARENT_INDEX for the root
    name: str

    def __init__(self, index: int, parent_index: int, name: str):
        self.index = index
        self.parent_index = parent_index
        self.name = name

    @property
    def is_root(self) -> bool:
        return self.parent_index == ROOT_PARENT_INDEX

    def __repr__(self):
        return f"Joint(index={self.index}, parent_index={self.parent_index}, name='{self.name}')"


class VertexWeight:
    vertex: int  # index into the mesh object's positions
    joint: int  # index into BindData.joint_names
    weight: int  # index into BindData.weights

    def __init__(self, vertex: int, joint: int, weight: int):
        self.vertex = vertex
        self.joint = joint
        self.weight = weight


class BindData:
    """
    Skin of a mesh object: which joints deform it, their inverse bind poses and the vertex weights
    """
    skeleton_name: Optional[str]
    joint_names: List[str]
    inverse_bind_poses: List[np.ndarray]  # 4x4, one per joint name
    weights: List[float]
    vertex_weights: List[VertexWeight]

    def __init__(self, skeleton_name: Optional[str], joint_names: List[str],
                 inverse_bind_poses: Sequence[np.ndarray], weights: Sequence[float] = (),
                 vertex_weights: Sequence[VertexWeight] = ()):
        self.skeleton_name = skeleton_name
        self.joint_names = list(joint_names)
        self.inverse_bind_poses = list(inverse_bind_poses)
        self.weights = list(weights)
        self.vertex_weights = list(vertex_weights)


class AnimationTrack:
    """
    Sampled local poses of a single joint
    """
    target: str  # "<joint name>/<animated property>"
    sample_times: List[float]
    sample_poses: List[np.ndarray]  # 4x4 local matrices, one per sample time

    def __init__(self, target: str, sample_times: Sequence[float], sample_poses: Sequence[np.ndarray]):
        self.target = target
        self.sample_times = list(sample_times)
        self.sample_poses = list(sample_poses)

    @property
    def joint_name(self) -> str:
        return self.target.split('/')[0]

    def __repr__(self):
        return f"AnimationTrack(target='{self.target}', samples={len(self.sample_times)})"


class Primitive:
    """
    A primitive list of a geometry. Only 'triangles' can be baked, the other kinds are kept so they can be refused.
    """
    kind: str
    vertices: List[Tuple[int, int, int]]  # per triangle position indices
    normals: Optional[List[Tuple[int, int, int]]]
    tex_vertices: Optional[List[Tuple[int, int, int]]]

    def __init__(self, kind: str, vertices=(), normals=None, tex_vertices=None):
        self.kind = kind
        self.vertices = list(vertices)
        self.normals = None if normals is None else list(normals)
        self.tex_vertices = None if tex_vertices is None else list(tex_vertices)


class Geometry:
    primitives: List[Primitive]

    def __init__(self, primitives: Sequence[Primitive] = ()):
        self.primitives = list(primitives)


class MeshObject:
    name: str
    vertices: List[Tuple[float, float, float]]
    normals: List[Tuple[float, float, float]]
    tex_vertices: List[Tuple[float, float]]
    geometry: List[Geometry]

    def __init__(self, name: str, vertices=(), normals=(), tex_vertices=(), geometry=()):
        self.name = name
        self.vertices = list(vertices)
        self.normals = list(normals)
        self.tex_vertices = list(tex_vertices)
        self.geometry = list(geometry)


class Document:
    """
    Everything read from one source file. Empty lists mean the document does not define that part.
    """
    objects: List[MeshObject]
    skeletons: List[List[Joint]]
    bind_data: List[BindData]
    animations: List[AnimationTrack]

    def __init__(self, objects=(), skeletons=(), bind_data=(), animations=()):
        self.objects = list(objects)
        self.skeletons = [list(joints) for joints in skeletons]
        self.bind_data = list(bind_data)
        self.animations = list(animations)
