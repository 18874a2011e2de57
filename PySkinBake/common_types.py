from typing import Sequence

import numpy as np

MATRIX_DTYPE = np.float32


class BakeError(Exception):
    """
    Base class of every error raised while loading, baking or persisting an asset
    """


def to_matrix4(values: Sequence[float]) -> np.ndarray:
    """
    Builds a 4x4 matrix from 16 values stored in row major order (D3D / COLLADA ordering)
    :param values: 16 floats, or anything numpy can reshape to (4, 4)
    :return: the matrix with the translation in its last column
    """
    return np.asarray(values, dtype=MATRIX_DTYPE).reshape(4, 4)


def _quaternion_from_matrix(m: np.ndarray) -> np.ndarray:
    # adapted from https://www.euclideanspace.com/maths/geometry/rotations/conversions/matrixToQuaternion/
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = 0.5 / np.sqrt(trace + 1.0)
        q = [0.25 / s,
             (m[2, 1] - m[1, 2]) * s,
             (m[0, 2] - m[2, 0]) * s,
             (m[1, 0] - m[0, 1]) * s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2])
        q = [(m[2, 1] - m[1, 2]) / s,
             0.25 * s,
             (m[0, 1] + m[1, 0]) / s,
             (m[0, 2] + m[2, 0]) / s]
    elif m[1, 1] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2])
        q = [(m[0, 2] - m[2, 0]) / s,
             (m[0, 1] + m[1, 0]) / s,
             0.25 * s,
             (m[1, 2] + m[2, 1]) / s]
    else:
        s = 2.0 * np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1])
        q = [(m[1, 0] - m[0, 1]) / s,
             (m[0, 2] + m[2, 0]) / s,
             (m[1, 2] + m[2, 1]) / s,
             0.25 * s]

    q = np.array(q, dtype=np.float64)
    return q / np.linalg.norm(q)


def _matrix_from_quaternion(q: np.ndarray) -> np.ndarray:
    w, x, y, z = q
    return np.array([
        [1.0 - 2.0 * (y * y + z * z), 2.0 * (x * y - w * z), 2.0 * (x * z + w * y), 0.0],
        [2.0 * (x * y + w * z), 1.0 - 2.0 * (x * x + z * z), 2.0 * (y * z - w * x), 0.0],
        [2.0 * (x * z - w * y), 2.0 * (y * z + w * x), 1.0 - 2.0 * (x * x + y * y), 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ], dtype=np.float64)


def _slerp(q0: np.ndarray, q1: np.ndarray, alpha: float) -> np.ndarray:
    dot = float(np.dot(q0, q1))
    # q and -q are the same rotation, take the shortest arc
    if dot < 0.0:
        q1 = -q1
        dot = -dot

    if dot > 0.9995:
        q = q0 + alpha * (q1 - q0)
        return q / np.linalg.norm(q)

    theta = np.arccos(dot)
    sin_theta = np.sin(theta)
    q = (np.sin((1.0 - alpha) * theta) * q0 + np.sin(alpha * theta) * q1) / sin_theta
    return q / np.linalg.norm(q)


class Transform:
    """
    Represents a 3D Transform without scale
    """
    position: np.ndarray  # position vector x y z
    rotation: np.ndarray  # unit quaternion w x y z

    def __init__(self, position=(0.0, 0.0, 0.0), rotation=(1.0, 0.0, 0.0, 0.0)):
        self.position = np.array(position, dtype=np.float64)
        rotation = np.array(rotation, dtype=np.float64)
        self.rotation = rotation / np.linalg.norm(rotation)

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> 'Transform':
        """
        Decomposes an affine matrix whose upper 3x3 block is a pure rotation.
        Scale and shear are not modelled and distort the result.
        """
        m = np.asarray(matrix, dtype=np.float64)
        transform = cls.__new__(cls)
        transform.position = m[0:3, 3].copy()
        transform.rotation = _quaternion_from_matrix(m)
        return transform

    def to_matrix(self) -> np.ndarray:
        matrix = _matrix_from_quaternion(self.rotation)
        matrix[0:3, 3] = self.position
        return matrix.astype(MATRIX_DTYPE)

    def interpolate(self, other: 'Transform', alpha: float) -> 'Transform':
        """
        Blends towards other. The position is lerped and the rotation slerped along the shortest arc.
        alpha is expected in [0, 1] and is not clamped.
        """
        transform = Transform.__new__(Transform)
        transform.position = self.position + (other.position - self.position) * alpha
        transform.rotation = _slerp(self.rotation, other.rotation, alpha)
        return transform

    def __repr__(self):
        return f"Transform(position={self.position.tolist()}, rotation={self.rotation.tolist()})"
