from pathlib import Path
import logging

from PySkinBake.animation import Animation, Animations, Keyframe
from PySkinBake.model import Data, Vertices
from PySkinBake.read._common import BlobReader, DeserializeError
from PySkinBake.skeleton import Bone, Skeleton

logger = logging.getLogger(__name__)


def _read_vertices(reader: BlobReader) -> Vertices:
    positions = reader.read_array()
    normals = reader.read_array()
    texcoords = reader.read_array()
    indices = reader.read_array()
    weights = reader.read_optional_array()
    bone_ids = reader.read_optional_array()
    try:
        return Vertices(positions, normals, texcoords, indices, weights=weights, bone_ids=bone_ids)
    except ValueError as error:
        raise DeserializeError(f"Invalid vertex arrays: {error}")


def _read_bone(reader: BlobReader) -> Bone:
    name_index = reader.read_u32()
    parent_name_index = reader.read_optional_u32()
    inverse_bind_pose = reader.read_array()
    if inverse_bind_pose.shape != (4, 4):
        raise DeserializeError(f"Inverse bind pose of bone {name_index} has shape {inverse_bind_pose.shape}")
    vertices_attached = reader.read_flag()
    output_slot = reader.read_optional_u32()

    bone = Bone(name_index, parent_name_index, inverse_bind_pose,
                vertices_attached=vertices_attached, output_slot=output_slot)
    for _ in range(reader.read_u32()):
        bone.children.append(_read_bone(reader))
    return bone


def _read_skeleton(reader: BlobReader) -> Skeleton:
    joint_names = [reader.read_string() for _ in range(reader.read_u32())]
    root = _read_bone(reader) if reader.read_flag() else None
    return Skeleton.from_tree(joint_names, root)


def _read_clip(reader: BlobReader):
    name = reader.read_string()
    duration = reader.read_f64()
    frame_time = reader.read_f64()
    keys = []
    for _ in range(reader.read_u32()):
        start_time = reader.read_f64()
        keys.append(Keyframe(reader.read_array(), start_time))
    return name, Animation(duration, keys, frame_time)


def _read_animations(reader: BlobReader) -> Animations:
    skeleton = _read_skeleton(reader)
    animations = Animations(skeleton)
    for _ in range(reader.read_u32()):
        name, animation = _read_clip(reader)
        animations.clips[name] = animation
    return animations


def deserialize(blob: bytes) -> Data:
    header = BlobReader(blob)
    payload_size = header.read_u32()
    reader = BlobReader(header.read_bytes(payload_size))
    if not header.at_end():
        raise DeserializeError(f"{len(blob) - header.offset} trailing bytes after the payload")

    vertices = _read_vertices(reader)
    animations = _read_animations(reader) if reader.read_flag() else None
    if not reader.at_end():
        raise DeserializeError(f"Payload has {len(reader.buffer) - reader.offset} unread bytes")
    return Data(vertices, animations)


def read_asset(filepath: Path) -> Data:
    """
    Reads a baked asset written by write_asset
    :param filepath: path to the asset
    :return: the asset that is in the given file
    """
    filepath = Path(filepath)
    with filepath.open('rb') as file_reader:
        logger.info(f"Reading baked asset from {filepath}")
        return deserialize(file_reader.read())
