"""
Binary asset writer.

Layout, all integers little endian u32 and all floats f64:

    asset      := u32 payload size, payload
    payload    := vertices, u8 has animations, [animations]
    vertices   := array positions, array normals, array texcoords, array indices,
                  optional array weights, optional array bone_ids
    animations := skeleton, u32 clip count, clip*
    skeleton   := u32 joint count, string joint name*, u8 has root, [bone]
    bone       := u32 name index, optional u32 parent name index, array inverse bind pose,
                  u8 vertices attached, optional u32 output slot, u32 child count, bone*
    clip       := string name, f64 duration, f64 frame time, u32 key count, (f64 start time, array transforms)*
    array      := string dtype, u32 ndim, u32 dimension*, raw bytes
    string     := u32 byte count, utf-8 bytes
    optional x := u8 present, [x]
"""
from pathlib import Path
import logging

from PySkinBake.animation import Animation, Animations
from PySkinBake.model import Data, Vertices
from PySkinBake.skeleton import Bone, Skeleton
from PySkinBake.write._common import BlobWriter

logger = logging.getLogger(__name__)


def _write_vertices(vertices: Vertices, writer: BlobWriter):
    writer.write_array(vertices.positions)
    writer.write_array(vertices.normals)
    writer.write_array(vertices.texcoords)
    writer.write_array(vertices.indices)
    writer.write_optional_array(vertices.weights)
    writer.write_optional_array(vertices.bone_ids)


def _write_bone(bone: Bone, writer: BlobWriter):
    writer.write_u32(bone.name_index)
    writer.write_optional_u32(bone.parent_name_index)
    writer.write_array(bone.inverse_bind_pose)
    writer.write_flag(bone.vertices_attached)
    writer.write_optional_u32(bone.output_slot)
    writer.write_u32(len(bone.children))
    for child in bone.children:
        _write_bone(child, writer)


def _write_skeleton(skeleton: Skeleton, writer: BlobWriter):
    writer.write_u32(len(skeleton.joint_names))
    for name in skeleton.joint_names:
        writer.write_string(name)
    writer.write_flag(skeleton.root is not None)
    if skeleton.root is not None:
        _write_bone(skeleton.root, writer)


def _write_clip(name: str, animation: Animation, writer: BlobWriter):
    writer.write_string(name)
    writer.write_f64(animation.duration)
    writer.write_f64(animation.frame_time)
    writer.write_u32(len(animation.keys))
    for key in animation.keys:
        writer.write_f64(key.start_time)
        writer.write_array(key.transforms)


def _write_animations(animations: Animations, writer: BlobWriter):
    _write_skeleton(animations.skeleton, writer)
    writer.write_u32(len(animations.clips))
    for name, animation in animations.clips.items():
        _write_clip(name, animation, writer)


def serialize(data: Data) -> bytes:
    payload = BlobWriter()
    _write_vertices(data.vertices, payload)
    payload.write_flag(data.animations is not None)
    if data.animations is not None:
        _write_animations(data.animations, payload)
    payload = payload.getvalue()

    blob = BlobWriter()
    blob.write_u32(len(payload))
    return blob.getvalue() + payload


def write_asset(data: Data, filepath: Path):
    """
    Writes the baked asset to filepath, replacing any existing file
    :param data: asset to write
    :param filepath: destination file
    """
    blob = serialize(data)
    with Path(filepath).open('wb') as file_writer:
        logger.info(f"Writing {len(blob)} bytes to {filepath}")
        file_writer.write(blob)
