from functools import total_ordering
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import math

import numpy as np

from PySkinBake.common_types import BakeError, MATRIX_DTYPE, Transform, to_matrix4
from PySkinBake.document import AnimationTrack, Document
from PySkinBake.skeleton import Bone, Skeleton

logger = logging.getLogger(__name__)


class MissingBonePoseError(BakeError):
    """
    A bone of the skeleton has no local pose to compose
    """


class TrackMismatchError(BakeError):
    """
    Animation tracks that cannot be resampled on a common time axis
    """


class SkeletonNotEqualError(BakeError):
    """
    Animations were baked against different skeletons
    """


@total_ordering
class Keyframe:
    """
    Final transforms of every bone with vertices attached at start_time, indexed by output slot.
    Keyframes are ordered by start_time only.
    """
    transforms: np.ndarray  # (num attached bones, 4, 4)
    start_time: float

    def __init__(self, transforms: np.ndarray, start_time: float):
        self.transforms = transforms
        self.start_time = start_time

    def __eq__(self, other):
        if not isinstance(other, Keyframe):
            return NotImplemented
        return self.start_time == other.start_time

    def __lt__(self, other):
        if not isinstance(other, Keyframe):
            return NotImplemented
        return self.start_time < other.start_time

    __hash__ = None

    def __repr__(self):
        return f"Keyframe(t={self.start_time:.3f}, transforms={len(self.transforms)})"


def compute_final_transforms(skeleton: Skeleton, local_transforms: Dict[int, np.ndarray],
                             global_inverse_transform: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Composes the local poses down the hierarchy into the final skinning matrices
    :param skeleton: skeleton the poses belong to
    :param local_transforms: local pose of every bone, keyed by name index
    :param global_inverse_transform: applied on top of every final transform, identity by default
    :return: one matrix per bone with vertices attached, indexed by output slot
    """
    if global_inverse_transform is None:
        global_inverse_transform = np.identity(4, dtype=MATRIX_DTYPE)

    final_transforms = np.tile(np.identity(4, dtype=MATRIX_DTYPE), (skeleton.num_vertices_attached_bones(), 1, 1))
    if skeleton.root is not None:
        _compose(skeleton, skeleton.root, np.identity(4, dtype=MATRIX_DTYPE), local_transforms,
                 global_inverse_transform, final_transforms)
    return final_transforms


def _compose(skeleton: Skeleton, bone: Bone, parent_transform: np.ndarray, local_transforms: Dict[int, np.ndarray],
             global_inverse_transform: np.ndarray, final_transforms: np.ndarray):
    try:
        bone_local_transform = local_transforms[bone.name_index]
    except KeyError:
        raise MissingBonePoseError(f"No local pose for bone '{skeleton.name_of(bone)}'")

    transform = parent_transform @ bone_local_transform
    if bone.vertices_attached:
        final_transforms[bone.output_slot] = global_inverse_transform @ transform @ bone.inverse_bind_pose

    for child in bone.children:
        _compose(skeleton, child, transform, local_transforms, global_inverse_transform, final_transforms)


def _check_tracks(tracks: Sequence[AnimationTrack]) -> np.ndarray:
    if not tracks:
        raise TrackMismatchError("At least one animation track is needed")

    sample_times = np.asarray(tracks[0].sample_times, dtype=np.float64)
    if len(sample_times) < 2:
        raise TrackMismatchError(f"Track '{tracks[0].target}' needs at least two samples, "
                                 f"it has {len(sample_times)}")
    if np.any(np.diff(sample_times) < 0):
        raise TrackMismatchError(f"Sample times of track '{tracks[0].target}' are not in ascending order")

    for track in tracks:
        if len(track.sample_poses) != len(track.sample_times):
            raise TrackMismatchError(f"Track '{track.target}' has {len(track.sample_times)} sample times "
                                     f"but {len(track.sample_poses)} poses")
        if not np.array_equal(np.asarray(track.sample_times, dtype=np.float64), sample_times):
            raise TrackMismatchError(f"Track '{track.target}' is not sampled at the same times "
                                     f"as '{tracks[0].target}'")
    return sample_times


def _decompose_tracks(skeleton: Skeleton, tracks: Sequence[AnimationTrack]) -> List[Tuple[int, List[Transform]]]:
    poses = []
    for track in tracks:
        name_index = skeleton.index_of(track.joint_name)
        if name_index is None:
            logger.debug(f"Ignoring track '{track.target}', its joint is not part of the skeleton")
            continue
        poses.append((name_index, [Transform.from_matrix(to_matrix4(pose)) for pose in track.sample_poses]))
    return poses


def _bake_keyframe(skeleton: Skeleton, poses: List[Tuple[int, List[Transform]]], start_time: float,
                   segment: int, alpha: float) -> Keyframe:
    local_transforms = {}
    for name_index, transforms in poses:
        local_transforms[name_index] = transforms[segment - 1].interpolate(transforms[segment], alpha).to_matrix()
    return Keyframe(compute_final_transforms(skeleton, local_transforms), start_time)


class Animation:
    """
    A clip resampled at a fixed frame time.
    keys holds one keyframe every frame_time from 0 up to duration, plus a last one exactly at duration.
    """
    duration: float
    keys: List[Keyframe]
    frame_time: float

    def __init__(self, duration: float, keys: List[Keyframe], frame_time: float):
        self.duration = duration
        self.keys = keys
        self.frame_time = frame_time

    @classmethod
    def bake(cls, skeleton: Skeleton, tracks: Sequence[AnimationTrack], frame_time: float) -> 'Animation':
        """
        Resamples the tracks every frame_time and composes the hierarchy at each sample.

        All tracks have to share the sample times of the first one. The timeline starts at the first sample time.
        :param skeleton: skeleton the tracks animate, every bone needs a track
        :param tracks: one track per joint
        :param frame_time: seconds between two baked keyframes
        :return: the baked animation
        """
        if frame_time <= 0.0:
            raise ValueError(f"frame_time has to be positive, got {frame_time}")

        sample_times = _check_tracks(tracks)
        poses = _decompose_tracks(skeleton, tracks)
        first_time = float(sample_times[0])
        duration = float(sample_times[-1]) - first_time
        last_segment = len(sample_times) - 1

        keys = []
        segment = 1
        for step in range(math.floor(duration / frame_time) + 1):
            time = step * frame_time
            sample_time = first_time + time
            while segment < last_segment and sample_time >= sample_times[segment]:
                segment += 1

            segment_start = sample_times[segment - 1]
            segment_duration = sample_times[segment] - segment_start
            alpha = (sample_time - segment_start) / segment_duration if segment_duration > 0.0 else 0.0
            keys.append(_bake_keyframe(skeleton, poses, time, segment, min(float(alpha), 1.0)))

        keys.append(_bake_keyframe(skeleton, poses, duration, last_segment, 1.0))

        logger.debug(f"Baked {len(keys)} keyframes over {duration:.3f}s")
        return cls(duration, keys, frame_time)

    def query(self, time: float) -> np.ndarray:
        """
        Final transforms to use at time, clamped to the clip. The returned array must not be modified.
        """
        if time <= 0.0:
            key = self.keys[0]
        elif time >= self.duration:
            key = self.keys[-1]
        else:
            key = self.keys[int(time / self.frame_time)]
        return key.transforms

    def __repr__(self):
        return f"Animation(duration={self.duration:.2f}s, keys={len(self.keys)}, frame_time={self.frame_time:.4f})"


class Animations:
    """
    Named clips sharing one skeleton
    """
    clips: Dict[str, Animation]
    skeleton: Skeleton

    def __init__(self, skeleton: Skeleton, clips: Optional[Dict[str, Animation]] = None):
        self.skeleton = skeleton
        self.clips = {} if clips is None else dict(clips)

    @classmethod
    def from_document(cls, name: str, document: Document, frame_time: float) -> Optional['Animations']:
        """
        Bakes the animation tracks of document into a single clip called name
        :return: None if the document has no skeleton, no bind data or no animation
        """
        skeleton = Skeleton.from_document(document)
        if skeleton is None or not document.animations:
            return None

        animation = Animation.bake(skeleton, document.animations, frame_time)
        logger.info(f"Baked clip '{name}': {animation}")
        return cls(skeleton, {name: animation})

    def merge(self, other: 'Animations'):
        """
        Adds the single clip of other, replacing a clip of the same name
        """
        if self.skeleton != other.skeleton:
            raise SkeletonNotEqualError("Cannot merge animations baked against different skeletons")
        if len(other.clips) != 1:
            raise ValueError(f"Can only merge a single clip, got {len(other.clips)}")

        for name, animation in other.clips.items():
            if name in self.clips:
                logger.warning(f"Replacing clip '{name}'")
            self.clips[name] = animation

    def animation(self, name: str) -> Optional[Animation]:
        return self.clips.get(name)

    def query(self, name: str, time: float) -> np.ndarray:
        return self.clips[name].query(time)

    def __repr__(self):
        return f"Animations(clips={sorted(self.clips)}, skeleton={self.skeleton})"
