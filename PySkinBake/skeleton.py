from typing import Dict, Iterator, List, Optional, Sequence
import logging

import numpy as np

from PySkinBake.common_types import BakeError, MATRIX_DTYPE, to_matrix4
from PySkinBake.document import BindData, Document, Joint

logger = logging.getLogger(__name__)


class InvalidBoneLinkError(BakeError):
    """
    The joints do not form a single tree with parents listed before their children
    """


def bind_data_joint_name(skeleton_name: Optional[str], joint_name: str) -> str:
    """
    Name a bind data joint carries in the skeleton hierarchy.
    Exporters prefix the scene node names with the armature name, spaces replaced by underscores.
    """
    if skeleton_name is None:
        return joint_name
    return f"{skeleton_name.replace(' ', '_')}_{joint_name}"


class Bone:
    """
    Represents a bone in the bone hierarchy of the skeleton
    """
    name_index: int  # index into Skeleton.joint_names
    parent_name_index: Optional[int]  # None for the root
    children: List['Bone']
    inverse_bind_pose: np.ndarray  # bind pose global space to bone local space
    vertices_attached: bool  # whether the bone deforms any vertex and so has a final transform
    output_slot: Optional[int]  # index of the final transform, set iff vertices_attached

    def __init__(self, name_index: int, parent_name_index: Optional[int], inverse_bind_pose: np.ndarray,
                 vertices_attached: bool = False, output_slot: Optional[int] = None):
        self.name_index = name_index
        self.parent_name_index = parent_name_index
        self.children = []
        self.inverse_bind_pose = np.asarray(inverse_bind_pose, dtype=MATRIX_DTYPE)
        self.vertices_attached = vertices_attached
        self.output_slot = output_slot

    def find(self, name_index: int) -> Optional['Bone']:
        if self.name_index == name_index:
            return self
        for child in self.children:
            bone = child.find(name_index)
            if bone is not None:
                return bone
        return None

    def walk(self) -> Iterator['Bone']:
        """Depth first, parents before children."""
        yield self
        for child in self.children:
            yield from child.walk()

    def __eq__(self, other):
        if not isinstance(other, Bone):
            return NotImplemented
        return (self.name_index == other.name_index
                and self.parent_name_index == other.parent_name_index
                and self.vertices_attached == other.vertices_attached
                and self.output_slot == other.output_slot
                and np.array_equal(self.inverse_bind_pose, other.inverse_bind_pose)
                and self.children == other.children)

    def __repr__(self):
        return f"Bone(name_index={self.name_index}, output_slot={self.output_slot}, children={len(self.children)})"


class Skeleton:
    """
    Bind pose hierarchy shared by all the clips of an asset.
    Bones refer to their names through indexes into joint_names.
    """
    root: Optional[Bone]
    joint_names: List[str]

    def __init__(self):
        self.root = None
        self.joint_names = []
        self._name_indexes: Dict[str, int] = {}

    def add(self, name: str, bone: Bone):
        """
        Inserts bone below its parent. The parent has to be in the tree already.
        """
        if bone.parent_name_index is not None:
            parent = self.find(bone.parent_name_index)
            if parent is None:
                raise InvalidBoneLinkError(f"Bone '{name}' references parent {bone.parent_name_index} "
                                           "which is not part of the skeleton yet")
            parent.children.append(bone)
        else:
            if self.root is not None:
                raise InvalidBoneLinkError(f"Bone '{name}' is a second root, "
                                           f"'{self.joint_names[self.root.name_index]}' is already the root")
            self.root = bone

        self._name_indexes.setdefault(name, bone.name_index)
        self.joint_names.append(name)

    def find(self, name_index: int) -> Optional[Bone]:
        if self.root is None:
            return None
        return self.root.find(name_index)

    def contains(self, name_index: int) -> bool:
        return self.find(name_index) is not None

    def index_of(self, name: str) -> Optional[int]:
        return self._name_indexes.get(name)

    def name_of(self, bone: Bone) -> str:
        return self.joint_names[bone.name_index]

    def bones(self) -> Iterator[Bone]:
        if self.root is not None:
            yield from self.root.walk()

    def num_vertices_attached_bones(self) -> int:
        return sum(1 for bone in self.bones() if bone.vertices_attached)

    def __eq__(self, other):
        if not isinstance(other, Skeleton):
            return NotImplemented
        return self.joint_names == other.joint_names and self.root == other.root

    def __repr__(self):
        return f"Skeleton(joints={len(self.joint_names)}, attached={self.num_vertices_attached_bones()})"

    @classmethod
    def from_tree(cls, joint_names: Sequence[str], root: Optional[Bone]) -> 'Skeleton':
        skeleton = cls()
        skeleton.root = root
        skeleton.joint_names = list(joint_names)
        for name_index, name in enumerate(skeleton.joint_names):
            skeleton._name_indexes.setdefault(name, name_index)
        return skeleton

    @classmethod
    def from_bind_data(cls, joints: Sequence[Joint], bind_data: BindData) -> 'Skeleton':
        """
        Builds the bone tree of joints and binds it to the skin.

        A joint found in the bind data gets the bind data inverse bind pose and the bind data position as output
        slot. Any other joint inherits the inverse bind pose of the last bound joint seen before it, or identity
        when there is none yet.
        :param joints: joints in bind pose order, parents first
        :param bind_data: skin the joints are matched against
        :return: the skeleton
        """
        skeleton = cls()
        bind_names = [bind_data_joint_name(bind_data.skeleton_name, name) for name in bind_data.joint_names]
        previous_inverse_bind_pose = np.identity(4, dtype=MATRIX_DTYPE)

        for name_index, joint in enumerate(joints):
            if joint.index != name_index:
                raise InvalidBoneLinkError(f"Joint '{joint.name}' has index {joint.index} "
                                           f"but is listed at position {name_index}")
            parent_name_index = None if joint.is_root else joint.parent_index

            try:
                output_slot = bind_names.index(joint.name)
            except ValueError:
                output_slot = None

            if output_slot is not None:
                inverse_bind_pose = to_matrix4(bind_data.inverse_bind_poses[output_slot])
                previous_inverse_bind_pose = inverse_bind_pose
            else:
                inverse_bind_pose = previous_inverse_bind_pose
                logger.debug(f"Joint '{joint.name}' has no vertices attached")

            bone = Bone(name_index, parent_name_index, inverse_bind_pose,
                        vertices_attached=output_slot is not None, output_slot=output_slot)
            skeleton.add(joint.name, bone)

        slots = sorted(bone.output_slot for bone in skeleton.bones() if bone.vertices_attached)
        if slots != list(range(len(slots))):
            raise InvalidBoneLinkError(f"Output slots {slots} are not densely packed, "
                                       "the bind data references joints missing from the skeleton")

        logger.info(f"Built skeleton of {len(skeleton.joint_names)} bones, "
                    f"{len(slots)} with vertices attached")
        return skeleton

    @classmethod
    def from_document(cls, document: Document) -> Optional['Skeleton']:
        """
        Builds the first skeleton of document against its first bind data
        :return: None if the document has no skeleton or no bind data
        """
        if not document.skeletons or not document.bind_data:
            return None
        return cls.from_bind_data(document.skeletons[0], document.bind_data[0])
