from PySkinBake.animation import Animation, Animations, Keyframe
from PySkinBake.common_types import BakeError, Transform
from PySkinBake.load import load
from PySkinBake.model import Data, Vertices
from PySkinBake.read.asset import read_asset
from PySkinBake.skeleton import Bone, Skeleton
from PySkinBake.write.asset import write_asset
