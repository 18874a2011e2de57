from pathlib import Path
from typing import Callable, List
import logging

from PySkinBake.animation import Animations, SkeletonNotEqualError
from PySkinBake.common_types import BakeError
from PySkinBake.document import Document
from PySkinBake.model import Data, EmptyFileError, build_vertices
from PySkinBake.read.collada import read_document

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30.0
COLLADA_EXTENSION = '.dae'


class OpenFileError(BakeError):
    """
    A source document could not be opened or parsed
    """

    def __init__(self, path: Path):
        super().__init__(f"Could not open {path}")
        self.path = path


class VerticesNotEqualError(BakeError):
    """
    Source documents of one asset do not share the same mesh
    """


def parse_document(filepath: Path, document: Document, frame_time: float) -> Data:
    """
    Bakes one source document. Its clip is named after the file stem.
    """
    vertices = build_vertices(document)
    name = Path(filepath).stem
    if not name:
        raise EmptyFileError(f"Cannot name the clip of {filepath}")
    return Data(vertices, Animations.from_document(name, document, frame_time))


def _check_shared(data: List[Data], filepaths: List[Path]):
    first = data[0]
    for current, filepath in zip(data[1:], filepaths[1:]):
        if current.vertices != first.vertices:
            raise VerticesNotEqualError(f"{filepath} does not contain the same vertices as {filepaths[0]}")

        if (current.animations is None) != (first.animations is None):
            raise SkeletonNotEqualError(f"Only one of {filepaths[0]} and {filepath} is animated")
        if current.animations is not None and current.animations.skeleton != first.animations.skeleton:
            raise SkeletonNotEqualError(f"{filepath} does not contain the same skeleton as {filepaths[0]}")


def load(dirname: Path, fps: float = DEFAULT_FPS,
         reader: Callable[[Path], Document] = read_document) -> Data:
    """
    Bakes all the COLLADA documents of a directory into one asset.

    Every document has to contain the same mesh and, if animated, the same skeleton.
    Each document contributes one clip named after its file.
    :param dirname: directory holding the .dae files
    :param fps: rate the clips are resampled at
    :param reader: parses one file into a document
    :return: the mesh and the merged clips
    """
    dirname = Path(dirname)
    if not dirname.is_dir():
        raise NotADirectoryError(dirname)
    if fps <= 0.0:
        raise ValueError(f"fps has to be positive, got {fps}")

    filepaths = sorted(path for path in dirname.iterdir()
                       if path.is_file() and path.suffix == COLLADA_EXTENSION)
    if not filepaths:
        raise EmptyFileError(f"No {COLLADA_EXTENSION} file in {dirname}")
    logger.info(f"Loading {len(filepaths)} documents from {dirname} at {fps} fps")

    documents = []
    for filepath in filepaths:
        try:
            documents.append(reader(filepath))
        except (OSError, BakeError) as error:
            logger.error(f"Could not read {filepath}: {error}")
            raise OpenFileError(filepath) from error

    frame_time = 1.0 / fps
    data = [parse_document(filepath, document, frame_time) for filepath, document in zip(filepaths, documents)]
    _check_shared(data, filepaths)

    asset = data[0]
    if asset.animations is not None:
        for other in data[1:]:
            asset.animations.merge(other.animations)
        logger.info(f"Loaded {asset.vertices} with clips {sorted(asset.animations.clips)}")
    else:
        logger.info(f"Loaded static {asset.vertices}")
    return asset
