from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging
import xml.etree.ElementTree as ElementTree

import numpy as np

from PySkinBake.common_types import BakeError, to_matrix4
from PySkinBake.document import (AnimationTrack, BindData, Document, Geometry, Joint, MeshObject, Primitive,
                                 ROOT_PARENT_INDEX, VertexWeight)

logger = logging.getLogger(__name__)

PRIMITIVE_TAGS = ('triangles', 'polylist', 'polygons', 'lines', 'linestrips', 'trifans', 'tristrips')


class DocumentError(BakeError):
    """
    The COLLADA document is malformed or uses features that cannot be read
    """


def _strip_namespaces(root: ElementTree.Element):
    for element in root.iter():
        if isinstance(element.tag, str) and '}' in element.tag:
            element.tag = element.tag.split('}', 1)[1]


def _required(element: ElementTree.Element, attribute: str) -> str:
    value = element.get(attribute)
    if value is None:
        raise DocumentError(f"<{element.tag}> has no '{attribute}' attribute")
    return value


def _url(reference: str) -> str:
    return reference[1:] if reference.startswith('#') else reference


def _floats(text: Optional[str]) -> np.ndarray:
    try:
        return np.array((text or '').split(), dtype=np.float64)
    except ValueError as error:
        raise DocumentError(f"Invalid float array: {error}")


def _ints(text: Optional[str]) -> np.ndarray:
    try:
        return np.array((text or '').split(), dtype=np.int64)
    except ValueError as error:
        raise DocumentError(f"Invalid index array: {error}")


def _int_attribute(element: ElementTree.Element, attribute: str, default: int) -> int:
    value = element.get(attribute)
    if value is None:
        return default
    try:
        number = int(value)
    except ValueError:
        raise DocumentError(f"<{element.tag}> attribute '{attribute}' is not an integer: '{value}'")
    if number < 0:
        raise DocumentError(f"<{element.tag}> attribute '{attribute}' is negative: {number}")
    return number


class _Source:
    values: np.ndarray  # float values, or names for Name_array / IDREF_array sources
    stride: int

    def __init__(self, values, stride: int):
        self.values = values
        self.stride = stride

    def floats(self) -> np.ndarray:
        if not isinstance(self.values, np.ndarray):
            raise DocumentError("Expected a float_array source, found names")
        return self.values

    def rows(self) -> np.ndarray:
        values = self.floats()
        if self.stride <= 0 or len(values) % self.stride != 0:
            raise DocumentError(f"Source of {len(values)} values does not divide into rows of {self.stride}")
        return values.reshape(-1, self.stride)


def _read_sources(parent: ElementTree.Element) -> Dict[str, _Source]:
    sources = {}
    for source in parent.findall('source'):
        accessor = source.find('technique_common/accessor')
        stride = _int_attribute(accessor, 'stride', 1) if accessor is not None else 1

        float_array = source.find('float_array')
        name_array = source.find('Name_array')
        if name_array is None:
            name_array = source.find('IDREF_array')

        if float_array is not None:
            values = _floats(float_array.text)
        elif name_array is not None:
            values = (name_array.text or '').split()
        else:
            continue
        sources[_required(source, 'id')] = _Source(values, stride)
    return sources


def _source(sources: Dict[str, _Source], reference: str) -> _Source:
    try:
        return sources[_url(reference)]
    except KeyError:
        raise DocumentError(f"Reference to unknown source '{reference}'")


def _read_primitive(element: ElementTree.Element, shared_inputs: Dict[str, str]) -> Primitive:
    if element.tag != 'triangles':
        return Primitive(element.tag)

    offsets: Dict[str, int] = {}
    for shared_input in element.findall('input'):
        semantic = _required(shared_input, 'semantic')
        offsets.setdefault(semantic, _int_attribute(shared_input, 'offset', 0))
    if 'VERTEX' not in offsets:
        raise DocumentError("<triangles> without a VERTEX input")

    stride = max(offsets.values()) + 1
    p = _ints(element.findtext('p'))
    if len(p) % (3 * stride) != 0:
        raise DocumentError(f"<triangles> index count {len(p)} is not a multiple of {3 * stride}")
    corners = p.reshape(-1, stride)

    def triangles_of(offset: int) -> List[Tuple[int, int, int]]:
        return [tuple(triangle) for triangle in corners[:, offset].reshape(-1, 3).tolist()]

    vertices = triangles_of(offsets['VERTEX'])
    # attributes declared on <vertices> share the VERTEX indices
    normals = triangles_of(offsets['NORMAL']) if 'NORMAL' in offsets else (
        vertices if 'NORMAL' in shared_inputs else None)
    tex_vertices = triangles_of(offsets['TEXCOORD']) if 'TEXCOORD' in offsets else (
        vertices if 'TEXCOORD' in shared_inputs else None)
    return Primitive('triangles', vertices, normals, tex_vertices)


def _read_mesh_object(geometry: ElementTree.Element) -> Optional[MeshObject]:
    mesh = geometry.find('mesh')
    if mesh is None:
        return None
    sources = _read_sources(mesh)

    # semantic -> source of the <vertices> element
    shared_inputs: Dict[str, str] = {}
    vertices_element = mesh.find('vertices')
    if vertices_element is not None:
        for vertex_input in vertices_element.findall('input'):
            shared_inputs[_required(vertex_input, 'semantic')] = _required(vertex_input, 'source')
    if 'POSITION' not in shared_inputs:
        raise DocumentError(f"Geometry '{geometry.get('id')}' has no POSITION input")

    normal_source = shared_inputs.get('NORMAL')
    texcoord_source = shared_inputs.get('TEXCOORD')
    primitives = []
    for element in mesh:
        if element.tag not in PRIMITIVE_TAGS:
            continue
        for primitive_input in element.findall('input'):
            semantic = primitive_input.get('semantic')
            if semantic == 'NORMAL' and normal_source is None:
                normal_source = _required(primitive_input, 'source')
            elif semantic == 'TEXCOORD' and texcoord_source is None:
                texcoord_source = _required(primitive_input, 'source')
        primitives.append(_read_primitive(element, shared_inputs))

    positions = _source(sources, shared_inputs['POSITION']).rows()[:, 0:3]
    normals = _source(sources, normal_source).rows()[:, 0:3] if normal_source else np.zeros((0, 3))
    tex_vertices = _source(sources, texcoord_source).rows()[:, 0:2] if texcoord_source else np.zeros((0, 2))

    return MeshObject(geometry.get('name') or geometry.get('id', ''),
                      [tuple(row) for row in positions.tolist()],
                      [tuple(row) for row in normals.tolist()],
                      [tuple(row) for row in tex_vertices.tolist()],
                      [Geometry(primitives)])


def _read_bind_data(controller: ElementTree.Element) -> Optional[BindData]:
    skin = controller.find('skin')
    if skin is None:
        return None
    sources = _read_sources(skin)

    joints = skin.find('joints')
    if joints is None:
        raise DocumentError(f"Skin of controller '{controller.get('id')}' has no <joints>")
    joint_inputs = {_required(joint_input, 'semantic'): _required(joint_input, 'source')
                    for joint_input in joints.findall('input')}
    if 'JOINT' not in joint_inputs or 'INV_BIND_MATRIX' not in joint_inputs:
        raise DocumentError(f"Skin of controller '{controller.get('id')}' misses JOINT or INV_BIND_MATRIX")
    joint_names = list(_source(sources, joint_inputs['JOINT']).values)
    inverse_bind_poses = [to_matrix4(row) for row in _source(sources, joint_inputs['INV_BIND_MATRIX']).rows()]
    if len(inverse_bind_poses) != len(joint_names):
        raise DocumentError(f"{len(joint_names)} joints but {len(inverse_bind_poses)} inverse bind matrices")

    weights: List[float] = []
    vertex_weights: List[VertexWeight] = []
    vertex_weights_element = skin.find('vertex_weights')
    if vertex_weights_element is not None:
        offsets = {}
        for weight_input in vertex_weights_element.findall('input'):
            semantic = _required(weight_input, 'semantic')
            offsets[semantic] = _int_attribute(weight_input, 'offset', 0)
            if semantic == 'WEIGHT':
                weights = _source(sources, _required(weight_input, 'source')).floats().tolist()
        if 'JOINT' not in offsets or 'WEIGHT' not in offsets:
            raise DocumentError("<vertex_weights> misses JOINT or WEIGHT")

        stride = max(offsets.values()) + 1
        vcount = _ints(vertex_weights_element.findtext('vcount'))
        v = _ints(vertex_weights_element.findtext('v'))
        if len(v) != int(vcount.sum()) * stride:
            raise DocumentError(f"<v> has {len(v)} indices, <vcount> announces {int(vcount.sum()) * stride}")
        pairs = v.reshape(-1, stride)
        position = 0
        for vertex, count in enumerate(vcount.tolist()):
            for pair in pairs[position:position + count]:
                vertex_weights.append(VertexWeight(vertex, int(pair[offsets['JOINT']]), int(pair[offsets['WEIGHT']])))
            position += count

    return BindData(controller.get('name'), joint_names, inverse_bind_poses, weights, vertex_weights)


def _collect_joints(node: ElementTree.Element, parent_index: int, skeletons: List[List[Joint]],
                    joints: Optional[List[Joint]]):
    if node.get('type') == 'JOINT':
        if joints is None:
            joints = []
            skeletons.append(joints)
            parent_index = ROOT_PARENT_INDEX
        index = len(joints)
        joints.append(Joint(index, parent_index, node.get('id') or _required(node, 'name')))
        parent_index = index

    for child in node.findall('node'):
        _collect_joints(child, parent_index, skeletons, joints)


def _read_skeletons(root: ElementTree.Element) -> List[List[Joint]]:
    skeletons: List[List[Joint]] = []
    for scene in root.iterfind('library_visual_scenes/visual_scene'):
        for node in scene.findall('node'):
            _collect_joints(node, ROOT_PARENT_INDEX, skeletons, None)
    return skeletons


def _read_tracks(root: ElementTree.Element) -> List[AnimationTrack]:
    tracks = []
    for animation in root.iter('animation'):
        channels = animation.findall('channel')
        if not channels:
            continue
        sources = _read_sources(animation)
        samplers = {_required(sampler, 'id'): sampler for sampler in animation.findall('sampler')}

        for channel in channels:
            target = _required(channel, 'target')
            try:
                sampler = samplers[_url(_required(channel, 'source'))]
            except KeyError:
                raise DocumentError(f"Channel '{target}' references an unknown sampler")
            sampler_inputs = {_required(sampler_input, 'semantic'): _required(sampler_input, 'source')
                              for sampler_input in sampler.findall('input')}
            if 'INPUT' not in sampler_inputs or 'OUTPUT' not in sampler_inputs:
                raise DocumentError(f"Sampler of channel '{target}' misses INPUT or OUTPUT")

            output = _source(sources, sampler_inputs['OUTPUT'])
            if output.stride != 16:
                logger.debug(f"Skipping channel '{target}', only matrix channels are baked")
                continue
            sample_times = _source(sources, sampler_inputs['INPUT']).floats().tolist()
            sample_poses = [to_matrix4(row) for row in output.rows()]
            tracks.append(AnimationTrack(target, sample_times, sample_poses))
    return tracks


def read_document(filepath: Path) -> Document:
    """
    Reads the parts of a COLLADA 1.4 document needed to bake a skinned mesh
    :param filepath: path to a .dae file
    :return: the mesh objects, skeletons, skins and matrix animation tracks of the document
    """
    filepath = Path(filepath)
    if filepath.is_dir():
        raise IsADirectoryError(filepath)

    if not filepath.exists():
        raise FileNotFoundError(filepath)

    logger.info(f"Reading COLLADA document from {filepath}")
    try:
        root = ElementTree.parse(str(filepath)).getroot()
    except ElementTree.ParseError as error:
        raise DocumentError(f"{filepath} is not valid XML: {error}")
    _strip_namespaces(root)
    if root.tag != 'COLLADA':
        raise DocumentError(f"Could not find COLLADA root element in {filepath}, found <{root.tag}>")

    objects = [mesh_object for mesh_object in map(_read_mesh_object, root.iterfind('library_geometries/geometry'))
               if mesh_object is not None]
    bind_data = [data for data in map(_read_bind_data, root.iterfind('library_controllers/controller'))
                 if data is not None]
    document = Document(objects, _read_skeletons(root), bind_data, _read_tracks(root))

    logger.debug(f"{filepath}: {len(document.objects)} objects, {len(document.skeletons)} skeletons, "
                 f"{len(document.bind_data)} skins, {len(document.animations)} tracks")
    return document
