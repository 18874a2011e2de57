"""Shared rigs and documents for the tests"""

import numpy as np
import pytest

from PySkinBake.document import (AnimationTrack, BindData, Document, Geometry, Joint, MeshObject, Primitive,
                                 ROOT_PARENT_INDEX, VertexWeight)


def translation(x, y, z):
    m = np.identity(4, dtype=np.float32)
    m[0:3, 3] = [x, y, z]
    return m


def rotation(axis, angle):
    """Rodrigues rotation matrix"""
    axis = np.asarray(axis, dtype=np.float64)
    axis = axis / np.linalg.norm(axis)
    k = np.array([[0.0, -axis[2], axis[1]],
                  [axis[2], 0.0, -axis[0]],
                  [-axis[1], axis[0], 0.0]])
    m = np.identity(4)
    m[0:3, 0:3] = np.identity(3) + np.sin(angle) * k + (1.0 - np.cos(angle)) * (k @ k)
    return m.astype(np.float32)


def rig_joints():
    # root -> spine -> (tip, arm); tip has no vertices attached
    return [
        Joint(0, ROOT_PARENT_INDEX, "Armature_root"),
        Joint(1, 0, "Armature_spine"),
        Joint(2, 1, "Armature_tip"),
        Joint(3, 1, "Armature_arm"),
    ]


def rig_bind_data(vertex_weights=()):
    return BindData("Armature", ["root", "spine", "arm"],
                    [translation(0, 0, 0), translation(0, -1, 0), translation(0, -2, 0)],
                    weights=[1.0, 0.75, 0.25],
                    vertex_weights=vertex_weights)


def still_tracks(sample_times=(0.0, 0.5, 1.0), joints=None):
    joints = rig_joints() if joints is None else joints
    return [AnimationTrack(f"{joint.name}/transform", sample_times,
                           [translation(0, 1, 0) for _ in sample_times]) for joint in joints]


def quad_object(kind='triangles'):
    return MeshObject(
        "Quad",
        vertices=[(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)],
        normals=[(0, 0, 1)],
        tex_vertices=[(0, 0), (1, 0), (1, 1), (0, 1)],
        geometry=[Geometry([Primitive(kind,
                                      vertices=[(0, 1, 2), (0, 2, 3)],
                                      normals=[(0, 0, 0), (0, 0, 0)],
                                      tex_vertices=[(0, 1, 2), (0, 2, 3)])])])


def rig_document(sample_times=(0.0, 0.5, 1.0), kind='triangles'):
    # vertex 1 has a third influence which is dropped
    vertex_weights = [VertexWeight(0, 0, 0), VertexWeight(1, 1, 1), VertexWeight(1, 2, 2), VertexWeight(1, 0, 0),
                      VertexWeight(2, 2, 0), VertexWeight(3, 1, 0)]
    return Document(objects=[quad_object(kind)],
                    skeletons=[rig_joints()],
                    bind_data=[rig_bind_data(vertex_weights)],
                    animations=still_tracks(sample_times))


@pytest.fixture
def joints():
    return rig_joints()


@pytest.fixture
def bind_data():
    return rig_bind_data()


@pytest.fixture
def document():
    return rig_document()


IDENTITY = "1 0 0 0 0 1 0 0 0 0 1 0 0 0 0 1"
UP = "1 0 0 0 0 1 0 1 0 0 1 0 0 0 0 1"
DOWN = "1 0 0 0 0 1 0 -1 0 0 1 0 0 0 0 1"

SKINNED_QUAD_DAE = f"""<?xml version="1.0" encoding="utf-8"?>
<COLLADA xmlns="http://www.collada.org/2005/11/COLLADASchema" version="1.4.1">
  <library_geometries>
    <geometry id="Quad-mesh" name="Quad">
      <mesh>
        <source id="Quad-mesh-positions">
          <float_array id="Quad-mesh-positions-array" count="12">0 0 0 1 0 0 1 1 0 0 1 0</float_array>
          <technique_common><accessor source="#Quad-mesh-positions-array" count="4" stride="3"/></technique_common>
        </source>
        <source id="Quad-mesh-normals">
          <float_array id="Quad-mesh-normals-array" count="3">0 0 1</float_array>
          <technique_common><accessor source="#Quad-mesh-normals-array" count="1" stride="3"/></technique_common>
        </source>
        <source id="Quad-mesh-map">
          <float_array id="Quad-mesh-map-array" count="8">0 0 1 0 1 1 0 1</float_array>
          <technique_common><accessor source="#Quad-mesh-map-array" count="4" stride="2"/></technique_common>
        </source>
        <vertices id="Quad-mesh-vertices">
          <input semantic="POSITION" source="#Quad-mesh-positions"/>
        </vertices>
        <triangles count="2">
          <input semantic="VERTEX" source="#Quad-mesh-vertices" offset="0"/>
          <input semantic="NORMAL" source="#Quad-mesh-normals" offset="1"/>
          <input semantic="TEXCOORD" source="#Quad-mesh-map" offset="2" set="0"/>
          <p>0 0 0 1 0 1 2 0 2 0 0 0 2 0 2 3 0 3</p>
        </triangles>
      </mesh>
    </geometry>
  </library_geometries>
  <library_controllers>
    <controller id="Armature_Quad-skin" name="Armature">
      <skin source="#Quad-mesh">
        <bind_shape_matrix>{IDENTITY}</bind_shape_matrix>
        <source id="skin-joints">
          <Name_array id="skin-joints-array" count="2">root spine</Name_array>
          <technique_common><accessor source="#skin-joints-array" count="2" stride="1"/></technique_common>
        </source>
        <source id="skin-bind_poses">
          <float_array id="skin-bind_poses-array" count="32">{IDENTITY} {DOWN}</float_array>
          <technique_common><accessor source="#skin-bind_poses-array" count="2" stride="16"/></technique_common>
        </source>
        <source id="skin-weights">
          <float_array id="skin-weights-array" count="2">1 0.5</float_array>
          <technique_common><accessor source="#skin-weights-array" count="2" stride="1"/></technique_common>
        </source>
        <joints>
          <input semantic="JOINT" source="#skin-joints"/>
          <input semantic="INV_BIND_MATRIX" source="#skin-bind_poses"/>
        </joints>
        <vertex_weights count="4">
          <input semantic="JOINT" source="#skin-joints" offset="0"/>
          <input semantic="WEIGHT" source="#skin-weights" offset="1"/>
          <vcount>1 2 1 1</vcount>
          <v>0 0 0 1 1 1 1 0 1 0</v>
        </vertex_weights>
      </skin>
    </controller>
  </library_controllers>
  <library_animations>
    <animation id="action_container-Armature">
      <animation id="Armature_root_pose_matrix">
        <source id="root-input">
          <float_array id="root-input-array" count="2">0 1</float_array>
          <technique_common><accessor source="#root-input-array" count="2" stride="1"/></technique_common>
        </source>
        <source id="root-output">
          <float_array id="root-output-array" count="32">{IDENTITY} {UP}</float_array>
          <technique_common><accessor source="#root-output-array" count="2" stride="16"/></technique_common>
        </source>
        <sampler id="root-sampler">
          <input semantic="INPUT" source="#root-input"/>
          <input semantic="OUTPUT" source="#root-output"/>
        </sampler>
        <channel source="#root-sampler" target="Armature_root/transform"/>
      </animation>
    </animation>
    <animation id="Armature_spine_pose_matrix">
      <source id="spine-input">
        <float_array id="spine-input-array" count="2">0 1</float_array>
        <technique_common><accessor source="#spine-input-array" count="2" stride="1"/></technique_common>
      </source>
      <source id="spine-output">
        <float_array id="spine-output-array" count="32">{UP} {UP}</float_array>
        <technique_common><accessor source="#spine-output-array" count="2" stride="16"/></technique_common>
      </source>
      <sampler id="spine-sampler">
        <input semantic="INPUT" source="#spine-input"/>
        <input semantic="OUTPUT" source="#spine-output"/>
      </sampler>
      <channel source="#spine-sampler" target="Armature_spine/transform"/>
    </animation>
  </library_animations>
  <library_visual_scenes>
    <visual_scene id="Scene" name="Scene">
      <node id="Armature" name="Armature" type="NODE">
        <node id="Armature_root" name="root" sid="root" type="JOINT">
          <matrix sid="transform">{IDENTITY}</matrix>
          <node id="Armature_spine" name="spine" sid="spine" type="JOINT">
            <matrix sid="transform">{UP}</matrix>
          </node>
        </node>
      </node>
      <node id="Quad" name="Quad" type="NODE">
        <instance_controller url="#Armature_Quad-skin"/>
      </node>
    </visual_scene>
  </library_visual_scenes>
</COLLADA>
"""


@pytest.fixture
def write_dae():
    """Writes the skinned quad document, optionally with its triangles replaced by another primitive"""
    def write(filepath, primitive='triangles'):
        text = SKINNED_QUAD_DAE.replace('<triangles', f'<{primitive}').replace('</triangles>', f'</{primitive}>')
        filepath.write_text(text, encoding='utf-8')
        return filepath
    return write
