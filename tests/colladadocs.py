"""Collada documents for the tests, built as strings."""

import re

COLLADA_NS = "http://www.collada.org/2005/11/COLLADASchema"

IDENTITY_TEXT = "1 0 0 0 0 1 0 0 0 0 1 0 0 0 0 1"
# Rz(90°) with translation (1, 2, 3)
ROT_Z90_TEXT = "0 -1 0 1 1 0 0 2 0 0 1 3 0 0 0 1"
# first keyframe of a bone scaled to nothing
ZERO_SCALE_TEXT = "0 0 0 1 0 0 0 2 0 0 0 3 0 0 0 1"


def _floats(values) -> str:
    return " ".join(str(v) for v in values)


def mesh_xml(positions, normals, uvs, faces, material="Material",
             primitive="polylist") -> str:
    """``faces`` is a list of corner lists; each corner is (pos, normal[, uv])."""
    flat_pos = [c for p in positions for c in p]
    flat_nor = [c for n in normals for c in n]
    flat_uv = [c for t in uvs for c in t]
    sources = (
        f'<source id="Cube-mesh-positions"><float_array id="Cube-mesh-positions-array" '
        f'count="{len(flat_pos)}">{_floats(flat_pos)}</float_array></source>'
        f'<source id="Cube-mesh-normals"><float_array id="Cube-mesh-normals-array" '
        f'count="{len(flat_nor)}">{_floats(flat_nor)}</float_array></source>'
    )
    inputs = ('<input semantic="VERTEX" source="#Cube-mesh-vertices" offset="0"/>'
              '<input semantic="NORMAL" source="#Cube-mesh-normals" offset="1"/>')
    if uvs:
        sources += (
            f'<source id="Cube-mesh-map-0"><float_array id="Cube-mesh-map-0-array" '
            f'count="{len(flat_uv)}">{_floats(flat_uv)}</float_array></source>')
        inputs += ('<input semantic="TEXCOORD" source="#Cube-mesh-map-0" '
                   'offset="2" set="0"/>')
    vertices = ('<vertices id="Cube-mesh-vertices"><input semantic="POSITION" '
                'source="#Cube-mesh-positions"/></vertices>')
    p = " ".join(str(i) for face in faces for corner in face for i in corner)
    vcount = " ".join(str(len(face)) for face in faces)
    body = f"{inputs}<p>{p}</p>"
    if primitive == "polylist":
        body = f"{inputs}<vcount>{vcount}</vcount><p>{p}</p>"
    return (sources + vertices
            + f'<{primitive} material="{material}" count="{len(faces)}">'
            + body + f"</{primitive}>")


def collada_doc(mesh: str, controllers: str = "", scenes: str = "",
                animations: str = "", up_axis: str = "Y_UP") -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<COLLADA xmlns="{COLLADA_NS}" version="1.4.1">'
        f"<asset><up_axis>{up_axis}</up_axis></asset>"
        '<library_geometries><geometry id="Cube-mesh" name="Cube">'
        f"<mesh>{mesh}</mesh></geometry></library_geometries>"
        f"{controllers}{scenes}{animations}"
        "</COLLADA>"
    )


def triangle_mesh(**kwargs) -> str:
    return mesh_xml(
        positions=[(0, 0, 0), (1, 0, 0), (0, 1, 0)],
        normals=[(0, 0, 1)],
        uvs=[(0, 0), (1, 0), (0, 1)],
        faces=[[(0, 0, 0), (1, 0, 1), (2, 0, 2)]],
        **kwargs,
    )


def quad_mesh(**kwargs) -> str:
    return mesh_xml(
        positions=[(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)],
        normals=[(0, 0, 1)],
        uvs=[(0, 0), (1, 0), (1, 1), (0, 1)],
        faces=[[(0, 0, 0), (1, 0, 1), (2, 0, 2), (3, 0, 3)]],
        **kwargs,
    )


# Skin order differs from skeleton order on purpose.
SKIN_JOINTS = ["Bone4", "Bone0", "Bone1", "Bone2", "Bone3"]


def skin_xml(vcount="5 1 1", v="0 0 1 1 2 2 3 3 4 4 0 5 1 6",
             weights="0.4 0.2 0.15 0.15 0.1 1 1") -> str:
    bind_poses = " ".join([IDENTITY_TEXT] * len(SKIN_JOINTS))
    return (
        '<library_controllers><controller id="Armature_Cube-skin">'
        '<skin source="#Cube-mesh">'
        f"<bind_shape_matrix>{IDENTITY_TEXT}</bind_shape_matrix>"
        '<source id="Armature_Cube-skin-joints"><Name_array '
        f'id="Armature_Cube-skin-joints-array" count="{len(SKIN_JOINTS)}">'
        f'{" ".join(SKIN_JOINTS)}</Name_array></source>'
        '<source id="Armature_Cube-skin-bind_poses"><float_array '
        f'id="Armature_Cube-skin-bind_poses-array" count="80">{bind_poses}'
        "</float_array></source>"
        '<source id="Armature_Cube-skin-weights"><float_array '
        f'id="Armature_Cube-skin-weights-array">{weights}</float_array></source>'
        '<vertex_weights count="3">'
        '<input semantic="JOINT" source="#Armature_Cube-skin-joints" offset="0"/>'
        '<input semantic="WEIGHT" source="#Armature_Cube-skin-weights" offset="1"/>'
        f"<vcount>{vcount}</vcount><v>{v}</v></vertex_weights>"
        "</skin></controller></library_controllers>"
    )


def _bone(name, children="", matrix=IDENTITY_TEXT) -> str:
    return (f'<node id="Armature_{name}" name="{name}" sid="{name}" type="JOINT">'
            f'<matrix sid="transform">{matrix}</matrix>{children}</node>')


def scene_xml(armature_transform='<translate sid="location">1 2 3</translate>'
                                 '<rotate sid="rotationZ">0 0 1 90</rotate>'
                                 '<rotate sid="rotationY">0 1 0 0</rotate>'
                                 '<rotate sid="rotationX">1 0 0 0</rotate>'
                                 '<scale sid="scale">1 1 1</scale>') -> str:
    # Bone0 > Bone1 > Bone2, Bone0 > Bone3, Bone4 is a second root
    bones = (_bone("Bone0", _bone("Bone1", _bone("Bone2")) + _bone("Bone3"))
             + _bone("Bone4"))
    return (
        '<library_visual_scenes><visual_scene id="Scene" name="Scene">'
        f'<node id="Armature" name="Armature" type="NODE">{armature_transform}'
        f"{bones}</node>"
        '<node id="Cube" name="Cube" type="NODE">'
        f"<matrix>{IDENTITY_TEXT}</matrix>"
        '<instance_controller url="#Armature_Cube-skin"/></node>'
        '<node id="Lamp" name="Lamp" type="NODE">'
        '<instance_light url="#Lamp-light"/></node>'
        "</visual_scene></library_visual_scenes>"
    )


def animation_xml(anim_id: str, times=(0.0, 0.5),
                  matrices=(IDENTITY_TEXT, ROT_Z90_TEXT)) -> str:
    return (
        f'<animation id="{anim_id}">'
        f'<source id="{anim_id}-input"><float_array id="{anim_id}-input-array" '
        f'count="{len(times)}">{_floats(times)}</float_array></source>'
        f'<source id="{anim_id}-output"><float_array id="{anim_id}-output-array" '
        f'count="{16 * len(matrices)}">{" ".join(matrices)}</float_array></source>'
        f'<source id="{anim_id}-interpolation"><Name_array count="{len(times)}">'
        f'{" ".join(["LINEAR"] * len(times))}</Name_array></source>'
        f'<sampler id="{anim_id}-sampler"/></animation>'
    )


def animations_xml() -> str:
    return (
        "<library_animations>"
        + animation_xml("Armature_Bone1_pose_matrix")
        + '<animation id="action_container-Armature">'
        + animation_xml("Armature_ArmatureAction_Bone2_pose_matrix")
        + "</animation>"
        + animation_xml("Cube_location_X")
        + "</library_animations>"
    )


def skinned_doc(up_axis="Y_UP") -> str:
    return collada_doc(triangle_mesh(), skin_xml(), scene_xml(),
                       animations_xml(), up_axis=up_axis)


def array_body(text: str, name: str) -> str:
    """Contents of ``<name>[] = { ... };`` in a generated header."""
    match = re.search(re.escape(name) + r"\[\] = \{\n(.*?)\n?\};", text, re.S)
    assert match, f"{name} not found"
    return match.group(1)


def ints_in(text: str) -> list[int]:
    return [int(n) for n in re.findall(r"-?\d+", text)]


def zero_scale_doc() -> str:
    """Skinned document whose Bone1 animation starts from a zero-scale pose."""
    animations = (
        "<library_animations>"
        + animation_xml("Armature_Bone1_pose_matrix",
                        matrices=(ZERO_SCALE_TEXT, ROT_Z90_TEXT))
        + animation_xml("Armature_Bone2_pose_matrix")
        + "</library_animations>"
    )
    return collada_doc(triangle_mesh(), skin_xml(), scene_xml(), animations)
