"""
Renderers for a finished SceneModel: C header, JSON skeleton, pose text.

All emitters are read-only with respect to the model and return text; the
caller decides where (and whether) it gets written.
"""

import json
import logging
from dataclasses import dataclass, field

from headerify.dedupe import MeshTables, SubmeshTable
from headerify.model import IDENTITY, Matrix4, SceneModel
from headerify.transforms import (EulerTriple, correct_angles,
                                  decompose_rotation, orthonormal_basis,
                                  relative_rotation, translation_of)
from headerify.workspace import c_identifier

logger = logging.getLogger(__name__)

# Corner order per face size: a quad becomes two triangles sharing 0-2.
FACE_FANS = {
    3: (0, 1, 2),
    4: (0, 1, 2, 0, 2, 3),
}

# largest value a GLushort index can hold
MAX_INDEX = 0xFFFF

VARIABLE_SUFFIXES = {
    "vertices": "Vertices",
    "indices": "Indices",
    "bind_shape": "BindShapeMatrix",
    "joint_count": "JointCount",
    "bone_count": "BoneCount",
    "inverse_binds": "InverseBindMatrices",
    "joint_tree": "JointTransformTree",
    "joint_indices": "JointToSkeletonIndices",
    "armature": "ArmatureTransform",
    "animation": "AnimationData",
    "keyframes": "Keyframes",
    "matrices": "Matrices",
}


# ---------------------------------------------------------------------------
# C literal printers
# ---------------------------------------------------------------------------

def format_float(n) -> str:
    return f"{float(n)!r}f"


def print_vector(v) -> str:
    """1, 0.5, 1 -> "{1.0f, 0.5f, 1.0f}" """
    return "{" + ", ".join(format_float(n) for n in v) + "}"


def print_vector_int(v) -> str:
    return "{" + ", ".join(str(int(n)) for n in v) + "}"


def print_matrix(m: Matrix4) -> str:
    return "math::Matrix4(" + ", ".join(format_float(n) for n in m) + ")"


def print_matrices(matrices: list[Matrix4]) -> str:
    return ",\n".join("\t" + print_matrix(m) for m in matrices)


# ---------------------------------------------------------------------------
# Faces
# ---------------------------------------------------------------------------

def triangulate(vcount: list[int], index_ref: list[int | None]
                ) -> list[tuple[int, ...]]:
    """Expand faces into triangle-list indices, one tuple per face.

    Unsupported face sizes are skipped (their corners are still consumed),
    as are faces touching a vertex that was not emitted.
    """
    faces = []
    corner = 0
    for face_index, size in enumerate(vcount):
        fan = FACE_FANS.get(size)
        if fan is not None:
            refs = [index_ref[corner + k] for k in fan]
            if any(r is None for r in refs):
                logger.warning("Skipping face %d: it references a missing "
                               "vertex", face_index)
            else:
                faces.append(tuple(refs))
        corner += size
    return faces


# ---------------------------------------------------------------------------
# Header emitter
# ---------------------------------------------------------------------------

@dataclass
class HeaderNames:
    filename: str
    guard: str
    variables: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_basename(cls, filename: str, guard: str, basename: str
                     ) -> "HeaderNames":
        prefix = f"g_{c_identifier(basename)}"
        return cls(filename, guard,
                   {k: prefix + v for k, v in VARIABLE_SUFFIXES.items()})

    def submesh_suffixes(self, tables: list[SubmeshTable]) -> list[str]:
        if len(tables) <= 1:
            return [""] * len(tables)
        return ["_" + ident for ident in unique_identifiers(
            [t.submesh.material for t in tables], "submesh")]


def unique_identifiers(labels: list[str], kind: str) -> list[str]:
    """C identifiers for ``labels``, with ``_<index>`` appended on clashes.

    ``Mat.001`` and ``Mat_001`` both map to ``Mat_001``; the second one
    becomes ``Mat_001_1``.
    """
    used = set()
    idents = []
    for index, label in enumerate(labels):
        ident = base = c_identifier(label)
        while ident in used:
            ident = f"{base}_{index}"
            base = ident
        if ident != c_identifier(label):
            logger.warning("%s '%s' clashes with an earlier name; using %s",
                           kind.capitalize(), label, ident)
        used.add(ident)
        idents.append(ident)
    return idents


def _vertex_line(model: SceneModel, polygon) -> str:
    mesh = model.mesh
    pos_i, normal_i, uv_i = polygon
    v = mesh.vertices[pos_i]
    n = (0.0, 0.0, 0.0)
    if normal_i is not None and 0 <= normal_i < len(mesh.normals):
        n = mesh.normals[normal_i]
    t = (0.0, 0.0)  # default texcoord for models without UVs
    if uv_i is not None and 0 <= uv_i < len(mesh.texcoords):
        t = mesh.texcoords[uv_i]

    line = "\t{ " + print_vector(v) + ", " + print_vector(n) + ", " + print_vector(t)
    if model.is_skinned:
        weights = [1.0, 0.0, 0.0]
        joints = [0, 0, 0, 0]
        per_vertex = model.skin.weights_per_vertex
        pairs = per_vertex[pos_i] if pos_i < len(per_vertex) else []
        for k, (joint, weight) in enumerate(pairs[:4]):
            joints[k] = joint
            if k < 3:
                weights[k] = weight
        line += ", " + print_vector(weights) + ", " + print_vector_int(joints)
    return line + " },\n"


def _emit_geometry(out: list[str], model: SceneModel, tables: MeshTables,
                   names: HeaderNames):
    datatype = "vertexDataSkinned" if model.is_skinned else "vertexDataTextured"
    suffixes = names.submesh_suffixes(tables.submeshes)
    for table, suffix in zip(tables.submeshes, suffixes):
        submesh = table.submesh
        if table.vertex_count - 1 > MAX_INDEX:
            logger.warning("Submesh '%s' has %d vertices; GLushort indices "
                           "only reach %d", submesh.material,
                           table.vertex_count, MAX_INDEX)
        out.append(f"static const {datatype} "
                   f"{names.variables['vertices']}{suffix}[] = {{\n")
        for slot, polygon in enumerate(submesh.polygons):
            if table.equivalences.is_canonical(slot) and table.index_ref[slot] is not None:
                out.append(_vertex_line(model, polygon))
        out.append("};\n")

        out.append(f"static const GLushort "
                   f"{names.variables['indices']}{suffix}[] = {{\n")
        for face in triangulate(submesh.vcount, table.index_ref):
            out.append("\t" + ", ".join(str(i) for i in face) + ",\n")
        out.append("};\n")


def _emit_skeleton(out: list[str], model: SceneModel, names: HeaderNames):
    var = names.variables
    skin = model.skin if model.is_skinned else None
    bones = model.skeleton.bones

    out.append("\n// Skinned Mesh Data\n//--------------------------------------\n")
    if skin is not None:
        out.append(f"static const math::Matrix4 {var['bind_shape']} = "
                   + print_matrix(skin.bind_shape_matrix) + ";\n")
    out.append(f"static const uint16_t {var['bone_count']} = {len(bones)};\n")
    if skin is not None:
        out.append(f"static const uint16_t {var['joint_count']} = "
                   f"{skin.joint_count};\n")
        out.append(f"// Bone names: {', '.join(skin.joint_names)}\n\n")
        out.append(f"static const math::Matrix4 {var['inverse_binds']}[] = {{\n"
                   + print_matrices(skin.inverse_bind_matrices) + "\n};\n")

    out.append(f"static struct core::TreeNode<math::Matrix4> "
               f"{var['joint_tree']}[] = {{\n")
    for i, bone in enumerate(bones):
        out.append(f"\t/*{i}: {bone.name}*/{{{bone.parent}, "
                   + print_matrix(bone.transform) + "},\n")
    out.append("};\n")

    if skin is not None:
        # joints missing from the skeleton fall back to the root bone
        joint_indices = [b if b is not None else 0 for b in model.joint_to_bone]
        out.append(f"static const uint16_t {var['joint_indices']}[] = "
                   + print_vector_int(joint_indices) + ";\n")
    armature = model.armature_transform or IDENTITY
    out.append(f"static const math::Matrix4 {var['armature']} = "
               + print_matrix(armature) + ";\n\n")

    out.append("// Animation of each bone {keyframeCount, keyframeArray, "
               "Matrix4array}\n")
    entries = []
    idents = unique_identifiers([b.name for b in bones], "bone")
    for i, bone in enumerate(bones):
        anim = model.animation_for(i)
        if anim is None:
            entries.append("\t{ 0, NULL, NULL },\n")
            continue
        ident = idents[i]
        keyframes = f"{var['keyframes']}_{ident}"
        matrices = f"{var['matrices']}_{ident}"
        # seconds -> milliseconds
        out.append(f"static const float {keyframes}[] = "
                   + print_vector([1000 * t for t in anim.keyframes]) + ";\n")
        out.append(f"static const math::Matrix4 {matrices}[] = {{\n"
                   + print_matrices(anim.matrices) + "\n};\n")
        entries.append(f"\t{{ {len(anim.keyframes)}, {keyframes}, {matrices} }},\n")
    out.append(f"static const gfx::MatrixAnimData {var['animation']}[] = {{\n")
    out.extend(entries)
    out.append("};\n\n")


def emit_header(model: SceneModel, tables: MeshTables, names: HeaderNames,
                skeleton_only: bool = False) -> str:
    """Render the model as an include-guarded block of static tables."""
    out = [
        f"/**\n * @file {names.filename}\n */\n",
        f"#ifndef {names.guard}\n",
        f"#define {names.guard}\n\n",
    ]
    if not skeleton_only:
        _emit_geometry(out, model, tables, names)
    if model.is_skinned or len(model.skeleton) > 0:
        _emit_skeleton(out, model, names)
    out.append(f"#endif // {names.guard}\n")
    return "".join(out)


# ---------------------------------------------------------------------------
# Euler output
# ---------------------------------------------------------------------------

@dataclass
class AngleCorrections:
    offset: EulerTriple | None = None
    axis_map: tuple[int, int, int] | None = None
    axis_sign: EulerTriple | None = None

    def apply(self, angles: EulerTriple) -> EulerTriple:
        return correct_angles(angles, self.offset, self.axis_map,
                              self.axis_sign)


def _round(values, digits=6) -> list[float]:
    return [round(float(v), digits) for v in values]


def _euler_pose(m: Matrix4, corrections: AngleCorrections | None) -> dict:
    basis = orthonormal_basis(m)
    if basis is None:
        logger.warning("Pose matrix has zero scale; angles left empty")
        return {"angles": None, "translation": _round(translation_of(m))}
    angles = decompose_rotation(basis)[0]
    if corrections is not None:
        angles = corrections.apply(angles)
    return {"angles": _round(angles, 4), "translation": _round(translation_of(m))}


# ---------------------------------------------------------------------------
# JSON emitter
# ---------------------------------------------------------------------------

def emit_json(model: SceneModel, euler: bool = False,
              corrections: AngleCorrections | None = None) -> str:
    """Serialize the skeletal part of the model.

    With ``euler`` each animation matrix becomes an angle/translation pair
    (first decomposition solution, degrees).
    """
    skin = model.skin if model.is_skinned else None
    bones = model.skeleton.bones
    doc: dict = {
        "bone_count": len(bones),
        "joint_count": skin.joint_count if skin else 0,
        "joint_names": list(skin.joint_names) if skin else [],
        "bind_shape_matrix": _round(skin.bind_shape_matrix) if skin else None,
        "inverse_bind_matrices": (
            [_round(m) for m in skin.inverse_bind_matrices] if skin else []),
        "armature_transform": _round(model.armature_transform or IDENTITY),
        "bones": [
            {"index": i, "name": b.name, "parent": b.parent,
             "transform": _round(b.transform)}
            for i, b in enumerate(bones)
        ],
        "joint_to_skeleton_indices": list(model.joint_to_bone),
        "animations": [],
    }
    for i, bone in enumerate(bones):
        anim = model.animation_for(i)
        if anim is None:
            continue
        entry = {
            "bone": bone.name,
            "bone_index": i,
            "keyframes_ms": _round([1000 * t for t in anim.keyframes], 3),
        }
        if euler:
            entry["poses"] = [_euler_pose(m, corrections) for m in anim.matrices]
        else:
            entry["matrices"] = [_round(m) for m in anim.matrices]
        doc["animations"].append(entry)
    return json.dumps(doc, indent=2) + "\n"


# ---------------------------------------------------------------------------
# Pose emitter
# ---------------------------------------------------------------------------

def format_angle(a: float) -> str:
    return f"{a:.4f}"


def emit_pose(model: SceneModel,
              corrections: AngleCorrections | None = None) -> str:
    """Per-frame rotation of every animated bone relative to its first frame.

    One line per bone, frame and Euler solution: ``<bone> <x> <y> <z>``.
    """
    animated = [(bone.name, model.animation_for(i))
                for i, bone in enumerate(model.skeleton.bones)]
    animated = [(name, anim) for name, anim in animated
                if anim is not None and anim.matrices]
    frame_count = max((len(anim.matrices) for _, anim in animated), default=0)

    lines = []
    for frame in range(1, frame_count):
        for name, anim in animated:
            if frame >= len(anim.matrices):
                continue
            rel = relative_rotation(anim.matrices[0], anim.matrices[frame])
            if rel is None:
                logger.warning("Skipping bone '%s' frame %d: rotation has "
                               "zero scale", name, frame)
                continue
            for angles in decompose_rotation(rel):
                if corrections is not None:
                    angles = corrections.apply(angles)
                lines.append(name + " " + " ".join(format_angle(a) for a in angles))
    return "\n".join(lines) + ("\n" if lines else "")
