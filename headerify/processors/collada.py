"""
Collada Processor — .dae → C header / skeleton JSON / pose text.

Assumes a single mesh; if there is a skin and a skeletal animation they are
taken to belong to that mesh.

Dependencies:
  Required: numpy (matrix math)
  Optional: Pillow (debug UV image)
"""

import logging
import re
from enum import Enum
from pathlib import Path
from xml.etree import ElementTree as ET

from headerify.config import Settings, load_settings
from headerify.dedupe import MeshTables, build_mesh_tables, texel_of
from headerify.emitters import (AngleCorrections, HeaderNames, emit_header,
                                emit_json, emit_pose)
from headerify.errors import (IOFailure, MalformedInputError,
                              TruncationWarning, UnsupportedPolygonError)
from headerify.model import (IDENTITY, MAX_JOINT_INFLUENCES, Animation, Bone,
                             Mesh, SceneModel, Skeleton, Skin, Submesh)
from headerify.processors import (BaseProcessor, ConvertOptions,
                                  ProcessedOutput, ProcessorResult)
from headerify.transforms import compose_transform, convert_axes
from headerify.workspace import (atomic_output, atomic_write, include_guard,
                                 output_path)

logger = logging.getLogger(__name__)

# Dependency checks
try:
    from PIL import Image
    _HAS_PILLOW = True
except ImportError:
    _HAS_PILLOW = False

_POSE_SUFFIX = "_pose_matrix"
_INSTANCE_TAGS = {"instance_geometry", "instance_controller",
                  "instance_camera", "instance_light", "instance_node"}
_REDUNDANT_UV_HINT = 0.25


# ---------------------------------------------------------------------------
# Array roles
# ---------------------------------------------------------------------------

class ArrayRole(Enum):
    POSITION = "position"
    NORMAL = "normal"
    UV_SET = "uv_set"
    JOINT_NAMES = "joint_names"
    BIND_POSES = "bind_poses"
    WEIGHTS = "weights"
    KEYFRAME_INPUT = "keyframe_input"
    KEYFRAME_OUTPUT = "keyframe_output"


# id substrings per section, checked in order (case-sensitive)
_ROLE_PATTERNS = {
    "mesh": [
        (ArrayRole.POSITION, ("positions",)),
        (ArrayRole.NORMAL, ("normals",)),
        (ArrayRole.UV_SET, ("map", "uvs")),
    ],
    "skin": [
        (ArrayRole.JOINT_NAMES, ("joints",)),
        (ArrayRole.BIND_POSES, ("bind_poses",)),
        (ArrayRole.WEIGHTS, ("weights",)),
    ],
    "animation": [
        (ArrayRole.KEYFRAME_INPUT, ("input",)),
        (ArrayRole.KEYFRAME_OUTPUT, ("output",)),
    ],
}


def classify_source(source_id: str, section: str) -> ArrayRole | None:
    """Decide what a ``<source>`` holds from its id."""
    for role, needles in _ROLE_PATTERNS[section]:
        if any(n in source_id for n in needles):
            return role
    return None


def _classify_sources(parent: ET.Element, section: str
                      ) -> dict[ArrayRole, ET.Element]:
    """First source of each role wins; later ones are ignored."""
    found: dict[ArrayRole, ET.Element] = {}
    for source in parent.findall("source"):
        source_id = source.get("id", "")
        role = classify_source(source_id, section)
        if role is None:
            continue
        if role in found:
            logger.warning("Ignoring source '%s': %s already provided by '%s'",
                           source_id, role.value, found[role].get("id"))
            continue
        found[role] = source
    return found


# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------

def _strip_ns(tag_name: str) -> str:
    if tag_name.startswith("{"):
        return tag_name.split("}", 1)[1]
    return tag_name


def _numbers(text: str | None, cast, what: str) -> list:
    try:
        return [cast(n) for n in (text or "").split()]
    except ValueError as e:
        raise MalformedInputError(f"Bad number in {what}: {e}") from e


def _floats(elem: ET.Element | None, what: str) -> list[float]:
    return _numbers(elem.text if elem is not None else "", float, what)


def _ints(elem: ET.Element | None, what: str) -> list[int]:
    return _numbers(elem.text if elem is not None else "", int, what)


def chunk(values: list, stride: int) -> list[tuple]:
    """a b c d e f … → (a, b) (c, d) … for stride 2."""
    if stride <= 0:
        return []
    if len(values) % stride:
        logger.warning("Dropping %d trailing values (not a multiple of %d)",
                       len(values) % stride, stride)
    return [tuple(values[i:i + stride])
            for i in range(0, len(values) - stride + 1, stride)]


def _int_attr(elem: ET.Element, name: str, default: int) -> int:
    raw = elem.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise MalformedInputError(
            f"Bad {name}=\"{raw}\" on <{elem.tag}>") from e


def _source_floats(source: ET.Element, what: str) -> list[float]:
    return _floats(source.find("float_array"), what)


def _input_offsets(primitive: ET.Element) -> tuple[dict[str, int], int]:
    """Offsets of the first input of each semantic, and the tuple stride."""
    offsets: dict[str, int] = {}
    max_offset = -1
    for i, inp in enumerate(primitive.findall("input")):
        offset = _int_attr(inp, "offset", i)
        offsets.setdefault(inp.get("semantic", ""), offset)
        max_offset = max(max_offset, offset)
    return offsets, max_offset + 1


# ---------------------------------------------------------------------------
# Mesh
# ---------------------------------------------------------------------------

def _extract_submesh(primitive: ET.Element, diagnostics: list) -> Submesh:
    material = primitive.get("material") or "default"
    offsets, stride = _input_offsets(primitive)
    if "VERTEX" not in offsets:
        raise MalformedInputError(
            f"<{primitive.tag}> for material '{material}' has no VERTEX input")

    indices = _ints(primitive.find("p"), f"{material} indices")
    tuples = chunk(indices, stride)
    if primitive.tag == "triangles":
        vcount = [3] * (len(tuples) // 3)
    else:
        vcount = _ints(primitive.find("vcount"), f"{material} vcount")

    v_off = offsets["VERTEX"]
    n_off = offsets.get("NORMAL")
    t_off = offsets.get("TEXCOORD")
    polygons = [
        (t[v_off],
         t[n_off] if n_off is not None else None,
         t[t_off] if t_off is not None else None)
        for t in tuples
    ]
    if sum(vcount) != len(polygons):
        raise MalformedInputError(
            f"Submesh '{material}': face sizes add up to {sum(vcount)} "
            f"corners but {len(polygons)} were given")

    for face_index, size in enumerate(vcount):
        if size not in (3, 4):
            err = UnsupportedPolygonError(size, face_index, material)
            logger.warning("%s", err)
            diagnostics.append(err)
    return Submesh(material, vcount, polygons)


def _extract_mesh(root: ET.Element, diagnostics: list) -> Mesh:
    meshes = root.findall("library_geometries/geometry/mesh")
    if not meshes:
        raise MalformedInputError("Document has no mesh")
    if len(meshes) > 1:
        logger.warning("Document has %d meshes, only the first is exported",
                       len(meshes))
    mesh_elem = meshes[0]

    sources = _classify_sources(mesh_elem, "mesh")
    if ArrayRole.POSITION not in sources:
        raise MalformedInputError("Mesh has no positions source")

    mesh = Mesh()
    mesh.vertices = chunk(
        _source_floats(sources[ArrayRole.POSITION], "positions"), 3)
    if ArrayRole.NORMAL in sources:
        mesh.normals = chunk(
            _source_floats(sources[ArrayRole.NORMAL], "normals"), 3)
    if ArrayRole.UV_SET in sources:
        mesh.texcoords = chunk(
            _source_floats(sources[ArrayRole.UV_SET], "texcoords"), 2)

    for child in mesh_elem:
        if child.tag in ("polylist", "triangles"):
            mesh.submeshes.append(_extract_submesh(child, diagnostics))
        elif child.tag in ("polygons", "tristrips", "trifans", "lines"):
            logger.warning("Skipping unsupported <%s> primitive", child.tag)
    if not mesh.submeshes:
        raise MalformedInputError("Mesh has no <polylist> or <triangles>")
    return mesh


# ---------------------------------------------------------------------------
# Skin
# ---------------------------------------------------------------------------

def map_weights_per_vertex(vcount: list[int], pairs: list[tuple[int, int]],
                           weights: list[float],
                           limit: int = MAX_JOINT_INFLUENCES
                           ) -> tuple[list[list[tuple[int, float]]], int]:
    """Merge vcount / (joint, weight index) pairs / weight table per vertex.

    Returns the per-vertex influence lists (at most ``limit`` long) and the
    number of vertices that had to be truncated.
    """
    per_vertex = []
    truncated = 0
    cursor = 0
    for joints_per_vertex in vcount:
        if joints_per_vertex > limit:
            truncated += 1
        influences = []
        for _ in range(joints_per_vertex):
            if cursor >= len(pairs):
                raise MalformedInputError(
                    "Skin vertex weights reference more pairs than given")
            joint, weight_index = pairs[cursor][0], pairs[cursor][1]
            cursor += 1
            if len(influences) >= limit:
                continue
            if not 0 <= weight_index < len(weights):
                raise MalformedInputError(
                    f"Skin weight index {weight_index} out of range")
            influences.append((joint, weights[weight_index]))
        per_vertex.append(influences)
    return per_vertex, truncated


def _extract_skin(root: ET.Element, diagnostics: list) -> Skin | None:
    skin_elem = root.find("library_controllers/controller/skin")
    if skin_elem is None:
        return None

    skin = Skin()
    bind_shape = _floats(skin_elem.find("bind_shape_matrix"),
                         "bind_shape_matrix")
    if len(bind_shape) == 16:
        skin.bind_shape_matrix = bind_shape

    sources = _classify_sources(skin_elem, "skin")
    joints_source = sources.get(ArrayRole.JOINT_NAMES)
    if joints_source is None:
        raise MalformedInputError("Skin has no joints source")
    names_elem = joints_source.find("Name_array")
    if names_elem is None:
        names_elem = joints_source.find("IDREF_array")
    if names_elem is not None:
        skin.joint_names = (names_elem.text or "").split()
        declared = _int_attr(names_elem, "count", len(skin.joint_names))
        if declared != len(skin.joint_names):
            logger.warning("Joint array declares %d names but holds %d",
                           declared, len(skin.joint_names))

    if ArrayRole.BIND_POSES in sources:
        skin.inverse_bind_matrices = [list(m) for m in chunk(
            _source_floats(sources[ArrayRole.BIND_POSES], "bind_poses"), 16)]

    vw = skin_elem.find("vertex_weights")
    if vw is not None:
        if ArrayRole.WEIGHTS not in sources:
            raise MalformedInputError("Skin vertex weights have no weights source")
        weights = _source_floats(sources[ArrayRole.WEIGHTS], "weights")
        offsets, stride = _input_offsets(vw)
        joint_off = offsets.get("JOINT", 0)
        weight_off = offsets.get("WEIGHT", 1)
        pairs = [(t[joint_off], t[weight_off])
                 for t in chunk(_ints(vw.find("v"), "vertex weights"), stride)]
        skin.weights_per_vertex, skin.truncated_vertices = map_weights_per_vertex(
            _ints(vw.find("vcount"), "vertex weight counts"), pairs, weights)
        if skin.truncated_vertices:
            warning = TruncationWarning(skin.truncated_vertices,
                                        MAX_JOINT_INFLUENCES)
            logger.warning("%s", warning)
            diagnostics.append(warning)
    return skin


# ---------------------------------------------------------------------------
# Skeleton
# ---------------------------------------------------------------------------

def _axis_index(axis: list[float]) -> tuple[int, float] | None:
    """Which principal axis a rotate element turns about, and its sign."""
    magnitudes = [abs(a) for a in axis]
    index = magnitudes.index(max(magnitudes))
    if magnitudes[index] == 0 or sum(magnitudes) != magnitudes[index]:
        return None
    return index, 1.0 if axis[index] > 0 else -1.0


def node_transform(node: ET.Element) -> list[float] | None:
    """A node's local transform from <matrix> or translate/rotate/scale."""
    matrix = node.find("matrix")
    if matrix is not None:
        values = _floats(matrix, f"matrix of node '{node.get('id')}'")
        return values if len(values) == 16 else None

    translate_elem = node.find("translate")
    scale_elem = node.find("scale")
    rotate_elems = node.findall("rotate")
    if translate_elem is None and scale_elem is None and not rotate_elems:
        return None

    translate = (_floats(translate_elem, "translate")
                 if translate_elem is not None else [0.0, 0.0, 0.0])
    scale = (_floats(scale_elem, "scale")
             if scale_elem is not None else [1.0, 1.0, 1.0])
    rotate = [0.0, 0.0, 0.0]
    for elem in rotate_elems:
        values = _floats(elem, "rotate")
        if len(values) != 4:
            continue
        axis = _axis_index(values[:3])
        if axis is None:
            logger.warning("Ignoring rotation about a non-principal axis on "
                           "node '%s'", node.get("id"))
            continue
        index, sign = axis
        rotate[index] += sign * values[3]
    return compose_transform(tuple(translate[:3]), tuple(rotate),
                             tuple(scale[:3]))


def _bone_name(node: ET.Element) -> str:
    return node.get("sid") or node.get("id") or node.get("name") or ""


def _is_bone_node(node: ET.Element) -> bool:
    return not any(child.tag in _INSTANCE_TAGS for child in node)


def find_armature(root: ET.Element) -> ET.Element | None:
    """The single top-level node that roots the joint hierarchy, if any."""
    candidates = []
    for node in root.findall("library_visual_scenes/visual_scene/node"):
        if node.get("type", "NODE") != "NODE":
            continue
        owns_joints = any(child.tag == "node" and child.get("type") == "JOINT"
                          for child in node)
        if owns_joints or "Armature" in (node.get("id"), node.get("name")):
            candidates.append(node)
    if len(candidates) > 1:
        logger.warning("Found %d armature candidates (%s); treating the model "
                       "as unskinned", len(candidates),
                       ", ".join(c.get("id", "?") for c in candidates))
        return None
    return candidates[0] if candidates else None


def extract_bone_tree(armature: ET.Element) -> Skeleton:
    """Depth-first walk; visiting order defines the bone index."""
    skeleton = Skeleton()

    def walk(node: ET.Element, parent: int | None):
        for child in node.findall("node"):
            if not _is_bone_node(child):
                continue
            transform = node_transform(child)
            child_parent = parent
            if transform is not None:
                index = len(skeleton.bones)
                skeleton.bones.append(Bone(
                    _bone_name(child), transform,
                    parent if parent is not None else index))
                child_parent = index
            walk(child, child_parent)

    walk(armature, None)
    return skeleton


def _joint_to_bone(skin: Skin | None, skeleton: Skeleton) -> list[int | None]:
    if skin is None:
        return []
    mapping = [skeleton.index_of(name) for name in skin.joint_names]
    missing = [n for n, b in zip(skin.joint_names, mapping) if b is None]
    if missing and len(skeleton):
        logger.warning("Joints missing from the skeleton: %s", ", ".join(missing))
    return mapping


# ---------------------------------------------------------------------------
# Animations
# ---------------------------------------------------------------------------

def resolve_bone_name(animation_id: str, known: list[str]) -> str | None:
    """``<anything>_<bone>_pose_matrix`` → ``<bone>``.

    Known bone names may contain underscores; otherwise the last
    underscore-delimited segment is used.
    """
    match = re.match(r"(.+)" + re.escape(_POSE_SUFFIX) + r"$", animation_id)
    if match is None:
        return None
    stem = match.group(1)
    candidates = [n for n in known if stem == n or stem.endswith("_" + n)]
    if candidates:
        return max(candidates, key=len)
    return stem.rsplit("_", 1)[-1]


def _extract_animations(root: ET.Element, skeleton: Skeleton
                        ) -> dict[str, Animation]:
    animations: dict[str, Animation] = {}
    library = root.find("library_animations")
    if library is None:
        return animations
    known = skeleton.names()

    for anim in library.iter("animation"):
        if anim.find("source") is None:
            continue  # container of nested animations
        anim_id = anim.get("id", "")
        bone = resolve_bone_name(anim_id, known)
        if bone is None:
            logger.debug("Dropping animation '%s' (not a pose matrix)", anim_id)
            continue

        sources = _classify_sources(anim, "animation")
        keyframes = (_source_floats(sources[ArrayRole.KEYFRAME_INPUT], anim_id)
                     if ArrayRole.KEYFRAME_INPUT in sources else [])
        matrices = ([list(m) for m in chunk(
                        _source_floats(sources[ArrayRole.KEYFRAME_OUTPUT],
                                       anim_id), 16)]
                    if ArrayRole.KEYFRAME_OUTPUT in sources else [])
        if len(keyframes) != len(matrices):
            logger.warning("Animation '%s' has %d keyframes but %d matrices",
                           anim_id, len(keyframes), len(matrices))
            n = min(len(keyframes), len(matrices))
            keyframes, matrices = keyframes[:n], matrices[:n]
        if bone not in known:
            logger.warning("Animation '%s' targets unknown bone '%s'",
                           anim_id, bone)
        # interpolation sources are not read: LINEAR is assumed
        animations[bone] = Animation(bone, keyframes, matrices)
    return animations


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------

def parse_collada(source) -> SceneModel:
    """Parse a Collada document (path or file object) into a SceneModel.

    No axis conversion is applied; see ``load_scene``.
    """
    try:
        root = ET.parse(source).getroot()
    except ET.ParseError as e:
        raise MalformedInputError(f"Failed to parse Collada: {e}") from e
    for elem in root.iter():
        elem.tag = _strip_ns(elem.tag)
    if root.tag != "COLLADA":
        raise MalformedInputError(f"Not a Collada document (<{root.tag}>)")

    diagnostics: list[Exception] = []
    model = SceneModel(mesh=_extract_mesh(root, diagnostics),
                       diagnostics=diagnostics)

    up_axis = root.find("asset/up_axis")
    if up_axis is not None and up_axis.text:
        model.up_axis = up_axis.text.strip()

    model.skin = _extract_skin(root, diagnostics)
    armature = find_armature(root)
    if armature is not None:
        model.armature_transform = node_transform(armature)
        model.skeleton = extract_bone_tree(armature)
        model.joint_to_bone = _joint_to_bone(model.skin, model.skeleton)
        model.animations = _extract_animations(root, model.skeleton)
    elif model.skin is not None:
        logger.warning("Skin found without an armature; exporting a static mesh")
        model.skin = None
    return model


def load_scene(source) -> SceneModel:
    """Parse and convert Z-up documents to Y-up."""
    model = parse_collada(source)
    return convert_axes(model, model.up_axis == "Z_UP")


# ---------------------------------------------------------------------------
# Debug UV image
# ---------------------------------------------------------------------------

def write_uv_debug_image(texcoords, size: tuple[int, int], path: Path) -> dict:
    """Plot UV texel usage: green for first use, red for collisions."""
    width, height = size
    image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    collisions = 0
    for uv in texcoords:
        i, j = texel_of(uv, width, height)
        if not (0 <= i < width and 0 <= j < height):
            logger.info("Out of bounds: %d, %d", i, j)
            i, j = i % width, j % height
        if image.getpixel((i, j))[3] != 0:
            image.putpixel((i, j), (255, 0, 0, 255))
            collisions += 1
        else:
            image.putpixel((i, j), (0, 255, 0, 255))
    with atomic_output(path) as tmp_path:
        image.save(str(tmp_path), "PNG")
    return {"texels": len(texcoords), "collisions": collisions}


# ---------------------------------------------------------------------------
# Main processor
# ---------------------------------------------------------------------------

def _report_redundancy(model: SceneModel, tables: MeshTables):
    uv_total = len(model.mesh.texcoords)
    if tables.uv.redundant > 0:
        logger.info("Found %d redundant UV entries, out of %d.",
                    tables.uv.redundant, uv_total)
    if tables.redundant_vertices > 0:
        logger.info("Removed %d redundant vertices.", tables.redundant_vertices)
    if uv_total and ((tables.uv.redundant - tables.redundant_vertices)
                     / uv_total) >= _REDUNDANT_UV_HINT:
        logger.info("You should consider reducing the number of UV loops in "
                    "your model.")


def _angle_corrections(settings: Settings, options: ConvertOptions
                       ) -> AngleCorrections | None:
    if not (options.hack_offset or options.hack_axis):
        return None
    corrections = AngleCorrections()
    if options.hack_offset:
        corrections.offset = settings.legacy_angle_offset
    if options.hack_axis:
        corrections.axis_map = settings.legacy_axis_map
        corrections.axis_sign = settings.legacy_axis_sign
    return corrections


class ColladaProcessor(BaseProcessor):
    name = "Collada Processor"
    supported_extensions = {".dae"}

    @classmethod
    def is_available(cls) -> bool:
        return True

    @classmethod
    def process(cls, source_path: Path, output_dir: Path, filename: str,
                options: ConvertOptions | None = None) -> ProcessorResult:
        options = options or ConvertOptions()
        settings = load_settings()

        try:
            model = load_scene(source_path)
        except MalformedInputError as e:
            return cls.error_result(filename, f"Parse error: {e}")

        tables = build_mesh_tables(model.mesh, settings.uv_grid,
                                   options.legacy_dedupe)
        _report_redundancy(model, tables)
        warnings = [str(d) for d in model.diagnostics]
        corrections = _angle_corrections(settings, options)
        basename = source_path.stem

        if options.pose:
            extension, mime, kind = ".txt", "text/plain", "Pose angles"
        elif options.json:
            extension, mime, kind = ".json", "application/json", "Skeleton JSON"
        else:
            extension, mime, kind = ".h", "text/x-c", "C header"
        if (options.pose or options.json or options.skeleton_only) and not len(model.skeleton):
            warnings.append("Model has no skeleton; skeletal output is empty")

        out_path = output_path(source_path, output_dir, extension, options.force)
        if options.pose:
            text = emit_pose(model, corrections)
        elif options.json:
            text = emit_json(model, options.euler, corrections)
        else:
            names = HeaderNames.for_basename(
                out_path.name, include_guard("MODEL", basename), basename)
            text = emit_header(model, tables, names, options.skeleton_only)
        try:
            atomic_write(out_path, text)
        except IOFailure as e:
            return cls.error_result(filename, str(e))

        outputs = [ProcessedOutput(out_path.name, kind, mime)]

        if options.debug_image:
            if _HAS_PILLOW:
                png_path = output_path(source_path, output_dir, ".png",
                                       options.force, stem=out_path.stem)
                try:
                    stats = write_uv_debug_image(model.mesh.texcoords,
                                                 settings.debug_image_size,
                                                 png_path)
                    outputs.append(ProcessedOutput(
                        png_path.name,
                        f"Debug UV image ({stats['collisions']} collisions)",
                        "image/png"))
                except IOFailure as e:
                    warnings.append(f"Debug UV image failed: {e}")
            else:
                warnings.append("Debug UV image requires Pillow: pip install Pillow")

        metadata = {
            "up_axis": model.up_axis,
            "vertex_count": sum(t.vertex_count for t in tables.submeshes),
            "face_count": sum(t.submesh.face_count for t in tables.submeshes),
            "submesh_count": len(tables.submeshes),
            "redundant_uvs": tables.uv.redundant,
            "redundant_vertices": tables.redundant_vertices,
            "has_skin": model.is_skinned,
            "bone_count": len(model.skeleton),
            "joint_count": model.skin.joint_count if model.skin else 0,
            "animation_count": len(model.animations),
        }

        return ProcessorResult(
            source_filename=filename,
            processor_name=cls.name,
            status="partial" if warnings else "success",
            outputs=outputs,
            metadata=metadata,
            warnings=warnings,
        )
