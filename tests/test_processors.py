import json

import pytest
from PIL import Image

from colladadocs import (collada_doc, skinned_doc, triangle_mesh,
                         zero_scale_doc)
from headerify.processors import (ConvertOptions, get_processor, run_pipeline,
                                  supported_extensions)
from headerify.processors.collada import ColladaProcessor, write_uv_debug_image
from headerify.processors.font import (FontProcessor, emit_font_header,
                                       parse_attributes, parse_font)
from headerify.processors.localization import (LocalizationProcessor,
                                               read_table, render_strings)

FONT = """\
info face="Arial" size=32 bold=0 italic=1 charset="" unicode=1 stretchH=100 smooth=1 aa=1 padding=0,0,0,0 spacing=1,1
common lineHeight=32 base=26 scaleW=256 scaleH=256 pages=1 packed=0
page id=0 file="arial.png"
chars count=2
char id=66   x=10    y=0     width=9     height=20    xoffset=1     yoffset=6     xadvance=11    page=0  chnl=15
char id=65   x=0     y=0     width=10    height=20    xoffset=0     yoffset=6     xadvance=10    page=0  chnl=15
"""

STRINGS = 'id,en_US,es_ES\nhello,Hello,Hola\nquote,"Say ""hi""","Di ""hola"""\n'


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_registry_maps_extensions():
    assert get_processor("robot.dae") is ColladaProcessor
    assert get_processor("ROBOT.DAE") is ColladaProcessor
    assert get_processor("arial.fnt") is FontProcessor
    assert get_processor("strings.csv") is LocalizationProcessor
    assert get_processor("robot.obj") is None
    assert supported_extensions() == [".csv", ".dae", ".fnt"]


def test_unknown_extension(write_file, out_dir):
    assert run_pipeline(write_file("robot.obj", ""), out_dir) is None


# ---------------------------------------------------------------------------
# Collada
# ---------------------------------------------------------------------------

def test_collada_header_output(write_file, out_dir):
    source = write_file("tri.dae", collada_doc(triangle_mesh()))
    result = run_pipeline(source, out_dir)
    assert result.status == "success"
    assert [o.filename for o in result.outputs] == ["tri.h"]
    assert result.outputs[0].size == (out_dir / "tri.h").stat().st_size
    assert result.metadata["vertex_count"] == 3
    assert result.metadata["face_count"] == 1
    assert not result.metadata["has_skin"]


def test_collada_picks_a_free_name(write_file, out_dir):
    source = write_file("tri.dae", collada_doc(triangle_mesh()))
    run_pipeline(source, out_dir)
    second = run_pipeline(source, out_dir)
    assert second.outputs[0].filename == "tri_1.h"
    forced = run_pipeline(source, out_dir, ConvertOptions(force=True))
    assert forced.outputs[0].filename == "tri.h"
    assert sorted(p.name for p in out_dir.iterdir()) == ["tri.h", "tri_1.h"]


def test_collada_json_output(write_file, out_dir):
    source = write_file("rigged.dae", skinned_doc())
    result = run_pipeline(source, out_dir, ConvertOptions(json=True))
    assert result.outputs[0].filename == "rigged.json"
    doc = json.loads((out_dir / "rigged.json").read_text())
    assert doc["bone_count"] == 5
    # the truncation diagnostic surfaces as a warning
    assert result.status == "partial"
    assert any("joint contributions" in w for w in result.warnings)


def test_collada_pose_output(write_file, out_dir):
    source = write_file("rigged.dae", skinned_doc())
    result = run_pipeline(source, out_dir, ConvertOptions(pose=True))
    assert result.outputs[0].filename == "rigged.txt"
    lines = (out_dir / "rigged.txt").read_text().splitlines()
    assert len(lines) == 4


def test_collada_skeleton_output_without_skeleton(write_file, out_dir):
    source = write_file("tri.dae", collada_doc(triangle_mesh()))
    result = run_pipeline(source, out_dir, ConvertOptions(json=True))
    assert result.status == "partial"
    assert "no skeleton" in result.warnings[0]


def test_collada_debug_image(write_file, out_dir):
    source = write_file("tri.dae", collada_doc(triangle_mesh()))
    result = run_pipeline(source, out_dir, ConvertOptions(debug_image=True))
    assert [o.filename for o in result.outputs] == ["tri.h", "tri.png"]
    with Image.open(out_dir / "tri.png") as image:
        assert image.size == (128, 128)


def test_debug_image_marks_collisions(tmp_path):
    path = tmp_path / "uv.png"
    stats = write_uv_debug_image([(0.0, 0.0), (0.001, 0.001), (0.5, 0.5)],
                                 (128, 128), path)
    assert stats == {"texels": 3, "collisions": 1}
    with Image.open(path) as image:
        assert image.getpixel((0, 0)) == (255, 0, 0, 255)
        assert image.getpixel((64, 64)) == (0, 255, 0, 255)


def test_collada_parse_error_writes_nothing(write_file, out_dir):
    source = write_file("bad.dae", "<COLLADA><asset>")
    result = run_pipeline(source, out_dir)
    assert result.status == "error"
    assert "Parse error" in result.error
    assert list(out_dir.iterdir()) == []


def test_collada_uses_debug_image_size_setting(write_file, out_dir, monkeypatch):
    monkeypatch.setenv("HEADERIFY_DEBUG_IMAGE_SIZE", "32 16")
    source = write_file("tri.dae", collada_doc(triangle_mesh()))
    run_pipeline(source, out_dir, ConvertOptions(debug_image=True))
    with Image.open(out_dir / "tri.png") as image:
        assert image.size == (32, 16)


def test_collada_pose_with_zero_scale_frame(write_file, out_dir):
    source = write_file("rigged.dae", zero_scale_doc())
    result = run_pipeline(source, out_dir, ConvertOptions(pose=True))
    assert result.status != "error"
    lines = (out_dir / "rigged.txt").read_text().splitlines()
    assert [line.split()[0] for line in lines] == ["Bone2", "Bone2"]


def test_collada_bad_offset_is_an_error(write_file, out_dir):
    doc = collada_doc(triangle_mesh().replace('offset="1"', 'offset="one"'))
    result = run_pipeline(write_file("tri.dae", doc), out_dir)
    assert result.status == "error"
    assert 'offset="one"' in result.error
    assert list(out_dir.iterdir()) == []


def test_unexpected_failure_becomes_an_error_result(write_file, out_dir,
                                                    monkeypatch):
    def explode(cls, *args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(ColladaProcessor, "process", classmethod(explode))
    result = run_pipeline(write_file("tri.dae", collada_doc(triangle_mesh())),
                          out_dir)
    assert result.status == "error"
    assert result.error == "RuntimeError: boom"


# ---------------------------------------------------------------------------
# Font
# ---------------------------------------------------------------------------

def test_parse_attributes_keeps_quotes():
    assert parse_attributes('face="Comic Sans" size=12') == {
        "face": '"Comic Sans"', "size": "12"}


def test_parse_font_sorts_chars():
    font = parse_font(FONT)
    assert list(font.chars) == [65, 66]
    assert font.get("lineHeight") == "32"
    assert font.quoted("file") == '"arial.png"'


def test_font_header_layout():
    text = emit_font_header(parse_font(FONT), "DATA_ARIAL_H_")
    assert text.startswith("#ifndef DATA_ARIAL_H_\n#define DATA_ARIAL_H_\n")
    assert text.index("{ 65 /*id*/") < text.index("{ 66 /*id*/")
    assert ("{ 65 /*id*/, 0 /*x*/, 0 /*y*/, 10 /*w*/, 20 /*h*/, 0 /*xo*/, "
            "6 /*yo*/, 10 /*xa*/}") in text
    assert "\tfalse, // bold\n" in text
    assert "\ttrue, // italic\n" in text
    assert '\t"arial.png", // file\n' in text
    assert "\tvd::math::Vector2(1,1), // spacing\n" in text
    assert "\t2, // charCount\n" in text
    assert text.rstrip().endswith("#endif // DATA_ARIAL_H_")


def test_font_processor(write_file, out_dir):
    result = run_pipeline(write_file("arial.fnt", FONT), out_dir)
    assert result.status == "success"
    assert result.metadata == {"face": "Arial", "glyph_count": 2, "size": "32"}
    assert (out_dir / "arial.h").exists()


def test_font_count_mismatch_is_a_warning(write_file, out_dir):
    source = write_file("arial.fnt", FONT.replace("chars count=2",
                                                  "chars count=3"))
    result = run_pipeline(source, out_dir)
    assert result.status == "partial"
    assert "declares 3 chars" in result.warnings[0]


def test_font_without_common_line(write_file, out_dir):
    source = write_file("broken.fnt", FONT.splitlines()[0] + "\n")
    result = run_pipeline(source, out_dir)
    assert result.status == "error"
    assert "common" in result.error
    assert list(out_dir.iterdir()) == []


# ---------------------------------------------------------------------------
# Localization
# ---------------------------------------------------------------------------

def test_read_table(write_file):
    locales, rows = read_table(write_file("strings.csv", STRINGS))
    assert locales == ["en_US", "es_ES"]
    assert rows[1] == ["quote", 'Say "hi"', 'Di "hola"']


def test_render_strings_escapes_quotes():
    text = render_strings([["quote", 'Say "hi"'], ["short"]], 1)
    assert text == '"quote" = "Say \\"hi\\"";\n"short" = "";\n'


def test_localization_writes_one_file_per_locale(write_file, out_dir):
    result = run_pipeline(write_file("strings.csv", STRINGS), out_dir)
    assert result.status == "success"
    assert sorted(o.filename for o in result.outputs) == [
        "strings_en_US.strings", "strings_es_ES.strings"]
    spanish = (out_dir / "strings_es_ES.strings").read_text(encoding="utf-8")
    assert spanish.splitlines()[0] == '"hello" = "Hola";'


def test_localization_overwrites(write_file, out_dir):
    source = write_file("strings.csv", STRINGS)
    run_pipeline(source, out_dir)
    run_pipeline(source, out_dir)
    assert len(list(out_dir.iterdir())) == 2


@pytest.mark.parametrize("content", ["", "id\n"])
def test_localization_needs_a_header(write_file, out_dir, content):
    result = run_pipeline(write_file("strings.csv", content), out_dir)
    assert result.status == "error"
