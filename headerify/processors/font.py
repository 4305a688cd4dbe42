"""
Font Processor — BMFont text descriptor (.fnt) → C header.

The header holds a ``vd::ui::UniChar`` table sorted by character id and a
``vd::ui::FontDesc`` that points at it.

Dependencies: None.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from headerify.errors import IOFailure, MalformedInputError
from headerify.processors import (BaseProcessor, ConvertOptions,
                                  ProcessedOutput, ProcessorResult)
from headerify.workspace import atomic_write, include_guard, output_path

logger = logging.getLogger(__name__)

_ATTR_RE = re.compile(r'(\w+)=("[^"]*"|\S+)')
_CHAR_FIELDS = ("x", "y", "width", "height", "xoffset", "yoffset", "xadvance")


@dataclass
class FontInfo:
    attributes: dict[str, str] = field(default_factory=dict)
    chars: dict[int, dict[str, str]] = field(default_factory=dict)

    def get(self, key: str, default: str = "0") -> str:
        return self.attributes.get(key, default)

    def flag(self, key: str) -> str:
        return "true" if self.get(key) == "1" else "false"

    def quoted(self, key: str) -> str:
        value = self.attributes.get(key, '""')
        return value if value.startswith('"') else f'"{value}"'


def parse_attributes(line: str) -> dict[str, str]:
    """``char id=32 x=0`` → ``{"id": "32", "x": "0"}``; quotes are kept."""
    return dict(_ATTR_RE.findall(line))


def parse_font(text: str) -> FontInfo:
    font = FontInfo()
    seen = set()
    for line in text.splitlines():
        tag, _, rest = line.strip().partition(" ")
        attrs = parse_attributes(rest)
        if tag in ("info", "common"):
            seen.add(tag)
            font.attributes.update(attrs)
        elif tag == "page":
            font.attributes.setdefault("file", attrs.get("file", '""'))
        elif tag == "chars":
            font.attributes["count"] = attrs.get("count", "0")
        elif tag == "char":
            try:
                char_id = int(attrs["id"])
            except (KeyError, ValueError):
                logger.warning("Skipping char line without a valid id: %s",
                               line.strip())
                continue
            font.chars[char_id] = {k: attrs.get(k, "0") for k in _CHAR_FIELDS}
    missing = {"info", "common"} - seen
    if missing:
        raise MalformedInputError(
            f"Font descriptor has no {', '.join(sorted(missing))} line")
    font.chars = dict(sorted(font.chars.items()))
    return font


def emit_font_header(font: FontInfo, guard: str) -> str:
    out = [
        f"#ifndef {guard}\n",
        f"#define {guard}\n\n",
        '#include "ui/FontDef.h"\n\nnamespace {\n',
        "\tvd::ui::UniChar g_chars[] = {\n",
        "\t\t{ 0, 0, 0, 0, 0, 0, 0, 0 }, // default for missing keys\n",
    ]
    for key, c in font.chars.items():
        out.append(
            f"\t\t{{ {key} /*id*/, {c['x']} /*x*/, {c['y']} /*y*/, "
            f"{c['width']} /*w*/, {c['height']} /*h*/, {c['xoffset']} /*xo*/, "
            f"{c['yoffset']} /*yo*/, {c['xadvance']} /*xa*/}},\n")
    out.append("\t};\n}\n\n")

    out.append("vd::ui::FontDesc g_font = {\n")
    fields = [
        (font.quoted("file"), "file"),
        (font.quoted("face"), "face"),
        (font.quoted("charset"), "charset"),
        (font.get("size"), "size"),
        (font.get("stretchH", "100"), "stretchH"),
        (font.flag("bold"), "bold"),
        (font.flag("italic"), "italic"),
        (font.flag("unicode"), "unicode"),
        (font.flag("smooth"), "smooth"),
        (font.flag("aa"), "aa"),
        (f"vd::math::Vector4({font.get('padding', '0,0,0,0')})", "padding"),
        (f"vd::math::Vector2({font.get('spacing', '0,0')})", "spacing"),
        (font.get("lineHeight"), "lineHeight"),
        (font.get("base"), "base"),
        (font.get("scaleW"), "scaleW"),
        (font.get("scaleH"), "scaleH"),
        (font.get("count", str(len(font.chars))), "charCount"),
    ]
    for value, label in fields:
        out.append(f"\t{value}, // {label}\n")
    out.append("\t&g_chars[0]\n};\n\n")
    out.append(f"#endif // {guard}\n")
    return "".join(out)


class FontProcessor(BaseProcessor):
    name = "Font Processor"
    supported_extensions = {".fnt"}

    @classmethod
    def is_available(cls) -> bool:
        return True

    @classmethod
    def process(cls, source_path: Path, output_dir: Path, filename: str,
                options: ConvertOptions | None = None) -> ProcessorResult:
        options = options or ConvertOptions()
        try:
            font = parse_font(source_path.read_text(encoding="utf-8",
                                                    errors="replace"))
        except MalformedInputError as e:
            return cls.error_result(filename, f"Failed to load font: {e}")

        warnings = []
        declared = font.get("count", str(len(font.chars)))
        if declared != str(len(font.chars)):
            warnings.append(f"Descriptor declares {declared} chars but "
                            f"defines {len(font.chars)}")

        out_path = output_path(source_path, output_dir, ".h", options.force)
        guard = include_guard("DATA", source_path.stem)
        try:
            atomic_write(out_path, emit_font_header(font, guard))
        except IOFailure as e:
            return cls.error_result(filename, str(e))

        face = font.get("face", '""').strip('"')
        return ProcessorResult(
            source_filename=filename,
            processor_name=cls.name,
            status="partial" if warnings else "success",
            outputs=[ProcessedOutput(
                out_path.name, f"Font header ({len(font.chars)} glyphs)",
                "text/x-c")],
            metadata={"face": face, "glyph_count": len(font.chars),
                      "size": font.get("size")},
            warnings=warnings,
        )
