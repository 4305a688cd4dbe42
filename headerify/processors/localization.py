"""
Localization Processor — CSV table → one .strings file per locale.

The first row names the locales, e.g. ``#id,en_US,es_ES,ja_JP``; every
following row is ``<key>,<text in each locale>``.
"""

import csv
import logging
from pathlib import Path

from headerify.errors import IOFailure, MalformedInputError
from headerify.processors import (BaseProcessor, ConvertOptions,
                                  ProcessedOutput, ProcessorResult)
from headerify.workspace import atomic_write, output_path

logger = logging.getLogger(__name__)


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def read_table(path: Path) -> tuple[list[str], list[list[str]]]:
    """Return the locale names and the data rows."""
    with path.open(newline="", encoding="utf-8-sig") as f:
        rows = [row for row in csv.reader(f) if row]
    if not rows or len(rows[0]) < 2:
        raise MalformedInputError("CSV needs a header row: #id,<locale>,...")
    locales = [loc.strip() for loc in rows[0][1:]]
    return locales, rows[1:]


def render_strings(rows: list[list[str]], column: int) -> str:
    lines = []
    for row in rows:
        value = row[column] if column < len(row) else ""
        lines.append(f'"{_escape(row[0])}" = "{_escape(value)}";\n')
    return "".join(lines)


class LocalizationProcessor(BaseProcessor):
    name = "Localization Processor"
    supported_extensions = {".csv"}

    @classmethod
    def is_available(cls) -> bool:
        return True

    @classmethod
    def process(cls, source_path: Path, output_dir: Path, filename: str,
                options: ConvertOptions | None = None) -> ProcessorResult:
        options = options or ConvertOptions()
        try:
            locales, rows = read_table(source_path)
        except (MalformedInputError, UnicodeDecodeError, csv.Error) as e:
            return cls.error_result(filename, f"Failed to read CSV: {e}")
        logger.info("Locales: %s", ", ".join(locales))

        outputs = []
        warnings = []
        for column, locale in enumerate(locales, start=1):
            if not locale:
                warnings.append(f"Column {column} has no locale name, skipped")
                continue
            out_path = output_path(source_path, output_dir, ".strings",
                                   force=True,
                                   stem=f"{source_path.stem}_{locale}")
            try:
                atomic_write(out_path, render_strings(rows, column))
            except IOFailure as e:
                warnings.append(str(e))
                continue
            outputs.append(ProcessedOutput(
                out_path.name, f"{locale} strings ({len(rows)} entries)",
                "text/plain"))

        if not outputs:
            return cls.error_result(filename, "No .strings files written")
        return ProcessorResult(
            source_filename=filename,
            processor_name=cls.name,
            status="partial" if warnings else "success",
            outputs=outputs,
            metadata={"locales": locales, "entry_count": len(rows)},
            warnings=warnings,
        )
