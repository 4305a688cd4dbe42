"""
Output file handling for headerify.

Generated files are staged next to their destination and renamed into place
only once complete, so a failed run never leaves a half-written artifact.
"""

import logging
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path

from headerify.errors import IOFailure

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def c_identifier(basename: str) -> str:
    """Make a file stem usable inside C identifiers."""
    ident = re.sub(r"[\s\-.]", "_", basename)
    return re.sub(r"\W", "", ident)


def include_guard(prefix: str, basename: str) -> str:
    """``MODEL`` + ``robot-arm`` → ``MODEL_ROBOT_ARM_H_``."""
    return f"{prefix}_{c_identifier(basename).upper()}_H_"


def variable_name(basename: str, suffix: str) -> str:
    """``robot`` + ``Vertices`` → ``g_robotVertices``."""
    return f"g_{c_identifier(basename)}{suffix}"


def output_path(source_path: Path, output_dir: Path, extension: str,
                force: bool = False, stem: str | None = None) -> Path:
    """Choose where a generated file goes.

    With ``force`` an existing file is overwritten; otherwise ``_1``, ``_2``…
    is appended to the stem until the name is free.
    """
    stem = stem or source_path.stem
    candidate = output_dir / f"{stem}{extension}"
    if force:
        return candidate
    interfix = 1
    while candidate.exists():
        candidate = output_dir / f"{stem}_{interfix}{extension}"
        interfix += 1
    return candidate


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------

@contextmanager
def atomic_output(path: Path):
    """Yield a temporary path that replaces ``path`` when the block succeeds.

    OSErrors are raised as IOFailure; any failure removes the staging file.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        os.close(fd)
    except OSError as e:
        raise IOFailure(f"Cannot write to {path.parent}: {e}") from e

    tmp_path = Path(tmp_name)
    try:
        yield tmp_path
        os.replace(tmp_path, path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise IOFailure(f"Failed to write {path}: {e}") from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    logger.debug("Wrote %s", path)


def atomic_write(path: Path, text: str) -> Path:
    with atomic_output(path) as tmp_path:
        tmp_path.write_text(text, encoding="utf-8")
    return Path(path)
