"""
Asset processing pipeline — converts authoring files into source artifacts.

Each processor turns one kind of input (Collada scenes, bitmap font
descriptors, localization tables) into generated headers, JSON or text
files written next to each other in an output directory.

Processors whose dependencies are missing are skipped at registration.
"""

import importlib
import logging
from dataclasses import dataclass, field
from pathlib import Path

from headerify.errors import HeaderifyError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class ProcessedOutput:
    filename: str       # e.g. "robot.h"
    description: str    # human-readable summary for the log
    mime_type: str
    size: int = 0


@dataclass
class ProcessorResult:
    source_filename: str
    processor_name: str
    status: str  # "success" | "partial" | "error"
    outputs: list[ProcessedOutput] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class ConvertOptions:
    force: bool = False
    debug_image: bool = False
    skeleton_only: bool = False
    json: bool = False
    euler: bool = False
    pose: bool = False
    hack_offset: bool = False
    hack_axis: bool = False
    legacy_dedupe: bool = False


# ---------------------------------------------------------------------------
# Base processor
# ---------------------------------------------------------------------------

class BaseProcessor:
    name: str = "base"
    supported_extensions: set[str] = set()

    @classmethod
    def is_available(cls) -> bool:
        """Check if required dependencies are installed."""
        return False

    @classmethod
    def process(cls, source_path: Path, output_dir: Path, filename: str,
                options: ConvertOptions | None = None) -> ProcessorResult:
        """Process a file and write outputs to output_dir."""
        raise NotImplementedError

    @classmethod
    def error_result(cls, filename: str, error: str) -> ProcessorResult:
        return ProcessorResult(
            source_filename=filename,
            processor_name=cls.name,
            status="error",
            error=error,
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_registry: list[type[BaseProcessor]] = []

_PROCESSOR_MODULES = [
    "headerify.processors.collada",
    "headerify.processors.font",
    "headerify.processors.localization",
]


def _auto_register():
    """Import each processor module and register available processors."""
    for module_name in _PROCESSOR_MODULES:
        try:
            mod = importlib.import_module(module_name)
        except ImportError as e:
            logger.warning("Failed to import %s: %s", module_name, e)
            continue
        for attr_name in dir(mod):
            attr = getattr(mod, attr_name)
            if (
                isinstance(attr, type)
                and issubclass(attr, BaseProcessor)
                and attr is not BaseProcessor
                and attr not in _registry
            ):
                if attr.is_available():
                    _registry.append(attr)
                    logger.debug("Processor registered: %s", attr.name)
                else:
                    logger.warning(
                        "Processor %s skipped (dependencies unavailable)",
                        attr.name,
                    )


def get_processor(filename: str) -> type[BaseProcessor] | None:
    """Find a processor for the given filename by extension."""
    ext = Path(filename).suffix.lower()
    for proc in _registry:
        if ext in proc.supported_extensions:
            return proc
    return None


def supported_extensions() -> list[str]:
    return sorted(ext for proc in _registry for ext in proc.supported_extensions)


# ---------------------------------------------------------------------------
# Pipeline runner
# ---------------------------------------------------------------------------

def run_pipeline(
    source_path: Path,
    output_dir: Path,
    options: ConvertOptions | None = None,
) -> ProcessorResult | None:
    """Run the matching processor for a single file.

    Returns None if no processor handles the file's extension.
    """
    filename = source_path.name
    proc = get_processor(filename)
    if proc is None:
        return None

    logger.info("Processing %s with %s...", filename, proc.name)
    output_dir.mkdir(parents=True, exist_ok=True)
    try:
        result = proc.process(source_path, output_dir, filename,
                              options or ConvertOptions())
    except HeaderifyError as e:
        result = proc.error_result(filename, str(e))
    except Exception as e:
        logger.debug("Processor %s failed for %s", proc.name, filename,
                     exc_info=True)
        result = proc.error_result(filename, f"{type(e).__name__}: {e}")

    # Update output sizes
    for out in result.outputs:
        out_path = output_dir / out.filename
        if out_path.exists():
            out.size = out_path.stat().st_size

    for warning in result.warnings:
        logger.warning("%s: %s", filename, warning)
    if result.error:
        logger.error("%s: %s", filename, result.error)
    for out in result.outputs:
        logger.info("File saved to %s (%s)", output_dir / out.filename,
                    out.description)
    return result


# Auto-register on import
_auto_register()
