"""
Settings for headerify.

Values come from ``HEADERIFY_*`` environment variables; a ``.env`` file found
from the current directory upwards is loaded first using python-dotenv.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "HEADERIFY_"


@dataclass(frozen=True)
class Settings:
    uv_grid: tuple[int, int] = (256, 256)
    debug_image_size: tuple[int, int] = (128, 128)
    # --hack-offset: degrees added to every pose angle
    legacy_angle_offset: tuple[float, float, float] = (-90.0, 0.0, 0.0)
    # --hack-axis: output angle i takes input angle axis_map[i] * axis_sign[i]
    legacy_axis_map: tuple[int, int, int] = (0, 2, 1)
    legacy_axis_sign: tuple[float, float, float] = (1.0, -1.0, 1.0)
    log_level: str = "INFO"


def _parse_tuple(raw: str, cast, length: int, name: str):
    parts = [p for p in raw.replace(",", " ").split() if p]
    if len(parts) != length:
        raise ValueError(f"{name} expects {length} values, got {raw!r}")
    return tuple(cast(p) for p in parts)


def load_settings(env_path: str | None = None) -> Settings:
    """Load .env (if any) into os.environ and build a Settings object."""
    path = env_path or find_dotenv(usecwd=True)
    if path:
        load_dotenv(path, override=False)

    defaults = Settings()
    fields = {
        "uv_grid": (int, 2),
        "debug_image_size": (int, 2),
        "legacy_angle_offset": (float, 3),
        "legacy_axis_map": (int, 3),
        "legacy_axis_sign": (float, 3),
    }
    values = {}
    for name, (cast, length) in fields.items():
        raw = os.environ.get(ENV_PREFIX + name.upper())
        if raw is None:
            continue
        try:
            values[name] = _parse_tuple(raw, cast, length, ENV_PREFIX + name.upper())
        except ValueError as e:
            logger.warning("Ignoring setting: %s", e)

    axis_map = values.get("legacy_axis_map", defaults.legacy_axis_map)
    if sorted(axis_map) != [0, 1, 2]:
        logger.warning("Ignoring %sLEGACY_AXIS_MAP=%s (not a permutation)",
                       ENV_PREFIX, axis_map)
        values.pop("legacy_axis_map", None)

    log_level = os.environ.get(ENV_PREFIX + "LOG_LEVEL")
    if log_level:
        if isinstance(logging.getLevelName(log_level.upper()), int):
            values["log_level"] = log_level.upper()
        else:
            logger.warning("Ignoring %sLOG_LEVEL=%s (unknown level)",
                           ENV_PREFIX, log_level)

    return dataclasses.replace(defaults, **values)
