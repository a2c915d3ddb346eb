"""vidcast: scripted short videos, rendered with ffmpeg and published on a schedule.

The render step shells out to ffmpeg, so entry points that build the default
pipeline (API lifespan, ``vidcast run``) call validate_dependencies() first.
"""

import logging
import subprocess

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

FFMPEG_INSTALL_HINT = (
    "Ubuntu/Debian: sudo apt-get install ffmpeg | "
    "macOS: brew install ffmpeg | "
    "Windows: https://ffmpeg.org/download.html"
)


def validate_dependencies(ffmpeg_binary: str = "ffmpeg") -> None:
    """Check that the configured ffmpeg binary runs.

    Raises:
        RuntimeError: If the binary is missing or exits non-zero on -version.
    """
    try:
        result = subprocess.run(
            [ffmpeg_binary, "-version"],
            capture_output=True,
            check=True,
            text=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise RuntimeError(
            f"{ffmpeg_binary} not found on PATH; the render step needs it ({FFMPEG_INSTALL_HINT})"
        ) from e
    logger.info(f"Render backend: {result.stdout.splitlines()[0] if result.stdout else ffmpeg_binary}")
