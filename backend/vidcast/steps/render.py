"""Video rendering with ffmpeg title cards.

Renders one title card per script scene and joins them into a single MP4:
- lavfi color source per scene, sized and timed from RenderConfig
- drawtext reading each card's text from a file (no filtergraph escaping of
  model output)
- concat filter joining the cards in scene order

The ffmpeg subprocess is killed when the step is cancelled or times out.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Mapping, Optional

from pydantic import ValidationError

from vidcast.config import RenderConfig
from vidcast.orchestrator.errors import StepError
from vidcast.orchestrator.models import MetaValue
from vidcast.schemas.script import VideoScript
from vidcast.services.file_manager import FileManager
from vidcast.steps.base import PipelineStep, StepContext

logger = logging.getLogger(__name__)


def _filter_path(path: Path) -> str:
    """Quote a path for use inside an ffmpeg filtergraph option."""
    return "'" + str(path).replace("\\", "/").replace("'", r"'\''") + "'"


def write_card_texts(script: VideoScript, render_dir: Path) -> list[Path]:
    """Write one text file per scene for drawtext and return their paths."""
    paths = []
    for index, scene in enumerate(script.scenes):
        path = render_dir / f"card_{index}.txt"
        path.write_text(f"{scene.heading}\n\n{scene.on_screen_text}", encoding="utf-8")
        paths.append(path)
    return paths


def build_render_command(
    card_paths: list[Path],
    output_path: Path,
    config: RenderConfig,
) -> list[str]:
    """Build the ffmpeg argument list rendering the title cards into one MP4.

    Args:
        card_paths: Text file per scene, in scene order
        output_path: Destination MP4
        config: Resolution, timing, colors and binary

    Returns:
        Argument list suitable for create_subprocess_exec
    """
    if not card_paths:
        raise ValueError("At least one card is required")

    size = f"{config.width}x{config.height}"
    inputs = []
    filter_parts = []
    for i, card in enumerate(card_paths):
        inputs.extend([
            "-f", "lavfi",
            "-i", (
                f"color=c={config.background_color}:s={size}"
                f":d={config.seconds_per_scene:g}:r={config.fps}"
            ),
        ])
        filter_parts.append(
            f"[{i}:v]drawtext=textfile={_filter_path(card)}"
            f":fontcolor={config.font_color}:fontsize={config.font_size}"
            f":line_spacing=12:x=(w-text_w)/2:y=(h-text_h)/2,"
            f"format=yuv420p[v{i}]"
        )

    labels = "".join(f"[v{i}]" for i in range(len(card_paths)))
    filter_parts.append(f"{labels}concat=n={len(card_paths)}:v=1:a=0[out]")

    return [
        config.ffmpeg_binary,
        "-y",  # Overwrite output file
        "-hide_banner",
        *inputs,
        "-filter_complex", ";".join(filter_parts),
        "-map", "[out]",
        "-c:v", "libx264",
        "-pix_fmt", "yuv420p",
        "-movflags", "+faststart",
        str(output_path),
    ]


async def run_ffmpeg(command: list[str], timeout: Optional[float]) -> None:
    """Run ffmpeg, killing it on timeout or cancellation.

    Raises:
        RuntimeError: If ffmpeg exits non-zero (message carries stderr tail).
        asyncio.TimeoutError: If the timeout elapsed.
    """
    proc = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except BaseException:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise

    if proc.returncode != 0:
        tail = (stderr or b"").decode(errors="replace").strip()[-500:]
        raise RuntimeError(f"ffmpeg exited with code {proc.returncode}: {tail or 'no output'}")


class RenderStep(PipelineStep):
    """Render the generated script into an MP4."""

    name = "render"

    def __init__(self, config: RenderConfig, file_manager: Optional[FileManager] = None) -> None:
        self.config = config
        self.file_manager = file_manager or FileManager()

    async def execute(self, context: StepContext) -> Mapping[str, MetaValue]:
        script_path = context.output("script", "scriptPath")
        if not script_path:
            raise StepError(self.name, "no script available from the script step")

        try:
            script = VideoScript.model_validate_json(Path(str(script_path)).read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise StepError(self.name, f"could not load script {script_path}: {e}") from e

        render_dir = self.file_manager.get_render_dir(context.run_id)
        output_path = self.file_manager.get_output_path(context.run_id)
        card_paths = write_card_texts(script, render_dir)
        command = build_render_command(card_paths, output_path, self.config)

        logger.info(f"Run {context.run_id}: rendering {len(card_paths)} cards -> {output_path}")
        render_start = time.monotonic()
        try:
            await run_ffmpeg(command, timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise StepError(
                self.name, f"render timeout after {self.config.timeout_seconds:g}s"
            ) from e
        except FileNotFoundError as e:
            raise StepError(self.name, f"{self.config.ffmpeg_binary} not found on PATH") from e
        except RuntimeError as e:
            logger.error(f"Run {context.run_id}: {e}")
            raise StepError(self.name, str(e)) from e
        render_seconds = time.monotonic() - render_start

        if not output_path.exists():
            raise StepError(self.name, f"ffmpeg produced no output at {output_path}")

        return {
            "outputPath": str(output_path),
            "durationSeconds": round(len(card_paths) * self.config.seconds_per_scene, 3),
            "fileSizeBytes": output_path.stat().st_size,
            "renderSeconds": round(render_seconds, 3),
            "resolution": f"{self.config.width}x{self.config.height}",
        }
