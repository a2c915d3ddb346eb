"""
File management service for vidcast.

Handles structured filesystem artifact storage with path traversal protection.
Creates per-run directories with subdirectories for the script and render output.
"""
from pathlib import Path

from vidcast.config import settings


class FileManager:
    """
    Manage filesystem artifacts for pipeline runs.

    Creates structured directories:
    - {base_dir}/{run_id}/script/ - Generated script JSON
    - {base_dir}/{run_id}/render/ - Title card text files and rendered video

    Implements path traversal protection to prevent directory escape attacks.
    """

    def __init__(self, base_dir: str | Path | None = None):
        """
        Initialize FileManager with base directory.

        Args:
            base_dir: Root directory for all run artifacts.
                     If None, uses settings.storage.tmp_dir
        """
        if base_dir is None:
            base_dir = settings.storage.tmp_dir

        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def get_run_dir(self, run_id: str) -> Path:
        """
        Get or create run directory with subdirectories.

        Args:
            run_id: Identifier of the run

        Returns:
            Resolved Path to run directory

        Raises:
            ValueError: If run_id creates path outside base_dir (traversal attack)
        """
        run_dir = (self.base_dir / str(run_id)).resolve()

        # Path traversal protection
        if run_dir == self.base_dir or not run_dir.is_relative_to(self.base_dir):
            raise ValueError("Invalid run path")

        run_dir.mkdir(exist_ok=True)
        (run_dir / "script").mkdir(exist_ok=True)
        (run_dir / "render").mkdir(exist_ok=True)

        return run_dir

    def save_script(self, run_id: str, data: str) -> Path:
        """Write the script JSON for a run and return its path."""
        filepath = self.get_run_dir(run_id) / "script" / "script.json"
        filepath.write_text(data, encoding="utf-8")
        return filepath

    def get_render_dir(self, run_id: str) -> Path:
        """Directory holding intermediate render inputs for a run."""
        return self.get_run_dir(run_id) / "render"

    def get_output_path(self, run_id: str, filename: str = "video.mp4") -> Path:
        """
        Get path for the rendered video.

        Args:
            run_id: Identifier of the run
            filename: Output filename (default: 'video.mp4')

        Returns:
            Path to output file location
        """
        return self.get_render_dir(run_id) / filename
