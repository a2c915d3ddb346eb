"""Pipeline steps.

The built-in pipeline is script -> render -> upload. The orchestrator takes
any ordered list of PipelineStep instances, so tests substitute fakes.
"""

from typing import Optional

from vidcast.config import Settings
from vidcast.services.file_manager import FileManager
from vidcast.steps.base import PipelineStep, StepContext
from vidcast.steps.render import RenderStep
from vidcast.steps.script import ScriptStep
from vidcast.steps.upload import UploadStep


def build_default_steps(app_settings: Optional[Settings] = None) -> list[PipelineStep]:
    """Build the production pipeline from settings."""
    if app_settings is None:
        from vidcast.config import settings as app_settings

    file_manager = FileManager(app_settings.storage.tmp_dir)
    return [
        ScriptStep(app_settings.script, file_manager=file_manager),
        RenderStep(app_settings.render, file_manager=file_manager),
        UploadStep(app_settings.publish),
    ]


__all__ = [
    "PipelineStep",
    "RenderStep",
    "ScriptStep",
    "StepContext",
    "UploadStep",
    "build_default_steps",
]
