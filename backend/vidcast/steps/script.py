"""Script generation step using LLM structured output.

Turns the run's optional topic hint into a VideoScript (title, description,
tags and scene-by-scene narration). Without a topic the model picks a
trending angle itself. The script is written to the run's artifact
directory for the downstream render and upload steps.
"""

import logging
from typing import Mapping, Optional

from vidcast.config import ScriptConfig
from vidcast.orchestrator.errors import StepError
from vidcast.orchestrator.models import MetaValue
from vidcast.schemas.script import VideoScript
from vidcast.services.file_manager import FileManager
from vidcast.services.llm import LLMAdapter, get_adapter
from vidcast.steps.base import PipelineStep, StepContext

logger = logging.getLogger(__name__)

# System prompt for script generation
SCRIPT_SYSTEM_PROMPT = """You are a scriptwriter for short, punchy explainer videos published on YouTube.

REQUIREMENTS:
- Open with a hook scene that makes the viewer stay
- Each scene has a short heading, 1-3 sentences of narration and on-screen text
- On-screen text must fit on a single title card (at most 60 characters)
- Close with a call to action
- Title at most 100 characters, no clickbait in ALL CAPS
- Description of 2-4 sentences and 5-10 search tags

GOAL: A clear, accurate, engaging video that can be narrated in under two minutes."""


def build_script_prompt(topic: Optional[str], scene_count: int, audience: str) -> str:
    """Build the user prompt for the script model."""
    if topic:
        subject = f"Topic: {topic}"
    else:
        subject = (
            "Topic: choose a currently trending, evergreen-friendly angle "
            "in technology or productivity yourself."
        )
    return (
        f"{subject}\n"
        f"Audience: {audience}\n"
        f"Write exactly {scene_count} scenes."
    )


class ScriptStep(PipelineStep):
    """Generate the video script."""

    name = "script"

    def __init__(
        self,
        config: ScriptConfig,
        file_manager: Optional[FileManager] = None,
        adapter: Optional[LLMAdapter] = None,
    ) -> None:
        self.config = config
        self.file_manager = file_manager or FileManager()
        self._adapter = adapter

    @property
    def adapter(self) -> LLMAdapter:
        # Created lazily so constructing the pipeline never touches the network
        if self._adapter is None:
            self._adapter = get_adapter(self.config)
        return self._adapter

    async def execute(self, context: StepContext) -> Mapping[str, MetaValue]:
        prompt = build_script_prompt(
            context.topic, self.config.scene_count, self.config.default_audience
        )
        logger.info(f"Run {context.run_id}: generating script (topic={context.topic!r})")

        try:
            script = await self.adapter.generate_text(
                prompt,
                VideoScript,
                temperature=self.config.temperature,
                system_prompt=SCRIPT_SYSTEM_PROMPT,
                max_retries=self.config.max_retries,
            )
        except Exception as e:
            raise StepError(
                self.name, f"script generation failed: {type(e).__name__}: {e}"
            ) from e

        title = script.title.strip()
        if not title:
            raise StepError(self.name, "script generation returned an empty title")

        script_path = self.file_manager.save_script(
            context.run_id, script.model_dump_json(indent=2)
        )
        logger.info(
            f"Run {context.run_id}: script '{title}' with {len(script.scenes)} scenes "
            f"-> {script_path}"
        )

        return {
            "videoTitle": title,
            "scriptPath": str(script_path),
            "sceneCount": len(script.scenes),
            "wordCount": script.word_count,
            "model": self.adapter.model_id,
        }
