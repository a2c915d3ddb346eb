"""Pydantic schemas for the video script structured output.

These schemas define the structure the script model must return, and are
what the render and upload steps read back from script.json.
"""

from pydantic import BaseModel, Field


class ScriptScene(BaseModel):
    """One scene of the video: spoken narration plus a title card."""

    heading: str = Field(
        description="Short label for the scene (e.g., 'Hook', 'Tip 1', 'Call to action')"
    )
    narration: str = Field(
        description="Voice-over narration for this scene, 1-3 sentences"
    )
    on_screen_text: str = Field(
        description="Text shown on screen during the scene, at most 60 characters"
    )


class VideoScript(BaseModel):
    """Complete script for one short video.

    Carries the publishing metadata (title, description, tags) alongside
    the ordered scenes used for rendering.
    """

    title: str = Field(
        description="Catchy video title, at most 100 characters"
    )
    description: str = Field(
        description="Video description for the publishing platform, 2-4 sentences"
    )
    tags: list[str] = Field(
        default_factory=list,
        description="5-10 short search tags without '#'"
    )
    scenes: list[ScriptScene] = Field(
        min_length=1,
        description="Ordered scenes of the video"
    )

    @property
    def word_count(self) -> int:
        """Number of narration words across all scenes."""
        return sum(len(scene.narration.split()) for scene in self.scenes)
