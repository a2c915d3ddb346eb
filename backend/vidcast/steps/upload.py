"""Publishing step: upload the rendered video to the video platform.

Uses PublishClient for the resumable upload and tenacity to retry transport
errors and 5xx responses. Auth failures and 4xx responses are not retried.
"""

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from vidcast.config import PublishConfig
from vidcast.orchestrator.errors import StepError
from vidcast.orchestrator.models import MetaValue
from vidcast.schemas.script import VideoScript
from vidcast.services.publish_client import PublishAuthError, PublishClient
from vidcast.steps.base import PipelineStep, StepContext

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 100


def is_retryable(exc: BaseException) -> bool:
    """Transport failures and server-side errors are worth another attempt."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def build_metadata(title: str, script: Optional[VideoScript], config: PublishConfig) -> dict[str, Any]:
    """Build the snippet/status metadata body for the upload session."""
    snippet: dict[str, Any] = {
        "title": title[:TITLE_MAX_LENGTH],
        "categoryId": config.category_id,
    }
    if script is not None:
        snippet["description"] = script.description
        snippet["tags"] = script.tags
    return {
        "snippet": snippet,
        "status": {
            "privacyStatus": config.privacy_status,
            "selfDeclaredMadeForKids": False,
        },
    }


class UploadStep(PipelineStep):
    """Publish the rendered video and report its public URL."""

    name = "upload"

    def __init__(
        self,
        config: PublishConfig,
        client: Optional[PublishClient] = None,
        retry_wait: Optional[wait_base] = None,
    ) -> None:
        self.config = config
        self.client = client or PublishClient(config)
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=30)

    async def execute(self, context: StepContext) -> Mapping[str, MetaValue]:
        output_path = context.output("render", "outputPath")
        if not output_path:
            raise StepError(self.name, "no rendered video available from the render step")
        video_path = Path(str(output_path))
        if not video_path.exists():
            raise StepError(self.name, f"rendered video missing: {video_path}")

        script = self._load_script(context)
        title = context.video_title or (script.title if script else None)
        if not title:
            raise StepError(self.name, "no video title available")
        metadata = build_metadata(title, script, self.config)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_attempts),
                wait=self.retry_wait,
                retry=retry_if_exception(is_retryable),
                before_sleep=lambda retry_state: logger.warning(
                    f"Upload retry {retry_state.attempt_number}/{self.config.max_attempts}: "
                    f"{retry_state.outcome.exception()}"
                ),
                reraise=True,
            ):
                with attempt:
                    video_id = await self.client.publish(video_path, metadata)
        except PublishAuthError as e:
            raise StepError(self.name, str(e)) from e
        except httpx.HTTPStatusError as e:
            raise StepError(
                self.name,
                f"upload rejected: HTTP {e.response.status_code} {e.response.text[:300]}",
            ) from e
        except httpx.HTTPError as e:
            raise StepError(self.name, f"upload failed: {type(e).__name__}: {e}") from e
        finally:
            await self.client.close()

        published_url = self.client.watch_url(video_id)
        logger.info(f"Run {context.run_id}: published {video_id} -> {published_url}")
        return {
            "publishedUrl": published_url,
            "videoId": video_id,
            "privacyStatus": self.config.privacy_status,
        }

    @staticmethod
    def _load_script(context: StepContext) -> Optional[VideoScript]:
        script_path = context.output("script", "scriptPath")
        if not script_path:
            return None
        try:
            return VideoScript.model_validate_json(Path(str(script_path)).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Run {context.run_id}: publishing without script metadata: {e}")
            return None
