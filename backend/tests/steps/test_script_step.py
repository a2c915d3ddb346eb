"""Tests for the script generation step with a fake LLM adapter."""

import json

import pytest

from vidcast.config import ScriptConfig
from vidcast.orchestrator.errors import StepError
from vidcast.orchestrator.models import Trigger
from vidcast.schemas.script import ScriptScene, VideoScript
from vidcast.services.file_manager import FileManager
from vidcast.services.llm import LLMAdapter, get_adapter
from vidcast.services.llm.ollama_adapter import OllamaAdapter, build_messages, strip_code_fences
from vidcast.steps.base import StepContext
from vidcast.steps.script import ScriptStep, build_script_prompt


def _script(title="5 AI Habits") -> VideoScript:
    return VideoScript(
        title=title,
        description="Five small habits that make AI tools useful every day.",
        tags=["ai", "productivity"],
        scenes=[
            ScriptScene(heading="Hook", narration="You are using AI wrong.", on_screen_text="Stop!"),
            ScriptScene(heading="Tip 1", narration="Write the goal first.", on_screen_text="Goal first"),
        ],
    )


class FakeAdapter(LLMAdapter):
    model_id = "fake/model"

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def generate_text(self, prompt, schema, *, temperature=0.7, system_prompt=None, max_retries=3):
        self.calls.append({"prompt": prompt, "schema": schema, "system_prompt": system_prompt})
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def context():
    return StepContext(run_id="run-1", trigger=Trigger.MANUAL, topic="AI productivity")


async def test_generates_and_saves_script(tmp_path, context):
    adapter = FakeAdapter(result=_script())
    step = ScriptStep(ScriptConfig(scene_count=2), FileManager(tmp_path), adapter=adapter)

    meta = await step.execute(context)

    assert meta["videoTitle"] == "5 AI Habits"
    assert meta["sceneCount"] == 2
    assert meta["wordCount"] == 9
    assert meta["model"] == "fake/model"
    saved = json.loads((tmp_path / "run-1" / "script" / "script.json").read_text())
    assert saved["title"] == "5 AI Habits"
    assert meta["scriptPath"].endswith("script.json")

    call = adapter.calls[0]
    assert call["schema"] is VideoScript
    assert "Topic: AI productivity" in call["prompt"]
    assert "exactly 2 scenes" in call["prompt"]


async def test_adapter_failure_becomes_step_error(tmp_path, context):
    step = ScriptStep(ScriptConfig(), FileManager(tmp_path), adapter=FakeAdapter(error=ConnectionError("refused")))

    with pytest.raises(StepError) as exc_info:
        await step.execute(context)

    assert exc_info.value.step == "script"
    assert exc_info.value.message == "script generation failed: ConnectionError: refused"


async def test_blank_title_rejected(tmp_path, context):
    step = ScriptStep(ScriptConfig(), FileManager(tmp_path), adapter=FakeAdapter(result=_script(title="  ")))
    with pytest.raises(StepError, match="empty title"):
        await step.execute(context)


def test_prompt_without_topic_asks_for_trending_angle():
    prompt = build_script_prompt(None, 5, "developers")
    assert "trending" in prompt
    assert "Audience: developers" in prompt


def test_registry_builds_ollama_adapter():
    adapter = get_adapter(ScriptConfig(model="ollama/llama3.1"))
    assert isinstance(adapter, OllamaAdapter)
    assert adapter.model_id == "ollama/llama3.1"


def test_registry_rejects_unknown_provider():
    with pytest.raises(ValueError):
        get_adapter(ScriptConfig(model="acme/model-x"))


@pytest.mark.parametrize(
    "raw,expected",
    [
        ('{"a": 1}', '{"a": 1}'),
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('  ```\n{"a": 1}```  ', '{"a": 1}'),
    ],
)
def test_strip_code_fences(raw, expected):
    assert strip_code_fences(raw) == expected


def test_messages_carry_system_prompt_and_schema():
    system, user = build_messages("Topic: x", VideoScript, system_prompt="Be brief.")
    assert system["role"] == "system"
    assert system["content"].startswith("Be brief.")
    assert '"scenes"' in system["content"]
    assert user == {"role": "user", "content": "Topic: x"}
