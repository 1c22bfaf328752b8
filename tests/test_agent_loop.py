"""Turn loop behaviour: stop conditions, recovered tool errors, retries and cancellation."""

from typing import List

import pytest
from pydantic import (
    BaseModel,
    ValidationError,
)

from conftest import (
    FakeProvider,
    calls_turn,
    text_turn,
    tool_call,
)
from notewright.agent import agent_loop
from notewright.agent.agent_loop import LoopConfig
from notewright.agent.session import ChatSession
from notewright.core.errors import (
    ModelCallError,
    ModelProviderError,
    RunCancelledError,
)
from notewright.core.progress import StepStatus
from notewright.core.schema import (
    TextPart,
    ToolOutput,
    ToolResultPart,
)
from notewright.tools import (
    ToolRegistry,
    register_tool,
)


class EchoArgs(BaseModel):
    text: str


class EmptyArgs(BaseModel):
    pass


@register_tool("loop_echo", EchoArgs)
async def _echo(args: EchoArgs, ctx) -> ToolOutput:
    return ToolOutput(output=args.text)


@register_tool("loop_fail", EmptyArgs)
async def _fail(args: EmptyArgs, ctx) -> ToolOutput:
    raise ValueError("bad input")


@register_tool("loop_cancel", EmptyArgs)
async def _cancel(args: EmptyArgs, ctx) -> ToolOutput:
    ctx.token.cancel("user pressed stop")
    return ToolOutput(output="cancel requested")


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records the requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_config(max_turns: int = 5, max_retries: int = 1) -> LoopConfig:
    tools = ToolRegistry(
        ["loop_echo", "loop_fail", "loop_cancel", "write", "end_session"], descriptions={}
    )
    return LoopConfig(max_turns=max_turns, max_retries=max_retries, tools=tools)


def start(text: str = "Import this.") -> List[TextPart]:
    return [TextPart(content=text)]


async def run_loop(provider: FakeProvider, ctx, config: LoopConfig, sleep=None):
    session = ChatSession(provider, "system")
    return await agent_loop.run(session, start(), config, ctx, sleep=sleep or SleepRecorder())


# ---------------------------------------------------------------------------
# Stop conditions
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_stops_after_max_turns(make_ctx) -> None:
    """A model that always asks for tools gets exactly max_turns calls."""

    provider = FakeProvider([calls_turn(tool_call("loop_echo", text=f"t{i}")) for i in range(6)])
    results = await run_loop(provider, make_ctx(provider=provider), make_config(max_turns=3))

    assert len(provider.sent) == 3
    assert [r.output for r in results] == ["t2"]


@pytest.mark.asyncio
async def test_natural_stop_returns_previous_results(make_ctx) -> None:
    """A text-only turn stops the loop and the prior tool results come back."""

    provider = FakeProvider(
        [
            calls_turn(tool_call("loop_echo", text="one")),
            calls_turn(tool_call("loop_echo", text="two")),
            text_turn("Finished."),
            calls_turn(tool_call("loop_echo", text="never")),
        ]
    )
    ctx = make_ctx(provider=provider)
    results = await run_loop(provider, ctx, make_config(max_turns=10))

    assert len(provider.sent) == 3
    assert [r.output for r in results] == ["two"]
    assert "Finished." in ctx.tracker.messages


@pytest.mark.asyncio
async def test_empty_turn_is_a_stop_not_an_error(make_ctx) -> None:
    provider = FakeProvider([])
    ctx = make_ctx(provider=provider)
    results = await run_loop(provider, ctx, make_config())

    assert results == []
    assert len(provider.sent) == 1
    thinking = [s for s in ctx.tracker.steps if s.label == "Thinking"]
    assert thinking[0].status == StepStatus.COMPLETE


@pytest.mark.asyncio
async def test_end_session_stops_after_its_turn(make_ctx) -> None:
    provider = FakeProvider(
        [
            calls_turn(tool_call("loop_echo", text="last"), tool_call("end_session", reason="ok")),
            calls_turn(tool_call("loop_echo", text="never")),
        ]
    )
    results = await run_loop(provider, make_ctx(provider=provider), make_config())

    assert len(provider.sent) == 1
    assert [r.output for r in results] == ["last", "ENDED SESSION"]


# ---------------------------------------------------------------------------
# Tool dispatch
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_tool_error_is_fed_back_and_loop_continues(make_ctx) -> None:
    provider = FakeProvider([calls_turn(tool_call("loop_fail")), text_turn()])
    await run_loop(provider, make_ctx(provider=provider), make_config())

    assert len(provider.sent) == 2
    fed_back = provider.sent[1][-1].parts
    assert len(fed_back) == 1
    assert isinstance(fed_back[0], ToolResultPart)
    assert fed_back[0].is_error
    assert fed_back[0].output.startswith("Error executing function loop_fail")


@pytest.mark.asyncio
async def test_unknown_tool_is_a_recovered_failure(make_ctx) -> None:
    provider = FakeProvider([calls_turn(tool_call("teleport")), text_turn()])
    results = await run_loop(provider, make_ctx(provider=provider), make_config())

    assert len(provider.sent) == 2
    assert results[0].is_error
    assert "teleport" in results[0].output


@pytest.mark.asyncio
async def test_results_keep_the_order_of_the_calls(make_ctx) -> None:
    calls = [tool_call("loop_echo", text=name) for name in ("a", "b", "c")]
    provider = FakeProvider([calls_turn(*calls), text_turn()])
    await run_loop(provider, make_ctx(provider=provider), make_config())

    fed_back = provider.sent[1][-1].parts
    assert [part.output for part in fed_back] == ["a", "b", "c"]
    assert [part.id for part in fed_back] == [call.id for call in calls]


@pytest.mark.asyncio
async def test_history_is_resent_each_turn(make_ctx) -> None:
    provider = FakeProvider(
        [calls_turn(tool_call("loop_echo", text="x"), text="Let me"), text_turn()]
    )
    await run_loop(provider, make_ctx(provider=provider), make_config())

    second = provider.sent[1]
    assert [m.role for m in second] == ["user", "model", "user"]
    assert second[0].parts[0].content == "Import this."
    assert second[1].parts[0].content == "Let me"
    assert provider.system_instructions == ["system", "system"]
    assert "loop_echo" in provider.tools_sent[0]


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_backoff(make_ctx) -> None:
    """max_retries - 1 failures followed by a success is a normal turn."""

    provider = FakeProvider(
        [
            ModelProviderError("rate limited"),
            ModelProviderError("timeout"),
            ModelProviderError("503"),
            text_turn(),
        ]
    )
    ctx = make_ctx(provider=provider)
    sleep = SleepRecorder()
    results = await run_loop(provider, ctx, make_config(max_retries=4), sleep=sleep)

    assert results == []
    assert sleep.delays == [1.0, 2.0, 4.0]
    assert all(step.status != StepStatus.ERROR for step in ctx.tracker.steps)


@pytest.mark.asyncio
async def test_exhausted_retries_fail_the_run(make_ctx) -> None:
    provider = FakeProvider([ModelProviderError(f"down {i}") for i in range(5)])
    ctx = make_ctx(provider=provider)
    sleep = SleepRecorder()

    with pytest.raises(ModelCallError):
        await run_loop(provider, ctx, make_config(max_retries=3), sleep=sleep)

    assert len(provider.sent) == 3
    assert sleep.delays == [1.0, 2.0]
    assert ctx.tracker.steps[-1].status == StepStatus.ERROR


@pytest.mark.asyncio
async def test_zero_retries_still_makes_one_attempt(make_ctx) -> None:
    provider = FakeProvider([ModelProviderError("down")])
    with pytest.raises(ModelCallError):
        await run_loop(provider, make_ctx(provider=provider), make_config(max_retries=0))
    assert len(provider.sent) == 1


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_cancel_before_second_turn_keeps_first_turn_effects(make_ctx, vault) -> None:
    provider = FakeProvider(
        [
            calls_turn(
                tool_call("write", path="kept.md", content="first turn"),
                tool_call("loop_cancel"),
            ),
            text_turn(),
        ]
    )
    ctx = make_ctx(provider=provider)

    with pytest.raises(RunCancelledError):
        await run_loop(provider, ctx, make_config())

    assert len(provider.sent) == 1
    assert await vault.read("kept.md") == "first turn"


@pytest.mark.asyncio
async def test_cancelled_token_prevents_any_model_call(make_ctx) -> None:
    provider = FakeProvider([text_turn()])
    ctx = make_ctx(provider=provider)
    ctx.token.cancel()

    with pytest.raises(RunCancelledError):
        await run_loop(provider, ctx, make_config())
    assert provider.sent == []


def test_loop_config_validates_budgets() -> None:
    tools = ToolRegistry(["loop_echo"], descriptions={})
    with pytest.raises(ValidationError):
        LoopConfig(max_turns=0, max_retries=1, tools=tools)
    with pytest.raises(ValidationError):
        LoopConfig(max_turns=1, max_retries=-1, tools=tools)
