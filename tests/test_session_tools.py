"""Plan and finish markers and ask_files retrieval."""

import pytest

from conftest import FakeProvider
from notewright.agent.context import PlanDecision
from notewright.core.schema import TurnResponse
from notewright.tools import ToolRegistry
from notewright.tools.session_tools import parse_extraction


@pytest.fixture
def tools() -> ToolRegistry:
    return ToolRegistry(["propose_plan", "end_session", "ask_files"])


async def call(tools: ToolRegistry, name: str, ctx, **arguments):
    return await tools.get(name).run(arguments, ctx)


@pytest.mark.asyncio
async def test_end_session(tools, make_ctx) -> None:
    ctx = make_ctx()
    result = await call(tools, "end_session", ctx, reason="all notes written")
    assert result.output == "ENDED SESSION"
    assert ctx.tracker.steps[-1].caption == "all notes written"


@pytest.mark.asyncio
async def test_plan_is_accepted_without_a_reviewer(tools, make_ctx) -> None:
    ctx = make_ctx()
    result = await call(tools, "propose_plan", ctx, plan="- note A\n- note B")
    assert result.metadata == {"accepted": True}
    assert "PLAN:\n- note A\n- note B" in ctx.tracker.messages


@pytest.mark.asyncio
async def test_rejected_plan_returns_feedback(tools, make_ctx) -> None:
    seen = []

    async def reviewer(plan: str) -> PlanDecision:
        seen.append(plan)
        return PlanDecision(accepted=False, feedback="merge the two notes")

    result = await call(tools, "propose_plan", make_ctx(plan_reviewer=reviewer), plan="two notes")

    assert seen == ["two notes"]
    assert result.metadata["accepted"] is False
    assert "merge the two notes" in result.output


@pytest.mark.asyncio
async def test_ask_files_splits_oversized_batches(tools, make_ctx, vault) -> None:
    for name in ("n1", "n2", "n3"):
        (vault.root / f"{name}.md").write_text("x" * 100)
    (vault.root / "rules.lim.md").write_text("private instructions")
    provider = FakeProvider(
        [
            TurnResponse(
                text='```json\n{"extracted_list": '
                '[{"extracted_item": "alpha fact", "path": "n1.md"}]}\n```'
            ),
            TurnResponse(
                text='{"extracted_list": [{"extracted_item": "gamma", "path": "gone.md"}]}'
            ),
        ]
    )
    # Each document part is 144 characters; two fit the budget, three do not
    ctx = make_ctx(provider=provider, ask_files_max_tokens=300)

    result = await call(tools, "ask_files", ctx, question="What is alpha?", level="sentence")

    assert len(provider.sent) == 2
    first_batch = provider.sent[0][0].parts
    assert len(first_batch) == 3
    assert "n1.md" in first_batch[0].content and "n2.md" in first_batch[1].content
    assert "QUESTION: What is alpha?" in first_batch[-1].content
    assert all("rules.lim" not in part.content for m in provider.sent for part in m[0].parts)
    assert provider.tools_sent == [[], []]
    assert "Cite [[n1]] to use the following information: 'alpha fact'." in result.output
    assert "File 'gone.md' not found." in result.output


@pytest.mark.asyncio
async def test_ask_files_sends_a_single_large_document_as_is(tools, make_ctx, vault) -> None:
    (vault.root / "big.md").write_text("y" * 500)
    provider = FakeProvider([TurnResponse(text='{"extracted_list": []}')])
    ctx = make_ctx(provider=provider, ask_files_max_tokens=10)

    result = await call(tools, "ask_files", ctx, question="Anything?", level="keyword")

    assert len(provider.sent) == 1
    assert result.output == "No relevant information was found."


def test_parse_extraction_rejects_malformed_replies() -> None:
    with pytest.raises(ValueError):
        parse_extraction("I could not find anything")
    with pytest.raises(ValueError):
        parse_extraction('{"extracted_list": [{"path": "a.md"}]}')
    items = parse_extraction('Here: {"extracted_list": [{"extracted_item": "}", "path": "a.md"}]}')
    assert items[0].extracted_item == "}"

