"""
Session tools: the plan and finish markers and ``ask_files`` retrieval.

``end_session`` is recognised by the turn loop, which stops after the turn that called it.
"""

from __future__ import annotations

import json
import logging
from typing import (
    TYPE_CHECKING,
    List,
    Literal,
    Sequence,
    Tuple,
)

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

from notewright.agent.prompts import extraction_prompt
from notewright.agent.provider_interface import sanitize_json_string
from notewright.core.progress import StepStatus
from notewright.core.schema import (
    Message,
    TextPart,
    ToolOutput,
)
from notewright.tools import register_tool

if TYPE_CHECKING:
    from notewright.agent.context import RunContext

logger = logging.getLogger(__name__)

END_SESSION_TOOL = "end_session"


# ---------------------------------------------------------------------------
# propose_plan
# ---------------------------------------------------------------------------
class ProposePlanArgs(BaseModel):
    plan: str = Field(..., min_length=1)


@register_tool("propose_plan", ProposePlanArgs)
async def propose_plan(args: ProposePlanArgs, ctx: RunContext) -> ToolOutput:
    """Show the plan and, when a reviewer is attached, ask for approval."""
    step = ctx.tracker.append_step("Plan proposed", "Waiting for review", "list-checks")
    ctx.tracker.write_message(f"PLAN:\n{args.plan}")

    if ctx.plan_reviewer is None:
        step.update_state(StepStatus.COMPLETE, "Plan accepted")
        return ToolOutput(output="The user accepted the plan.", metadata={"accepted": True})

    decision = await ctx.plan_reviewer(args.plan)
    ctx.checkpoint("plan review")
    if decision.accepted:
        step.update_state(StepStatus.COMPLETE, "Plan accepted")
        return ToolOutput(output="The user accepted the plan.", metadata={"accepted": True})

    step.update_state(StepStatus.COMPLETE, "Plan rejected")
    ctx.tracker.write_message(f"FEEDBACK:\n{decision.feedback}")
    return ToolOutput(
        output=f"The user rejected the plan and gave feedback: '{decision.feedback}'.",
        metadata={"accepted": False, "feedback": decision.feedback},
    )


# ---------------------------------------------------------------------------
# end_session
# ---------------------------------------------------------------------------
class EndSessionArgs(BaseModel):
    reason: str = ""


@register_tool(END_SESSION_TOOL, EndSessionArgs)
async def end_session(args: EndSessionArgs, ctx: RunContext) -> ToolOutput:
    step = ctx.tracker.append_step("Session ended by model", args.reason or "Done", "flag")
    step.update_state(StepStatus.COMPLETE)
    return ToolOutput(output="ENDED SESSION", metadata={"reason": args.reason})


# ---------------------------------------------------------------------------
# ask_files
# ---------------------------------------------------------------------------
class AskFilesArgs(BaseModel):
    question: str = Field(..., min_length=1)
    level: Literal["paragraph", "sentence", "keyword"] = "sentence"


class ExtractedItem(BaseModel):
    extracted_item: str
    path: str


class ExtractionResponse(BaseModel):
    """Shape of the model's JSON answer to an extraction request."""

    extracted_list: List[ExtractedItem] = Field(default_factory=list)


Document = Tuple[str, str]


def _document_part(path: str, content: str) -> TextPart:
    return TextPart(content=f"<|FILE '{path}' START|>\n{content}\n<|FILE '{path}' END|>")


def parse_extraction(content: str) -> List[ExtractedItem]:
    """
    Parse the model's extraction reply.

    Raises
    ------
    ValueError
        If the reply is not the expected JSON object.
    """
    cleaned = sanitize_json_string(content)
    try:
        return ExtractionResponse.model_validate(json.loads(cleaned)).extracted_list
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error("Failed to parse extraction response: %s", content)
        raise ValueError(f"Malformed extraction response: {e}") from e


async def extract_from_documents(
    documents: Sequence[Document], prompt: str, ctx: RunContext
) -> List[ExtractedItem]:
    """
    Ask the model to extract items from *documents*.

    Batches whose token count exceeds ``ctx.ask_files_max_tokens`` are split in half and
    processed recursively, first half first.  A single document is always sent as-is.
    """
    if not documents:
        return []
    ctx.checkpoint("ask_files")

    parts = [_document_part(path, content) for path, content in documents]
    tokens = await ctx.provider.count_tokens(parts)
    if tokens > ctx.ask_files_max_tokens and len(documents) > 1:
        half = (len(documents) + 1) // 2
        logger.debug("Batch of %d documents has %d tokens, splitting", len(documents), tokens)
        first = await extract_from_documents(documents[:half], prompt, ctx)
        return first + await extract_from_documents(documents[half:], prompt, ctx)
    if tokens > ctx.ask_files_max_tokens:
        logger.warning("Document %s alone exceeds the token budget (%d)", documents[0][0], tokens)

    history = [Message(role="user", parts=[*parts, TextPart(content=prompt)])]
    response = await ctx.provider.send_turn(history, [])
    ctx.checkpoint("ask_files")
    return parse_extraction(response.text)


@register_tool("ask_files", AskFilesArgs)
async def ask_files(args: AskFilesArgs, ctx: RunContext) -> ToolOutput:
    """Extract passages relevant to a question from every note in the vault."""
    step = ctx.tracker.append_step(
        f"Question at {args.level} level", args.question, "message-circle-question"
    )
    documents: List[Document] = []
    for path in await ctx.store.all_document_paths():
        if not path.lower().endswith(".md") or ctx.is_protected(path):
            continue
        documents.append((path, await ctx.store.read(path)))

    prompt = extraction_prompt(args.level, args.question)
    items = await extract_from_documents(documents, prompt, ctx)

    lines = []
    for item in items:
        node = await ctx.store.get_node(item.path)
        if node is None:
            lines.append(f"File '{item.path}' not found.")
            continue
        name = node.name[:-3] if node.name.lower().endswith(".md") else node.name
        lines.append(f"Cite [[{name}]] to use the following information: '{item.extracted_item}'.")

    step.update_state(StepStatus.COMPLETE, f"{len(items)} items found")
    if not lines:
        return ToolOutput(output="No relevant information was found.", metadata={"items": 0})
    return ToolOutput(output="\n\n".join(lines), metadata={"items": len(items)})
