"""Prompt text sent to the model, kept as data apart from the control flow."""

from typing import Dict

SYSTEM_INSTRUCTION = """\
You are Notewright, an assistant that turns raw material (audio, documents, text) into a set
of well-linked markdown notes inside the user's vault.

Work in small steps using the tools you are given:
1. Look at the vault structure and read the notes you need before changing anything.
2. If a plan tool is available, propose a plan of the notes to create or change.
3. Write the notes, linking them to each other and to existing notes.
4. Check for unresolved links and fix them by creating or renaming notes.
5. Call end_session when the work is finished.

Files whose name contains '.lim' hold instructions from the user. Follow them and never move
or overwrite them.
"""

EXTRACTION_PREFIX: Dict[str, str] = {
    "paragraph": (
        "From the files above, extract every whole paragraph that helps answer the question "
        "below. Copy each paragraph verbatim."
    ),
    "sentence": (
        "From the files above, extract every sentence that helps answer the question below. "
        "Copy each sentence verbatim."
    ),
    "keyword": (
        "From the files above, extract every keyword or short phrase relevant to the question "
        "below."
    ),
}

EXTRACTION_SUFFIX = """
Answer only with JSON of the form
{"extracted_list": [{"extracted_item": "<text>", "path": "<path of the file it comes from>"}]}
Use an empty list when nothing is relevant."""


def extraction_prompt(level: str, question: str) -> str:
    """Build the instruction that follows the batch of files in an ``ask_files`` call."""
    prefix = EXTRACTION_PREFIX.get(level, EXTRACTION_PREFIX["sentence"])
    return f"{prefix}\n\nQUESTION: {question}\n{EXTRACTION_SUFFIX}"
