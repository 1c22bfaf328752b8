"""Model-facing descriptions of the tools, keyed by tool name."""

from typing import Dict

from notewright.tools import ToolDescription

NOTE_FORMAT = """\
Notes must start with a frontmatter header:
---
tags:
- FirstTag (tags name the concepts that appear in the note, no spaces)
keypoints:
- First key point, a fact or key piece of information from the note
- Second key point
---

Keypoints are shortcuts to the main content; the note itself goes into more depth.
Links have the form [[file name (no folder needed)|Text shown in the note]] and belong inside
the prose, not dumped at the end. Any Markdown feature may be used."""

DEFAULT_TOOL_DESCRIPTIONS: Dict[str, ToolDescription] = {
    "write": ToolDescription(
        description=(
            "Create or overwrite a markdown (.md) note. Writing to an existing path replaces "
            "it, which is how mistakes are fixed. Returns the files added or removed."
        ),
        arguments={
            "path": (
                "Vault path of the note, e.g. 'cuban_art.md' or 'love/romance.md'. Avoid accents. "
                'File names cannot contain any of: * " \\ < > : | ?'
            ),
            "content": f"Full content of the note.\n{NOTE_FORMAT}",
        },
    ),
    "read": ToolDescription(
        description="Read the content of one or more files in the vault.",
        arguments={
            "paths": (
                "List of file paths; each may use '*' as a wildcard "
                "(e.g. ['daily/notes/*.md', 'projects/current.md'])."
            ),
        },
    ),
    "move": ToolDescription(
        description="Move or rename a file inside the vault.",
        arguments={
            "sourcePath": "Current path of the file.",
            "targetPath": (
                "New path. Use the same folder to rename, or move it under .trash to delete it."
            ),
        },
    ),
    "list": ToolDescription(
        description=(
            "List the folder structure (and optionally files) below a root folder, like the "
            "'tree' command."
        ),
        arguments={
            "rootPath": "Folder to start from. Use '/' or '' for the vault root.",
            "depth": "Maximum depth. 1 lists only the direct content of rootPath.",
            "includeFiles": "If true, files are listed as well as folders.",
            "showDetails": (
                "If true, notes show their keypoints and instruction files their content."
            ),
        },
    ),
    "getGhostReferences": ToolDescription(
        description=(
            "Find every unresolved link (ghost reference) in the vault and the note it appears "
            "in. Use it at the end to check everything is connected. Ghosts are fixed by "
            "creating the missing note or renaming a misspelled one."
        ),
    ),
    "propose_plan": ToolDescription(
        description=(
            "Propose a plan of the notes to create or change before writing anything. The "
            "user may accept it or reject it with feedback."
        ),
        arguments={"plan": "The plan, as a markdown list of the notes and what each will hold."},
    ),
    "end_session": ToolDescription(
        description="End the session once the work is finished or cannot continue.",
        arguments={"reason": "Why the session is ending."},
    ),
    "ask_files": ToolDescription(
        description=(
            "Ask a question against every note in the vault and get back the relevant "
            "passages with the note to cite for each."
        ),
        arguments={
            "question": "What to look for.",
            "level": "Granularity of the extracted items: paragraph, sentence or keyword.",
        },
    ),
}
