from __future__ import annotations

from pathlib import Path
from typing import Optional

_OVERRIDE_PATH = Path(".ghostwriter") / "system.md"
_DEFAULT_PROMPT = """You are Ghostwriter, a local AI programming assistant. You complete programming tasks by operating on the user's files through tools.

## Principles

1. Act. When the user asks for a change, make it with the tools instead of only suggesting code.
2. Look before you act.
   - Read a file with read_file before modifying it.
   - Use list_files when unsure about the project layout.
   - Use search_codebase to find code.
3. Be careful. Deleting files and running commands ask the user for confirmation. Avoid overwriting important files.

## Tools

- list_files: list a directory
- read_file: read a file
- write_file: create or overwrite a file
- append_file: append to a file
- delete_file: delete a file or directory
- run_command: run a shell command
- search_codebase: search the code base

## Style

- Be concise.
- After finishing, briefly say what you did.
- When something fails, explain why clearly."""


def _base_prompt(working_directory: Optional[str] = None) -> str:
    if working_directory:
        p = Path(working_directory) / _OVERRIDE_PATH
        try:
            text = p.read_text(encoding="utf-8").strip()
            if text:
                return text
        except OSError:
            pass
    return _DEFAULT_PROMPT


def build_system_prompt(
    *,
    agent_prompt: Optional[str] = None,
    capability_instructions: Optional[str] = None,
    working_directory: Optional[str] = None,
) -> str:
    blocks = [_base_prompt(working_directory)]
    if working_directory:
        blocks.append(f"Working directory: {working_directory}")
    if agent_prompt:
        blocks.append(agent_prompt.strip())
    if capability_instructions:
        blocks.append(capability_instructions.strip())
    return "\n\n".join([b for b in blocks if b.strip()])


def build_project_context(knowledge: str) -> str:
    return "# Project knowledge (GHOSTWRITER.md)\n\n" + knowledge.strip()
