from __future__ import annotations

from typing import Any, Dict, List, Optional

from ghostwriter.runtime.tools.filesystem import (
    filesystem_delete,
    filesystem_list,
    filesystem_read,
    filesystem_write,
)
from ghostwriter.runtime.tools.registry import ToolContext, ToolDefinition
from ghostwriter.runtime.tools.search import search_codebase
from ghostwriter.runtime.tools.shell import DEFAULT_TIMEOUT_S, shell_run
from ghostwriter.runtime.types import ToolResult

BUILTIN_TOOL_NAMES = (
    "list_files",
    "read_file",
    "write_file",
    "append_file",
    "delete_file",
    "run_command",
    "search_codebase",
)


def _opt_str(args: Dict[str, Any], key: str) -> Optional[str]:
    v = args.get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


class BuiltinProvider:
    name = "builtin"

    def __init__(self):
        self._tools = self._build()

    async def discover(self) -> List[ToolDefinition]:
        return list(self._tools)

    def tools(self) -> List[ToolDefinition]:
        return list(self._tools)

    def system_instructions(self) -> Optional[str]:
        return None

    def _build(self) -> List[ToolDefinition]:
        async def _list_files(args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
            return await filesystem_list(ctx.working_directory, _opt_str(args, "path"))

        async def _read_file(args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
            return await filesystem_read(
                ctx.working_directory,
                str(args.get("path", "") or ""),
                encoding=str(args.get("encoding") or "utf-8"),
            )

        async def _write_file(args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
            return await filesystem_write(
                ctx.working_directory,
                str(args.get("path", "") or ""),
                str(args.get("content", "") or ""),
            )

        async def _append_file(args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
            return await filesystem_write(
                ctx.working_directory,
                str(args.get("path", "") or ""),
                str(args.get("content", "") or ""),
                append=True,
            )

        async def _delete_file(args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
            return await filesystem_delete(
                ctx.working_directory,
                str(args.get("path", "") or ""),
                recursive=bool(args.get("recursive", False)),
            )

        async def _run_command(args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
            try:
                timeout_s = float(args.get("timeout") or DEFAULT_TIMEOUT_S)
            except (TypeError, ValueError):
                timeout_s = DEFAULT_TIMEOUT_S
            return await shell_run(str(args.get("command", "") or ""), cwd=ctx.working_directory, timeout_s=timeout_s)

        async def _search_codebase(args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
            return await search_codebase(
                ctx.working_directory,
                str(args.get("query", "") or ""),
                path=_opt_str(args, "path"),
                case_sensitive=bool(args.get("caseSensitive", False)),
                file_pattern=_opt_str(args, "filePattern"),
            )

        return [
            ToolDefinition(
                name="list_files",
                capability="filesystem.list",
                description="List files and subdirectories of a directory. Defaults to the working directory.",
                parameters={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "Directory path, relative to the working directory or absolute"},
                    },
                    "required": [],
                },
                executor=_list_files,
            ),
            ToolDefinition(
                name="read_file",
                capability="filesystem.read",
                description="Read the full content of a text file (up to 1MB).",
                parameters={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "File path, relative to the working directory or absolute"},
                        "encoding": {"type": "string", "description": "Text encoding", "default": "utf-8"},
                    },
                    "required": ["path"],
                },
                executor=_read_file,
            ),
            ToolDefinition(
                name="write_file",
                capability="filesystem.write",
                description="Create or overwrite a file with the given content. Parent directories are created.",
                parameters={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "File path"},
                        "content": {"type": "string", "description": "Full file content"},
                    },
                    "required": ["path", "content"],
                },
                executor=_write_file,
                risk_level="medium",
                requires_confirmation=True,
            ),
            ToolDefinition(
                name="append_file",
                capability="filesystem.write",
                description="Append content to the end of a file, creating it if needed.",
                parameters={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "File path"},
                        "content": {"type": "string", "description": "Content to append"},
                    },
                    "required": ["path", "content"],
                },
                executor=_append_file,
                risk_level="medium",
                requires_confirmation=True,
            ),
            ToolDefinition(
                name="delete_file",
                capability="filesystem.delete",
                description="Delete a file or directory. Always asks the user first.",
                parameters={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "File or directory path"},
                        "recursive": {"type": "boolean", "description": "Delete directory contents too", "default": False},
                    },
                    "required": ["path"],
                },
                executor=_delete_file,
                risk_level="high",
                requires_confirmation=True,
            ),
            ToolDefinition(
                name="run_command",
                capability="shell.run",
                description="Run a shell command in the working directory and return stdout, stderr and exit code.",
                parameters={
                    "type": "object",
                    "properties": {
                        "command": {"type": "string", "description": "Shell command to run"},
                        "timeout": {"type": "number", "description": "Timeout in seconds", "default": DEFAULT_TIMEOUT_S},
                    },
                    "required": ["command"],
                },
                executor=_run_command,
                risk_level="medium",
                requires_confirmation=True,
            ),
            ToolDefinition(
                name="search_codebase",
                capability="search.code",
                description="Search source files for lines matching a regular expression (falls back to a literal match).",
                parameters={
                    "type": "object",
                    "properties": {
                        "query": {"type": "string", "description": "Regular expression or text"},
                        "path": {"type": "string", "description": "Limit the search to this directory"},
                        "caseSensitive": {"type": "boolean", "description": "Case sensitive match", "default": False},
                        "filePattern": {"type": "string", "description": "File name glob such as *.py"},
                    },
                    "required": ["query"],
                },
                executor=_search_codebase,
            ),
        ]
