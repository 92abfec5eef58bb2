from __future__ import annotations

import fnmatch
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from ghostwriter.runtime.tools.filesystem import resolve_path
from ghostwriter.runtime.types import ToolResult

IGNORED_DIRS = frozenset(
    {
        "node_modules",
        ".git",
        ".svn",
        ".hg",
        "dist",
        "build",
        "coverage",
        ".next",
        ".nuxt",
        "__pycache__",
        ".pytest_cache",
        "venv",
        ".venv",
        "target",
        "vendor",
    }
)

SEARCHABLE_EXTENSIONS = frozenset(
    {
        ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
        ".py", ".pyw",
        ".java", ".kt", ".scala",
        ".go",
        ".rs",
        ".rb",
        ".php",
        ".c", ".cpp", ".cc", ".h", ".hpp",
        ".cs",
        ".swift",
        ".m", ".mm",
        ".vue", ".svelte",
        ".html", ".htm", ".css", ".scss", ".sass", ".less",
        ".json", ".yaml", ".yml", ".toml", ".xml",
        ".md", ".mdx", ".txt", ".rst",
        ".sh", ".bash", ".zsh", ".fish",
        ".sql",
        ".graphql", ".gql",
        ".prisma",
    }
)
SEARCHABLE_NAMES = frozenset({".env.example", "Dockerfile", "Makefile", "Rakefile"})

MAX_RESULTS = 50
MAX_FILE_BYTES = 500 * 1024
MAX_LINE_CHARS = 200


def compile_query(query: str, *, case_sensitive: bool = False) -> "re.Pattern[str]":
    """
    Regex when the query is a valid pattern, otherwise the escaped literal.
    """
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return re.compile(query, flags)
    except re.error:
        return re.compile(re.escape(query), flags)


def is_searchable(name: str) -> bool:
    if name in SEARCHABLE_NAMES:
        return True
    return os.path.splitext(name)[1].lower() in SEARCHABLE_EXTENSIONS


def _search_file(path: Path, regex: "re.Pattern[str]", root: Path, matches: List[Dict[str, Any]]) -> None:
    try:
        if path.stat().st_size > MAX_FILE_BYTES:
            return
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return
    rel = os.path.relpath(path, root)
    for i, line in enumerate(text.split("\n"), start=1):
        if len(matches) >= MAX_RESULTS:
            return
        if regex.search(line):
            matches.append({"file": rel, "line": i, "content": line.strip()[:MAX_LINE_CHARS]})


async def search_codebase(
    working_directory: str,
    query: str,
    *,
    path: Optional[str] = None,
    case_sensitive: bool = False,
    file_pattern: Optional[str] = None,
) -> ToolResult:
    q = str(query or "")
    if not q.strip():
        return ToolResult.failure("query is required")
    root = resolve_path(working_directory, None)
    base = resolve_path(working_directory, path)
    if not base.exists():
        return ToolResult.failure(f"Path does not exist: {base}")

    regex = compile_query(q, case_sensitive=case_sensitive)
    matches: List[Dict[str, Any]] = []

    if base.is_file():
        _search_file(base, regex, root, matches)
        return ToolResult.ok({"query": q, "matches": matches, "truncated": len(matches) >= MAX_RESULTS})

    for dirpath, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS and not d.startswith("."))
        for name in sorted(filenames):
            if len(matches) >= MAX_RESULTS:
                return ToolResult.ok({"query": q, "matches": matches, "truncated": True})
            if not is_searchable(name):
                continue
            if file_pattern and not fnmatch.fnmatch(name.lower(), file_pattern.lower()):
                continue
            _search_file(Path(dirpath) / name, regex, root, matches)

    return ToolResult.ok({"query": q, "matches": matches, "truncated": len(matches) >= MAX_RESULTS})
