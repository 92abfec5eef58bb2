from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ghostwriter import config
from ghostwriter.runtime.llm.client import LLMClient
from ghostwriter.runtime.tools.search import IGNORED_DIRS
from ghostwriter.runtime.types import Message

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 100 * 1024
MAX_OVERVIEW_CHARS = 100_000
MAX_LISTED_DIRS = 50
MAX_DEPTH = 10

IGNORED_NAMES = IGNORED_DIRS | {".cache", ".vscode", ".idea", ".DS_Store", "package-lock.json", "yarn.lock", "pnpm-lock.yaml"}
IGNORED_SUFFIXES = (".min.js", ".min.css", ".map", ".d.ts")

CODE_EXTENSIONS = frozenset(
    {
        ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
        ".py", ".pyw",
        ".go",
        ".rs",
        ".java", ".kt", ".kts",
        ".c", ".cpp", ".cc", ".h", ".hpp",
        ".cs",
        ".rb",
        ".php",
        ".swift",
        ".vue", ".svelte",
        ".html", ".css", ".scss", ".sass", ".less",
        ".json", ".yaml", ".yml", ".toml",
        ".md", ".mdx",
        ".sql",
        ".sh", ".bash", ".zsh",
        ".dockerfile",
    }
)

KNOWLEDGE_SYSTEM_PROMPT = """You are an experienced code analyst. Analyze the project code provided and write a structured project knowledge document.

Requirements:
1. Markdown format.
2. Sections:
   - Overview: what the project is for and its main features
   - Tech stack: main languages, frameworks and libraries
   - Layout: directory structure and what each part is responsible for
   - Core modules: main modules and how they interact
   - Key logic: core business logic and design patterns
   - Conventions: code style and naming conventions
   - Caveats: known problem areas or things to watch out for
3. Keep it concise but informative; it will be used as context for an AI assistant."""


@dataclass
class FileInfo:
    path: str
    relative_path: str
    extension: str
    size: int
    content: Optional[str] = None


@dataclass
class ProjectStructure:
    root_path: str
    files: List[FileInfo] = field(default_factory=list)
    directories: List[str] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)


@dataclass(frozen=True)
class InitResult:
    path: str
    written: bool
    files_scanned: int
    reason: Optional[str] = None


def knowledge_path(working_directory: str) -> Path:
    return Path(working_directory) / config.KNOWLEDGE_FILE


def read_knowledge(working_directory: str) -> Optional[str]:
    p = knowledge_path(working_directory)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("Could not read %s: %s", p, e)
        return None
    return text if text.strip() else None


def _ignored(name: str) -> bool:
    return name.startswith(".") or name in IGNORED_NAMES or name.endswith(IGNORED_SUFFIXES)


def _is_code_file(name: str) -> bool:
    lower = name.lower()
    if lower in ("dockerfile", ".env.example"):
        return True
    return os.path.splitext(lower)[1] in CODE_EXTENSIONS


def _read_capped(path: Path, size: int) -> Optional[str]:
    if size > MAX_FILE_BYTES:
        return f"[file too large: {size / 1024:.1f}KB, skipped]"
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def scan_project(working_directory: str) -> ProjectStructure:
    root = Path(working_directory)
    structure = ProjectStructure(root_path=str(root))

    def _walk(d: Path, depth: int) -> None:
        if depth > MAX_DEPTH:
            return
        try:
            entries = sorted(os.scandir(d), key=lambda e: e.name)
        except OSError:
            return
        for entry in entries:
            if _ignored(entry.name):
                continue
            p = Path(entry.path)
            rel = os.path.relpath(p, root)
            if entry.is_dir(follow_symlinks=False):
                structure.directories.append(rel)
                _walk(p, depth + 1)
            elif entry.is_file() and _is_code_file(entry.name):
                size = entry.stat().st_size
                structure.files.append(
                    FileInfo(
                        path=str(p),
                        relative_path=rel,
                        extension=p.suffix,
                        size=size,
                        content=_read_capped(p, size),
                    )
                )

    _walk(root, 0)
    structure.directories.sort()
    return structure


def build_overview(structure: ProjectStructure) -> str:
    lines: List[str] = [
        "# Project overview\n",
        f"- Root: {structure.root_path}",
        f"- Code files: {structure.total_files}",
        f"- Total size: {structure.total_size / 1024:.1f}KB\n",
        "## Directories\n",
        "```",
    ]
    for d in structure.directories[:MAX_LISTED_DIRS]:
        lines.append(d + "/")
    if len(structure.directories) > MAX_LISTED_DIRS:
        lines.append(f"... {len(structure.directories) - MAX_LISTED_DIRS} more directories")
    lines.append("```\n")
    lines.append("## Code files\n")
    for f in structure.files:
        lines.append(f"### {f.relative_path}\n")
        if f.content:
            lines.append("```" + (f.extension[1:] or "text"))
            lines.append(f.content)
            lines.append("```\n")
    return "\n".join(lines)


async def generate_knowledge(llm: LLMClient, structure: ProjectStructure, existing: Optional[str] = None) -> str:
    overview = build_overview(structure)
    if len(overview) > MAX_OVERVIEW_CHARS:
        overview = overview[:MAX_OVERVIEW_CHARS] + "\n\n[content truncated]"

    if existing:
        prompt = (
            "Update the following project knowledge document. Previous document:\n\n"
            f"{existing}\n\n---\n\nCurrent project code:\n\n{overview}"
        )
    else:
        prompt = f"Analyze the following project code and write the project knowledge document:\n\n{overview}"

    response = await llm.call([Message.system(KNOWLEDGE_SYSTEM_PROMPT), Message.user(prompt)])
    return response.text


def save_knowledge(working_directory: str, content: str) -> Path:
    p = knowledge_path(working_directory)
    stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
    header = (
        "<!--\n"
        "  Generated by the Ghostwriter /init command.\n"
        "  Project knowledge used as context for every conversation.\n"
        f"  Generated at: {stamp}\n"
        "-->\n\n"
    )
    p.write_text(header + content, encoding="utf-8")
    return p


async def init_project(llm: LLMClient, working_directory: str, *, update: bool = False) -> InitResult:
    p = knowledge_path(working_directory)
    existing = read_knowledge(working_directory)
    if existing is not None and not update:
        return InitResult(str(p), False, 0, reason=f"{p.name} already exists; use /init --update to refresh it")

    structure = scan_project(working_directory)
    if structure.total_files == 0:
        return InitResult(str(p), False, 0, reason="No code files found in the working directory")

    content = await generate_knowledge(llm, structure, existing if update else None)
    save_knowledge(working_directory, content)
    logger.info("Wrote %s from %d files", p, structure.total_files)
    return InitResult(str(p), True, structure.total_files)
