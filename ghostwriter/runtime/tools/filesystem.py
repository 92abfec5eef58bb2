from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Optional

from ghostwriter.runtime.types import ToolResult

MAX_READ_BYTES = 1024 * 1024


def resolve_path(working_directory: str, path: Optional[str]) -> Path:
    """
    Absolute, normalized path for a tool argument. Symlinks are not followed.
    """
    if not path:
        return Path(os.path.abspath(working_directory))
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = Path(working_directory) / p
    return Path(os.path.abspath(p))


async def filesystem_list(working_directory: str, path: Optional[str] = None) -> ToolResult:
    p = resolve_path(working_directory, path)
    if not p.exists():
        return ToolResult.failure(f"Path does not exist: {p}")
    if not p.is_dir():
        return ToolResult.failure(f"Not a directory: {p}")
    try:
        files = []
        directories = []
        for entry in os.scandir(p):
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                directories.append(entry.name)
            elif entry.is_file():
                files.append(entry.name)
    except OSError as e:
        return ToolResult.failure(f"Failed to list {p}: {e}")
    return ToolResult.ok({"path": str(p), "files": sorted(files), "directories": sorted(directories)})


async def filesystem_read(working_directory: str, path: str, encoding: str = "utf-8") -> ToolResult:
    if not path:
        return ToolResult.failure("path is required")
    p = resolve_path(working_directory, path)
    if not p.exists():
        return ToolResult.failure(f"File does not exist: {p}")
    if not p.is_file():
        return ToolResult.failure(f"Not a file: {p}")
    size = p.stat().st_size
    if size > MAX_READ_BYTES:
        return ToolResult.failure(f"File too large ({size / 1024 / 1024:.2f}MB), limit is 1MB")
    try:
        content = p.read_text(encoding=encoding or "utf-8")
    except (OSError, UnicodeDecodeError, LookupError) as e:
        return ToolResult.failure(f"Failed to read {p}: {e}")
    return ToolResult.ok({"path": str(p), "content": content})


async def filesystem_write(
    working_directory: str,
    path: str,
    content: str,
    *,
    append: bool = False,
    create_parents: bool = True,
) -> ToolResult:
    if not path:
        return ToolResult.failure("path is required")
    p = resolve_path(working_directory, path)
    if p.is_dir():
        return ToolResult.failure(f"Is a directory: {p}")
    existed = p.exists()
    to_write = str(content)
    try:
        if create_parents:
            p.parent.mkdir(parents=True, exist_ok=True)
        if append:
            # keep appended text on its own line
            if existed and to_write and not to_write.startswith("\n"):
                existing = p.read_text(encoding="utf-8", errors="replace")
                if existing and not existing.endswith("\n"):
                    to_write = "\n" + to_write
            with p.open("a", encoding="utf-8") as f:
                f.write(to_write)
        else:
            p.write_text(to_write, encoding="utf-8")
    except OSError as e:
        return ToolResult.failure(f"Failed to write {p}: {e}")
    return ToolResult.ok(
        {
            "path": str(p),
            "bytes": len(to_write.encode("utf-8")),
            "created": not existed,
            "append": bool(append),
        }
    )


async def filesystem_delete(working_directory: str, path: str, *, recursive: bool = False) -> ToolResult:
    if not path:
        return ToolResult.failure("path is required")
    p = resolve_path(working_directory, path)
    if not p.exists() and not p.is_symlink():
        return ToolResult.failure(f"File does not exist: {p}")
    try:
        if p.is_dir() and not p.is_symlink():
            if recursive:
                shutil.rmtree(p)
            else:
                p.rmdir()
            kind = "directory"
        else:
            p.unlink()
            kind = "file"
    except OSError as e:
        return ToolResult.failure(f"Failed to delete {p}: {e}")
    return ToolResult.ok({"path": str(p), "deleted": kind})
