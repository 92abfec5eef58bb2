from __future__ import annotations

import inspect
import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ghostwriter import config
from ghostwriter.errors import ConfigError, PathNotAllowedError, UserCancelledError

if TYPE_CHECKING:
    from ghostwriter.runtime.tools.registry import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_DENY_PATHS = ["node_modules", ".git", ".env", ".env.local"]

DANGEROUS_PATTERNS = [
    re.compile(r"rm\s+(-rf?|--recursive)", re.IGNORECASE),
    re.compile(r"sudo", re.IGNORECASE),
    re.compile(r"chmod\s+777", re.IGNORECASE),
    re.compile(r">\s*/dev/", re.IGNORECASE),
    re.compile(r"mkfs", re.IGNORECASE),
    re.compile(r"dd\s+if=", re.IGNORECASE),
    re.compile(r":\(\)\s*\{\s*:\|:\s*&\s*\}\s*;", re.IGNORECASE),  # fork bomb
]

PATH_CAPABILITIES = ("filesystem.write", "filesystem.delete")


def is_dangerous_command(command: str) -> bool:
    return any(p.search(command or "") for p in DANGEROUS_PATTERNS)


class ProjectPolicy(BaseModel):
    """
    Per-project policy from .aide/config.json.
    """

    model_config = ConfigDict(extra="ignore")

    allow_commands: List[str] = Field(default_factory=list)
    allow_write_paths: List[str] = Field(default_factory=list)
    deny_paths: List[str] = Field(default_factory=lambda: list(DEFAULT_DENY_PATHS))

    @classmethod
    def load(cls, working_directory: str) -> "ProjectPolicy":
        data = config.load_project_config(working_directory)
        try:
            return cls.model_validate({k: v for k, v in data.items() if k in cls.model_fields and v is not None})
        except ValidationError as e:
            raise ConfigError(f"Invalid policy in {config.project_config_path(working_directory)}: {e}") from e

    def persist_command(self, command: str, working_directory: str) -> None:
        """
        Add an exact command to allow_commands, in memory and on disk.
        Other keys of the project file are kept as they are.
        """
        cmd = str(command or "").strip()
        if not cmd or cmd in self.allow_commands:
            return
        self.allow_commands.append(cmd)

        p = config.project_config_path(working_directory)
        data: Dict[str, Any] = config.load_project_config(working_directory)
        allow = list(data.get("allow_commands") or [])
        if cmd not in allow:
            allow.append(cmd)
        data["allow_commands"] = allow
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")

    def is_command_allowed(self, command: str) -> bool:
        # exact match, or prefix match for entries like "git *"
        if command in self.allow_commands:
            return True
        for allowed in self.allow_commands:
            if allowed.endswith("*") and command.startswith(allowed[:-1]):
                return True
        return False

    def check_path(self, path: str, working_directory: str, *, deleting: bool = False) -> None:
        """
        Raise PathNotAllowedError when path may not be written or deleted.

        deny_paths (substring of the absolute path) always wins over allow_write_paths (prefix).
        """
        target = _absolute(path, working_directory)
        for denied in self.deny_paths:
            if denied and denied in target:
                raise PathNotAllowedError(target, f"matches deny entry '{denied}'")
        if self.allow_write_paths:
            prefixes = [_absolute(a, working_directory) for a in self.allow_write_paths if a]
            if not any(target == pre or target.startswith(pre.rstrip(os.sep) + os.sep) for pre in prefixes):
                raise PathNotAllowedError(target, "not under an allowed write path")
        if deleting:
            wd = _absolute(working_directory, working_directory)
            if wd == target or wd.startswith(target.rstrip(os.sep) + os.sep):
                raise PathNotAllowedError(target, "refusing to delete the working directory or its parent")


def _absolute(path: str, working_directory: str) -> str:
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = Path(working_directory) / p
    return os.path.abspath(p)


@dataclass(frozen=True)
class GateDecision:
    risk: str  # effective risk: "low" | "medium" | "high"
    needs_confirmation: bool
    dangerous: bool = False
    whitelisted: bool = False
    preview: str = ""
    reason: str = ""


class SafetyGate:
    """
    Authorization step in front of every capability invocation.

    Precedence:
      1. high risk (static, or a dangerous shell command) -> always confirm
      2. medium risk -> confirm unless auto-confirm is on or the command is whitelisted
      3. low risk -> no confirmation
    Path checks for write/delete capabilities run first and never prompt.
    """

    def __init__(self, policy: ProjectPolicy, *, auto_confirm: bool = False):
        self.policy = policy
        self.auto_confirm = auto_confirm

    def classify(self, tool: "ToolDefinition", args: Dict[str, Any]) -> GateDecision:
        base = tool.risk_level
        if base == "low" and tool.requires_confirmation:
            base = "medium"

        command = str(args.get("command", "") or "") if tool.capability == "shell.run" else ""
        dangerous = bool(command) and is_dangerous_command(command)
        risk = "high" if dangerous else base
        preview, reason = _describe(tool, args)

        if risk == "high":
            return GateDecision(risk, True, dangerous=dangerous, preview=preview, reason=reason)
        if risk == "medium":
            whitelisted = bool(command) and self.policy.is_command_allowed(command)
            needs = not (self.auto_confirm or whitelisted)
            return GateDecision(risk, needs, whitelisted=whitelisted, preview=preview, reason=reason)
        return GateDecision(risk, False, preview=preview, reason=reason)

    def check_paths(self, tool: "ToolDefinition", args: Dict[str, Any], working_directory: str) -> None:
        if tool.capability not in PATH_CAPABILITIES:
            return
        path = str(args.get("path", "") or "")
        if not path:
            return
        self.policy.check_path(path, working_directory, deleting=(tool.capability == "filesystem.delete"))

    async def authorize(self, tool: "ToolDefinition", args: Dict[str, Any], ctx: "ToolContext") -> GateDecision:
        try:
            self.check_paths(tool, args, ctx.working_directory)
        except PathNotAllowedError as e:
            logger.info("Blocked %s: %s", tool.name, e)
            raise
        decision = self.classify(tool, args)
        if not decision.needs_confirmation:
            return decision

        if ctx.confirm_action is None:
            logger.info("No confirmation handler, declining %s", tool.name)
            raise UserCancelledError(tool.name)
        approved = ctx.confirm_action(
            tool_name=tool.name,
            risk=decision.risk,
            preview=decision.preview,
            reason=decision.reason,
        )
        if inspect.isawaitable(approved):
            approved = await approved
        if not approved:
            logger.info("User declined %s", tool.name)
            raise UserCancelledError(tool.name)
        return decision


def _describe(tool: "ToolDefinition", args: Dict[str, Any]) -> tuple[str, str]:
    if tool.capability == "shell.run":
        return str(args.get("command", "")), "Run shell command"
    if tool.capability == "filesystem.delete":
        suffix = " (recursive)" if args.get("recursive") else ""
        return f"{args.get('path', '')}{suffix}", "Delete file or directory"
    if tool.capability == "filesystem.write":
        verb = "Append to file" if tool.name == "append_file" else "Write file"
        return str(args.get("path", "")), verb
    preview = json.dumps(args, ensure_ascii=False, default=str)
    if len(preview) > 300:
        preview = preview[:300] + "..."
    return preview, f"Call {tool.name}"
