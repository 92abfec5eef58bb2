"""
Interactive terminal client for Ghostwriter.

Wires configuration, the LLM client, the tool registry (builtin + MCP) and the
agent manager together, then runs a prompt_toolkit REPL on top of them.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory

from ghostwriter import config
from ghostwriter.clients.cli import ui
from ghostwriter.clients.common.printer import Printer
from ghostwriter.errors import ConfigError, GhostwriterError, ProviderError
from ghostwriter.policy.policy import SafetyGate
from ghostwriter.runtime.capabilities.registry import ToolRegistry
from ghostwriter.runtime.knowledge import init_project, read_knowledge
from ghostwriter.runtime.llm.client import LLMClient
from ghostwriter.runtime.mcp.client_manager import MCPClientManager
from ghostwriter.runtime.mcp.config import load_mcp_registry, write_example
from ghostwriter.runtime.providers import BuiltinProvider, MCPProvider
from ghostwriter.runtime.subagents import AgentManager, available_agent_types
from ghostwriter.runtime.types import PROVIDERS

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

MULTILINE_DELIMITER = '"""'
EXIT_COMMANDS = ("/exit", "/quit", "/q")


class GhostwriterCLI:
    """Interactive CLI for a single working directory."""

    def __init__(self, app: config.AppConfig, *, use_mcp: bool = True):
        self.app = app
        self.use_mcp = use_mcp
        self.llm = LLMClient(app.llm)
        self.mcp = MCPClientManager()
        self.registry = ToolRegistry(BuiltinProvider().tools(), [MCPProvider(self.mcp)])
        self.gate = SafetyGate(app.policy, auto_confirm=app.auto_confirm)
        self.printer = Printer(show_status=app.debug)
        self.manager = AgentManager(
            llm=self.llm,
            registry=self.registry,
            gate=self.gate,
            working_directory=app.working_directory,
            confirm_action=self.confirm,
            default_max_loops=app.max_tool_loops,
            emit=self.printer,
            project_context=read_knowledge(app.working_directory),
        )
        self.session: PromptSession = PromptSession(
            history=FileHistory(str(self._history_file())),
            multiline=False,
            enable_history_search=True,
        )
        self.running = True

    @staticmethod
    def _history_file():
        p = config.history_path()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p

    async def start(self):
        if self.use_mcp:
            await self._connect_mcp()
        await self.registry.refresh()

        cfg = self.llm.config
        ui.print_header(cfg.provider, cfg.model, self.app.working_directory)
        if self.manager.project_context:
            ui.print_info(f"Loaded project knowledge from {config.KNOWLEDGE_FILE}")
        if self.app.auto_confirm:
            ui.print_warning("Auto-confirm is on: medium-risk actions run without asking")

        try:
            await self._chat_loop()
        finally:
            await self.mcp.disconnect_all()
            await self.llm.aclose()

    async def _connect_mcp(self):
        try:
            registry = load_mcp_registry(self.app.working_directory)
        except ConfigError as e:
            ui.print_warning(str(e))
            return
        if not registry.enabled():
            return
        failures = await self.mcp.connect_all(registry)
        for name, err in failures.items():
            ui.print_warning(f"MCP server '{name}' failed to connect: {err}")
        connected = self.mcp.connected_servers()
        if connected:
            ui.print_info(f"Connected MCP servers: {', '.join(connected)}")

    async def _chat_loop(self):
        while self.running:
            try:
                text = await self._read_input()
            except KeyboardInterrupt:
                continue
            except EOFError:
                break

            if text is None or not text.strip():
                continue
            text = text.strip()

            if text.startswith("/"):
                await self.handle_command(text)
                continue

            await self._send(text)

        ui.console.print("\n[dim]Goodbye![/dim]")

    async def _read_input(self) -> Optional[str]:
        line = await self.session.prompt_async("\n> ")
        if line.strip() != MULTILINE_DELIMITER:
            return line

        ui.console.print(f"[dim]Multi-line mode, finish with {MULTILINE_DELIMITER}[/dim]")
        lines: List[str] = []
        while True:
            part = await self.session.prompt_async("... ")
            if part.strip() == MULTILINE_DELIMITER:
                break
            lines.append(part)
        return "\n".join(lines)

    async def _send(self, text: str):
        try:
            result = await self.manager.handle_input(text)
        except GhostwriterError as e:
            ui.print_error(str(e))
            return
        ui.print_assistant_message(result.text)

    async def confirm(self, *, tool_name: str, risk: str, preview: str, reason: str) -> bool:
        ui.print_confirm_request(tool_name, risk, preview, reason)
        allow_always = tool_name == "run_command"
        hint = "[y/N/a]" if allow_always else "[y/N]"
        try:
            answer = await self.session.prompt_async(f"Allow? {hint} ")
        except (KeyboardInterrupt, EOFError):
            return False
        answer = answer.strip().lower()
        if answer == "a" and allow_always:
            try:
                self.app.policy.persist_command(preview, self.app.working_directory)
                ui.print_success(f"Always allowing: {preview}")
            except OSError as e:
                ui.print_warning(f"Could not save the approval: {e}")
            return True
        return answer in ("y", "yes")

    async def handle_command(self, text: str):
        parts = text.split()
        cmd = parts[0].lower()
        args = parts[1:]

        if cmd in EXIT_COMMANDS:
            self.running = False
        elif cmd == "/help":
            ui.print_help()
        elif cmd == "/clear":
            self.manager.clear_all_history()
            ui.print_success("Conversation cleared")
        elif cmd == "/clearscreen":
            ui.clear_screen()
        elif cmd == "/model":
            self._model(args)
        elif cmd == "/provider":
            self._provider(args)
        elif cmd == "/debug":
            self._toggle_debug()
        elif cmd == "/status":
            self._status()
        elif cmd == "/tools":
            self._tools()
        elif cmd == "/mcp":
            self._mcp(args)
        elif cmd == "/agents":
            rows = [[f"@{t.type}", t.name, t.description] for t in available_agent_types()]
            ui.print_table("Sub-agents", ["Directive", "Name", "Description"], rows)
        elif cmd == "/init":
            await self._init("--update" in args)
        else:
            ui.print_warning(f"Unknown command: {cmd} (try /help)")

    def _model(self, args: List[str]):
        if not args:
            ui.print_info(f"Current model: {self.llm.config.model}")
            return
        self.llm.update_config(model=args[0])
        ui.print_success(f"Model set to {args[0]}")

    def _provider(self, args: List[str]):
        if not args:
            ui.print_info(f"Current provider: {self.llm.config.provider} (available: {', '.join(PROVIDERS)})")
            return
        try:
            cfg = self.llm.switch_provider(args[0], args[1] if len(args) > 1 else None)
        except ConfigError as e:
            ui.print_error(str(e))
            return
        ui.print_success(f"Switched to {cfg.provider}/{cfg.model}")
        if config.requires_api_key(cfg.provider) and not cfg.api_key:
            ui.print_warning(f"No API key found; set {config.API_KEY_ENV[cfg.provider]}")

    def _toggle_debug(self):
        root = logging.getLogger()
        debug = root.level != logging.DEBUG
        root.setLevel(logging.DEBUG if debug else logging.WARNING)
        self.printer.show_status = debug
        self.app.debug = debug
        ui.print_info(f"Debug {'on' if debug else 'off'}")

    def _status(self):
        info = self.llm.provider_info()
        rows = [
            ["Provider", info["provider"]],
            ["Model", info["model"]],
            ["Base URL", info["base_url"] or "(default)"],
            ["Directory", self.app.working_directory],
            ["Auto-confirm", "on" if self.app.auto_confirm else "off"],
            ["Max tool loops", str(self.app.max_tool_loops)],
            ["Messages", str(len(self.manager.main_agent.messages))],
            ["MCP servers", ", ".join(self.mcp.connected_servers()) or "none"],
            ["Project knowledge", "loaded" if self.manager.project_context else "none"],
        ]
        ui.print_table("Status", ["Setting", "Value"], rows)

    def _tools(self):
        rows = [
            [t.name, t.risk_level, t.source, t.description.split("\n", 1)[0]]
            for t in self.registry.list_capabilities()
        ]
        ui.print_table("Tools", ["Name", "Risk", "Source", "Description"], rows)

    def _mcp(self, args: List[str]):
        if args and args[0] == "init":
            path = config.mcp_config_paths(self.app.working_directory)[0]
            if path.exists():
                ui.print_warning(f"{path} already exists")
                return
            write_example(path)
            ui.print_success(f"Wrote example MCP config to {path}")
            return
        servers = self.mcp.connected_servers()
        if not servers:
            ui.print_info("No MCP servers connected (use /mcp init to create a config)")
            return
        ui.print_table("MCP servers", ["Server"], [[s] for s in servers])

    async def _init(self, update: bool):
        ui.print_info("Scanning project and generating knowledge…")
        try:
            result = await init_project(self.llm, self.app.working_directory, update=update)
        except ProviderError as e:
            ui.print_error(str(e))
            return
        if not result.written:
            ui.print_warning(result.reason or "Nothing written")
            return
        self.manager.set_project_context(read_knowledge(self.app.working_directory))
        ui.print_success(f"Wrote {result.path} from {result.files_scanned} files")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ghostwriter - terminal coding agent")
    parser.add_argument("-y", "--yes", action="store_true", help="Auto-confirm medium-risk actions")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("-p", "--provider", choices=PROVIDERS, help="LLM provider")
    parser.add_argument("-m", "--model", help="Model name")
    parser.add_argument("-C", "--directory", help="Working directory (default: current directory)")
    parser.add_argument("--no-mcp", action="store_true", help="Do not connect MCP servers")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        app = config.create_app_config(
            working_directory=args.directory,
            auto_confirm=args.yes,
            debug=args.debug,
            provider=args.provider,
            model=args.model,
        )
    except ConfigError as e:
        ui.print_error(str(e))
        return 1

    errors = config.validate_config(app)
    if errors:
        for err in errors:
            ui.print_error(err)
        return 1

    cli = GhostwriterCLI(app, use_mcp=not args.no_mcp)
    await cli.start()
    return 0


def run():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nExiting...")


if __name__ == "__main__":
    run()
