"""
UI rendering and display logic using Rich.
"""
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()

_RISK_STYLES = {"low": "green", "medium": "yellow", "high": "bold red"}


def print_header(provider: str, model: str, working_directory: str):
    """Print application header."""
    header = Text()
    header.append("Ghostwriter", style="bold cyan")
    header.append(" v0.1.0\n", style="dim")
    header.append(f"Model: {provider}/{model}\n", style="white")
    header.append(f"Directory: {working_directory}", style="dim")
    console.print(Panel(header, border_style="cyan"))
    console.print("[dim]Type /help for commands, @test/@review/@refactor for sub-agents, \"\"\" for multi-line input[/dim]\n")


def print_assistant_message(content: str, agent_name: Optional[str] = None):
    if not content:
        return
    title = f"[bold green]{escape(agent_name or 'Assistant')}[/bold green]"
    console.print(Panel(Markdown(content), title=title, title_align="left", border_style="green"))


def print_status(status: str):
    text = escape(status.replace("_", " "))
    console.print(f"[dim]… {text}[/dim]")


def print_tool_call(name: str, arguments: Dict[str, Any]):
    args = ", ".join(f"{k}={_short(v)}" for k, v in arguments.items())
    console.print(f"[blue]🔧 {escape(name)}[/blue]([dim]{escape(args)}[/dim])")


def print_tool_result(name: str, ok: bool, data: Any = None, error: Optional[str] = None):
    if ok:
        console.print(f"[green]  ✓ {escape(name)}[/green] [dim]{escape(_short(data, 120))}[/dim]")
    else:
        console.print(f"[red]  ✗ {escape(name)}: {escape(str(error))}[/red]")


def print_info(message: str):
    console.print(f"[cyan]ℹ {escape(message)}[/cyan]")


def print_success(message: str):
    console.print(f"[green]✓ {escape(message)}[/green]")


def print_warning(message: str):
    console.print(f"[yellow]⚠ {escape(message)}[/yellow]")


def print_error(message: str):
    console.print(f"\n[red]❌ Error: {escape(message)}[/red]")


def print_confirm_request(tool_name: str, risk: str, preview: str, reason: str):
    style = _RISK_STYLES.get(risk, "yellow")
    body = Text()
    body.append(f"{reason}\n", style="bold")
    body.append(preview or tool_name)
    console.print(Panel(body, title=f"[{style}]Confirm {escape(tool_name)} ({risk} risk)[/{style}]", border_style=style))


def print_help():
    table = Table(show_header=False, box=None, padding=(0, 2))
    rows = [
        ("/help", "Show this help"),
        ("/clear", "Clear conversation history"),
        ("/clearscreen", "Clear the screen"),
        ("/model [name]", "Show or switch the model"),
        ("/provider [name]", "Show or switch the provider"),
        ("/status", "Show current configuration"),
        ("/tools", "List available tools"),
        ("/mcp [init]", "List MCP servers (init writes an example config)"),
        ("/agents", "List sub-agent types"),
        ("/init [--update]", "Generate GHOSTWRITER.md project knowledge"),
        ("/debug", "Toggle debug logging"),
        ("/exit, /quit, /q", "Exit"),
        ("@type message", "Run a sub-agent (test, review, refactor)"),
        ('"""', "Start or end multi-line input"),
    ]
    for cmd, desc in rows:
        table.add_row(f"[cyan]{cmd}[/cyan]", desc)
    console.print(table)


def print_table(title: str, columns: List[str], rows: List[List[str]]):
    table = Table(title=title, title_justify="left")
    for c in columns:
        table.add_column(c)
    for r in rows:
        table.add_row(*r)
    console.print(table)


def clear_screen():
    """Clear the console screen."""
    console.clear()


def _short(value: Any, limit: int = 60) -> str:
    s = str(value)
    s = s.replace("\n", "\\n")
    return s if len(s) <= limit else s[: limit - 3] + "..."
