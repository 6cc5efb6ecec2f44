from __future__ import annotations

from enum import Enum

from rich.console import Console
from rich.table import Table

from sliding_llama.chat.session import ChatSession


class CommandOutcome(str, Enum):
    NOT_A_COMMAND = "not_a_command"
    HANDLED = "handled"
    QUIT = "quit"


QUIT_COMMANDS = {"quit", "exit", "q"}


def build_help_text() -> str:
    """Return CLI help text for out-of-band chat commands."""
    return (
        "[bold]Sliding window chat commands[/bold]\n"
        "  quit, exit, Control-D  - Exit the chat\n"
        "  reset                  - Clear conversation history\n"
        "  status                 - Show conversation statistics\n"
        "  help                   - Show this help\n"
        "  continue, more         - Keep generating the previous answer\n"
        "Long conversations are windowed automatically; the opening tokens are always kept."
    )


def build_status_table(session: ChatSession) -> Table:
    status = session.status()
    table = Table(title="Conversation status", show_header=False)
    table.add_column("field")
    table.add_column("value", justify="right")
    table.add_row("Total tokens", str(status.history_length))
    table.add_row("Sequence limit", str(status.capacity))
    table.add_row("Sliding window", "ACTIVE" if status.sliding_window_active else "inactive")
    table.add_row("Loop state", status.state)
    return table


def handle_user_command(user_input: str, session: ChatSession, console: Console) -> CommandOutcome:
    command = user_input.strip().lower()
    if command in QUIT_COMMANDS:
        return CommandOutcome.QUIT
    if command == "reset":
        session.reset()
        console.print("Conversation history reset\n")
        return CommandOutcome.HANDLED
    if command == "status":
        console.print(build_status_table(session))
        return CommandOutcome.HANDLED
    if command == "help":
        console.print(build_help_text())
        return CommandOutcome.HANDLED
    return CommandOutcome.NOT_A_COMMAND
