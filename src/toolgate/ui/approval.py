"""Rich-formatted approval prompt for tool calls."""

from __future__ import annotations

import asyncio
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from toolgate.permissions.approval import ApprovalChoice, describe_tool_call, parse_choice
from toolgate.permissions.decision import PermissionDecision


class RichApprovalCallback:
    """Rich-formatted interactive approval prompt."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)

    def render(self, tool_name: str, args: dict[str, Any], decision: PermissionDecision) -> Panel:
        title = Text(f" ◆ {tool_name} ", style="bold #fbbf24")
        body = Text(describe_tool_call(tool_name, args), style="#94a3b8")
        body.append(f"\n{decision.message}", style="#7c7c8a")
        if decision.rule_suggestions:
            rules = ", ".join(str(r) for r in decision.rule_suggestions)
            body.append(f"\nAlways allow adds: {rules}", style="#7c7c8a")
        return Panel(
            body,
            title=title,
            border_style="#fbbf24",
            expand=False,
            padding=(0, 1),
        )

    async def request_approval(
        self, tool_name: str, args: dict[str, Any], decision: PermissionDecision,
    ) -> ApprovalChoice:
        """Show a styled approval prompt and wait for y/a/n."""
        self._console.print()
        self._console.print(self.render(tool_name, args, decision))

        options = "y/a/n" if decision.rule_suggestions else "y/n"
        prompt_text = f"[bold #fbbf24]Allow?[/bold #fbbf24] [#7c7c8a]({options})[/#7c7c8a] › "
        loop = asyncio.get_running_loop()
        try:
            self._console.print(prompt_text, end="")
            answer = await loop.run_in_executor(None, lambda: input(""))
        except (EOFError, KeyboardInterrupt):
            self._console.print()
            return ApprovalChoice.DENY
        return parse_choice(answer)
