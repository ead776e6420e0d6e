"""Approval flow for tool calls that evaluate to ``ask``."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from toolgate.permissions.decision import OtherReason, PermissionDecision
from toolgate.types.config import PermissionBehavior

if TYPE_CHECKING:
    from toolgate.permissions.manager import PermissionContextManager

logger = logging.getLogger(__name__)


class ApprovalChoice(Enum):
    """The user's answer to an ``ask`` decision."""

    ALLOW_ONCE = "allow_once"
    ALLOW_ALWAYS = "allow_always"  # Persist the suggested rules
    DENY = "deny"


_ANSWERS = {
    "y": ApprovalChoice.ALLOW_ONCE,
    "yes": ApprovalChoice.ALLOW_ONCE,
    "a": ApprovalChoice.ALLOW_ALWAYS,
    "always": ApprovalChoice.ALLOW_ALWAYS,
}


def parse_choice(answer: str) -> ApprovalChoice:
    """Map a typed answer to a choice. Anything unrecognized denies."""
    return _ANSWERS.get(answer.strip().lower(), ApprovalChoice.DENY)


@runtime_checkable
class ApprovalCallback(Protocol):
    """Protocol for asking the user about a tool call."""

    async def request_approval(
        self, tool_name: str, args: dict[str, Any], decision: PermissionDecision,
    ) -> ApprovalChoice:
        """Ask the user about a call whose *decision* is ``ask``."""
        ...


def describe_tool_call(tool_name: str, args: dict[str, Any]) -> str:
    """Build a human-readable one-line description of a tool call."""
    if tool_name == "Bash" and "command" in args:
        return f"Run command: {args['command']}"
    if tool_name == "Write" and "file_path" in args:
        content = args.get("content", "")
        lines = content.count("\n") + 1 if content else 0
        return f"Write {args['file_path']} ({lines} lines)"
    if tool_name in ("Edit", "MultiEdit") and "file_path" in args:
        return f"Edit {args['file_path']}"
    if tool_name == "NotebookEdit" and "notebook_path" in args:
        return f"Edit notebook {args['notebook_path']}"
    if tool_name == "Move" and "source" in args:
        return f"Rename {args['source']} to {args.get('destination', '?')}"
    if tool_name == "Read" and "file_path" in args:
        return f"Read {args['file_path']}"
    if tool_name == "Glob" and "pattern" in args:
        return f"Search files: {args['pattern']}"
    if tool_name == "Grep" and "pattern" in args:
        return f"Search content: {args['pattern']}"
    if tool_name == "WebFetch" and "url" in args:
        return f"Fetch URL: {args['url']}"
    if tool_name.startswith("mcp__"):
        parts = tool_name.split("__", 2)
        short = parts[-1] if len(parts) > 1 else tool_name
        return f"MCP tool: {short}"
    args_str = json.dumps(args, default=str)
    if len(args_str) > 80:
        args_str = args_str[:77] + "..."
    return f"{tool_name}({args_str})"


class StdinApprovalCallback:
    """Plain-text approval prompt using stdin/stdout."""

    async def request_approval(
        self, tool_name: str, args: dict[str, Any], decision: PermissionDecision,
    ) -> ApprovalChoice:
        loop = asyncio.get_running_loop()
        prompt = f"\n{decision.message}\nAllow {tool_name}? {describe_tool_call(tool_name, args)}\n"
        if decision.rule_suggestions:
            rules = ", ".join(str(r) for r in decision.rule_suggestions)
            prompt += f"[y]es / [a]lways ({rules}) / [n]o > "
        else:
            prompt += "[y]es / [n]o > "
        try:
            answer = await loop.run_in_executor(None, lambda: input(prompt))
        except (EOFError, KeyboardInterrupt):
            return ApprovalChoice.DENY
        return parse_choice(answer)


async def authorize(
    manager: PermissionContextManager,
    tool_name: str,
    args: dict[str, Any] | None,
    callback: ApprovalCallback,
) -> PermissionDecision:
    """Evaluate a tool call and resolve an ``ask`` through *callback*.

    ``allow`` and ``deny`` are returned as evaluated. For ``ask`` the user
    may allow once, allow always (the suggested rules are granted and the
    call re-evaluated against the new context) or deny.
    """
    args = args or {}
    decision = manager.check(tool_name, args)
    if decision.behavior is not PermissionBehavior.ASK:
        return decision

    choice = await callback.request_approval(tool_name, args, decision)
    logger.debug("User answered %s for %s", choice.value, tool_name)

    match choice:
        case ApprovalChoice.ALLOW_ALWAYS if decision.rule_suggestions:
            manager.grant_rules(decision.rule_suggestions)
            updated = manager.check(tool_name, args)
            if updated.behavior is PermissionBehavior.ALLOW:
                return updated
            logger.warning(
                "Granted rules did not allow %s (%s); allowing this call only",
                tool_name, updated.behavior.value,
            )
            return _allowed_once(tool_name, args)
        case ApprovalChoice.ALLOW_ALWAYS | ApprovalChoice.ALLOW_ONCE:
            return _allowed_once(tool_name, args)
        case ApprovalChoice.DENY:
            return PermissionDecision(
                behavior=PermissionBehavior.DENY,
                message=f"User denied permission to use {tool_name}.",
                reason=OtherReason("denied by user"),
            )


def _allowed_once(tool_name: str, args: dict[str, Any]) -> PermissionDecision:
    return PermissionDecision(
        behavior=PermissionBehavior.ALLOW,
        message=f"User allowed {tool_name} for this call.",
        reason=OtherReason("approved by user"),
        updated_input=args,
    )
