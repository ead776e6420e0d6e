"""Shell command safety scan.

Commands are tokenized the way a POSIX shell would split them, then every
operator is checked against a short allow-list. Anything not explicitly
allowed is unsafe:

- ``glob`` words (``*.py``, ``file?.txt``) are allowed.
- ``>&`` is allowed only before a standard descriptor: ``0``, ``1`` or ``2``.
- ``>`` is allowed only before ``/dev/null``.
- Comments, command substitution, every other operator (``;``, ``&&``,
  ``||``, ``|``, ``&``, ``>>``, ``<``, ``&>``, ``(``, newlines, ...),
  control characters and unbalanced quotes make the command unsafe.

Rules match the normalized spelling from ``normalize_command``, so quoting
or escaping a word does not change which rule applies.
"""

from __future__ import annotations

import functools
import logging
import shlex
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

# Private-use markers appended after every quote character. A quoted token
# always carries one, so quoted text never reads as an operator or comment.
DOUBLE_QUOTE_MARK = "\ue000"
SINGLE_QUOTE_MARK = "\ue001"

_OPERATOR_CHARS = "();<>|&`\n"
_GLOB_CHARS = frozenset("*?[")
# Control characters other than tab and newline; newline is an operator.
_CONTROL_CHARS = frozenset(
    [chr(code) for code in range(32) if chr(code) not in "\t\n"] + ["\x7f"]
)

SAFE_OPERATORS = frozenset({"glob"})
SAFE_FD_TARGETS = ("0", "1", "2")
NULL_DEVICE = "/dev/null"


class TokenKind(Enum):
    WORD = "word"
    OP = "op"
    COMMENT = "comment"


@dataclass(frozen=True, slots=True)
class CommandToken:
    """One token of a tokenized command."""

    kind: TokenKind
    value: str
    raw: str | None = None  # Original word for ``glob`` operators


def _mark_quotes(command: str) -> str:
    return command.replace('"', '"' + DOUBLE_QUOTE_MARK).replace("'", "'" + SINGLE_QUOTE_MARK)


def _strip_marks(raw: str) -> str:
    return raw.replace(DOUBLE_QUOTE_MARK, "").replace(SINGLE_QUOTE_MARK, "")


def _classify(raw: str) -> CommandToken:
    if raw and all(ch in _OPERATOR_CHARS for ch in raw):
        return CommandToken(TokenKind.OP, raw)
    if raw.startswith("#"):
        return CommandToken(TokenKind.COMMENT, raw[1:])

    quoted = DOUBLE_QUOTE_MARK in raw or SINGLE_QUOTE_MARK in raw
    # Substitution survives double quotes; only single quotes make it literal.
    if ("`" in raw or "$(" in raw) and (DOUBLE_QUOTE_MARK in raw or not quoted):
        return CommandToken(TokenKind.OP, "$(" if "$(" in raw else "`")
    if not quoted and _GLOB_CHARS.intersection(raw):
        return CommandToken(TokenKind.OP, "glob", raw=raw)
    return CommandToken(TokenKind.WORD, _strip_marks(raw))


def tokenize(command: str) -> list[CommandToken]:
    """Split *command* into word, operator and comment tokens.

    Parsing stops at the first comment. Raises ``ValueError`` on unbalanced
    quotes or if the command already contains a quote marker.
    """
    if DOUBLE_QUOTE_MARK in command or SINGLE_QUOTE_MARK in command:
        raise ValueError("command contains reserved characters")

    lexer = shlex.shlex(_mark_quotes(command), posix=True, punctuation_chars=_OPERATOR_CHARS)
    lexer.whitespace = " \t"
    lexer.whitespace_split = True
    lexer.commenters = ""

    tokens: list[CommandToken] = []
    for raw in lexer:
        token = _classify(raw)
        tokens.append(token)
        if token.kind is TokenKind.COMMENT:
            break
    return tokens


def _next_word(tokens: list[CommandToken], index: int) -> str | None:
    if index + 1 >= len(tokens):
        return None
    following = tokens[index + 1]
    if following.kind is not TokenKind.WORD:
        return None
    return following.value.strip()


def find_violation(command: str) -> str | None:
    """Return why *command* is unsafe, or None when every token passes."""
    control = next((ch for ch in command if ch in _CONTROL_CHARS), None)
    if control is not None:
        return f"it contains the control character {control!r}"

    try:
        tokens = tokenize(command)
    except ValueError as exc:
        return f"it could not be parsed safely ({exc})"

    for index, token in enumerate(tokens):
        match token.kind:
            case TokenKind.WORD:
                continue
            case TokenKind.COMMENT:
                return "it contains a comment, which can hide trailing commands"
            case TokenKind.OP:
                if token.value in SAFE_OPERATORS:
                    continue
                target = _next_word(tokens, index)
                if token.value == ">&":
                    if target in SAFE_FD_TARGETS:
                        continue
                    return "it duplicates output to an unrecognized target with '>&'"
                if token.value == ">":
                    if target == NULL_DEVICE:
                        continue
                    return f"it redirects output to a file other than {NULL_DEVICE}"
                if token.value in ("$(", "`"):
                    return "it contains command substitution"
                return f"it uses the shell operator {token.value!r}"
    return None


def check(command: str) -> bool:
    """True when *command* may proceed to rule evaluation."""
    violation = find_violation(command)
    if violation is not None:
        logger.debug("Unsafe command %r: %s", command, violation)
        return False
    return True


# -- Normalized spelling -----------------------------------------------------

# Characters that force a word to be quoted when written back into a rule.
_NEEDS_QUOTING = frozenset(_OPERATOR_CHARS + " \t\"'\\#$")


def _spelling(token: CommandToken) -> str:
    match token.kind:
        case TokenKind.WORD:
            return token.value
        case TokenKind.OP:
            return token.raw or token.value
        case TokenKind.COMMENT:
            return "#" + token.value


@functools.lru_cache(maxsize=1024)
def normalize_command(command: str) -> str:
    """Canonical spelling of *command* for rule matching.

    Quotes are removed, escapes resolved and tokens joined by single spaces,
    so ``"rm"\\t-rf x`` and ``\\rm -rf x`` both read ``rm -rf x``. A command
    that cannot be tokenized only has its whitespace collapsed.
    """
    command = command.strip()
    try:
        tokens = tokenize(command)
    except ValueError:
        return " ".join(command.split())
    return " ".join(_spelling(token) for token in tokens)


def _escape_glob(text: str) -> str:
    return "".join(f"[{ch}]" if ch in _GLOB_CHARS else ch for ch in text)


def exact_pattern(command: str) -> str:
    """Rule pattern matching exactly *command*, in any spelling.

    Glob characters are bracketed and words that would not survive
    re-tokenizing are single-quoted, so the pattern normalizes back to a glob
    matching only ``normalize_command(command)``.
    """
    command = command.strip()
    try:
        tokens = tokenize(command)
    except ValueError:
        return _escape_glob(normalize_command(command))

    parts: list[str] = []
    for token in tokens:
        text = _escape_glob(_spelling(token))
        if token.kind is TokenKind.WORD and (not text or _NEEDS_QUOTING.intersection(text)):
            text = shlex.quote(text)
        parts.append(text)
    return " ".join(parts)
