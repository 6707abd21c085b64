"""
Literal masking for GraphQL query text.

A single left-to-right scan with explicit state, not a grammar parser. The
goal is narrow: hide string and numeric literals passed as arguments and
leave every other character where it was.

    user(id: 42, name: "bob", after: $cursor) { email }
    user(id: ***, name: "***", after: $cursor) { email }

Only one level of argument parentheses is tracked. A literal inside a nested
input object such as ``f(input: {age: 5})`` reaches ``)`` as the token
``5}``, which is not numeric and is kept.
"""

from dataclasses import dataclass, field
from typing import List

from .policy import MASK

MASKED_STRING_LITERAL = f'"{MASK}"'

DELIMITERS = frozenset(" \n\t,:")


@dataclass
class ScanState:
    """Scanner state threaded through every step."""

    output: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)
    in_string: bool = False
    in_parens: bool = False
    escape_next: bool = False


def mask_query_literals(query: str) -> str:
    """
    Replace literal argument values in a GraphQL query with the marker.

    String literals become ``"***"``, numeric literals become ``***``.
    Field names, directives and ``$variable`` references are never masked.
    Unterminated string literals are masked at end of input.
    """
    state = ScanState()
    for char in query:
        step(state, char)
    return finalize(state)


def step(state: ScanState, char: str) -> ScanState:
    """Advance the scan by one character."""
    if state.escape_next:
        _append_active(state, char)
        state.escape_next = False
    elif char == "\\":
        state.escape_next = True
        _append_active(state, char)
    elif char == '"':
        _handle_quote(state)
    elif char == "(":
        _handle_open_paren(state, char)
    elif char == ")":
        _handle_close_paren(state, char)
    elif char in DELIMITERS:
        if state.in_string:
            state.pending.append(char)
        else:
            _flush_pending(state)
            state.output.append(char)
    elif state.in_string or state.in_parens:
        state.pending.append(char)
    else:
        state.output.append(char)
    return state


def finalize(state: ScanState) -> str:
    """Close out the scan and return the masked text."""
    if state.in_string:
        # Never leak a dangling literal
        state.output.append(MASKED_STRING_LITERAL)
    else:
        state.output.extend(state.pending)
    state.pending = []
    return "".join(state.output)


def _append_active(state: ScanState, char: str) -> None:
    if state.in_string:
        state.pending.append(char)
    else:
        state.output.append(char)


def _handle_quote(state: ScanState) -> None:
    if state.in_string:
        # Discard the literal, emit a fixed token in its place
        state.in_string = False
        state.pending = []
        state.output.append(MASKED_STRING_LITERAL)
    elif state.in_parens:
        # A token glued to the opening quote is dropped with the literal
        state.in_string = True
        state.pending = ['"']
    else:
        state.output.append('"')


def _handle_open_paren(state: ScanState, char: str) -> None:
    if state.in_string:
        state.pending.append(char)
        return
    state.output.extend(state.pending)
    state.output.append(char)
    state.pending = []
    state.in_parens = True


def _handle_close_paren(state: ScanState, char: str) -> None:
    if state.in_string:
        state.pending.append(char)
        return
    _flush_pending(state)
    state.output.append(char)
    state.pending = []
    state.in_parens = False


def _flush_pending(state: ScanState) -> None:
    """Emit the pending bare token, masking it if it is a number."""
    if not state.in_parens or not state.pending:
        return

    token = "".join(state.pending)
    state.output.append(MASK if is_numeric_literal(token) else token)
    state.pending = []


def is_numeric_literal(token: str) -> bool:
    """True for int/float tokens; variable references and words are not literals."""
    trimmed = token.strip()
    if not trimmed or trimmed.startswith("$"):
        return False
    try:
        float(trimmed)
    except ValueError:
        return False
    return True
