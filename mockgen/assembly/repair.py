"""
Best-effort cleanup of raw model output before JSON parsing.

Handles the two failure modes seen in practice:
- Output wrapped in markdown code fences (```json ... ```)
- Output cut off at the token limit, leaving arrays/objects unclosed
"""

from __future__ import annotations

import re

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
_LEADING_FENCE = re.compile(r"^```[a-zA-Z]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```\s*$")

_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Remove markdown fences; a truncated response may have only the opening one."""
    text = text.strip()

    match = _FENCED_BLOCK.search(text)
    if match and text.startswith("```"):
        return match.group(1).strip()

    text = _LEADING_FENCE.sub("", text)
    text = _TRAILING_FENCE.sub("", text)
    return text.strip()


def unclosed_delimiters(text: str) -> list[str]:
    """
    Return the stack of open `{` / `[` left at the end of `text`.

    Brackets inside string literals are ignored. A stray closer that does
    not match the top of the stack is skipped.
    """
    stack: list[str] = []
    in_string = False
    escaped = False

    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(char)
        elif char in ("}", "]"):
            if stack and _CLOSERS[stack[-1]] == char:
                stack.pop()

    return stack


def ends_inside_string(text: str) -> bool:
    in_string = False
    escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif in_string and char == "\\":
            escaped = True
        elif char == '"':
            in_string = not in_string
    return in_string


def balance_brackets(text: str) -> str:
    """
    Close whatever the truncation left open.

    Appends the missing closers in reverse nesting order, so text ending
    inside `[{` gets `}]`. A dangling string literal is terminated and a
    trailing comma is dropped first.
    """
    repaired = text.rstrip()
    if ends_inside_string(repaired):
        repaired += '"'
    repaired = re.sub(r",\s*$", "", repaired)

    closers = "".join(_CLOSERS[opener] for opener in reversed(unclosed_delimiters(repaired)))
    return repaired + closers
