"""Best-effort repair of JSON objects returned by an LLM.

LLM output is often wrapped in markdown fences, surrounded by prose, or cut off
when the token budget runs out. ``repair_json`` applies an ordered sequence of
repairs and returns a ``dict`` or ``None``. It never raises for ``str`` input.

Stages:
    1. Strip markdown code fences.
    2. Drop prose before the first ``{`` and after the closing top-level ``}``.
    3. Truncate an unterminated string back to the last closed quote.
    4-5. Cut an incomplete tail and close open ``{`` / ``[`` in nesting order.
    6. Remove trailing commas before ``}`` / ``]``.
    7. Parse; anything that is not a JSON object yields ``None``.

String repair must run before bracket repair: a cut-off string can contain
brace characters that would corrupt the bracket count.
"""

import json
import re
from typing import Any

import structlog

logger = structlog.get_logger()

_FENCE_OPEN_RE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_FENCE_CLOSE_RE = re.compile(r"\r?\n?[ \t]*```$")
_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_LITERALS = frozenset({"true", "false", "null"})

_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json (or bare ```) fence and a trailing ``` fence."""
    text = text.strip()
    text = _FENCE_OPEN_RE.sub("", text, count=1)
    text = _FENCE_CLOSE_RE.sub("", text, count=1)
    return text.strip()


def _find_object_end(text: str) -> int:
    """Index of the ``}`` closing the object that starts at ``text[0]``, or -1."""
    depth = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i if ch == "}" else -1
    return -1


def _extract_object(text: str) -> str | None:
    start = text.find("{")
    if start == -1:
        return None
    text = text[start:]
    end = _find_object_end(text)
    if end != -1:
        return text[: end + 1]
    return text


def _close_unterminated_string(text: str) -> str:
    """Truncate back to the last closed quote if the text ends inside a string."""
    in_string = False
    escaped = False
    last_closed = 0
    opened_at = 0
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                last_closed = i + 1
        elif ch == '"':
            in_string = True
            opened_at = i

    if not in_string:
        return text
    if last_closed:
        return text[:last_closed]
    return text[:opened_at]


def _balance_brackets(text: str) -> str:
    """Cut any incomplete tail and append the closers for open containers.

    Scans with one opener stack shared by objects and arrays, remembering the
    last "safe" offset: just after an opener or just after a complete value.
    Dangling ``:`` / ``,``, object keys with no value and partial literals all
    sit after the last safe offset and are cut.
    """
    stack: list[str] = []
    safe_end = 0
    safe_stack: list[str] = []
    last_structural = ""
    in_string = False
    escaped = False
    string_is_key = False
    token_start = -1

    def finish_token(end: int) -> None:
        nonlocal token_start, safe_end, safe_stack
        if token_start == -1:
            return
        token = text[token_start:end]
        token_start = -1
        if token in _LITERALS or _NUMBER_RE.fullmatch(token):
            safe_end = end
            safe_stack = list(stack)

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                if not string_is_key:
                    safe_end = i + 1
                    safe_stack = list(stack)
            continue

        if ch == '"':
            finish_token(i)
            in_string = True
            string_is_key = bool(stack) and stack[-1] == "{" and last_structural in ("{", ",")
        elif ch in "{[":
            finish_token(i)
            stack.append(ch)
            last_structural = ch
            safe_end = i + 1
            safe_stack = list(stack)
        elif ch in "}]":
            finish_token(i)
            if not stack or _CLOSERS[stack[-1]] != ch:
                # Mismatched closer: leave it for the parser to reject
                return text
            stack.pop()
            last_structural = ch
            safe_end = i + 1
            safe_stack = list(stack)
        elif ch in ",:":
            finish_token(i)
            last_structural = ch
        elif ch.isspace():
            finish_token(i)
        elif token_start == -1:
            token_start = i

    finish_token(len(text))

    if not stack:
        return text

    closers = "".join(_CLOSERS[opener] for opener in reversed(safe_stack))
    return text[:safe_end] + closers


def _remove_trailing_commas(text: str) -> str:
    """Drop commas directly followed by ``}`` or ``]``, leaving string contents alone."""
    out: list[str] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < len(text) and text[j].isspace():
                j += 1
            if j < len(text) and text[j] in "}]":
                continue
        out.append(ch)
    return "".join(out)


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def repair_json(raw: Any) -> dict[str, Any] | None:
    """Repair possibly truncated or decorated LLM output into a JSON object.

    Args:
        raw: Text that should contain a JSON object.

    Returns:
        The parsed object, or None if it could not be recovered.
    """
    if not isinstance(raw, str):
        return None

    text = _extract_object(strip_code_fences(raw))
    if text is None:
        logger.debug("json_repair_no_object", sample=raw[:200])
        return None

    parsed = _loads_object(text)
    if parsed is not None:
        return parsed

    text = _close_unterminated_string(text)
    text = _balance_brackets(text)
    text = _remove_trailing_commas(text)

    parsed = _loads_object(text)
    if parsed is None:
        logger.debug("json_repair_failed", sample=raw[:500])
    else:
        logger.debug("json_repaired", original_chars=len(raw), repaired_chars=len(text))
    return parsed
