"""Recover JSON from truncated or malformed model output.

Model output is parsed through an escalating sequence of attempts,
stopping at the first that succeeds:

1. Strict parse of the text as-is.
2. Lexical cleanup: strip code fences and leading prose, drop trailing
   commas, quote bare keys, escape or drop control characters.
3. Structural repair: one left-to-right scan that closes an unterminated
   string, strips an incomplete trailing member and appends the missing
   closers innermost-first.
4. Last-complete-element recovery for a ``"recommendations"`` array: keep
   only the elements that were fully written and close around them.

Recovery is lossy but monotonic.  Nothing is ever invented: an incomplete
trailing fragment is discarded and structure that was already open gets
closed.  Every attempt is a single linear pass over the text.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from recommendation.errors import ParseError

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 200

_CLOSER_FOR = {"{": "}", "[": "]"}
_OPENER_FOR = {"}": "{", "]": "["}

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_OPEN_FENCE_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)

# Escapes for raw whitespace control characters found inside string literals.
_STRING_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}
_JSON_WHITESPACE = " \t\n\r"

_MEMBER_RE = re.compile(r'\s*(?P<key>"(?:[^"\\]|\\.)*")\s*:(?P<value>.*)\Z', re.DOTALL)
_NUMBER_CHARS = frozenset("0123456789+-.eE")

_RECOMMENDATIONS_RE = re.compile(r'"recommendations"\s*:\s*\[')
_ELEMENT_START_RE = re.compile(r'\s*,?\s*(\{\s*"id"\s*:\s*")')


# ---------------------------------------------------------------------------
# Scan state
# ---------------------------------------------------------------------------


@dataclass
class OpenContainer:
    """An object or array that was opened but not yet closed."""

    opener: str
    # Key this container is the value of, when its parent is an object.
    key: str | None = None
    # Start of the container's last member: just past the opener, or the
    # index of the comma that precedes the member.
    segment_start: int = 0


@dataclass
class RepairState:
    """Transient scanning state for one structural repair call."""

    in_string: bool = False
    escaped: bool = False
    stack: list[OpenContainer] = field(default_factory=list)

    @property
    def open_braces(self) -> int:
        return sum(1 for c in self.stack if c.opener == "{")

    @property
    def open_brackets(self) -> int:
        return sum(1 for c in self.stack if c.opener == "[")

    def open_recommendations(self) -> OpenContainer | None:
        """Return the outermost still-open ``"recommendations"`` array."""
        for container in self.stack:
            if container.opener == "[" and container.key == "recommendations":
                return container
        return None


def scan(text: str) -> tuple[str, RepairState]:
    """Scan *text* once, tracking string and nesting state.

    Closing brackets that do not match the innermost open container are
    dropped; the returned text is *text* minus those characters, and every
    index recorded in the state refers to it.
    """
    state = RepairState()
    out: list[str] = []
    string_start = 0
    last_string: str | None = None
    pending_key: str | None = None

    for char in text:
        if state.in_string:
            out.append(char)
            if state.escaped:
                state.escaped = False
            elif char == "\\":
                state.escaped = True
            elif char == '"':
                state.in_string = False
                last_string = "".join(out[string_start + 1 : -1])
            continue

        if char == '"':
            state.in_string = True
            string_start = len(out)
            out.append(char)
        elif char in _CLOSER_FOR:
            parent_is_object = bool(state.stack) and state.stack[-1].opener == "{"
            out.append(char)
            state.stack.append(
                OpenContainer(
                    opener=char,
                    key=pending_key if parent_is_object else None,
                    segment_start=len(out),
                )
            )
            pending_key = None
        elif char in _OPENER_FOR:
            if state.stack and state.stack[-1].opener == _OPENER_FOR[char]:
                state.stack.pop()
                out.append(char)
        elif char == ":":
            if state.stack and state.stack[-1].opener == "{":
                pending_key = last_string
            out.append(char)
        elif char == ",":
            if state.stack:
                state.stack[-1].segment_start = len(out)
            pending_key = None
            out.append(char)
        else:
            out.append(char)

    return "".join(out), state


# ---------------------------------------------------------------------------
# Attempt 2: lexical cleanup
# ---------------------------------------------------------------------------


def _strip_fences(text: str) -> str:
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    # An opening fence with no closing one: output was cut off.
    return _OPEN_FENCE_RE.sub("", text)


def _is_control(char: str) -> bool:
    code = ord(char)
    return code < 0x20 or 0x7F <= code <= 0x9F


def clean_lexically(text: str) -> str:
    """Fix common lexical defects without touching string contents.

    Trailing commas are removed and bare identifier keys quoted only
    outside string literals.  Raw newlines and tabs inside strings are
    escaped; other control characters are dropped.
    """
    text = _strip_fences(text.strip())
    if text[:1] not in ("{", "["):
        # Leading prose may itself contain brackets; an object is what we expect.
        start = text.find("{")
        if start == -1:
            start = text.find("[")
        if start != -1:
            text = text[start:]

    out: list[str] = []
    in_string = False
    escaped = False
    last_significant = ""
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if in_string:
            if escaped:
                escaped = False
                out.append(char)
            elif char == "\\":
                escaped = True
                out.append(char)
            elif char == '"':
                in_string = False
                out.append(char)
                last_significant = char
            elif char in _STRING_ESCAPES:
                out.append(_STRING_ESCAPES[char])
            elif not _is_control(char):
                out.append(char)
            i += 1
            continue

        if char == '"':
            in_string = True
            out.append(char)
        elif char == ",":
            j = i + 1
            while j < length and text[j] in _JSON_WHITESPACE:
                j += 1
            if j < length and text[j] in _OPENER_FOR:
                i += 1
                continue
            out.append(char)
            last_significant = char
        elif (char.isalpha() or char in "_$") and last_significant in ("{", ","):
            j = i
            while j < length and (text[j].isalnum() or text[j] in "_$"):
                j += 1
            word = text[i:j]
            k = j
            while k < length and text[k] in _JSON_WHITESPACE:
                k += 1
            if k < length and text[k] == ":":
                out.append(f'"{word}"')
            else:
                out.append(word)
            last_significant = word[-1]
            i = j
            continue
        elif _is_control(char) and char not in _JSON_WHITESPACE:
            pass
        else:
            out.append(char)
            if char not in _JSON_WHITESPACE:
                last_significant = char
        i += 1

    return "".join(out)


def _decode_lenient(text: str) -> Any:
    """Parse *text*, ignoring any trailing non-JSON suffix."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        value, _ = json.JSONDecoder().raw_decode(text)
        return value


# ---------------------------------------------------------------------------
# Attempt 3: structural repair
# ---------------------------------------------------------------------------


def _is_complete_value(value: str) -> bool:
    """Return True when *value* is a whole JSON value ending the text.

    A number that runs right up to the truncation point may have lost
    digits, so it does not count as complete.
    """
    stripped = value.strip()
    if not stripped:
        return False
    if value == value.rstrip() and stripped[-1] in _NUMBER_CHARS and stripped[0] in "-0123456789":
        return False
    try:
        json.loads(stripped)
    except json.JSONDecodeError:
        return False
    return True


def _strip_incomplete_tail(text: str, container: OpenContainer) -> str:
    """Drop the innermost container's trailing member if it is incomplete."""
    segment = text[container.segment_start :]
    has_comma = segment.startswith(",")
    member = segment[1:] if has_comma else segment

    if not member.strip():
        return text[: container.segment_start] if has_comma else text

    if container.opener == "{":
        match = _MEMBER_RE.match(member)
        if match is None or not _is_complete_value(match.group("key")):
            return text[: container.segment_start]
        value = match.group("value")
    else:
        value = member

    if _is_complete_value(value):
        return text
    return text[: container.segment_start]


def close_structure(text: str, state: RepairState) -> str:
    """Terminate an open string, drop a dangling member, close containers."""
    repaired = text
    if state.in_string:
        if state.escaped:
            repaired = repaired[:-1]
        repaired += '"'
    if state.stack:
        repaired = _strip_incomplete_tail(repaired, state.stack[-1])
    return repaired + "".join(_CLOSER_FOR[c.opener] for c in reversed(state.stack))


def repair_structure(text: str) -> str:
    """Return *text* with balanced braces and brackets outside strings."""
    scanned, state = scan(text)
    return close_structure(scanned, state)


# ---------------------------------------------------------------------------
# Attempt 4: keep only complete recommendations
# ---------------------------------------------------------------------------


def _balanced_object_end(text: str, start: int) -> int | None:
    """Return the index just past the ``}`` balancing ``text[start]``."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
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
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def recover_complete_recommendations(text: str) -> str:
    """Truncate the recommendations array after its last complete element.

    Elements are matched from each ``{"id": "..."`` start to the brace that
    balances it, in order; the first element that never closes ends the
    array.  The enclosing structure is then closed.
    """
    anchor = _RECOMMENDATIONS_RE.search(text)
    if anchor is None:
        raise ParseError("no recommendations array to recover", snippet=text[:SNIPPET_LENGTH])

    cut = anchor.end()
    while True:
        match = _ELEMENT_START_RE.match(text, cut)
        if match is None:
            break
        end = _balanced_object_end(text, match.start(1))
        if end is None:
            break
        cut = end

    return repair_structure(text[:cut])


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def repair_json(text: str | None) -> Any:
    """Parse model output, recovering from common malformations.

    Raises
    ------
    ParseError
        When every recovery attempt fails.  The error carries the first
        characters of the offending text.
    """
    if text is None or not text.strip():
        raise ParseError("Empty response from model", snippet="")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Strict JSON parse failed, attempting lexical cleanup")

    cleaned = clean_lexically(text)
    try:
        return _decode_lenient(cleaned)
    except json.JSONDecodeError:
        logger.warning("Lexical cleanup failed, attempting structural repair")

    scanned, state = scan(cleaned)
    truncated_in_recommendations = state.open_recommendations() is not None
    if not truncated_in_recommendations:
        try:
            value = json.loads(close_structure(scanned, state))
            logger.warning("Recovered truncated JSON by closing open structure")
            return value
        except json.JSONDecodeError:
            pass

    if '"recommendations"' in scanned:
        try:
            value = json.loads(recover_complete_recommendations(scanned))
            logger.warning("Recovered JSON by keeping only complete recommendations")
            return value
        except (json.JSONDecodeError, ParseError):
            pass

    logger.error("JSON recovery failed: %s", text[:SNIPPET_LENGTH])
    raise ParseError("Failed to parse AI response as JSON", snippet=text[:SNIPPET_LENGTH])
