"""
Snippet Classifier
-------------------
Decides what a hidden fragment *is* so the stub generator can replace it
with something that keeps the surrounding code working.

Patterns are tried in order and the first match wins:

1. DECL      [async] function name(params) { body }
2. ARROW     const|let name = [async] (params) => { body } [;]
             const|let name = [async] param => { body } [;]
3. CONSTANT  const|let name = <anything> [;]
4. UNKNOWN   everything else

Only the heads (keywords, names, `=`, `=>`) are matched with regexes.
Parameter lists and bodies are delimited by a small lexer that tracks
nesting depth and skips over string, template and comment literals, so a
`}` inside a string or a nested block does not end the body early, and a
fragment holding two functions is not mistaken for one.

Regex literals are not recognised by the lexer; a regex containing an
unbalanced bracket can still mis-delimit a body, in which case the
fragment degrades to CONSTANT or UNKNOWN.
"""
from __future__ import annotations

import re
from typing import Optional

from loguru import logger

from codemask.schemas import ChunkKind, ClassifiedSnippet

_IDENT = r"[A-Za-z0-9_$]+"

_DECL_HEAD = re.compile(rf"^(?:async\s+)?function\s+({_IDENT})\s*\(")
_ARROW_HEAD = re.compile(rf"^(?:const|let)\s+({_IDENT})\s*=\s*(?:async\b\s*)?")
_BARE_PARAM = re.compile(rf"({_IDENT})\s*=>")
_ARROW_TOKEN = re.compile(r"\s*=>\s*")
_CONSTANT = re.compile(rf"^(?:const|let)\s+({_IDENT})\s*=\s*([\s\S]+?);?\s*$")

_CLOSERS = {"(": ")", "[": "]", "{": "}"}


# ---------------------------------------------------------------------------
# Lexer helpers
# ---------------------------------------------------------------------------

def _skip_literal(text: str, i: int) -> int:
    """
    If a string, template or comment literal starts at `i`, return the index
    just past it.  Otherwise return `i` unchanged.
    """
    ch = text[i]
    if ch in ("'", '"', "`"):
        j = i + 1
        while j < len(text):
            if text[j] == "\\":
                j += 2
                continue
            if text[j] == ch:
                return j + 1
            j += 1
        return len(text)
    if text.startswith("//", i):
        nl = text.find("\n", i)
        return len(text) if nl == -1 else nl + 1
    if text.startswith("/*", i):
        close = text.find("*/", i + 2)
        return len(text) if close == -1 else close + 2
    return i


def find_closing(text: str, open_idx: int) -> Optional[int]:
    """
    Return the index of the bracket closing the one at `open_idx`, or None
    when the brackets never balance.
    """
    stack = [_CLOSERS[text[open_idx]]]
    i = open_idx + 1
    while i < len(text):
        skipped = _skip_literal(text, i)
        if skipped != i:
            i = skipped
            continue
        ch = text[i]
        if ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in (")", "]", "}"):
            if ch != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return i
        i += 1
    return None


def _delimited(text: str, open_idx: int) -> Optional[tuple[str, int]]:
    """(inner text, index after the closer) for the bracket at `open_idx`."""
    close = find_closing(text, open_idx)
    if close is None:
        return None
    return text[open_idx + 1: close], close + 1


def _skip_ws(text: str, i: int) -> int:
    while i < len(text) and text[i].isspace():
        i += 1
    return i


def split_top_level(text: str, sep: str = ",") -> list[str]:
    """
    Split `text` on `sep` where it sits outside every bracket, string and
    comment.  Parts are stripped and empty ones dropped, so a trailing comma
    yields nothing extra.
    """
    parts: list[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(text):
        skipped = _skip_literal(text, i)
        if skipped != i:
            i = skipped
            continue
        ch = text[i]
        if ch in _CLOSERS:
            depth += 1
        elif ch in (")", "]", "}"):
            depth = max(depth - 1, 0)
        elif ch == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
        i += 1
    parts.append(text[start:])
    return [p.strip() for p in parts if p.strip()]


# ---------------------------------------------------------------------------
# Pattern matchers
# ---------------------------------------------------------------------------

def _match_decl(trimmed: str) -> Optional[ClassifiedSnippet]:
    head = _DECL_HEAD.match(trimmed)
    if not head:
        return None
    params = _delimited(trimmed, head.end() - 1)
    if params is None:
        return None
    params_text, i = params
    i = _skip_ws(trimmed, i)
    if i >= len(trimmed) or trimmed[i] != "{":
        return None
    body = _delimited(trimmed, i)
    if body is None:
        return None
    body_text, i = body
    if trimmed[i:].strip():
        return None
    return ClassifiedSnippet(
        kind=ChunkKind.DECL,
        name=head.group(1),
        params=params_text.strip(),
        body=body_text.strip(),
        original=trimmed,
    )


def _arrow_params(trimmed: str, i: int) -> Optional[tuple[str, int]]:
    """Parse `(a, b)` or a bare `a`, returning (params, index after params)."""
    if i < len(trimmed) and trimmed[i] == "(":
        return _delimited(trimmed, i)
    bare = _BARE_PARAM.match(trimmed, i)
    if bare:
        return bare.group(1), bare.end(1)
    return None


def _match_arrow(trimmed: str) -> Optional[ClassifiedSnippet]:
    head = _ARROW_HEAD.match(trimmed)
    if not head:
        return None
    params = _arrow_params(trimmed, head.end())
    if params is None:
        return None
    params_text, i = params
    arrow = _ARROW_TOKEN.match(trimmed, i)
    if not arrow:
        return None
    i = arrow.end()
    if i >= len(trimmed) or trimmed[i] != "{":
        return None
    body = _delimited(trimmed, i)
    if body is None:
        return None
    body_text, i = body
    tail = trimmed[i:].strip()
    if tail not in ("", ";"):
        return None
    return ClassifiedSnippet(
        kind=ChunkKind.ARROW,
        name=head.group(1),
        params=params_text.strip(),
        body=body_text.strip(),
        original=trimmed,
    )


def _match_constant(trimmed: str) -> Optional[ClassifiedSnippet]:
    m = _CONSTANT.match(trimmed)
    if not m:
        return None
    return ClassifiedSnippet(kind=ChunkKind.CONSTANT, name=m.group(1), original=trimmed)


_MATCHERS = (_match_decl, _match_arrow, _match_constant)


def classify(fragment: str) -> ClassifiedSnippet:
    """
    Classify one fragment.  Never raises: anything no pattern accepts comes
    back as UNKNOWN with only `original` populated.
    """
    trimmed = fragment.strip()
    for matcher in _MATCHERS:
        snippet = matcher(trimmed)
        if snippet is not None:
            return snippet

    logger.debug(f"[Classifier] Unclassified fragment kept verbatim: {trimmed[:60]!r}")
    return ClassifiedSnippet(kind=ChunkKind.UNKNOWN, original=trimmed)
