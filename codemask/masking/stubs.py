"""
Stub Generator
---------------
Emits the JavaScript left in place of a masked fragment.  Every stub defers
to the browser loader (`window.CodeMask.load`) and is bracketed by
informational comments carrying the chunk id:

    /* CODEMASKED:chunk_xxxxxxxx */
    ...stub...
    /* END_CODEMASKED */

Function kinds keep their name and parameter list so callers see the same
signature, now async.  Arrow stubs forward binding names only; a parameter
list with destructuring falls back to `...args`.  Constant and unknown kinds become a fire-and-forget
IIFE that loads the raw chunk and runs it once; they do NOT bind anything
back into the surrounding scope.

No stub throws synchronously when the loader is missing: function stubs
reject, IIFE stubs log to the console and drop the effect.
"""
from __future__ import annotations

import re
from typing import Optional

from codemask.masking.classifier import split_top_level
from codemask.schemas import Chunk, ChunkKind, ClassifiedSnippet

STUB_OPEN = "/* CODEMASKED:{chunk_id} */\n"
STUB_CLOSE = "/* END_CODEMASKED */\n"

# `name`, `...name` or `name = default`
_SIMPLE_PARAM = re.compile(r"^(\.\.\.)?\s*([A-Za-z_$][A-Za-z0-9_$]*)\s*(?:=[\s\S]*)?$")

_LOADER_GUARD = (
    '  if (!window.CodeMask || typeof window.CodeMask.load !== "function") {{\n'
    '    throw new Error("CodeMask SDK not initialized before {chunk_id} was called");\n'
    "  }}\n"
)


def _decl_stub(chunk_id: str, snippet: ClassifiedSnippet) -> str:
    guard = _LOADER_GUARD.format(chunk_id=chunk_id)
    return (
        f"async function {snippet.name}({snippet.params}) {{\n"
        f"{guard}"
        f'  const fn = await window.CodeMask.load("{chunk_id}");\n'
        f"  return fn.apply(this, arguments);\n"
        f"}}\n"
    )


def forwarded_arguments(params: str) -> Optional[str]:
    """
    Call-site argument list for an arrow parameter list: binding names only,
    with default initialisers dropped and rest parameters spread.

    None when any parameter is not a plain identifier (destructuring,
    embedded comments); such stubs forward `...args` instead.
    """
    names = []
    for param in split_top_level(params):
        m = _SIMPLE_PARAM.match(param)
        if m is None:
            return None
        names.append(f"{m.group(1) or ''}{m.group(2)}")
    return ", ".join(names)


def _arrow_stub(chunk_id: str, snippet: ClassifiedSnippet) -> str:
    guard = _LOADER_GUARD.format(chunk_id=chunk_id)
    forwarded = forwarded_arguments(snippet.params)
    if forwarded is None:
        signature, forwarded = "...args", "...args"
    else:
        signature = snippet.params
    return (
        f"const {snippet.name} = async ({signature}) => {{\n"
        f"{guard}"
        f'  const fn = await window.CodeMask.load("{chunk_id}");\n'
        f"  return fn({forwarded});\n"
        f"}};\n"
    )


def _run_once_stub(chunk_id: str, label: str) -> str:
    return (
        "(function(){\n"
        "  var p = window.CodeMask && window.CodeMask.load\n"
        f'    ? window.CodeMask.load("{chunk_id}")\n'
        f'    : Promise.reject(new Error("CodeMask SDK not initialized before {label} load"));\n'
        "\n"
        "  p.then(function(fn){\n"
        '    try { if (typeof fn === "function") fn(); }\n'
        f'    catch(e){{ console.error("CodeMask {label} exec error ({chunk_id})", e); }}\n'
        "  }).catch(function(err){\n"
        f'    console.error("CodeMask {label} load failed ({chunk_id})", err);\n'
        "  });\n"
        "})();\n"
    )


def render_stub(chunk_id: str, snippet: ClassifiedSnippet) -> str:
    """Return the replacement source for one fragment, comment brackets included."""
    if snippet.kind == ChunkKind.DECL:
        inner = _decl_stub(chunk_id, snippet)
    elif snippet.kind == ChunkKind.ARROW:
        inner = _arrow_stub(chunk_id, snippet)
    elif snippet.kind == ChunkKind.CONSTANT:
        inner = _run_once_stub(chunk_id, "constant")
    else:
        inner = _run_once_stub(chunk_id, "unknown block")
    return STUB_OPEN.format(chunk_id=chunk_id) + inner + STUB_CLOSE


def generate(chunk_id: str, snippet: ClassifiedSnippet) -> tuple[str, Chunk]:
    """Stub text plus the Chunk record to register for it."""
    return render_stub(chunk_id, snippet), Chunk.from_snippet(chunk_id, snippet)
