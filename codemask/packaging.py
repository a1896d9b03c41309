"""
Delivery packaging: the zip archive handed back to the uploader and the
loader bootstrap injected into HTML pages.
"""
from __future__ import annotations

import io
import re
import zipfile

from codemask.schemas import ProcessedFile

SDK_PATH = "/sdk/codemask-sdk.js"

_MAIN_JS_TAG = re.compile(r"""<script[^>]*src=["'][^"']*main\.js["'][^>]*></script>""", re.I)
_BODY_CLOSE = re.compile(r"</body>", re.I)


def build_sdk_snippet(public_url: str, project_id: str, key: str) -> str:
    """The snippet shown to the uploader for manual embedding."""
    base = public_url.rstrip("/")
    return (
        f'<script src="{base}{SDK_PATH}"></script>\n'
        "<script>\n"
        "  window.CodeMask.init({\n"
        f'    baseUrl: "{base}",\n'
        f'    projectId: "{project_id}",\n'
        f'    key: "{key}"\n'
        "  });\n"
        "</script>"
    )


def _injected_snippet(public_url: str, project_id: str, key: str) -> str:
    base = public_url.rstrip("/")
    return (
        "\n<!-- CodeMask SDK (auto-injected) -->\n"
        f'<script src="{base}{SDK_PATH}"></script>\n'
        "<script>\n"
        "  if (window.CodeMask) {\n"
        "    window.CodeMask.init({\n"
        f'      baseUrl: "{base}",\n'
        f'      projectId: "{project_id}",\n'
        f'      key: "{key}"\n'
        "    });\n"
        "  } else {\n"
        '    console.error("CodeMask SDK failed to load before init()");\n'
        "  }\n"
        "</script>\n"
        "<!-- End CodeMask SDK -->\n"
    )


def inject_sdk_into_html(html: str, public_url: str, project_id: str, key: str) -> str:
    """
    Place the loader bootstrap ahead of the page's main.js, else before
    </body>, else at the very end.
    """
    snippet = _injected_snippet(public_url, project_id, key)

    if "main.js" in html:
        replaced, count = _MAIN_JS_TAG.subn(
            lambda m: f"{snippet}\n{m.group(0)}", html, count=1
        )
        if count:
            return replaced
    if _BODY_CLOSE.search(html):
        return _BODY_CLOSE.sub(lambda _m: f"{snippet}\n</body>", html, count=1)
    return f"{html}\n{snippet}"


def is_html(relative_path: str) -> bool:
    return relative_path.lower().endswith(".html")


def make_zip(files: list[ProcessedFile]) -> bytes:
    """Zip processed files (UTF-8) into an in-memory archive."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for f in files:
            zf.writestr(f.relative_path, f.content.encode("utf-8"))
    return buf.getvalue()
