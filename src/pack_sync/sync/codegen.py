"""Text generation for the files inside a pack directory.

- ``render_unit`` -- one ``<unit>.js`` module from a unit definition.
- ``serialize_manifest`` -- canonical text of ``package.json``.
- ``INDEX_STUB`` -- the fixed ``index.js`` loader.

All output uses 2-space indentation.  ``serialize_manifest`` is also the
change detector: two manifests are "the same" exactly when their
serialized text is equal, so key order and formatting matter.
"""

from __future__ import annotations

import json
from typing import Any

import jsbeautifier

UNIT_SUFFIX = ".js"
MANIFEST_FILENAME = "package.json"
INDEX_FILENAME = "index.js"

INDEX_STUB = (
    "module.exports = require('node-machine').pack({\n"
    "  pkg: require('./package.json'),\n"
    "  dir: __dirname\n"
    "});\n"
)

# Keys with special treatment in unit definitions
CODE_KEY = "fn"
RENAMED_KEYS = {"name": "identity"}


def unit_filename(unit_name: str) -> str:
    return f"{unit_name}{UNIT_SUFFIX}"


def _beautify_options() -> Any:
    opts = jsbeautifier.default_options()
    opts.indent_size = 2
    return opts


def _render_pair(key: str, value: Any) -> str:
    if key == CODE_KEY:
        # Executable source, emitted unquoted
        rendered = str(value).strip()
    else:
        rendered = json.dumps(value, ensure_ascii=False)
    out_key = RENAMED_KEYS.get(key, key)
    if not out_key.isidentifier():
        out_key = json.dumps(out_key)
    return f"{out_key}: {rendered}"


def render_unit(definition: dict[str, Any]) -> str:
    """Render a unit definition as a beautified CommonJS module.

    Fields appear in definition order.  ``fn`` is raw code, ``name``
    becomes ``identity``, everything else is JSON.  Keys that are not
    valid identifiers are quoted.  The assembled module, ``fn`` body
    included, is pretty-printed with 2-space indentation.

    Example:
        >>> print(render_unit({"name": "u1", "fn": "function(i,e){e.success();}"}))
        module.exports = {
          identity: "u1",
          fn: function(i, e) {
            e.success();
          }
        };
    """
    pairs = [_render_pair(key, value) for key, value in definition.items()]
    source = "module.exports = {" + ",\n".join(pairs) + "};"
    beautified = jsbeautifier.beautify(source, _beautify_options())
    return beautified.rstrip("\n") + "\n"


def serialize_manifest(data: dict[str, Any]) -> str:
    """Canonical manifest text (2-space JSON, trailing newline)."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
