from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"
_catalog_cache: dict[str, Any] | None = None


def _load_catalog() -> dict[str, Any]:
    global _catalog_cache
    if _catalog_cache is None:
        payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError("Prompt catalog must be a JSON object.")
        _catalog_cache = payload
    return _catalog_cache


def _lookup(key: str) -> Any:
    node: Any = _load_catalog()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]
    return node


def _as_text(key: str, node: Any) -> str:
    # Long prompts are stored as a list of lines to keep the JSON readable.
    if isinstance(node, list) and all(isinstance(line, str) for line in node):
        return "\n".join(node)
    if isinstance(node, str):
        return node
    raise TypeError(f"Prompt key must map to a string or list of lines: {key}")


def render_prompt(key: str, **values: Any) -> str:
    template = Template(_as_text(key, _lookup(key)))
    try:
        return template.substitute(**values)
    except KeyError as exc:
        missing = str(exc.args[0])
        raise KeyError(f"Missing template value '{missing}' for prompt '{key}'") from exc


def render_platform_prompt(platform: str, key: str, **values: Any) -> str:
    """Render `platforms.<platform>.<key>`, falling back to `platforms.default.<key>`."""
    try:
        _lookup(f"platforms.{platform}.{key}")
    except KeyError:
        return render_prompt(f"platforms.default.{key}", **values)
    return render_prompt(f"platforms.{platform}.{key}", **values)


def clear_prompt_cache() -> None:
    global _catalog_cache
    _catalog_cache = None
