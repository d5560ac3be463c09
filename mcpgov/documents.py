from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from mcpgov.errors import ConfigError


def parse_document(text: str, path: Path, kind: str) -> Any:
    """Decode a rules or keyword file. Returns None for an empty file.

    ``.json`` files, and any file whose first character opens a JSON value,
    are decoded with the json module (tab indentation included). Other files,
    and non-``.json`` files that turn out to be YAML flow syntax such as
    ``{github: {delete: deny}}``, go through ``yaml.safe_load``.
    """
    stripped = text.strip()
    if not stripped:
        return None

    is_json_file = path.suffix.lower() == ".json"
    if is_json_file or stripped[0] in "{[":
        try:
            return json.loads(text)
        except ValueError as exc:
            if is_json_file:
                raise ConfigError(f"{kind} file {path} is not valid JSON: {exc}") from exc

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{kind} file {path} is not valid YAML/JSON: {exc}") from exc
