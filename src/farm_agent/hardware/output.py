"""
Report rendering for Farm Agent.
Serializes inventory records as JSON or YAML.
"""

import json
import logging
from typing import Any

import yaml

FORMAT_PRETTY = "pretty"
FORMAT_JSON = "json"
FORMAT_YAML = "yaml"
FORMATS = (FORMAT_PRETTY, FORMAT_JSON, FORMAT_YAML)

logger = logging.getLogger(__name__)


def to_plain(data: Any) -> Any:
    """Convert records (and lists of records) into plain data."""
    if hasattr(data, "to_dict"):
        return data.to_dict()
    if isinstance(data, (list, tuple)):
        return [to_plain(item) for item in data]
    if isinstance(data, dict):
        return {key: to_plain(value) for key, value in data.items()}
    return data


def render(data: Any, fmt: str = FORMAT_PRETTY) -> str:
    """
    Render a record as text.

    pretty: indented JSON, json: compact JSON, yaml: block YAML with keys in
    declaration order. Unknown formats fall back to pretty.
    """
    plain = to_plain(data)
    if fmt == FORMAT_JSON:
        return json.dumps(plain, separators=(",", ":"))
    if fmt == FORMAT_YAML:
        return yaml.safe_dump(plain, sort_keys=False, default_flow_style=False)
    if fmt != FORMAT_PRETTY:
        logger.warning("Unknown output format %r, using %s", fmt, FORMAT_PRETTY)
    return json.dumps(plain, indent=2)
