"""
Framelens — Output Formatting

Splits a SimplifiedDesign into the {metadata, nodes, globalVars} sections
returned to tool-calling clients and serializes results as YAML or JSON.
"""

import json
from typing import Any

import yaml

from framelens.models import SimplifiedDesign

OUTPUT_FORMATS = ("yaml", "json")


def split_design(design: SimplifiedDesign) -> dict[str, Any]:
    """Plain-data {metadata, nodes, globalVars}; absent node properties stay absent."""
    return {
        "metadata": design.metadata.model_dump(by_alias=True, exclude_defaults=True),
        "nodes": [node.model_dump(by_alias=True, exclude_defaults=True) for node in design.nodes],
        "globalVars": design.global_vars,
    }


def format_result(result: Any, output_format: str = "yaml") -> str:
    """Serialize plain data for a text response."""
    if output_format == "json":
        return json.dumps(result, indent=2, ensure_ascii=False)
    if output_format == "yaml":
        return yaml.safe_dump(result, sort_keys=False, allow_unicode=True, default_flow_style=False)
    raise ValueError(f"Unsupported output format: {output_format!r} (expected one of {OUTPUT_FORMATS})")
