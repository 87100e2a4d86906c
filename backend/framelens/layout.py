"""
Framelens — Layout / Geometry Builder

Reduces a node's geometry to what is needed to rebuild it:

- Auto-layout containers: flex-like mode, alignment, gap, padding, wrap.
- Auto-layout children: sizing mode per axis, alignSelf, grow; no position
  (the parent's flow places them) unless absolutely positioned.
- Everything else: size plus position relative to the parent's bounding box
  (absolute for roots) and non-default constraints.

Raw transform matrices and render bounds are never copied.
"""

import math
from typing import Any, Optional

from framelens.paints import px

AUTO_LAYOUT_MODES = ("HORIZONTAL", "VERTICAL")

_AXIS_ALIGN = {
    "MIN": "flex-start",
    "CENTER": "center",
    "MAX": "flex-end",
    "SPACE_BETWEEN": "space-between",
    "BASELINE": "baseline",
}

_SIZING = {"FIXED": "fixed", "FILL": "fill", "HUG": "hug"}


def _round(value: Any) -> Any:
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"non-finite number {value!r}")
        rounded = round(value, 2)
        return int(rounded) if rounded == int(rounded) else rounded
    return value


def is_auto_layout(node: Optional[dict]) -> bool:
    return isinstance(node, dict) and node.get("layoutMode") in AUTO_LAYOUT_MODES


def _container_layout(node: dict) -> dict:
    layout: dict[str, Any] = {"mode": "row" if node["layoutMode"] == "HORIZONTAL" else "column"}

    justify = _AXIS_ALIGN.get(node.get("primaryAxisAlignItems"))
    if justify and justify != "flex-start":
        layout["justifyContent"] = justify
    align = _AXIS_ALIGN.get(node.get("counterAxisAlignItems"))
    if align and align != "flex-start":
        layout["alignItems"] = align
    if node.get("layoutWrap") == "WRAP":
        layout["wrap"] = True

    spacing = node.get("itemSpacing")
    if isinstance(spacing, (int, float)) and spacing:
        layout["gap"] = px(spacing)
    if layout.get("wrap"):
        counter_spacing = node.get("counterAxisSpacing")
        if isinstance(counter_spacing, (int, float)) and counter_spacing:
            layout["rowGap"] = px(counter_spacing)

    padding = [node.get(k) or 0 for k in ("paddingTop", "paddingRight", "paddingBottom", "paddingLeft")]
    if any(padding):
        layout["padding"] = " ".join(px(p) for p in padding)
    return layout


def _child_sizing(node: dict) -> dict:
    sizing = {}
    horizontal = _SIZING.get(node.get("layoutSizingHorizontal"))
    vertical = _SIZING.get(node.get("layoutSizingVertical"))
    if horizontal:
        sizing["horizontal"] = horizontal
    if vertical:
        sizing["vertical"] = vertical
    return sizing


def build_layout(node: dict, parent: Optional[dict] = None) -> Optional[dict]:
    """Layout box for `node` inside `parent` (None for a requested root)."""
    layout: dict[str, Any] = {}
    if is_auto_layout(node):
        layout.update(_container_layout(node))

    in_flow = is_auto_layout(parent) and node.get("layoutPositioning") != "ABSOLUTE"
    sizing: dict = {}
    if is_auto_layout(parent):
        if node.get("layoutPositioning") == "ABSOLUTE":
            layout["position"] = "absolute"
        else:
            sizing = _child_sizing(node)
            if sizing:
                layout["sizing"] = sizing
            if node.get("layoutAlign") == "STRETCH":
                layout["alignSelf"] = "stretch"
            if node.get("layoutGrow"):
                layout["grow"] = _round(node["layoutGrow"])

    bbox = node.get("absoluteBoundingBox")
    if isinstance(bbox, dict):
        dimensions = {}
        if sizing.get("horizontal") not in ("fill", "hug") and bbox.get("width") is not None:
            dimensions["width"] = _round(bbox["width"])
        if sizing.get("vertical") not in ("fill", "hug") and bbox.get("height") is not None:
            dimensions["height"] = _round(bbox["height"])
        if dimensions:
            layout["dimensions"] = dimensions

        if not in_flow and bbox.get("x") is not None and bbox.get("y") is not None:
            parent_box = parent.get("absoluteBoundingBox") if isinstance(parent, dict) else None
            if isinstance(parent_box, dict) and parent_box.get("x") is not None:
                layout["locationRelativeToParent"] = {
                    "x": _round(bbox["x"] - parent_box["x"]),
                    "y": _round(bbox["y"] - parent_box.get("y", 0)),
                }
            else:
                layout["location"] = {"x": _round(bbox["x"]), "y": _round(bbox["y"])}

    constraints = node.get("constraints")
    if not in_flow and isinstance(constraints, dict):
        non_default = {
            axis: constraints[axis]
            for axis, default in (("horizontal", "LEFT"), ("vertical", "TOP"))
            if constraints.get(axis) and constraints[axis] != default
        }
        if non_default:
            layout["constraints"] = non_default

    direction = node.get("overflowDirection")
    if isinstance(direction, str) and direction != "NONE":
        layout["overflowScroll"] = direction.replace("_SCROLLING", "").lower()

    return layout or None
