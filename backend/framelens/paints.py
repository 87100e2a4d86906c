"""
Framelens — Style Value Builders

Turn raw Figma style properties into compact, CSS-like values before they are
interned: paints become hex/rgba strings or small gradient/image objects,
effects become box-shadow/filter strings, text styles keep only what affects
rendering.

Every builder returns None when the node has nothing to contribute, so callers
can omit the property instead of emitting an empty value.
"""

import math
from typing import Any, Optional

# Paint types whose raw shape is kept verbatim (minus visibility)
_PASSTHROUGH_PAINTS = {"EMOJI", "VIDEO", "PATTERN"}


def _num(value: float, digits: int = 2) -> float | int:
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"non-finite number {value!r}")
    rounded = round(value, digits)
    return int(rounded) if rounded == int(rounded) else rounded


def px(value: float) -> str:
    return f"{_num(value)}px"


def color_to_css(color: dict, opacity: Optional[float] = None) -> str:
    """Figma RGBA (0..1 floats) → '#rrggbb' when opaque, else 'rgba(r, g, b, a)'."""
    r = round(color.get("r", 0) * 255)
    g = round(color.get("g", 0) * 255)
    b = round(color.get("b", 0) * 255)
    a = color.get("a", 1)
    if opacity is not None:
        a = a * opacity
    if a >= 0.999:
        return f"#{r:02X}{g:02X}{b:02X}"
    return f"rgba({r}, {g}, {b}, {_num(a)})"


def _is_visible(item: Any) -> bool:
    return isinstance(item, dict) and item.get("visible", True) is not False


def simplify_paint(paint: dict) -> Any:
    """One raw paint → compact value. Unknown paint shapes pass through verbatim."""
    paint_type = paint.get("type")

    if paint_type == "SOLID":
        return color_to_css(paint.get("color", {}), paint.get("opacity"))

    if isinstance(paint_type, str) and paint_type.startswith("GRADIENT_"):
        gradient: dict[str, Any] = {
            "type": paint_type,
            "gradientHandlePositions": paint.get("gradientHandlePositions", []),
            "gradientStops": [
                {"position": _num(stop.get("position", 0), 4), "color": color_to_css(stop.get("color", {}))}
                for stop in paint.get("gradientStops", [])
                if isinstance(stop, dict)
            ],
        }
        if paint.get("opacity") is not None and paint["opacity"] < 1:
            gradient["opacity"] = _num(paint["opacity"])
        return gradient

    if paint_type == "IMAGE":
        image: dict[str, Any] = {"type": "IMAGE", "imageRef": paint.get("imageRef")}
        if paint.get("scaleMode"):
            image["scaleMode"] = paint["scaleMode"]
        if paint.get("gifRef"):
            image["gifRef"] = paint["gifRef"]
        if paint.get("opacity") is not None and paint["opacity"] < 1:
            image["opacity"] = _num(paint["opacity"])
        return image

    if paint_type in _PASSTHROUGH_PAINTS:
        return {k: v for k, v in paint.items() if k != "visible"}

    # Unrecognized paint type: keep everything so nothing is silently lost
    return dict(paint)


def build_fills(paints: Any) -> Optional[list]:
    """Visible paints in source order (paint order is stacking order)."""
    if not isinstance(paints, list):
        return None
    fills = [simplify_paint(p) for p in paints if _is_visible(p)]
    return fills or None


def image_refs(paints: Any) -> list[str]:
    """imageRef ids of visible IMAGE paints, in paint order."""
    if not isinstance(paints, list):
        return []
    return [
        p["imageRef"]
        for p in paints
        if _is_visible(p) and p.get("type") == "IMAGE" and p.get("imageRef")
    ]


def build_strokes(node: dict) -> Optional[dict]:
    """Stroke paints plus weight/dash/alignment. None when the node has no visible strokes."""
    colors = build_fills(node.get("strokes"))
    if not colors:
        return None

    strokes: dict[str, Any] = {"colors": colors}
    weight = node.get("strokeWeight")
    if isinstance(weight, (int, float)) and weight > 0:
        strokes["strokeWeight"] = px(weight)
    individual = node.get("individualStrokeWeights")
    if isinstance(individual, dict):
        sides = [individual.get(side, 0) for side in ("top", "right", "bottom", "left")]
        strokes["strokeWeights"] = " ".join(px(s) for s in sides)
    dashes = node.get("strokeDashes")
    if isinstance(dashes, list) and dashes:
        strokes["strokeDashes"] = [_num(d) for d in dashes]
    if node.get("strokeAlign"):
        strokes["strokeAlign"] = node["strokeAlign"]
    return strokes


def build_effects(effects: Any) -> Optional[dict]:
    """Shadows → boxShadow (or textShadow for text), blurs → filter / backdropFilter."""
    if not isinstance(effects, list):
        return None

    shadows: list[str] = []
    filters: list[str] = []
    backdrop: list[str] = []
    for effect in effects:
        if not _is_visible(effect):
            continue
        effect_type = effect.get("type")
        if effect_type in ("DROP_SHADOW", "INNER_SHADOW"):
            offset = effect.get("offset", {})
            shadow = " ".join([
                px(offset.get("x", 0)),
                px(offset.get("y", 0)),
                px(effect.get("radius", 0)),
                px(effect.get("spread", 0)),
                color_to_css(effect.get("color", {})),
            ])
            shadows.append(f"inset {shadow}" if effect_type == "INNER_SHADOW" else shadow)
        elif effect_type == "LAYER_BLUR":
            filters.append(f"blur({px(effect.get('radius', 0))})")
        elif effect_type == "BACKGROUND_BLUR":
            backdrop.append(f"blur({px(effect.get('radius', 0))})")

    result: dict[str, str] = {}
    if shadows:
        result["boxShadow"] = ", ".join(shadows)
    if filters:
        result["filter"] = " ".join(filters)
    if backdrop:
        result["backdropFilter"] = " ".join(backdrop)
    return result or None


_TEXT_PASSTHROUGH = (
    "fontFamily",
    "fontPostScriptName",
    "fontWeight",
    "fontSize",
    "textCase",
    "textDecoration",
    "textAlignHorizontal",
    "textAlignVertical",
    "textAutoResize",
    "paragraphSpacing",
)


def build_text_style(style: Any) -> Optional[dict]:
    """Typography for a TEXT node. lineHeight in em, letterSpacing in % of font size."""
    if not isinstance(style, dict) or not style:
        return None

    text_style: dict[str, Any] = {k: style[k] for k in _TEXT_PASSTHROUGH if style.get(k) is not None}
    if style.get("italic"):
        text_style["italic"] = True

    font_size = style.get("fontSize")
    line_height = style.get("lineHeightPx")
    if isinstance(font_size, (int, float)) and font_size > 0:
        if isinstance(line_height, (int, float)):
            text_style["lineHeight"] = f"{_num(line_height / font_size, 3)}em"
        spacing = style.get("letterSpacing")
        if isinstance(spacing, (int, float)) and spacing != 0:
            text_style["letterSpacing"] = f"{_num(spacing / font_size * 100)}%"
    elif isinstance(line_height, (int, float)):
        text_style["lineHeight"] = px(line_height)

    return text_style or None


def build_layout_grids(grids: Any) -> Optional[list]:
    if not isinstance(grids, list):
        return None
    simplified = []
    for grid in grids:
        if not _is_visible(grid):
            continue
        item = {
            k: grid[k]
            for k in ("pattern", "alignment", "count", "sectionSize", "gutterSize", "offset")
            if grid.get(k) is not None
        }
        if isinstance(grid.get("color"), dict):
            item["color"] = color_to_css(grid["color"])
        simplified.append(item)
    return simplified or None


def build_border_radius(node: dict) -> Optional[str]:
    """'8px', or 'tl tr br bl' when corners differ."""
    corners = node.get("rectangleCornerRadii")
    if isinstance(corners, list) and len(corners) == 4:
        if len(set(corners)) > 1:
            return " ".join(px(c) for c in corners)
        if corners[0]:
            return px(corners[0])
        return None
    radius = node.get("cornerRadius")
    if isinstance(radius, (int, float)) and radius > 0:
        return px(radius)
    return None
