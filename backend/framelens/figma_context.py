"""
Framelens — Figma Design Context Transformer

Converts a raw Figma API response (whole file or node-scoped) into a compact,
LLM-friendly SimplifiedDesign.

Purpose: raw Figma nodes are verbose and repeat the same fills, strokes and
text styles on every sibling. The simplified form keeps hierarchy, text and
geometry per node, and moves every style value into one global variable table
that nodes reference by key.

Output structure (after formatting.split_design):
    {
        "metadata": { "name", "lastModified", "thumbnailUrl", "components", ... },
        "nodes": [ { "id", "name", "type", "fills"?: key, "layout"?: key, "children"?: [...] } ],
        "globalVars": { key: value }
    }

Usage:
    from framelens.figma_context import parse_figma_response
    design = parse_figma_response(raw, max_depth=3)
"""

import time
from typing import Any, Callable, Optional

from pydantic import ValidationError

from framelens.config import log
from framelens.layout import build_layout
from framelens.models import (
    ComponentProperty,
    DesignMetadata,
    ImageAssetReference,
    SimplifiedComponent,
    SimplifiedComponentSet,
    SimplifiedDesign,
    SimplifiedNode,
)
from framelens.paints import (
    build_border_radius,
    build_effects,
    build_fills,
    build_layout_grids,
    build_strokes,
    build_text_style,
    image_refs,
)
from framelens.style_vars import GlobalVariableTable

# Node kinds that carry no visual payload of their own; their children are
# promoted into the parent's child list.
FLATTENED_NODE_TYPES = frozenset({"DOCUMENT", "SLICE"})

_IGNORED_BLEND_MODES = {"NORMAL", "PASS_THROUGH"}


class DesignParseError(Exception):
    """The raw response has no traversable root."""


# ─────────────────────────────────────────────────────────────────────────────
# Metadata
# ─────────────────────────────────────────────────────────────────────────────


def _text(value: Any) -> Optional[str]:
    """The value when it is a string; anything else reads as absent."""
    return value if isinstance(value, str) else None


def _simplify_components(raw_components: Any) -> dict[str, SimplifiedComponent]:
    if not isinstance(raw_components, dict):
        return {}
    components = {}
    for component_id, comp in raw_components.items():
        if not isinstance(comp, dict):
            continue
        try:
            components[component_id] = SimplifiedComponent(
                id=component_id,
                key=_text(comp.get("key")),
                name=_text(comp.get("name")) or "",
                component_set_id=_text(comp.get("componentSetId")),
            )
        except ValidationError as e:
            log("WARN", "component skipped", component_id=component_id, error=str(e))
    return components


def _simplify_component_sets(raw_sets: Any) -> dict[str, SimplifiedComponentSet]:
    if not isinstance(raw_sets, dict):
        return {}
    sets = {}
    for set_id, comp_set in raw_sets.items():
        if not isinstance(comp_set, dict):
            continue
        try:
            sets[set_id] = SimplifiedComponentSet(
                id=set_id,
                key=_text(comp_set.get("key")),
                name=_text(comp_set.get("name")) or "",
                description=_text(comp_set.get("description")) or None,
            )
        except ValidationError as e:
            log("WARN", "component set skipped", component_set_id=set_id, error=str(e))
    return sets


def extract_metadata(raw: dict) -> DesignMetadata:
    """Document-level fields of a whole-file or node-scoped response.

    For node-scoped responses the fields describe the containing file; only
    `nodeIds` and the aggregated components reflect the requested scope.
    Fields of the wrong type are left unset.
    """
    version = raw.get("version")
    fields: dict[str, Any] = {
        "name": _text(raw.get("name")),
        "last_modified": _text(raw.get("lastModified")),
        "thumbnail_url": _text(raw.get("thumbnailUrl")),
        "version": str(version) if isinstance(version, (str, int)) and not isinstance(version, bool) else None,
        "editor_type": _text(raw.get("editorType")),
    }

    nodes = raw.get("nodes")
    if isinstance(nodes, dict):
        components: dict[str, SimplifiedComponent] = {}
        component_sets: dict[str, SimplifiedComponentSet] = {}
        for entry in nodes.values():
            if not isinstance(entry, dict):
                continue
            components.update(_simplify_components(entry.get("components")))
            component_sets.update(_simplify_component_sets(entry.get("componentSets")))
        fields["node_ids"] = [str(node_id) for node_id in nodes]
    else:
        components = _simplify_components(raw.get("components"))
        component_sets = _simplify_component_sets(raw.get("componentSets"))

    return DesignMetadata(**fields, components=components, component_sets=component_sets)


def _requested_roots(raw: dict) -> list[dict]:
    """Raw roots of the requested scope, in request order."""
    nodes = raw.get("nodes")
    if isinstance(nodes, dict):
        roots = []
        for node_id, entry in nodes.items():
            doc = entry.get("document") if isinstance(entry, dict) else None
            if not isinstance(doc, dict):
                log("WARN", "requested node missing from response", node_id=node_id)
                continue
            roots.append(doc)
        if not roots:
            raise DesignParseError(
                f"None of the requested nodes were returned: {', '.join(nodes.keys()) or '(none)'}"
            )
        return roots

    document = raw.get("document")
    if isinstance(document, dict):
        return [document]
    raise DesignParseError("Response contains neither a document nor requested nodes")


# ─────────────────────────────────────────────────────────────────────────────
# Node Simplifier
# ─────────────────────────────────────────────────────────────────────────────


def _guarded(node_id: str, prop: str, builder: Callable, *args) -> Any:
    """Run one property builder; a malformed property is logged and omitted."""
    try:
        return builder(*args)
    except (AttributeError, KeyError, TypeError, ValueError, ArithmeticError) as e:
        log("WARN", "node property skipped", node_id=node_id, property=prop, error=str(e))
        return None


def _component_properties(raw_props: Any) -> Optional[list[ComponentProperty]]:
    if not isinstance(raw_props, dict) or not raw_props:
        return None
    return [
        ComponentProperty(name=name, value=prop.get("value"), type=prop.get("type"))
        for name, prop in raw_props.items()
        if isinstance(prop, dict)
    ]


def simplify_node(
    raw: dict,
    table: GlobalVariableTable,
    image_assets: list[ImageAssetReference],
    parent: Optional[dict] = None,
) -> SimplifiedNode:
    """
    Simplify one raw node (children are attached by walk()).

    Style-bearing properties are interned into `table` and stored as keys;
    properties absent on the source node are left unset. Image fills are
    recorded in `image_assets` as well as kept in the interned fill value.
    """
    node_id = _text(raw.get("id")) or ""
    node_type = _text(raw.get("type")) or "UNKNOWN"
    fields: dict[str, Any] = {
        "id": node_id,
        "name": _text(raw.get("name")) or "",
        "type": node_type,
    }

    paints = raw["fills"] if "fills" in raw else raw.get("background")
    fills = _guarded(node_id, "fills", build_fills, paints)
    if fills:
        fields["fills"] = table.intern(fills, "fill")
    refs = _guarded(node_id, "fills", image_refs, paints) or []
    for ref in dict.fromkeys(refs):
        image_assets.append(ImageAssetReference(node_id=node_id, image_ref=ref))

    strokes = _guarded(node_id, "strokes", build_strokes, raw)
    if strokes:
        fields["strokes"] = table.intern(strokes, "stroke")

    effects = _guarded(node_id, "effects", build_effects, raw.get("effects"))
    if effects:
        if node_type == "TEXT" and "boxShadow" in effects:
            effects["textShadow"] = effects.pop("boxShadow")
        fields["effects"] = table.intern(effects, "effect")

    layout = _guarded(node_id, "layout", build_layout, raw, parent)
    if layout:
        fields["layout"] = table.intern(layout, "layout")

    grids = _guarded(node_id, "layoutGrids", build_layout_grids, raw.get("layoutGrids"))
    if grids:
        fields["layout_grids"] = table.intern(grids, "grid")

    if node_type == "TEXT":
        if isinstance(raw.get("characters"), str):
            fields["text"] = raw["characters"]
        text_style = _guarded(node_id, "style", build_text_style, raw.get("style"))
        if text_style:
            fields["text_style"] = table.intern(text_style, "style")

    opacity = raw.get("opacity")
    if isinstance(opacity, (int, float)) and not isinstance(opacity, bool) and 0 <= opacity < 1:
        fields["opacity"] = table.intern(round(float(opacity), 2), "opacity")

    radius = _guarded(node_id, "cornerRadius", build_border_radius, raw)
    if radius:
        fields["border_radius"] = table.intern(radius, "radius")

    blend_mode = raw.get("blendMode")
    if isinstance(blend_mode, str) and blend_mode not in _IGNORED_BLEND_MODES:
        fields["blend_mode"] = table.intern(blend_mode, "blend")

    if node_type == "INSTANCE":
        if isinstance(raw.get("componentId"), str):
            fields["component_id"] = raw["componentId"]
        props = _guarded(node_id, "componentProperties", _component_properties, raw.get("componentProperties"))
        if props:
            fields["component_properties"] = props

    return SimplifiedNode(**fields)


# ─────────────────────────────────────────────────────────────────────────────
# Tree Walker
# ─────────────────────────────────────────────────────────────────────────────


def _is_retained(raw: dict, depth: int) -> bool:
    if str(raw.get("type")) in FLATTENED_NODE_TYPES:
        return False
    # Requested roots are kept even when hidden
    return depth == 0 or raw.get("visible", True) is not False


def walk(
    roots: list[dict],
    table: GlobalVariableTable,
    image_assets: list[ImageAssetReference],
    max_depth: Optional[int] = None,
) -> tuple[list[SimplifiedNode], int]:
    """
    Pre-order, depth-first walk over the raw roots using an explicit stack.

    Depth counts raw nodes (flattened ones included) from the requested roots
    at depth 0. Nodes deeper than max_depth are dropped with their subtrees.
    Hidden or payload-free nodes are dropped, but their children are promoted
    into the nearest retained ancestor in source order.

    Returns:
        (simplified forest, number of raw nodes visited)
    """
    if max_depth is not None and max_depth < 0:
        raise ValueError("max_depth must be >= 0")

    forest: list[SimplifiedNode] = []
    visited = 0
    # (raw node, raw depth, nearest retained raw ancestor, list to append into)
    stack: list[tuple[Any, int, Optional[dict], list[SimplifiedNode]]] = [
        (root, 0, None, forest) for root in reversed(roots)
    ]

    while stack:
        raw, depth, parent, siblings = stack.pop()
        if not isinstance(raw, dict):
            log("WARN", "malformed node skipped", depth=depth, kind=type(raw).__name__)
            continue
        visited += 1

        if _is_retained(raw, depth):
            node = simplify_node(raw, table, image_assets, parent)
            siblings.append(node)
            child_parent, child_siblings = raw, node.children
        else:
            child_parent, child_siblings = parent, siblings

        children = raw.get("children")
        if not isinstance(children, list) or (max_depth is not None and depth >= max_depth):
            continue
        for child in reversed(children):
            stack.append((child, depth + 1, child_parent, child_siblings))

    return forest, visited


# ─────────────────────────────────────────────────────────────────────────────
# Assembly
# ─────────────────────────────────────────────────────────────────────────────


def assemble(
    metadata: DesignMetadata,
    forest: list[SimplifiedNode],
    table: GlobalVariableTable,
    image_assets: Optional[list[ImageAssetReference]] = None,
) -> SimplifiedDesign:
    """Combine the parts of one run. Freezes the table."""
    return SimplifiedDesign(
        metadata=metadata,
        nodes=forest,
        global_vars=table.freeze(),
        image_assets=list(image_assets or []),
    )


def _count_nodes(tree: list[SimplifiedNode]) -> int:
    count = 0
    stack = list(tree)
    while stack:
        node = stack.pop()
        count += 1
        stack.extend(node.children)
    return count


def parse_figma_response(raw: dict, max_depth: Optional[int] = None) -> SimplifiedDesign:
    """
    Simplify a whole-file (`GET /files/:key`) or node-scoped
    (`GET /files/:key/nodes`) response.

    Args:
        raw: Parsed JSON response from the Figma API.
        max_depth: Keep nodes at most this many levels below the requested
            roots (the document for whole-file responses). None = unbounded.

    Returns:
        SimplifiedDesign with metadata, node forest, global variables and image assets.

    Raises:
        DesignParseError: the response has no document / none of the requested nodes.
    """
    start = time.perf_counter()
    if not isinstance(raw, dict):
        raise DesignParseError(f"Expected a JSON object, got {type(raw).__name__}")

    metadata = extract_metadata(raw)
    roots = _requested_roots(raw)

    log(
        "INFO",
        "design transform started",
        file_name=metadata.name,
        root_count=len(roots),
        max_depth=max_depth,
    )

    table = GlobalVariableTable()
    image_assets: list[ImageAssetReference] = []
    forest, visited = walk(roots, table, image_assets, max_depth)
    design = assemble(metadata, forest, table, image_assets)

    duration_ms = int((time.perf_counter() - start) * 1000)
    log(
        "INFO",
        "design transform completed",
        node_count_input=visited,
        node_count_output=_count_nodes(design.nodes),
        global_var_count=len(design.global_vars),
        image_count=len(design.image_assets),
        duration_ms=duration_ms,
    )
    return design
