"""
Single source of truth for all Pydantic models (simplified design output,
tool/REST requests, variable write-path payloads).

Output models serialize with camelCase aliases; dump them with
`model_dump(by_alias=True, exclude_defaults=True)` so absent properties stay absent.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Opaque content-derived key into the global variable table, e.g. "fill_3A9F0C1B2D4E5F67"
StyleKey = str


# -----------------------------------------------------------------------------
# Simplified Design (engine output)
# -----------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ComponentProperty(_CamelModel):
    name: str
    value: Any = None
    type: Optional[str] = None


class SimplifiedNode(_CamelModel):
    """One retained design node.

    `type` is the discriminator: which optional fields are populated depends on it
    (TEXT nodes carry `text`/`textStyle`, INSTANCE nodes carry `componentId`, ...).
    Style-bearing fields hold StyleKeys, never the style values themselves.
    """

    id: str
    name: str
    type: str
    text: Optional[str] = None
    text_style: Optional[StyleKey] = Field(None, alias="textStyle")
    fills: Optional[StyleKey] = None
    strokes: Optional[StyleKey] = None
    effects: Optional[StyleKey] = None
    layout: Optional[StyleKey] = None
    layout_grids: Optional[StyleKey] = Field(None, alias="layoutGrids")
    opacity: Optional[StyleKey] = None
    border_radius: Optional[StyleKey] = Field(None, alias="borderRadius")
    blend_mode: Optional[StyleKey] = Field(None, alias="blendMode")
    component_id: Optional[str] = Field(None, alias="componentId")
    component_properties: Optional[list[ComponentProperty]] = Field(None, alias="componentProperties")
    children: list[SimplifiedNode] = Field(default_factory=list)

    def style_keys(self) -> dict[str, StyleKey]:
        """Property name → StyleKey for every interned property on this node."""
        keys = {
            "textStyle": self.text_style,
            "fills": self.fills,
            "strokes": self.strokes,
            "effects": self.effects,
            "layout": self.layout,
            "layoutGrids": self.layout_grids,
            "opacity": self.opacity,
            "borderRadius": self.border_radius,
            "blendMode": self.blend_mode,
        }
        return {name: key for name, key in keys.items() if key is not None}


class SimplifiedComponent(_CamelModel):
    id: str
    key: Optional[str] = None
    name: str = ""
    component_set_id: Optional[str] = Field(None, alias="componentSetId")


class SimplifiedComponentSet(_CamelModel):
    id: str
    key: Optional[str] = None
    name: str = ""
    description: Optional[str] = None


class DesignMetadata(_CamelModel):
    """Document-level fields. Always describes the containing file, never a subtree."""

    name: Optional[str] = None
    last_modified: Optional[str] = Field(None, alias="lastModified")
    thumbnail_url: Optional[str] = Field(None, alias="thumbnailUrl")
    version: Optional[str] = None
    editor_type: Optional[str] = Field(None, alias="editorType")
    node_ids: Optional[list[str]] = Field(None, alias="nodeIds")
    components: dict[str, SimplifiedComponent] = Field(default_factory=dict)
    component_sets: dict[str, SimplifiedComponentSet] = Field(default_factory=dict, alias="componentSets")


class ImageAssetReference(_CamelModel):
    """A node whose fill or background is a bitmap. Resolved by the download pipeline."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    node_id: str = Field(..., alias="nodeId")
    image_ref: str = Field(..., alias="imageRef")


class SimplifiedDesign(_CamelModel):
    """Result of one simplification run. Immutable after assembly."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    metadata: DesignMetadata
    nodes: list[SimplifiedNode] = Field(default_factory=list)
    global_vars: dict[StyleKey, Any] = Field(default_factory=dict, alias="globalVars")
    image_assets: list[ImageAssetReference] = Field(default_factory=list, alias="imageAssets")


# -----------------------------------------------------------------------------
# Image Download Models
# -----------------------------------------------------------------------------


class SvgOptions(_CamelModel):
    outline_text: bool = Field(True, alias="outlineText", description="Whether to outline text in SVG exports")
    include_id: bool = Field(False, alias="includeId", description="Whether to include IDs in SVG exports")
    simplify_stroke: bool = Field(True, alias="simplifyStroke", description="Whether to simplify strokes in SVG exports")


class ImageDownloadNode(_CamelModel):
    node_id: str = Field(..., alias="nodeId", min_length=1, description="Node ID, formatted as 1234:5678")
    image_ref: Optional[str] = Field(
        None,
        alias="imageRef",
        description="Required when the node has an image fill. Leave blank for rendered (SVG/PNG) exports.",
    )
    file_name: str = Field(..., alias="fileName", min_length=1, description="Local file name for the saved image")


class DownloadImagesRequest(_CamelModel):
    file_key: str = Field(..., alias="fileKey", min_length=1)
    nodes: list[ImageDownloadNode] = Field(..., min_length=1)
    local_path: str = Field(..., alias="localPath", min_length=1, description="Absolute directory to save images in")
    png_scale: float = Field(2, alias="pngScale", gt=0, description="Export scale for PNG images")
    svg_options: SvgOptions = Field(default_factory=SvgOptions, alias="svgOptions")


class ImageAssetDownloadRequest(_CamelModel):
    """Download every bitmap a design (or a node subtree) references."""

    local_path: str = Field(..., alias="localPath", min_length=1)
    node_id: Optional[str] = Field(None, alias="nodeId")
    depth: Optional[int] = Field(None, ge=0)


class DownloadResult(_CamelModel):
    node_id: str = Field(..., alias="nodeId")
    file_name: str = Field(..., alias="fileName")
    path: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.path is not None and self.error is None


class DownloadImagesResponse(_CamelModel):
    success: bool
    downloaded: int
    results: list[DownloadResult]


# -----------------------------------------------------------------------------
# Variables Write Path (POST /files/:key/variables)
# -----------------------------------------------------------------------------

VariableScope = Literal[
    "ALL_SCOPES",
    "TEXT_CONTENT",
    "CORNER_RADIUS",
    "WIDTH_HEIGHT",
    "GAP",
    "ALL_FILLS",
    "FRAME_FILL",
    "SHAPE_FILL",
    "TEXT_FILL",
    "STROKE_COLOR",
    "EFFECT_COLOR",
]


class _ChangeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ModeSpec(_ChangeModel):
    name: str
    mode_id: Optional[str] = Field(None, alias="modeId")


class CreateCollection(_ChangeModel):
    action: Literal["CREATE"]
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    modes: Optional[list[ModeSpec]] = None


class UpdateCollection(_ChangeModel):
    action: Literal["UPDATE"]
    id: str
    name: Optional[str] = None
    description: Optional[str] = None


class DeleteChange(_ChangeModel):
    action: Literal["DELETE"]
    id: str


class CreateMode(_ChangeModel):
    action: Literal["CREATE"]
    id: Optional[str] = None
    variable_collection_id: str = Field(..., alias="variableCollectionId")
    name: str


class UpdateMode(_ChangeModel):
    action: Literal["UPDATE"]
    id: str
    variable_collection_id: str = Field(..., alias="variableCollectionId")
    name: Optional[str] = None


class CreateVariable(_ChangeModel):
    action: Literal["CREATE"]
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    variable_collection_id: str = Field(..., alias="variableCollectionId")
    resolved_type: Literal["BOOLEAN", "COLOR", "FLOAT", "STRING"] = Field(..., alias="resolvedType")
    remote: Optional[bool] = None
    scopes: Optional[list[VariableScope]] = None


class UpdateVariable(_ChangeModel):
    action: Literal["UPDATE"]
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    remote: Optional[bool] = None
    scopes: Optional[list[VariableScope]] = None


class ColorValue(_ChangeModel):
    r: float = Field(..., ge=0, le=1)
    g: float = Field(..., ge=0, le=1)
    b: float = Field(..., ge=0, le=1)
    a: Optional[float] = Field(None, ge=0, le=1)


class VariableAlias(_ChangeModel):
    type: Literal["VARIABLE_ALIAS"]
    id: str


class VariableModeValue(_ChangeModel):
    variable_id: str = Field(..., alias="variableId")
    mode_id: str = Field(..., alias="modeId")
    value: Union[bool, float, str, ColorValue, VariableAlias]


CollectionChange = Annotated[Union[CreateCollection, UpdateCollection, DeleteChange], Field(discriminator="action")]
ModeChange = Annotated[Union[CreateMode, UpdateMode, DeleteChange], Field(discriminator="action")]
VariableChange = Annotated[Union[CreateVariable, UpdateVariable, DeleteChange], Field(discriminator="action")]


class VariableChanges(_ChangeModel):
    variable_collections: Optional[list[CollectionChange]] = Field(None, alias="variableCollections")
    variable_modes: Optional[list[ModeChange]] = Field(None, alias="variableModes")
    variables: Optional[list[VariableChange]] = None
    variable_mode_values: Optional[list[VariableModeValue]] = Field(None, alias="variableModeValues")

    def to_payload(self) -> dict:
        """Request body for the Figma variables endpoint."""
        return self.model_dump(by_alias=True, exclude_none=True)
