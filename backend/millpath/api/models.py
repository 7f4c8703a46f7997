"""
Pydantic data models for the millpath task API.

These models define the messages exchanged with a generation task.
Requests form a tagged union on ``command`` (``waterline``, ``raster``
or ``gcode``) and every message a task sends back is tagged on
``event`` (``progress``, ``result`` or ``error``).  Payloads are
validated once, here, so the services below can rely on well‑typed
values instead of inspecting dictionaries field by field.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class BoundingBox(BaseModel):
    """Axis‑aligned bounding box of the mesh, supplied by the caller."""

    minX: float
    maxX: float
    minY: float
    maxY: float
    minZ: float
    maxZ: float

    @model_validator(mode="after")
    def _check_order(self) -> "BoundingBox":
        for axis in ("X", "Y", "Z"):
            lo = getattr(self, f"min{axis}")
            hi = getattr(self, f"max{axis}")
            if hi < lo:
                raise ValueError(f"max{axis} ({hi}) is smaller than min{axis} ({lo})")
        return self


class MeshRequest(BaseModel):
    """Fields shared by every request that carries a triangle mesh."""

    mesh: List[float] = Field(
        ..., description="Flat triangle list, nine floats per triangle (x0, y0, z0, x1 …)"
    )
    triangleCount: int = Field(..., ge=0, description="Number of triangles in ``mesh``")
    boundingBox: BoundingBox = Field(..., description="Bounding box of the mesh")
    toolDiameter: float = Field(..., gt=0.0, description="Cutter diameter in model units")
    # Optional lateral step.  When omitted or zero the task uses 45% of
    # the tool diameter.
    stepover: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Distance between adjacent passes (defaults to 0.45 × toolDiameter)",
    )

    @model_validator(mode="after")
    def _check_mesh_length(self) -> "MeshRequest":
        if len(self.mesh) != 9 * self.triangleCount:
            raise ValueError(
                f"mesh holds {len(self.mesh)} values, expected {9 * self.triangleCount} "
                f"for {self.triangleCount} triangles"
            )
        return self


class WaterlineRequest(MeshRequest):
    """Request for horizontal layered machining."""

    command: Literal["waterline"] = "waterline"
    stepdown: float = Field(..., gt=0.0, description="Vertical distance between layers")
    mode: Literal["waterline", "rough", "profile"] = Field(
        default="waterline",
        description="Finishing pass, concentric roughing or accumulated profile",
    )
    stockAllowance: float = Field(
        default=0.0,
        ge=0.0,
        description="Material left on the walls by roughing passes",
    )


class RasterRequest(MeshRequest):
    """Request for directional raster scanning."""

    command: Literal["raster"] = "raster"
    direction: Literal["x", "y"] = Field(
        default="x", description="Axis along which scan planes are stepped"
    )


class GcodeOptions(BaseModel):
    """Feeds and clearance height used by the G‑code serializer."""

    feed: float = Field(..., gt=0.0, description="Cutting feed rate (units/min)")
    plunge: float = Field(..., gt=0.0, description="Plunge feed rate (units/min)")
    safeZ: float = Field(..., description="Retract height between paths")


class GcodeRequest(BaseModel):
    """Request to serialise finished polylines into G‑code."""

    command: Literal["gcode"] = "gcode"
    paths: List[List[float]] = Field(
        default_factory=list, description="Flat polylines (x, y, z, x, y, z …)"
    )
    options: GcodeOptions

    @field_validator("paths")
    @classmethod
    def _check_triplets(cls, paths: List[List[float]]) -> List[List[float]]:
        for i, path in enumerate(paths):
            if len(path) % 3 != 0:
                raise ValueError(f"path {i} length {len(path)} is not a multiple of 3")
        return paths


TaskRequest = Annotated[
    Union[WaterlineRequest, RasterRequest, GcodeRequest],
    Field(discriminator="command"),
]


class ProgressEvent(BaseModel):
    """Best‑effort progress notification for one phase of a task."""

    event: Literal["progress"] = "progress"
    phase: int = Field(..., ge=1, le=3, description="1 slicing, 2 shadow, 3 toolpaths")
    percent: int = Field(..., ge=0, le=100)


class LayerResult(BaseModel):
    """Toolpaths of one Z layer."""

    z: float
    toolpath: List[List[float]] = Field(default_factory=list)


class SliceDiagnosticsInfo(BaseModel):
    """How much of the sliced geometry survived assembly and filtering."""

    segments: int = 0
    contours: int = 0
    openContours: int = Field(0, description="Chains whose ends did not meet")
    discardedContours: int = Field(0, description="Contours dropped as degenerate")


class WaterlineResult(BaseModel):
    """Terminal success message of a waterline task."""

    event: Literal["result"] = "result"
    command: Literal["waterline"] = "waterline"
    layers: List[LayerResult] = Field(..., description="Layers ordered top Z to bottom Z")
    diagnostics: SliceDiagnosticsInfo = Field(default_factory=SliceDiagnosticsInfo)


class RasterResult(BaseModel):
    """Terminal success message of a raster task."""

    event: Literal["result"] = "result"
    command: Literal["raster"] = "raster"
    paths: List[List[float]] = Field(default_factory=list)


class GcodeResult(BaseModel):
    """Terminal success message of a G‑code task."""

    event: Literal["result"] = "result"
    command: Literal["gcode"] = "gcode"
    gcode: str


class ErrorEvent(BaseModel):
    """Terminal failure message.  No partial results accompany it."""

    event: Literal["error"] = "error"
    message: str


TerminalEvent = Union[WaterlineResult, RasterResult, GcodeResult, ErrorEvent]
TaskEvent = Union[ProgressEvent, WaterlineResult, RasterResult, GcodeResult, ErrorEvent]


class TaskRunResponse(BaseModel):
    """All messages produced by a synchronously executed task."""

    events: List[TaskEvent] = Field(..., description="Progress events followed by one terminal event")


class JobInfo(BaseModel):
    """Summary of a background job."""

    jobId: str = Field(..., description="Unique identifier for the job")
    command: str = Field(..., description="Task kind (waterline, raster, gcode)")
    status: str = Field(..., description="queued, running, done or failed")
    createdAt: datetime
    finishedAt: Optional[datetime] = None
    errorMessage: Optional[str] = None


class JobStatusResponse(JobInfo):
    """Detailed job state including the latest progress and final message."""

    progress: Optional[ProgressEvent] = None
    result: Optional[TerminalEvent] = None
