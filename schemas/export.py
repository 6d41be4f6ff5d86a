"""
Pydantic schemas for formation export
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
import enum


class ExportFormat(str, enum.Enum):
    """Supported output formats"""
    CSV = "csv"
    JSON = "json"
    SKYBRUSH = "skybrush"
    DSS = "dss"
    BLENDER = "blender"


class CoordinateSystem(str, enum.Enum):
    """Axis conventions. XYZ shares axes with ENU."""
    XYZ = "xyz"
    NED = "ned"
    ENU = "enu"


class DronePosition(BaseModel):
    drone_id: int
    x: float
    y: float
    z: float
    color: Optional[str] = None
    brightness: Optional[float] = None


class FormationFrame(BaseModel):
    time: float
    positions: List[DronePosition] = Field(default_factory=list)


class ExportFormation(BaseModel):
    """Time series of per-drone positions ready for serialization"""
    id: str
    name: str
    description: str = ""
    creator: Optional[str] = None
    frames: List[FormationFrame] = Field(default_factory=list)
    drone_count: int = 0
    duration: float = 0.0
    fps: float = 24.0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExportOptions(BaseModel):
    include_colors: bool = True
    frame_rate: int = Field(24, ge=1, le=240)
    coordinate_system: CoordinateSystem = CoordinateSystem.XYZ
    source_coordinate_system: CoordinateSystem = CoordinateSystem.XYZ
    scale_factor: float = Field(1.0, gt=0)
    center_origin: bool = False
    write_file: bool = False


class ExportRequest(BaseModel):
    """Request body for the export endpoint"""
    format: ExportFormat
    options: ExportOptions = Field(default_factory=ExportOptions)


class ExportResult(BaseModel):
    success: bool
    format: Optional[ExportFormat] = None
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    content: Optional[bytes] = None
    media_type: str = "application/octet-stream"
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
