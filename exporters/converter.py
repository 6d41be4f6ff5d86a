"""
Conversion of stored formations into exportable frame sequences
"""

import json
import math
from typing import Any, Dict, List, Optional
from models.formation import Formation
from schemas.export import DronePosition, ExportFormation, FormationFrame
import logging

logger = logging.getLogger(__name__)

DEFAULT_FPS = 24.0
PREVIEW_DURATION = 30.0
PREVIEW_DRONES = 10
PREVIEW_COLOR = "#00FF88"


def _load_payload(data: Any) -> Any:
    if isinstance(data, (bytes, str)):
        try:
            return json.loads(data)
        except ValueError:
            logger.warning("Stored formation_data is not valid JSON")
            return None
    return data


def _drone_id(raw: Dict[str, Any], index: int) -> int:
    """Numeric id from the payload, else the position index"""
    value = raw.get("drone_id", raw.get("droneId", raw.get("id")))
    try:
        return int(value)
    except (TypeError, ValueError):
        return index


def _parse_position(raw: Any, index: int) -> Optional[DronePosition]:
    if isinstance(raw, dict):
        try:
            return DronePosition(
                drone_id=_drone_id(raw, index),
                x=float(raw["x"]),
                y=float(raw["y"]),
                z=float(raw["z"]),
                color=raw.get("color"),
                brightness=raw.get("brightness"),
            )
        except (KeyError, TypeError, ValueError):
            return None

    if isinstance(raw, (list, tuple)) and len(raw) >= 3:
        try:
            return DronePosition(drone_id=index, x=float(raw[0]), y=float(raw[1]), z=float(raw[2]))
        except (TypeError, ValueError):
            return None

    return None


def _parse_frame(raw: Any, index: int, fps: float) -> Optional[FormationFrame]:
    if isinstance(raw, dict):
        points = raw.get("positions", raw.get("drones", raw.get("points")))
        time = raw.get("time", raw.get("t", raw.get("timestamp")))
    else:
        points, time = raw, None

    if not isinstance(points, list):
        return None

    positions = [p for p in (_parse_position(point, i) for i, point in enumerate(points)) if p]
    if not positions:
        return None

    try:
        time = float(time) if time is not None else index / fps
    except (TypeError, ValueError):
        time = index / fps
    return FormationFrame(time=time, positions=positions)


def frames_from_data(data: Any, fps: float = DEFAULT_FPS) -> List[FormationFrame]:
    """
    Read frames from a stored choreography payload.

    Accepted shapes:
    - ``{"frames": [frame, ...]}``
    - ``[frame, ...]``
    - ``{"coordinates": [...]}``, either a list of frames or a single
      list of positions treated as one frame at t=0

    A frame is ``{"time", "positions": [...]}`` or a bare list of positions;
    a position is ``{"x", "y", "z", ...}`` or ``[x, y, z]``.
    """
    data = _load_payload(data)

    if isinstance(data, dict):
        if isinstance(data.get("fps"), (int, float)) and data["fps"] > 0:
            fps = float(data["fps"])
        raw_frames = data.get("frames")
        if raw_frames is None and isinstance(data.get("coordinates"), list):
            coordinates = data["coordinates"]
            if coordinates and _parse_position(coordinates[0], 0) is not None:
                raw_frames = [{"time": 0.0, "positions": coordinates}]
            else:
                raw_frames = coordinates
    elif isinstance(data, list):
        raw_frames = data
    else:
        raw_frames = None

    if not isinstance(raw_frames, list):
        return []

    frames = [f for f in (_parse_frame(raw, i, fps) for i, raw in enumerate(raw_frames)) if f]
    return sorted(frames, key=lambda frame: frame.time)


def synthetic_frames(drone_count: int, duration: float, fps: float = DEFAULT_FPS) -> List[FormationFrame]:
    """Circular preview for formations stored without choreography"""
    frame_count = math.ceil(duration * fps)
    frames = []

    for f in range(frame_count):
        time = (f / frame_count) * duration
        radius = 10 + math.sin(time * 0.5) * 5
        positions = []
        for d in range(drone_count):
            angle = (d / drone_count) * math.pi * 2
            positions.append(DronePosition(
                drone_id=d,
                x=math.cos(angle) * radius,
                y=math.sin(angle) * radius,
                z=math.sin(time * 0.3 + d * 0.1) * 5,
                color=PREVIEW_COLOR,
            ))
        frames.append(FormationFrame(time=time, positions=positions))

    return frames


def to_export_formation(formation: Formation) -> ExportFormation:
    """Stored Formation to ExportFormation, falling back to a synthetic preview"""
    frames = frames_from_data(formation.formation_data)
    synthetic = not frames

    if synthetic:
        duration = formation.duration or PREVIEW_DURATION
        drone_count = formation.drone_count or PREVIEW_DRONES
        frames = synthetic_frames(drone_count, duration)
        logger.info(f"Formation {formation.id} has no choreography, exporting synthetic preview")
    else:
        drone_count = formation.drone_count or len({p.drone_id for f in frames for p in f.positions})
        duration = formation.duration or frames[-1].time

    metadata: Dict[str, Any] = {
        "creator": formation.creator,
        "created_at": formation.created_at.isoformat() if formation.created_at else None,
        "tags": formation.tag_list,
        "source": formation.source,
        "source_id": formation.source_id,
        "synthetic": synthetic,
    }

    return ExportFormation(
        id=formation.id,
        name=formation.name,
        description=formation.description or "",
        creator=formation.creator,
        frames=frames,
        drone_count=drone_count,
        duration=duration,
        fps=DEFAULT_FPS,
        metadata=metadata,
    )
