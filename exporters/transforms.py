"""
Pure position transforms applied before serialization.

Order is fixed: coordinate conversion, then scale, then recentring.
Identity options return positions numerically unchanged.
"""

from typing import List, Optional, Tuple
from schemas.export import (
    CoordinateSystem,
    DronePosition,
    ExportFormation,
    ExportOptions,
    FormationFrame,
)

Bounds = Tuple[Tuple[float, float, float], Tuple[float, float, float]]


def _swap_ned(x: float, y: float, z: float) -> Tuple[float, float, float]:
    # NED <-> ENU/XYZ; the mapping is its own inverse
    return y, x, -z


def convert_position(
    position: DronePosition,
    source: CoordinateSystem,
    target: CoordinateSystem,
) -> DronePosition:
    """Re-express one position in another axis convention"""
    source, target = CoordinateSystem(source), CoordinateSystem(target)
    if source == target:
        return position

    x, y, z = position.x, position.y, position.z
    if source == CoordinateSystem.NED:
        x, y, z = _swap_ned(x, y, z)
    if target == CoordinateSystem.NED:
        x, y, z = _swap_ned(x, y, z)

    return position.model_copy(update={"x": x, "y": y, "z": z})


def convert_frames(
    frames: List[FormationFrame],
    source: CoordinateSystem,
    target: CoordinateSystem,
) -> List[FormationFrame]:
    if CoordinateSystem(source) == CoordinateSystem(target):
        return frames
    return [
        frame.model_copy(update={
            "positions": [convert_position(p, source, target) for p in frame.positions]
        })
        for frame in frames
    ]


def scale_frames(frames: List[FormationFrame], factor: float) -> List[FormationFrame]:
    if factor == 1:
        return frames
    return [
        frame.model_copy(update={
            "positions": [
                p.model_copy(update={"x": p.x * factor, "y": p.y * factor, "z": p.z * factor})
                for p in frame.positions
            ]
        })
        for frame in frames
    ]


def bounding_box(frames: List[FormationFrame]) -> Optional[Bounds]:
    """Axis-aligned bounds over every position of every frame"""
    positions = [p for frame in frames for p in frame.positions]
    if not positions:
        return None

    lower = (
        min(p.x for p in positions),
        min(p.y for p in positions),
        min(p.z for p in positions),
    )
    upper = (
        max(p.x for p in positions),
        max(p.y for p in positions),
        max(p.z for p in positions),
    )
    return lower, upper


def center_frames(frames: List[FormationFrame]) -> List[FormationFrame]:
    """Translate every position so the bounding box midpoint is the origin"""
    bounds = bounding_box(frames)
    if bounds is None:
        return frames

    (min_x, min_y, min_z), (max_x, max_y, max_z) = bounds
    cx, cy, cz = (min_x + max_x) / 2, (min_y + max_y) / 2, (min_z + max_z) / 2

    return [
        frame.model_copy(update={
            "positions": [
                p.model_copy(update={"x": p.x - cx, "y": p.y - cy, "z": p.z - cz})
                for p in frame.positions
            ]
        })
        for frame in frames
    ]


def preprocess(formation: ExportFormation, options: ExportOptions) -> ExportFormation:
    """Apply conversion, scale and recentring to a copy of the formation"""
    frames = convert_frames(
        formation.frames,
        options.source_coordinate_system,
        options.coordinate_system,
    )
    frames = scale_frames(frames, options.scale_factor)
    if options.center_origin:
        frames = center_frames(frames)

    return formation.model_copy(update={"frames": frames})
