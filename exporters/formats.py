"""
Format serializers.

Each renderer takes an already preprocessed ExportFormation and returns the
file body. Renderers never touch the filesystem.
"""

import json
import re
from datetime import datetime
from typing import Dict, List, NamedTuple
import pandas as pd
from core.exceptions import ExportError
from schemas.export import ExportFormat, ExportFormation, ExportOptions

DEFAULT_COLOR = "#00FF00"
DEFAULT_BRIGHTNESS = 1.0
DSS_FRAME_RATE = 25

CSV_COLUMNS = ["time", "drone_id", "x", "y", "z"]
COLOR_COLUMNS = ["color", "brightness"]


class Rendered(NamedTuple):
    content: bytes
    media_type: str
    extension: str


def safe_file_stem(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", name)


def _drone_ids(formation: ExportFormation) -> List[int]:
    return sorted({p.drone_id for frame in formation.frames for p in frame.positions})


# --------------------------------------------------
# Tabular
# --------------------------------------------------
def render_csv(formation: ExportFormation, options: ExportOptions) -> str:
    """``time,drone_id,x,y,z[,color,brightness]`` rows, 3 decimals"""
    rows = []
    for frame in formation.frames:
        for pos in frame.positions:
            row = {"time": frame.time, "drone_id": pos.drone_id, "x": pos.x, "y": pos.y, "z": pos.z}
            if options.include_colors:
                row["color"] = pos.color or DEFAULT_COLOR
                row["brightness"] = pos.brightness if pos.brightness is not None else DEFAULT_BRIGHTNESS
            rows.append(row)

    columns = CSV_COLUMNS + (COLOR_COLUMNS if options.include_colors else [])
    df = pd.DataFrame(rows, columns=columns)
    return df.to_csv(index=False, float_format="%.3f", lineterminator="\n")


# --------------------------------------------------
# Structured JSON variants
# --------------------------------------------------
def render_json(formation: ExportFormation, options: ExportOptions) -> str:
    payload = {
        "formation": {
            **formation.model_dump(mode="json"),
            "exportOptions": options.model_dump(mode="json"),
            "exportedAt": datetime.utcnow().isoformat(),
        }
    }
    return json.dumps(payload, indent=2)


def render_skybrush(formation: ExportFormation, options: ExportOptions) -> str:
    """Skybrush show: one keyframe track per drone"""
    keyframes: Dict[int, list] = {drone_id: [] for drone_id in _drone_ids(formation)}
    for frame in formation.frames:
        for pos in frame.positions:
            keyframes[pos.drone_id].append({
                "time": frame.time,
                "position": {"x": pos.x, "y": pos.y, "z": pos.z},
                "color": pos.color or DEFAULT_COLOR,
                "brightness": pos.brightness if pos.brightness is not None else DEFAULT_BRIGHTNESS,
            })
    tracks = [{"droneId": drone_id, "keyframes": points} for drone_id, points in keyframes.items()]

    payload = {
        "version": "1.0",
        "meta": {
            "title": formation.name,
            "description": formation.description,
            "author": formation.creator or "Unknown",
            "duration": formation.duration,
            "droneCount": formation.drone_count,
            "fps": options.frame_rate,
        },
        "environment": {
            "coordinateSystem": options.coordinate_system.value,
            "origin": {"lat": 0, "lon": 0, "alt": 0},
        },
        "drones": [
            {"id": drone_id, "name": f"Drone {drone_id + 1}", "type": "generic"}
            for drone_id in _drone_ids(formation)
        ],
        "show": {"tracks": tracks},
    }
    return json.dumps(payload, indent=2)


def render_dss(formation: ExportFormation, options: ExportOptions) -> str:
    """Drone show software: per-drone trajectories of ``{t,x,y,z,color}``"""
    trajectories: Dict[int, list] = {drone_id: [] for drone_id in _drone_ids(formation)}
    for frame in formation.frames:
        for pos in frame.positions:
            trajectories[pos.drone_id].append({
                "t": frame.time,
                "x": pos.x,
                "y": pos.y,
                "z": pos.z,
                "color": pos.color or DEFAULT_COLOR,
            })

    frame_rate = options.frame_rate if "frame_rate" in options.model_fields_set else DSS_FRAME_RATE
    payload = {
        "show": {
            "name": formation.name,
            "description": formation.description,
            "duration": formation.duration,
            "droneCount": formation.drone_count,
            "frameRate": frame_rate,
        },
        "drones": [{"id": drone_id, "trajectory": points} for drone_id, points in trajectories.items()],
        "metadata": formation.metadata,
    }
    return json.dumps(payload, indent=2)


# --------------------------------------------------
# Blender
# --------------------------------------------------
BLENDER_SCRIPT = '''import bpy
import csv
import os

# Formation: {name}
CSV_FILE = os.path.join(os.path.dirname(bpy.data.filepath or __file__), {csv_name!r})
FPS = {fps}
DURATION = {duration}


def hex_to_rgb(value):
    value = value.lstrip("#")
    if len(value) != 6:
        return (0.0, 1.0, 0.0, 1.0)
    return tuple(int(value[i:i + 2], 16) / 255 for i in (0, 2, 4)) + (1.0,)


scene = bpy.context.scene
scene.render.fps = FPS
scene.frame_start = 1
scene.frame_end = max(1, int(DURATION * FPS))

collection = bpy.data.collections.new({collection!r})
scene.collection.children.link(collection)
drones = {{}}

with open(CSV_FILE, newline="") as handle:
    for row in csv.DictReader(handle):
        drone_id = int(row["drone_id"])
        drone = drones.get(drone_id)
        if drone is None:
            drone = bpy.data.objects.new("Drone_%03d" % drone_id, None)
            drone.empty_display_type = "SPHERE"
            drone.empty_display_size = 0.1
            collection.objects.link(drone)
            drones[drone_id] = drone

        frame = int(round(float(row["time"]) * FPS)) + 1
        drone.location = (float(row["x"]), float(row["y"]), float(row["z"]))
        drone.keyframe_insert(data_path="location", frame=frame)
        if row.get("color"):
            drone.color = hex_to_rgb(row["color"])
            drone.keyframe_insert(data_path="color", frame=frame)

scene.frame_set(1)
print("Formation %s: %d drones, %d frames" % ({name!r}, len(drones), scene.frame_end))
'''


def blender_data_file_name(formation: ExportFormation) -> str:
    return f"{safe_file_stem(formation.name)}_data.csv"


def render_blender(formation: ExportFormation, options: ExportOptions) -> str:
    """Blender script animating one empty per drone from the companion CSV"""
    return BLENDER_SCRIPT.format(
        name=formation.name,
        csv_name=blender_data_file_name(formation),
        fps=options.frame_rate,
        duration=formation.duration,
        collection=f"{formation.name}_Drones",
    )


RENDERERS: Dict[ExportFormat, tuple] = {
    ExportFormat.CSV: (render_csv, "text/csv", ".csv"),
    ExportFormat.JSON: (render_json, "application/json", ".json"),
    ExportFormat.SKYBRUSH: (render_skybrush, "application/json", ".skyc"),
    ExportFormat.DSS: (render_dss, "application/json", ".dss"),
    ExportFormat.BLENDER: (render_blender, "text/x-python", "_blender.py"),
}


def render(formation: ExportFormation, fmt: ExportFormat, options: ExportOptions) -> Rendered:
    """
    Serialize a formation.

    Raises:
        ExportError: For an unknown format
    """
    try:
        renderer, media_type, extension = RENDERERS[ExportFormat(fmt)]
    except (KeyError, ValueError) as e:
        raise ExportError(
            f"Unsupported export format: {fmt}",
            context={"format": str(fmt)},
            original_exception=e
        )

    return Rendered(renderer(formation, options).encode("utf-8"), media_type, extension)
