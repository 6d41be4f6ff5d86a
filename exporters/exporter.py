"""
Formation export entry point.

``FormationExporter.export`` never raises: every failure comes back as an
``ExportResult`` with ``success=False`` and an error message.
"""

import asyncio
from pathlib import Path
from typing import Optional, Union
from models.formation import Formation
from schemas.export import ExportFormat, ExportFormation, ExportOptions, ExportResult
from scraper.analytics import AnalyticsSink, LoggingAnalyticsSink
from exporters.converter import to_export_formation
from exporters.formats import (
    blender_data_file_name,
    render,
    render_csv,
    safe_file_stem,
)
from exporters.transforms import preprocess
import logging

logger = logging.getLogger(__name__)


def _known(fmt) -> Optional[ExportFormat]:
    try:
        return ExportFormat(fmt)
    except ValueError:
        return None


class FormationExporter:
    """
    Converts formations to downstream file formats.

    Attributes:
        output_dir: Directory written to when ``options.write_file`` is set
    """

    def __init__(self, output_dir: Union[str, Path], analytics: Optional[AnalyticsSink] = None):
        self.output_dir = Path(output_dir)
        self.analytics = analytics or LoggingAnalyticsSink()

    async def export(
        self,
        formation: ExportFormation,
        fmt: ExportFormat,
        options: Optional[ExportOptions] = None,
    ) -> ExportResult:
        """
        Preprocess and serialize one formation.

        Args:
            formation: Frames to export
            fmt: Target format
            options: Coordinate system, scale, recentring and output options

        Returns:
            ExportResult with the file body, and its path when written
        """
        options = options or ExportOptions()

        try:
            fmt = ExportFormat(fmt)
            processed, rendered = await asyncio.to_thread(self._render_sync, formation, fmt, options)
            file_name = f"{safe_file_stem(formation.name)}{rendered.extension}"

            file_path = None
            if options.write_file:
                file_path = await self._write(file_name, rendered.content)
                if fmt == ExportFormat.BLENDER:
                    companion = render_csv(processed, options).encode("utf-8")
                    await self._write(blender_data_file_name(processed), companion)

        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            fmt_name = getattr(fmt, "value", fmt)
            logger.error(f"Export of formation {formation.id} to {fmt_name} failed: {message}")
            return ExportResult(success=False, format=_known(fmt), error=message)

        logger.info(f"Exported formation {formation.id} as {fmt.value} ({len(rendered.content)} bytes)")
        return ExportResult(
            success=True,
            format=fmt,
            file_name=file_name,
            file_path=str(file_path) if file_path else None,
            content=rendered.content,
            media_type=rendered.media_type,
            metadata={
                "file_size": len(rendered.content),
                "frame_count": len(processed.frames),
                "drone_count": processed.drone_count,
                "duration": processed.duration,
                "format": fmt.value,
                "synthetic": bool(formation.metadata.get("synthetic", False)),
            },
        )

    async def export_formation(
        self,
        formation: Formation,
        fmt: ExportFormat,
        options: Optional[ExportOptions] = None,
        user_id: Optional[str] = None,
    ) -> ExportResult:
        """Export a stored formation and record the export event"""
        try:
            export_formation = to_export_formation(formation)
        except Exception as e:
            logger.error(f"Could not convert formation {formation.id} for export: {e}")
            return ExportResult(success=False, format=_known(fmt), error=str(e))

        result = await self.export(export_formation, fmt, options)
        if result.success:
            await self.analytics.record_event(
                "formation_exported",
                "formation",
                entity_id=formation.id,
                user_id=user_id,
                metadata={key: result.metadata.get(key) for key in ("format", "file_size", "synthetic")},
            )
        return result

    @staticmethod
    def _render_sync(formation: ExportFormation, fmt: ExportFormat, options: ExportOptions):
        """CPU-bound part of an export, run off the event loop"""
        processed = preprocess(formation, options)
        return processed, render(processed, fmt, options)

    async def _write(self, file_name: str, content: bytes) -> Path:
        path = self.output_dir / file_name
        await asyncio.to_thread(self._write_sync, path, content)
        return path

    @staticmethod
    def _write_sync(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
