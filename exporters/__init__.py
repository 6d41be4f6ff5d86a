"""
Formation export to show-control and 3D tooling formats.

Modules:
    transforms: Coordinate conversion, scaling and recentring
    converter: Stored formation payload to time-indexed frames
    formats: Serializers for csv, json, skybrush, dss and blender
    exporter: FormationExporter, the entry point returning ExportResult

Usage:
    from exporters.exporter import FormationExporter
"""
