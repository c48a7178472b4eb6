from .exporter import DatasetExporter, export_records

__all__ = ["DatasetExporter", "export_records"]
