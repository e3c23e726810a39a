"""
Methods logging for OpenHE.

Every measurement run and table export is appended to a JSON Lines file, so
the parameters behind each output table can be recovered later (for example
when writing the methods section of a paper).
"""

import os
import json
from datetime import datetime
from typing import Dict, Any, Optional, List
from pathlib import Path


class MethodsLogger:
    """
    Appends one structured JSON object per operation to a log file.
    """

    def __init__(self, log_file: Optional[str] = None):
        """
        Initialize the logger.

        Args:
            log_file: Path to log file. If None, uses ``logs/methods_log.jsonl``
                in the project root.
        """
        if log_file is None:
            # openhe/utils/logger.py -> project root
            project_root = Path(__file__).resolve().parent.parent.parent
            log_dir = project_root / "logs"
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = str(log_dir / "methods_log.jsonl")
        else:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        self.log_file = log_file
        self._ensure_log_file()

    def _ensure_log_file(self):
        """Write a metadata entry when the log file is new."""
        if not os.path.exists(self.log_file):
            with open(self.log_file, 'w') as f:
                metadata = {
                    "type": "log_metadata",
                    "timestamp": datetime.now().isoformat(),
                    "description": "OpenHE Methods Log - records all measurement operations",
                    "format": "JSON Lines (one JSON object per line)"
                }
                f.write(json.dumps(metadata) + "\n")

    def _write_entry(self, entry_type: str, operation: str, parameters: Dict[str, Any],
                     images: Optional[List[str]] = None,
                     output_path: Optional[str] = None,
                     notes: Optional[str] = None):
        entry = {
            "timestamp": datetime.now().isoformat(),
            "type": entry_type,
            "operation": operation,
            "parameters": parameters,
            "images": images if images else [],
            "output_path": output_path,
            "notes": notes,
        }
        with open(self.log_file, 'a') as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def log_measurement(self, parameters: Dict[str, Any], object_counts: Dict[str, int],
                        **kwargs):
        """
        Log a relationship/aggregation run for one image.

        Args:
            parameters: Measurement settings (radius, grid size, ...)
            object_counts: Number of objects per type
            **kwargs: images, output_path, notes
        """
        params = parameters.copy()
        params["object_counts"] = object_counts
        self._write_entry(
            entry_type="measurement",
            operation="spatial_relationships",
            parameters=params,
            images=kwargs.get("images", []),
            output_path=kwargs.get("output_path"),
            notes=kwargs.get("notes"),
        )

    def log_border_detection(self, parameters: Dict[str, Any], border_count: int, **kwargs):
        """Log border marking of objects at the image edge."""
        params = parameters.copy()
        params["border_count"] = border_count
        self._write_entry(
            entry_type="categorization",
            operation="mark_border_objects",
            parameters=params,
            images=kwargs.get("images", []),
            notes=kwargs.get("notes"),
        )

    def log_export(self, export_type: str, parameters: Dict[str, Any],
                   output_path: str, **kwargs):
        """
        Log a table export.

        Args:
            export_type: "individual" or "averages"
            parameters: Export parameters (separators, row count)
            output_path: Path to the written file
            **kwargs: images, notes
        """
        params = parameters.copy()
        params["export_type"] = export_type
        self._write_entry(
            entry_type="export",
            operation="export_table",
            parameters=params,
            images=kwargs.get("images", []),
            output_path=output_path,
            notes=kwargs.get("notes"),
        )

    def get_log_file_path(self) -> str:
        """Get the path to the log file."""
        return self.log_file


# Global logger instance
_logger_instance: Optional[MethodsLogger] = None


def get_logger(log_file: Optional[str] = None) -> MethodsLogger:
    """
    Get or create the global logger instance.

    Args:
        log_file: Optional path to log file (only used on first call)
    """
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = MethodsLogger(log_file)
    return _logger_instance


def set_log_file(log_file: str):
    """
    Replace the global logger with one writing to ``log_file``.
    """
    global _logger_instance
    _logger_instance = MethodsLogger(log_file)
