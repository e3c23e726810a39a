"""
OpenHE modular package.
"""

# Re-export common types for convenience
from .config import MeasurementConfig, parse_config  # noqa: F401
from .data.objects import ObjectType, SegmentedObject  # noqa: F401
