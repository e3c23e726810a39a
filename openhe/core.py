# SPDX-License-Identifier: GPL-3.0-or-later
#
# OpenHE – Spatial measurement toolkit for segmented H&E tissue
#
# Copyright (C) 2025 University of Southern California
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Core operations for OpenHE.

Each call works on the objects of a single image: it builds a fresh registry,
spatial index and relationship cache, so images can be processed one after
another (or in separate processes) without shared state.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from openhe.config import MeasurementConfig, parse_config
from openhe.data.objects import ObjectRegistry, SegmentedObject
from openhe.data.table_loader import load_objects
from openhe.processing.aggregation import (
    build_measurement_table,
    compute_group_averages,
    group_objects,
    sort_objects,
)
from openhe.processing.categorize import mark_border_objects
from openhe.processing.export_worker import OutputLocale, write_table
from openhe.processing.relationships import RelationshipCalculator, RelationshipRecord
from openhe.utils.logger import get_logger

__all__ = [
    "MeasurementResult",
    "detect_border_objects",
    "load_objects",
    "measure_objects",
    "parse_config",
    "process_image",
    "save_measurements",
]


@dataclass
class MeasurementResult:
    """Measurements of one image.

    Attributes:
        objects: Objects in output order
        table: Per-object table, rows matching ``objects``
        averages: Group averages table
        relationships: Relationship record per identifier
    """
    objects: List[SegmentedObject]
    table: pd.DataFrame
    averages: pd.DataFrame
    relationships: Dict[str, RelationshipRecord] = field(default_factory=dict)


def measure_objects(
    objects: Sequence[SegmentedObject],
    config: Optional[Union[MeasurementConfig, Dict, str]] = None,
    image_name: Optional[str] = None,
) -> MeasurementResult:
    """Compute relationships, the ordered per-object table and group averages.

    Args:
        objects: All segmented objects of one image
        config: Measurement settings (anything ``parse_config`` accepts)
        image_name: Name recorded in the methods log

    Returns:
        MeasurementResult
    """
    config = parse_config(config)
    registry = ObjectRegistry(objects, config)
    calculator = RelationshipCalculator(registry, config)

    print(f"[core] Measuring {len(registry)} objects "
          f"(neighbor radius {config.neighbor_radius}, grid cell {config.grid_cell_size})")

    ordered = sort_objects(registry.objects)
    table = build_measurement_table(ordered, calculator)
    groups = group_objects(ordered, config)
    averages = compute_group_averages(table, ordered, groups)

    relationships = {obj.identifier: calculator.relationships_for(obj) for obj in ordered}

    get_logger().log_measurement(
        parameters={
            "neighbor_radius": config.neighbor_radius,
            "grid_cell_size": config.grid_cell_size,
            "ignore_border_vessels": config.ignore_border_vessels,
        },
        object_counts=registry.counts(),
        images=[image_name] if image_name else [],
    )

    return MeasurementResult(objects=ordered, table=table, averages=averages,
                             relationships=relationships)


def save_measurements(
    result: MeasurementResult,
    base_name: str,
    config: Optional[Union[MeasurementConfig, Dict, str]] = None,
    output_dir: Optional[Union[str, Path]] = None,
) -> Dict[str, Path]:
    """Write ``individual/<base>_data.csv`` and ``averages/<base>_averages.csv``.

    Args:
        result: Output of ``measure_objects``
        base_name: Image base name used for the file names
        config: Measurement settings; separators and ``save_averages`` are read
        output_dir: Overrides ``config.output_dir`` (default: home directory)

    Returns:
        Mapping of ``"individual"``/``"averages"`` to written paths

    Raises:
        OSError: If a destination cannot be written
    """
    config = parse_config(config)
    locale = OutputLocale.from_config(config)
    root = Path(output_dir or config.output_dir or Path.home())

    written: Dict[str, Path] = {}
    tables = [("individual", result.table, root / "individual" / f"{base_name}_data.csv")]
    if config.save_averages:
        tables.append(("averages", result.averages, root / "averages" / f"{base_name}_averages.csv"))

    logger = get_logger()
    for kind, table, path in tables:
        written[kind] = write_table(table, path, locale)
        logger.log_export(
            export_type=kind,
            parameters={
                "field_separator": locale.field_separator,
                "decimal_separator": locale.decimal_separator,
                "rows": len(table),
            },
            output_path=str(path),
            images=[base_name],
        )

    return written


def process_image(
    objects: Sequence[SegmentedObject],
    base_name: str,
    config: Optional[Union[MeasurementConfig, Dict, str]] = None,
    output_dir: Optional[Union[str, Path]] = None,
) -> Dict[str, Path]:
    """Measure one image's objects and write its tables."""
    config = parse_config(config)
    result = measure_objects(objects, config, image_name=base_name)
    return save_measurements(result, base_name, config, output_dir)


def detect_border_objects(
    objects: Sequence[SegmentedObject],
    image_width: float,
    image_height: float,
    margin: float = 1,
    image_name: Optional[str] = None,
) -> List[SegmentedObject]:
    """Flag objects touching the image edge (see ``mark_border_objects``)."""
    marked = mark_border_objects(objects, image_width, image_height, margin)
    get_logger().log_border_detection(
        parameters={"image_width": image_width, "image_height": image_height, "margin": margin},
        border_count=sum(1 for obj in marked if obj.border),
        images=[image_name] if image_name else [],
    )
    return marked
