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
Build ``SegmentedObject`` records from measurement tables.

Tables use the same column names as the per-object output (``ROI``,
``Area``, ``X``, ``Y``, ``Major``, ``Hema_Mean``, ...), so results written by
the segmentation step (or by this package) can be read back directly.
"""

import math
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from openhe.data.objects import (
    BASE_CHANNEL,
    STAIN_CHANNELS,
    IntensityStats,
    SegmentedObject,
)

IDENTIFIER_COLUMN = "ROI"

# Table column -> SegmentedObject attribute
GEOMETRY_COLUMNS = {
    "X": "x",
    "Y": "y",
    "Area": "area",
    "Perim.": "perimeter",
    "Major": "major",
    "Minor": "minor",
    "Angle": "angle",
    "XM": "x_mass",
    "YM": "y_mass",
    "BX": "bx",
    "BY": "by",
    "Width": "width",
    "Height": "height",
    "Feret": "feret",
    "FeretX": "feret_x",
    "FeretY": "feret_y",
    "FeretAngle": "feret_angle",
    "MinFeret": "min_feret",
    "ConvexHullArea": "convex_hull_area",
}

# Column suffix -> IntensityStats attribute
INTENSITY_COLUMNS = {
    "Mean": "mean",
    "StdDev": "std_dev",
    "Mode": "mode",
    "Min": "min",
    "Max": "max",
    "Median": "median",
    "Skew": "skewness",
    "Kurt": "kurtosis",
}


def intensity_column(channel: str, stat: str) -> str:
    """Column name for a statistic of a channel (``Mean``, ``Hema_Mean``)."""
    return stat if channel == BASE_CHANNEL else f"{channel}_{stat}"


def _to_float(value) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return float('nan')
    return value


def _to_bool(value) -> Optional[bool]:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "border")
    return bool(value)


def _channel_stats(row: pd.Series, channel: str) -> Optional[IntensityStats]:
    columns = {attr: intensity_column(channel, stat) for stat, attr in INTENSITY_COLUMNS.items()}
    if not any(col in row.index for col in columns.values()):
        return None
    values = {attr: _to_float(row[col]) if col in row.index else float('nan')
              for attr, col in columns.items()}
    if all(math.isnan(v) for v in values.values()):
        return None
    return IntensityStats(**values)


def load_objects(
    table: Union[pd.DataFrame, str, Path],
    boundaries: Optional[Dict[str, np.ndarray]] = None,
    sep: Optional[str] = None,
    decimal: str = ".",
) -> List[SegmentedObject]:
    """Create segmented objects from a DataFrame or CSV file.

    Args:
        table: DataFrame or path to a delimited file with an ``ROI`` column
        boundaries: Optional mapping of identifier to an (N, 2) boundary
            polygon, used for the convex hull
        sep: Field separator when reading a file (sniffed if None)
        decimal: Decimal separator when reading a file

    Returns:
        Objects in table order

    Raises:
        ValueError: If the identifier column is missing
    """
    if not isinstance(table, pd.DataFrame):
        table = pd.read_csv(table, sep=sep, engine="python" if sep is None else "c",
                            decimal=decimal, na_values=["N/A"])

    if IDENTIFIER_COLUMN not in table.columns:
        raise ValueError(f"Table has no '{IDENTIFIER_COLUMN}' column")

    boundaries = boundaries or {}
    objects: List[SegmentedObject] = []
    for _, row in table.iterrows():
        identifier = str(row[IDENTIFIER_COLUMN])
        kwargs = {attr: _to_float(row[col]) for col, attr in GEOMETRY_COLUMNS.items()
                  if col in table.columns}
        kwargs.setdefault("x", float('nan'))
        kwargs.setdefault("y", float('nan'))

        intensities = {}
        for channel in (BASE_CHANNEL,) + STAIN_CHANNELS:
            stats = _channel_stats(row, channel)
            if stats is not None:
                intensities[channel] = stats

        border = _to_bool(row["Border"]) if "Border" in table.columns else None
        boundary = boundaries.get(identifier)

        objects.append(SegmentedObject(
            identifier=identifier,
            intensities=intensities,
            border=border,
            boundary=np.asarray(boundary, dtype=np.float64) if boundary is not None else None,
            **kwargs,
        ))

    print(f"[table_loader] Loaded {len(objects)} objects")
    return objects
