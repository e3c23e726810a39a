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
Ordering, per-object measurement rows and group averages for one image.
"""

from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

import pandas as pd

from openhe.config import MeasurementConfig
from openhe.data.objects import (
    BASE_CHANNEL,
    STAIN_CHANNELS,
    Category,
    IntensityStats,
    ObjectType,
    SegmentedObject,
)
from openhe.data.table_loader import INTENSITY_COLUMNS, intensity_column
from openhe.processing import geometry
from openhe.processing.relationships import RelationshipCalculator, RelationshipRecord

RELATIONSHIP_COLUMNS = [
    "Vessel Distance",
    "Closest Vessel",
    "Neighbor Count",
    "Closest Neighbor Distance",
    "Closest Neighbor",
]

GEOMETRY_COLUMNS = [
    "Area", "X", "Y", "XM", "YM", "Perim.", "BX", "BY", "Width", "Height",
    "Major", "Minor", "Angle", "Circ.", "IntDen",
    "Feret", "FeretX", "FeretY", "FeretAngle", "MinFeret",
    "AR", "Round", "Solidity",
]

TEXT_COLUMNS = ("ROI", "Closest Vessel", "Closest Neighbor")

# (type, category) -> group name, in output order
GROUPS = OrderedDict([
    ((ObjectType.NUCLEUS, Category.CENTRAL), "Central Nuclei"),
    ((ObjectType.NUCLEUS, Category.BORDER), "Border Nuclei"),
    ((ObjectType.NUCLEUS, Category.ALL), "All Nuclei"),
    ((ObjectType.CELL, Category.CENTRAL), "Central Cells"),
    ((ObjectType.CELL, Category.BORDER), "Border Cells"),
    ((ObjectType.CELL, Category.ALL), "All Cells"),
    ((ObjectType.CYTOPLASM, Category.CENTRAL), "Central Cytoplasms"),
    ((ObjectType.CYTOPLASM, Category.BORDER), "Border Cytoplasms"),
    ((ObjectType.CYTOPLASM, Category.ALL), "All Cytoplasms"),
    ((ObjectType.VESSEL, Category.CENTRAL), "Central Vessels"),
    ((ObjectType.VESSEL, Category.BORDER), "Border Vessels"),
    ((ObjectType.VESSEL, Category.ALL), "All Vessels"),
])

_BUCKET_RANK = {ObjectType.VESSEL: 0, ObjectType.LEGACY_BORDER: 1}
_TYPE_RANK = {ObjectType.NUCLEUS: 0, ObjectType.CYTOPLASM: 1, ObjectType.CELL: 2}


def sort_key(obj: SegmentedObject):
    """Output order: vessels, then legacy border objects, then the rest by number.

    Within the last bucket equal numbers are ordered Nucleus, Cytoplasm,
    Cell, then any other type. Objects without a number go last in their
    bucket, ordered by the same type rank; a stable sort keeps objects of
    one type in encounter order.
    """
    number_missing = obj.number is None
    return (
        _BUCKET_RANK.get(obj.object_type, 2),
        number_missing,
        0 if number_missing else obj.number,
        _TYPE_RANK.get(obj.object_type, len(_TYPE_RANK)),
        1 if obj.border else 0,
    )


def sort_objects(objects: Sequence[SegmentedObject]) -> List[SegmentedObject]:
    """Deterministic, stable ordering of one image's objects."""
    return sorted(objects, key=sort_key)


def channels_present(objects: Sequence[SegmentedObject]) -> List[str]:
    """Channels to report: the base channel always, stains when any object has them."""
    channels = [BASE_CHANNEL]
    for stain in STAIN_CHANNELS:
        if any(stain in obj.intensities for obj in objects):
            channels.append(stain)
    return channels


def measurement_columns(channels: Sequence[str]) -> List[str]:
    columns = ["ROI"] + RELATIONSHIP_COLUMNS + GEOMETRY_COLUMNS
    for channel in channels:
        columns.extend(intensity_column(channel, stat) for stat in INTENSITY_COLUMNS)
    return columns


def _absent_to_nan(value: Optional[float]) -> float:
    return float('nan') if value is None else float(value)


def _hull_area(obj: SegmentedObject) -> float:
    if obj.boundary is not None:
        return geometry.convex_hull_area(obj.boundary)
    return obj.convex_hull_area


def measurement_row(obj: SegmentedObject, record: RelationshipRecord,
                    channels: Sequence[str] = (BASE_CHANNEL,)) -> Dict[str, object]:
    """One output row: identifier, relationships, geometry, shape and intensities.

    Shape descriptors are derived here, per object.
    """
    base = obj.intensities.get(BASE_CHANNEL, IntensityStats())

    row: Dict[str, object] = OrderedDict()
    row["ROI"] = obj.identifier
    row["Vessel Distance"] = _absent_to_nan(record.vessel_distance)
    row["Closest Vessel"] = record.closest_vessel
    row["Neighbor Count"] = record.neighbor_count
    row["Closest Neighbor Distance"] = _absent_to_nan(record.closest_neighbor_distance)
    row["Closest Neighbor"] = record.closest_neighbor

    row["Area"] = obj.area
    row["X"] = obj.x
    row["Y"] = obj.y
    row["XM"] = obj.x_mass
    row["YM"] = obj.y_mass
    row["Perim."] = obj.perimeter
    row["BX"] = obj.bx
    row["BY"] = obj.by
    row["Width"] = obj.width
    row["Height"] = obj.height
    row["Major"] = obj.major
    row["Minor"] = obj.minor
    row["Angle"] = obj.angle
    row["Circ."] = geometry.circularity(obj.area, obj.perimeter)
    row["IntDen"] = obj.area * base.mean
    row["Feret"] = obj.feret
    row["FeretX"] = obj.feret_x
    row["FeretY"] = obj.feret_y
    row["FeretAngle"] = obj.feret_angle
    row["MinFeret"] = obj.min_feret
    row["AR"] = geometry.aspect_ratio(obj.major, obj.minor)
    row["Round"] = geometry.roundness(obj.area, obj.major)
    row["Solidity"] = geometry.solidity(obj.area, _hull_area(obj))

    for channel in channels:
        stats = obj.intensities.get(channel, IntensityStats())
        for stat, attr in INTENSITY_COLUMNS.items():
            row[intensity_column(channel, stat)] = getattr(stats, attr)

    return row


def build_measurement_table(objects: Sequence[SegmentedObject],
                            calculator: RelationshipCalculator) -> pd.DataFrame:
    """Per-object table in output order.

    Args:
        objects: Objects already in output order (see ``sort_objects``)
        calculator: Relationship calculator for the same image

    Returns:
        DataFrame with one row per object; text columns hold None when absent
    """
    channels = channels_present(objects)
    rows = [measurement_row(obj, calculator.relationships_for(obj), channels) for obj in objects]
    return pd.DataFrame(rows, columns=measurement_columns(channels))


def group_objects(objects: Sequence[SegmentedObject],
                  config: Optional[MeasurementConfig] = None) -> "OrderedDict[str, List[SegmentedObject]]":
    """Assign objects to the twelve (type x category) groups.

    Legacy ``Border_`` objects join the vessel groups. Border vessels are left
    out entirely when ``ignore_border_vessels`` is set. Objects of any other
    type belong to no group.
    """
    config = config or MeasurementConfig()
    groups: "OrderedDict[str, List[SegmentedObject]]" = OrderedDict(
        (name, []) for name in GROUPS.values()
    )

    for obj in objects:
        object_type = obj.object_type
        if object_type is ObjectType.LEGACY_BORDER:
            object_type = ObjectType.VESSEL
        elif object_type is ObjectType.VESSEL and config.ignore_border_vessels and obj.border:
            continue
        if (object_type, Category.ALL) not in GROUPS:
            continue
        groups[GROUPS[(object_type, obj.category)]].append(obj)
        groups[GROUPS[(object_type, Category.ALL)]].append(obj)

    return groups


def numeric_columns(table: pd.DataFrame) -> List[str]:
    return [col for col in table.columns if col not in TEXT_COLUMNS]


def compute_group_averages(table: pd.DataFrame,
                           objects: Sequence[SegmentedObject],
                           groups: Dict[str, List[SegmentedObject]]) -> pd.DataFrame:
    """Arithmetic mean of every numeric column for each non-empty group.

    Args:
        table: Per-object table whose rows correspond to ``objects``
        objects: Objects in table row order
        groups: Output of ``group_objects``

    Returns:
        DataFrame with ``Group``, ``Count`` and one mean per numeric column.
        Missing values are skipped column by column; a column with no values
        in a group averages to NaN.
    """
    columns = numeric_columns(table)
    numeric = table[columns].apply(pd.to_numeric, errors='coerce')
    row_of = {id(obj): i for i, obj in enumerate(objects)}

    rows = []
    for name, members in groups.items():
        if not members:
            continue
        positions = [row_of[id(obj)] for obj in members]
        means = numeric.iloc[positions].mean(axis=0, skipna=True)
        row = OrderedDict([("Group", name), ("Count", len(members))])
        for col in columns:
            row[col] = float(means[col])
        rows.append(row)

    return pd.DataFrame(rows, columns=["Group", "Count"] + columns)
