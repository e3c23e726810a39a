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
Nearest-vessel and nearest-neighbour relationships between segmented objects.

For each nucleus the calculator finds the closest vessel (centre to centre),
counts the nuclei whose centres lie within the neighbour radius, and finds the
closest of those measured border to border with the ellipse model in
``geometry``. Results are cached per image so cytoplasm and cell rows that
share a nucleus number reuse the nucleus result.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from openhe.config import MeasurementConfig
from openhe.data.objects import ObjectRegistry, ObjectType, SegmentedObject
from openhe.processing.geometry import center_distance, ellipse_border_distance

# Grid rings searched around an object before falling back to all vessels
VESSEL_RING_RADIUS = 2


@dataclass(frozen=True)
class RelationshipRecord:
    """Spatial relationship metrics for one object. ``None`` means absent."""
    vessel_distance: Optional[float] = None
    closest_vessel: Optional[str] = None
    neighbor_count: int = 0
    closest_neighbor_distance: Optional[float] = None
    closest_neighbor: Optional[str] = None


EMPTY_RECORD = RelationshipRecord()


def neighbor_ring_radius(neighbor_radius: float, grid_cell_size: float) -> int:
    """Number of grid rings needed to cover ``neighbor_radius``."""
    return int(math.floor(neighbor_radius / grid_cell_size)) + 1


def _has_position(obj: SegmentedObject) -> bool:
    return not (obj.x is None or obj.y is None or math.isnan(obj.x) or math.isnan(obj.y))


class RelationshipCalculator:
    """Computes and caches relationship records for one image.

    Not thread-safe; use one instance per image.
    """

    def __init__(self, registry: ObjectRegistry, config: Optional[MeasurementConfig] = None):
        self.registry = registry
        self.config = config or registry.config
        self._nucleus_cache: Dict[str, RelationshipRecord] = {}
        self._vessel_only_cache: Dict[str, RelationshipRecord] = {}

    def nearest_vessel(self, obj: SegmentedObject) -> Tuple[Optional[float], Optional[str]]:
        """Closest vessel to ``obj`` by centre distance.

        Searches the grid block around ``obj`` first and scans every vessel
        when that block is empty. Candidates named like ``obj`` are skipped.

        Returns:
            (distance, vessel identifier), or (None, None) without a candidate
        """
        grid = self.registry.vessel_grid
        if len(grid) == 0 or not _has_position(obj):
            return None, None

        candidates = grid.query_nearby(obj.x, obj.y, VESSEL_RING_RADIUS)
        if not candidates:
            print(f"[relationships] No nearby vessels for {obj.identifier}, "
                  f"searching all {len(grid)} vessels")
            candidates = grid.all()

        min_distance = math.inf
        closest: Optional[SegmentedObject] = None
        for vessel in candidates:
            if vessel.identifier == obj.identifier:
                continue
            distance = center_distance(obj.x, obj.y, vessel.x, vessel.y)
            if distance < min_distance:
                min_distance = distance
                closest = vessel

        if closest is None:
            return None, None
        return min_distance, closest.identifier

    def neighbors(self, nucleus: SegmentedObject) -> Tuple[int, Optional[float], Optional[str]]:
        """Neighbour count and closest neighbour (border distance) of a nucleus.

        Returns:
            (count, border distance to closest neighbour, its identifier);
            distance and identifier are None when the count is 0
        """
        if not _has_position(nucleus):
            return 0, None, None

        radius = self.config.neighbor_radius
        ring = neighbor_ring_radius(radius, self.config.grid_cell_size)
        candidates = self.registry.nucleus_grid.query_nearby(nucleus.x, nucleus.y, ring)

        count = 0
        min_border = math.inf
        closest: Optional[SegmentedObject] = None
        for other in candidates:
            if other.identifier == nucleus.identifier:
                continue
            distance = center_distance(nucleus.x, nucleus.y, other.x, other.y)
            if distance > radius:
                continue
            count += 1
            border = ellipse_border_distance(
                nucleus.x, nucleus.y, nucleus.major, nucleus.minor, nucleus.angle,
                other.x, other.y, other.major, other.minor, other.angle,
            )
            if border < min_border:
                min_border = border
                closest = other

        if closest is None:
            return count, None, None
        return count, min_border, closest.identifier

    def _nucleus_record(self, nucleus: SegmentedObject) -> RelationshipRecord:
        key = nucleus.identifier
        record = self._nucleus_cache.get(key)
        if record is None:
            vessel_distance, closest_vessel = self.nearest_vessel(nucleus)
            count, neighbor_distance, closest_neighbor = self.neighbors(nucleus)
            record = RelationshipRecord(
                vessel_distance=vessel_distance,
                closest_vessel=closest_vessel,
                neighbor_count=count,
                closest_neighbor_distance=neighbor_distance,
                closest_neighbor=closest_neighbor,
            )
            self._nucleus_cache[key] = record
        return record

    def _vessel_only_record(self, obj: SegmentedObject) -> RelationshipRecord:
        record = self._vessel_only_cache.get(obj.identifier)
        if record is None:
            vessel_distance, closest_vessel = self.nearest_vessel(obj)
            record = RelationshipRecord(vessel_distance=vessel_distance,
                                        closest_vessel=closest_vessel)
            self._vessel_only_cache[obj.identifier] = record
        return record

    def relationships_for(self, obj: SegmentedObject) -> RelationshipRecord:
        """Relationship record for any object type.

        Nuclei are computed once per identifier. Cytoplasm and cell objects
        take the record of the first nucleus with the same number, or an
        empty record when there is none. Every other type gets its nearest vessel only.
        """
        if obj.object_type is ObjectType.NUCLEUS:
            return self._nucleus_record(obj)

        if obj.object_type in (ObjectType.CYTOPLASM, ObjectType.CELL):
            if obj.number is None:
                return EMPTY_RECORD
            nucleus = self.registry.nucleus_for(obj.number)
            if nucleus is None:
                return EMPTY_RECORD
            return self._nucleus_record(nucleus)

        return self._vessel_only_record(obj)

    def compute_all(self) -> List[RelationshipRecord]:
        """Records for every registered object, in registry order."""
        records = [self.relationships_for(obj) for obj in self.registry.objects]
        print(f"[relationships] Computed relationships for {len(records)} objects "
              f"({len(self._nucleus_cache)} nuclei, {len(self.registry.vessel_grid)} vessels indexed)")
        return records
