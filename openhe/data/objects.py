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
Typed records for segmented objects and the per-image registry.

Identifiers follow ``Type_number[_Border]`` (``Nucleus_17``,
``Cell_17_Border``, ``Vessel_3``). They are parsed exactly once, when an
object is created, and the resulting type and number travel with the record.
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from openhe.config import MeasurementConfig
from openhe.processing.spatial_index import SpatialGrid


class ObjectType(Enum):
    NUCLEUS = "Nucleus"
    CYTOPLASM = "Cytoplasm"
    CELL = "Cell"
    VESSEL = "Vessel"
    # Older naming for border vessels ("Border_5")
    LEGACY_BORDER = "Border"
    OTHER = "Other"


class Category(Enum):
    CENTRAL = "Central"
    BORDER = "Border"
    ALL = "All"


BORDER_SUFFIX = "_Border"

BASE_CHANNEL = "Original"
STAIN_CHANNELS = ("Hema", "Eosin")

_PREFIXES = {t.value: t for t in ObjectType if t is not ObjectType.OTHER}
_NUMBER_RE = re.compile(r"^[0-9]+$")


@dataclass(frozen=True)
class ParsedIdentifier:
    """Result of parsing an identifier string."""
    object_type: ObjectType
    number: Optional[int]
    has_border_suffix: bool


def parse_identifier(name: str) -> ParsedIdentifier:
    """Split ``Type_number[_Border]`` into its parts.

    Unknown prefixes map to ``ObjectType.OTHER``; a number that is missing or
    not an integer gives ``number=None``.
    """
    name = str(name)
    has_border = BORDER_SUFFIX in name
    stem = name[:name.index(BORDER_SUFFIX)] if has_border else name

    prefix, sep, rest = stem.partition("_")
    object_type = _PREFIXES.get(prefix, ObjectType.OTHER) if sep else ObjectType.OTHER

    number = None
    if object_type is not ObjectType.OTHER and _NUMBER_RE.match(rest):
        number = int(rest)

    return ParsedIdentifier(object_type, number, has_border)


@dataclass
class IntensityStats:
    """Intensity statistics for one channel inside an object's outline."""
    mean: float = float('nan')
    std_dev: float = float('nan')
    mode: float = float('nan')
    min: float = float('nan')
    max: float = float('nan')
    median: float = float('nan')
    skewness: float = float('nan')
    kurtosis: float = float('nan')


@dataclass
class SegmentedObject:
    """One segmented region with its geometry and intensity statistics.

    ``object_type``, ``number`` and ``border`` are filled from the identifier
    when not given explicitly.
    """
    identifier: str
    x: float
    y: float
    area: float = float('nan')
    perimeter: float = float('nan')
    major: float = float('nan')
    minor: float = float('nan')
    angle: float = float('nan')
    x_mass: float = float('nan')
    y_mass: float = float('nan')
    bx: float = float('nan')
    by: float = float('nan')
    width: float = float('nan')
    height: float = float('nan')
    feret: float = float('nan')
    feret_x: float = float('nan')
    feret_y: float = float('nan')
    feret_angle: float = float('nan')
    min_feret: float = float('nan')
    convex_hull_area: float = float('nan')
    boundary: Optional[np.ndarray] = None
    intensities: Dict[str, IntensityStats] = field(default_factory=dict)
    border: Optional[bool] = None
    object_type: Optional[ObjectType] = None
    number: Optional[int] = None

    def __post_init__(self):
        parsed = parse_identifier(self.identifier)
        if self.object_type is None:
            self.object_type = parsed.object_type
        if self.number is None:
            self.number = parsed.number
        if self.border is None:
            self.border = parsed.has_border_suffix

    @property
    def category(self) -> Category:
        return Category.BORDER if self.border else Category.CENTRAL

    @property
    def cache_key(self):
        """Key shared by the nucleus/cytoplasm/cell triplet."""
        return self.number if self.number is not None else self.identifier

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        return self.bx, self.by, self.width, self.height


def _finite(value: float) -> bool:
    return value is not None and not math.isnan(value)


class ObjectRegistry:
    """All objects of one image, with lazily built spatial grids.

    The vessel grid excludes border vessels when ``ignore_border_vessels``
    is set. Objects without a finite centroid are kept but not indexed.
    """

    def __init__(self, objects: Sequence[SegmentedObject],
                 config: Optional[MeasurementConfig] = None):
        self.config = config or MeasurementConfig()
        self.objects: List[SegmentedObject] = list(objects)
        self._vessel_grid: Optional[SpatialGrid] = None
        self._nucleus_grid: Optional[SpatialGrid] = None
        self._nuclei_by_key: Optional[Dict] = None

    def of_type(self, object_type: ObjectType) -> List[SegmentedObject]:
        return [obj for obj in self.objects if obj.object_type is object_type]

    @property
    def nuclei(self) -> List[SegmentedObject]:
        return self.of_type(ObjectType.NUCLEUS)

    @property
    def vessels(self) -> List[SegmentedObject]:
        """Vessels eligible for distance search."""
        vessels = self.of_type(ObjectType.VESSEL)
        if self.config.ignore_border_vessels:
            vessels = [v for v in vessels if not v.border]
        return vessels

    def nucleus_for(self, key) -> Optional[SegmentedObject]:
        """First nucleus whose number (or identifier) equals ``key``."""
        if self._nuclei_by_key is None:
            self._nuclei_by_key = {}
            for nucleus in self.nuclei:
                self._nuclei_by_key.setdefault(nucleus.cache_key, nucleus)
        return self._nuclei_by_key.get(key)

    def _build_grid(self, members: List[SegmentedObject]) -> SpatialGrid:
        grid = SpatialGrid(self.config.grid_cell_size)
        for obj in members:
            if _finite(obj.x) and _finite(obj.y):
                grid.insert(obj)
        return grid

    @property
    def vessel_grid(self) -> SpatialGrid:
        if self._vessel_grid is None:
            self._vessel_grid = self._build_grid(self.vessels)
        return self._vessel_grid

    @property
    def nucleus_grid(self) -> SpatialGrid:
        if self._nucleus_grid is None:
            self._nucleus_grid = self._build_grid(self.nuclei)
        return self._nucleus_grid

    def counts(self) -> Dict[str, int]:
        """Number of objects per type, for logging."""
        counts: Dict[str, int] = {}
        for obj in self.objects:
            counts[obj.object_type.value] = counts.get(obj.object_type.value, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self.objects)
