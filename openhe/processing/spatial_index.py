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
Uniform grid spatial index for proximity queries within one image.
"""

import math
from collections import defaultdict
from typing import Callable, Dict, Generic, Iterator, List, Tuple, TypeVar

T = TypeVar('T')

DEFAULT_GRID_CELL_SIZE = 100


def _default_position(item) -> Tuple[float, float]:
    return item.x, item.y


class SpatialGrid(Generic[T]):
    """Buckets items by ``(floor(x / cell_size), floor(y / cell_size))``.

    Queries return whole buckets; callers filter by true distance themselves.
    Items are never removed: a grid is built once per image and discarded.
    """

    def __init__(self, cell_size: float = DEFAULT_GRID_CELL_SIZE,
                 position: Callable[[T], Tuple[float, float]] = _default_position):
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = cell_size
        self._position = position
        self._cells: Dict[Tuple[int, int], List[T]] = defaultdict(list)
        self._items: List[T] = []

    def cell_of(self, x: float, y: float) -> Tuple[int, int]:
        """Grid cell containing the point (x, y)."""
        return math.floor(x / self.cell_size), math.floor(y / self.cell_size)

    def insert(self, item: T):
        """Add an item at its current position."""
        x, y = self._position(item)
        self._cells[self.cell_of(x, y)].append(item)
        self._items.append(item)

    def query_nearby(self, x: float, y: float, ring_radius: int) -> List[T]:
        """All items whose cell lies within ``ring_radius`` cells (Chebyshev) of (x, y).

        Cells are scanned column by column, ``dx`` then ``dy`` from
        ``-ring_radius`` to ``ring_radius``; items within a cell keep their
        insertion order.
        """
        cx, cy = self.cell_of(x, y)
        result: List[T] = []
        for dx in range(-ring_radius, ring_radius + 1):
            for dy in range(-ring_radius, ring_radius + 1):
                bucket = self._cells.get((cx + dx, cy + dy))
                if bucket:
                    result.extend(bucket)
        return result

    def all(self) -> List[T]:
        """Every inserted item in insertion order."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)
