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
Border detection and display colours.

This runs separately from the relationship computation: it only reads object
geometry and returns new data (re-labelled objects or a colour map).
"""

import dataclasses
import math
import re
from typing import Dict, List, Optional, Sequence, Tuple

from openhe.config import DEFAULT_COLORS
from openhe.data.objects import BORDER_SUFFIX, ObjectType, SegmentedObject

RGB = Tuple[int, int, int]

_HEX_COLOR = re.compile(r"^#[0-9a-f]{6}$")

NAMED_COLORS: Dict[str, RGB] = {
    "red": (255, 0, 0),
    "blue": (0, 0, 255),
    "green": (0, 255, 0),
    "yellow": (255, 255, 0),
    "magenta": (255, 0, 255),
    "cyan": (0, 255, 255),
    "white": (255, 255, 255),
    "black": (0, 0, 0),
    "gray": (128, 128, 128),
    "pink": (255, 175, 175),
}

_PALETTE_KEYS = {
    ObjectType.NUCLEUS: "nuclei",
    ObjectType.VESSEL: "vessels",
    ObjectType.LEGACY_BORDER: "vessels",
    ObjectType.CYTOPLASM: "cytoplasm",
    ObjectType.CELL: "cells",
}


def touches_border(bbox: Tuple[float, float, float, float], image_width: float,
                   image_height: float, margin: float = 1) -> bool:
    """True if a bounding box (x, y, w, h) lies within ``margin`` of any image edge."""
    x, y, w, h = bbox
    if any(v is None or math.isnan(v) for v in (x, y, w, h)):
        return False
    return (x <= margin
            or y <= margin
            or x + w >= image_width - margin
            or y + h >= image_height - margin)


def _as_border(obj: SegmentedObject) -> SegmentedObject:
    identifier = obj.identifier
    if BORDER_SUFFIX not in identifier:
        identifier = identifier + BORDER_SUFFIX
    return dataclasses.replace(obj, identifier=identifier, border=True)


def mark_border_objects(objects: Sequence[SegmentedObject], image_width: float,
                        image_height: float, margin: float = 1) -> List[SegmentedObject]:
    """Flag objects at the image edge as border objects.

    Vessels and cells are tested against their own bounding box. Nuclei and
    cytoplasm follow the cell with the same number. Flagged objects get the
    ``_Border`` suffix. The input objects are left unchanged.
    """
    border_cells = set()
    for obj in objects:
        if obj.object_type is ObjectType.CELL and obj.number is not None \
                and touches_border(obj.bbox, image_width, image_height, margin):
            border_cells.add(obj.number)

    result = []
    for obj in objects:
        if obj.object_type in (ObjectType.VESSEL, ObjectType.CELL):
            is_border = touches_border(obj.bbox, image_width, image_height, margin) \
                and (obj.object_type is ObjectType.VESSEL or obj.number is not None)
        elif obj.object_type in (ObjectType.NUCLEUS, ObjectType.CYTOPLASM):
            is_border = obj.number in border_cells
        else:
            is_border = False
        result.append(_as_border(obj) if is_border else obj)

    print(f"[categorize] {len(border_cells)} border cells of "
          f"{sum(1 for o in objects if o.object_type is ObjectType.CELL)}")
    return result


def parse_color(value: Optional[str]) -> RGB:
    """Named colour or ``#rrggbb``; anything else is black."""
    if not value:
        return NAMED_COLORS["black"]
    name = value.strip().lower()
    if name in NAMED_COLORS:
        return NAMED_COLORS[name]
    if _HEX_COLOR.match(name):
        return int(name[1:3], 16), int(name[3:5], 16), int(name[5:7], 16)
    return NAMED_COLORS["black"]


def assign_colors(objects: Sequence[SegmentedObject],
                  palette: Optional[Dict[str, str]] = None) -> Dict[str, RGB]:
    """Colour per identifier from the object's type and category."""
    colors = dict(DEFAULT_COLORS)
    if palette:
        colors.update(palette)

    result: Dict[str, RGB] = {}
    for obj in objects:
        key = _PALETTE_KEYS.get(obj.object_type)
        if key is None:
            continue
        prefix = "border" if obj.border else "central"
        result[obj.identifier] = parse_color(colors[f"{prefix}_{key}"])
    return result
