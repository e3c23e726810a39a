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
Measurement configuration.

All settings are carried on an explicit ``MeasurementConfig`` value passed to
the registry, relationship calculator and aggregator.
"""

import json
import math
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


DEFAULT_COLORS = {
    "central_nuclei": "blue",
    "border_nuclei": "gray",
    "central_vessels": "red",
    "border_vessels": "black",
    "central_cytoplasm": "pink",
    "border_cytoplasm": "gray",
    "central_cells": "pink",
    "border_cells": "gray",
}


_BOOL_FIELDS = ("ignore_border_vessels", "use_semicolons", "use_comma_for_decimals", "save_averages")


def _finite_number(name: str, value: Any) -> float:
    """Convert a numeric setting to float, rejecting booleans, NaN and infinity."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise ValueError(f"{name} must be finite, got {value!r}")
    return number


@dataclass
class MeasurementConfig:
    """Settings for measuring one image.

    Attributes:
        neighbor_radius: Radius for counting neighbouring nuclei (coordinate units)
        grid_cell_size: Spatial index cell size, should exceed ``neighbor_radius``
            for efficient queries
        ignore_border_vessels: Leave border vessels out of vessel search and grouping
        use_semicolons: Use ``;`` as field separator instead of ``,``
        use_comma_for_decimals: Use ``,`` as decimal separator (semicolon tables only)
        save_averages: Also write the group averages table
        output_dir: Root directory for output tables
        colors: Category colour palette used by ``assign_colors``
    """
    neighbor_radius: float = 50.0
    grid_cell_size: float = 100.0
    ignore_border_vessels: bool = False
    use_semicolons: bool = False
    use_comma_for_decimals: bool = False
    save_averages: bool = True
    output_dir: Optional[str] = None
    colors: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLORS))

    def __post_init__(self):
        self.neighbor_radius = _finite_number("neighbor_radius", self.neighbor_radius)
        if self.neighbor_radius < 0:
            raise ValueError(f"neighbor_radius must be >= 0, got {self.neighbor_radius}")
        self.grid_cell_size = _finite_number("grid_cell_size", self.grid_cell_size)
        if self.grid_cell_size <= 0:
            raise ValueError(f"grid_cell_size must be > 0, got {self.grid_cell_size}")
        for name in _BOOL_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ValueError(f"{name} must be true or false, got {value!r}")
        unknown_colors = set(self.colors) - set(DEFAULT_COLORS)
        if unknown_colors:
            raise ValueError(f"Unknown color categories: {sorted(unknown_colors)}")
        merged = dict(DEFAULT_COLORS)
        merged.update(self.colors)
        self.colors = merged

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _from_dict(values: Dict[str, Any]) -> MeasurementConfig:
    known = {f.name for f in fields(MeasurementConfig)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
    return MeasurementConfig(**values)


def parse_config(config: Optional[Union[str, Path, Dict, MeasurementConfig]]) -> MeasurementConfig:
    """Parse measurement settings from a YAML/JSON file, string or dict.

    Args:
        config: ``None`` for defaults, a ``MeasurementConfig``, a dict, a path
            to a ``.yaml``/``.yml``/``.json`` file, or a YAML/JSON string

    Returns:
        MeasurementConfig instance

    Raises:
        ValueError: If the text cannot be parsed or contains invalid settings
    """
    if config is None:
        return MeasurementConfig()

    if isinstance(config, MeasurementConfig):
        return config

    if isinstance(config, dict):
        return _from_dict(config)

    if isinstance(config, Path) or os.path.isfile(str(config)):
        with open(config, 'r') as f:
            text = f.read()
        is_json = str(config).lower().endswith('.json')
    else:
        text = str(config)
        is_json = False

    try:
        values = json.loads(text) if is_json else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError):
        raise ValueError(f"Invalid configuration: {config}")

    if values is None:
        return MeasurementConfig()
    if not isinstance(values, dict):
        raise ValueError(f"Invalid configuration: {config}")
    return _from_dict(values)
