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
Closed-form geometry helpers used by the relationship and aggregation steps.

Nuclei are modelled as oriented ellipses. The border distance between two
nuclei is approximated by subtracting each ellipse's radius in the direction
of the other centre from the centre-to-centre distance.
"""

import math
from typing import Optional

import numpy as np
from scipy.spatial import ConvexHull, QhullError

# Below this the centres (or the radius denominator) are treated as coincident
_EPSILON = 0.001


def _axis(value: Optional[float]) -> float:
    """Missing or NaN axis lengths collapse to 0."""
    if value is None:
        return 0.0
    value = float(value)
    if math.isnan(value):
        return 0.0
    return value


def center_distance(ax: float, ay: float, bx: float, by: float) -> float:
    """Euclidean distance between two centres."""
    dx = bx - ax
    dy = by - ay
    return math.sqrt(dx * dx + dy * dy)


def ellipse_radius_at_angle(a: float, b: float, angle_deg: float) -> float:
    """Radius of an ellipse with semi-axes ``a`` and ``b`` at ``angle_deg``.

    Uses ``r = a*b / sqrt((b*cos t)^2 + (a*sin t)^2)``. When the denominator
    vanishes (a = b = 0) the larger semi-axis is returned instead.
    """
    theta = math.radians(angle_deg)
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    denominator = math.sqrt((b * cos_t) * (b * cos_t) + (a * sin_t) * (a * sin_t))
    if denominator < _EPSILON:
        return max(a, b)
    return (a * b) / denominator


def ellipse_border_distance(
    ax: float,
    ay: float,
    a_major: Optional[float],
    a_minor: Optional[float],
    a_angle: Optional[float],
    bx: float,
    by: float,
    b_major: Optional[float],
    b_minor: Optional[float],
    b_angle: Optional[float],
) -> float:
    """Approximate border-to-border distance between two elliptical nuclei.

    Args:
        ax, ay: Centre of nucleus A
        a_major, a_minor: Full axis lengths of A (halved internally)
        a_angle: Orientation of A in degrees
        bx, by, b_major, b_minor, b_angle: Same for nucleus B

    Returns:
        ``max(0, centre distance - rA - rB)`` where rA is A's radius towards B
        and rB is B's radius towards A. Coincident centres return 0.
    """
    dx = bx - ax
    dy = by - ay
    distance = math.sqrt(dx * dx + dy * dy)
    if distance < _EPSILON:
        return 0.0

    angle_to_b = math.degrees(math.atan2(dy, dx))

    radius_a = ellipse_radius_at_angle(
        _axis(a_major) / 2, _axis(a_minor) / 2, angle_to_b - _axis(a_angle)
    )
    # B looks back towards A
    radius_b = ellipse_radius_at_angle(
        _axis(b_major) / 2, _axis(b_minor) / 2, (angle_to_b + 180) - _axis(b_angle)
    )

    return max(0.0, distance - radius_a - radius_b)


def convex_hull_area(points) -> float:
    """Area of the convex hull of a set of 2-D points.

    Fewer than three points, or a collinear/degenerate set, give 0.0.
    """
    if points is None:
        return 0.0
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[0] < 3 or pts.shape[1] != 2:
        return 0.0
    try:
        hull = ConvexHull(pts)
    except (QhullError, ValueError):
        return 0.0
    # For 2-D input scipy reports the enclosed area as ``volume``
    return float(hull.volume)


def _ratio(numerator: float, denominator: float) -> float:
    if denominator == 0 or math.isnan(denominator) or math.isnan(numerator):
        return float('nan')
    return numerator / denominator


def circularity(area: float, perimeter: float) -> float:
    """4*pi*area / perimeter^2."""
    return _ratio(4 * math.pi * area, perimeter * perimeter)


def aspect_ratio(major: float, minor: float) -> float:
    """major / minor."""
    return _ratio(major, minor)


def roundness(area: float, major: float) -> float:
    """4*area / (pi*major^2)."""
    return _ratio(4 * area, math.pi * major * major)


def solidity(area: float, hull_area: float) -> float:
    """area / convex hull area, 1.0 for an empty or missing hull."""
    if hull_area is None or math.isnan(hull_area) or hull_area <= 0:
        return 1.0
    return area / hull_area
