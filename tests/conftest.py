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
Pytest configuration and shared fixtures for OpenHE tests.
"""
import numpy as np
import pytest
from pathlib import Path
import tempfile
import shutil

from openhe.data.objects import IntensityStats, SegmentedObject
from openhe.utils.logger import set_log_file


@pytest.fixture(autouse=True)
def methods_log(tmp_path):
    """Send methods log entries to a per-test file."""
    log_file = tmp_path / "logs" / "methods_log.jsonl"
    set_log_file(str(log_file))
    return log_file


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs.

    Returns an absolute, resolved Path; removed after the test.
    """
    temp_path = tempfile.mkdtemp()
    temp_dir_path = Path(temp_path).resolve()
    yield temp_dir_path
    shutil.rmtree(str(temp_dir_path), ignore_errors=True)


def make_object(identifier, x, y, major=4.0, minor=4.0, angle=0.0, area=12.0,
                perimeter=12.0, mean=None, **kwargs):
    """Build a SegmentedObject with sensible defaults for tests."""
    intensities = kwargs.pop("intensities", None)
    if intensities is None:
        intensities = {}
        if mean is not None:
            intensities["Original"] = IntensityStats(
                mean=mean, std_dev=1.0, mode=mean, min=0.0, max=2 * mean,
                median=mean, skewness=0.0, kurtosis=0.0,
            )
    return SegmentedObject(
        identifier=identifier,
        x=x,
        y=y,
        major=major,
        minor=minor,
        angle=angle,
        area=area,
        perimeter=perimeter,
        intensities=intensities,
        **kwargs,
    )


@pytest.fixture
def object_factory():
    """Factory for SegmentedObject instances."""
    return make_object


@pytest.fixture
def sample_objects():
    """Three nucleus/cytoplasm/cell triplets and two vessels.

    Nuclei 1-3 lie on a line 10 units apart; triplet 3 touches the border.
    """
    objects = [
        make_object("Vessel_2", 400.0, 400.0, major=30.0, minor=20.0, area=470.0, perimeter=80.0, mean=40.0),
        make_object("Nucleus_1", 10.0, 50.0, mean=100.0),
        make_object("Cytoplasm_1", 10.0, 50.0, major=10.0, minor=8.0, area=60.0, perimeter=30.0, mean=50.0),
        make_object("Cell_1", 10.0, 50.0, major=12.0, minor=10.0, area=72.0, perimeter=35.0, mean=60.0),
        make_object("Nucleus_2", 20.0, 50.0, mean=110.0),
        make_object("Cytoplasm_2", 20.0, 50.0, major=10.0, minor=8.0, area=64.0, perimeter=31.0, mean=52.0),
        make_object("Cell_2", 20.0, 50.0, major=12.0, minor=10.0, area=76.0, perimeter=36.0, mean=62.0),
        make_object("Nucleus_3_Border", 30.0, 50.0, mean=120.0),
        make_object("Cytoplasm_3_Border", 30.0, 50.0, major=10.0, minor=8.0, area=66.0, perimeter=32.0, mean=54.0),
        make_object("Cell_3_Border", 30.0, 50.0, major=12.0, minor=10.0, area=78.0, perimeter=37.0, mean=64.0),
        make_object("Vessel_1", 0.0, 0.0, major=20.0, minor=10.0, area=160.0, perimeter=50.0, mean=30.0),
    ]
    return objects


@pytest.fixture
def square_boundary():
    """Boundary polygon of a 10x10 square with a notch."""
    return np.array([
        [0.0, 0.0], [10.0, 0.0], [10.0, 10.0], [5.0, 5.0], [0.0, 10.0],
    ])
