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
Unit tests for the relationship calculator.
"""
import math

import pytest

from openhe.config import MeasurementConfig
from openhe.data.objects import ObjectRegistry
from openhe.processing.relationships import (
    EMPTY_RECORD,
    RelationshipCalculator,
    neighbor_ring_radius,
)


def _calculator(objects, **config):
    cfg = MeasurementConfig(**config)
    return RelationshipCalculator(ObjectRegistry(objects, cfg), cfg)


def _by_id(objects):
    return {obj.identifier: obj for obj in objects}


@pytest.mark.unit
class TestNeighborRingRadius:
    """Tests for neighbor_ring_radius."""

    @pytest.mark.parametrize("radius,cell,expected", [
        (50, 100, 1),
        (15, 100, 1),
        (100, 100, 2),
        (250, 100, 3),
        (0, 100, 1),
    ])
    def test_ring_radius(self, radius, cell, expected):
        assert neighbor_ring_radius(radius, cell) == expected


@pytest.mark.unit
class TestNearestVessel:
    """Tests for nearest-vessel search."""

    def test_same_grid_cell(self, object_factory):
        vessel = object_factory("Vessel_1", 0.0, 0.0)
        nucleus = object_factory("Nucleus_1", 50.0, 50.0)
        calc = _calculator([vessel, nucleus], grid_cell_size=100)

        distance, closest = calc.nearest_vessel(nucleus)
        assert distance == pytest.approx(math.sqrt(5000))
        assert distance == pytest.approx(70.71, abs=0.01)
        assert closest == "Vessel_1"

    def test_falls_back_to_full_scan(self, object_factory):
        far = object_factory("Vessel_1", 1000.0, 1000.0)
        nucleus = object_factory("Nucleus_1", 0.0, 0.0)
        calc = _calculator([far, nucleus])

        distance, closest = calc.nearest_vessel(nucleus)
        assert distance == pytest.approx(1000.0 * math.sqrt(2))
        assert closest == "Vessel_1"

    def test_no_vessels(self, object_factory):
        nucleus = object_factory("Nucleus_1", 0.0, 0.0)
        calc = _calculator([nucleus])
        assert calc.nearest_vessel(nucleus) == (None, None)
        record = calc.relationships_for(nucleus)
        assert record.vessel_distance is None
        assert record.closest_vessel is None

    def test_closest_of_several(self, object_factory):
        objects = [
            object_factory("Vessel_1", 0.0, 0.0),
            object_factory("Vessel_2", 30.0, 0.0),
            object_factory("Nucleus_1", 25.0, 0.0),
        ]
        calc = _calculator(objects)
        assert calc.nearest_vessel(objects[2]) == (pytest.approx(5.0), "Vessel_2")

    def test_vessel_skips_itself(self, object_factory):
        v1 = object_factory("Vessel_1", 0.0, 0.0)
        v2 = object_factory("Vessel_2", 30.0, 40.0)
        calc = _calculator([v1, v2])

        record = calc.relationships_for(v1)
        assert record.vessel_distance == pytest.approx(50.0)
        assert record.closest_vessel == "Vessel_2"
        assert record.neighbor_count == 0
        assert record.closest_neighbor is None

    def test_lone_vessel_has_no_closest_vessel(self, object_factory):
        v1 = object_factory("Vessel_1", 0.0, 0.0)
        calc = _calculator([v1])
        assert calc.relationships_for(v1).vessel_distance is None

    def test_ignored_border_vessels_are_not_candidates(self, object_factory):
        objects = [
            object_factory("Vessel_1_Border", 5.0, 0.0),
            object_factory("Vessel_2", 50.0, 0.0),
            object_factory("Nucleus_1", 0.0, 0.0),
        ]
        calc = _calculator(objects, ignore_border_vessels=True)
        assert calc.nearest_vessel(objects[2]) == (pytest.approx(50.0), "Vessel_2")

        calc = _calculator(objects, ignore_border_vessels=False)
        assert calc.nearest_vessel(objects[2]) == (pytest.approx(5.0), "Vessel_1_Border")


@pytest.mark.unit
class TestNeighbors:
    """Tests for neighbour counting and closest neighbour."""

    def test_three_nuclei_in_a_line(self, object_factory):
        objects = [
            object_factory("Nucleus_1", 0.0, 0.0),
            object_factory("Nucleus_2", 10.0, 0.0),
            object_factory("Nucleus_3", 20.0, 0.0),
        ]
        calc = _calculator(objects, neighbor_radius=15)

        counts = [calc.relationships_for(n).neighbor_count for n in objects]
        assert counts == [1, 2, 1]

        end = calc.relationships_for(objects[0])
        assert end.closest_neighbor == "Nucleus_2"
        assert end.closest_neighbor_distance == pytest.approx(6.0)

    def test_isolated_nucleus(self, object_factory):
        objects = [
            object_factory("Nucleus_1", 0.0, 0.0),
            object_factory("Nucleus_2", 40.0, 0.0),
        ]
        calc = _calculator(objects, neighbor_radius=15)
        record = calc.relationships_for(objects[0])
        assert record.neighbor_count == 0
        assert record.closest_neighbor_distance is None
        assert record.closest_neighbor is None

    def test_radius_is_inclusive(self, object_factory):
        objects = [
            object_factory("Nucleus_1", 0.0, 0.0),
            object_factory("Nucleus_2", 15.0, 0.0),
        ]
        calc = _calculator(objects, neighbor_radius=15)
        assert calc.relationships_for(objects[0]).neighbor_count == 1

    def test_radius_larger_than_grid_cell(self, object_factory):
        objects = [
            object_factory("Nucleus_1", 0.0, 0.0),
            object_factory("Nucleus_2", 140.0, 0.0),
        ]
        calc = _calculator(objects, neighbor_radius=150, grid_cell_size=100)
        assert calc.relationships_for(objects[0]).neighbor_count == 1

    def test_closest_by_border_not_centre(self, object_factory):
        # Nucleus_2 has the nearer centre but Nucleus_3 is large, so its border is closer
        objects = [
            object_factory("Nucleus_1", 0.0, 0.0, major=2.0, minor=2.0),
            object_factory("Nucleus_2", 10.0, 0.0, major=2.0, minor=2.0),
            object_factory("Nucleus_3", 0.0, 14.0, major=20.0, minor=20.0),
        ]
        calc = _calculator(objects, neighbor_radius=20)
        record = calc.relationships_for(objects[0])
        assert record.neighbor_count == 2
        assert record.closest_neighbor == "Nucleus_3"
        assert record.closest_neighbor_distance == pytest.approx(14.0 - 1.0 - 10.0)

    def test_tie_goes_to_first_inserted(self, object_factory):
        objects = [
            object_factory("Nucleus_1", 50.0, 50.0),
            object_factory("Nucleus_2", 60.0, 50.0),
            object_factory("Nucleus_3", 40.0, 50.0),
        ]
        calc = _calculator(objects, neighbor_radius=15)
        assert calc.relationships_for(objects[0]).closest_neighbor == "Nucleus_2"

    def test_missing_axes_use_centre_distance(self, object_factory):
        objects = [
            object_factory("Nucleus_1", 0.0, 0.0, major=float('nan'), minor=float('nan')),
            object_factory("Nucleus_2", 3.0, 4.0, major=float('nan'), minor=float('nan')),
        ]
        calc = _calculator(objects, neighbor_radius=10)
        assert calc.relationships_for(objects[0]).closest_neighbor_distance == pytest.approx(5.0)

    def test_empty_population(self):
        calc = _calculator([])
        assert calc.compute_all() == []


@pytest.mark.unit
class TestRelationshipCache:
    """Tests for caching and propagation."""

    def test_repeated_calls_return_cached_record(self, sample_objects):
        calc = _calculator(sample_objects, neighbor_radius=15)
        nucleus = _by_id(sample_objects)["Nucleus_2"]
        first = calc.relationships_for(nucleus)
        second = calc.relationships_for(nucleus)
        assert first is second
        assert first == second

    def test_triplet_shares_record(self, sample_objects):
        calc = _calculator(sample_objects, neighbor_radius=15)
        objs = _by_id(sample_objects)
        for number, suffix in ((1, ""), (2, ""), (3, "_Border")):
            nucleus = calc.relationships_for(objs[f"Nucleus_{number}{suffix}"])
            assert calc.relationships_for(objs[f"Cytoplasm_{number}{suffix}"]) == nucleus
            assert calc.relationships_for(objs[f"Cell_{number}{suffix}"]) == nucleus

    def test_cell_before_nucleus_uses_nucleus_record(self, sample_objects):
        calc = _calculator(sample_objects, neighbor_radius=15)
        objs = _by_id(sample_objects)
        cell_record = calc.relationships_for(objs["Cell_2"])
        assert cell_record.neighbor_count == 2
        assert calc.relationships_for(objs["Nucleus_2"]) is cell_record

    def test_unmatched_cytoplasm_is_empty(self, object_factory):
        objects = [
            object_factory("Vessel_1", 0.0, 0.0),
            object_factory("Cytoplasm_7", 5.0, 5.0),
            object_factory("Cell_x", 5.0, 5.0),
        ]
        calc = _calculator(objects)
        assert calc.relationships_for(objects[1]) is EMPTY_RECORD
        assert calc.relationships_for(objects[2]) is EMPTY_RECORD

    def test_compute_all(self, sample_objects):
        calc = _calculator(sample_objects, neighbor_radius=15)
        records = calc.compute_all()
        assert len(records) == len(sample_objects)
        # Vessel_1 at the origin is the closest vessel for every nucleus
        nucleus_records = [r for obj, r in zip(sample_objects, records)
                           if obj.identifier.startswith("Nucleus")]
        assert all(r.closest_vessel == "Vessel_1" for r in nucleus_records)

    def test_nuclei_sharing_a_number_keep_own_records(self, object_factory):
        objects = [
            object_factory("Nucleus_5", 0.0, 0.0),
            object_factory("Nucleus_5_Border", 10.0, 0.0),
            object_factory("Cell_5", 0.0, 0.0),
        ]
        calc = _calculator(objects, neighbor_radius=15)
        first = calc.relationships_for(objects[0])
        second = calc.relationships_for(objects[1])

        assert first.closest_neighbor == "Nucleus_5_Border"
        assert second.closest_neighbor == "Nucleus_5"
        assert first is not second
        # The cell follows the first nucleus registered under its number
        assert calc.relationships_for(objects[2]) is first
