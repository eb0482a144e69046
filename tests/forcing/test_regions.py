"""
Tests for relaxation regions (meltflow/forcing/regions.py).
"""

import itertools

import pytest
import numpy as np
from numpy.testing import assert_allclose

from meltflow.errors import ConfigurationError
from meltflow.forcing import Box, Line, Point, SpongeLayer, region_mask, region_slices


TARGETS = {"T": -1.0, "S": 33.95}


def membership(region, grid):
    return np.array([
        region.matches(i, j, k)
        for i, j, k in itertools.product(range(grid.Nx), range(grid.Ny), range(grid.Nz))
    ]).reshape(grid.shape)


class TestPoint:

    def test_matches_single_cell(self, channel_grid):
        point = Point(index=(16, 0, 16), targets=TARGETS)
        assert point.matches(16, 0, 16)
        assert not point.matches(16, 1, 16)
        assert not point.matches(15, 0, 16)
        assert region_mask(point, channel_grid).sum() == 1

    def test_contribution(self):
        point = Point(index=(16, 0, 16), targets=TARGETS, rate=1.0 / 60.0)
        assert_allclose(point.contribution("T", 16, 0.0), -1.0 / 60.0)
        assert_allclose(point.contribution("S", 16, 34.0), -(34.0 - 33.95) / 60.0)

    def test_tracer_without_target_contributes_nothing(self):
        point = Point(index=(0, 0, 0), targets={"T": 1.0})
        assert point.target("S", 0) is None
        assert point.contribution("S", 0, 35.0) == 0.0

    def test_outside_grid_rejected(self, channel_grid):
        with pytest.raises(ConfigurationError):
            Point(index=(32, 0, 0), targets=TARGETS).validate(channel_grid)

    @pytest.mark.parametrize("rate", [0.0, -1.0, np.inf, np.nan])
    def test_bad_rate_rejected(self, channel_grid, rate):
        with pytest.raises(ConfigurationError):
            Point(index=(0, 0, 0), targets=TARGETS, rate=rate).validate(channel_grid)

    def test_non_finite_target_rejected(self, channel_grid):
        with pytest.raises(ConfigurationError):
            Point(index=(0, 0, 0), targets={"T": np.nan}).validate(channel_grid)


class TestLine:

    def test_spans_x(self, small_grid):
        line = Line(j=0, k=2, targets=TARGETS)
        mask = region_mask(line, small_grid)
        assert mask[:, 0, 2].all()
        assert mask.sum() == small_grid.Nx
        assert line.bounds(small_grid) == ((0, 0, 2), (3, 0, 2))

    def test_outside_grid_rejected(self, small_grid):
        with pytest.raises(ConfigurationError):
            Line(j=0, k=5, targets=TARGETS).validate(small_grid)


class TestBox:

    def test_box_model_membership(self, box_model_grid):
        box = Box(lo=(0, 0, 0), hi=(0, 49, 9), targets={"T": 3.0, "S": 34.0})
        box.validate(box_model_grid)
        assert box.matches(0, 24, 4)
        assert not box.matches(0, 59, 4)
        assert box.matches(0, 49, 9)
        assert not box.matches(0, 50, 9)

    def test_from_extent(self, box_model_grid):
        box = Box.from_extent(box_model_grid, (1.0, 1.0, 1.0),
                              (box_model_grid.Lx, 50.0, 10.0), {"T": 3.0}, 1.0 / 60.0)
        assert box.lo == (0, 0, 0)
        assert box.hi == (0, 2, 2)

    def test_inverted_corners_rejected(self, small_grid):
        with pytest.raises(ConfigurationError):
            Box(lo=(0, 3, 0), hi=(0, 2, 0), targets=TARGETS).validate(small_grid)

    def test_corner_outside_grid_rejected(self, small_grid):
        with pytest.raises(ConfigurationError):
            Box(lo=(0, 0, 0), hi=(4, 0, 0), targets=TARGETS).validate(small_grid)

    def test_slices_match_mask(self, small_grid):
        box = Box(lo=(1, 2, 0), hi=(2, 4, 3), targets=TARGETS)
        field = small_grid.zeros()
        field[region_slices(box, small_grid)] = 1.0
        assert np.array_equal(field.astype(bool), region_mask(box, small_grid))
        assert field.sum() == 2 * 3 * 4


class TestSpongeLayer:

    def profiles(self, grid):
        return {"T": np.linspace(1.0, 3.0, grid.Nz), "S": np.full(grid.Nz, 34.0)}

    def test_boundary_band(self, small_grid):
        sponge = SpongeLayer.boundary_band(small_grid, "y", 2, self.profiles(small_grid), 0.1)
        assert sponge.start == 4
        assert sponge.width(small_grid) == 2
        mask = region_mask(sponge, small_grid)
        assert mask[:, 4:, :].all()
        assert not mask[:, :4, :].any()

    def test_target_follows_profile(self, small_grid):
        sponge = SpongeLayer.boundary_band(small_grid, "y", 1, self.profiles(small_grid), 0.1)
        assert_allclose([sponge.target("T", k) for k in range(small_grid.Nz)],
                        np.linspace(1.0, 3.0, small_grid.Nz))
        assert_allclose(sponge.contribution("T", 0, 2.0), -0.1 * (2.0 - 1.0))

    @pytest.mark.parametrize("width", [0, 7])
    def test_width_out_of_range(self, small_grid, width):
        with pytest.raises(ConfigurationError):
            SpongeLayer.boundary_band(small_grid, "y", width, self.profiles(small_grid), 0.1)

    def test_profile_length_checked(self, small_grid):
        sponge = SpongeLayer.boundary_band(small_grid, "y", 1, {"T": np.zeros(3)}, 0.1)
        with pytest.raises(ConfigurationError):
            sponge.validate(small_grid)

    def test_unknown_axis(self, small_grid):
        with pytest.raises(ConfigurationError):
            SpongeLayer.boundary_band(small_grid, "q", 1, self.profiles(small_grid), 0.1)


class TestMembershipIsOrderIndependent:
    """Membership of a cell never depends on which other cells were visited."""

    @pytest.mark.parametrize("region", [
        Point(index=(1, 2, 3), targets=TARGETS),
        Line(j=5, k=0, targets=TARGETS),
        Box(lo=(0, 1, 1), hi=(2, 3, 4), targets=TARGETS),
    ])
    def test_shuffled_evaluation(self, small_grid, region, rng):
        expected = membership(region, small_grid)
        cells = list(itertools.product(range(small_grid.Nx), range(small_grid.Ny), range(small_grid.Nz)))
        order = rng.permutation(len(cells))
        for n in order:
            i, j, k = cells[n]
            assert region.matches(i, j, k) == expected[i, j, k]
            # Idempotent
            assert region.matches(i, j, k) == region.matches(i, j, k)

    @pytest.mark.parametrize("region", [
        Point(index=(1, 2, 3), targets=TARGETS),
        Line(j=5, k=0, targets=TARGETS),
        Box(lo=(0, 1, 1), hi=(2, 3, 4), targets=TARGETS),
    ])
    def test_mask_matches_predicate(self, small_grid, region):
        assert np.array_equal(region_mask(region, small_grid), membership(region, small_grid))
