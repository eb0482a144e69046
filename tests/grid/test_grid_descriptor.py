"""
Tests for the grid descriptor (meltflow/grid/descriptor.py).
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from meltflow.errors import ConfigurationError
from meltflow.grid import GridDescriptor


class TestGeometry:

    def test_shape_and_spacing(self, channel_grid):
        assert channel_grid.shape == (32, 32, 32)
        assert channel_grid.extent == (10000.0, 10000.0, 1000.0)
        assert_allclose(channel_grid.spacing, (312.5, 312.5, 31.25))
        assert channel_grid.min_spacing == 31.25
        assert channel_grid.n_cells == 32**3

    def test_cell_centres_span_domain(self, small_grid):
        assert_allclose(small_grid.xC, [-150.0, -50.0, 50.0, 150.0])
        assert_allclose(small_grid.yC, 50.0 + 100.0 * np.arange(6))
        # Bottom cell first, surface cell last
        assert_allclose(small_grid.zC, [-45.0, -35.0, -25.0, -15.0, -5.0])

    def test_zeros(self, small_grid):
        field = small_grid.zeros()
        assert field.shape == (4, 6, 5)
        assert not field.any()

    def test_from_tuples(self):
        grid = GridDescriptor.from_tuples((1, 256, 64), (5000.0 / 256, 5000.0, 300.0))
        assert grid.shape == (1, 256, 64)
        assert_allclose(grid.dy, 5000.0 / 256)

    def test_from_tuples_accepts_integral_floats(self):
        grid = GridDescriptor.from_tuples((2.0, 3.0, 4.0), (1, 1, 1))
        assert grid.shape == (2, 3, 4)

    def test_size_along(self, small_grid):
        assert small_grid.size_along("x") == 4
        assert small_grid.size_along("y") == 6
        assert small_grid.size_along(2) == 5
        with pytest.raises(ValueError):
            small_grid.size_along("w")

    def test_contains(self, small_grid):
        assert small_grid.contains(0, 0, 0)
        assert small_grid.contains(3, 5, 4)
        assert not small_grid.contains(4, 0, 0)
        assert not small_grid.contains(0, -1, 0)


class TestValidation:

    @pytest.mark.parametrize("size", [(0, 1, 1), (1, -2, 1), (1, 1, 2.5), (True, 1, 1)])
    def test_bad_sizes(self, size):
        with pytest.raises(ConfigurationError):
            GridDescriptor(*size, 1.0, 1.0, 1.0)

    @pytest.mark.parametrize("extent", [(0.0, 1.0, 1.0), (1.0, -1.0, 1.0), (1.0, 1.0, np.inf)])
    def test_bad_extents(self, extent):
        with pytest.raises(ConfigurationError):
            GridDescriptor(1, 1, 1, *extent)

    def test_immutable(self, small_grid):
        with pytest.raises(AttributeError):
            small_grid.Nx = 8


class TestIndexOf:
    """Metre-to-index conversion used for box corners and sponge widths."""

    def test_box_model_source_corners(self, box_model_grid):
        # 1 m from each origin lands in the first cell
        assert [box_model_grid.index_of(a, 1.0) for a in range(3)] == [0, 0, 0]
        # 50 m along y: ceil(50·256/5000) = 3 → index 2
        assert box_model_grid.index_of("y", 50.0) == 2
        # 10 m above the bottom: ceil(10·64/300) = 3 → index 2
        assert box_model_grid.index_of("z", 10.0) == 2
        # The full width along x is the single cell
        assert box_model_grid.index_of("x", box_model_grid.Lx) == 0

    def test_face_belongs_to_lower_cell(self, small_grid):
        assert small_grid.index_of("y", 100.0) == 0
        assert small_grid.index_of("y", 100.001) == 1
        assert small_grid.index_of("y", 600.0) == 5

    def test_origin(self, small_grid):
        assert small_grid.index_of("z", 0.0) == 0

    def test_outside_domain(self, small_grid):
        with pytest.raises(ConfigurationError):
            small_grid.index_of("y", 600.5)
        with pytest.raises(ConfigurationError):
            small_grid.index_of("x", -1.0)
