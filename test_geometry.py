"""Tests for coordinate conversion and polygon validation."""

import pytest

from roomcanvas.errors import ValidationError
from roomcanvas.geometry.coord_convert import (
    denormalize,
    image_to_view,
    is_normalized,
    normalize,
    to_native_pixels,
    view_to_image,
)
from roomcanvas.geometry.polygon import (
    OUTSIDE_BOUNDS,
    TOO_FEW_POINTS,
    TOO_SMALL,
    ensure_valid_polygon,
    polygon_area,
    polygon_centroid,
    validate_polygon,
)
from roomcanvas.models.schemas import ViewTransform


class TestNormalize:
    def test_round_trip(self):
        points = [12.5, 7.25, 1919.0, 3.0, 640.0, 1079.5, 0.0, 0.0]
        back = denormalize(normalize(points, 1920, 1080), 1920, 1080)
        assert back == pytest.approx(points, abs=1e-6)

    def test_normalized_in_unit_square(self):
        norm = normalize([0, 0, 1920, 1080, 960, 540], 1920, 1080)
        assert norm == pytest.approx([0, 0, 1, 1, 0.5, 0.5])

    def test_x_and_y_use_their_own_dimension(self):
        assert normalize([100, 100], 200, 400) == pytest.approx([0.5, 0.25])

    def test_odd_length_rejected(self):
        with pytest.raises(ValueError):
            normalize([1, 2, 3], 10, 10)

    def test_non_positive_dimensions_rejected(self):
        with pytest.raises(ValueError):
            denormalize([0.5, 0.5], 0, 10)


class TestViewTransform:
    def test_view_to_image_undoes_zoom_and_pan(self):
        view = ViewTransform(scale=0.5, offset_x=100, offset_y=20)
        assert view_to_image([100, 20, 600, 520], view) == pytest.approx([0, 0, 1000, 1000])

    def test_image_to_view_inverse(self):
        view = ViewTransform(scale=2.0, offset_x=-30, offset_y=15)
        pts = [10.0, 20.0, 300.0, 400.0]
        assert view_to_image(image_to_view(pts, view), view) == pytest.approx(pts)


class TestNativePixels:
    def test_normalized_input_denormalized(self):
        assert is_normalized([0.1, 0.2, 1.0, 0.0])
        assert to_native_pixels([0.5, 0.5], 1920, 1080) == pytest.approx([960, 540])

    def test_canvas_pixels_scaled_to_native(self):
        out = to_native_pixels([480, 270], 1920, 1080, canvas_width=960, canvas_height=540)
        assert out == pytest.approx([960, 540])

    def test_native_pixels_pass_through(self):
        assert to_native_pixels([400, 300], 1920, 1080) == [400.0, 300.0]


class TestPolygonMath:
    def test_square_area(self):
        assert polygon_area([0, 0, 100, 0, 100, 100, 0, 100]) == pytest.approx(10_000)

    def test_area_independent_of_winding(self):
        assert polygon_area([0, 100, 100, 100, 100, 0, 0, 0]) == pytest.approx(10_000)

    def test_centroid_is_vertex_mean(self):
        assert polygon_centroid([0, 0, 30, 0, 0, 30]) == pytest.approx((10, 10))


class TestValidatePolygon:
    def test_small_triangle_rejected(self):
        check = validate_polygon([0, 0, 10, 0, 0, 10], 1920, 1080)
        assert not check.valid
        assert check.reason == TOO_SMALL

    def test_square_accepted(self):
        check = validate_polygon([0, 0, 100, 0, 100, 100, 0, 100], 1920, 1080)
        assert check.valid
        assert check.reason is None

    def test_two_points_rejected(self):
        assert validate_polygon([0, 0, 100, 100], 1920, 1080).reason == TOO_FEW_POINTS

    def test_odd_count_rejected(self):
        assert validate_polygon([0, 0, 100, 0, 100], 1920, 1080).reason == TOO_FEW_POINTS

    def test_outside_bounds(self):
        check = validate_polygon([0, 0, 2000, 0, 2000, 500], 1920, 1080)
        assert check.reason == OUTSIDE_BOUNDS
        assert check.message == "Polygon extends outside image bounds"

    def test_negative_coordinate_outside(self):
        assert validate_polygon([-1, 0, 500, 0, 500, 500], 1920, 1080).reason == OUTSIDE_BOUNDS

    def test_edge_coordinates_inside(self):
        assert validate_polygon([0, 0, 1920, 0, 1920, 1080], 1920, 1080).valid

    def test_too_few_points_checked_before_bounds(self):
        assert validate_polygon([-5, -5, 5000, 5000], 1920, 1080).reason == TOO_FEW_POINTS

    def test_bounds_checked_before_area(self):
        assert validate_polygon([-1, 0, 5, 0, 0, 5], 1920, 1080).reason == OUTSIDE_BOUNDS

    def test_threshold_is_absolute_pixels(self):
        # The same normalized square passes at full resolution and fails on a thumbnail
        norm = [0.1, 0.1, 0.12, 0.1, 0.12, 0.13, 0.1, 0.13]
        full = denormalize(norm, 1920, 1080)
        thumb = denormalize(norm, 480, 270)
        assert validate_polygon(full, 1920, 1080).valid
        assert validate_polygon(thumb, 480, 270).reason == TOO_SMALL

    def test_monotonic_across_resolutions(self):
        norm = [0.2, 0.2, 0.6, 0.2, 0.6, 0.7, 0.2, 0.7]
        sizes = [(320, 180), (640, 360), (1280, 720), (1920, 1080), (3840, 2160)]
        results = [validate_polygon(denormalize(norm, w, h), w, h).valid for w, h in sizes]
        first_valid = results.index(True)
        assert all(results[first_valid:])

    def test_ensure_valid_raises_with_reason(self):
        with pytest.raises(ValidationError) as exc:
            ensure_valid_polygon([0, 0, 10, 0, 0, 10], 1920, 1080, label="Wall 1")
        assert exc.value.reason == TOO_SMALL
        assert "Wall 1" in exc.value.message
        assert exc.value.status_code == 400

    def test_nan_coordinate_outside(self):
        nan = float("nan")
        check = validate_polygon([nan, nan, 500, 0, 500, 500, 0, 500], 1920, 1080)
        assert check.reason == OUTSIDE_BOUNDS

    def test_infinite_coordinate_outside(self):
        check = validate_polygon([0, 0, float("inf"), 0, 500, 500], 1920, 1080)
        assert check.reason == OUTSIDE_BOUNDS

    def test_nan_is_not_normalized(self):
        assert not is_normalized([float("nan"), 0.5])
