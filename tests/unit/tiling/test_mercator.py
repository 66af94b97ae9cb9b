import math

import pytest

from rastertiler.tiling.mercator import EARTH_RADIUS, MAX_ZOOM_LEVEL, GlobalMercator


@pytest.fixture()
def mercator() -> GlobalMercator:
    return GlobalMercator(256)


def test_initial_resolution_and_origin_shift(mercator: GlobalMercator) -> None:
    assert mercator.initial_resolution == pytest.approx(156543.03392804062)
    assert mercator.origin_shift == pytest.approx(math.pi * EARTH_RADIUS)
    assert GlobalMercator(512).initial_resolution == pytest.approx(mercator.initial_resolution / 2)


def test_resolution_halves_per_zoom(mercator: GlobalMercator) -> None:
    for zoom in range(MAX_ZOOM_LEVEL):
        assert mercator.resolution(zoom + 1) == pytest.approx(mercator.resolution(zoom) / 2)


@pytest.mark.parametrize("zoom", [0, 3, 10, 18])
@pytest.mark.parametrize("pixel", [(0.0, 0.0), (123.5, 987.25), (65536.0, 1.0)])
def test_pixels_meters_round_trip(mercator: GlobalMercator, zoom: int, pixel) -> None:  # type: ignore[no-untyped-def]
    meters = mercator.pixels_to_meters(pixel[0], pixel[1], zoom)
    back = mercator.meters_to_pixels(meters.x, meters.y, zoom)

    assert back.x == pytest.approx(pixel[0], abs=1e-6)
    assert back.y == pytest.approx(pixel[1], abs=1e-6)


@pytest.mark.parametrize(
    ("lat", "lon"),
    [(0.0, 0.0), (45.0, 90.0), (-33.8688, 151.2093), (85.0, -179.9), (-85.0, 179.9)],
)
def test_lat_lon_round_trip(mercator: GlobalMercator, lat: float, lon: float) -> None:
    meters = mercator.lat_lon_to_meters(lat, lon)
    geo = mercator.meters_to_lat_lon(meters.x, meters.y)

    assert abs(geo.latitude - lat) < 1e-7
    assert abs(geo.longitude - lon) < 1e-7


def test_world_edge_is_mercator_limit(mercator: GlobalMercator) -> None:
    corner = mercator.meters_to_lat_lon(mercator.origin_shift, mercator.origin_shift)

    assert corner.longitude == pytest.approx(180.0)
    assert corner.latitude == pytest.approx(85.0511287798, abs=1e-9)


def test_tile_bounds_at_zoom_zero_cover_the_world(mercator: GlobalMercator) -> None:
    bounds = mercator.tile_bounds(0, 0, 0)

    assert bounds.min.x == pytest.approx(-mercator.origin_shift)
    assert bounds.min.y == pytest.approx(-mercator.origin_shift)
    assert bounds.max.x == pytest.approx(mercator.origin_shift)
    assert bounds.max.y == pytest.approx(mercator.origin_shift)


def test_tile_lat_lon_bounds(mercator: GlobalMercator) -> None:
    bounds = mercator.tile_lat_lon_bounds(1, 1, 1)

    assert bounds.min.longitude == pytest.approx(0.0, abs=1e-9)
    assert bounds.min.latitude == pytest.approx(0.0, abs=1e-9)
    assert bounds.max.longitude == pytest.approx(180.0)


def test_tile_edges_belong_to_lower_tile(mercator: GlobalMercator) -> None:
    tile = mercator.pixels_to_tile(256.0, 512.0)
    assert (tile.x, tile.y) == (0, 1)

    tile = mercator.pixels_to_tile(256.5, 512.5)
    assert (tile.x, tile.y) == (1, 2)


def test_meters_to_tile(mercator: GlobalMercator) -> None:
    tile = mercator.meters_to_tile(1.0, 1.0, 1)
    assert (tile.x, tile.y) == (1, 1)

    tile = mercator.meters_to_tile(-1.0, -1.0, 1)
    assert (tile.x, tile.y) == (0, 0)

    tile = mercator.meters_to_tile(1000.0, 1000.0, 10)
    assert (tile.x, tile.y) == (512, 512)


def test_pixels_to_tile_returns_ints(mercator: GlobalMercator) -> None:
    tile = mercator.pixels_to_tile(300.5, 10.0)

    assert (tile.x, tile.y) == (1, 0)
    assert isinstance(tile.x, int)
    assert isinstance(tile.y, int)


def test_zoom_for_pixel_size(mercator: GlobalMercator) -> None:
    assert mercator.zoom_for_pixel_size(mercator.resolution(5)) == 5
    assert mercator.zoom_for_pixel_size(mercator.resolution(5) * 1.5) == 5
    assert mercator.zoom_for_pixel_size(mercator.resolution(5) * 0.99) == 6
    assert mercator.zoom_for_pixel_size(1e9) == 0
    assert mercator.zoom_for_pixel_size(1e-9) == MAX_ZOOM_LEVEL


def test_zoom_for_length(mercator: GlobalMercator) -> None:
    assert mercator.zoom_for_length(200.0) == 10
    assert mercator.zoom_for_length(1e-12) == MAX_ZOOM_LEVEL
