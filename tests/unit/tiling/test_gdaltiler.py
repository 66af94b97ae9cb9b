from pathlib import Path

import numpy as np
import pytest

from rastertiler.core.errors import (
    ConfigurationError,
    GeoreferenceError,
    OutOfBoundsError,
    RasterIOError,
    RescaleError,
)
from rastertiler.core.models import BandStatistics, GeoExtent, RasterDimensions
from rastertiler.tiling.gdaltiler import GDALTiler, normalize_proj4
from rastertiler.tiling.rescale import SampleKind

# 100 x 100 pixels of 200 m, covering (1000, 1000) - (21000, 21000) in EPSG:3857.
# At zoom 10 the whole raster sits inside tile (512, 512).
SMALL_GT = (1000.0, 200.0, 0.0, 21000.0, 0.0, -200.0)

PROJ4 = {
    "EPSG:3857": "+proj=merc +a=6378137 +b=6378137 +units=m +no_defs",
    "EPSG:4326": "+proj=longlat +datum=WGS84 +no_defs",
}


class StubHandle:
    def __init__(self, name: str) -> None:
        self.name = name
        self.closed = False
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class StubBackend:
    def __init__(
        self,
        *,
        width: int = 100,
        height: int = 100,
        bands: int = 1,
        dtype: str = "uint16",
        geotransform=SMALL_GT,
        warped_geotransform=None,
        projection="EPSG:3857",
        gcps=(0, None),
        interpretations=None,
        mask_flags=("all_valid",),
        cached=None,
        computed=None,
        fill: float = 500,
    ) -> None:
        self.width = width
        self.height = height
        self.bands = bands
        self.dtype = dtype
        self.gt = geotransform
        self.warped_gt = warped_geotransform
        self.srs = projection
        self.gcp_info = gcps
        self.interpretations = interpretations or ["gray"] * bands
        self.flags = list(mask_flags)
        self.cached = dict(cached if cached is not None else {b: BandStatistics(0.0, 1000.0) for b in range(1, 4)})
        self.computed = dict(computed or {})
        self.fill = fill
        self.ready = False
        self.handles = []
        self.reprojected_to = None
        self.reads = []
        self.mask_reads = []
        self.stat_calls = []

    def ensure_ready(self) -> None:
        self.ready = True

    def open(self, path: Path) -> StubHandle:
        handle = StubHandle("source")
        self.handles.append(handle)
        return handle

    def close(self, handle: StubHandle) -> None:
        handle.close()

    def dimensions(self, handle) -> RasterDimensions:  # type: ignore[no-untyped-def]
        return RasterDimensions(self.width, self.height, self.bands)

    def geotransform(self, handle):  # type: ignore[no-untyped-def]
        if handle.name == "warped" and self.warped_gt is not None:
            return self.warped_gt
        return self.gt

    def projection(self, handle):  # type: ignore[no-untyped-def]
        return self.srs

    def gcps(self, handle):  # type: ignore[no-untyped-def]
        return self.gcp_info

    def srs_to_proj4(self, srs: str) -> str:
        return PROJ4.get(srs, srs)

    def reproject(self, handle, crs: str) -> StubHandle:  # type: ignore[no-untyped-def]
        self.reprojected_to = crs
        warped = StubHandle("warped")
        self.handles.append(warped)
        return warped

    def data_type(self, handle) -> str:  # type: ignore[no-untyped-def]
        return self.dtype

    def color_interpretations(self, handle):  # type: ignore[no-untyped-def]
        return self.interpretations

    def mask_flags(self, handle, band: int):  # type: ignore[no-untyped-def]
        return self.flags

    def read_window(self, handle, extent, bands, out_size):  # type: ignore[no-untyped-def]
        self.reads.append((handle.name, extent, list(bands), out_size))
        width, height = out_size
        return np.full((len(bands), height, width), self.fill, dtype=self.dtype)

    def read_mask(self, handle, band, extent, out_size):  # type: ignore[no-untyped-def]
        self.mask_reads.append((handle.name, band, extent, out_size))
        width, height = out_size
        return np.full((height, width), 255, dtype=np.uint8)

    def band_statistics(self, handle, band: int, force: bool):  # type: ignore[no-untyped-def]
        self.stat_calls.append((handle.name, band, force))
        if band in self.cached:
            return self.cached[band]
        if not force:
            return None
        return self.computed.get(band)

    def cache_band_statistics(self, handle, band: int, stats: BandStatistics) -> None:  # type: ignore[no-untyped-def]
        self.cached[band] = stats


class StubEncoder:
    def __init__(self, formats=("png", "webp")) -> None:  # type: ignore[no-untyped-def]
        self.formats = set(formats)
        self.calls = []

    def supports(self, tile_format: str) -> bool:
        return tile_format in self.formats

    def encode(self, tile_format, target, canvas) -> None:  # type: ignore[no-untyped-def]
        self.calls.append((tile_format, target, canvas.copy()))
        Path(target).write_bytes(b"tile")


@pytest.fixture()
def source(tmp_path: Path) -> Path:
    path = tmp_path / "input.tif"
    path.touch()
    return path


def make_tiler(source: Path, backend: StubBackend, encoder=None, **kwargs) -> GDALTiler:  # type: ignore[no-untyped-def]
    return GDALTiler(
        source,
        source.parent / "out",
        backend=backend,
        encoder=encoder or StubEncoder(),
        **kwargs,
    )


def test_construction_derives_bounds_and_zoom_range(source: Path) -> None:
    backend = StubBackend()
    tiler = make_tiler(source, backend)

    assert backend.ready
    assert not tiler.reprojected
    assert tiler.bands == 1
    assert tiler.sample_kind is SampleKind.UINT16
    assert (tiler.bounds.min.x, tiler.bounds.min.y) == (1000.0, 1000.0)
    assert (tiler.bounds.max.x, tiler.bounds.max.y) == (21000.0, 21000.0)
    # 200 m pixels need zoom 10; the whole raster fits a zoom 11 tile
    assert tiler.max_zoom == 10
    assert tiler.min_zoom == 11
    coords = tiler.get_min_max_coords_for_z(10)
    assert (coords.min.x, coords.min.y, coords.max.x, coords.max.y) == (512, 512, 512, 512)


def test_tile_covers_entire_small_raster(source: Path) -> None:
    backend = StubBackend()
    encoder = StubEncoder()
    tiler = make_tiler(source, backend, encoder)

    path = tiler.tile(10, 512, 512)

    assert path == source.parent / "out" / "10" / "512" / "512.png"
    assert path.exists()
    handle_name, extent, bands, out_size = backend.reads[0]
    assert handle_name == "source"
    assert extent == GeoExtent(0, 0, 100, 100)
    assert bands == [1]
    assert out_size == (130, 131)

    tile_format, target, canvas = encoder.calls[0]
    assert tile_format == "png"
    assert target == path
    assert canvas.shape == (2, 256, 256)
    assert canvas.dtype == np.uint8
    # 500 of 0..1000 maps to 127; data sits at the destination offset only
    assert (canvas[0, 117:248, 5:135] == 127).all()
    assert (canvas[1, 117:248, 5:135] == 255).all()
    assert canvas[:, :117, :].sum() == 0
    assert canvas[:, :, :5].sum() == 0
    assert canvas[:, 248:, :].sum() == 0
    assert canvas[:, :, 135:].sum() == 0


def test_geo_query_inside_raster_fills_whole_canvas(source: Path) -> None:
    backend = StubBackend(width=10000, height=10000, geotransform=(0.0, 10.0, 0.0, 100000.0, 0.0, -10.0))
    tiler = make_tiler(source, backend)
    bounds = tiler.mercator.tile_bounds(512, 512, 10)

    result = tiler.geo_query(bounds.min.x, bounds.max.y, bounds.max.x, bounds.min.y, 256)

    assert result.w == GeoExtent(0, 0, 256, 256)
    assert result.r.x == 0
    assert result.r.xsize == 3914
    assert result.r.y + result.r.ysize == 10000


def test_geo_query_outside_raster_is_empty(source: Path) -> None:
    tiler = make_tiler(source, StubBackend())

    left = tiler.geo_query(-50000.0, 60000.0, -40000.0, 50000.0, 256)
    right = tiler.geo_query(60000.0, 20000.0, 70000.0, 10000.0, 256)

    assert left.r.empty or left.w.empty
    assert right.r.empty or right.w.empty


def test_tile_without_pixel_intersection_fails(source: Path) -> None:
    backend = StubBackend()
    tiler = make_tiler(source, backend)

    # Zoom 0 passes the index check, but the raster is far below one output pixel
    with pytest.raises(OutOfBoundsError):
        tiler.tile(0, 0, 0)
    assert backend.reads == []


def test_tile_beyond_max_x_is_out_of_bounds(source: Path) -> None:
    backend = StubBackend()
    encoder = StubEncoder()
    tiler = make_tiler(source, backend, encoder)
    coords = tiler.get_min_max_coords_for_z(10)

    with pytest.raises(OutOfBoundsError):
        tiler.tile(10, int(coords.max.x) + 1, 512)
    assert backend.reads == []
    assert encoder.calls == []


def test_tms_rows_are_flipped_but_path_keeps_request_row(source: Path) -> None:
    backend = StubBackend()
    tiler = make_tiler(source, backend, tms=True)

    path = tiler.tile(10, 512, 511)

    assert path.name == "511.png"
    assert backend.reads[0][1] == GeoExtent(0, 0, 100, 100)


def test_statistics_are_computed_once_and_cached(source: Path) -> None:
    backend = StubBackend(cached={}, computed={1: BandStatistics(0.0, 1000.0)})
    tiler = make_tiler(source, backend)

    tiler.tile(10, 512, 512)
    assert backend.stat_calls == [("source", 1, False), ("source", 1, True)]
    assert backend.cached[1] == BandStatistics(0.0, 1000.0)

    backend.stat_calls.clear()
    tiler.tile(10, 512, 512)
    assert backend.stat_calls == [("source", 1, False)]


def test_statistics_failure_is_fatal(source: Path) -> None:
    backend = StubBackend(cached={}, computed={})
    tiler = make_tiler(source, backend)

    with pytest.raises(RasterIOError):
        tiler.tile(10, 512, 512)


def test_global_range_spans_all_bands(source: Path) -> None:
    backend = StubBackend(
        bands=3,
        cached={
            1: BandStatistics(0.0, 100.0),
            2: BandStatistics(50.0, 1000.0),
            3: BandStatistics(10.0, 500.0),
        },
    )
    encoder = StubEncoder()
    tiler = make_tiler(source, backend, encoder)

    tiler.tile(10, 512, 512)

    canvas = encoder.calls[0][2]
    assert canvas.shape == (4, 256, 256)
    # Band 1 would saturate with its own range; the shared 0..1000 range keeps it at 127
    assert (canvas[:3, 117:248, 5:135] == 127).all()


def test_degenerate_range_is_widened(source: Path) -> None:
    backend = StubBackend(cached={1: BandStatistics(5.0, 5.0)}, fill=5)
    encoder = StubEncoder()
    tiler = make_tiler(source, backend, encoder)

    tiler.tile(10, 512, 512)

    assert (encoder.calls[0][2][0, 117:248, 5:135] == 0).all()


def test_degenerate_range_at_large_magnitude_fails(source: Path) -> None:
    backend = StubBackend(dtype="float64", cached={1: BandStatistics(1e20, 1e20)}, fill=1e20)
    tiler = make_tiler(source, backend)

    with pytest.raises(RescaleError):
        tiler.tile(10, 512, 512)


def test_byte_rasters_skip_statistics(source: Path) -> None:
    backend = StubBackend(dtype="uint8", fill=42)
    encoder = StubEncoder()
    tiler = make_tiler(source, backend, encoder)

    tiler.tile(10, 512, 512)

    assert backend.stat_calls == []
    assert (encoder.calls[0][2][0, 117:248, 5:135] == 42).all()


def test_explicit_alpha_band_is_preferred(source: Path) -> None:
    backend = StubBackend(bands=4, dtype="uint8", interpretations=["red", "green", "blue", "alpha"], fill=200)
    encoder = StubEncoder()
    tiler = make_tiler(source, backend, encoder)

    tiler.tile(10, 512, 512)

    assert tiler.bands == 3
    assert [read[2] for read in backend.reads] == [[1, 2, 3], [4]]
    assert backend.mask_reads == []
    assert (encoder.calls[0][2][3, 117:248, 5:135] == 200).all()


def test_mask_band_used_without_alpha_band(source: Path) -> None:
    backend = StubBackend(dtype="uint8", fill=42)
    tiler = make_tiler(source, backend)

    tiler.tile(10, 512, 512)

    assert backend.mask_reads == [("source", 1, GeoExtent(0, 0, 100, 100), (130, 131))]


@pytest.mark.parametrize(
    ("bands", "interpretations", "flags", "expected"),
    [
        (1, None, ("all_valid",), 1),
        (2, None, ("all_valid",), 1),
        (3, None, ("all_valid",), 3),
        (3, ["gray", "gray", "alpha"], ("all_valid",), 2),
        (3, None, ("per_dataset", "alpha"), 2),
        (4, None, ("all_valid",), 3),
        (5, None, ("all_valid",), 5),
    ],
)
def test_data_bands_count(source: Path, bands, interpretations, flags, expected) -> None:  # type: ignore[no-untyped-def]
    backend = StubBackend(bands=bands, interpretations=interpretations, mask_flags=flags)
    tiler = make_tiler(source, backend)

    assert tiler.bands == expected


def test_canvas_is_capped_at_three_colour_bands(source: Path) -> None:
    backend = StubBackend(bands=5, dtype="uint8", fill=42)
    encoder = StubEncoder()
    tiler = make_tiler(source, backend, encoder)

    tiler.tile(10, 512, 512)

    assert backend.reads[0][2] == [1, 2, 3]
    assert encoder.calls[0][2].shape == (4, 256, 256)


def test_reprojection_keeps_statistics_on_source(source: Path) -> None:
    backend = StubBackend(projection="EPSG:4326")
    tiler = make_tiler(source, backend)

    tiler.tile(10, 512, 512)

    assert tiler.reprojected
    assert backend.reprojected_to == "EPSG:3857"
    assert backend.reads[0][0] == "warped"
    assert {call[0] for call in backend.stat_calls} == {"source"}


def test_gcp_projection_is_accepted(source: Path) -> None:
    backend = StubBackend(projection=None, gcps=(4, "EPSG:4326"))
    tiler = make_tiler(source, backend)

    assert tiler.reprojected


def test_gcp_only_raster_is_warped_even_in_target_projection(source: Path) -> None:
    identity = (0.0, 1.0, 0.0, 0.0, 0.0, 1.0)
    backend = StubBackend(
        geotransform=identity, warped_geotransform=SMALL_GT, projection=None, gcps=(4, "EPSG:3857")
    )
    tiler = make_tiler(source, backend)

    assert tiler.reprojected
    assert backend.reprojected_to == "EPSG:3857"
    assert tiler.geotransform == SMALL_GT
    assert (tiler.bounds.min.x, tiler.bounds.max.y) == (1000.0, 21000.0)


def test_identity_geotransform_after_warp_fails(source: Path) -> None:
    identity = (0.0, 1.0, 0.0, 0.0, 0.0, 1.0)
    backend = StubBackend(geotransform=identity, projection=None, gcps=(4, "EPSG:3857"))

    with pytest.raises(GeoreferenceError, match="Cannot fetch geotransform"):
        make_tiler(source, backend)
    assert all(handle.closed for handle in backend.handles)


def test_south_up_raster_is_rejected(source: Path) -> None:
    backend = StubBackend(geotransform=(1000.0, 200.0, 0.0, 1000.0, 0.0, 200.0))

    with pytest.raises(ConfigurationError, match="south-up"):
        make_tiler(source, backend)
    assert all(handle.closed for handle in backend.handles)


def test_missing_projection_fails_and_releases_source(source: Path) -> None:
    backend = StubBackend(projection=None)

    with pytest.raises(GeoreferenceError):
        make_tiler(source, backend)
    assert backend.handles[0].close_calls == 1


def test_identity_geotransform_without_gcps_fails(source: Path) -> None:
    backend = StubBackend(geotransform=(0.0, 1.0, 0.0, 0.0, 0.0, 1.0))

    with pytest.raises(GeoreferenceError):
        make_tiler(source, backend)
    assert all(handle.closed for handle in backend.handles)


def test_zero_pixel_size_is_configuration_error(source: Path) -> None:
    backend = StubBackend(geotransform=(1000.0, 0.0, 0.0, 21000.0, 0.0, -200.0))

    with pytest.raises(ConfigurationError):
        make_tiler(source, backend)
    assert all(handle.closed for handle in backend.handles)


def test_raster_without_bands_is_rejected(source: Path) -> None:
    with pytest.raises(ConfigurationError):
        make_tiler(source, StubBackend(bands=0))


def test_unsupported_sample_type_is_rejected(source: Path) -> None:
    with pytest.raises(ConfigurationError):
        make_tiler(source, StubBackend(dtype="complex64"))


def test_encoder_must_support_format(source: Path) -> None:
    backend = StubBackend()

    with pytest.raises(ConfigurationError):
        make_tiler(source, backend, StubEncoder(formats=("png",)), tile_format="webp")
    assert backend.handles == []


def test_close_releases_every_handle_once(source: Path) -> None:
    backend = StubBackend(projection="EPSG:4326")

    with make_tiler(source, backend) as tiler:
        tiler.tile(10, 512, 512)
    tiler.close()

    assert tiler.closed
    assert [handle.close_calls for handle in backend.handles] == [1, 1]
    with pytest.raises(RasterIOError):
        tiler.tile(10, 512, 512)


def test_normalize_proj4_ignores_token_order() -> None:
    assert normalize_proj4("+units=m +proj=merc") == normalize_proj4("+proj=merc  +units=m")
