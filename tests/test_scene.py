import numpy as np
import pytest

from camera import Camera, normalize
from scene_settings import SceneSettings
from surfaces.sphere_grid import AEK_GRID, GRID_COLUMNS, RU_GRID, SphereGrid


def test_ru_grid_layout():
    grid = SphereGrid(RU_GRID)
    picture = grid.to_ascii()

    assert len(picture) == 6
    assert picture[0] == "0110001100000001110"
    assert picture[5] == "0000001011100001110"
    assert len(grid) == sum(row.count("1") for row in picture)


def test_aek_grid_picture_round_trips():
    grid = SphereGrid(AEK_GRID)
    assert SphereGrid.from_ascii(grid.to_ascii()) == grid
    assert len(grid.rows) == 9


def test_from_ascii_reads_highest_bit_first():
    grid = SphereGrid.from_ascii(["#.#", ".#."])
    assert grid.rows == (0b101, 0b010)
    assert grid.columns == 3


def test_from_ascii_rejects_unknown_characters():
    with pytest.raises(ValueError):
        SphereGrid.from_ascii(["1x0"])


def test_centers_follow_bit_positions():
    grid = SphereGrid([0b100, 0b001], columns=3)
    centers = grid.centers()

    assert len(centers) == len(grid) == 2
    np.testing.assert_array_equal(centers[0], [2.0, 0.0, 4.0])
    np.testing.assert_array_equal(centers[1], [0.0, 0.0, 5.0])


@pytest.mark.parametrize("rows", [[-1], [1 << GRID_COLUMNS]])
def test_grid_rejects_invalid_rows(rows):
    with pytest.raises(ValueError):
        SphereGrid(rows)


def test_ru_preset():
    settings = SceneSettings.preset("ru")
    assert settings.grid == SphereGrid(RU_GRID)
    assert settings.samples == 256
    assert settings.gain == pytest.approx(224.0 / 256)
    assert not settings.ground_specular
    np.testing.assert_array_equal(settings.ambient, [13.0, 13.0, 13.0])


def test_aek_preset():
    settings = SceneSettings.preset("aek")
    assert settings.grid == SphereGrid(AEK_GRID)
    assert settings.samples == 64
    assert settings.gain == 3.5
    assert settings.ground_specular


def test_preset_overrides_keep_gain_rule():
    assert SceneSettings.preset("ru", samples=32).gain == pytest.approx(7.0)
    assert SceneSettings.preset("aek", samples=32).gain == 3.5


def test_unknown_preset():
    with pytest.raises(ValueError, match="Unknown preset"):
        SceneSettings.preset("xyz")


@pytest.mark.parametrize("kwargs", [dict(samples=0), dict(max_depth=-1)])
def test_settings_validation(kwargs):
    with pytest.raises(ValueError):
        SceneSettings(**kwargs)


def test_normalize_rejects_zero_vector():
    with pytest.raises(ValueError):
        normalize(np.zeros(3))


def test_camera_basis_at_reference_width():
    camera = Camera().setup(512)

    assert np.linalg.norm(camera.av) == pytest.approx(0.002)
    assert np.linalg.norm(camera.bv) == pytest.approx(0.002)
    assert np.dot(camera.av, camera.bv) == pytest.approx(0.0, abs=1e-12)
    assert camera.av[2] == pytest.approx(0.0)
    assert camera.lens_scale == pytest.approx(99.0)


def test_camera_keeps_field_of_view_across_widths():
    small = Camera().setup(64)
    large = Camera().setup(512)
    np.testing.assert_allclose(small.av * 64, large.av * 512)
    np.testing.assert_allclose(small.cv, large.cv)
    np.testing.assert_allclose(small.av * small.lens_scale, large.av * large.lens_scale)


def test_generated_rays_are_unit_length():
    camera = Camera().setup(16)
    rng = np.random.default_rng(3)
    for x, y in [(1, 1), (8, 8), (16, 16)]:
        origin, direction = camera.generate_ray(x, y, rng)
        assert np.linalg.norm(direction) == pytest.approx(1.0)
        assert np.linalg.norm(origin - camera.position) < 0.2


def test_pinhole_camera_does_not_move_the_origin():
    camera = Camera(aperture=0.0).setup(16)
    origin, _ = camera.generate_ray(4, 4, np.random.default_rng(0))
    np.testing.assert_array_equal(origin, camera.position)
