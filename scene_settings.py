import numpy as np

from surfaces.ground_plane import GroundPlane
from surfaces.sphere_grid import AEK_GRID, RU_GRID, SphereGrid


class SceneSettings:
    """
    Everything the renderer needs besides the camera.

    gain defaults to 224 / samples so the accumulated brightness does not
    depend on the sample count.
    """

    PRESETS = {
        "ru": dict(grid=RU_GRID, samples=256, gain=None, ground_specular=False),
        "aek": dict(grid=AEK_GRID, samples=64, gain=3.5, ground_specular=True),
    }

    def __init__(self, grid=RU_GRID, samples=256, gain=None, ambient=(13.0, 13.0, 13.0),
                 ground_specular=False, max_depth=8, light_position=(9.0, 9.0, 16.0),
                 sky_color=(0.7, 0.6, 1.0), epsilon=0.01):
        if samples <= 0:
            raise ValueError("samples must be positive, got {}".format(samples))
        if max_depth < 0:
            raise ValueError("max_depth must be non-negative, got {}".format(max_depth))

        self.grid = grid if isinstance(grid, SphereGrid) else SphereGrid(grid)
        self.samples = int(samples)
        self.gain = 224.0 / self.samples if gain is None else float(gain)
        self.ambient = np.array(ambient, dtype=np.float64)
        self.ground_specular = bool(ground_specular)
        self.max_depth = int(max_depth)
        self.light_position = np.array(light_position, dtype=np.float64)
        self.sky_color = np.array(sky_color, dtype=np.float64)
        self.epsilon = float(epsilon)
        self.ground = GroundPlane(self.epsilon)

    @classmethod
    def preset(cls, name, **overrides):
        """Build one of the named configurations, with optional field overrides."""
        if name not in cls.PRESETS:
            raise ValueError("Unknown preset: {} (expected one of {})".format(
                name, ", ".join(sorted(cls.PRESETS))))
        params = dict(cls.PRESETS[name])
        params.update(overrides)
        return cls(**params)

    def __repr__(self):
        return ("SceneSettings(spheres={}, samples={}, gain={:.4f}, ground_specular={}, "
                "max_depth={})".format(len(self.grid), self.samples, self.gain,
                                       self.ground_specular, self.max_depth))
