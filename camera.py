import numpy as np


# Width the pixel scale and lens were tuned for
REFERENCE_WIDTH = 512
REFERENCE_PIXEL_SCALE = 0.002


def normalize(v):
    """Normalize a vector. A zero vector has no direction and is rejected."""
    norm = np.linalg.norm(v)
    if norm == 0:
        raise ValueError("Cannot normalize a zero-length vector")
    return v / norm


class Camera:
    def __init__(self, position=(16.0, 16.0, 8.0), direction=(-6.0, -16.0, 0.0),
                 focus_distance=16.0, aperture=99.0):
        self.position = np.array(position, dtype=np.float64)
        self.direction = np.array(direction, dtype=np.float64)
        self.focus_distance = focus_distance
        self.aperture = aperture

        self.width = None
        self.av = None
        self.bv = None
        self.cv = None
        self.lens_scale = None

    def setup(self, width):
        """
        Compute the pixel basis for a square image of the given width.

        av and bv step one pixel across and down the image plane, cv is the
        offset from the eye to the image corner.
        """
        up = np.array([0.0, 0.0, 1.0])
        pixel_scale = REFERENCE_PIXEL_SCALE * REFERENCE_WIDTH / width

        gv = normalize(self.direction)
        self.av = normalize(np.cross(up, gv)) * pixel_scale
        self.bv = normalize(np.cross(gv, self.av)) * pixel_scale
        self.cv = (self.av + self.bv) * -(width / 2.0) + gv

        # Keeps the lens the same size in world units at every width
        self.lens_scale = self.aperture * REFERENCE_PIXEL_SCALE / pixel_scale
        self.width = width
        return self

    def generate_ray(self, x, y, rng):
        """
        Generate a jittered ray through pixel (x, y).

        The origin moves across the lens by t and the direction subtracts the
        same t, so everything at focus_distance stays sharp.
        """
        r = rng.random(4)
        t = (self.av * (r[0] - 0.5) + self.bv * (r[1] - 0.5)) * self.lens_scale

        origin = self.position + t
        target = (self.av * (r[2] + x) + self.bv * (y + r[3]) + self.cv) * self.focus_distance
        direction = normalize(target - t)

        return origin, direction
