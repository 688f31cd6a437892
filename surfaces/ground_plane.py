import numpy as np


class GroundPlane:
    """The infinite floor z = 0."""

    def __init__(self, epsilon=0.01):
        self.normal = np.array([0.0, 0.0, 1.0])
        self.normal.setflags(write=False)
        self.epsilon = epsilon

    def intersect(self, ray_origin, ray_direction):
        """Compute ray-floor intersection. Returns (t, normal) or (None, None)."""
        if ray_direction[2] == 0:
            return None, None

        t = -ray_origin[2] / ray_direction[2]

        if t <= self.epsilon:
            return None, None

        return t, self.normal
