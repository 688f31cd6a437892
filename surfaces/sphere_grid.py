import numpy as np
from numba import njit


# Column count of both built-in pictures
GRID_COLUMNS = 19

# "aek" logo, 9 rows of 19 columns
AEK_GRID = (247570, 280596, 280600, 249748, 18578, 18577, 231184, 16, 16)

# ".ru" logo, 6 rows of 19 columns
RU_GRID = (202766, 202779, 6150, 6152, 7579, 5902)


@njit(cache=True)
def _grid_intersect_jit(ox, oy, oz, dx, dy, dz, rows, columns, max_t, epsilon):
    """
    Brute force scan of every occupied cell (JIT-compiled).

    Returns (hit, t, nx, ny, nz); t is max_t when nothing closer was found.
    """
    best_t = max_t
    hit = False
    nx, ny, nz = 0.0, 0.0, 1.0

    for k in range(columns):
        for j in range(rows.shape[0]):
            if (rows[j] >> k) & 1 == 0:
                continue

            # Origin relative to the center (k, 0, j + 4)
            px = ox - k
            py = oy
            pz = oz - (j + 4.0)

            b = px*dx + py*dy + pz*dz
            c = px*px + py*py + pz*pz - 1.0
            q = b*b - c

            if q > 0.0:
                s = -b - np.sqrt(q)
                if s < best_t and s > epsilon:
                    best_t = s
                    hx = px + dx*s
                    hy = py + dy*s
                    hz = pz + dz*s
                    norm = np.sqrt(hx*hx + hy*hy + hz*hz)
                    nx = hx / norm
                    ny = hy / norm
                    nz = hz / norm
                    hit = True

    return hit, best_t, nx, ny, nz


class SphereGrid:
    """
    Unit spheres packed into a bitmask picture.

    Bit k of row j set means a sphere of radius 1 centered at (k, 0, j + 4).
    """

    def __init__(self, rows, columns=GRID_COLUMNS):
        rows = tuple(int(r) for r in rows)
        if columns <= 0:
            raise ValueError("Grid needs at least one column, got {}".format(columns))
        for j, row in enumerate(rows):
            if row < 0:
                raise ValueError("Row {} is negative: {}".format(j, row))
            if row >> columns:
                raise ValueError("Row {} has bits beyond column {}: {}".format(j, columns - 1, row))

        self.rows = rows
        self.columns = columns
        self._row_array = np.array(rows, dtype=np.int64)

    @classmethod
    def from_ascii(cls, lines):
        """
        Build a grid from a picture drawn with '1'/'#' (sphere) and '0'/'.'/' '.

        The leftmost character is the highest column bit, the first line is row 0.
        """
        lines = [line.rstrip("\n") for line in lines]
        columns = max((len(line) for line in lines), default=0)
        rows = []
        for line in lines:
            value = 0
            for position, char in enumerate(line.ljust(columns)):
                if char in "1#":
                    value |= 1 << (columns - 1 - position)
                elif char not in "0. ":
                    raise ValueError("Unexpected character in grid picture: {!r}".format(char))
            rows.append(value)
        return cls(rows, columns)

    def to_ascii(self):
        """Render the grid as the picture accepted by from_ascii."""
        return [
            "".join("1" if (row >> k) & 1 else "0" for k in reversed(range(self.columns)))
            for row in self.rows
        ]

    def centers(self):
        """Centers of every occupied cell, row by row."""
        centers = []
        for j, row in enumerate(self.rows):
            for k in range(self.columns):
                if (row >> k) & 1:
                    centers.append(np.array([k, 0.0, j + 4.0]))
        return centers

    def __len__(self):
        return sum(bin(row).count("1") for row in self.rows)

    def __eq__(self, other):
        if not isinstance(other, SphereGrid):
            return NotImplemented
        return self.rows == other.rows and self.columns == other.columns

    def __hash__(self):
        return hash((self.rows, self.columns))

    def __repr__(self):
        return "SphereGrid(rows={}, columns={})".format(self.rows, self.columns)

    def intersect(self, ray_origin, ray_direction, max_t=np.inf, epsilon=0.01):
        """
        Find the closest sphere hit nearer than max_t.

        Returns (t, normal) or (None, None).
        """
        hit, t, nx, ny, nz = _grid_intersect_jit(
            float(ray_origin[0]), float(ray_origin[1]), float(ray_origin[2]),
            float(ray_direction[0]), float(ray_direction[1]), float(ray_direction[2]),
            self._row_array, self.columns, float(max_t), float(epsilon)
        )
        if not hit:
            return None, None
        return t, np.array([nx, ny, nz])
