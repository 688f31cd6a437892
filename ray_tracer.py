import argparse
import itertools
import multiprocessing as mp
import sys
import time

import numpy as np
from PIL import Image

from camera import Camera, normalize
from scene_settings import SceneSettings


# Hit classification returned by trace
SKY = 0
GROUND = 1
SPHERE = 2

UP = np.array([0.0, 0.0, 1.0])
UP.setflags(write=False)

GROUND_RED = np.array([3.0, 1.0, 1.0])
GROUND_WHITE = np.array([3.0, 3.0, 3.0])

# Exponent of the Phong highlight
SHININESS = 99


def reflect(d, n):
    """Reflect direction d around normal n."""
    return d - 2 * np.dot(d, n) * n


def trace(ray_origin, ray_direction, scene_settings):
    """
    Find the nearest hit along the ray.

    Returns:
        (SKY, inf, UP) if the ray escapes
        (GROUND, t, UP) if the floor is the nearest hit
        (SPHERE, t, normal) if a sphere is the nearest hit
    """
    nearest_t = np.inf
    kind = SKY
    nearest_normal = UP

    t, normal = scene_settings.ground.intersect(ray_origin, ray_direction)
    if t is not None:
        nearest_t = t
        kind = GROUND
        nearest_normal = normal

    t, normal = scene_settings.grid.intersect(ray_origin, ray_direction,
                                              nearest_t, scene_settings.epsilon)
    if t is not None:
        nearest_t = t
        kind = SPHERE
        nearest_normal = normal

    return kind, nearest_t, nearest_normal


def in_shadow(point, light_dir, scene_settings):
    """True when anything blocks the way from point towards the light."""
    return trace(point, light_dir, scene_settings)[0] != SKY


def shade(ray_origin, ray_direction, scene_settings, rng, depth=0):
    """
    Trace a ray through the scene and return the color.

    Spheres are perfect half-strength mirrors, so every bounce recurses with
    depth + 1; past scene_settings.max_depth the ray contributes black.
    """
    if depth > scene_settings.max_depth:
        return np.zeros(3)

    kind, t, normal = trace(ray_origin, ray_direction, scene_settings)

    if kind == SKY:
        # Darkens towards the horizon
        return scene_settings.sky_color * (1.0 - ray_direction[2]) ** 4

    hit_point = ray_origin + ray_direction * t

    # Light position jittered per call for soft shadows
    jitter = rng.random(2)
    light_pos = scene_settings.light_position + np.array([jitter[0], jitter[1], 0.0])
    light_dir = normalize(light_pos - hit_point)
    reflect_dir = reflect(ray_direction, normal)

    lambert = np.dot(light_dir, normal)
    if lambert < 0 or in_shadow(hit_point, light_dir, scene_settings):
        lambert = 0.0

    specular = (np.dot(light_dir, reflect_dir) * (1.0 if lambert > 0 else 0.0)) ** SHININESS

    if kind == GROUND:
        tile = hit_point * 0.2
        # fmod keeps the parity test defined for non-finite hit points
        with np.errstate(invalid="ignore"):
            odd = np.fmod(np.ceil(tile[0]) + np.ceil(tile[1]), 2.0) != 0
        if odd:
            color = GROUND_RED * (lambert * 0.2 + 0.1)
        else:
            color = GROUND_WHITE * (lambert * 0.2 + 0.1)
        if scene_settings.ground_specular:
            color = color + specular
        return color

    reflected = shade(hit_point, reflect_dir, scene_settings, rng, depth + 1)
    return np.full(3, specular) + reflected * 0.5


def sample_pixel(x, y, camera, scene_settings, rng):
    """
    Integrate scene_settings.samples lens and sub-pixel jittered rays.

    The result is unclamped; it starts from the ambient base color.
    """
    color = scene_settings.ambient.copy()
    for _ in range(scene_settings.samples):
        ray_origin, ray_direction = camera.generate_ray(x, y, rng)
        color += shade(ray_origin, ray_direction, scene_settings, rng) * scene_settings.gain
    return color


def pixel_tasks(width):
    """
    Enumerate (index, x, y) for every pixel in output order.

    Rows run from y = width down to 1, and each row from x = width down to 1.
    """
    columns = range(width, 0, -1)
    for index, (y, x) in enumerate(itertools.product(columns, columns)):
        yield index, x, y


def task_rng(entropy, index):
    """Independent random stream for one pixel, reproducible from (entropy, index)."""
    return np.random.default_rng(np.random.SeedSequence(entropy, spawn_key=(index,)))


def _render_entropy(seed):
    if seed is None:
        return np.random.SeedSequence().entropy
    return seed


def assemble_frame(results, width):
    """
    Place (index, color) results, in any completion order, into a
    (width, width, 3) image in raster order.
    """
    num_pixels = width * width
    image = np.zeros((num_pixels, 3), dtype=np.float64)
    received = np.zeros(num_pixels, dtype=bool)

    for index, color in results:
        if index < 0 or index >= num_pixels:
            raise RuntimeError("Pixel index {} outside a {}x{} frame".format(index, width, width))
        if received[index]:
            raise RuntimeError("Pixel {} was delivered twice".format(index))
        received[index] = True
        image[index] = color

    missing = num_pixels - int(received.sum())
    if missing:
        raise RuntimeError("{} of {} pixels never arrived".format(missing, num_pixels))

    return image.reshape((width, width, 3))


class _Progress:
    """Writes one '.' to stderr per width completed pixels."""

    def __init__(self, width, quiet):
        self.width = width
        self.quiet = quiet
        self.completed = 0

    def start(self):
        if not self.quiet:
            print("Tracing ...", end="", file=sys.stderr, flush=True)

    def advance(self):
        self.completed += 1
        if not self.quiet and self.completed % self.width == 0:
            print(".", end="", file=sys.stderr, flush=True)

    def finish(self):
        if not self.quiet:
            print(" done.", file=sys.stderr, flush=True)


def render(camera, scene_settings, width, seed=None, quiet=False):
    """
    Render the scene to an image array (sequential version).
    """
    start_time = time.time()
    camera.setup(width)
    entropy = _render_entropy(seed)

    if not quiet:
        print(f"Rendering {width}x{width} sequentially: {scene_settings}")

    progress = _Progress(width, quiet)
    progress.start()
    results = []
    for index, x, y in pixel_tasks(width):
        rng = task_rng(entropy, index)
        results.append((index, sample_pixel(x, y, camera, scene_settings, rng)))
        progress.advance()
    progress.finish()

    image = assemble_frame(results, width)

    if not quiet:
        print(f"Rendering complete in {time.time() - start_time:.1f}s")

    return image


# Read-only state for pool workers (set by _init_worker)
_worker_data = {}


def _init_worker(camera, scene_settings, entropy):
    _worker_data['camera'] = camera
    _worker_data['scene_settings'] = scene_settings
    _worker_data['entropy'] = entropy


def _render_pixel(task):
    """
    Worker function to render one pixel.
    Called by multiprocessing pool.

    Args:
        task: tuple of (index, x, y)

    Returns:
        (index, color)
    """
    index, x, y = task
    rng = task_rng(_worker_data['entropy'], index)
    color = sample_pixel(x, y, _worker_data['camera'], _worker_data['scene_settings'], rng)
    return index, color


def render_parallel(camera, scene_settings, width, num_workers=12, seed=None, quiet=False,
                    pixel_worker=_render_pixel):
    """
    Render the scene using multiprocessing, one task per pixel.

    Results come back in completion order tagged with their pixel index and
    are reassembled into raster order once all of them have arrived.
    pixel_worker must be a picklable module-level function taking an
    (index, x, y) task and returning (index, color).
    """
    start_time = time.time()
    camera.setup(width)
    entropy = _render_entropy(seed)

    if not quiet:
        print(f"Parallel rendering {width}x{width} with {num_workers} workers: {scene_settings}")

    progress = _Progress(width, quiet)
    progress.start()
    results = []
    init_args = (camera, scene_settings, entropy)
    with mp.Pool(num_workers, initializer=_init_worker, initargs=init_args) as pool:
        for result in pool.imap_unordered(pixel_worker, pixel_tasks(width), chunksize=width):
            results.append(result)
            progress.advance()
    progress.finish()

    image = assemble_frame(results, width)

    if not quiet:
        print(f"Parallel rendering complete in {time.time() - start_time:.1f}s")

    return image


def ppm_header(width, height):
    return f"P6 {width} {height} 255 ".encode("ascii")


def to_pixels(image_array):
    """Clamp each channel to [0, 255] and truncate to one byte, NaN becomes 0."""
    image_array = np.nan_to_num(image_array, nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(image_array, 0, 255).astype(np.uint8)


def save_image(image_array, output_path):
    """
    Save the rendered image to a file.

    '.ppm' paths and '-' (stdout) get the raw P6 stream, anything else is
    handed to Pillow and encoded by extension.
    """
    height, width = image_array.shape[:2]
    pixels = to_pixels(image_array)

    if output_path == "-":
        sys.stdout.buffer.write(ppm_header(width, height) + pixels.tobytes())
        sys.stdout.buffer.flush()
    elif output_path.lower().endswith(".ppm"):
        with open(output_path, "wb") as f:
            f.write(ppm_header(width, height))
            f.write(pixels.tobytes())
    else:
        Image.fromarray(pixels).save(output_path)


def _positive_int(value):
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("expected a positive integer, got {}".format(value))
    return number


def main(argv=None):
    parser = argparse.ArgumentParser(description='Bit-grid sphere ray tracer')
    parser.add_argument('output_image', type=str, nargs='?', default='result.ppm',
                        help="Output image ('.ppm' or '-' for a raw P6 stream, "
                             "other extensions via Pillow)")
    parser.add_argument('--width', type=_positive_int, default=512,
                        help='Image width and height')
    parser.add_argument('--preset', choices=sorted(SceneSettings.PRESETS), default='ru',
                        help='Scene and shading preset')
    parser.add_argument('--samples', type=_positive_int, default=None,
                        help='Rays per pixel (default: from preset)')
    parser.add_argument('--gain', type=float, default=None,
                        help='Per-sample brightness gain (default: from preset)')
    parser.add_argument('--max-depth', type=int, default=8,
                        help='Maximum number of reflection bounces')
    parser.add_argument('--ground-specular', action=argparse.BooleanOptionalAction, default=None,
                        help='Add the specular highlight on the floor (default: from preset)')
    parser.add_argument('--workers', type=_positive_int, default=12,
                        help='Number of worker processes')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for a reproducible image')
    parser.add_argument('--sequential', action='store_true',
                        help='Render in this process without a worker pool')
    parser.add_argument('--quiet', action='store_true',
                        help='Suppress status and progress output')
    args = parser.parse_args(argv)

    if args.max_depth < 0:
        parser.error("--max-depth must be non-negative")
    if args.seed is not None and args.seed < 0:
        parser.error("--seed must be non-negative")

    overrides = {'max_depth': args.max_depth}
    if args.samples is not None:
        overrides['samples'] = args.samples
    if args.gain is not None:
        overrides['gain'] = args.gain
    if args.ground_specular is not None:
        overrides['ground_specular'] = args.ground_specular

    scene_settings = SceneSettings.preset(args.preset, **overrides)
    camera = Camera()

    # Status on stdout would corrupt a stream written there
    quiet = args.quiet or args.output_image == '-'

    if args.sequential:
        image_array = render(camera, scene_settings, args.width, args.seed, quiet)
    else:
        image_array = render_parallel(camera, scene_settings, args.width, args.workers,
                                      args.seed, quiet)

    save_image(image_array, args.output_image)
    if not quiet:
        print(f"Image saved to {args.output_image}")


if __name__ == '__main__':
    main()
