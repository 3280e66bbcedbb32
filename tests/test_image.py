"""Tests for the unified Image and its manipulation engines."""

import numpy as np
import pytest
from models.errors import InvalidArgumentError, ResourceLimitExceededError
from models.image import Image
from utils.image_io import save_image
from utils.test_images import generate_gradient, generate_noise, generate_rgba_gradient, to_rgba


def _solid(width, height, rgba=(10, 20, 30, 255)):
    return Image.from_array(np.tile(np.array(rgba, dtype=np.uint8), (height, width, 1)))


def test_constructor_copies_buffer():
    """The image owns its pixels; later edits to the source do not leak in."""
    source = bytearray(range(16))
    image = Image(source, 2, 2)
    source[0] = 99
    assert image.pixels[0] == 0
    assert (image.width, image.height, image.channels, image.pixel_count) == (2, 2, 4, 4)


def test_constructor_rejects_length_mismatch():
    """Buffer length must equal width * height * 4."""
    with pytest.raises(InvalidArgumentError):
        Image(b"\x00" * 15, 2, 2)
    with pytest.raises(InvalidArgumentError):
        Image(b"\x00" * 16, 0, 4)


def test_accessors_return_copies():
    """to_array and metadata hand out copies."""
    image = Image.from_array(generate_rgba_gradient(4, 3), {"format": "png"})
    arr = image.to_array()
    arr[0, 0] = 0
    assert not np.array_equal(arr, image.to_array())
    meta = image.get_metadata()
    meta["format"] = "changed"
    assert image.metadata["format"] == "png"
    image.set_metadata({"k": 1})
    assert image.get_metadata() == {"k": 1}


def test_has_alpha():
    """has_alpha reports any non-opaque pixel."""
    assert not _solid(3, 3).has_alpha
    assert Image.from_array(generate_rgba_gradient(4, 4)).has_alpha


@pytest.mark.parametrize("algorithm", ["nearest", "bilinear", "bicubic", "lanczos"])
def test_resize_shape(algorithm):
    """Resize always produces exactly w*h*4 bytes, both directions."""
    image = Image.from_array(generate_noise(17, 11))
    image.resize(40, 5, algorithm)
    assert (image.width, image.height) == (40, 5)
    image.resize(17, 11, algorithm)
    assert len(image.pixels) == 17 * 11 * 4


def test_resize_nearest_integer_upscale():
    """2x nearest upscale replicates each pixel."""
    src = generate_noise(3, 2)
    image = Image.from_array(src).resize(6, 4, "nearest")
    assert np.array_equal(image.to_array(), src.repeat(2, axis=0).repeat(2, axis=1))


def test_resize_invalid_arguments_leave_image_unchanged():
    """Bad sizes or algorithms raise and keep the original pixels."""
    image = Image.from_array(generate_noise(5, 5))
    before = image.to_array()
    for args in [(0, 5), (5, -1), (2.5, 3)]:
        with pytest.raises(InvalidArgumentError):
            image.resize(*args)
    with pytest.raises(InvalidArgumentError):
        image.resize(4, 4, "sinc")
    with pytest.raises(ResourceLimitExceededError):
        image.resize(20000, 20000)
    assert np.array_equal(image.to_array(), before)


def test_crop():
    """Crop copies the sub-rectangle."""
    src = generate_noise(10, 8)
    image = Image.from_array(src).crop(2, 3, 4, 5)
    assert np.array_equal(image.to_array(), src[3:8, 2:6])


@pytest.mark.parametrize("rect", [(0, 0, 0, 1), (-1, 0, 2, 2), (8, 0, 3, 2), (0, 7, 2, 2), (0, 0, 11, 8)])
def test_crop_rejects_out_of_range(rect):
    """Out-of-range and zero-area rectangles are rejected, not clamped."""
    src = generate_noise(10, 8)
    image = Image.from_array(src)
    with pytest.raises(InvalidArgumentError):
        image.crop(*rect)
    assert np.array_equal(image.to_array(), src)


def test_rotate_quarter_turns():
    """90/270 swap dimensions; positive angles turn clockwise."""
    src = generate_noise(5, 3)
    image = Image.from_array(src).rotate(90)
    assert (image.width, image.height) == (3, 5)
    # Bottom-left source pixel moves to the top-left.
    assert np.array_equal(image.to_array()[0, 0], src[2, 0])
    image.rotate(-90)
    assert np.array_equal(image.to_array(), src)
    assert np.array_equal(Image.from_array(src).rotate(180).to_array(), src[::-1, ::-1])
    assert np.array_equal(Image.from_array(src).rotate(360).to_array(), src)


def test_rotate_arbitrary_angle_expands_canvas():
    """Non-right angles enlarge the canvas and fill the corners."""
    image = _solid(20, 10).rotate(45, fill=(1, 2, 3, 0))
    assert image.width > 20 and image.height > 10
    assert image.to_array()[0, 0].tolist() == [1, 2, 3, 0]
    centre = image.to_array()[image.height // 2, image.width // 2]
    assert centre.tolist() == [10, 20, 30, 255]


def test_rotate_rejects_bad_fill():
    """Fill colour must be four bytes."""
    with pytest.raises(InvalidArgumentError):
        _solid(4, 4).rotate(30, fill=(0, 0, 0))


def test_flip():
    """Horizontal and vertical flips are pure remaps."""
    src = generate_noise(6, 4)
    assert np.array_equal(Image.from_array(src).flip("horizontal").to_array(), src[:, ::-1])
    assert np.array_equal(Image.from_array(src).flip("vertical").to_array(), src[::-1])
    with pytest.raises(InvalidArgumentError):
        Image.from_array(src).flip("diagonal")


def test_brightness_rounds_and_clamps():
    """v * factor rounds half up, clamps, and keeps alpha."""
    image = _solid(2, 2, (101, 200, 1, 77)).brightness(1.5)
    assert image.to_array()[0, 0].tolist() == [152, 255, 2, 77]
    with pytest.raises(InvalidArgumentError):
        image.brightness(-0.1)


def test_contrast():
    """(v - 128) * factor + 128."""
    image = _solid(1, 1, (100, 128, 200, 255)).contrast(2.0)
    assert image.to_array()[0, 0].tolist() == [72, 128, 255, 255]


@pytest.mark.parametrize("method,expected", [
    ("luminance", 68),
    ("average", 70),
    ("desaturate", 80),
    ("max", 150),
    ("min", 10),
])
def test_grayscale_methods(method, expected):
    """Every grayscale method sets R=G=B."""
    image = _solid(1, 1, (150, 50, 10, 200)).grayscale(method)
    assert image.to_array()[0, 0].tolist() == [expected] * 3 + [200]


def test_grayscale_unknown_method():
    """Unknown method names are rejected."""
    with pytest.raises(InvalidArgumentError):
        _solid(1, 1).grayscale("lightness")


def test_invert_twice_is_identity():
    """Inversion is its own inverse and leaves alpha."""
    src = generate_rgba_gradient(5, 5)
    image = Image.from_array(src).invert()
    assert np.array_equal(image.to_array()[..., 3], src[..., 3])
    assert np.array_equal(image.invert().to_array(), src)


def test_sepia():
    """Standard sepia matrix on a mid grey."""
    image = _solid(1, 1, (100, 100, 100, 255)).sepia()
    assert image.to_array()[0, 0].tolist() == [135, 120, 94, 255]


def test_hue_and_saturation():
    """Zero saturation gives grey; hue shifts leave greys alone."""
    grey = _solid(2, 2, (90, 90, 90, 255))
    assert np.array_equal(grey.copy().hue(120).to_array(), grey.to_array())
    red = _solid(1, 1, (200, 40, 40, 255)).saturation(0.0).to_array()[0, 0]
    assert red[0] == red[1] == red[2]
    shifted = _solid(1, 1, (255, 0, 0, 255)).hue(120).to_array()[0, 0]
    assert shifted.tolist() == [0, 255, 0, 255]
    with pytest.raises(InvalidArgumentError):
        grey.hue_saturation(400, 1.0)


def test_blur_keeps_flat_regions():
    """Convolution of a constant image is the same constant, alpha untouched."""
    image = _solid(9, 7, (40, 80, 120, 33))
    for op in (lambda im: im.blur(2.0), lambda im: im.box_blur(5), lambda im: im.sharpen(1.0),
               lambda im: im.unsharp_mask(1.5, 1.0)):
        assert np.array_equal(op(image.copy()).to_array(), image.to_array())


def test_blur_smooths_noise():
    """Blurring reduces variance."""
    src = to_rgba(generate_noise(20, 20, channels=3))
    blurred = Image.from_array(src).blur(1.0).to_array()
    assert blurred[..., :3].std() < src[..., :3].std()


def test_box_blur_rejects_even_size():
    """Box blur size must be odd and at least 3."""
    with pytest.raises(InvalidArgumentError):
        _solid(4, 4).box_blur(4)


def test_sharpen_zero_is_identity():
    """Strength 0 leaves pixels unchanged."""
    src = generate_noise(6, 6)
    assert np.array_equal(Image.from_array(src).sharpen(0.0).to_array(), src)


def test_edge_detect_flat_is_zero():
    """Edge responses vanish on flat input and fire on a step."""
    assert np.all(_solid(5, 5).edge_detect("sobel").to_array()[..., :3] == 0)
    step = np.zeros((6, 6, 4), dtype=np.uint8)
    step[..., 3] = 255
    step[:, 3:, :3] = 100
    edges = Image.from_array(step).edge_detect("sobel-x").to_array()
    assert edges[2, 2, 0] == 255 and edges[2, 0, 0] == 0
    assert np.all(Image.from_array(step).edge_detect("sobel-y").to_array()[..., :3] == 0)
    with pytest.raises(InvalidArgumentError):
        Image.from_array(step).edge_detect("canny")


def test_convolve_identity_and_shift():
    """Identity kernel is a no-op; convolution flips the kernel."""
    src = generate_noise(7, 5)
    identity = [[0, 0, 0], [0, 1, 0], [0, 0, 0]]
    assert np.array_equal(Image.from_array(src).convolve(identity).to_array(), src)
    # True convolution with a right-hand tap pulls from the left neighbour.
    shifted = Image.from_array(src).convolve([[0, 0, 0], [0, 0, 1], [0, 0, 0]]).to_array()
    assert np.array_equal(shifted[:, 1:, :3], src[:, :-1, :3])


def test_convolve_normalize():
    """normalize divides by the kernel sum."""
    image = _solid(4, 4, (50, 60, 70, 255)).convolve(np.ones((3, 3)), normalize=True)
    assert image.to_array()[1, 1].tolist() == [50, 60, 70, 255]


def test_convolve_rejects_bad_kernels():
    """Kernels must be square, odd-sized and finite."""
    image = _solid(4, 4)
    for kernel in ([[1, 2], [3, 4]], [[1, 2, 3]], [[0, 0, 0], [0, float("nan"), 0], [0, 0, 0]]):
        with pytest.raises(InvalidArgumentError):
            image.convolve(kernel)


def test_chaining_returns_self():
    """Operations chain on the same object."""
    image = Image.from_array(generate_noise(12, 10))
    assert image.resize(8, 8).crop(1, 1, 6, 6).flip("vertical").invert() is image
    assert (image.width, image.height) == (6, 6)


def test_png_round_trip_is_lossless():
    """to_png_bytes then from_png_bytes returns the same RGBA."""
    src = generate_rgba_gradient(13, 9)
    data = Image.from_array(src).to_png_bytes()
    assert np.array_equal(Image.from_png_bytes(data).to_array(), src)


def test_jpeg_round_trip_is_close():
    """JPEG encode/decode keeps dimensions and opaque alpha."""
    src = to_rgba(generate_gradient(24, 16))
    data = Image.from_array(src).to_bytes("image/jpeg", quality=95)
    decoded = Image.from_jpeg_bytes(data)
    assert (decoded.width, decoded.height) == (24, 16)
    assert np.all(decoded.to_array()[..., 3] == 255)
    diff = np.abs(decoded.to_array().astype(int) - src.astype(int))[..., :3]
    assert diff.mean() < 3


def test_encoder_argument_validation():
    """Out-of-range encoder settings are invalid arguments."""
    image = _solid(2, 2)
    with pytest.raises(InvalidArgumentError):
        image.to_jpeg_bytes(quality=0)
    with pytest.raises(InvalidArgumentError):
        image.to_png_bytes(compression_level=10)
    with pytest.raises(InvalidArgumentError):
        image.to_bytes("image/webp")


def test_save_image_by_extension(tmp_path):
    """save_image picks the encoder from the file extension."""
    src = generate_rgba_gradient(6, 4)
    png_path = tmp_path / "out.png"
    jpg_path = tmp_path / "out.JPG"
    save_image(src, str(png_path))
    save_image(src, str(jpg_path), quality=90)
    assert np.array_equal(Image.from_bytes(png_path.read_bytes()).to_array(), src)
    assert Image.from_bytes(jpg_path.read_bytes()).metadata["format"] == "jpeg"


def test_metadata_copies_are_deep():
    """Nested metadata is not shared between copies, callers and the image."""
    source = {"format": "jpeg", "exif": {"orientation": 6}, "comments": ["a"]}
    image = Image.from_array(generate_noise(2, 2), source)
    source["exif"]["orientation"] = 1
    assert image.metadata["exif"]["orientation"] == 6
    meta = image.get_metadata()
    meta["comments"].append("b")
    assert image.metadata["comments"] == ["a"]
    clone = image.copy()
    clone.get_metadata()["exif"]["orientation"] = 3
    image.set_metadata(meta)
    meta["exif"]["orientation"] = 8
    assert image.metadata["exif"]["orientation"] == 6
    assert clone.metadata["comments"] == ["a"]
