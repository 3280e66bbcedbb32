"""Shared utilities."""

from .constants import ZIGZAG_TO_NATURAL, ADAM7_PASSES, PNG_SIGNATURE
from .metrics import compute_psnr_ssim, Timer
from .test_images import generate_gradient, generate_colored_checkerboard, generate_rgba_gradient
from .image_io import encode_png, encode_jpeg, save_image

__all__ = [
    'ZIGZAG_TO_NATURAL',
    'ADAM7_PASSES',
    'PNG_SIGNATURE',
    'compute_psnr_ssim',
    'Timer',
    'generate_gradient',
    'generate_colored_checkerboard',
    'generate_rgba_gradient',
    'encode_png',
    'encode_jpeg',
    'save_image',
]
