"""Metrics: stage timing and image similarity."""

import time
import numpy as np
from skimage.metrics import peak_signal_noise_ratio, structural_similarity
from typing import Dict


def compute_psnr_ssim(reference: np.ndarray, decoded: np.ndarray) -> Dict[str, float]:
    """PSNR and SSIM between two uint8 images of identical shape (RGB channels only)."""
    if reference.shape != decoded.shape:
        raise ValueError(f"Shape mismatch: {reference.shape} vs {decoded.shape}")
    ref_rgb = reference[..., :3] if reference.ndim == 3 else reference
    dec_rgb = decoded[..., :3] if decoded.ndim == 3 else decoded

    if np.array_equal(ref_rgb, dec_rgb):
        psnr = float('inf')
    else:
        psnr = float(peak_signal_noise_ratio(ref_rgb, dec_rgb, data_range=255))

    channel_axis = 2 if ref_rgb.ndim == 3 else None
    min_side = min(ref_rgb.shape[0], ref_rgb.shape[1])
    win_size = min(7, min_side if min_side % 2 == 1 else min_side - 1)
    if win_size >= 3:
        ssim = float(structural_similarity(
            ref_rgb, dec_rgb, channel_axis=channel_axis, data_range=255, win_size=win_size
        ))
    else:
        ssim = 1.0 if np.array_equal(ref_rgb, dec_rgb) else 0.0

    return {'psnr': psnr, 'ssim': ssim}


class Timer:
    """Accumulates wall time per named decode stage."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.stages_ms: Dict[str, float] = {}

    def measure(self, stage: str, func, *args, **kwargs):
        if not self.enabled:
            return func(*args, **kwargs)
        start = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = (time.perf_counter() - start) * 1000.0
        self.stages_ms[stage] = self.stages_ms.get(stage, 0.0) + elapsed
        return result

    def report(self) -> Dict[str, float]:
        report = dict(self.stages_ms)
        report['total'] = sum(self.stages_ms.values())
        return report
