"""Depth image filters.

Functions:
    depth_bilateral_filter: Edge preserving smoothing of depth images.
"""
import logging
import time
from typing import Union

import numpy as np
import open3d as o3d

logger = logging.getLogger(__name__)


def depth_bilateral_filter(depth: Union[np.ndarray, o3d.geometry.Image],
                           d: int = 5,
                           sigma_color: float = 10.0,
                           sigma_space: float = 2.0,
                           maximal_delta_depth_percent: float = 0.005,
                           border_type: str = "reflect") -> np.ndarray:
    """Bilateral filter for single channel depth images.

    Works like a regular bilateral filter, but pixels without depth (zero or non-finite) are neither filtered nor used
    as neighbors, and neighbors whose depth differs too much from the center pixel are ignored, so depth
    discontinuities are not blurred.

    Args:
        depth: The depth image of shape HxW.
        d: Diameter of the pixel neighborhood. If non-positive, it is derived from `sigma_space`.
        sigma_color: Filter sigma in depth space, in the unit of `depth`.
        sigma_space: Filter sigma in pixel space.
        maximal_delta_depth_percent: Neighbors whose depth differs by more than this fraction of the center pixel
                                     depth are ignored. The default corresponds to 5mm at 1m.
        border_type: How the image border is extended. Any `numpy.pad` mode without extra arguments.

    Returns:
        The filtered depth image as float32 array of the same shape.
    """
    start = time.time()
    image = np.asarray(depth)
    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]
    if image.ndim != 2:
        raise ValueError(f"Depth image must have shape HxW but has shape {image.shape}.")

    if sigma_color <= 0:
        sigma_color = 1.0
    if sigma_space <= 0:
        sigma_space = 1.0
    radius = int(d) // 2 if d > 0 else int(round(sigma_space * 1.5))
    radius = max(radius, 1)

    image = image.astype(np.float64)
    valid = np.isfinite(image) & (image > 0)
    values = np.where(valid, image, 0.0)

    padded = np.pad(values, radius, mode=border_type)
    padded_valid = np.pad(valid, radius, mode=border_type)

    height, width = values.shape
    weighted_sum = np.zeros_like(values)
    weight_sum = np.zeros_like(values)
    max_delta = maximal_delta_depth_percent * values
    color_coeff = -0.5 / sigma_color ** 2
    space_coeff = -0.5 / sigma_space ** 2

    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            # Square window restricted to the inscribed disc.
            if dy * dy + dx * dx > radius * radius:
                continue
            neighbor = padded[radius + dy:radius + dy + height, radius + dx:radius + dx + width]
            neighbor_valid = padded_valid[radius + dy:radius + dy + height, radius + dx:radius + dx + width]
            delta = neighbor - values
            mask = valid & neighbor_valid & (np.abs(delta) <= max_delta)
            weight = np.exp(space_coeff * (dx * dx + dy * dy) + color_coeff * delta ** 2) * mask
            weighted_sum += weight * neighbor
            weight_sum += weight

    filtered = np.zeros_like(values)
    np.divide(weighted_sum, weight_sum, out=filtered, where=weight_sum > 0)
    filtered[~valid] = 0.0

    logger.debug(f"Filtering depth image of shape {values.shape} with radius {radius} took {time.time() - start} "
                 f"seconds.")
    return filtered.astype(np.float32)
