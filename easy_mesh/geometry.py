"""Small geometric primitives used to build meshes.

Classes:
    Plane: A plane given by the coefficients of `a * x + b * y + c * z + d = 0`.
    Box: An axis-aligned box anchored at its minimum corner.
    Surfel: An oriented surface element (location, normal, color, radius).

Functions:
    orthogonal_basis: Computes two unit vectors orthogonal to a normal and to each other.
"""
import logging
from typing import Union, List, Tuple

import numpy as np

VectorTypes = Union[np.ndarray, List[float], Tuple[float, float, float]]

logger = logging.getLogger(__name__)


class Plane:
    """A plane given by the coefficients of `a * x + b * y + c * z + d = 0`.

    Attributes:
        a: The x coefficient.
        b: The y coefficient.
        c: The z coefficient.
        d: The offset.
    """

    def __init__(self, a: float = 0.0, b: float = 0.0, c: float = 1.0, d: float = 0.0) -> None:
        self.a = float(a)
        self.b = float(b)
        self.c = float(c)
        self.d = float(d)

    @classmethod
    def from_point_and_normal(cls, point: VectorTypes, normal: VectorTypes) -> "Plane":
        """Constructs the plane passing through `point` with normal `normal`.

        Args:
            point: A point on the plane.
            normal: The plane normal. Does not need to be normalized.

        Returns:
            The plane.
        """
        n = np.asarray(normal, dtype=np.float64).ravel()[:3]
        p = np.asarray(point, dtype=np.float64).ravel()[:3]
        return cls(a=n[0], b=n[1], c=n[2], d=-float(n @ p))

    @property
    def normal(self) -> np.ndarray:
        n = np.array([self.a, self.b, self.c])
        return n / np.linalg.norm(n)

    def distance_to_plane(self, point: VectorTypes) -> float:
        """Signed distance of `point` to the plane, positive on the side the normal points to."""
        p = np.asarray(point, dtype=np.float64).ravel()[:3]
        n = np.array([self.a, self.b, self.c])
        return float((n @ p + self.d) / np.linalg.norm(n))

    def intersection_with_line(self, p1: VectorTypes, p2: VectorTypes) -> np.ndarray:
        """Intersects the infinite line through `p1` and `p2` with the plane.

        Args:
            p1: First point on the line.
            p2: Second point on the line.

        Returns:
            The intersection point. All NaN if the line is parallel to the plane.
        """
        _p1 = np.asarray(p1, dtype=np.float64).ravel()[:3]
        _p2 = np.asarray(p2, dtype=np.float64).ravel()[:3]
        n = np.array([self.a, self.b, self.c])
        direction = _p2 - _p1
        denominator = n @ direction
        if np.isclose(denominator, 0.0):
            logger.debug("Line is parallel to the plane. Returning NaN intersection.")
            return np.full(3, np.nan)
        t = -(n @ _p1 + self.d) / denominator
        return _p1 + t * direction

    def __repr__(self) -> str:
        return f"Plane(a={self.a}, b={self.b}, c={self.c}, d={self.d})"


class Box:
    """An axis-aligned box anchored at its minimum corner.

    Attributes:
        x, y, z: The minimum corner.
        width, height, depth: The extent along x, y and z.
    """

    def __init__(self,
                 x: float = 0.0,
                 y: float = 0.0,
                 z: float = 0.0,
                 width: float = 0.0,
                 height: float = 0.0,
                 depth: float = 0.0) -> None:
        self.x = float(x)
        self.y = float(y)
        self.z = float(z)
        self.width = float(width)
        self.height = float(height)
        self.depth = float(depth)

    @property
    def center(self) -> np.ndarray:
        return np.array([self.x + self.width / 2, self.y + self.height / 2, self.z + self.depth / 2])

    @property
    def sizes(self) -> np.ndarray:
        return np.array([self.width, self.height, self.depth])

    def __repr__(self) -> str:
        return (f"Box(x={self.x}, y={self.y}, z={self.z}, "
                f"width={self.width}, height={self.height}, depth={self.depth})")


class Surfel:
    """An oriented surface element.

    Attributes:
        location: The 3D position.
        normal: The unit surface normal.
        color: The RGB color in [0, 255].
        radius: The disc radius.
    """

    def __init__(self,
                 location: VectorTypes = (0.0, 0.0, 0.0),
                 normal: VectorTypes = (0.0, 0.0, 1.0),
                 color: VectorTypes = (0, 0, 0),
                 radius: float = 0.0) -> None:
        self.location = np.asarray(location, dtype=np.float64).ravel()[:3]
        self.normal = np.asarray(normal, dtype=np.float64).ravel()[:3]
        self.color = np.asarray(color).ravel()[:3].astype(np.uint8)
        self.radius = float(radius)

    def __repr__(self) -> str:
        return (f"Surfel(location={self.location.tolist()}, normal={self.normal.tolist()}, "
                f"color={self.color.tolist()}, radius={self.radius})")


def orthogonal_basis(normal: VectorTypes) -> Tuple[np.ndarray, np.ndarray]:
    """Computes two unit vectors orthogonal to `normal` and to each other.

    Args:
        normal: A non-zero vector.

    Returns:
        The two basis vectors `v1` and `v2` with `v1 x v2` pointing along `normal`.
    """
    n = np.asarray(normal, dtype=np.float64).ravel()[:3]
    n = n / np.linalg.norm(n)
    # Cross with the axis least aligned with the normal.
    helper = np.zeros(3)
    helper[np.argmin(np.abs(n))] = 1.0
    v1 = np.cross(n, helper)
    v1 /= np.linalg.norm(v1)
    v2 = np.cross(n, v1)
    return v1, v2
