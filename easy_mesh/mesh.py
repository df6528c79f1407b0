"""The triangle mesh container and primitive mesh generators.

Classes:
    Mesh: Triangle mesh with per-vertex colors, normals and texture coordinates.

Functions:
    generate_mesh_from_plane: Adds a square patch of a plane to a mesh.
    generate_mesh_from_cube: Adds a box to a mesh.
"""
import copy
import logging
import time
from typing import Union, List, Any

import numpy as np
import open3d as o3d

from .geometry import Plane, Box, Surfel, VectorTypes, orthogonal_basis
from .utils import eval_transformation_data, TransformationTypes

PointCloud = o3d.geometry.PointCloud
TriangleMesh = o3d.geometry.TriangleMesh

logger = logging.getLogger(__name__)

# Corner indices of the 12 cube triangles. Corners are ordered x-major, then y, then z.
CUBE_LINKS = np.array([[0, 1, 3], [0, 3, 2],
                       [0, 5, 1], [0, 4, 5],
                       [3, 1, 5], [3, 5, 7],
                       [2, 3, 7], [2, 7, 6],
                       [6, 5, 4], [6, 7, 5],
                       [0, 2, 6], [0, 6, 4]], dtype=np.int64)

SURFEL_LINKS = np.array([[5, 0, 1], [5, 1, 2], [4, 5, 2], [4, 2, 3]], dtype=np.int64)


def _as_array(data: Any, tail: tuple, dtype: type) -> np.ndarray:
    if data is None:
        return np.zeros((0,) + tail, dtype=dtype)
    array = np.asarray(data)
    if array.size == 0:
        return np.zeros((0,) + tail, dtype=dtype)
    return array.reshape((-1,) + tail).astype(dtype)


class Mesh:
    """Triangle mesh with per-vertex colors, normals and texture coordinates.

    Every per-vertex attribute is either empty or has as many rows as there are vertices. Per-face texture
    coordinates are either empty or have as many rows as there are faces. Vertices with NaN coordinates are invalid
    and removed by `remove_isolated_vertices`.

    Attributes:
        vertices: Nx3 float64 vertex positions.
        colors: Nx3 uint8 RGB vertex colors.
        normals: Nx3 float64 vertex normals.
        texcoords: Nx2 float64 vertex texture coordinates.
        faces: Mx3 int64 vertex indices of the triangles.
        face_texcoords: Mx3x2 float64 texture coordinates of the triangle corners.
        texture: HxWx3 uint8 texture image or `None`.
    """

    def __init__(self,
                 vertices: Union[np.ndarray, list, None] = None,
                 faces: Union[np.ndarray, list, None] = None,
                 colors: Union[np.ndarray, list, None] = None,
                 normals: Union[np.ndarray, list, None] = None,
                 texcoords: Union[np.ndarray, list, None] = None,
                 face_texcoords: Union[np.ndarray, list, None] = None,
                 texture: Union[np.ndarray, None] = None) -> None:
        self.vertices = _as_array(vertices, (3,), np.float64)
        self.faces = _as_array(faces, (3,), np.int64)
        self.colors = _as_array(colors, (3,), np.uint8)
        self.normals = _as_array(normals, (3,), np.float64)
        self.texcoords = _as_array(texcoords, (2,), np.float64)
        self.face_texcoords = _as_array(face_texcoords, (3, 2), np.float64)
        self.texture = None if texture is None else np.asarray(texture, dtype=np.uint8)

        num_vertices = len(self.vertices)
        for name in ["colors", "normals", "texcoords"]:
            size = len(getattr(self, name))
            if size not in [0, num_vertices]:
                raise ValueError(f"Mesh has {num_vertices} vertices but {size} {name}.")
        if len(self.face_texcoords) not in [0, len(self.faces)]:
            raise ValueError(f"Mesh has {len(self.faces)} faces but {len(self.face_texcoords)} face texcoords.")
        if len(self.faces) and (self.faces.min() < 0 or self.faces.max() >= num_vertices):
            raise ValueError(f"Mesh faces index vertices outside [0, {num_vertices}).")

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def num_faces(self) -> int:
        return len(self.faces)

    def has_vertices(self) -> bool:
        return len(self.vertices) > 0

    def has_colors(self) -> bool:
        return len(self.colors) > 0

    def has_normals(self) -> bool:
        return len(self.normals) > 0

    def has_texcoords(self) -> bool:
        return len(self.texcoords) > 0

    def has_faces(self) -> bool:
        return len(self.faces) > 0

    def has_face_texcoords(self) -> bool:
        return len(self.face_texcoords) > 0

    def has_texture(self) -> bool:
        return self.texture is not None and self.texture.size > 0

    def copy(self) -> "Mesh":
        return copy.deepcopy(self)

    def clear(self) -> None:
        """Removes all vertices, faces and attributes as well as the texture."""
        self.vertices = _as_array(None, (3,), np.float64)
        self.faces = _as_array(None, (3,), np.int64)
        self.colors = _as_array(None, (3,), np.uint8)
        self.normals = _as_array(None, (3,), np.float64)
        self.texcoords = _as_array(None, (2,), np.float64)
        self.face_texcoords = _as_array(None, (3, 2), np.float64)
        self.texture = None

    def center(self) -> np.ndarray:
        """The mean of all vertices or the origin if the mesh has no vertices."""
        if not self.has_vertices():
            return np.zeros(3)
        return self.vertices.mean(axis=0)

    def centerize(self) -> np.ndarray:
        """Moves the mesh such that its center lies in the origin.

        Returns:
            The center before the translation.
        """
        center = self.center()
        self.vertices = self.vertices - center
        return center

    def apply_transform(self, pose: TransformationTypes) -> None:
        """Applies a rigid transformation to the vertices and rotates the normals.

        Args:
            pose: Anything `utils.eval_transformation_data` understands, e.g. a 4x4 matrix.
        """
        if isinstance(pose, str) and pose.lower() == "center":
            raise ValueError("Can't transform a mesh to 'center'. Use `centerize` instead.")
        T = eval_transformation_data(transformation_data=pose)
        R = T[:3, :3]
        t = T[:3, 3]
        self.vertices = self.vertices @ R.T + t
        if self.has_normals():
            self.normals = self.normals @ R.T

    def apply_scale_transform(self, x_scale: float, y_scale: float, z_scale: float) -> None:
        """Scales the vertices along each axis."""
        self.vertices = self.vertices * np.array([x_scale, y_scale, z_scale], dtype=np.float64)

    def extend(self,
               vertices: np.ndarray,
               faces: Union[np.ndarray, None] = None,
               colors: Union[np.ndarray, None] = None,
               normals: Union[np.ndarray, None] = None) -> None:
        """Appends vertices and, optionally, faces indexing into the new vertices.

        Attributes this mesh already has are zero-filled for the new vertices if not provided. Texture coordinates
        are never provided and always zero-filled.

        Args:
            vertices: Nx3 positions of the new vertices.
            faces: Mx3 triangles, indices relative to the first new vertex.
            colors: Nx3 colors of the new vertices.
            normals: Nx3 normals of the new vertices.

        Raises:
            ValueError: `colors` or `normals` are given for a non-empty mesh without them.
        """
        offset = len(self.vertices)
        was_empty = offset == 0
        num_new = len(vertices)

        for name, values in [("colors", colors), ("normals", normals)]:
            current = getattr(self, name)
            if values is not None:
                if not was_empty and len(current) == 0:
                    raise ValueError(f"Cannot add vertices with {name} to a mesh without {name}.")
                setattr(self, name, np.concatenate([current, values.astype(current.dtype)]))
            elif len(current) > 0:
                setattr(self, name, np.concatenate([current, np.zeros((num_new, 3), dtype=current.dtype)]))
        if self.has_texcoords():
            self.texcoords = np.concatenate([self.texcoords, np.zeros((num_new, 2))])

        self.vertices = np.concatenate([self.vertices, vertices.astype(np.float64)])
        if faces is not None:
            self.faces = np.concatenate([self.faces, faces.astype(np.int64) + offset])
            if self.has_face_texcoords():
                self.face_texcoords = np.concatenate([self.face_texcoords, np.zeros((len(faces), 3, 2))])

    def add_point_from_surfel(self, surfel: Surfel) -> None:
        """Adds the surfel location as a single vertex with the surfel color and normal."""
        self.extend(vertices=surfel.location.reshape(1, 3),
                     colors=surfel.color.reshape(1, 3),
                     normals=surfel.normal.reshape(1, 3))

    def add_surfel(self, surfel: Surfel) -> None:
        """Adds a hexagon of radius `surfel.radius` around the surfel location, orthogonal to its normal.

        Args:
            surfel: The surfel. Its normal must be normalized.
        """
        assert np.linalg.norm(surfel.normal) > 0.9, "Surfel normal must be normalized and valid."
        v1, v2 = orthogonal_basis(surfel.normal)
        r = surfel.radius
        offsets = np.array([v1 * r,
                            v1 * (r / 2) + v2 * r,
                            v1 * (-r / 2) + v2 * r,
                            v1 * -r,
                            v1 * (-r / 2) + v2 * -r,
                            v1 * (r / 2) + v2 * -r])
        self.extend(vertices=surfel.location + offsets,
                     faces=SURFEL_LINKS,
                     colors=np.tile(surfel.color, (6, 1)),
                     normals=np.tile(surfel.normal, (6, 1)))

    def add_cube(self,
                 center: VectorTypes,
                 sizes: VectorTypes,
                 color: Union[VectorTypes, None] = None) -> None:
        """Adds an axis aligned cube as 8 vertices and 12 triangles.

        Args:
            center: The cube center.
            sizes: The extent along x, y and z.
            color: Color of the new vertices. Only used if the mesh already has colors. Defaults to black.
        """
        _center = np.asarray(center, dtype=np.float64).ravel()[:3]
        half = np.asarray(sizes, dtype=np.float64).ravel()[:3] / 2
        lower, upper = _center - half, _center + half
        corners = np.array([[x, y, z]
                            for x in (lower[0], upper[0])
                            for y in (lower[1], upper[1])
                            for z in (lower[2], upper[2])])
        colors = None
        if self.has_colors():
            colors = np.tile(np.zeros(3) if color is None else np.asarray(color).ravel()[:3], (8, 1))
        self.extend(vertices=corners, faces=CUBE_LINKS, colors=colors)

    def add_mesh(self, other: "Mesh") -> None:
        """Appends another mesh to this one.

        If this mesh has no vertices it becomes a copy of `other`. Otherwise, every attribute this mesh has must also
        be present in `other`.

        Args:
            other: The mesh to append.
        """
        if not self.has_vertices():
            self.__dict__.update(copy.deepcopy(other.__dict__))
            return

        for name in ["colors", "normals", "texcoords"]:
            if len(getattr(self, name)) > 0:
                if len(getattr(other, name)) == 0:
                    raise ValueError("Cannot merge different kind of meshes.")
                setattr(self, name, np.concatenate([getattr(self, name), getattr(other, name)]))
        if self.has_face_texcoords():
            if other.has_faces() and not other.has_face_texcoords():
                raise ValueError("Cannot merge different kind of meshes.")
            self.face_texcoords = np.concatenate([self.face_texcoords, other.face_texcoords])

        offset = len(self.vertices)
        self.vertices = np.concatenate([self.vertices, other.vertices])
        self.faces = np.concatenate([self.faces, other.faces + offset])

    def compute_normals_from_faces(self) -> None:
        """Computes vertex normals as the normalized, area weighted sum of the normals of incident faces.

        Vertices not referenced by any face get a zero normal.
        """
        normals = np.zeros_like(self.vertices)
        if self.has_faces():
            v0 = self.vertices[self.faces[:, 0]]
            face_normals = np.cross(self.vertices[self.faces[:, 1]] - v0, self.vertices[self.faces[:, 2]] - v0)
            for k in range(3):
                np.add.at(normals, self.faces[:, k], face_normals)
        norms = np.linalg.norm(normals, axis=1, keepdims=True)
        self.normals = np.divide(normals, norms, out=np.zeros_like(normals), where=norms > 0)

    def compute_vertex_face_map(self) -> List[List[int]]:
        """Lists for every vertex the indices of the faces it belongs to."""
        faces_per_vertex = [list() for _ in range(len(self.vertices))]
        for face_index, face in enumerate(self.faces):
            for vertex_index in face:
                faces_per_vertex[vertex_index].append(face_index)
        return faces_per_vertex

    def remove_duplicated_vertices(self) -> None:
        """Merges vertices with identical coordinates.

        Faces are rewritten to use the lowest index among identical vertices and the others are marked invalid (NaN).
        Call `remove_isolated_vertices` afterwards to drop them.
        """
        num_vertices = len(self.vertices)
        if num_vertices < 2:
            return
        start = time.time()
        order = np.lexsort((self.vertices[:, 2], self.vertices[:, 1], self.vertices[:, 0]))
        ordered = self.vertices[order]
        is_first = np.concatenate([[True], np.any(ordered[1:] != ordered[:-1], axis=1)])
        first_positions = np.flatnonzero(is_first)
        group = np.cumsum(is_first) - 1

        alias = np.empty(num_vertices, dtype=np.int64)
        alias[order] = order[first_positions[group]]
        duplicated = alias != np.arange(num_vertices)

        if self.has_faces():
            self.faces = alias[self.faces]
        self.vertices[duplicated] = np.nan
        logger.debug(f"Marked {duplicated.sum()} duplicated vertices in {time.time() - start} seconds.")

    def remove_isolated_vertices(self) -> None:
        """Removes invalid (NaN) vertices, remaps the faces and drops faces referencing removed vertices."""
        valid = ~np.isnan(self.vertices).any(axis=1)
        if valid.all():
            return
        new_indices = np.full(len(self.vertices), -1, dtype=np.int64)
        new_indices[valid] = np.arange(valid.sum())

        self.vertices = self.vertices[valid]
        if self.has_colors():
            self.colors = self.colors[valid]
        if self.has_normals():
            self.normals = self.normals[valid]
        if self.has_texcoords():
            self.texcoords = self.texcoords[valid]

        if self.has_faces():
            keep = valid[self.faces].all(axis=1)
            self.faces = new_indices[self.faces[keep]]
            if self.has_face_texcoords():
                self.face_texcoords = self.face_texcoords[keep]
            if not keep.all():
                logger.debug(f"Dropped {(~keep).sum()} faces referencing removed vertices.")
        logger.debug(f"Removed {(~valid).sum()} invalid vertices.")

    def to_open3d(self) -> TriangleMesh:
        """Converts the mesh to an Open3D triangle mesh. Colors are mapped to [0, 1]."""
        mesh = TriangleMesh(o3d.utility.Vector3dVector(self.vertices),
                            o3d.utility.Vector3iVector(self.faces.astype(np.int32)))
        if self.has_colors():
            mesh.vertex_colors = o3d.utility.Vector3dVector(self.colors.astype(np.float64) / 255.0)
        if self.has_normals():
            mesh.vertex_normals = o3d.utility.Vector3dVector(self.normals)
        if self.has_faces():
            if self.has_face_texcoords():
                mesh.triangle_uvs = o3d.utility.Vector2dVector(self.face_texcoords.reshape(-1, 2))
            elif self.has_texcoords():
                mesh.triangle_uvs = o3d.utility.Vector2dVector(self.texcoords[self.faces].reshape(-1, 2))
            if self.has_texture() and (self.has_face_texcoords() or self.has_texcoords()):
                mesh.textures = [o3d.geometry.Image(np.ascontiguousarray(self.texture))]
                mesh.triangle_material_ids = o3d.utility.IntVector(np.zeros(len(self.faces), dtype=np.int32))
        return mesh

    def to_point_cloud(self) -> PointCloud:
        """Converts the vertices (and their colors and normals) to an Open3D point cloud."""
        point_cloud = PointCloud(o3d.utility.Vector3dVector(self.vertices))
        if self.has_colors():
            point_cloud.colors = o3d.utility.Vector3dVector(self.colors.astype(np.float64) / 255.0)
        if self.has_normals():
            point_cloud.normals = o3d.utility.Vector3dVector(self.normals)
        return point_cloud

    @classmethod
    def from_open3d(cls, geometry: Union[TriangleMesh, PointCloud]) -> "Mesh":
        """Constructs a mesh from an Open3D triangle mesh or point cloud. Colors are mapped to [0, 255].

        Args:
            geometry: The Open3D geometry.

        Returns:
            The mesh.
        """
        if isinstance(geometry, PointCloud):
            colors = None
            if geometry.has_colors():
                colors = np.round(np.clip(np.asarray(geometry.colors), 0, 1) * 255)
            return cls(vertices=np.asarray(geometry.points),
                       colors=colors,
                       normals=np.asarray(geometry.normals) if geometry.has_normals() else None)
        elif isinstance(geometry, TriangleMesh):
            colors = None
            if geometry.has_vertex_colors():
                colors = np.round(np.clip(np.asarray(geometry.vertex_colors), 0, 1) * 255)
            texture = None
            if geometry.has_textures():
                texture = np.asarray(geometry.textures[0])
                if texture.ndim == 2:
                    texture = np.stack([texture] * 3, axis=-1)
                texture = texture[:, :, :3]
            return cls(vertices=np.asarray(geometry.vertices),
                       faces=np.asarray(geometry.triangles),
                       colors=colors,
                       normals=np.asarray(geometry.vertex_normals) if geometry.has_vertex_normals() else None,
                       face_texcoords=np.asarray(geometry.triangle_uvs) if geometry.has_triangle_uvs() else None,
                       texture=texture)
        raise TypeError(f"Can't convert geometry of type {type(geometry)} to a mesh.")

    def save_to_ply(self, filename: str) -> None:
        """Writes the mesh to an ASCII PLY file. See `ply.write_ply`."""
        # `ply` imports `Mesh`, so it is imported on use.
        from .ply import write_ply
        write_ply(mesh=self, filename=filename)

    def load_from_ply(self, filename: str) -> None:
        """Replaces the contents of this mesh with the mesh read from a PLY file. See `ply.read_ply`."""
        from .ply import read_ply
        self.__dict__.update(read_ply(filename=filename).__dict__)

    @classmethod
    def from_ply(cls, filename: str) -> "Mesh":
        mesh = cls()
        mesh.load_from_ply(filename)
        return mesh

    def __repr__(self) -> str:
        return (f"Mesh(vertices={self.num_vertices}, faces={self.num_faces}, colors={self.has_colors()}, "
                f"normals={self.has_normals()}, texcoords={self.has_texcoords() or self.has_face_texcoords()}, "
                f"texture={self.has_texture()})")


def generate_mesh_from_plane(mesh: Mesh, plane: Plane, center: VectorTypes, plane_size: float) -> None:
    """Adds a square patch of a plane to a mesh.

    The four corners are the intersections of the plane with lines parallel to the y-axis through
    `(cx -/+ plane_size, cz -/+ plane_size)`, so the plane must not be parallel to the y-axis.

    Args:
        mesh: The mesh the patch is added to.
        plane: The plane.
        center: Center of the patch.
        plane_size: Half the side length of the patch in x and z.
    """
    cx, cy, cz = np.asarray(center, dtype=np.float64).ravel()[:3]
    s = float(plane_size)
    corners = list()
    for z in (cz - s, cz + s):
        for x in (cx - s, cx + s):
            corners.append(plane.intersection_with_line([x, cy - s, z], [x, cy + s, z]))
    mesh.extend(vertices=np.array(corners), faces=np.array([[0, 1, 2], [2, 1, 3]]))


def generate_mesh_from_cube(mesh: Mesh, box: Box) -> None:
    """Adds a box to a mesh as 8 vertices and 12 triangles without colors."""
    half = box.sizes / 2
    lower, upper = box.center - half, box.center + half
    corners = np.array([[x, y, z]
                        for x in (lower[0], upper[0])
                        for y in (lower[1], upper[1])
                        for z in (lower[2], upper[2])])
    mesh.extend(vertices=corners, faces=CUBE_LINKS)
