"""PLY file reading and writing.

Meshes are written as ASCII PLY files readable by MeshLab and Blender. Reading goes through `plyfile` and supports
ASCII as well as little and big endian binary files, e.g. as written by Open3D.

Functions:
    write_ply: Writes a mesh to an ASCII PLY file.
    read_ply: Reads a mesh from an ASCII or binary PLY file.
    get_texture_filename: Name of the texture image written next to a PLY file.
"""
import logging
import os
import time
from typing import Union

import numpy as np
import open3d as o3d
from plyfile import PlyData, PlyParseError

from .mesh import Mesh

logger = logging.getLogger(__name__)


def get_texture_filename(filename: str) -> str:
    """Name of the texture image belonging to a PLY file: `name.ply` -> `name.png`, else `filename.texture.png`."""
    if filename.lower().endswith(".ply"):
        return filename[:-4] + ".png"
    return filename + ".texture.png"


def write_ply(mesh: Mesh, filename: str) -> None:
    """Writes a mesh to an ASCII PLY file.

    Texture coordinates are written per vertex (`s`, `t`) and per face corner (`texcoord` list with flipped v) for
    MeshLab. If the mesh has a texture, it is written next to the PLY file (see `get_texture_filename`).

    Args:
        mesh: The mesh to write.
        filename: Path to the PLY file.
    """
    start = time.time()
    if mesh.has_texture():
        texture_filename = get_texture_filename(filename)
        logger.debug(f"Writing texture to {texture_filename}.")
        if not o3d.io.write_image(texture_filename, o3d.geometry.Image(np.ascontiguousarray(mesh.texture))):
            raise OSError(f"Couldn't write texture to {texture_filename}.")

    has_texcoords = mesh.has_texcoords()
    has_face_texcoords = mesh.has_face_texcoords()

    header = ["ply",
              "format ascii 1.0",
              f"element vertex {mesh.num_vertices}",
              "property float x",
              "property float y",
              "property float z"]
    columns = [mesh.vertices]
    if mesh.has_normals():
        header += ["property float nx", "property float ny", "property float nz"]
        columns.append(np.where(np.isnan(mesh.normals), 0.0, mesh.normals))
    if has_texcoords:
        header += ["property float s", "property float t"]
        columns.append(mesh.texcoords)
    if mesh.has_faces():
        face_header = [f"element face {mesh.num_faces}", "property list uchar uint vertex_indices"]
        if has_texcoords or has_face_texcoords:
            face_header.append("property list uchar float texcoord")
    else:
        face_header = list()
    if mesh.has_colors():
        header += ["property uchar red", "property uchar green", "property uchar blue"]
    header += face_header + ["end_header"]

    floats = np.hstack(columns)
    float_format = " ".join(["{:.9g}"] * floats.shape[1])
    if mesh.has_colors():
        rows = (float_format.format(*row) + " {:d} {:d} {:d}".format(*color)
                for row, color in zip(floats.tolist(), mesh.colors.tolist()))
    else:
        rows = (float_format.format(*row) for row in floats.tolist())

    with open(filename, "w") as f:
        f.write("\n".join(header) + "\n")
        for row in rows:
            f.write(row + "\n")
        if mesh.has_faces():
            if has_face_texcoords:
                corner_texcoords = mesh.face_texcoords
            elif has_texcoords:
                corner_texcoords = mesh.texcoords[mesh.faces]
            else:
                corner_texcoords = None
            if corner_texcoords is None:
                for face in mesh.faces.tolist():
                    f.write("3 {:d} {:d} {:d}\n".format(*face))
            else:
                flipped = corner_texcoords.copy()
                flipped[:, :, 1] = 1.0 - flipped[:, :, 1]
                for face, uv in zip(mesh.faces.tolist(), flipped.reshape(-1, 6).tolist()):
                    f.write("3 {:d} {:d} {:d} 6 ".format(*face) + " ".join("{:.9g}".format(value) for value in uv)
                            + "\n")
    logger.debug(f"Writing {mesh} to {filename} took {time.time() - start} seconds.")


def _get_columns(data: np.ndarray, *names: str) -> Union[np.ndarray, None]:
    if data is not None and all(name in data.dtype.names for name in names):
        return np.stack([data[name].astype(np.float64) for name in names], axis=1)
    return None


def _get_list_rows(data: np.ndarray, name: str, length: int, error: str) -> np.ndarray:
    rows = data[name]
    if any(len(row) != length for row in rows):
        raise ValueError(error)
    return np.vstack(rows).reshape(len(rows), length)


def read_ply(filename: str) -> Mesh:
    """Reads a mesh from an ASCII or binary PLY file.

    Elements other than `vertex` and `face` as well as unknown properties are skipped. Texture images are loaded
    from a `TextureFile` header comment or, if the mesh has texture coordinates, from the file `write_ply` would write.

    Args:
        filename: Path to the PLY file.

    Returns:
        The mesh.
    """
    start = time.time()
    if not os.path.exists(filename):
        raise FileNotFoundError(f"No PLY file found at {filename}.")

    try:
        ply_data = PlyData.read(filename)
    except PlyParseError as e:
        raise ValueError(f"Couldn't parse PLY file {filename}: {e}") from e
    elements = {element.name: element.data for element in ply_data.elements}

    vertex = elements.get("vertex")
    vertices = _get_columns(vertex, "x", "y", "z")
    if vertices is None and vertex is not None and len(vertex):
        raise ValueError("PLY vertex element has no x, y and z properties.")

    normals = _get_columns(vertex, "nx", "ny", "nz")
    texcoords = _get_columns(vertex, "s", "t")
    if texcoords is None:
        texcoords = _get_columns(vertex, "u", "v")
    if texcoords is None:
        texcoords = _get_columns(vertex, "texture_u", "texture_v")

    colors = _get_columns(vertex, "red", "green", "blue")
    if colors is not None and any(vertex[name].dtype.kind == "f" for name in ["red", "green", "blue"]):
        colors = np.round(np.clip(colors, 0, 1) * 255)

    faces = None
    face_texcoords = None
    face = elements.get("face")
    if face is not None and len(face):
        for name in ["vertex_indices", "vertex_index"]:
            if name in face.dtype.names:
                faces = _get_list_rows(face, name, 3, "Only triangles are supported.").astype(np.int64)
                break
        if faces is not None and "texcoord" in face.dtype.names:
            face_texcoords = _get_list_rows(face, "texcoord", 6, "PLY face texcoords need 6 values per face.")
            face_texcoords = face_texcoords.astype(np.float64).reshape(-1, 3, 2)
            face_texcoords[:, :, 1] = 1.0 - face_texcoords[:, :, 1]

    texture = None
    texture_filename = None
    for comment in ply_data.comments:
        if comment.startswith("TextureFile") and len(comment.split()) > 1:
            texture_filename = os.path.join(os.path.dirname(filename), comment.split(maxsplit=1)[1])
    if texture_filename is None and (texcoords is not None or face_texcoords is not None):
        texture_filename = get_texture_filename(filename)
    if texture_filename is not None and os.path.exists(texture_filename):
        logger.debug(f"Reading texture from {texture_filename}.")
        texture = np.asarray(o3d.io.read_image(texture_filename))
        if texture.ndim == 2:
            texture = np.stack([texture] * 3, axis=-1)
        texture = texture[:, :, :3]

    mesh = Mesh(vertices=vertices,
                faces=faces,
                colors=colors,
                normals=normals,
                texcoords=texcoords,
                face_texcoords=face_texcoords,
                texture=texture)
    logger.debug(f"Reading {mesh} from {filename} took {time.time() - start} seconds.")
    return mesh
