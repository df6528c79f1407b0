#!/usr/bin/env python3
"""Cleans up and transforms PLY meshes."""
import argparse
import logging
import os
import sys
import time
from typing import List, Union

import numpy as np
import tabulate

from easy_mesh import set_logger_level
from easy_mesh.mesh import Mesh

logger = logging.getLogger(__name__)


def print_mesh_summary(mesh: Mesh, title: str = "MESH") -> None:
    """Prints vertex and face counts, available attributes and the extent of a mesh.

    Args:
        mesh: The mesh.
        title: The table title.
    """
    valid = mesh.vertices[~np.isnan(mesh.vertices).any(axis=1)]
    summary = [("Vertices", mesh.num_vertices),
               ("Faces", mesh.num_faces),
               ("Colors", mesh.has_colors()),
               ("Normals", mesh.has_normals()),
               ("Texcoords", mesh.has_texcoords() or mesh.has_face_texcoords()),
               ("Texture", mesh.has_texture()),
               ("Center", np.round(mesh.center(), 6).tolist()),
               ("Min bound", np.round(valid.min(axis=0), 6).tolist() if len(valid) else "-"),
               ("Max bound", np.round(valid.max(axis=0), 6).tolist() if len(valid) else "-")]
    print()
    print(f"{title}:\n{'=' * (len(title) + 1)}")
    print(tabulate.tabulate(summary))


def run(argv: Union[List[str], None] = None) -> Mesh:
    """Loads a PLY mesh, applies the requested processing steps and writes the result.

    Processing steps are applied in order: duplicate removal, normal computation, centering, scaling.

    Args:
        argv: Command line arguments. Read from `sys.argv` if not provided.

    Returns:
        The processed mesh.
    """
    start = time.time()
    parser = argparse.ArgumentParser(description="Cleans up and transforms PLY meshes.")
    parser.add_argument("input", type=str, help="Path to the input PLY file.")
    parser.add_argument("-o", "--output", type=str, default=None,
                        help="Path to the output PLY file. Overwrites the input if not provided.")
    parser.add_argument("--remove-duplicates", action="store_true", help="Merge vertices with identical coordinates.")
    parser.add_argument("--compute-normals", action="store_true", help="Compute vertex normals from the faces.")
    parser.add_argument("--center", action="store_true", help="Move the mesh center into the origin.")
    parser.add_argument("--scale", type=float, nargs="+", default=None,
                        help="Scale factor or per-axis scale factors for x, y and z.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Don't print mesh summaries.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Get verbose output during execution.")
    args = parser.parse_args(argv)

    if args.verbose:
        logger.setLevel(logging.DEBUG)
        set_logger_level(logging.DEBUG)

    if not os.path.exists(args.input):
        raise FileNotFoundError(f"No mesh found at {args.input}.")
    mesh = Mesh.from_ply(args.input)
    if not args.quiet:
        print_mesh_summary(mesh, title="INPUT")

    if args.remove_duplicates:
        num_vertices = mesh.num_vertices
        mesh.remove_duplicated_vertices()
        mesh.remove_isolated_vertices()
        logger.debug(f"Removed {num_vertices - mesh.num_vertices} duplicated vertices.")
    if args.compute_normals:
        if not mesh.has_faces():
            logger.warning("Mesh has no faces. Normals will be zero.")
        mesh.compute_normals_from_faces()
    if args.center:
        center = mesh.centerize()
        logger.debug(f"Moved mesh by {-center}.")
    if args.scale is not None:
        if len(args.scale) == 1:
            scale = args.scale * 3
        elif len(args.scale) == 3:
            scale = args.scale
        else:
            raise ValueError(f"Need one or three scale factors but got {len(args.scale)}.")
        mesh.apply_scale_transform(*scale)

    output = args.output if args.output is not None else args.input
    mesh.save_to_ply(output)
    if not args.quiet:
        print_mesh_summary(mesh, title="OUTPUT")
    logger.debug(f"Processing took {time.time() - start} seconds.")
    return mesh


def main() -> None:
    run(argv=sys.argv[1:])


if __name__ == "__main__":
    main()
