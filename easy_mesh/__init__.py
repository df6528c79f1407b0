"""Triangle meshes, PLY files and RGB-D ICP pose estimation on top of Open3D.

Files:
    __init__.py: This file.
    geometry.py: Small geometric primitives (planes, boxes, surfels).
    mesh.py: The triangle mesh container and primitive mesh generators.
    ply.py: PLY file reading and writing.
    filters.py: Depth image filters.
    registration.py: Relative pose estimation with the Iterative Closest Point algorithm.
    interfaces.py: Interfaces and base classes.
    utils.py: Utility functions used throughout the project.

Classes:
    mesh.Mesh: Triangle mesh with per-vertex colors, normals and texture coordinates.
    geometry.Plane: A plane in Hessian normal form.
    geometry.Box: An axis-aligned box.
    geometry.Surfel: An oriented surface element.
    registration.RelativePoseEstimatorICP: Point-to-Point ICP relative pose estimator.
    registration.RelativePoseEstimatorICPWithNormals: Point-to-Plane ICP relative pose estimator.
    registration.RelativePoseEstimatorRGBDICP: Colored ICP relative pose estimator for RGB-D data.
    registration.KernelTypes: Supported robust kernel types.
    interfaces.RelativePoseEstimatorInterface: Interface for all relative pose estimators.
    interfaces.PoseEstimationResult: Mutable registration result with runtime.
    utils.DownsampleTypes: Supported point cloud downsampling types.
    utils.SearchParamTypes: Supported normal computation search parameter types.
    utils.OrientationTypes: Supported normal orientation types.

Functions:
    get_logger: Returns the package-wide logger
    set_logger_level: Sets the package-wide logger level.
    mesh.generate_mesh_from_plane: Adds a square patch of a plane to a mesh.
    mesh.generate_mesh_from_cube: Adds a box to a mesh.
    ply.read_ply: Reads a mesh from an ASCII or binary PLY file.
    ply.write_ply: Writes a mesh to an ASCII PLY file.
    filters.depth_bilateral_filter: Edge preserving smoothing of depth images.
    utils.eval_data: Convenience function that automatically determines the data type and loads the data accordingly.
    utils.process_point_cloud: Utility function to apply various processing steps on point cloud data.
    utils.eval_transformation_data: Evaluates different types of transformation data to obtain a 4x4 matrix.
    utils.draw_geometries: Convenience function to draw 3D geometries.
"""

import logging

logger = logging.getLogger(__name__)


def get_logger() -> logging.Logger:
    """Returns the package-wide logger.

    Returns:
        logging.Logger: The package-wide logger.
    """
    return logger


def set_logger_level(level: int) -> None:
    """Sets the package-wide logger level.

    Args:
        level (int): The logger level.
    """
    logger.setLevel(level=level)
