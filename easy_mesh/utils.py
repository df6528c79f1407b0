"""Utility functions used throughout the project.

Classes:
    SampleTypes: Supported types of point cloud sampling from meshes.
    DownsampleTypes: Supported point cloud downsampling types.
    OutlierTypes: Supported outlier removal types.
    SearchParamTypes: Supported normal computation search parameter types.
    OrientationTypes: Supported normal orientation types.

Functions:
    eval_data: Convenience function that automatically determines the data type and loads the data accordingly.
    eval_data_parallel: Evaluates a list of inputs in parallel using multi-threading.
    process_point_cloud: Utility function to apply various processing steps on point cloud data.
    read_point_cloud: Reads point cloud data from file.
    read_triangle_mesh: Reads triangle mesh data from file.
    get_point_cloud_from_points: Convenience function to obtain point clouds from points.
    sample_point_cloud_from_triangle_mesh: Convenience function to obtain point clouds from triangle meshes.
    get_camera_intrinsic_from_array: Constructs camera intrinsic object from image dimensions and camara intrinsic data.
    get_rgbd_image: Constructs an RGB-D image from a color and a depth image.
    eval_image_type: Convenience function constructing an RGB or RGB-D image based on input type.
    eval_camera_intrinsic_type: Convenience function constructing a camera intrinsic object based on input type.
    convert_depth_image_to_point_cloud: Convenience function converting depth images to point clouds.
    convert_rgbd_image_to_point_cloud: Convenience function converting RGB-D image data to point clouds.
    eval_transformation_data: Evaluates different types of transformation data to obtain a 4x4 transformation matrix.
    get_transformation_matrix_from_xyz: Constructs a 4x4 homogenous transformation matrix from a XYZ translation vector
                                        and XYZ Euler angles.
    get_transformation_matrix_from_quaternion: Constructs a 4x4 homogenous transformation matrix from a XYZ translation
                                               vector and WXYZ quaternion values.
    get_ground_truth_pose_from_file: Reads a pose from JSON file.
    read_camera_intrinsic: Reads pinhole camera intrinsic parameters from file.
    draw_geometries: Convenience function to draw 3D geometries.
    get_transformation_error: Computes the rotational and translational error between estimated and ground-truth
                              transformation data.
    get_rotation_error: Computes the error between estimated and ground-truth rotation in degrees or radians.
    get_translation_error: Computes the translational error between estimated and ground-truth translation.
"""
import ast
import copy
import json
import logging
import math
import os
import time
from enum import Flag, auto
from multiprocessing import cpu_count
from typing import Any, List, Union, Tuple, Dict

import numpy as np
import open3d as o3d
from joblib import Parallel, delayed

from .filters import depth_bilateral_filter

PinholeCameraIntrinsic = o3d.camera.PinholeCameraIntrinsic
PinholeCameraIntrinsicParameters = o3d.camera.PinholeCameraIntrinsicParameters
Image = o3d.geometry.Image
RGBDImage = o3d.geometry.RGBDImage
PointCloud = o3d.geometry.PointCloud
TriangleMesh = o3d.geometry.TriangleMesh

ImageTypes = Union[Image, RGBDImage, np.ndarray, str]
RGBDImageTypes = Union[ImageTypes, List[ImageTypes]]
InputTypes = Union[PointCloud, TriangleMesh, RGBDImageTypes, Any]
CameraTypes = Union[list, np.ndarray, PinholeCameraIntrinsic, PinholeCameraIntrinsicParameters, str]
TransformationTypes = Union[np.ndarray, List[float], List[List[float]], str]

logger = logging.getLogger(__name__)


class SampleTypes(Flag):
    """Supported types of point cloud sampling from meshes."""
    UNIFORMLY = auto()
    POISSON_DISK = auto()


class DownsampleTypes(Flag):
    """Supported point cloud downsampling types."""
    VOXEL = auto()
    RANDOM = auto()
    UNIFORM = auto()


class OutlierTypes(Flag):
    """Supported outlier removal types."""
    STATISTICAL = auto()
    RADIUS = auto()


class SearchParamTypes(Flag):
    """Supported normal computation search parameter types."""
    KNN = auto()
    RADIUS = auto()
    HYBRID = auto()


class OrientationTypes(Flag):
    """Supported normal orientation types."""
    TANGENT_PLANE = auto()
    CAMERA = auto()
    DIRECTION = auto()


def eval_data(data: InputTypes,
              number_of_points: Union[int, None] = None,
              camera_intrinsic: Union[CameraTypes, None] = None,
              **kwargs: Any) -> PointCloud:
    """Convenience function that automatically determines the data type and loads the data accordingly.

    Args:
        data: The data to be evaluated (read, transformed). Besides Open3D geometry, paths, arrays and images, any
              object with a `to_point_cloud` method (e.g. `mesh.Mesh`) is accepted.
        number_of_points: Number of points to sample from `data` if it is a triangle mesh.
        camera_intrinsic: Camera intrinsic parameters used when converting depth or RGB-D images to point clouds.

    Returns:
        The data evaluated as a point cloud.
    """
    if isinstance(data, PointCloud):
        logger.debug("Data is point cloud. Returning.")
        return data
    elif hasattr(data, "to_point_cloud"):
        logger.debug("Data is mesh container. Converting vertices to point cloud.")
        return data.to_point_cloud()
    elif isinstance(data, (Image, str)) and camera_intrinsic is not None:
        logger.debug("Trying to convert depth image to point cloud.")
        return convert_depth_image_to_point_cloud(image_or_path=data,
                                                  camera_intrinsic=camera_intrinsic,
                                                  **kwargs)
    elif isinstance(data, (RGBDImage, list, tuple)) and camera_intrinsic is not None:
        logger.debug("Trying to convert RGB-D image to point cloud.")
        return convert_rgbd_image_to_point_cloud(rgbd_image_or_path=list(data) if isinstance(data, tuple) else data,
                                                 camera_intrinsic=camera_intrinsic,
                                                 **kwargs)
    elif isinstance(data, (TriangleMesh, str)) and number_of_points is not None:
        logger.debug("Trying to sample point cloud from mesh.")
        return sample_point_cloud_from_triangle_mesh(mesh_or_filename=data,
                                                     number_of_points=number_of_points,
                                                     **kwargs)
    elif isinstance(data, TriangleMesh):
        logger.debug("Data is triangle mesh. Using vertices as points.")
        return sample_point_cloud_from_triangle_mesh(mesh_or_filename=data, number_of_points=0, sample_type=None)
    elif isinstance(data, str):
        logger.debug(f"Trying to read point cloud data from file.")
        return read_point_cloud(filename=data, **kwargs)
    elif isinstance(data, np.ndarray):
        if camera_intrinsic is not None:
            if len(data.shape) == 2:
                logger.debug(f"Trying to convert depth data to point cloud ")
                return convert_depth_image_to_point_cloud(image_or_path=data,
                                                          camera_intrinsic=camera_intrinsic,
                                                          **kwargs)
            elif data.shape[2] == 4:
                logger.debug(f"Trying to convert RGB-D data to point cloud.")
                return convert_rgbd_image_to_point_cloud(rgbd_image_or_path=data,
                                                         camera_intrinsic=camera_intrinsic,
                                                         **kwargs)
        elif len(data.shape) == 2 and data.shape[1] in [3, 6, 9]:
            logger.debug("Trying to convert data to point cloud.")
            return get_point_cloud_from_points(points=data)
        raise ValueError(
            f"Point cloud data must be of shape Nx3 (xyz), Nx6 or Nx9 (rgb, normals) but is {data.shape}.")
    else:
        raise TypeError(f"Can't process data of type {type(data)}.")


def eval_data_parallel(data_list: List[InputTypes],
                       num_threads: int = cpu_count(),
                       **kwargs: Any) -> List[PointCloud]:
    """Evaluates a list of inputs in parallel using multi-threading.

    Keyword arguments given as lists are distributed element-wise over `data_list`.

    Args:
        data_list: The list of inputs.
        num_threads: The number of parallel threads to run.

    Returns:
        List of evaluated inputs.
    """
    kwargs_list = list()
    for i, d in enumerate(data_list):
        kwargs_dict = {"data": d}
        for key, value in kwargs.items():
            kwargs_dict[key] = value[i] if isinstance(value, list) else value
        kwargs_list.append(kwargs_dict)
    if len(data_list) == 1:
        return [eval_data(**kwargs_list[0])]
    parallel = Parallel(n_jobs=min(num_threads, len(data_list)), prefer="threads")
    return parallel(delayed(eval_data)(**params) for params in kwargs_list)


def process_point_cloud(point_cloud: PointCloud,
                        scale: float = 1.0,
                        downsample: Union[DownsampleTypes, None] = None,
                        downsample_factor: Union[float, int] = 1,
                        remove_outlier: Union[OutlierTypes, None] = None,
                        outlier_std_ratio: float = 1.0,
                        transformation: Union[np.ndarray, list, None] = None,
                        estimate_normals: bool = False,
                        recalculate_normals: bool = False,
                        fast_normal_computation: bool = True,
                        normalize_normals: bool = False,
                        orient_normals: Union[OrientationTypes, None] = None,
                        search_param: Union[SearchParamTypes, None] = SearchParamTypes.HYBRID,
                        search_param_knn: int = 30,
                        search_param_radius: float = 0.02,  # 2cm
                        camera_location_or_direction: Union[np.ndarray, list] = np.zeros(3),
                        draw: bool = False) -> PointCloud:
    """Utility function to apply various processing steps on point cloud data.

    Processing steps are applied in order implied by the functions argument order:
    1. `scale`
    2. `downsample`
    3. `remove outlier`
    4. `transformation`
    5. `estimate normals`
    6. `normalize normals`
    7. `orient normals`

    Args:
        point_cloud: The point cloud to be processed. It is not modified.
        scale: Scales the point cloud.
        downsample: Reduce point cloud density by dropping points randomly, uniformly or in voxel grid fashion.
        downsample_factor: The amount of downsampling. Factor for `DownsampleType.UNIFORM`, voxel size for
                           `DownsampleType.VOXEL` and sampling ratio for `DownsampleTypes.RANDOM`.
        remove_outlier: Remove outlier vertices based on radius density or variance.
        outlier_std_ratio: Standard deviation for statistical outlier removal. Smaller removes more vertices.
        transformation: Homogeneous transformation. Also accepts translation vector or rotation matrix.
        estimate_normals: Estimate vertex normals.
        recalculate_normals: Recalculate normals if the point cloud already has normals.
        fast_normal_computation: Use fast normal computation algorithm.
        normalize_normals: Scale normals to unit length.
        orient_normals: Orient normals towards: plane spanned by their neighbors, an orientation or the camera location.
        search_param: Normal computation search parameters. Can be radius, kNN or both (hybrid).
        search_param_knn: Compute normals based on k neighboring vertices.
        search_param_radius: Compute normals based on vertices inside a specified radius.
        camera_location_or_direction: The camera location or an orientation used in normal orientation computation.
        draw: Visualize the processed point cloud. Mostly for debugging.

    Returns:
        The processed point cloud.
    """
    start = time.time()
    _point_cloud = copy.deepcopy(point_cloud)
    if scale != 1.0:
        logger.debug(f"Scaling point cloud with factor {scale}.")
        _point_cloud.points = o3d.utility.Vector3dVector(np.asarray(_point_cloud.points) * scale)

    if downsample is not None:
        logger.debug(f"{downsample} downsampling point cloud with factor {downsample_factor}.")
        logger.debug(f"Number of points before downsampling: {len(_point_cloud.points)}")
        if downsample == DownsampleTypes.VOXEL:
            _point_cloud = _point_cloud.voxel_down_sample(voxel_size=downsample_factor)
        elif downsample == DownsampleTypes.RANDOM:
            _point_cloud = _point_cloud.random_down_sample(sampling_ratio=downsample_factor)
        elif downsample == DownsampleTypes.UNIFORM:
            _point_cloud = _point_cloud.uniform_down_sample(every_k_points=int(downsample_factor))
        else:
            raise ValueError(f"`downsample` needs to by one of `DownsampleTypes` but is {type(downsample)}.")
        logger.debug(f"Number of points after downsampling: {len(_point_cloud.points)}")

    if remove_outlier is not None:
        num_points = len(_point_cloud.points)
        if remove_outlier == OutlierTypes.STATISTICAL:
            _point_cloud, _ = _point_cloud.remove_statistical_outlier(nb_neighbors=search_param_knn,
                                                                      std_ratio=outlier_std_ratio)
        elif remove_outlier == OutlierTypes.RADIUS:
            _point_cloud, _ = _point_cloud.remove_radius_outlier(nb_points=search_param_knn, radius=search_param_radius)
        else:
            raise ValueError(f"`remove_outlier` needs to be one of `OutlierTypes` but is {type(remove_outlier)}.")
        logger.debug(f"Removed {num_points - len(_point_cloud.points)} outliers.")

    if transformation is not None:
        _transform = np.asarray(transformation)
        if _transform.size in [3, 4]:
            _point_cloud.translate(translation=_transform.ravel()[:3], relative=True)
        elif _transform.size == 9:
            # noinspection PyArgumentList
            _point_cloud.rotate(R=_transform.reshape(3, 3), center=_point_cloud.get_center())
        elif _transform.size == 16:
            _point_cloud.transform(_transform.reshape(4, 4))
        else:
            raise ValueError("`transformation` needs to be a valid translation, rotation or transformation in natural"
                             "or homogeneous coordinates, i.e. of size 3, 4, 9 or 16.")

    if estimate_normals and search_param is not None:
        if search_param == SearchParamTypes.KNN:
            _search_param = o3d.geometry.KDTreeSearchParamKNN(knn=search_param_knn)
        elif search_param == SearchParamTypes.RADIUS:
            _search_param = o3d.geometry.KDTreeSearchParamRadius(radius=search_param_radius)
        elif search_param == SearchParamTypes.HYBRID:
            _search_param = o3d.geometry.KDTreeSearchParamHybrid(radius=search_param_radius, max_nn=search_param_knn)
        else:
            raise TypeError(f"`search_param` needs have type `SearchParamTypes` but has type {type(search_param)}.")

        if not _point_cloud.has_normals() or recalculate_normals:
            logger.debug(f"Estimating point cloud normals using method {search_param}.")
            if recalculate_normals:
                _point_cloud.normals = o3d.utility.Vector3dVector()
            _point_cloud.estimate_normals(search_param=_search_param,
                                          fast_normal_computation=fast_normal_computation)

    if normalize_normals:
        if _point_cloud.has_normals():
            _point_cloud = _point_cloud.normalize_normals()
        else:
            logger.warning("Point cloud doesn't have normals so can't normalize them.")

    if orient_normals is not None:
        assert _point_cloud.has_normals(), "Point cloud doesn't have normals which could be oriented."
        logger.debug(f"Orienting normals towards {orient_normals}.")
        if orient_normals == OrientationTypes.TANGENT_PLANE:
            _point_cloud.orient_normals_consistent_tangent_plane(k=search_param_knn)
        elif orient_normals == OrientationTypes.CAMERA:
            _point_cloud.orient_normals_towards_camera_location(camera_location=np.asarray(camera_location_or_direction))
        elif orient_normals == OrientationTypes.DIRECTION:
            _point_cloud.orient_normals_to_align_with_direction(
                orientation_reference=np.asarray(camera_location_or_direction))
        else:
            raise ValueError(f"`orient_normals` needs to be one of `OrientationTypes` but is {type(orient_normals)}.")

    logger.debug(f"Processing took {time.time() - start} seconds.")

    if draw:
        if not _point_cloud.has_colors():
            _point_cloud.paint_uniform_color([0.8, 0.0, 0.0])
        draw_geometries(geometries=[_point_cloud], window_name="Processed Point Cloud")

    return _point_cloud


def read_point_cloud(filename: str, **kwargs: Any) -> PointCloud:
    """Reads point cloud data from file.

    Args:
        filename: The path to the point cloud file. NumPy files (`.npy`, `.npz`) need to hold a Nx3, Nx6 or Nx9 array.

    Returns:
        The point cloud data read from file.
    """
    if not os.path.exists(filename):
        raise FileNotFoundError(f"No point cloud file found at {filename}.")
    if filename.endswith(".npy") or filename.endswith(".npz"):
        potential_points = np.load(filename)
        if isinstance(potential_points, np.lib.npyio.NpzFile):
            potential_points = potential_points[potential_points.files[0]]
        if len(potential_points.shape) == 2 and potential_points.shape[1] in [3, 6, 9]:
            return get_point_cloud_from_points(points=potential_points)
        else:
            raise ValueError(f"Numpy array read from file has shape {potential_points.shape} which is not supported.")
    return o3d.io.read_point_cloud(filename=filename,
                                   format=kwargs.get("format", 'auto'),
                                   remove_nan_points=kwargs.get("remove_nan_points", True),
                                   remove_infinite_points=kwargs.get("remove_infinite_points", True),
                                   print_progress=kwargs.get("print_progress", False))


def read_triangle_mesh(filename: str, **kwargs: Any) -> TriangleMesh:
    """Reads triangle mesh data from file.

    Args:
        filename: The path to the triangle mesh file.

    Returns:
        The triangle mesh data read from file.
    """
    if not os.path.exists(filename):
        raise FileNotFoundError(f"No triangle mesh file found at {filename}.")
    return o3d.io.read_triangle_mesh(filename=filename,
                                     enable_post_processing=kwargs.get("enable_post_processing", False),
                                     print_progress=kwargs.get("print_progress", False))


def get_point_cloud_from_points(points: np.ndarray) -> PointCloud:
    """Convenience function to obtain point clouds from points.

    Args:
        points: A Nx3 array of vertex coordinates. Nx6 adds RGB colors in [0, 1], Nx9 adds normals as well.

    Returns:
        The point cloud created from the points.
    """
    _points = np.asarray(points, dtype=np.float64)
    point_cloud = PointCloud(o3d.utility.Vector3dVector(_points[:, :3]))
    if _points.shape[1] >= 6:
        point_cloud.colors = o3d.utility.Vector3dVector(_points[:, 3:6])
    if _points.shape[1] == 9:
        point_cloud.normals = o3d.utility.Vector3dVector(_points[:, 6:9])
    return point_cloud


def sample_point_cloud_from_triangle_mesh(mesh_or_filename: Union[TriangleMesh, str],
                                          number_of_points: int,
                                          sample_type: Union[SampleTypes, None] = SampleTypes.UNIFORMLY,
                                          **kwargs: Any) -> PointCloud:
    """Convenience function to obtain point clouds from triangle meshes.

    Args:
        mesh_or_filename: The triangle mesh from which the point cloud is sampled.
        number_of_points: Number of points to sample from the triangle mesh.
        sample_type: How to sample the points from the triangle mesh. If `None`, returns mesh vertices.

    Returns:
        The point cloud obtained from the triangle mesh through sampling.
    """
    if isinstance(mesh_or_filename, str):
        mesh = read_triangle_mesh(filename=mesh_or_filename, **kwargs)
    elif isinstance(mesh_or_filename, TriangleMesh):
        mesh = mesh_or_filename
    else:
        raise TypeError(f"Can't read mesh of type {type(mesh_or_filename)}.")

    if sample_type is None:
        point_cloud = PointCloud(o3d.utility.Vector3dVector(np.asarray(mesh.vertices)))
        if mesh.has_vertex_colors():
            point_cloud.colors = o3d.utility.Vector3dVector(np.asarray(mesh.vertex_colors))
        if mesh.has_vertex_normals():
            point_cloud.normals = o3d.utility.Vector3dVector(np.asarray(mesh.vertex_normals))
        return point_cloud

    if sample_type == SampleTypes.UNIFORMLY:
        return mesh.sample_points_uniformly(number_of_points=number_of_points,
                                            use_triangle_normal=kwargs.get("use_triangle_normal", False))
    elif sample_type == SampleTypes.POISSON_DISK:
        return mesh.sample_points_poisson_disk(number_of_points=number_of_points,
                                               init_factor=kwargs.get("init_factor", 5),
                                               pcl=kwargs.get("pcl"),
                                               use_triangle_normal=kwargs.get("use_triangle_normal", False))
    else:
        raise ValueError(f"Sample type {sample_type} not supported.")


def get_camera_intrinsic_from_array(image_or_path: ImageTypes,
                                    camera_intrinsic: Union[np.ndarray, list]) -> PinholeCameraIntrinsic:
    """Constructs camera intrinsic object from image dimensions and camara intrinsic data.

    Args:
        image_or_path: An image data as produced by the camera.
        camera_intrinsic: An array or list holding the camera intrinsic parameters: fx, fy, cx, cy and s or the 3x3
                          camera matrix.

    Returns:
        The camera intrinsic object.
    """
    intrinsic = np.asarray(camera_intrinsic, dtype=np.float64).flatten()
    assert intrinsic.size in [4, 5, 9], f"Camera intrinsic must be 4, 5 or 9 values but is {intrinsic.size}."
    if intrinsic.size == 9:
        intrinsic = intrinsic.reshape(3, 3)
    else:
        _intrinsic = intrinsic
        intrinsic = np.zeros(9).reshape(3, 3)
        intrinsic[0, 0] = _intrinsic[0]
        intrinsic[1, 1] = _intrinsic[1]
        intrinsic[0, 2] = _intrinsic[2]
        intrinsic[1, 2] = _intrinsic[3]
        if _intrinsic.size == 5:
            intrinsic[0, 1] = _intrinsic[4]
    image = eval_image_type(image_or_path=image_or_path)
    if isinstance(image, RGBDImage):
        image = image.depth
    height, width = np.asarray(image).shape[:2]
    fx, fy = intrinsic[0, 0], intrinsic[1, 1]
    cx, cy = intrinsic[0, 2], intrinsic[1, 2]
    return PinholeCameraIntrinsic(width=width, height=height, fx=fx, fy=fy, cx=cx, cy=cy)


def _read_image_array(image_or_path: Union[Image, np.ndarray, str], name: str) -> np.ndarray:
    if isinstance(image_or_path, str):
        if not os.path.exists(image_or_path):
            raise FileNotFoundError(f"No {name} image found at {image_or_path}.")
        return np.asarray(o3d.io.read_image(image_or_path))
    elif isinstance(image_or_path, Image):
        return np.asarray(image_or_path)
    elif isinstance(image_or_path, np.ndarray):
        return image_or_path
    raise TypeError(f"`{name}` must have type {ImageTypes} but has type {type(image_or_path)}.")


# noinspection PyTypeChecker
def get_rgbd_image(color: ImageTypes, depth: Union[ImageTypes, None] = None, **kwargs: Any) -> RGBDImage:
    """Constructs an RGB-D image object from color and depth data.

    If `depth_filter_params` is given as keyword argument, the depth image is smoothed with
    `filters.depth_bilateral_filter` using these parameters before the RGB-D image is constructed.

    Args:
        color: The RGB image data.
        depth: The depth image data. If `None`, `color` needs to be RGB-D, i.e. needs to contain a depth channel.

    Returns:
        The RGB-D image object.
    """
    if depth is None and isinstance(color, RGBDImage):
        return color

    _color = _read_image_array(color, name="color")
    if depth is None:
        assert len(_color.shape) == 3 and _color.shape[2] == 4, \
            f"Without `depth`, `color` must have shape WxHx4 but has shape {_color.shape}."
        _depth = _color[:, :, 3]
        _color = _color[:, :, :3]
    else:
        _depth = _read_image_array(depth, name="depth")

    depth_filter_params = kwargs.get("depth_filter_params")
    if depth_filter_params is not None:
        logger.debug(f"Filtering depth image with parameters {depth_filter_params}.")
        _depth = depth_bilateral_filter(depth=_depth, **depth_filter_params)

    if _color.dtype != np.uint8:
        _color = np.clip(_color, 0, 255).astype(np.uint8)
    if _depth.dtype not in [np.uint16, np.float32]:
        _depth = _depth.astype(np.float32)

    return RGBDImage.create_from_color_and_depth(color=Image(np.ascontiguousarray(_color)),
                                                 depth=Image(np.ascontiguousarray(_depth)),
                                                 depth_scale=kwargs.get("depth_scale", 1000.0),
                                                 depth_trunc=kwargs.get("depth_trunc", 3.0),
                                                 convert_rgb_to_intensity=kwargs.get("convert_rgb_to_intensity",
                                                                                     False))


def eval_image_type(image_or_path: RGBDImageTypes, **kwargs: Any) -> Union[Image, RGBDImage]:
    """Convenience function constructing an RGB or RGB-D image based on input type.

    Args:
        image_or_path: The image data. Color and depth for RGB-D.

    Returns:
        The evaluated image object.
    """
    if isinstance(image_or_path, (Image, RGBDImage)):
        return image_or_path

    if isinstance(image_or_path, (list, tuple)):
        assert len(image_or_path) == 2, "Need to provide exactly one color and one depth image."
        color = image_or_path[0]
        depth = image_or_path[1]
        return get_rgbd_image(color=color, depth=depth, **kwargs)
    else:
        if isinstance(image_or_path, str):
            if not os.path.exists(image_or_path):
                raise FileNotFoundError(f"No image found at {image_or_path}.")
            color_or_depth = np.asarray(o3d.io.read_image(image_or_path))
        elif isinstance(image_or_path, np.ndarray):
            color_or_depth = image_or_path
        else:
            raise TypeError(f"Image type {type(image_or_path)} not supported.")

        if len(color_or_depth.shape) == 3 and color_or_depth.shape[2] == 4:
            return get_rgbd_image(color=color_or_depth, **kwargs)
        elif len(color_or_depth.shape) in [2, 3]:
            depth_filter_params = kwargs.get("depth_filter_params")
            if depth_filter_params is not None and len(color_or_depth.shape) == 2:
                color_or_depth = depth_bilateral_filter(depth=color_or_depth, **depth_filter_params)
            return Image(np.ascontiguousarray(color_or_depth))
        else:
            raise ValueError(f"Input shape must be WxH, WxHx3 or WxHx4 but is {color_or_depth.shape}.")


def eval_camera_intrinsic_type(image_or_path: ImageTypes, camera_intrinsic: CameraTypes) -> PinholeCameraIntrinsic:
    """Convenience function constructing a camera intrinsic object based on input type.

    Args:
        image_or_path: The image data as produced by the camera.
        camera_intrinsic: The camera intrinsic data.

    Returns:
        The evaluated camera intrinsic object.
    """
    if isinstance(camera_intrinsic, PinholeCameraIntrinsic):
        return camera_intrinsic
    elif isinstance(camera_intrinsic, PinholeCameraIntrinsicParameters):
        return PinholeCameraIntrinsic(camera_intrinsic)
    elif isinstance(camera_intrinsic, (np.ndarray, list, tuple)):
        return get_camera_intrinsic_from_array(image_or_path=image_or_path, camera_intrinsic=camera_intrinsic)
    elif isinstance(camera_intrinsic, str):
        return read_camera_intrinsic(filename=camera_intrinsic)
    else:
        raise TypeError(f"Camera intrinsic type {type(camera_intrinsic)} not supported.")


def convert_depth_image_to_point_cloud(image_or_path: ImageTypes,
                                       camera_intrinsic: CameraTypes,
                                       camera_extrinsic: Union[np.ndarray, list, None] = np.eye(4),
                                       depth_scale: float = 1000.0,
                                       depth_trunc: float = 1000.0,
                                       **kwargs: Any) -> PointCloud:
    """Convenience function converting depth images to point clouds.

    Args:
        image_or_path: The depth image data.
        camera_intrinsic: The camera intrinsic data.
        camera_extrinsic: The camera extrinsic transformation matrix.
        depth_scale: The scale of the depth data. 1000.0 means it is in millimeters and will be converted to meters.
        depth_trunc: The distance at which to truncate the depth when creating the point cloud.

    Returns:
        The point cloud created from the depth image data.
    """
    image = eval_image_type(image_or_path=image_or_path, **kwargs)
    assert isinstance(image, Image), f"'image' must have type 'Image' but has type {type(image)}."
    assert len(np.asarray(image).shape) == 2, f"Depth image must have shape WxH but is {np.asarray(image).shape}."

    intrinsic = eval_camera_intrinsic_type(image_or_path=image, camera_intrinsic=camera_intrinsic)
    if camera_extrinsic is None:
        extrinsic = np.eye(4)
    else:
        extrinsic = np.asarray(camera_extrinsic).reshape(4, 4)

    return PointCloud.create_from_depth_image(depth=image,
                                              intrinsic=intrinsic,
                                              extrinsic=extrinsic,
                                              depth_scale=depth_scale,
                                              depth_trunc=depth_trunc,
                                              stride=kwargs.get("stride", 1),
                                              project_valid_depth_only=kwargs.get("project_valid_depth_only", True))


def convert_rgbd_image_to_point_cloud(rgbd_image_or_path: RGBDImageTypes,
                                      camera_intrinsic: CameraTypes,
                                      camera_extrinsic: Union[np.ndarray, list, None] = np.eye(4),
                                      depth_scale: float = 1000.0,
                                      depth_trunc: float = 1000.0,
                                      **kwargs: Any) -> PointCloud:
    """Convenience function converting RGB-D image data to point clouds.

    Args:
        rgbd_image_or_path: The color and depth image data.
        camera_intrinsic: The camera intrinsic data.
        camera_extrinsic: The camera extrinsic transformation matrix.
        depth_scale: The scale of the depth data. 1000.0 means it is in millimeters and will be converted to meters.
        depth_trunc: The distance at which to truncate the depth when creating the point cloud.

    Returns:
        The point cloud created from the RGB-D image data.
    """
    rgbd_image = eval_image_type(image_or_path=rgbd_image_or_path,
                                 depth_scale=depth_scale,
                                 depth_trunc=depth_trunc,
                                 **kwargs)
    assert isinstance(rgbd_image, RGBDImage), f"'rgbd_image must have type 'RGBDImage' but has type {type(rgbd_image)}."

    intrinsic = eval_camera_intrinsic_type(image_or_path=rgbd_image, camera_intrinsic=camera_intrinsic)
    if camera_extrinsic is None:
        extrinsic = np.eye(4)
    else:
        extrinsic = np.asarray(camera_extrinsic).reshape(4, 4)

    return PointCloud.create_from_rgbd_image(image=rgbd_image,
                                             intrinsic=intrinsic,
                                             extrinsic=extrinsic,
                                             project_valid_depth_only=kwargs.get("project_valid_depth_only", True))


def eval_transformation_data(transformation_data: TransformationTypes) -> np.ndarray:
    """Evaluates different types of transformation data to obtain a 4x4 transformation matrix.

    Args:
        transformation_data: Array or list(s) containing transformation (rotation, translation) data, a path to a
                             JSON pose file, a string holding a Python literal or "center".

    Returns:
        A 4x4 transformation matrix or "center".
    """
    if isinstance(transformation_data, str):
        if transformation_data.lower() == "center":
            return np.asarray("center")
        if os.path.exists(transformation_data):
            return get_ground_truth_pose_from_file(path_to_ground_truth_json=transformation_data)
        data = ast.literal_eval(transformation_data)
    elif isinstance(transformation_data, tuple):
        data = list(transformation_data)
    else:
        data = transformation_data

    if isinstance(data, np.ndarray):
        if np.array_equal(data, np.asarray("center")):
            return data
        if data.size == 16:
            return data.reshape(4, 4).astype(np.float64)
        elif data.size in [3, 4]:
            T = np.eye(4)
            T[:3, 3] = data.ravel()[:3]
            return T
        elif data.size == 9:
            T = np.eye(4)
            T[:3, :3] = data.reshape(3, 3)
            return T
        else:
            raise ValueError(f"Transformation data needs 3, 4, 9 or 16 values but has {data.size}.")
    elif isinstance(data, (list, tuple)):
        if len(data) == 2:
            if len(data[0]) == 3 and len(data[1]) >= 3:
                return get_transformation_matrix_from_xyz(rotation_xyz=data[0], translation_xyz=data[1])
            elif len(data[0]) == 4 and len(data[1]) >= 3:
                return get_transformation_matrix_from_quaternion(rotation_wxyz=data[0], translation_xyz=data[1])
            elif len(data[0]) == 9 and len(data[1]) >= 3:
                T = np.eye(4)
                T[:3, :3] = np.asarray(data[0]).reshape(3, 3)
                T[:3, 3] = np.asarray(data[1]).ravel()[:3]
                return T
            else:
                raise ValueError(f"Transformation needs 3, 4 or 9 rotation values and 3 or 4 translation values.")
        elif len(data) == 3:
            if all(isinstance(row, (list, tuple, np.ndarray)) for row in data):
                T = np.eye(4)
                T[:3, :3] = np.asarray(data).reshape(3, 3)
                return T
            logger.debug("Ambiguous input. Could be XYZ Euler angles or XYZ translation. Interpreting as translation.")
            T = np.eye(4)
            T[:3, 3] = data
            return T
        elif len(data) == 4:
            if all(isinstance(row, (list, tuple, np.ndarray)) for row in data):
                return np.asarray(data, dtype=np.float64).reshape(4, 4)
            if data[-1] == 1.0:
                T = np.eye(4)
                T[:3, 3] = data[:3]
                return T
            else:
                return get_transformation_matrix_from_quaternion(rotation_wxyz=data)
        elif len(data) == 6:
            return get_transformation_matrix_from_xyz(rotation_xyz=data[:3], translation_xyz=data[3:])
        elif len(data) == 7:
            return get_transformation_matrix_from_quaternion(rotation_wxyz=data[:4], translation_xyz=data[4:])
        elif len(data) == 9:
            T = np.eye(4)
            T[:3, :3] = np.asarray(data).reshape(3, 3)
            return T
        elif len(data) == 16:
            return np.asarray(data, dtype=np.float64).reshape(4, 4)
        elif len(data) == 12:
            T = np.eye(4)
            T[:3, :3] = np.asarray(data[:9]).reshape(3, 3)
            T[:3, 3] = data[9:12]
            return T
        raise ValueError(f"Transformation data of length {len(data)} can't be interpreted.")
    else:
        raise TypeError(f"Transformation data of unsupported type {type(data)}.")


def get_transformation_matrix_from_xyz(rotation_xyz: Union[np.ndarray, list] = np.zeros(3),
                                       translation_xyz: Union[np.ndarray, list] = np.zeros(3)) -> np.ndarray:
    """Constructs a 4x4 homogenous transformation matrix from a XYZ translation vector and XYZ Euler angles.

    Args:
        rotation_xyz: The XYZ Euler angles in degrees.
        translation_xyz: The XYZ translation vector.

    Returns:
        The 4x4 homogenous transformation matrix.
    """
    rx, ry, rz = np.asarray(rotation_xyz).ravel()[:3]
    tx, ty, tz = np.asarray(translation_xyz).ravel()[:3]
    R = o3d.geometry.get_rotation_matrix_from_xyz(np.array([np.radians(rx), np.radians(ry), np.radians(rz)]))
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = [tx, ty, tz]
    return T


def get_transformation_matrix_from_quaternion(rotation_wxyz: Union[np.ndarray, list] = (1.0, 0.0, 0.0, 0.0),
                                              translation_xyz: Union[np.ndarray, list] = np.zeros(3)) -> np.ndarray:
    """Constructs a 4x4 homogenous transformation matrix from a XYZ translation vector and WXYZ quaternion values.

    Args:
        rotation_wxyz: The WXYZ quaternion values.
        translation_xyz: The XYZ translation vector.

    Returns:
        The 4x4 homogenous transformation matrix.
    """
    rotation = np.asarray(rotation_wxyz, dtype=np.float64).ravel()[:4]
    tx, ty, tz = np.asarray(translation_xyz).ravel()[:3]
    R = o3d.geometry.get_rotation_matrix_from_quaternion(rotation)
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = [tx, ty, tz]
    return T


def get_ground_truth_pose_from_file(path_to_ground_truth_json: str) -> np.ndarray:
    """Reads a pose from JSON file. Must contain keys starting with 'rot' (rotation) and 'tra' (translation).

    Args:
        path_to_ground_truth_json: Path to the pose JSON file.

    Returns:
        The pose as 4x4 transformation matrix.
    """
    with open(path_to_ground_truth_json) as f:
        ground_truth = json.load(f)

    rotation = [value for key, value in ground_truth.items() if key.startswith("rot")]
    translation = [value for key, value in ground_truth.items() if key.startswith("tra")]
    if not rotation or not translation:
        raise ValueError(f"No key starting with 'rot' and/or 'tra' found in {path_to_ground_truth_json}.")
    return eval_transformation_data(transformation_data=[rotation[0], translation[0]])


def read_camera_intrinsic(filename: str) -> PinholeCameraIntrinsic:
    """Reads pinhole camera intrinsic parameters from file written by `open3d.io.write_pinhole_camera_intrinsic`.

    Args:
        filename: Path to camera intrinsic parameters file.

    Returns:
        The intrinsic pinhole camera parameters object.
    """
    if not os.path.exists(filename):
        raise FileNotFoundError(f"No camera intrinsic file found at {filename}.")
    return o3d.io.read_pinhole_camera_intrinsic(filename=filename)


def draw_geometries(geometries: List[o3d.geometry.Geometry],
                    window_name: str = "Visualizer",
                    size: Tuple[int, int] = (800, 600),
                    **kwargs: Any) -> None:
    """Convenience function to draw 3D geometries.

    Args:
        geometries: A list of Open3D geometry objects.
        window_name: The name of the visualization window.
        size: The width and height of the visualization window.
    """
    o3d.visualization.draw_geometries(geometries,
                                      window_name=window_name,
                                      width=size[0],
                                      height=size[1],
                                      point_show_normal=kwargs.get("point_show_normal", False),
                                      mesh_show_wireframe=kwargs.get("mesh_show_wireframe", False),
                                      mesh_show_back_face=kwargs.get("mesh_show_back_face", False))


def get_transformation_error(transformation_estimate: TransformationTypes,
                             transformation_ground_truth: TransformationTypes,
                             in_degrees: bool = True) -> Tuple[float, float]:
    """Computes the rotational and translational error between estimated and ground-truth transformation data.

    Args:
        transformation_estimate: The estimated transformation.
        transformation_ground_truth: The ground-truth transformation.
        in_degrees: Return rotational error in degrees instead of radians.

    Returns:
        Rotational and translation error between estimated and ground-truth transformation.
    """
    T_est = eval_transformation_data(transformation_data=transformation_estimate)
    T_gt = eval_transformation_data(transformation_data=transformation_ground_truth)
    error_rot = get_rotation_error(rotation_estimate=T_est[:3, :3],
                                   rotation_ground_truth=T_gt[:3, :3],
                                   in_degrees=in_degrees)
    error_trans = get_translation_error(translation_estimate=T_est[:3, 3],
                                        translation_ground_truth=T_gt[:3, 3])
    return error_rot, error_trans


def get_rotation_error(rotation_estimate: np.ndarray,
                       rotation_ground_truth: np.ndarray,
                       in_degrees: bool = True) -> float:
    """Computes the error between estimated and ground-truth rotation in degrees or radians.

    Args:
        rotation_estimate: The estimated rotation.
        rotation_ground_truth: The ground-truth rotation.
        in_degrees: Return rotational error in degrees instead of radians.

    Returns:
        Error between estimated and ground-truth rotation in degrees or radians.
    """
    assert (rotation_estimate.shape == rotation_ground_truth.shape == (3, 3)), \
        f"Rotation estimate and ground truth both need to have shape (3, 3) but are {rotation_estimate.shape} and " \
        f"{rotation_ground_truth.shape}."
    error_cos = 0.5 * (np.trace(rotation_estimate @ rotation_ground_truth.T) - 1.0)

    # Avoid invalid values due to numerical errors.
    error_cos = min(1.0, max(-1.0, error_cos))

    error_rad = math.acos(error_cos)
    if in_degrees:
        return float(np.rad2deg(error_rad))
    return error_rad


def get_translation_error(translation_estimate: np.ndarray, translation_ground_truth: np.ndarray) -> float:
    """Computes the Euclidean distance between estimated and ground-truth translation.

    Args:
        translation_estimate: The estimated translation.
        translation_ground_truth: The ground-truth translation.

    Returns:
        Distance between estimated and ground-truth translation.
    """
    assert (translation_estimate.size == translation_ground_truth.size == 3), \
        f"Translation estimate and ground truth need to have size 3 but have {translation_estimate.size} and " \
        f"{translation_ground_truth.size}."
    return float(np.linalg.norm(translation_ground_truth - translation_estimate))
