"""Relative pose estimation with the Iterative Closest Point algorithm.

Classes:
    KernelTypes: Supported robust kernel types.
    RelativePoseEstimatorICP: Point-to-Point ICP relative pose estimator.
    RelativePoseEstimatorICPWithNormals: Point-to-Plane ICP relative pose estimator.
    RelativePoseEstimatorRGBDICP: Colored ICP relative pose estimator for RGB-D data.
"""
import copy
import logging
import time
from typing import Any, Union, Dict

import numpy as np
import open3d as o3d

from .interfaces import RelativePoseEstimatorInterface, PoseEstimationResult
from .utils import (InputTypes, CameraTypes, TransformationTypes, DownsampleTypes, SearchParamTypes,
                    process_point_cloud, eval_transformation_data)

PointCloud = o3d.geometry.PointCloud
PointToPoint = o3d.pipelines.registration.TransformationEstimationPointToPoint
PointToPlane = o3d.pipelines.registration.TransformationEstimationPointToPlane
ColoredICP = o3d.pipelines.registration.TransformationEstimationForColoredICP
TransformationEstimation = o3d.pipelines.registration.TransformationEstimation
ICPConvergenceCriteria = o3d.pipelines.registration.ICPConvergenceCriteria
RobustKernel = o3d.pipelines.registration.RobustKernel


class KernelTypes:
    """Supported robust kernel types."""
    TUKEY = o3d.pipelines.registration.TukeyLoss
    CAUCHY = o3d.pipelines.registration.CauchyLoss
    L1 = o3d.pipelines.registration.L1Loss
    L2 = o3d.pipelines.registration.L2Loss
    HUBER = o3d.pipelines.registration.HuberLoss
    GM = o3d.pipelines.registration.GMLoss


logger = logging.getLogger(__name__)


class RelativePoseEstimatorICP(RelativePoseEstimatorInterface):
    """Estimates the relative pose between two point clouds with *Point-to-Point* ICP.

    Attributes:
        max_iterations: Maximum number of iterations before the algorithm is stopped.
        distance_threshold: Maximum correspondence points-pair distance. If -1, it is derived from the source size.
        ransac_outlier_threshold: Threshold of the robust kernel rejecting outlier correspondences. Not used by
                                  Point-to-Point ICP.
        voxel_size: Voxel size used to downsample source and target before alignment. No downsampling if 0.
        relative_fitness: If relative change (difference) of fitness score is lower than `relative_fitness`, the
                          iteration stops.
        relative_rmse: If relative change (difference) of inliner RMSE is lower than `relative_rmse`, the iteration
                       stops.
        with_scaling: Also estimate a uniform scale.
        algorithm: The Open3D registration function used in `run`.
    """

    def __init__(self,
                 max_iterations: int = 30,
                 distance_threshold: float = -1.0,
                 ransac_outlier_threshold: float = 0.0,
                 voxel_size: float = 0.0,
                 relative_fitness: float = 1e-6,
                 relative_rmse: float = 1e-6,
                 with_scaling: bool = False,
                 data_to_cache: Union[Dict[Any, InputTypes], None] = None,
                 auto_cache: bool = True,
                 cache_size: int = 100,
                 name: str = "ICP",
                 **data_kwargs: Any) -> None:
        """
        Args:
            max_iterations: Maximum number of iterations before the algorithm is stopped.
            distance_threshold: Maximum correspondence points-pair distance. If -1, it is derived from the source size.
            ransac_outlier_threshold: Threshold of the robust kernel rejecting outlier correspondences.
            voxel_size: Voxel size used to downsample source and target before alignment. No downsampling if 0.
            relative_fitness: If relative change (difference) of fitness score is lower than `relative_fitness`,
                              the iteration stops.
            relative_rmse: If relative change (difference) of inliner RMSE is lower than `relative_rmse`, the iteration
                           stops.
            with_scaling: Also estimate a uniform scale.
            data_to_cache: Data to be cached. Refer to base class for details.
            auto_cache: Automatically cache anything passing trough this function that is not already cached.
            cache_size: Maximum number of elements allowed in cache.
            name: The name of the estimator.
            data_kwargs: Keyword arguments used when evaluating input data. Refer to base class for details.
        """
        super().__init__(name=name,
                         data_to_cache=data_to_cache,
                         auto_cache=auto_cache,
                         cache_size=cache_size,
                         **data_kwargs)

        self.max_iterations = max_iterations
        self.distance_threshold = distance_threshold
        self.ransac_outlier_threshold = ransac_outlier_threshold
        self.voxel_size = voxel_size
        self.relative_fitness = relative_fitness
        self.relative_rmse = relative_rmse
        self.with_scaling = with_scaling
        self.algorithm = o3d.pipelines.registration.registration_icp

    def _get_estimation_method(self, **kwargs: Any) -> TransformationEstimation:
        if kwargs.get("ransac_outlier_threshold", self.ransac_outlier_threshold) > 0:
            logger.debug(f"{self.name} doesn't support robust kernels. Ignoring `ransac_outlier_threshold`.")
        return PointToPoint(with_scaling=kwargs.get("with_scaling", self.with_scaling))

    def _get_criteria(self, **kwargs: Any) -> ICPConvergenceCriteria:
        return ICPConvergenceCriteria(relative_fitness=kwargs.get("relative_fitness", self.relative_fitness),
                                      relative_rmse=kwargs.get("relative_rmse", self.relative_rmse),
                                      max_iteration=kwargs.get("max_iterations", self.max_iterations))

    @staticmethod
    def _crop_target_around_source(source: PointCloud,
                                   target: PointCloud,
                                   init: np.ndarray,
                                   crop_scale: float = 1.0) -> PointCloud:
        """Crops `target` point cloud around the bounding box of the initially posed `source` point cloud.

        Args:
            source: The source point cloud.
            target: The target point cloud.
            init: The initial pose of the source as 4x4 transformation matrix.
            crop_scale: The scale is applied to the source bounding box decrease/increase the cropped area.

        Returns:
            The cropped target point cloud or `target` if nothing is left after cropping.
        """
        bounding_box = copy.deepcopy(source).transform(init).get_axis_aligned_bounding_box()
        bounding_box = bounding_box.scale(scale=crop_scale, center=bounding_box.get_center())
        # noinspection PyArgumentList
        cropped_target = copy.deepcopy(target).crop(bounding_box=bounding_box)
        if cropped_target.is_empty():
            logger.warning("Cropping target around source left no points. Using the full target.")
            return target
        return cropped_target

    def _prepare(self, point_cloud: PointCloud, voxel_size: float, **kwargs: Any) -> PointCloud:
        """Downsamples `point_cloud` and estimates normals if required by the estimator."""
        if voxel_size > 0:
            point_cloud = process_point_cloud(point_cloud=point_cloud,
                                              downsample=DownsampleTypes.VOXEL,
                                              downsample_factor=voxel_size)
        if self.needs_normals() and not point_cloud.has_normals():
            if "search_param_knn" not in kwargs and "search_param_radius" not in kwargs:
                logger.warning(f"Point cloud has no normals which are needed by {self.name}.")
                logger.warning("Computing with (potentially suboptimal) default parameters.")
            point_cloud = process_point_cloud(point_cloud=point_cloud,
                                              estimate_normals=True,
                                              search_param=kwargs.get("search_param", SearchParamTypes.HYBRID),
                                              search_param_knn=kwargs.get("search_param_knn", 30),
                                              search_param_radius=kwargs.get("search_param_radius",
                                                                             2 * voxel_size if voxel_size > 0
                                                                             else 0.02))
        return point_cloud

    def run(self,
            source: InputTypes,
            target: InputTypes,
            init: TransformationTypes = np.eye(4),
            crop_target_around_source: bool = False,
            crop_scale: float = 1.0,
            draw: bool = False,
            **kwargs: Any) -> PoseEstimationResult:
        """Runs ICP between `source` and `target` to find the pose of `source` relative to `target`.

        Estimator attributes (e.g. `max_iterations` or `distance_threshold`) can be overwritten for this call by
        passing them as keyword arguments.

        Args:
            source: The source data.
            target: The target data.
            init: The initial pose of `source`. Can be translation, rotation, transformation or "center", in which case
                  `source` is translated to `target` center.
            crop_target_around_source: Crops `target` around the bounding box of `source`. Should only be used if `init`
                                       is already quite accurate.
            crop_scale: The scale of the `source` bounding box used for cropping `target`. Increase if `init` is
                        inaccurate.
            draw: Visualize the result.

        Returns:
            The pose estimation result containing fitness (`fitness`) and RMSE (`inlier_rmse`) as well as the
            correspondence set between `source` and `target` (`correspondence_set`), transformation
            (`transformation`) between `source` and `target` and runtime (`runtime`).
        """
        start = time.time()
        _source = self._eval_data(data_key_or_value=source, **kwargs)
        _target = self._eval_data(data_key_or_value=target, **kwargs)
        if _source.is_empty() or _target.is_empty():
            raise ValueError(f"{self.name} needs non-empty source and target point clouds.")

        _init = eval_transformation_data(init)
        if np.array_equal(_init, np.asarray("center")):
            _init = eval_transformation_data(_target.get_center() - _source.get_center())

        voxel_size = kwargs.get("voxel_size", self.voxel_size)
        _kwargs = {key: value for key, value in kwargs.items() if key != "voxel_size"}
        _source = self._prepare(point_cloud=_source, voxel_size=voxel_size, **_kwargs)
        _target = self._prepare(point_cloud=_target, voxel_size=voxel_size, **_kwargs)
        if voxel_size <= 0 and self.needs_normals():
            # If cached before, replace with new version with estimated normals
            for data, prepared in [(source, _source), (target, _target)]:
                if self.is_in_cache(data) and not isinstance(data, PointCloud):
                    self.replace_in_cache(data={self._as_key(data): prepared})

        if crop_target_around_source:
            _target = self._crop_target_around_source(source=_source, target=_target, init=_init, crop_scale=crop_scale)

        distance_threshold = kwargs.get("distance_threshold", self.distance_threshold)
        if distance_threshold == -1:
            distance_threshold = self._compute_dist(point_cloud=_source)

        # noinspection PyTypeChecker
        result = self.algorithm(source=_source,
                                target=_target,
                                max_correspondence_distance=distance_threshold,
                                init=_init,
                                estimation_method=self._get_estimation_method(**kwargs),
                                criteria=self._get_criteria(**kwargs))

        runtime = time.time() - start
        logger.debug(f"{self.name} took {runtime} seconds.")
        logger.debug(f"{self.name} result: fitness={result.fitness}, inlier_rmse={result.inlier_rmse}.")

        if draw:
            self.draw_registration_result(source=_source, target=_target, pose=result.transformation, **kwargs)

        return PoseEstimationResult(correspondence_set=np.asarray(result.correspondence_set),
                                    fitness=result.fitness,
                                    inlier_rmse=result.inlier_rmse,
                                    transformation=np.asarray(result.transformation),
                                    runtime=runtime)


class RelativePoseEstimatorICPWithNormals(RelativePoseEstimatorICP):
    """Estimates the relative pose between two point clouds with *Point-to-Plane* ICP.

    Normals are estimated if missing. A positive `ransac_outlier_threshold` rejects outlier correspondences with a
    Tukey robust kernel, otherwise the optional `kernel` is used.

    Attributes:
        kernel: Robust kernel used if `ransac_outlier_threshold` is 0.
        kernel_noise_std: The estimated/assumed noise standard deviation in the target data used in `kernel`.
    """

    def __init__(self,
                 max_iterations: int = 30,
                 distance_threshold: float = -1.0,
                 ransac_outlier_threshold: float = 0.0,
                 voxel_size: float = 0.0,
                 kernel: Union[KernelTypes, None] = None,
                 kernel_noise_std: float = 0.1,
                 name: str = "ICP_WITH_NORMALS",
                 **kwargs: Any) -> None:
        """
        Args:
            max_iterations: Maximum number of iterations before the algorithm is stopped.
            distance_threshold: Maximum correspondence points-pair distance. If -1, it is derived from the source size.
            ransac_outlier_threshold: Threshold of the Tukey kernel rejecting outlier correspondences. Not used if 0.
            voxel_size: Voxel size used to downsample source and target before alignment. No downsampling if 0.
            kernel: Robust kernel used if `ransac_outlier_threshold` is 0.
            kernel_noise_std: The estimated/assumed noise standard deviation in the target data used in `kernel`.
            name: The name of the estimator.
            kwargs: Further arguments of `RelativePoseEstimatorICP`.
        """
        super().__init__(max_iterations=max_iterations,
                         distance_threshold=distance_threshold,
                         ransac_outlier_threshold=ransac_outlier_threshold,
                         voxel_size=voxel_size,
                         name=name,
                         **kwargs)
        self.kernel = kernel
        self.kernel_noise_std = kernel_noise_std

    def needs_normals(self) -> bool:
        return True

    def _get_kernel(self, **kwargs: Any) -> Union[RobustKernel, None]:
        threshold = kwargs.get("ransac_outlier_threshold", self.ransac_outlier_threshold)
        if threshold > 0:
            logger.debug(f"Using Tukey kernel with threshold {threshold}.")
            return KernelTypes.TUKEY(k=threshold)
        kernel = kwargs.get("kernel", self.kernel)
        if kernel is None:
            return None
        if kernel in [KernelTypes.L1, KernelTypes.L2]:
            return kernel()
        return kernel(k=kwargs.get("kernel_noise_std", self.kernel_noise_std))

    def _get_estimation_method(self, **kwargs: Any) -> TransformationEstimation:
        kernel = self._get_kernel(**kwargs)
        return PointToPlane() if kernel is None else PointToPlane(kernel=kernel)


class RelativePoseEstimatorRGBDICP(RelativePoseEstimatorICPWithNormals):
    """Estimates the relative pose between two RGB-D frames or colored point clouds with *Colored* ICP.

    Besides point clouds, RGB-D frames given as `[color, depth]` (paths, arrays or images) are accepted and converted
    to point clouds with the estimator's camera intrinsic. The depth images can be smoothed with
    `filters.depth_bilateral_filter` before the conversion.

    Attributes:
        lambda_geometric: Weight of the geometric term in the joint photometric and geometric objective.
    """

    def __init__(self,
                 max_iterations: int = 30,
                 distance_threshold: float = -1.0,
                 ransac_outlier_threshold: float = 0.0,
                 voxel_size: float = 0.0,
                 lambda_geometric: float = 0.968,
                 camera_intrinsic: Union[CameraTypes, None] = None,
                 depth_scale: float = 1000.0,
                 depth_trunc: float = 3.0,
                 filter_depth: bool = False,
                 depth_filter_params: Union[Dict[str, Any], None] = None,
                 name: str = "RGBD_ICP",
                 **kwargs: Any) -> None:
        """
        Args:
            max_iterations: Maximum number of iterations before the algorithm is stopped.
            distance_threshold: Maximum correspondence points-pair distance. If -1, it is derived from the source size.
            ransac_outlier_threshold: Threshold of the Tukey kernel rejecting outlier correspondences. Not used if 0.
            voxel_size: Voxel size used to downsample source and target before alignment. No downsampling if 0.
            lambda_geometric: Weight of the geometric term in the joint photometric and geometric objective.
            camera_intrinsic: The camera intrinsic used to convert RGB-D frames to point clouds.
            depth_scale: The scale of the depth data. 1000.0 means it is in millimeters and will be converted to meters.
            depth_trunc: Depth values larger than this (in meters) are discarded.
            filter_depth: Smooth depth images with `filters.depth_bilateral_filter` before conversion.
            depth_filter_params: Arguments of `filters.depth_bilateral_filter`.
            name: The name of the estimator.
            kwargs: Further arguments of `RelativePoseEstimatorICPWithNormals`.
        """
        data_kwargs = {"depth_scale": depth_scale, "depth_trunc": depth_trunc}
        if camera_intrinsic is not None:
            data_kwargs["camera_intrinsic"] = camera_intrinsic
        if filter_depth:
            data_kwargs["depth_filter_params"] = dict() if depth_filter_params is None else depth_filter_params
        super().__init__(max_iterations=max_iterations,
                         distance_threshold=distance_threshold,
                         ransac_outlier_threshold=ransac_outlier_threshold,
                         voxel_size=voxel_size,
                         name=name,
                         **data_kwargs,
                         **kwargs)
        self.lambda_geometric = lambda_geometric
        self.algorithm = o3d.pipelines.registration.registration_colored_icp

    def _prepare(self, point_cloud: PointCloud, voxel_size: float, **kwargs: Any) -> PointCloud:
        if not point_cloud.has_colors():
            raise ValueError(f"{self.name} needs point clouds with colors.")
        return super()._prepare(point_cloud=point_cloud, voxel_size=voxel_size, **kwargs)

    def _get_estimation_method(self, **kwargs: Any) -> TransformationEstimation:
        kernel = self._get_kernel(**kwargs)
        lambda_geometric = kwargs.get("lambda_geometric", self.lambda_geometric)
        if kernel is None:
            return ColoredICP(lambda_geometric=lambda_geometric)
        return ColoredICP(lambda_geometric=lambda_geometric, kernel=kernel)
