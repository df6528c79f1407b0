"""Interfaces and base classes.

Classes:
    PoseEstimationResult: Helper class mimicking Open3D's `RegistrationResult` but mutable and with added runtime.
    RelativePoseEstimatorInterface: Interface for all relative pose estimators.
"""
import copy
import logging
import sys
import time
from abc import ABC, abstractmethod
from typing import Any, Union, Dict, Tuple, List

import numpy as np
import open3d as o3d
import tqdm

from .utils import (InputTypes, DownsampleTypes, SearchParamTypes, eval_data, draw_geometries,
                    process_point_cloud, TransformationTypes)

TriangleMesh = o3d.geometry.TriangleMesh
PointCloud = o3d.geometry.PointCloud

logger = logging.getLogger(__name__)


class PoseEstimationResult:
    """Helper class mimicking Open3D's `RegistrationResult` but mutable and with added runtime.

    Attributes:
        correspondence_set: Indices of corresponding source and target points.
        fitness: Number of inlier correspondences divided by number of source points.
        inlier_rmse: RMSE of all inlier correspondences.
        transformation: The estimated 4x4 transformation from source to target.
        runtime: Time the estimation took in seconds.
    """

    def __init__(self,
                 correspondence_set: np.ndarray,
                 fitness: float,
                 inlier_rmse: float,
                 transformation: np.ndarray,
                 runtime: float):
        self.correspondence_set = correspondence_set
        self.fitness = fitness
        self.inlier_rmse = inlier_rmse
        self.transformation = transformation
        self.runtime = runtime

    @property
    def success(self) -> bool:
        """At least one correspondence was found."""
        return len(self.correspondence_set) > 0

    def __repr__(self) -> str:
        return (f"PoseEstimationResult(fitness={self.fitness}, inlier_rmse={self.inlier_rmse}, "
                f"correspondences={len(self.correspondence_set)}, runtime={self.runtime})")


class RelativePoseEstimatorInterface(ABC):
    """Interface for relative pose estimators. Handles data caching, the current pose and visualization.

    Attributes:
        name: The name of the estimator.
        auto_cache: Automatically cache anything passing trough this function that is not already cached.
        cache_size: Maximum number of elements allowed in cache.
        current_pose: The last successfully estimated 4x4 pose. Identity until the first success.
        data_kwargs: Keyword arguments used when evaluating input data, e.g. the camera intrinsic.
        _cached_data: A dictionary for caching data used during pose estimation.

    Methods:
        _eval_data(data_key_or_value): Adds caching to `utils.eval_data`.
        _compute_dist(point_cloud): Returns maximum correspondence distance based on `point_cloud` size.
        add_to_cache(data, replace): Adds `data.values()` to cache.
        replace_in_cache(data): Replaces `data.values()` for existing keys.
        get_cache_value(data_key): Returns value for `data_key` from cache.
        get_cache_key(data_value): Returns key for `cached_value` from cache.
        is_in_cache(data_key_or_value): Checks if key is in cached data.
        reset(): Resets the current pose to identity.
        needs_normals(): Whether the estimator requires point cloud normals.
        draw_registration_result(source, target, pose, ...): Visualizes `source` being aligned with `target`.
        run(source, target, ...): Runs the pose estimation of the derived class.
        estimate_new_pose(source, target, ...): Runs and updates the current pose on success.
        run_multi_scale(source, target, ...): Runs the pose estimation at multiple scales.
        run_many(source_list, target_list, ...): Convenience function to align multiple sources and targets.
    """

    def __init__(self,
                 name: str,
                 data_to_cache: Union[Dict[Any, InputTypes], None] = None,
                 auto_cache: bool = True,
                 cache_size: int = 100,
                 **data_kwargs: Any) -> None:
        """
        Args:
            name: The name of the estimator.
            data_to_cache: The data to be cached.
            auto_cache: Automatically cache anything passing trough this function that is not already cached.
            cache_size: Maximum number of elements allowed in cache.
            data_kwargs: Keyword arguments passed to `utils.eval_data`, e.g. `camera_intrinsic` or `depth_scale`.
        """
        self.name = name
        self.auto_cache = auto_cache
        self.cache_size = cache_size
        self.current_pose = np.eye(4)
        self.data_kwargs = data_kwargs
        self._cached_data = dict()
        if data_to_cache is not None:
            self.add_to_cache(data=data_to_cache)

    @staticmethod
    def _as_key(data: Any) -> Any:
        if isinstance(data, list):
            return tuple(data)
        return data

    @staticmethod
    def _is_hashable(data: Any) -> bool:
        try:
            hash(data)
        except TypeError:
            return False
        return True

    def _eval_data(self,
                   data_key_or_value: InputTypes,
                   **kwargs: Any) -> PointCloud:
        """Returns cached data if possible. Processes input to return point cloud otherwise.

        Args:
            data_key_or_value: Either data to be evaluated or key to cached data.

        Returns:
            The cached or loaded/processed point cloud data.
        """
        if isinstance(data_key_or_value, PointCloud):
            return data_key_or_value
        _kwargs = {**self.data_kwargs, **kwargs}
        key = self._as_key(data_key_or_value)
        if not self._is_hashable(key):
            return eval_data(data=data_key_or_value, **_kwargs)
        elif key in self._cached_data:
            return self.get_cache_value(key)
        elif self.auto_cache and len(self._cached_data) < self.cache_size:
            self.add_to_cache(data={key: data_key_or_value}, **kwargs)
            return self.get_cache_value(key)
        else:
            return eval_data(data=data_key_or_value, **_kwargs)

    @staticmethod
    def _compute_dist(point_cloud: PointCloud) -> float:
        """Returns maximum correspondence distance based on `point_cloud` size.

        Args:
            point_cloud: The point cloud used to estimate the maximum correspondence distance.

        Returns:
            The maximum correspondence distance based on `point_cloud` size.
        """
        distance = (np.asarray(point_cloud.get_max_bound()) - np.asarray(point_cloud.get_min_bound())).max()
        logger.debug(f"Using {distance} as maximum correspondence distance.")
        return distance

    def add_to_cache(self,
                     data: Dict[Any, InputTypes],
                     replace: bool = True,
                     **kwargs: Any) -> None:
        """Adds `data.values()` to cache, replacing data with existing dict keys if `replace` is set to `True`.

        Args:
            data: The data to be cached.
            replace: Overwrite existing data in cache.
        """
        for key, value in data.items():
            _key = self._as_key(key)
            _value = eval_data(data=value, **{**self.data_kwargs, **kwargs})
            if not (self.is_in_cache(_key) or self.is_in_cache(_value)):
                if len(self._cached_data) >= self.cache_size:
                    first_key = next(iter(self._cached_data))
                    logger.warning(f"Cache is full. Removing data with key {first_key}.")
                    self._cached_data.pop(first_key)
                self._cached_data[_key] = _value
            elif replace:
                self.replace_in_cache(data={_key: _value})

    def replace_in_cache(self, data: Dict[Any, InputTypes], **kwargs: Any) -> None:
        """Replaces `data.values()` for existing keys or `data.keys()` for existing values.

        Args:
            data: The data to be replaced.
        """
        for key, value in data.items():
            _key = self._as_key(key)
            if not self._is_hashable(_key):
                continue
            _value = eval_data(data=value, **{**self.data_kwargs, **kwargs})
            if self.is_in_cache(_key):
                logger.debug(f"Replacing data with key {_key} in cache.")
                self._cached_data[_key] = _value
            elif self.is_in_cache(_value):
                current_key = self.get_cache_key(_value)
                logger.debug(f"Replacing key {current_key} with key {_key}.")
                self._cached_data[_key] = _value
                self._cached_data.pop(current_key)

    def get_cache_value(self, data_key: Any) -> PointCloud:
        """Returns value for `data_key` from cache."""
        return self._cached_data[self._as_key(data_key)]

    def get_cache_key(self, cached_value: PointCloud) -> Any:
        """Returns key for `cached_value` from cache."""
        for key, value in self._cached_data.items():
            if value is cached_value:
                return key
        raise KeyError(f"{cached_value} is not in cache.")

    def is_in_cache(self, data_key_or_value: InputTypes) -> bool:
        """Checks if key or point cloud is in cached data.

        Args:
            data_key_or_value: The key or value to be checked.

        Returns:
            `True` if key or value is in cached data, `False` otherwise.
        """
        if isinstance(data_key_or_value, PointCloud):
            return any(value is data_key_or_value for value in self._cached_data.values())
        key = self._as_key(data_key_or_value)
        return self._is_hashable(key) and key in self._cached_data

    def reset(self) -> None:
        """Resets the current pose to identity."""
        self.current_pose = np.eye(4)

    def needs_normals(self) -> bool:
        """Whether the estimator requires point cloud normals."""
        return False

    def draw_registration_result(self,
                                 source: InputTypes,
                                 target: InputTypes,
                                 pose: Union[np.ndarray, list] = np.eye(4),
                                 draw_coordinate_frames: bool = True,
                                 draw_bounding_boxes: bool = False,
                                 overwrite_colors: bool = False,
                                 **kwargs: Any) -> None:
        """Visualizes the result of `source` being aligned with `target` using `pose`.

        Args:
            source: The source data.
            target: The target data.
            pose: The 4x4 transformation matrix between `source` and `target`.
            draw_coordinate_frames: Draws coordinate frames for `source` and `target`.
            draw_bounding_boxes: Draws axis-aligned bounding boxes for `source` and `target`.
            overwrite_colors: Overwrites `source` and `target` colors for clearer visualization.
        """
        _source = copy.deepcopy(self._eval_data(data_key_or_value=source, **kwargs))
        _target = copy.deepcopy(self._eval_data(data_key_or_value=target, **kwargs))
        _pose = np.asarray(pose).reshape(4, 4)

        if not _source.has_colors() or overwrite_colors:
            _source.paint_uniform_color([0.8, 0, 0])
        if not _target.has_colors() or overwrite_colors:
            _target.paint_uniform_color([0.8, 0.8, 0.8])

        _source.transform(_pose)

        to_draw = [_source, _target]
        if draw_coordinate_frames:
            size = 0.5 * (np.asarray(_source.get_max_bound()) - np.asarray(_source.get_min_bound())).max()
            to_draw.append(TriangleMesh.create_coordinate_frame(size=2 * size))
            to_draw.append(TriangleMesh.create_coordinate_frame(size=size).transform(_pose))

        if draw_bounding_boxes:
            to_draw.append(_source.get_axis_aligned_bounding_box())
            to_draw.append(_target.get_axis_aligned_bounding_box())

        draw_geometries(geometries=to_draw, window_name=f"{self.name} Result")

    @abstractmethod
    def run(self,
            source: InputTypes,
            target: InputTypes,
            init: TransformationTypes = np.eye(4),
            **kwargs: Any) -> PoseEstimationResult:
        """Runs the pose estimation of the derived class.

        Args:
            source: The source data.
            target: The target data.
            init: The initial pose of `source`.

        Raises:
            NotImplementedError: A derived class should implement this method.

        Returns:
            The pose estimation result.
        """
        raise NotImplementedError("A derived class should implement this method.")

    def estimate_new_pose(self,
                          source: InputTypes,
                          target: InputTypes,
                          init: Union[TransformationTypes, None] = None,
                          multi_scale: bool = False,
                          **kwargs: Any) -> PoseEstimationResult:
        """Estimates the pose of `source` relative to `target` and stores it as `current_pose` on success.

        Args:
            source: The source data.
            target: The target data.
            init: The initial pose of `source`. Defaults to `current_pose`.
            multi_scale: Use `run_multi_scale` instead of `run`.

        Returns:
            The pose estimation result. `current_pose` is left unchanged if it wasn't successful.
        """
        _init = self.current_pose if init is None else init
        _func = self.run_multi_scale if multi_scale else self.run
        result = _func(source=source, target=target, init=_init, **kwargs)
        if result.success:
            self.current_pose = np.asarray(result.transformation).copy()
        else:
            logger.warning(f"{self.name} found no correspondences. Keeping the current pose.")
        return result

    def run_multi_scale(self,
                        source: InputTypes,
                        target: InputTypes,
                        init: TransformationTypes = np.eye(4),
                        source_scales: Union[Tuple[float], List[float]] = (0.04, 0.02, 0.01),
                        target_scales: Union[Tuple[float], List[float], None] = None,
                        iterations: Union[Tuple[int], List[int]] = (50, 30, 14),
                        radius_multiplier: float = 2,
                        **kwargs: Any) -> PoseEstimationResult:
        """Runs the pose estimation at multiple scales.

        The estimator is run multiple times with decreasing voxel size, correspondence distance and number of
        iterations to obtain tighter alignments without major increase in computation time.

        Args:
            source: The source data.
            target: The target data.
            init: The initial pose of `source`.
            source_scales: The voxel sizes for the source data.
            target_scales: The voxel sizes for the target data. Same as `source_scales` if not provided.
            iterations: The number of iterations to run at each scale.
            radius_multiplier: The current scale is multiplied by this to obtain the normal search radius and the
                               maximum correspondence distance.

        Returns:
            The pose estimation result of the finest scale with the accumulated runtime.
        """
        start = time.time()
        if target_scales is None:
            target_scales = source_scales
        assert len(source_scales) == len(iterations) == len(target_scales), \
            "Need to provide same number of 'source_scales', 'target_scales' and 'iterations'."

        _source = self._eval_data(data_key_or_value=source, **kwargs)
        _target = self._eval_data(data_key_or_value=target, **kwargs)
        _kwargs = {key: value for key, value in kwargs.items()
                   if key not in ["distance_threshold", "max_iterations", "voxel_size", "search_param_radius"]}

        estimate_normals = self.needs_normals()
        current_result = None
        current_transformation = init
        for i, (source_scale, target_scale, iteration) in enumerate(zip(source_scales, target_scales, iterations)):
            source_radius = radius_multiplier * kwargs.get("search_param_radius", source_scale)
            target_radius = radius_multiplier * kwargs.get("search_param_radius", target_scale)
            logger.debug(f"Scale {i + 1}/{len(iterations)} with voxel sizes={source_scale, target_scale}, "
                         f"iterations={iteration}, radii={source_radius, target_radius}")

            source_down = process_point_cloud(point_cloud=_source,
                                              downsample=kwargs.get("downsample", DownsampleTypes.VOXEL),
                                              downsample_factor=source_scale,
                                              estimate_normals=estimate_normals,
                                              recalculate_normals=kwargs.get("recalculate_normals", False),
                                              search_param=kwargs.get("search_param", SearchParamTypes.HYBRID),
                                              search_param_radius=source_radius,
                                              search_param_knn=kwargs.get("search_param_knn", 30))
            target_down = process_point_cloud(point_cloud=_target,
                                              downsample=kwargs.get("downsample", DownsampleTypes.VOXEL),
                                              downsample_factor=target_scale,
                                              estimate_normals=estimate_normals,
                                              recalculate_normals=kwargs.get("recalculate_normals", False),
                                              search_param=kwargs.get("search_param", SearchParamTypes.HYBRID),
                                              search_param_radius=target_radius,
                                              search_param_knn=kwargs.get("search_param_knn", 30))
            current_result = self.run(source=source_down,
                                      target=target_down,
                                      init=current_transformation,
                                      distance_threshold=source_radius,
                                      max_iterations=iteration,
                                      voxel_size=0.0,
                                      **_kwargs)
            current_transformation = current_result.transformation
            current_result.runtime = time.time() - start
        return current_result

    def run_many(self,
                 source_list: List[InputTypes],
                 target_list: List[InputTypes],
                 init_list: Union[List[TransformationTypes], TransformationTypes, None] = None,
                 one_vs_one: bool = False,
                 multi_scale: bool = False,
                 progress: bool = True,
                 **kwargs: Any) -> List[PoseEstimationResult]:
        """Convenience function to align multiple sources and targets. Wraps `run` and `run_multi_scale`.

        Args:
            source_list: A list of sources.
            target_list: A list of targets.
            init_list: A list of initial poses as 4x4 arrays, one per pair, or a single pose used for all pairs.
            one_vs_one: Align one source to one target. Otherwise, each source is aligned to each target.
            multi_scale: Use multi-scale pose estimation instead of single scale.
            progress: Print progress bar.

        Returns:
            A list of results between
            source_0 <-> target_0, source_1 <-> target_0, ... source_N <-> target_0, source_0 <-> target_1, ...
            If `one_vs_one`, the order is source_0 <-> target_0, source_1 <-> target_1, ...
        """
        start = time.time()

        if one_vs_one and len(source_list) != len(target_list):
            logger.warning(f"Source and target list have unequal length which is required for `one_vs_one`.")
            one_vs_one = False
        if one_vs_one:
            pairs = list(zip(source_list, target_list))
        else:
            pairs = [(source, target) for target in target_list for source in source_list]

        if init_list is None:
            inits = [np.eye(4)] * len(pairs)
        elif isinstance(init_list, list) and all(isinstance(init, (np.ndarray, str)) for init in init_list):
            assert len(init_list) == len(pairs), f"'init_list' must have one pose for each of the {len(pairs)} pairs."
            inits = init_list
        else:
            inits = [init_list] * len(pairs)

        _func = self.run_multi_scale if multi_scale else self.run
        results = list()
        for (source, target), init in tqdm.tqdm(zip(pairs, inits),
                                                total=len(pairs),
                                                desc=self.name,
                                                file=sys.stdout,
                                                disable=not progress):
            results.append(_func(source=source, target=target, init=init, **kwargs))
        logger.debug(f"`run_many` took {time.time() - start} seconds.")
        return results
