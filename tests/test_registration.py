"""Unittests for the registration and interfaces modules."""

import copy

import numpy as np
import open3d as o3d
import pytest

from .context import utils, registration, interfaces, mesh


@pytest.fixture
def surface_points():
    x, y = np.meshgrid(np.linspace(0, 1, 60), np.linspace(0, 0.6, 36))
    x, y = x.ravel(), y.ravel()
    z = 0.1 * np.sin(3 * x) + 0.05 * np.cos(5 * y) + 0.08 * x * y
    return np.stack([x, y, z], axis=1)


@pytest.fixture
def ground_truth():
    return utils.get_transformation_matrix_from_xyz(rotation_xyz=[1.0, -2.0, 3.0], translation_xyz=[0.02, -0.01, 0.01])


@pytest.fixture
def source(surface_points):
    colors = np.stack([surface_points[:, 0], surface_points[:, 1] / 0.6, np.full(len(surface_points), 0.5)], axis=1)
    return utils.get_point_cloud_from_points(np.hstack([surface_points, colors]))


@pytest.fixture
def target(source, ground_truth):
    return copy.deepcopy(source).transform(ground_truth)


@pytest.fixture
def small_ground_truth():
    # Moves every surface point by less than half the grid spacing.
    return utils.get_transformation_matrix_from_xyz(rotation_xyz=[0.1, -0.1, 0.2],
                                                    translation_xyz=[0.002, -0.001, 0.001])


@pytest.fixture
def nearby_target(source, small_ground_truth):
    return copy.deepcopy(source).transform(small_ground_truth)


@pytest.fixture
def source_with_normals(source):
    return utils.process_point_cloud(point_cloud=source, estimate_normals=True, search_param_radius=0.05)


@pytest.fixture
def target_with_normals(target):
    return utils.process_point_cloud(point_cloud=target, estimate_normals=True, search_param_radius=0.05)


class TestPoseEstimationResult:

    def test_success(self):
        result = interfaces.PoseEstimationResult(correspondence_set=np.zeros((0, 2)),
                                                 fitness=0.0,
                                                 inlier_rmse=0.0,
                                                 transformation=np.eye(4),
                                                 runtime=0.0)
        assert not result.success
        result.correspondence_set = np.array([[0, 0]])
        assert result.success


class TestCache:

    def test_cache(self, surface_points, source):
        icp = registration.RelativePoseEstimatorICP(data_to_cache={"surface_points": surface_points,
                                                                   "surface_pcd": source},
                                                    cache_size=10)
        assert icp.is_in_cache(data_key_or_value="surface_points")
        assert icp.is_in_cache(data_key_or_value="surface_pcd")
        assert icp.is_in_cache(data_key_or_value=source)
        assert isinstance(icp.get_cache_value(data_key="surface_points"), interfaces.PointCloud)
        assert icp.get_cache_value(data_key="surface_pcd") is source
        assert icp.get_cache_key(source) == "surface_pcd"

        assert icp._eval_data(data_key_or_value="surface_points") is icp.get_cache_value(data_key="surface_points")
        assert icp._eval_data(data_key_or_value=source) is source
        assert len(icp._cached_data) == 2

        with pytest.raises(KeyError):
            icp.get_cache_key(copy.deepcopy(source))

    def test_cache_ignores_unhashable_data(self, surface_points):
        icp = registration.RelativePoseEstimatorICP()
        point_cloud = icp._eval_data(data_key_or_value=surface_points)
        assert isinstance(point_cloud, interfaces.PointCloud)
        assert len(icp._cached_data) == 0

    def test_cache_size(self, source):
        icp = registration.RelativePoseEstimatorICP(cache_size=2)
        for i in range(3):
            icp.add_to_cache(data={i: copy.deepcopy(source)})
        assert len(icp._cached_data) == 2
        assert not icp.is_in_cache(0)
        assert icp.is_in_cache(1) and icp.is_in_cache(2)

    def test_replace_in_cache(self, source):
        icp = registration.RelativePoseEstimatorICP(data_to_cache={"source": source})
        replacement = copy.deepcopy(source)
        icp.replace_in_cache(data={"source": replacement})
        assert icp.get_cache_value("source") is replacement

        icp.replace_in_cache(data={"renamed": replacement})
        assert icp.is_in_cache("renamed") and not icp.is_in_cache("source")


class TestRelativePoseEstimatorICP:

    def test_constructor(self):
        icp = registration.RelativePoseEstimatorICP()
        assert icp.name == "ICP"
        assert icp.distance_threshold == -1.0
        assert np.all(icp.current_pose == np.eye(4))
        assert not icp.needs_normals()

    def test_run(self, source, nearby_target, small_ground_truth):
        icp = registration.RelativePoseEstimatorICP(max_iterations=100, distance_threshold=0.1)
        result = icp.run(source, nearby_target)
        assert result.success
        assert isinstance(result.transformation, np.ndarray)
        assert result.correspondence_set.shape[1] == 2
        assert result.fitness > 0.9
        assert np.linalg.norm(result.transformation - small_ground_truth) < 1e-4

    def test_run_with_derived_distance_threshold(self, source, nearby_target):
        icp = registration.RelativePoseEstimatorICP()
        result = icp.run(source, nearby_target)
        assert result.success
        assert np.isclose(result.fitness, 1.0)

    def test_run_with_voxel_size(self, source, nearby_target, small_ground_truth):
        icp = registration.RelativePoseEstimatorICP(max_iterations=100, distance_threshold=0.1, voxel_size=0.03)
        result = icp.run(source, nearby_target)
        assert result.success
        assert len(result.correspondence_set) < len(source.points)
        assert np.linalg.norm(result.transformation - small_ground_truth) < 0.1

    def test_run_with_voxel_size_keyword(self, source, nearby_target, small_ground_truth):
        icp = registration.RelativePoseEstimatorICP(max_iterations=100, distance_threshold=0.1)
        result = icp.run(source, nearby_target, voxel_size=0.03)
        assert result.success
        assert len(result.correspondence_set) < len(source.points)
        assert np.linalg.norm(result.transformation - small_ground_truth) < 0.1

    def test_run_center_init(self, source):
        shifted = copy.deepcopy(source).translate([5.0, 0.0, 0.0])
        icp = registration.RelativePoseEstimatorICP(distance_threshold=0.05)
        result = icp.run(source, shifted, init="center")
        assert result.success
        assert np.allclose(result.transformation[:3, 3], [5.0, 0.0, 0.0], atol=1e-6)

    def test_run_crop_target_around_source(self, source, nearby_target, small_ground_truth):
        far_away = copy.deepcopy(nearby_target).translate([10.0, 0.0, 0.0])
        icp = registration.RelativePoseEstimatorICP(max_iterations=100, distance_threshold=0.1)
        result = icp.run(source, nearby_target + far_away, crop_target_around_source=True, crop_scale=2.0)
        assert np.linalg.norm(result.transformation - small_ground_truth) < 1e-4

    def test_run_with_empty_data(self, source):
        icp = registration.RelativePoseEstimatorICP()
        with pytest.raises(ValueError):
            icp.run(source, o3d.geometry.PointCloud())

    def test_run_with_scaling(self, source):
        scaled = copy.deepcopy(source).scale(1.01, center=source.get_center())
        icp = registration.RelativePoseEstimatorICP(max_iterations=100, distance_threshold=0.1, with_scaling=True)
        result = icp.run(source, scaled)
        assert np.isclose(np.cbrt(np.linalg.det(result.transformation[:3, :3])), 1.01, atol=1e-4)

    def test_estimate_new_pose(self, source, nearby_target, small_ground_truth):
        icp = registration.RelativePoseEstimatorICP(max_iterations=100, distance_threshold=0.1)
        result = icp.estimate_new_pose(source, nearby_target)
        assert result.success
        assert np.all(icp.current_pose == result.transformation)
        assert np.linalg.norm(icp.current_pose - small_ground_truth) < 1e-4

        icp.reset()
        assert np.all(icp.current_pose == np.eye(4))

    def test_estimate_new_pose_without_correspondences(self, source):
        far_away = copy.deepcopy(source).translate([100.0, 0.0, 0.0])
        icp = registration.RelativePoseEstimatorICP(distance_threshold=0.01)
        icp.current_pose = utils.get_transformation_matrix_from_xyz(translation_xyz=[0.0, 1.0, 0.0])
        current_pose = icp.current_pose.copy()
        result = icp.estimate_new_pose(source, far_away)
        assert not result.success
        assert np.all(icp.current_pose == current_pose)

    def test_estimate_new_pose_multi_scale(self, source, nearby_target, small_ground_truth):
        icp = registration.RelativePoseEstimatorICP()
        result = icp.estimate_new_pose(source, nearby_target, init=np.eye(4), multi_scale=True,
                                       source_scales=[0.015, 0.01], iterations=[50, 50], radius_multiplier=2)
        assert result.success
        assert np.linalg.norm(result.transformation - small_ground_truth) < 1e-4

    def test_run_multi_scale(self, source, nearby_target, small_ground_truth):
        icp = registration.RelativePoseEstimatorICP()
        result = icp.run_multi_scale(source, nearby_target,
                                     source_scales=[0.015, 0.01],
                                     iterations=[50, 30],
                                     radius_multiplier=3)
        assert result.runtime > 0
        assert np.linalg.norm(result.transformation - small_ground_truth) < 1e-4

        with pytest.raises(AssertionError):
            icp.run_multi_scale(source, nearby_target, source_scales=[0.04, 0.02], iterations=[50])

    def test_run_many(self, source, nearby_target, small_ground_truth):
        icp = registration.RelativePoseEstimatorICP(max_iterations=100, distance_threshold=0.1)
        results = icp.run_many(source_list=[source, source], target_list=[nearby_target], progress=False)
        assert len(results) == 2
        for result in results:
            assert np.linalg.norm(result.transformation - small_ground_truth) < 1e-4

        results = icp.run_many(source_list=[source, source],
                               target_list=[nearby_target, source],
                               init_list=[np.eye(4), np.eye(4)],
                               one_vs_one=True,
                               progress=False)
        assert len(results) == 2
        assert np.allclose(results[1].transformation, np.eye(4), atol=1e-6)

        with pytest.raises(AssertionError):
            icp.run_many(source_list=[source], target_list=[nearby_target], init_list=[np.eye(4), np.eye(4)],
                         progress=False)

    def test_run_with_mesh(self, source, nearby_target, small_ground_truth):
        icp = registration.RelativePoseEstimatorICP(max_iterations=100, distance_threshold=0.1)
        result = icp.run(mesh.Mesh.from_open3d(source), nearby_target)
        assert np.linalg.norm(result.transformation - small_ground_truth) < 1e-4


class TestRelativePoseEstimatorICPWithNormals:

    def test_constructor(self):
        icp = registration.RelativePoseEstimatorICPWithNormals()
        assert icp.name == "ICP_WITH_NORMALS"
        assert icp.needs_normals()
        assert icp._get_kernel() is None
        assert isinstance(icp._get_kernel(ransac_outlier_threshold=0.05), registration.KernelTypes.TUKEY)

        icp = registration.RelativePoseEstimatorICPWithNormals(kernel=registration.KernelTypes.L2)
        assert isinstance(icp._get_kernel(), registration.KernelTypes.L2)

    def test_run(self, source_with_normals, target_with_normals, ground_truth):
        icp = registration.RelativePoseEstimatorICPWithNormals(max_iterations=100, distance_threshold=0.1)
        result = icp.run(source_with_normals, target_with_normals)
        assert result.success
        assert np.linalg.norm(result.transformation - ground_truth) < 0.02

    def test_run_estimates_normals(self, source, target, ground_truth):
        icp = registration.RelativePoseEstimatorICPWithNormals(max_iterations=100, distance_threshold=0.1)
        result = icp.run(source, target, search_param_radius=0.05)
        assert not target.has_normals()
        assert np.linalg.norm(result.transformation - ground_truth) < 0.02

    def test_run_with_robust_kernel(self, source_with_normals, target_with_normals, ground_truth):
        icp = registration.RelativePoseEstimatorICPWithNormals(max_iterations=100,
                                                               distance_threshold=0.1,
                                                               ransac_outlier_threshold=0.1)
        result = icp.run(source_with_normals, target_with_normals)
        assert np.linalg.norm(result.transformation - ground_truth) < 0.02

        icp = registration.RelativePoseEstimatorICPWithNormals(max_iterations=100,
                                                               distance_threshold=0.1,
                                                               kernel=registration.KernelTypes.CAUCHY)
        result = icp.run(source_with_normals, target_with_normals)
        assert np.linalg.norm(result.transformation - ground_truth) < 0.02

    def test_run_caches_normals(self, surface_points):
        icp = registration.RelativePoseEstimatorICPWithNormals(distance_threshold=0.1)
        icp.add_to_cache(data={"source": surface_points, "target": surface_points})
        icp.run("source", "target", search_param_radius=0.05)
        assert icp.get_cache_value("source").has_normals()
        assert icp.get_cache_value("target").has_normals()


class TestRelativePoseEstimatorRGBDICP:

    def test_constructor(self):
        icp = registration.RelativePoseEstimatorRGBDICP(camera_intrinsic=[60.0, 60.0, 31.5, 23.5],
                                                        filter_depth=True)
        assert icp.name == "RGBD_ICP"
        assert icp.needs_normals()
        assert icp.lambda_geometric == 0.968
        assert icp.data_kwargs["depth_scale"] == 1000.0
        assert icp.data_kwargs["depth_filter_params"] == dict()

    def test_run(self, source_with_normals, target_with_normals, ground_truth):
        icp = registration.RelativePoseEstimatorRGBDICP(max_iterations=100, distance_threshold=0.1)
        result = icp.run(source_with_normals, target_with_normals)
        assert result.success
        assert np.linalg.norm(result.transformation - ground_truth) < 0.05

    def test_run_without_colors(self, surface_points):
        icp = registration.RelativePoseEstimatorRGBDICP()
        with pytest.raises(ValueError):
            icp.run(surface_points, surface_points)

    def test_run_rgbd_frames(self):
        color = np.zeros((48, 64, 3), dtype=np.uint8)
        color[:, :, 0] = np.linspace(0, 255, 64).astype(np.uint8)
        color[:, :, 1] = np.linspace(0, 255, 48).astype(np.uint8)[:, None]
        v, u = np.mgrid[0:48, 0:64]
        depth = (1000 + 100 * np.sin(u / 10.0) + 50 * np.cos(v / 8.0)).astype(np.uint16)
        icp = registration.RelativePoseEstimatorRGBDICP(distance_threshold=0.05,
                                                        camera_intrinsic=[60.0, 60.0, 31.5, 23.5],
                                                        filter_depth=True)
        result = icp.run([color, depth], [color, depth], search_param_radius=0.1)
        assert result.success
        assert np.allclose(result.transformation, np.eye(4), atol=1e-3)
