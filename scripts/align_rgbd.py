#!/usr/bin/env python3
"""Aligns consecutive RGB-D frames using the relative pose estimators from this package."""
import argparse
import ast
import configparser
import glob
import json
import logging
import os
import sys
import time
from typing import Union, Dict, Any, List

import numpy as np
import tabulate
import tqdm

from easy_mesh import utils, registration, set_logger_level
from easy_mesh.mesh import Mesh

logger = logging.getLogger(__name__)

ENUM_OPTIONS = {"downsample": {"voxel": utils.DownsampleTypes.VOXEL,
                               "uniform": utils.DownsampleTypes.UNIFORM,
                               "random": utils.DownsampleTypes.RANDOM},
                "remove_outlier": {"statistical": utils.OutlierTypes.STATISTICAL,
                                   "radius": utils.OutlierTypes.RADIUS},
                "search_param": {"hybrid": utils.SearchParamTypes.HYBRID,
                                 "knn": utils.SearchParamTypes.KNN,
                                 "radius": utils.SearchParamTypes.RADIUS},
                "orient_normals": {"tangent": utils.OrientationTypes.TANGENT_PLANE,
                                   "camera": utils.OrientationTypes.CAMERA,
                                   "direction": utils.OrientationTypes.DIRECTION},
                "kernel": {"tukey": registration.KernelTypes.TUKEY,
                           "cauchy": registration.KernelTypes.CAUCHY,
                           "l1": registration.KernelTypes.L1,
                           "l2": registration.KernelTypes.L2,
                           "huber": registration.KernelTypes.HUBER,
                           "gm": registration.KernelTypes.GM}}

ESTIMATORS = {"icp": registration.RelativePoseEstimatorICP,
              "icp_with_normals": registration.RelativePoseEstimatorICPWithNormals,
              "rgbd_icp": registration.RelativePoseEstimatorRGBDICP}


def eval_config(config: configparser.ConfigParser) -> Dict[str, Dict[str, Any]]:
    """Evaluates data types of a ConfigParser object.

    Values are evaluated as Python literals. Strings naming enum members are mapped to the enums and file options
    are expanded with `glob`.

    Args:
        config: A ConfigParser object.

    Returns:
        A dict of dicts with sections and options identical to 'config' but with evaluated values.
    """
    config_dict = dict()
    for section in config.sections():
        config_dict[section] = dict()
        for option, values in config.items(section):
            try:
                values = ast.literal_eval(values)
            except (ValueError, SyntaxError):
                if values.lower() == "none":
                    values = None
                elif option in ENUM_OPTIONS:
                    if values.lower() not in ENUM_OPTIONS[option]:
                        raise ValueError(f"'{option}' must be one of {list(ENUM_OPTIONS[option])} but is {values}.")
                    values = ENUM_OPTIONS[option][values.lower()]
                elif section == "data" and option in ["color_files", "depth_files", "ground_truth"]:
                    _values = [values] if os.path.isfile(values) else sorted(glob.glob(values))
                    if len(_values) == 0:
                        raise FileNotFoundError(f"No files found at {values}.")
                    values = _values
                elif section == "estimator" and option == "type":
                    values = values.lower()
                    if values not in ESTIMATORS:
                        raise ValueError(f"Estimator type must be one of {list(ESTIMATORS)} but is {values}.")
            config_dict[section][option] = values
    return config_dict


def print_config_dict(config_dict: Dict[str, Any], pretty: bool = True) -> None:
    """Pretty-prints a config dict created by 'eval_config'.

    Args:
        config_dict: A config dict created by 'eval_config'.
        pretty: Pretty-print dict keys.
    """
    config_list = list()
    for section in config_dict.keys():
        config_list.append(("", ""))
        config_list.append((section.upper().replace('_', ' ') if pretty else section, ""))
        config_list.append(('-' * len(section), ""))
        for key, value in config_dict[section].items():
            value = str(value)
            config_list.append((key.capitalize().replace('_', ' ') if pretty else key,
                                value.capitalize() if value.lower() in ["true", "false", "none"] and pretty else value))
    print(tabulate.tabulate(config_list))


def get_estimator(config_dict: Dict[str, Dict[str, Any]]) -> registration.RelativePoseEstimatorICP:
    """Instantiates the relative pose estimator described by the 'estimator', 'camera' and 'filter' sections.

    Args:
        config_dict: A config dict created by 'eval_config'.

    Returns:
        The relative pose estimator.
    """
    estimator_params = config_dict["estimator"]
    camera = config_dict["camera"]
    filter_params = config_dict["filter"]
    estimator_type = estimator_params["type"]

    kwargs = dict(max_iterations=estimator_params["max_iterations"],
                  distance_threshold=estimator_params["distance_threshold"],
                  ransac_outlier_threshold=estimator_params["ransac_outlier_threshold"],
                  voxel_size=estimator_params["voxel_size"])
    if estimator_type in ["icp_with_normals", "rgbd_icp"]:
        kwargs.update(kernel=estimator_params["kernel"], kernel_noise_std=estimator_params["kernel_noise_std"])
    if estimator_type == "rgbd_icp":
        kwargs.update(lambda_geometric=estimator_params["lambda_geometric"],
                      camera_intrinsic=camera["intrinsic"],
                      depth_scale=camera["depth_scale"],
                      depth_trunc=camera["depth_trunc"],
                      filter_depth=filter_params["filter_depth"],
                      depth_filter_params=get_depth_filter_params(filter_params))
    logger.debug(f"Loading estimator {estimator_type}.")
    return ESTIMATORS[estimator_type](**kwargs)


def get_depth_filter_params(filter_params: Dict[str, Any]) -> Union[Dict[str, Any], None]:
    """Returns the arguments of `filters.depth_bilateral_filter` from the 'filter' section or None if disabled."""
    if not filter_params["filter_depth"]:
        return None
    return {key: value for key, value in filter_params.items() if key != "filter_depth"}


def load_frames(config_dict: Dict[str, Dict[str, Any]]) -> List:
    """Loads and processes all RGB-D frames described by the 'data', 'camera', 'filter' and 'processing' sections.

    Args:
        config_dict: A config dict created by 'eval_config'.

    Returns:
        The list of point clouds, one per frame.
    """
    data = config_dict["data"]
    camera = config_dict["camera"]
    processing = config_dict["processing"]
    color_files = data["color_files"]
    depth_files = data["depth_files"]
    if len(color_files) != len(depth_files):
        raise ValueError(f"Found {len(color_files)} color but {len(depth_files)} depth images.")
    if len(color_files) < 2:
        raise ValueError("Need at least two RGB-D frames to align.")

    logger.debug(f"Loading {len(color_files)} RGB-D frames.")
    frames = [[color, depth] for color, depth in zip(color_files, depth_files)]
    # Lists are distributed over the frames by `eval_data_parallel`.
    intrinsic = np.asarray(camera["intrinsic"]) if isinstance(camera["intrinsic"], list) else camera["intrinsic"]
    point_clouds = utils.eval_data_parallel(data_list=frames,
                                            camera_intrinsic=intrinsic,
                                            depth_scale=camera["depth_scale"],
                                            depth_trunc=camera["depth_trunc"],
                                            depth_filter_params=get_depth_filter_params(config_dict["filter"]))

    logger.debug("Processing RGB-D frames.")
    return [utils.process_point_cloud(point_cloud=point_cloud,
                                      downsample=processing["downsample"],
                                      downsample_factor=processing["downsample_factor"],
                                      remove_outlier=processing["remove_outlier"],
                                      outlier_std_ratio=processing["outlier_std_ratio"],
                                      estimate_normals=processing["estimate_normals"],
                                      orient_normals=processing["orient_normals"],
                                      search_param=processing["search_param"],
                                      search_param_knn=processing["search_param_knn"],
                                      search_param_radius=processing["search_param_radius"])
            for point_cloud in point_clouds]


def run(config: Union[configparser.ConfigParser, None] = None,
        argv: Union[List[str], None] = None) -> Dict[str, Any]:
    """Aligns each RGB-D frame to its predecessor and chains the relative poses into poses relative to frame 0.

    Args:
        config: The config. Read from the `--config` path if not provided.
        argv: Command line arguments. Read from `sys.argv` if not provided.

    Returns:
        A dict with the frame pair names, the pose estimation results, the chained poses and, if ground truth is
        provided, the rotational and translational errors.
    """
    # Evaluate command line arguments
    start = time.time()
    parser = argparse.ArgumentParser(description="Aligns consecutive RGB-D frames.")
    parser.add_argument("-c", "--config",
                        default=os.path.join(os.path.dirname(os.path.abspath(__file__)), "align_rgbd.ini"), type=str,
                        help="Path to alignment config.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Get verbose output during execution.")
    parser.add_argument("-d", "--draw", action="store_true", help="Visualize the aligned frames.")
    args = parser.parse_args(argv)

    # Read config from argument or file
    if config is None:
        if not os.path.exists(args.config):
            raise FileNotFoundError(f"No config found at {args.config}.")
        config = configparser.ConfigParser(inline_comment_prefixes='#')
        config.read(args.config)

    # Evaluate config
    config_dict = eval_config(config)
    data = config_dict["data"]
    estimator_params = config_dict["estimator"]
    output = config_dict["output"]
    options = config_dict["options"]
    verbose = args.verbose or options["verbose"]

    # Enable verbose output
    if verbose:
        logger.setLevel(logging.DEBUG)
        set_logger_level(logging.DEBUG)
        print_config_dict(config_dict)

    estimator = get_estimator(config_dict)
    point_clouds = load_frames(config_dict)

    # Align frame i + 1 to frame i
    results = list()
    poses = [np.eye(4)]
    names = list()
    for i in tqdm.tqdm(range(1, len(point_clouds)),
                       desc=estimator.name,
                       file=sys.stdout,
                       disable=not options["progress"] or verbose):
        init = None if estimator_params["init"] == "previous" else np.eye(4)
        if estimator_params["multi_scale"]:
            result = estimator.estimate_new_pose(source=point_clouds[i],
                                                 target=point_clouds[i - 1],
                                                 init=init,
                                                 multi_scale=True,
                                                 source_scales=estimator_params["scales"],
                                                 iterations=estimator_params["iterations"],
                                                 radius_multiplier=estimator_params["radius_multiplier"])
        else:
            result = estimator.estimate_new_pose(source=point_clouds[i], target=point_clouds[i - 1], init=init)
        results.append(result)
        poses.append(poses[-1] @ (result.transformation if result.success else np.eye(4)))
        names.append(f"f{i} - f{i - 1}")
    logger.debug(f"Execution took {time.time() - start} seconds.")

    # Compare chained poses with ground truth poses
    errors = [('?', '?')] * len(results)
    ground_truth = data.get("ground_truth")
    if ground_truth is not None:
        ground_truth = [utils.eval_transformation_data(gt) for gt in ground_truth]
        assert len(ground_truth) == len(point_clouds), f"Need one ground truth pose per frame."
        # Ground truth relative to the first frame
        first_inv = np.linalg.inv(ground_truth[0])
        errors = [utils.get_transformation_error(pose, first_inv @ gt, in_degrees=options["use_degrees"])
                  for pose, gt in zip(poses[1:], ground_truth[1:])]

    # Print results
    if options["print_results"] or verbose:
        table = tabulate.tabulate([(name,
                                    result.fitness,
                                    result.inlier_rmse,
                                    len(result.correspondence_set),
                                    error_rot,
                                    error_trans) for name, result, (error_rot, error_trans) in zip(names,
                                                                                                   results,
                                                                                                   errors)],
                                  headers=["frames",
                                           "fitness",
                                           "inlier rmse",
                                           "# corresp.",
                                           f"error rot. {'[deg]' if options['use_degrees'] else '[rad]'}",
                                           "error trans. [m]"])
        print()
        print("RESULTS:\n=======")
        print(table)

    # Merge all frames into the coordinate frame of the first one
    if output["ply_file"] is not None or args.draw or options["draw"]:
        merged = Mesh()
        for point_cloud, pose in zip(point_clouds, poses):
            frame = Mesh.from_open3d(point_cloud)
            frame.apply_transform(pose)
            merged.add_mesh(frame)
        if output["ply_file"] is not None:
            logger.debug(f"Writing {merged} to {output['ply_file']}.")
            merged.save_to_ply(output["ply_file"])
        if args.draw or options["draw"]:
            utils.draw_geometries(geometries=[merged.to_point_cloud()], window_name="Aligned RGB-D Frames")

    if output["poses_file"] is not None:
        with open(output["poses_file"], "w") as f:
            json.dump([pose.tolist() for pose in poses], f, indent=2)

    return {"names": names,
            "results": results,
            "poses": poses,
            "errors_rot": [error[0] for error in errors],
            "errors_trans": [error[1] for error in errors]}


def main() -> None:
    run(argv=sys.argv[1:])


if __name__ == "__main__":
    main()
