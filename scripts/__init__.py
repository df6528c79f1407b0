"""Scripts for Easy Mesh.

Files:
    __init__.py: This file.
    align_rgbd.ini: Initialization file for `align_rgbd.py`.
    align_rgbd.py: Aligns consecutive RGB-D frames using the relative pose estimators from this package.
    process_mesh.py: Cleans up and transforms PLY meshes.

Functions:
    align_rgbd.eval_config: Evaluates data types of a ConfigParser object.
    align_rgbd.print_config_dict: Pretty-prints a config dict created by 'eval_config'.
    align_rgbd.get_estimator: Instantiates the relative pose estimator described by a config.
    align_rgbd.load_frames: Loads and processes all RGB-D frames described by a config.
    align_rgbd.run: Aligns each RGB-D frame to its predecessor.
    process_mesh.print_mesh_summary: Prints vertex and face counts, available attributes and the extent of a mesh.
    process_mesh.run: Loads a PLY mesh, applies the requested processing steps and writes the result.
"""
