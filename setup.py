import os

from setuptools import find_packages, setup

readme = "README.md"

setup(name="easy-mesh",
      version="1.0",
      description="Triangle meshes, PLY files and RGB-D ICP pose estimation on top of Open3D.",
      long_description=open(readme).read() if os.path.exists(readme) else "",
      packages=find_packages(exclude=["tests", "*.tests", "*.tests.*", "tests.*"]),
      python_requires=">=3.7.0",
      install_requires=["open3d>=0.14.1", "numpy>=1.19", "tqdm>=4.62.3", "tabulate>=0.8.9", "joblib>=1.0",
                        "plyfile>=0.7.4"],
      extras_require={"test": ["pytest>=6.2.3"]},
      include_package_data=True,
      package_data={"scripts": ["*.ini"]},
      license='GPLv3',
      entry_points={"console_scripts": ["align = scripts.align_rgbd:main",
                                        "mesh = scripts.process_mesh:main"]})
