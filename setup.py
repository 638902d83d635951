"""
Setup configuration for the LiDAR Odometry Benchmark.
"""

from setuptools import setup, find_packages

setup(
    name="odom-bench",
    version="0.1.0",
    description="LiDAR odometry benchmark runner with KITTI-style trajectory evaluation",
    author="Odom Bench Team",
    packages=find_packages(include=["odom_bench", "odom_bench.*", "tools"]),
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.24.0",
        "scipy>=1.10.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
        "typer>=0.9.0",
        "rich>=13.0.0",
        "plotly>=5.14.0",
        "pandas>=2.0.0",
        "tqdm>=4.65.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.3.0",
            "pytest-cov>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "odom-bench=tools.cli:main",
        ],
    },
)
