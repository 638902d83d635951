"""
LiDAR odometry benchmark runner.
"""

__version__ = "0.1.0"
