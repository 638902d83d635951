"""
Utility modules for the odometry benchmark.
"""

from .math_utils import *
