"""
Rigid transform utilities for trajectory evaluation.
Uses scipy.spatial.transform.Rotation for robust implementations.
"""

import numpy as np
from typing import Sequence
from scipy.spatial.transform import Rotation, Slerp


# ============================================================================
# SO3 Operations (3D Rotations)
# ============================================================================

def so3_exp(omega: np.ndarray) -> np.ndarray:
    """
    Exponential map from so3 to SO3.

    Args:
        omega: 3x1 axis-angle vector (rotation vector)

    Returns:
        3x3 rotation matrix
    """
    omega = np.asarray(omega, dtype=np.float64).flatten()
    if np.linalg.norm(omega) < 1e-8:
        return np.eye(3)
    return Rotation.from_rotvec(omega).as_matrix()


def project_to_so3(R: np.ndarray) -> np.ndarray:
    """
    Project a matrix to the SO3 manifold using SVD.

    Args:
        R: 3x3 matrix (possibly not orthogonal)

    Returns:
        3x3 rotation matrix on SO3 manifold
    """
    R = np.asarray(R, dtype=np.float64).reshape(3, 3)
    U, _, Vt = np.linalg.svd(R)
    R_projected = U @ Vt
    if np.linalg.det(R_projected) < 0:
        Vt[-1, :] *= -1
        R_projected = U @ Vt
    return R_projected


def rotation_angle(R: np.ndarray) -> float:
    """
    Extract rotation angle from rotation matrix.

    Uses the trace formula trace(R) = 1 + 2*cos(theta), clamped so that
    slightly non-orthogonal inputs never produce NaN.

    Args:
        R: 3x3 rotation matrix

    Returns:
        Rotation angle in radians, in [0, pi]
    """
    cos_theta = (np.trace(np.asarray(R)[:3, :3]) - 1.0) / 2.0
    return float(np.arccos(np.clip(cos_theta, -1.0, 1.0)))


# ============================================================================
# SE3 Operations (3D Rigid Transformations)
# ============================================================================

def make_transform(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Build a 4x4 transform from rotation and translation."""
    T = np.eye(4)
    T[:3, :3] = np.asarray(R, dtype=np.float64).reshape(3, 3)
    T[:3, 3] = np.asarray(t, dtype=np.float64).flatten()
    return T


def se3_inverse(T: np.ndarray) -> np.ndarray:
    """
    Compute inverse of SE3 transformation matrix.

    Args:
        T: 4x4 transformation matrix

    Returns:
        4x4 inverse transformation matrix
    """
    T = np.asarray(T, dtype=np.float64)
    R = T[:3, :3]
    t = T[:3, 3]

    T_inv = np.eye(4)
    T_inv[:3, :3] = R.T
    T_inv[:3, 3] = -R.T @ t
    return T_inv


def relative_transform(T_a: np.ndarray, T_b: np.ndarray) -> np.ndarray:
    """Transform taking frame b into frame a, i.e. inv(T_a) @ T_b."""
    return se3_inverse(T_a) @ np.asarray(T_b, dtype=np.float64)


def translation_norm(T: np.ndarray) -> float:
    """Euclidean norm of the translation part of a 4x4 transform."""
    return float(np.linalg.norm(np.asarray(T)[:3, 3]))


def interpolate_se3(T1: np.ndarray, T2: np.ndarray, alpha: float) -> np.ndarray:
    """
    Interpolate between two poses.

    Rotation follows the SO3 geodesic (slerp), translation is linear.

    Args:
        T1: Pose at alpha = 0
        T2: Pose at alpha = 1
        alpha: Interpolation parameter [0, 1]

    Returns:
        4x4 interpolated pose
    """
    T1 = np.asarray(T1, dtype=np.float64)
    T2 = np.asarray(T2, dtype=np.float64)

    rotations = Rotation.from_matrix(np.stack([project_to_so3(T1[:3, :3]),
                                               project_to_so3(T2[:3, :3])]))
    R = Slerp([0.0, 1.0], rotations)([alpha]).as_matrix()[0]
    t = (1.0 - alpha) * T1[:3, 3] + alpha * T2[:3, 3]
    return make_transform(R, t)


def transform_points(T: np.ndarray, points: np.ndarray) -> np.ndarray:
    """
    Apply a rigid transform to an Nx3 point array.

    Args:
        T: 4x4 transformation matrix
        points: Nx3 (or NxD, only the first 3 columns are used) points

    Returns:
        Nx3 transformed points
    """
    points = np.asarray(points, dtype=np.float64)
    if points.size == 0:
        return np.empty((0, 3))
    xyz = points.reshape(-1, points.shape[-1])[:, :3]
    T = np.asarray(T, dtype=np.float64)
    return xyz @ T[:3, :3].T + T[:3, 3]


def change_of_basis(poses: Sequence[np.ndarray], T_ab: np.ndarray) -> list:
    """
    Express poses given in frame b in frame a: T_ab @ P @ inv(T_ab).

    Used to move LiDAR-frame trajectories into the ground truth frame.
    """
    T_ab = np.asarray(T_ab, dtype=np.float64)
    T_ba = se3_inverse(T_ab)
    return [T_ab @ np.asarray(P, dtype=np.float64) @ T_ba for P in poses]


