"""
Convex hulls around opinion groups.

The opinion map draws each group as the outline of its members instead of
individual points, so no single voter's position is exposed.
"""

import numpy as np
from scipy.spatial import ConvexHull, QhullError
import logging

logger = logging.getLogger(__name__)


def compute_convex_hull(points):
    """
    Counter-clockwise hull vertices of a 2D point set.

    Args:
        points: sequence of (x, y)

    Returns:
        list of [x, y]; empty for fewer than 3 points or when all points are
        identical or collinear
    """
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    if len(np.unique(points, axis=0)) < 3:
        return []

    try:
        hull = ConvexHull(points)
    except QhullError:
        logger.debug(f"Degenerate point set ({len(points)} points), no hull")
        return []

    # Qhull returns 2D vertices in counter-clockwise order
    return points[hull.vertices].tolist()
