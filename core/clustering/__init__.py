"""
Polis-style opinion clustering for polls.

Projects voters into a 2D opinion space, groups them into opinion groups,
classifies statements by how the groups vote on them and weights statements
for presentation order.
"""

from .matrix_builder import OpinionMatrix, build_opinion_matrix
from .pca import compute_pca, project_user
from .kmeans import (
    cluster_voters,
    determine_optimal_k,
    assign_to_nearest_cluster,
)
from .hierarchical import create_coarse_groups
from .metrics import compute_silhouette_score
from .consensus import classify_statement, classify_all_statements
from .strategies import (
    ClassificationStrategy,
    StatisticalStrategy,
    CoalitionStrategy,
    get_strategy,
)
from .coalitions import analyze_coalitions
from .hulls import compute_convex_hull
from .cache import ClusteringCache, CacheSweeper, get_cached_clustering_data
from .pipeline import (
    ClusteringEngine,
    FullRecompute,
    IncrementalUpdate,
    Clustered,
    ColdStart,
    NotEnoughSignal,
)
from .exceptions import (
    ClusteringError,
    ValidationError,
    InsufficientDataError,
    QualityError,
    ConvergenceLimit,
)

__all__ = [
    'OpinionMatrix',
    'build_opinion_matrix',
    'compute_pca',
    'project_user',
    'cluster_voters',
    'determine_optimal_k',
    'assign_to_nearest_cluster',
    'create_coarse_groups',
    'compute_silhouette_score',
    'classify_statement',
    'classify_all_statements',
    'ClassificationStrategy',
    'StatisticalStrategy',
    'CoalitionStrategy',
    'get_strategy',
    'analyze_coalitions',
    'compute_convex_hull',
    'ClusteringCache',
    'CacheSweeper',
    'get_cached_clustering_data',
    'ClusteringEngine',
    'FullRecompute',
    'IncrementalUpdate',
    'Clustered',
    'ColdStart',
    'NotEnoughSignal',
    'ClusteringError',
    'ValidationError',
    'InsufficientDataError',
    'QualityError',
    'ConvergenceLimit',
]
