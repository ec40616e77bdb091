"""
Question Clustering
Groups near-duplicate questions into FAQ groups
"""

from app.services.clustering.similarity import cosine_similarity, running_mean, update_centroid
from app.services.clustering.engine import ClusteringEngine, clustering_engine, is_reliable_category

__all__ = [
    "cosine_similarity",
    "running_mean",
    "update_centroid",
    "ClusteringEngine",
    "clustering_engine",
    "is_reliable_category",
]
