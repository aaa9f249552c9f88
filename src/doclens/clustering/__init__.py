from doclens.clustering.clusterer import cluster_document
from doclens.clustering.signature import TopicSignature, jaccard, normalize_title, tokenize

__all__ = [
    "TopicSignature",
    "cluster_document",
    "jaccard",
    "normalize_title",
    "tokenize",
]
