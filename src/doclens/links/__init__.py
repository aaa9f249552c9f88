"""Link graph construction and corpus-wide link rewriting."""

from doclens.links.anchors import AnchorTable
from doclens.links.graph import (
    LinkGraph,
    LinkResolution,
    build_link_graph,
    classify_target,
    document_links,
    iter_raw_links,
)
from doclens.links.rewrite import LinkRewrite, retarget, rewrite_links

__all__ = [
    "AnchorTable",
    "LinkGraph",
    "LinkResolution",
    "LinkRewrite",
    "build_link_graph",
    "classify_target",
    "document_links",
    "iter_raw_links",
    "retarget",
    "rewrite_links",
]
