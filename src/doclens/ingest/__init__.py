"""Ingest subpackage: markdown parsing, corpus loading and the feature inventory."""

from doclens.ingest.corpus import Corpus
from doclens.ingest.inventory import FeatureInventory
from doclens.ingest.markdown import parse_document, shift_headings, slugify, unique_slugs

__all__ = [
    "Corpus",
    "FeatureInventory",
    "parse_document",
    "shift_headings",
    "slugify",
    "unique_slugs",
]
