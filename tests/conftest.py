from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))


import pytest

from doclens.ingest import Corpus
from tests.corpus_helpers import dlq_project, write_tree


@pytest.fixture
def make_corpus(tmp_path: Path):
    def _make(files: dict[str, str]) -> Corpus:
        docs = tmp_path / "docs"
        docs.mkdir(parents=True, exist_ok=True)
        write_tree(docs, files)
        return Corpus.load(docs)

    return _make


@pytest.fixture
def dlq_root(tmp_path: Path) -> Path:
    return dlq_project(tmp_path)
