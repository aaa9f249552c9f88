from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from doclens.cli import app
from doclens.exceptions import ChapterNotFound, InputError
from doclens.ingest import Corpus
from tests.corpus_helpers import write_tree


def test_load_skips_hidden_paths_and_tracks_assets(tmp_path: Path) -> None:
    docs = write_tree(
        tmp_path / "docs",
        {
            "index.md": "# Home\n\n![flow](img/flow.png) and [guide](guide/intro.md)\n",
            "guide/intro.md": "# Intro\n",
            "img/flow.png": "png",
            ".cache/stale.md": "# Stale\n",
        },
    )
    corpus = Corpus.load(docs)
    assert sorted(corpus.documents) == ["guide/intro", "index"]
    assert "img/flow.png" in corpus.files
    assert corpus.has_directory("guide")
    assert [link.raw_target for link in corpus.get("index").outbound_links] == ["guide/intro.md"]
    with pytest.raises(ChapterNotFound):
        corpus.get("stale")


def test_undecodable_file_names_the_document(tmp_path: Path) -> None:
    docs = write_tree(tmp_path / "docs", {"index.md": "# Home\n"})
    (docs / "bad.md").write_bytes(b"# Bad\n\xff\xfe\n")
    with pytest.raises(InputError) as exc:
        Corpus.load(docs)
    assert exc.value.document == "bad.md"
    assert exc.value.phase == "load-corpus"
    assert "re-encode" in exc.value.describe()

    result = CliRunner().invoke(app, ["links", "--root", str(tmp_path)])
    assert result.exit_code == 2


def test_missing_docs_directory(tmp_path: Path) -> None:
    with pytest.raises(InputError):
        Corpus.load(tmp_path / "nowhere")
