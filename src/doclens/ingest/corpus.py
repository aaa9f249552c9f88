from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path

from doclens.exceptions import ChapterNotFound, InputError
from doclens.ingest.markdown import doc_id_for, parse_document
from doclens.links.graph import LinkGraph, build_link_graph
from doclens.model import Document

logger = logging.getLogger(__name__)


def _visible(path: Path, root: Path) -> bool:
    return not any(part.startswith(".") for part in path.relative_to(root).parts)


@dataclass
class Corpus:
    """Parsed documents of one docs tree plus the link graph over them."""

    root: Path
    documents: dict[str, Document] = field(default_factory=dict)
    files: set[str] = field(default_factory=set)
    link_graph: LinkGraph = field(default_factory=LinkGraph)

    @classmethod
    def load(cls, root: Path) -> "Corpus":
        if not root.is_dir():
            raise InputError(
                "docs directory does not exist",
                document=str(root),
                phase="load-corpus",
                remedy="pass --docs-dir or set [paths].docs_dir in doclens.toml",
            )
        documents: dict[str, Document] = {}
        files: set[str] = set()
        for path in sorted(root.rglob("*")):
            if not path.is_file() or not _visible(path, root):
                continue
            rel = path.relative_to(root).as_posix()
            files.add(rel)
            if path.suffix != ".md":
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except UnicodeDecodeError as exc:
                raise InputError(
                    f"not valid UTF-8 at byte {exc.start}",
                    document=rel,
                    phase="load-corpus",
                    remedy="re-encode the file as UTF-8",
                ) from exc
            document = parse_document(text, path=rel)
            documents[document.id] = document
        logger.info("loaded %d documents from %s", len(documents), root)
        return cls.from_documents(root, documents, files)

    @classmethod
    def from_documents(
        cls, root: Path, documents: dict[str, Document], files: set[str] | None = None
    ) -> "Corpus":
        all_files = set(files or ()) | {doc.path for doc in documents.values()}
        graph = build_link_graph(documents, all_files)
        linked = {
            doc_id: replace(
                document,
                outbound_links=graph.outbound(doc_id),
                inbound_links=graph.inbound(doc_id),
            )
            for doc_id, document in documents.items()
        }
        return cls(root=root, documents=linked, files=all_files, link_graph=graph)

    @classmethod
    def from_texts(cls, root: Path, texts: dict[str, str]) -> "Corpus":
        documents = {}
        for rel, text in texts.items():
            document = parse_document(text, path=rel)
            documents[document.id] = document
        return cls.from_documents(root, documents, set(texts))

    def get(self, doc_id: str) -> Document:
        key = doc_id_for(doc_id)
        document = self.documents.get(key)
        if document is None:
            raise ChapterNotFound(
                "document not found in corpus",
                document=doc_id,
                phase="select",
                remedy="check the document id (corpus-relative path without .md)",
            )
        return document

    def paths(self) -> list[str]:
        return sorted(doc.path for doc in self.documents.values())

    def has_directory(self, rel_dir: str) -> bool:
        prefix = rel_dir.rstrip("/") + "/"
        return any(path.startswith(prefix) for path in self.files)
