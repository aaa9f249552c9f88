from __future__ import annotations

from dataclasses import dataclass, field

from doclens.artifacts import JSONObject

AnchorKey = tuple[str, str | None]


@dataclass
class AnchorTable:
    """Lookup from ``(old_doc, old_anchor)`` to ``(new_doc, new_anchor)``.

    Built once per split document and merged for the whole batch, so link
    rewriting is a lookup instead of re-deriving where a heading landed.
    A ``None`` new anchor means the heading became the subject (H1) of the
    new file.
    """

    entries: dict[AnchorKey, AnchorKey] = field(default_factory=dict)
    index_for: dict[str, str] = field(default_factory=dict)

    def register_split(self, old_path: str, index_path: str) -> None:
        self.index_for[old_path] = index_path

    def add(self, old_path: str, old_anchor: str, new_path: str, new_anchor: str | None) -> None:
        self.entries[(old_path, old_anchor)] = (new_path, new_anchor)

    def covers(self, path: str) -> bool:
        return path in self.index_for

    def relocate(self, path: str, anchor: str | None) -> AnchorKey:
        index = self.index_for.get(path)
        if index is None:
            return path, anchor
        if anchor is None:
            return index, None
        hit = self.entries.get((path, anchor)) or self.entries.get((path, anchor.lower()))
        if hit is not None:
            return hit
        return index, anchor

    def merge(self, other: "AnchorTable") -> None:
        for old_path in other.index_for:
            if old_path in self.index_for:
                raise ValueError(f"{old_path} relocated twice in one batch")
        self.index_for.update(other.index_for)
        self.entries.update(other.entries)

    def as_json_dict(self) -> JSONObject:
        return {
            "splits": dict(sorted(self.index_for.items())),
            "anchors": [
                {
                    "old_doc": old_path,
                    "old_anchor": old_anchor,
                    "new_doc": new_path,
                    "new_anchor": new_anchor,
                }
                for (old_path, old_anchor), (new_path, new_anchor) in sorted(
                    self.entries.items(), key=lambda item: (item[0][0], item[0][1] or "")
                )
            ],
        }
