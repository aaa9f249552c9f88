"""Read-only view over an externally supplied feature catalog."""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from doclens.exceptions import InputError
from doclens.model import FeatureDescriptor, FieldSpec
from doclens.schema import FeatureDTO, FeatureInventoryDTO


def _descriptor(path: str, dto: FeatureDTO) -> FeatureDescriptor:
    specs: list[FieldSpec] = []
    for entry in dto.fields:
        if isinstance(entry, str):
            specs.append(FieldSpec(name=entry))
        else:
            specs.append(
                FieldSpec(name=entry.name, required=entry.required, deprecated=entry.deprecated)
            )
    examples = tuple(
        example if isinstance(example, str) else json.dumps(example, sort_keys=True)
        for example in dto.examples
    )
    return FeatureDescriptor(
        path=path,
        fields=tuple(specs),
        examples=examples,
        deprecated=dto.deprecated,
        replacement=dto.replacement,
    )


class FeatureInventory(Mapping[str, FeatureDescriptor]):
    def __init__(self, features: Mapping[str, FeatureDescriptor]) -> None:
        self._features = dict(sorted(features.items()))

    def __getitem__(self, key: str) -> FeatureDescriptor:
        return self._features[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._features)

    def __len__(self) -> int:
        return len(self._features)

    @classmethod
    def from_payload(cls, payload: object, *, source: str = "<inventory>") -> "FeatureInventory":
        if not isinstance(payload, Mapping):
            raise InputError(
                "feature inventory root must be an object",
                document=source,
                phase="load-inventory",
                remedy="emit a JSON object keyed by feature path",
            )
        try:
            parsed = FeatureInventoryDTO.model_validate({"features": dict(payload)})
        except PydanticValidationError as exc:
            raise InputError(
                f"invalid feature inventory: {exc.error_count()} error(s); {exc.errors()[0]['msg']}",
                document=source,
                phase="load-inventory",
                remedy="check fields/examples/deprecated/replacement for each feature",
            ) from exc
        return cls({path: _descriptor(path, dto) for path, dto in parsed.features.items()})

    @classmethod
    def load(cls, path: Path) -> "FeatureInventory":
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise InputError(
                "feature inventory not found",
                document=str(path),
                phase="load-inventory",
                remedy="pass --inventory pointing at the exported feature JSON",
            ) from exc
        except json.JSONDecodeError as exc:
            raise InputError(
                f"feature inventory is not valid JSON: {exc.msg} at line {exc.lineno}",
                document=str(path),
                phase="load-inventory",
                remedy="regenerate the inventory export",
            ) from exc
        return cls.from_payload(payload, source=str(path))
