"""Template catalog loading (YAML or JSON)."""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError

from doclens.exceptions import InputError, TemplateNotFound
from doclens.model import SubsectionSpec, Template
from doclens.schema import TemplateCatalogDTO, TemplateDTO

_YAML_SUFFIXES = (".yml", ".yaml")


def _template(dto: TemplateDTO, default_max_subsections: int) -> Template:
    return Template(
        name=dto.name,
        keywords=tuple(keyword.lower() for keyword in dto.keywords),
        subsections=tuple(
            SubsectionSpec(
                name=sub.name,
                aliases=tuple(sub.aliases),
                topics=tuple(topic.lower() for topic in sub.topics),
                required=sub.required,
                description=sub.description,
                file_name=sub.file_name,
            )
            for sub in dto.subsections
        ),
        max_subsections=dto.max_subsections or default_max_subsections,
    )


class TemplateCatalog(Mapping[str, Template]):
    def __init__(self, templates: Mapping[str, Template]) -> None:
        self._templates = dict(sorted(templates.items()))

    def __getitem__(self, key: str) -> Template:
        return self._templates[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    def require(self, name: str, *, document: str = "") -> Template:
        template = self._templates.get(name)
        if template is None:
            raise TemplateNotFound(
                f"template {name!r} is not in the catalog",
                document=document,
                phase="match-template",
                remedy=f"choose one of: {', '.join(self._templates) or '<empty catalog>'}",
            )
        return template

    @classmethod
    def from_payload(
        cls,
        payload: object,
        *,
        source: str = "<catalog>",
        default_max_subsections: int = 8,
    ) -> "TemplateCatalog":
        try:
            parsed = TemplateCatalogDTO.model_validate(payload)
        except PydanticValidationError as exc:
            raise InputError(
                f"invalid template catalog: {exc.error_count()} error(s); {exc.errors()[0]['msg']}",
                document=source,
                phase="load-templates",
                remedy="each template needs a name and a list of subsections",
            ) from exc
        templates: dict[str, Template] = {}
        for dto in parsed.templates:
            if dto.name in templates:
                raise InputError(
                    f"duplicate template name {dto.name!r}",
                    document=source,
                    phase="load-templates",
                    remedy="template names must be unique",
                )
            templates[dto.name] = _template(dto, default_max_subsections)
        return cls(templates)

    @classmethod
    def load(cls, path: Path, *, default_max_subsections: int = 8) -> "TemplateCatalog":
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise InputError(
                "template catalog not found",
                document=str(path),
                phase="load-templates",
                remedy="pass --templates or set [paths].templates in doclens.toml",
            ) from exc
        try:
            if path.suffix in _YAML_SUFFIXES:
                payload = yaml.safe_load(raw)
            else:
                payload = json.loads(raw)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise InputError(
                f"template catalog is not parseable: {exc}",
                document=str(path),
                phase="load-templates",
                remedy="fix the catalog syntax",
            ) from exc
        return cls.from_payload(
            payload, source=str(path), default_max_subsections=default_max_subsections
        )
