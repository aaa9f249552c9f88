from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel


class FieldDTO(BaseModel):
    name: str
    required: bool = False
    deprecated: bool = False


class FeatureDTO(BaseModel):
    fields: List[Union[str, FieldDTO]] = []
    examples: List[Any] = []
    deprecated: bool = False
    replacement: Optional[str] = None


class FeatureInventoryDTO(BaseModel):
    features: Dict[str, FeatureDTO]


class SubsectionDTO(BaseModel):
    name: str
    aliases: List[str] = []
    topics: List[str] = []
    required: bool = False
    description: str = ""
    file_name: Optional[str] = None


class TemplateDTO(BaseModel):
    name: str
    keywords: List[str] = []
    subsections: List[SubsectionDTO]
    max_subsections: Optional[int] = None


class TemplateCatalogDTO(BaseModel):
    templates: List[TemplateDTO]

