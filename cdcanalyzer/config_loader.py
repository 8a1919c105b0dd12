from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cdcanalyzer.services.registry import FieldAliasTable, MessageKind, MessageKindDescriptor, TypeRegistry

LOGGER = logging.getLogger(__name__)

DEFAULT_STANDARDS_PATH = Path(__file__).resolve().parent / "data" / "standards.yaml"


class MessageTypeConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: MessageKind
    display_name: str = Field(default="", alias="displayName")
    keywords: List[str] = Field(default_factory=list)
    description: str = ""

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, keywords: List[str]) -> List[str]:
        cleaned = [str(k).strip().lower() for k in keywords if str(k).strip()]
        if not cleaned:
            raise ValueError("Message type must define at least one keyword")
        return cleaned

    def to_descriptor(self) -> MessageKindDescriptor:
        return MessageKindDescriptor(
            id=self.id,
            keywords=tuple(self.keywords),
            display_name=self.display_name,
            description=self.description,
        )


class StandardConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    name: str = ""
    description: str = ""
    message_types: List[MessageTypeConfig] = Field(default_factory=list, alias="messageTypes")
    event_types: List[MessageTypeConfig] = Field(default_factory=list, alias="eventTypes")
    common_field_aliases: Dict[str, List[str]] = Field(default_factory=dict, alias="commonFieldAliases")

    @field_validator("common_field_aliases")
    @classmethod
    def validate_aliases(cls, aliases: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for name, values in aliases.items():
            if not values:
                raise ValueError(f"Field alias '{name}' has no alias strings")
        return aliases


class StandardsConfig(BaseModel):
    standards: Dict[str, StandardConfig] = Field(default_factory=dict)

    @field_validator("standards")
    @classmethod
    def validate_standards(cls, standards: Dict[str, StandardConfig]) -> Dict[str, StandardConfig]:
        if not standards:
            raise ValueError("At least one standard is required")
        return standards

    def all_message_types(self) -> List[MessageTypeConfig]:
        out: List[MessageTypeConfig] = []
        for standard in self.standards.values():
            out.extend(standard.message_types)
            out.extend(standard.event_types)
        return out

    def type_registry(self) -> TypeRegistry:
        return TypeRegistry(descriptors=tuple(t.to_descriptor() for t in self.all_message_types()))

    def field_aliases(self) -> FieldAliasTable:
        # Later standards override earlier ones for the same logical name.
        merged: Dict[str, List[str]] = {}
        for standard in self.standards.values():
            merged.update(standard.common_field_aliases)
        return FieldAliasTable.from_mapping(merged)


def load_standards(path: Optional[Path] = None) -> StandardsConfig:
    config_path = path or DEFAULT_STANDARDS_PATH
    LOGGER.info("Loading standards path=%s", config_path, extra={"category": "CONFIG"})
    if not config_path.exists():
        raise ValueError(f"Standards file not found: {config_path}")

    try:
        parsed = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in standards file: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ValueError("Standards root must be a YAML object")

    try:
        cfg = StandardsConfig.model_validate(parsed)
    except ValidationError as exc:
        LOGGER.error("Standards validation failed error=%s", exc, extra={"category": "ERRORS"})
        raise ValueError(f"Invalid standards file: {exc}") from exc

    LOGGER.info(
        "Standards loaded standards=%s message_types=%d",
        sorted(cfg.standards.keys()),
        len(cfg.all_message_types()),
        extra={"category": "CONFIG"},
    )
    return cfg


def load_tables(path: Optional[Path] = None) -> Tuple[TypeRegistry, FieldAliasTable]:
    cfg = load_standards(path)
    return cfg.type_registry(), cfg.field_aliases()
