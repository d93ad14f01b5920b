"""
Store configuration for RDF-ColumnBase.

Provides:
- Connection and layout settings (servers, keyspace, column families)
- Read/write tuning (consistency level, page width, batch size)
- Enabled secondary index directions
- Loading from YAML or JSON files and validation
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from rdf_columnbase.storage.index import (
    DEFAULT_OBJECT_INDEX_FAMILY,
    DEFAULT_PREDICATE_INDEX_FAMILY,
    IndexDirection,
)
from rdf_columnbase.storage.structures import ConsistencyLevel

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Configuration validation error."""
    pass


@dataclass
class StoreConfig:
    """
    Complete configuration for a repository.

    Example:
        config = StoreConfig(keyspace="Library", indexes={"ps", "os"})
        repo = Repository(config)
    """
    servers: List[str] = field(default_factory=lambda: ["127.0.0.1:9042"])
    keyspace: str = "RDF"
    column_family: str = "RDF"
    extra_column_families: List[str] = field(default_factory=list)
    predicate_index_family: str = DEFAULT_PREDICATE_INDEX_FAMILY
    object_index_family: str = DEFAULT_OBJECT_INDEX_FAMILY
    consistency_level: ConsistencyLevel = ConsistencyLevel.ONE
    slice_size: int = 100
    batch_size: int = 100
    indexes: set = field(default_factory=set)

    def __post_init__(self):
        self.consistency_level = ConsistencyLevel.coerce(self.consistency_level)
        self.indexes = {IndexDirection.coerce(d) for d in self.indexes}

    @property
    def column_families(self) -> List[str]:
        """Primary families scanned for triples, primary family first."""
        families = [self.column_family]
        families.extend(f for f in self.extra_column_families if f not in families)
        return families

    @property
    def index_families(self) -> List[str]:
        """Families holding the enabled index directions."""
        families = []
        if IndexDirection.PS in self.indexes:
            families.append(self.predicate_index_family)
        if self.indexes & {IndexDirection.OS, IndexDirection.OP}:
            families.append(self.object_index_family)
        return families

    def to_dict(self) -> Dict[str, Any]:
        return {
            "servers": list(self.servers),
            "keyspace": self.keyspace,
            "column_family": self.column_family,
            "extra_column_families": list(self.extra_column_families),
            "predicate_index_family": self.predicate_index_family,
            "object_index_family": self.object_index_family,
            "consistency_level": self.consistency_level.name,
            "slice_size": self.slice_size,
            "batch_size": self.batch_size,
            "indexes": sorted(d.value for d in self.indexes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreConfig":
        servers = data.get("servers", ["127.0.0.1:9042"])
        if isinstance(servers, str):
            servers = [s.strip() for s in servers.split(",") if s.strip()]
        try:
            return cls(
                servers=servers,
                keyspace=data.get("keyspace", "RDF"),
                column_family=data.get("column_family", "RDF"),
                extra_column_families=data.get("extra_column_families", []),
                predicate_index_family=data.get("predicate_index_family", DEFAULT_PREDICATE_INDEX_FAMILY),
                object_index_family=data.get("object_index_family", DEFAULT_OBJECT_INDEX_FAMILY),
                consistency_level=data.get("consistency_level", ConsistencyLevel.ONE),
                slice_size=int(data.get("slice_size", 100)),
                batch_size=int(data.get("batch_size", 100)),
                indexes=set(data.get("indexes", [])),
            )
        except ValueError as e:
            raise ConfigValidationError(str(e)) from e

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a .yaml/.yml or .json file."""
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(self.to_dict(), f, indent=2)


class ConfigValidator:
    """Validates store configuration."""

    @staticmethod
    def validate(config: StoreConfig) -> List[str]:
        """
        Validate configuration.

        Returns list of error messages (empty if valid).
        """
        errors = []

        if not config.servers:
            errors.append("At least one server is required")

        if not config.keyspace:
            errors.append("keyspace must not be empty")

        if not config.column_family:
            errors.append("column_family must not be empty")

        if config.slice_size < 1:
            errors.append("slice_size must be at least 1")

        if config.batch_size < 1:
            errors.append("batch_size must be at least 1")

        overlap = set(config.index_families) & set(config.column_families)
        if overlap:
            errors.append(f"Index families overlap primary families: {sorted(overlap)}")
        if (
            IndexDirection.PS in config.indexes
            and config.indexes & {IndexDirection.OS, IndexDirection.OP}
            and config.predicate_index_family == config.object_index_family
        ):
            errors.append("predicate_index_family and object_index_family must differ")

        return errors

    @staticmethod
    def validate_or_raise(config: StoreConfig) -> None:
        """Validate configuration, raising on errors."""
        errors = ConfigValidator.validate(config)
        if errors:
            raise ConfigValidationError("; ".join(errors))


def load_config(path: Union[str, Path]) -> StoreConfig:
    """
    Load and validate configuration from a YAML or JSON file.

    A missing file yields the defaults.
    """
    path = Path(path)
    if not path.exists():
        logger.info(f"No configuration at {path}, using defaults")
        return StoreConfig()

    with open(path, "r", encoding="utf-8") as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f) or {}
        else:
            data = json.load(f)

    if not isinstance(data, dict):
        raise ConfigValidationError(f"Configuration in {path} must be a mapping")

    config = StoreConfig.from_dict(data)
    ConfigValidator.validate_or_raise(config)
    logger.debug(f"Loaded configuration from {path}")
    return config
