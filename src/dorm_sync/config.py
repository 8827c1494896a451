"""Configuration loader and validation for sync settings."""

from datetime import date
from pathlib import Path
from typing import Any, Literal, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Hosted document stores cap a single batch at 500 writes
STORE_BATCH_LIMIT = 500


class InputConfig(BaseModel):
    """Configuration for reading the authoritative dataset."""

    default_file: str = "csv/dormitory.xlsx"
    sheet: int | str = 0
    encoding: str = "utf-8"
    delimiter: str = ","
    date_formats: list[str] = Field(
        default_factory=lambda: ["%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S"]
    )


class FieldSpec(BaseModel):
    """A store field copied from one dataset column."""

    column: str
    type: Literal["string", "date", "number", "integer"] = "string"
    required: bool = True
    aggregate: bool = False


class ReferenceSpec(BaseModel):
    """A free-text column naming a document in another collection."""

    column: str
    collection: str = "properties"
    name_field: str = "name"
    id_field: str
    required: bool = True
    create_missing: bool = True


class DerivedFieldSpec(BaseModel):
    """A store field computed from other fields of the record."""

    field: str
    kind: Literal["presence_status", "count"]
    source: Optional[str] = None
    reference: Optional[str] = None


class CollectionSpec(BaseModel):
    """How one store collection maps onto the dataset."""

    natural_key: str
    natural_key_column: str
    natural_key_as_id: bool = False
    fields: dict[str, FieldSpec] = Field(default_factory=dict)
    references: list[ReferenceSpec] = Field(default_factory=list)
    derived: list[DerivedFieldSpec] = Field(default_factory=list)
    orphan_policy: Literal["delete", "keep"] = "delete"


class EngineSettings(BaseModel):
    """Fixed engine behaviour."""

    batch_size_limit: int = Field(default=450, gt=0, le=STORE_BATCH_LIMIT)
    alias_table: dict[str, str] = Field(default_factory=dict)
    status_threshold_date: str = "today"

    @field_validator("status_threshold_date")
    @classmethod
    def _check_threshold(cls, value: str) -> str:
        if value.strip().lower() == "today":
            return "today"
        try:
            date.fromisoformat(value.strip())
        except ValueError as e:
            raise ValueError(f"status_threshold_date must be 'today' or an ISO date, got {value!r}") from e
        return value.strip()


class StoreConfig(BaseModel):
    """Configuration for the document store backend."""

    backend: Literal["snapshot", "memory", "mongodb"] = "snapshot"
    snapshot_dir: str = "data/store"
    uri: str = "mongodb://localhost:27017/?replicaSet=rs0"
    database: str = "dormitory"
    timeout_ms: int = 5000


class AuditConfig(BaseModel):
    """Configuration for run logs."""

    log_dir: str = "logs"


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class SyncConfig(BaseModel):
    """Main configuration model for the sync tool."""

    input: InputConfig = Field(default_factory=InputConfig)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    store: StoreConfig = Field(default_factory=StoreConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    collections: dict[str, CollectionSpec] = Field(default_factory=dict)
    config_file_path: Optional[str] = None

    def collection(self, name: str) -> CollectionSpec:
        try:
            return self.collections[name]
        except KeyError:
            known = ", ".join(sorted(self.collections)) or "none"
            raise ConfigurationError(
                f"Unknown collection '{name}' (configured: {known})"
            ) from None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "input": {
            "default_file": "csv/dormitory.xlsx",
            "sheet": 0,
            "encoding": "utf-8",
            "delimiter": ",",
            "date_formats": ["%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S"],
        },
        "engine": {
            "batch_size_limit": 450,
            "alias_table": {
                "宝明": "寶明1",
                "宝明2号": "寶明2",
                "宝明2": "寶明2",
                "东海": "東海",
                "文英楼": "文英樓",
                "文苑楼": "文苑樓",
                "文华楼": "文華樓",
                "祥兴": "祥興",
                "荣华": "榮華",
                "金轮": "金輪",
                "有利大廈": "有利",
            },
            "status_threshold_date": "today",
        },
        "store": {
            "backend": "snapshot",
            "snapshot_dir": "data/store",
            "uri": "mongodb://localhost:27017/?replicaSet=rs0",
            "database": "dormitory",
            "timeout_ms": 5000,
        },
        "audit": {"log_dir": "logs"},
        "collections": {
            "employees": {
                "natural_key": "uid",
                "natural_key_column": "uid",
                "natural_key_as_id": True,
                "fields": {
                    "name": {"column": "employee"},
                    "arrival": {"column": "arrival", "type": "date"},
                    "paymentFrequency": {"column": "frequency", "type": "integer"},
                    "invoice_number": {"column": "invoice_number"},
                    "deposit_number": {"column": "deposit_number"},
                    "start_date": {"column": "start_date", "type": "date"},
                    "end_date": {"column": "enddate", "type": "date"},
                    "activeCtr": {"column": "contract_number"},
                    "company": {"column": "company"},
                    "rent": {"column": "rent", "type": "number"},
                },
                "references": [
                    {
                        "column": "assignedproperty",
                        "collection": "properties",
                        "name_field": "name",
                        "id_field": "assigned_property_id",
                    }
                ],
                "derived": [
                    {
                        "field": "status",
                        "kind": "presence_status",
                        "source": "arrival",
                        "reference": "assigned_property_id",
                    }
                ],
                "orphan_policy": "delete",
            },
            "invoices": {
                "natural_key": "invoice_number",
                "natural_key_column": "recent_invoice",
                "fields": {
                    "contract_number": {"column": "ctr"},
                    "employee_names": {"column": "name", "aggregate": True},
                    "start_date": {"column": "rental_period_start_date", "type": "date"},
                    "end_date": {"column": "rental_period_end_date", "type": "date"},
                    "amount": {"column": "rent", "type": "number"},
                },
                "references": [
                    {
                        "column": "property",
                        "collection": "properties",
                        "name_field": "name",
                        "id_field": "property_id",
                        "required": False,
                    }
                ],
                "derived": [
                    {"field": "n_employees", "kind": "count", "source": "employee_names"}
                ],
                "orphan_policy": "delete",
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None,
        },
    }


def load_config(config_path: Optional[Path] = None) -> SyncConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        SyncConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file cannot be parsed or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return SyncConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    yaml_content = """# Dormitory dataset sync configuration
# Generated configuration file - customize as needed

"""
    yaml_content += yaml.dump(
        get_default_config(),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
