"""
Configuration resolution.

Builds one immutable configuration value per invocation from two layers:

1. Per-call overrides (HTTP headers or ``--header KEY=VALUE`` on the CLI)
2. Process environment defaults (optionally seeded from a ``.env`` file)

A non-empty override always wins over the environment. For the manifest URL,
an explicit event payload URL wins over both. Fields absent from both layers
keep their built-in defaults.

Usage:
    from cdmutil.config import resolve

    config = resolve(request_headers, os.environ)
    print(config.manifest_url, config.warehouse_options.schema)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from .constants import ConfigKeys, DDLType, FileNames, WarehouseDefaults
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

RESOURCES_DIR = Path(__file__).parent / "resources"


@dataclass(frozen=True)
class WarehouseOptions:
    """Target warehouse settings consumed by the mapper and generator."""
    external_data_source: Optional[str] = None
    schema: str = WarehouseDefaults.SCHEMA
    file_format_name: Optional[str] = None
    date_time_as_string: bool = False
    convert_date_time: bool = False
    translate_enum: bool = False
    target_db_connection_string: Optional[str] = None


@dataclass(frozen=True)
class AppConfiguration:
    """
    Resolved configuration for the manifest consumption pipeline.

    Attributes:
        tenant_id: Azure AD tenant used for storage and SQL tokens.
        manifest_url: Root manifest location (ends with ``cdm.json``).
        ddl_type: One of ``DDLType.ALL``.
        connection_string: Warehouse connection string (``SQLEndpoint``).
        warehouse_options: Nested warehouse settings.
        source_column_properties: Path to the column override file.
        replace_view_syntax: Path to the view rewrite rules file.
    """
    tenant_id: Optional[str]
    manifest_url: str
    ddl_type: str = DDLType.DEFAULT
    connection_string: Optional[str] = None
    warehouse_options: WarehouseOptions = field(default_factory=WarehouseOptions)
    source_column_properties: str = str(RESOURCES_DIR / FileNames.SOURCE_COLUMN_PROPERTIES)
    replace_view_syntax: str = str(RESOURCES_DIR / FileNames.REPLACE_VIEW_SYNTAX)


@dataclass(frozen=True)
class ManifestWriterConfiguration:
    """Resolved configuration for the manifest creation path."""
    tenant_id: Optional[str]
    storage_account: str
    root_folder: str
    local_folder: str
    manifest_name: Optional[str] = None
    create_model_json: bool = False
    msi_auth: bool = True


class _ConfigLayers:
    """Header-or-environment lookup with non-empty override precedence."""

    def __init__(self, overrides: Optional[Mapping[str, Any]], environment: Optional[Mapping[str, Any]]):
        # Header names are case-insensitive
        self._overrides = {
            str(k).lower(): v for k, v in (overrides or {}).items()
        }
        self._environment = environment if environment is not None else {}

    def get(self, key: str) -> Optional[str]:
        value = _non_empty(self._overrides.get(key.lower()))
        if value is not None:
            return value
        return _non_empty(self._environment.get(key))

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return parse_bool(value, key)


def _non_empty(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_bool(value: str, key: str) -> bool:
    """
    Parse a ``true``/``false`` setting case-insensitively.

    Raises:
        ConfigurationError: If the value is neither.
    """
    normalized = value.strip().lower()
    if normalized == "true":
        return True
    if normalized == "false":
        return False
    raise ConfigurationError(
        f"Invalid boolean value for {key}: '{value}' (expected true or false)",
        key=key,
    )


def validate_manifest_url(manifest_url: Optional[str]) -> str:
    """Check that a manifest URL is present and ends with the manifest suffix."""
    if not manifest_url or not manifest_url.strip():
        raise ConfigurationError("Manifest URL is required", key=ConfigKeys.MANIFEST_URL)

    manifest_url = manifest_url.strip()
    if not manifest_url.lower().endswith(FileNames.MANIFEST_URL_SUFFIX):
        raise ConfigurationError(f"Invalid manifest URL:{manifest_url}", key=ConfigKeys.MANIFEST_URL)
    return manifest_url


def normalize_ddl_type(ddl_type: Optional[str]) -> str:
    """Map a configured DDL type onto its canonical spelling."""
    if ddl_type is None:
        return DDLType.DEFAULT
    for known in DDLType.ALL:
        if known.lower() == ddl_type.lower():
            return known
    raise ConfigurationError(
        f"Unsupported DDLType '{ddl_type}'. Expected one of: {', '.join(DDLType.ALL)}",
        key=ConfigKeys.DDL_TYPE,
    )


def extract_manifest_url(payload: Mapping[str, Any]) -> str:
    """
    Extract the changed manifest URL from an event payload.

    Accepts a full Event Grid event (``{"data": {"url": ...}}``) or just its
    data section (``{"url": ...}``).

    Raises:
        ConfigurationError: If the payload carries no usable URL.
    """
    if not isinstance(payload, Mapping):
        raise ConfigurationError("Event payload must be a JSON object")

    data = payload.get("data", payload)
    if not isinstance(data, Mapping):
        raise ConfigurationError("Event payload data must be a JSON object")

    url = data.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ConfigurationError("Event payload does not contain a manifest url", key="url")
    return url.strip()


def load_environment(dotenv_path: Optional[str] = None) -> Mapping[str, str]:
    """Seed the process environment from a ``.env`` file and return it."""
    if dotenv_path:
        if not os.path.exists(dotenv_path):
            raise ConfigurationError(f"Environment file not found: {dotenv_path}")
        load_dotenv(dotenv_path, override=False)
    else:
        load_dotenv(override=False)
    return os.environ


def resolve(
    overrides: Optional[Mapping[str, Any]],
    environment: Optional[Mapping[str, Any]] = None,
    event_payload_url: Optional[str] = None,
    app_directory: Optional[str] = None,
) -> AppConfiguration:
    """
    Resolve the consumption pipeline configuration.

    Args:
        overrides: Per-call key/value overrides (request headers).
        environment: Environment defaults; ``os.environ`` when None.
        event_payload_url: Manifest URL from an eventing trigger. Wins over
            any ``ManifestURL`` override.
        app_directory: Directory holding the two override files; defaults to
            the bundled resources.

    Returns:
        Immutable AppConfiguration.

    Raises:
        ConfigurationError: On a missing/invalid manifest URL, DDL type or
            boolean value.
    """
    layers = _ConfigLayers(overrides, os.environ if environment is None else environment)

    if event_payload_url is not None:
        manifest_url = event_payload_url
    else:
        manifest_url = layers.get(ConfigKeys.MANIFEST_URL)
    manifest_url = validate_manifest_url(manifest_url)

    connection_string = layers.get(ConfigKeys.SQL_ENDPOINT)
    defaults = WarehouseOptions()
    options = WarehouseOptions(
        external_data_source=layers.get(ConfigKeys.DATA_SOURCE_NAME) or defaults.external_data_source,
        schema=layers.get(ConfigKeys.SCHEMA) or defaults.schema,
        file_format_name=layers.get(ConfigKeys.FILE_FORMAT) or defaults.file_format_name,
        date_time_as_string=layers.get_bool(ConfigKeys.DATE_TIME_AS_STRING, defaults.date_time_as_string),
        convert_date_time=layers.get_bool(ConfigKeys.CONVERT_DATE_TIME, defaults.convert_date_time),
        translate_enum=layers.get_bool(ConfigKeys.TRANSLATE_ENUM, defaults.translate_enum),
        target_db_connection_string=connection_string,
    )

    base_dir = Path(app_directory) if app_directory else RESOURCES_DIR

    config = AppConfiguration(
        tenant_id=layers.get(ConfigKeys.TENANT_ID),
        manifest_url=manifest_url,
        ddl_type=normalize_ddl_type(layers.get(ConfigKeys.DDL_TYPE)),
        connection_string=connection_string,
        warehouse_options=options,
        source_column_properties=str(base_dir / FileNames.SOURCE_COLUMN_PROPERTIES),
        replace_view_syntax=str(base_dir / FileNames.REPLACE_VIEW_SYNTAX),
    )
    logger.debug(f"Resolved configuration for manifest {config.manifest_url} ({config.ddl_type})")
    return config


def resolve_writer_configuration(
    overrides: Optional[Mapping[str, Any]],
    environment: Optional[Mapping[str, Any]] = None,
) -> ManifestWriterConfiguration:
    """
    Resolve the manifest creation configuration.

    ``LocalFolder`` and ``ManifestLocation`` are aliases; ``LocalFolder`` is
    checked first.

    Raises:
        ConfigurationError: If the storage account, root folder or local
            folder is missing, or CreateModelJson is not a boolean.
    """
    layers = _ConfigLayers(overrides, os.environ if environment is None else environment)

    storage_account = layers.get(ConfigKeys.STORAGE_ACCOUNT)
    root_folder = layers.get(ConfigKeys.ROOT_FOLDER)
    local_folder = layers.get(ConfigKeys.LOCAL_FOLDER) or layers.get(ConfigKeys.MANIFEST_LOCATION)
    if local_folder:
        local_folder = "/".join(s for s in local_folder.replace("\\", "/").split("/") if s)

    for key, value in (
        (ConfigKeys.STORAGE_ACCOUNT, storage_account),
        (ConfigKeys.ROOT_FOLDER, root_folder),
        (ConfigKeys.LOCAL_FOLDER, local_folder),
    ):
        if not value:
            raise ConfigurationError(f"{key} is required", key=key)

    return ManifestWriterConfiguration(
        tenant_id=layers.get(ConfigKeys.TENANT_ID),
        storage_account=storage_account,
        root_folder=root_folder,
        local_folder=local_folder,
        manifest_name=layers.get(ConfigKeys.MANIFEST_NAME),
        create_model_json=layers.get_bool(ConfigKeys.CREATE_MODEL_JSON, False),
    )
