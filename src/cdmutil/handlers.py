"""
Entry points for the CDM Util operations.

Each handler takes per-call overrides (request headers) and environment
defaults, runs one pipeline end to end and returns a JSON-serializable
payload:

- manifest_to_sql_ddl: manifest tree -> DDL statements (no execution)
- manifest_to_sql: manifest tree -> DDL -> database setup -> execution
- cdm_to_synapse_view: same as manifest_to_sql, manifest URL from an event
- create_manifest: entity list -> manifest hierarchy in storage
- manifest_to_model_json: manifest -> legacy model.json
- get_manifest_definition: table list -> manifest definitions

Handlers hold no state between calls. Stores and connection factories can be
injected; otherwise they are created from the resolved configuration.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import (
    AppConfiguration,
    ManifestWriterConfiguration,
    RESOURCES_DIR,
    extract_manifest_url,
    resolve,
    resolve_writer_configuration,
)
from .constants import ConfigKeys, FileNames
from .errors import ConfigurationError
from .manifest.models import EntityList, ManifestStatus
from .manifest.reader import extract_metadata
from .manifest.writer import ManifestWriter, get_manifest_definitions
from .sql.ddl_generator import DDLGenerator, ViewSyntaxRules
from .sql.executor import connect, db_setup, execute
from .sql.models import SQLStatement, SQLStatements
from .storage import (
    AdlsContext,
    AdlsManifestStore,
    LocalManifestStore,
    ManifestStore,
    create_store,
)

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str, Optional[str]], Any]


# =============================================================================
# Consumption path
# =============================================================================

def _generate(config: AppConfiguration, store: Optional[ManifestStore], local_root: Optional[str]) -> List[SQLStatement]:
    store = store or create_store(config.manifest_url, config.tenant_id, local_root)

    logger.info("Reading Manifest metadata")
    metadata = extract_metadata(config, store)

    logger.info("Converting metadata to DDL")
    rules = ViewSyntaxRules.load(config.replace_view_syntax)
    return DDLGenerator().generate(metadata, config.warehouse_options, config.ddl_type, rules)


def _apply(
    config: AppConfiguration,
    store: Optional[ManifestStore],
    connection_factory: Optional[ConnectionFactory],
    local_root: Optional[str],
    progress: bool,
) -> SQLStatements:
    if not config.connection_string:
        raise ConfigurationError(f"{ConfigKeys.SQL_ENDPOINT} is required to execute DDL", key=ConfigKeys.SQL_ENDPOINT)

    statements = SQLStatements(_generate(config, store, local_root))

    connection = (connection_factory or connect)(config.connection_string, config.tenant_id)
    try:
        logger.info("Preparing DB")
        db_setup(config.warehouse_options, config.tenant_id, connection)

        logger.info("Executing DDL")
        execute(statements, connection, config.tenant_id, progress=progress)
    finally:
        connection.close()

    return statements


def manifest_to_sql_ddl(
    overrides: Optional[Mapping[str, Any]],
    environment: Optional[Mapping[str, Any]] = None,
    store: Optional[ManifestStore] = None,
    app_directory: Optional[str] = None,
    local_root: Optional[str] = None,
) -> List[str]:
    """
    Generate the DDL for a manifest tree without executing it.

    Returns:
        Statement texts in execution order.
    """
    config = resolve(overrides, environment, app_directory=app_directory)
    return [statement.text for statement in _generate(config, store, local_root)]


def manifest_to_sql(
    overrides: Optional[Mapping[str, Any]],
    environment: Optional[Mapping[str, Any]] = None,
    store: Optional[ManifestStore] = None,
    connection_factory: Optional[ConnectionFactory] = None,
    app_directory: Optional[str] = None,
    local_root: Optional[str] = None,
    progress: bool = False,
) -> Dict[str, Any]:
    """
    Generate and apply the DDL for a manifest tree.

    Returns:
        ``{"statements": [...]}`` with the executed statement texts.

    Raises:
        ConfigurationError: If no SQL endpoint is configured.
        ExecutionError: If a statement fails.
    """
    config = resolve(overrides, environment, app_directory=app_directory)
    return _apply(config, store, connection_factory, local_root, progress).to_dict()


def cdm_to_synapse_view(
    event: Mapping[str, Any],
    environment: Optional[Mapping[str, Any]] = None,
    store: Optional[ManifestStore] = None,
    connection_factory: Optional[ConnectionFactory] = None,
    app_directory: Optional[str] = None,
    local_root: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Apply the DDL for the manifest named by a storage event.

    The event's url always wins over a configured ``ManifestURL``; every
    other setting comes from the environment.
    """
    url = extract_manifest_url(event)
    logger.info(f"Processing event for {url}")
    config = resolve(None, environment, event_payload_url=url, app_directory=app_directory)
    return _apply(config, store, connection_factory, local_root, progress=False).to_dict()


# =============================================================================
# Creation path
# =============================================================================

def _writer_store(config: ManifestWriterConfiguration, store: Optional[ManifestStore], local_root: Optional[str]) -> ManifestStore:
    if store is not None:
        return store
    if local_root:
        return LocalManifestStore(local_root)
    return AdlsManifestStore(AdlsContext(
        storage_account=config.storage_account,
        file_system_name=config.root_folder,
        msi_auth=config.msi_auth,
        tenant_id=config.tenant_id,
    ))


def create_manifest(
    overrides: Optional[Mapping[str, Any]],
    body: Mapping[str, Any],
    environment: Optional[Mapping[str, Any]] = None,
    store: Optional[ManifestStore] = None,
    local_root: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a manifest (and its parent sub-manifest links) from an entity list.

    Args:
        overrides: Headers naming the storage account, root folder and
            local folder.
        body: Entity list JSON (``{"manifestName", "entityDefinitions"}``).

    Returns:
        ``{"manifestName", "isManifestCreated"}``.
    """
    config = resolve_writer_configuration(overrides, environment)
    if not isinstance(body, Mapping):
        raise ConfigurationError("Request body must be a JSON object")

    entity_list = EntityList.from_dict(dict(body))
    if not entity_list.manifest_name:
        entity_list.manifest_name = config.manifest_name

    writer = ManifestWriter(_writer_store(config, store, local_root))
    hierarchy = writer.create_manifest(entity_list, config.local_folder, config.create_model_json)
    created = writer.write_hierarchy(hierarchy)

    status = ManifestStatus(entity_list.manifest_name, created)
    logger.info(f"Manifest {status.manifest_name} created: {status.is_manifest_created}")
    return status.to_dict()


def manifest_to_model_json(
    overrides: Optional[Mapping[str, Any]],
    environment: Optional[Mapping[str, Any]] = None,
    store: Optional[ManifestStore] = None,
    local_root: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Export a manifest folder as ``model.json``.

    The manifest name defaults to the last segment of the local folder.

    Returns:
        ``{"Status": bool}``.
    """
    config = resolve_writer_configuration(overrides, environment)
    manifest_name = config.manifest_name or config.local_folder.split("/")[-1]

    logger.info("Reading Manifest metadata")
    writer = ManifestWriter(_writer_store(config, store, local_root))
    created = writer.manifest_to_model_json(manifest_name, config.local_folder)
    return {"Status": created}


def get_manifest_definition(
    overrides: Optional[Mapping[str, Any]],
    artifacts_path: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Look up the manifests holding the tables named by the ``TableList`` header.

    Args:
        overrides: Headers; ``TableList`` is a comma-separated table list.
        artifacts_path: Artifacts catalogue; defaults to the bundled one.
    """
    headers = {str(k).lower(): v for k, v in (overrides or {}).items()}
    table_list = headers.get(ConfigKeys.TABLE_LIST.lower())
    path = artifacts_path or str(RESOURCES_DIR / FileNames.ARTIFACTS)

    logger.info(f"Looking up manifest definitions in {path}")
    return get_manifest_definitions(path, table_list)
