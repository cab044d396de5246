"""
Manifest writer.

Materializes an entity list into CDM documents in a manifest store:

1. One entity schema document ``<Entity>.cdm.json`` per entity
2. One manifest ``<ManifestName>.manifest.cdm.json`` per folder holding entities
3. Sub-manifest links from every parent folder manifest to its child folder
4. Optionally a legacy ``model.json`` next to the manifest

All writes merge with what is already in the store, so re-running the same
request produces the same documents.

Usage:
    from cdmutil.manifest.writer import ManifestWriter

    writer = ManifestWriter(store)
    hierarchy = writer.create_manifest(entity_list, "Tables/AccountReceivable/Group")
    writer.write_hierarchy(hierarchy)
"""

import json
import logging
from typing import Any, Dict, List, Optional

from ..constants import FileNames
from ..errors import ConfigurationError
from ..storage import ManifestStore
from .hierarchy import ManifestHierarchy, ManifestNode, build_hierarchy, normalize_path
from .models import (
    CDMManifest,
    EntityDeclaration,
    EntityList,
    SubManifestReference,
)
from .parser import CDMParser

logger = logging.getLogger(__name__)

FOUNDATIONS_IMPORT = "cdm:/foundations.cdm.json"

MODEL_JSON_TYPES: Dict[str, str] = {
    "string": "string",
    "char": "string",
    "text": "string",
    "int16": "int64",
    "int32": "int64",
    "int64": "int64",
    "integer": "int64",
    "smallinteger": "int64",
    "biginteger": "int64",
    "listlookup": "int64",
    "float": "double",
    "double": "double",
    "real": "double",
    "decimal": "decimal",
    "money": "decimal",
    "boolean": "boolean",
    "date": "dateTime",
    "datetime": "dateTime",
    "datetimeoffset": "dateTimeOffset",
    "guid": "guid",
}


class ManifestWriter:
    """Write manifest hierarchies and entity documents to a store."""

    def __init__(self, store: ManifestStore):
        self.store = store
        self._parser = CDMParser()

    def _location(self, folder: str, file_name: str) -> str:
        folder = folder.strip("/")
        return self.store.to_location(f"{folder}/{file_name}" if folder else file_name)

    def manifest_location(self, folder: str, manifest_name: str) -> str:
        return self._location(folder, f"{manifest_name}{FileNames.MANIFEST_SUFFIX}")

    def _load_manifest(self, location: str, default_name: str) -> CDMManifest:
        if self.store.exists(location):
            return self._parser.parse_manifest(self.store.read(location), location)
        return CDMManifest(name=default_name, imports=[FOUNDATIONS_IMPORT], source_path=location)

    def create_manifest(
        self,
        entity_list: EntityList,
        local_folder: str,
        create_model_json: bool = False,
    ) -> ManifestHierarchy:
        """
        Write entity documents and manifests for an entity list.

        Args:
            entity_list: Entities to write.
            local_folder: Slash-delimited folder of the manifest.
            create_model_json: Also write ``model.json`` for every manifest
                written.

        Returns:
            The hierarchy built for the list (links are written separately
            with ``write_hierarchy``).
        """
        local_folder = normalize_path(local_folder)
        hierarchy = build_hierarchy(entity_list, local_folder)
        leaf = hierarchy.get(local_folder)

        for node in hierarchy:
            if node.entities or node is leaf:
                self._write_node(node)
                if create_model_json:
                    self.manifest_to_model_json(node.manifest_name, node.path)

        logger.info(f"Created manifest {leaf.manifest_name} in {leaf.path}")
        return hierarchy

    def _write_node(self, node: ManifestNode) -> None:
        location = self.manifest_location(node.path, node.manifest_name)
        manifest = self._load_manifest(location, node.manifest_name)

        for entity in node.entities:
            document = {
                "jsonSchemaSemanticVersion": manifest.schema_version,
                "imports": [{"corpusPath": FOUNDATIONS_IMPORT}],
                "definitions": [entity.to_entity().to_dict()],
            }
            self.store.write(self._location(node.path, f"{entity.name}{FileNames.ENTITY_SUFFIX}"), document)

            declaration = EntityDeclaration(
                name=entity.name,
                entity_path=f"{entity.name}{FileNames.ENTITY_SUFFIX}/{entity.name}",
                root_location=entity.data_location or entity.name,
                glob_pattern=FileNames.DEFAULT_GLOB_PATTERN,
            )
            for i, existing in enumerate(manifest.entities):
                if existing.name == entity.name:
                    manifest.entities[i] = declaration
                    break
            else:
                manifest.entities.append(declaration)

        self.store.write(location, manifest.to_dict())
        logger.debug(f"Wrote manifest {location} with {manifest.entity_count} entities")

    def create_sub_manifest(
        self,
        parent_name: str,
        child_name: str,
        folder_path: str,
        parent_manifest_name: Optional[str] = None,
        child_manifest_name: Optional[str] = None,
    ) -> bool:
        """
        Link a child folder's manifest from its parent's manifest.

        The parent manifest at ``<folder_path>/<parent>.manifest.cdm.json`` is
        created if absent. An existing link with the same child name is left
        untouched.

        Returns:
            True when the parent manifest holds the link.
        """
        parent_manifest_name = parent_manifest_name or parent_name
        child_manifest_name = child_manifest_name or child_name
        location = self.manifest_location(folder_path, parent_manifest_name)
        manifest = self._load_manifest(location, parent_manifest_name)

        if manifest.get_sub_manifest(child_name) is not None:
            logger.debug(f"{location} already links {child_name}")
            return True

        manifest.sub_manifests.append(SubManifestReference(
            name=child_name,
            definition=f"{child_name}/{child_manifest_name}{FileNames.MANIFEST_SUFFIX}",
        ))
        result = self.store.write(location, manifest.to_dict())
        logger.info(f"Linked sub-manifest {child_name} from {location}")
        return result

    def write_hierarchy(self, hierarchy: ManifestHierarchy) -> bool:
        """Write every sub-manifest link of a hierarchy, parents first."""
        created = True
        for parent, child in hierarchy.link_nodes():
            created = self.create_sub_manifest(
                parent.name,
                child.name,
                parent.path,
                parent_manifest_name=parent.manifest_name,
                child_manifest_name=child.manifest_name,
            ) and created
        return created

    def manifest_to_model_json(self, manifest_name: str, local_folder: str) -> bool:
        """
        Export a manifest and its entities as a legacy ``model.json``.

        Raises:
            ManifestNotFoundError: If the manifest or an entity document is missing.
            ManifestFormatError: If a document is malformed.
        """
        location = self.manifest_location(local_folder, manifest_name)
        manifest = self._parser.parse_manifest(self.store.read(location), location)

        entities: List[Dict[str, Any]] = []
        for declaration in manifest.entities:
            entity_location = self.store.resolve(location, declaration.document_path)
            entity = self._parser.parse_entity(
                self.store.read(entity_location), entity_location, declaration.definition_name
            )
            entity_json: Dict[str, Any] = {
                "$type": "LocalEntity",
                "name": entity.name,
                "attributes": [
                    {
                        "name": attr.name,
                        "dataType": MODEL_JSON_TYPES.get(attr.data_type.lower(), "string"),
                    }
                    for attr in entity.attributes
                ],
                "partitions": [],
            }
            if entity.description:
                entity_json["description"] = entity.description
            entities.append(entity_json)

        model = {
            "name": manifest.name,
            "description": manifest.name,
            "version": "1.0",
            "entities": entities,
        }
        result = self.store.write(self._location(local_folder, FileNames.MODEL_JSON), model)
        logger.info(f"Wrote model.json for {manifest.name} with {len(entities)} entities")
        return result


def get_manifest_definitions(artifacts_path: str, table_list: Optional[str] = None) -> Dict[str, Any]:
    """
    Look up manifest definitions for a comma-separated table list.

    The artifacts catalogue is a JSON list of ``{"TableName", "ManifestName",
    "ManifestLocation", "DataLocation"}`` rows. Tables are matched
    case-insensitively; an empty list returns every table.

    Returns:
        ``{"manifests": [{"manifestName", "manifestLocation", "tables": [...]}],
        "missingTables": [...]}`` with manifests in order of first appearance.

    Raises:
        ConfigurationError: If the catalogue is missing or malformed.
    """
    try:
        with open(artifacts_path, 'r', encoding='utf-8') as f:
            artifacts = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Artifacts file not found: {artifacts_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in artifacts file {artifacts_path}: {e}") from e

    if not isinstance(artifacts, list):
        raise ConfigurationError(f"Artifacts file must contain a JSON list: {artifacts_path}")

    requested = [t.strip() for t in (table_list or "").split(",") if t.strip()]
    by_table = {}
    for row in artifacts:
        if isinstance(row, dict) and row.get("TableName"):
            by_table.setdefault(row["TableName"].lower(), row)

    if requested:
        rows = [by_table[t.lower()] for t in requested if t.lower() in by_table]
        missing = [t for t in requested if t.lower() not in by_table]
    else:
        rows = list(by_table.values())
        missing = []

    manifests: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        key = (row.get("ManifestName"), row.get("ManifestLocation"))
        definition = manifests.setdefault(key, {
            "manifestName": row.get("ManifestName"),
            "manifestLocation": row.get("ManifestLocation"),
            "tables": [],
        })
        definition["tables"].append({
            "tableName": row["TableName"],
            "dataLocation": row.get("DataLocation") or row["TableName"],
        })

    if missing:
        logger.warning(f"Tables not found in artifacts: {', '.join(missing)}")

    return {"manifests": list(manifests.values()), "missingTables": missing}
