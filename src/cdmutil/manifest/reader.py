"""
Manifest metadata extraction.

Walks a manifest tree depth-first and turns every local entity declaration
into a ``SQLMetadata`` record ready for DDL generation:

1. Read and parse the manifest
2. Fetch its entity schema documents (concurrently, declaration order kept)
3. Map every attribute to a SQL column
4. Recurse into sub-manifests in declaration order

A manifest that references itself or one of its ancestors is rejected. A
manifest reached again through another branch is emitted only once.

Usage:
    from cdmutil.manifest.reader import extract_metadata

    metadata = extract_metadata(config, store)
"""

import logging
import posixpath
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Set, Tuple

from ..config import AppConfiguration, WarehouseOptions
from ..constants import FileNames, ProcessingLimits
from ..errors import ManifestFormatError
from ..sql.models import SQLMetadata
from ..sql.type_mapper import ColumnPropertyOverrides, SQLTypeMapper, map_column
from ..storage import ManifestStore
from .models import CDMEntity, CDMManifest, EntityDeclaration
from .parser import CDMParser

logger = logging.getLogger(__name__)

REFERENCED_ENTITY = "ReferencedEntity"


class ManifestReader:
    """
    Depth-first, cycle-guarded manifest traversal.

    Example:
        >>> reader = ManifestReader(store)
        >>> records = reader.read(url, overrides, options, tenant_id="...")
    """

    def __init__(
        self,
        store: ManifestStore,
        max_workers: int = ProcessingLimits.DEFAULT_MAX_WORKERS,
        mapper: Optional[SQLTypeMapper] = None,
    ):
        self.store = store
        self.max_workers = max(1, max_workers)
        self._parser = CDMParser()
        self._mapper = mapper or SQLTypeMapper()

    def read(
        self,
        manifest_url: str,
        overrides: ColumnPropertyOverrides,
        options: WarehouseOptions,
        tenant_id: Optional[str] = None,
    ) -> List[SQLMetadata]:
        """
        Extract metadata for every entity reachable from a root manifest.

        Args:
            manifest_url: Root manifest location.
            overrides: Column overrides for this invocation.
            options: Warehouse options (schema and mapping flags).
            tenant_id: Tenant qualifier copied onto every record.

        Returns:
            Metadata records in traversal order.

        Raises:
            ManifestNotFoundError: If any document is unreachable.
            ManifestFormatError: If any document is malformed or the tree
                has a cycle.
            UnsupportedTypeError: If an attribute type cannot be mapped.
        """
        records: List[SQLMetadata] = []
        visited: Set[str] = set()
        self._walk(manifest_url, [], visited, records, overrides, options, tenant_id)
        logger.info(f"Extracted metadata for {len(records)} entities from {len(visited)} manifests")
        return records

    def _walk(
        self,
        location: str,
        ancestors: List[str],
        visited: Set[str],
        records: List[SQLMetadata],
        overrides: ColumnPropertyOverrides,
        options: WarehouseOptions,
        tenant_id: Optional[str],
    ) -> None:
        key = self.store.to_relative(location)

        if key in ancestors:
            chain = " -> ".join(ancestors + [key])
            raise ManifestFormatError(f"Manifest cycle detected: {chain}", location=location)
        if len(ancestors) >= ProcessingLimits.MAX_MANIFEST_DEPTH:
            raise ManifestFormatError(
                f"Manifest nesting deeper than {ProcessingLimits.MAX_MANIFEST_DEPTH} levels at {location}",
                location=location,
            )
        if key in visited:
            logger.debug(f"Manifest {key} already read, skipping")
            return
        visited.add(key)

        manifest = self._parser.parse_manifest(self.store.read(location), location)
        logger.debug(
            f"Read manifest {manifest.name}: {manifest.entity_count} entities, "
            f"{len(manifest.sub_manifests)} sub-manifests"
        )

        for declaration, entity in self._load_entities(manifest, location):
            records.append(self._to_metadata(
                declaration, entity, location, overrides, options, tenant_id
            ))

        path = ancestors + [key]
        for sub in manifest.sub_manifests:
            sub_location = self.store.resolve(location, sub.definition)
            self._walk(sub_location, path, visited, records, overrides, options, tenant_id)

    def _load_entities(self, manifest: CDMManifest, location: str) -> List[Tuple[EntityDeclaration, CDMEntity]]:
        declarations: List[EntityDeclaration] = []
        for declaration in manifest.entities:
            if declaration.entity_type == REFERENCED_ENTITY:
                logger.warning(f"Skipping referenced entity {declaration.name} in {location}")
                continue
            declarations.append(declaration)

        def load(declaration: EntityDeclaration) -> CDMEntity:
            entity_location = self.store.resolve(location, declaration.document_path)
            data = self.store.read(entity_location)
            return self._parser.parse_entity(data, entity_location, declaration.definition_name)

        if len(declarations) <= 1 or self.max_workers == 1:
            entities = [load(d) for d in declarations]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                entities = list(executor.map(load, declarations))

        return list(zip(declarations, entities))

    def _to_metadata(
        self,
        declaration: EntityDeclaration,
        entity: CDMEntity,
        manifest_location: str,
        overrides: ColumnPropertyOverrides,
        options: WarehouseOptions,
        tenant_id: Optional[str],
    ) -> SQLMetadata:
        columns = [
            map_column(attribute, overrides, options, declaration.name, mapper=self._mapper)
            for attribute in entity.attributes
        ]
        return SQLMetadata(
            entity_name=declaration.name,
            tenant_id=tenant_id,
            schema=options.schema,
            columns=columns,
            data_location=self.data_location(declaration, manifest_location),
            storage_root=self.store.root_url,
            manifest_path=manifest_location,
        )

    def data_location(self, declaration: EntityDeclaration, manifest_location: str) -> str:
        """
        Data files path of an entity, relative to the storage root.

        Uses the first partition pattern, else the folder of the first
        explicit partition, else ``<Entity>/*.csv``; always below the
        manifest's folder.
        """
        glob = FileNames.DEFAULT_GLOB_PATTERN
        if declaration.root_location:
            root, glob = declaration.root_location, declaration.glob_pattern or glob
        elif declaration.partition_locations:
            root = posixpath.dirname(declaration.partition_locations[0])
        else:
            root = declaration.name

        if root.startswith("local:"):
            root = root[len("local:"):]
        if root.startswith("/"):
            # Corpus-root relative
            return posixpath.join(root.strip("/"), glob) if root.strip("/") else glob

        relative = posixpath.join(root.strip("/"), glob) if root.strip("/") else glob
        folder = self.store.folder_of(manifest_location)
        return posixpath.join(folder, relative) if folder else relative


def extract_metadata(
    config: AppConfiguration,
    store: ManifestStore,
    max_workers: int = ProcessingLimits.DEFAULT_MAX_WORKERS,
) -> List[SQLMetadata]:
    """
    Extract ordered metadata for the manifest tree named by a configuration.

    Column overrides are loaded per call from ``config.source_column_properties``.
    """
    overrides = ColumnPropertyOverrides.load(config.source_column_properties)
    reader = ManifestReader(store, max_workers=max_workers)
    return reader.read(
        config.manifest_url,
        overrides,
        config.warehouse_options,
        tenant_id=config.tenant_id,
    )
