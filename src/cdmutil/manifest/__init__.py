"""
CDM manifest handling.

Key Components:
- models: typed manifest, entity and attribute representations
- parser: CDM JSON documents to models
- hierarchy: folder path to manifest tree
- writer: manifest creation, sub-manifest linking, model.json export
- reader: manifest tree to SQL metadata (import from ``cdmutil.manifest.reader``)

Supported Document Types:
- *.manifest.cdm.json (entry point)
- *.cdm.json (entity definitions)
- model.json (legacy export)
"""

from .models import (
    CDMAttribute,
    CDMEntity,
    CDMManifest,
    CDMTrait,
    CDMTraitArgument,
    EntityDeclaration,
    EntityDefinition,
    EntityList,
    ManifestStatus,
    SubManifestReference,
)

from .parser import CDMParser

from .hierarchy import ManifestHierarchy, ManifestNode, build_hierarchy

from .writer import ManifestWriter, get_manifest_definitions

__all__ = [
    # Models
    "CDMAttribute",
    "CDMEntity",
    "CDMManifest",
    "CDMTrait",
    "CDMTraitArgument",
    "EntityDeclaration",
    "EntityDefinition",
    "EntityList",
    "ManifestStatus",
    "SubManifestReference",
    # Parsing
    "CDMParser",
    # Hierarchy
    "ManifestHierarchy",
    "ManifestNode",
    "build_hierarchy",
    # Writing
    "ManifestWriter",
    "get_manifest_definitions",
]
