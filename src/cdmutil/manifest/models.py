"""
CDM Data Models.

This module defines the data structures for representing CDM (Common Data
Model) content read from, or written to, a manifest store.

Models:
- CDMTrait / CDMTraitArgument: semantic annotations
- CDMAttribute: entity attribute definition
- CDMEntity: entity definition with attributes
- EntityDeclaration: a manifest's pointer to an entity definition
- SubManifestReference: a manifest's pointer to a child manifest
- CDMManifest: manifest document with declarations and sub-manifests
- EntityList / EntityDefinition / AttributeDefinition: caller-supplied input
  for manifest creation
- ManifestStatus: result of the creation pipeline
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

ENUM_LIST_TRAIT = "is.constrainedList.wellKnown"
ENUM_DATA_TYPE = "listLookup"


@dataclass
class CDMTraitArgument:
    """
    Represents an argument for a CDM trait.

    Attributes:
        name: Optional argument name.
        value: The argument value (string, number, or complex).
    """
    name: Optional[str] = None
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        result: Dict[str, Any] = {}
        if self.name:
            result["name"] = self.name
        if self.value is not None:
            result["value"] = self.value
        return result


@dataclass
class CDMTrait:
    """
    Represents a CDM trait (semantic annotation).

    Traits provide semantic meaning to entities and attributes:
    - `is.dataFormat.integer` - Data format traits
    - `is.constrainedList.wellKnown` - Enumerated value lists
    - `is.constrained.length` - Constraint traits
    """
    trait_reference: str
    arguments: List[CDMTraitArgument] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        if not self.arguments:
            return {"traitReference": self.trait_reference}
        return {
            "traitReference": self.trait_reference,
            "arguments": [arg.to_dict() for arg in self.arguments]
        }

    def get_argument(self, name: str) -> Any:
        for arg in self.arguments:
            if arg.name == name:
                return arg.value
        return None


@dataclass
class CDMAttribute:
    """
    Represents a CDM entity attribute.

    Attributes:
        name: Attribute name (required).
        data_type: CDM data type (string, int64, dateTime, listLookup, ...).
        description: Human-readable description.
        applied_traits: Traits applied to this attribute.
        is_nullable: Whether the attribute can be null.
        maximum_length: Maximum string length (if applicable).
        precision: Numeric precision (decimals).
        scale: Numeric scale (decimals).
        enum_values: Ordered (value, label) pairs for enumerations.
    """
    name: str
    data_type: str = "string"
    description: Optional[str] = None
    applied_traits: List[CDMTrait] = field(default_factory=list)
    is_nullable: bool = True
    maximum_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    enum_values: List[Tuple[Any, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        result: Dict[str, Any] = {
            "name": self.name,
            "dataType": self.data_type,
        }
        if self.description:
            result["description"] = self.description
        if self.applied_traits:
            result["appliedTraits"] = [t.to_dict() for t in self.applied_traits]
        if not self.is_nullable:
            result["isNullable"] = self.is_nullable
        if self.maximum_length is not None:
            result["maximumLength"] = self.maximum_length
        if self.precision is not None:
            result["precision"] = self.precision
        if self.scale is not None:
            result["scale"] = self.scale
        return result

    @property
    def is_enum(self) -> bool:
        """Check if attribute is an enumeration."""
        if self.data_type.lower() == ENUM_DATA_TYPE.lower():
            return True
        return any(t.trait_reference == ENUM_LIST_TRAIT for t in self.applied_traits)


@dataclass
class CDMEntity:
    """
    Represents a CDM entity definition.

    Attributes:
        name: Entity name (required).
        description: Human-readable description.
        extends_entity: Parent entity name.
        attributes: Ordered entity attributes.
        source_path: Location of the document the entity was read from.
    """
    name: str
    description: Optional[str] = None
    extends_entity: Optional[str] = None
    attributes: List[CDMAttribute] = field(default_factory=list)
    source_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        result: Dict[str, Any] = {
            "entityName": self.name,
        }
        if self.extends_entity:
            result["extendsEntity"] = self.extends_entity
        if self.description:
            result["description"] = self.description
        result["hasAttributes"] = [a.to_dict() for a in self.attributes]
        return result


@dataclass
class EntityDeclaration:
    """
    A manifest's declaration of one entity.

    Attributes:
        name: Entity name.
        entity_path: Corpus path, e.g. ``Finance/CustTable.cdm.json/CustTable``.
        entity_type: ``LocalEntity`` or ``ReferencedEntity``.
        root_location: First partition pattern root location, if any.
        glob_pattern: First partition pattern glob, if any.
        partition_locations: Explicit data partition locations.
    """
    name: str
    entity_path: str = ""
    entity_type: str = "LocalEntity"
    root_location: Optional[str] = None
    glob_pattern: Optional[str] = None
    partition_locations: List[str] = field(default_factory=list)

    @property
    def document_path(self) -> str:
        """Document part of the entity path (up to and including ``.cdm.json``)."""
        parts = self.entity_path.split("/")
        for i, part in enumerate(parts):
            if part.lower().endswith(".cdm.json"):
                return "/".join(parts[:i + 1])
        return self.entity_path

    @property
    def definition_name(self) -> str:
        """Entity name part of the entity path, falling back to the declaration name."""
        document = self.document_path
        remainder = self.entity_path[len(document):].strip("/")
        return remainder or self.name

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": self.entity_type,
            "entityName": self.name,
            "entityPath": self.entity_path,
        }
        if self.root_location is not None:
            result["dataPartitionPatterns"] = [{
                "name": self.name,
                "rootLocation": self.root_location,
                "globPattern": self.glob_pattern or "*.csv",
            }]
        if self.partition_locations:
            result["dataPartitions"] = [{"location": loc} for loc in self.partition_locations]
        return result


@dataclass
class SubManifestReference:
    """A manifest's pointer to a child manifest document."""
    name: str
    definition: str

    def to_dict(self) -> Dict[str, Any]:
        return {"manifestName": self.name, "definition": self.definition}


@dataclass
class CDMManifest:
    """
    Represents a CDM manifest document.

    Attributes:
        name: Manifest name.
        entities: Entity declarations in document order.
        sub_manifests: Sub-manifest references in document order.
        schema_version: CDM JSON schema version.
        source_path: Location of the manifest document.
        imports: Corpus path imports.
    """
    name: str
    entities: List[EntityDeclaration] = field(default_factory=list)
    sub_manifests: List[SubManifestReference] = field(default_factory=list)
    schema_version: str = "1.0.0"
    source_path: Optional[str] = None
    imports: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        result: Dict[str, Any] = {
            "manifestName": self.name,
            "jsonSchemaSemanticVersion": self.schema_version,
            "imports": [{"corpusPath": imp} for imp in self.imports],
            "entities": [e.to_dict() for e in self.entities],
            "subManifests": [s.to_dict() for s in self.sub_manifests],
        }
        return result

    @property
    def entity_count(self) -> int:
        return len(self.entities)

    def get_sub_manifest(self, name: str) -> Optional[SubManifestReference]:
        for sub in self.sub_manifests:
            if sub.name == name:
                return sub
        return None

    def get_entity_names(self) -> List[str]:
        """Get list of all declared entity names."""
        return [entity.name for entity in self.entities]


# =============================================================================
# Manifest creation input
# =============================================================================

@dataclass
class AttributeDefinition:
    """Caller-supplied attribute for a new entity."""
    name: str
    data_type: str = "string"
    maximum_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_nullable: bool = True
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttributeDefinition':
        return cls(
            name=data.get("name", ""),
            data_type=data.get("dataType", "string"),
            maximum_length=data.get("maximumLength"),
            precision=data.get("precision"),
            scale=data.get("scale"),
            is_nullable=data.get("isNullable", True),
            description=data.get("description"),
        )

    def to_attribute(self) -> CDMAttribute:
        return CDMAttribute(
            name=self.name,
            data_type=self.data_type,
            description=self.description,
            is_nullable=self.is_nullable,
            maximum_length=self.maximum_length,
            precision=self.precision,
            scale=self.scale,
        )


@dataclass
class EntityDefinition:
    """
    Caller-supplied entity for a new manifest.

    Attributes:
        name: Entity name.
        description: Optional description.
        path: Optional slash-delimited sub-folder below the root folder path.
        data_location: Partition folder relative to the manifest folder;
            defaults to the entity name.
        attributes: Ordered attribute definitions.
    """
    name: str
    description: Optional[str] = None
    path: str = ""
    data_location: Optional[str] = None
    attributes: List[AttributeDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EntityDefinition':
        return cls(
            name=data.get("name", ""),
            description=data.get("description"),
            path=(data.get("path") or "").strip("/"),
            data_location=data.get("dataLocation"),
            attributes=[AttributeDefinition.from_dict(a) for a in data.get("attributes", [])],
        )

    def to_entity(self) -> CDMEntity:
        return CDMEntity(
            name=self.name,
            description=self.description,
            extends_entity="CdmEntity",
            attributes=[a.to_attribute() for a in self.attributes],
        )


@dataclass
class EntityList:
    """Ordered entity definitions plus the name of the manifest to create."""
    manifest_name: Optional[str] = None
    entity_definitions: List[EntityDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EntityList':
        return cls(
            manifest_name=data.get("manifestName"),
            entity_definitions=[
                EntityDefinition.from_dict(e) for e in data.get("entityDefinitions", [])
            ],
        )


@dataclass
class ManifestStatus:
    """Terminal result of the creation pipeline."""
    manifest_name: Optional[str]
    is_manifest_created: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "manifestName": self.manifest_name,
            "isManifestCreated": self.is_manifest_created,
        }
