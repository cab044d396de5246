"""
CDM document parser.

Turns already-loaded CDM JSON documents into the typed models in
``cdmutil.manifest.models``. Fetching documents is the store's job; this
module never performs I/O.

Supported document types:
- *.manifest.cdm.json - CDM manifest (entity declarations, sub-manifests)
- *.cdm.json - CDM entity schema definitions

Usage:
    from cdmutil.manifest.parser import CDMParser

    parser = CDMParser()
    manifest = parser.parse_manifest(store.read(url), url)
    entity = parser.parse_entity(store.read(entity_url), entity_url, "CustTable")
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import ManifestFormatError
from .models import (
    ENUM_LIST_TRAIT,
    CDMAttribute,
    CDMEntity,
    CDMManifest,
    CDMTrait,
    CDMTraitArgument,
    EntityDeclaration,
    SubManifestReference,
)

logger = logging.getLogger(__name__)


class CDMParser:
    """
    Parse CDM manifest and entity schema documents.

    Example:
        >>> parser = CDMParser()
        >>> manifest = parser.parse_manifest(data, "Tables/Tables.manifest.cdm.json")
        >>> for declaration in manifest.entities:
        ...     print(declaration.name, declaration.entity_path)
    """

    def parse_manifest(self, data: Dict[str, Any], location: Optional[str] = None) -> CDMManifest:
        """
        Parse CDM manifest JSON data.

        Raises:
            ManifestFormatError: If the document does not have a manifest shape.
        """
        if not isinstance(data, dict) or ("manifestName" not in data and "entities" not in data):
            raise ManifestFormatError(
                f"Document is not a CDM manifest: {location}",
                location=location,
            )

        entities_data = data.get("entities", [])
        sub_manifests_data = data.get("subManifests", [])
        if not isinstance(entities_data, list) or not isinstance(sub_manifests_data, list):
            raise ManifestFormatError(
                f"Manifest 'entities' and 'subManifests' must be lists: {location}",
                location=location,
            )

        manifest_name = data.get("manifestName", data.get("folderName", "unknown"))

        imports = []
        for imp in data.get("imports", []):
            if isinstance(imp, dict):
                imports.append(imp.get("corpusPath", ""))
            elif isinstance(imp, str):
                imports.append(imp)

        entities = [self._parse_declaration(e, location) for e in entities_data]

        sub_manifests: List[SubManifestReference] = []
        for sub in sub_manifests_data:
            if isinstance(sub, dict):
                definition = sub.get("definition", sub.get("manifestPath", ""))
                name = sub.get("manifestName") or definition.split("/")[-1].split(".")[0]
            elif isinstance(sub, str):
                definition = sub
                name = sub.split("/")[-1].split(".")[0]
            else:
                definition = ""
                name = ""
            if not definition:
                raise ManifestFormatError(
                    f"Sub-manifest reference without a definition in {location}",
                    location=location,
                )
            sub_manifests.append(SubManifestReference(name=name, definition=definition))

        return CDMManifest(
            name=manifest_name,
            entities=entities,
            sub_manifests=sub_manifests,
            schema_version=data.get("jsonSchemaSemanticVersion", "1.0.0"),
            source_path=location,
            imports=imports,
        )

    def _parse_declaration(self, data: Union[Dict[str, Any], str], location: Optional[str]) -> EntityDeclaration:
        """Parse one entry of a manifest's ``entities`` list."""
        if isinstance(data, str):
            name = data.split("/")[-1]
            return EntityDeclaration(name=name, entity_path=data)

        if not isinstance(data, dict):
            raise ManifestFormatError(f"Invalid entity declaration in {location}", location=location)

        entity_type = data.get("type", data.get("$type", "LocalEntity"))
        entity_path = data.get("entityPath", data.get("entityDeclaration", ""))
        name = data.get("entityName") or (entity_path.split("/")[-1] if entity_path else "")
        if not name or not entity_path:
            raise ManifestFormatError(
                f"Entity declaration needs entityName and entityPath in {location}",
                location=location,
            )

        root_location = None
        glob_pattern = None
        patterns = data.get("dataPartitionPatterns") or []
        if patterns and isinstance(patterns[0], dict):
            root_location = patterns[0].get("rootLocation", "")
            glob_pattern = patterns[0].get("globPattern") or patterns[0].get("regularExpression")

        partition_locations = [
            p.get("location", "") for p in data.get("dataPartitions") or []
            if isinstance(p, dict) and p.get("location")
        ]

        return EntityDeclaration(
            name=name,
            entity_path=entity_path,
            entity_type=entity_type,
            root_location=root_location,
            glob_pattern=glob_pattern,
            partition_locations=partition_locations,
        )

    def parse_entity(self, data: Dict[str, Any], location: Optional[str], entity_name: str) -> CDMEntity:
        """
        Parse one entity definition out of an entity schema document.

        Raises:
            ManifestFormatError: If the document does not define the entity.
        """
        definitions = data.get("definitions")
        if definitions is None and "entityName" in data:
            definitions = [data]
        if not isinstance(definitions, list):
            raise ManifestFormatError(
                f"Entity document has no definitions: {location}",
                location=location,
            )

        for definition in definitions:
            if isinstance(definition, dict) and definition.get("entityName") == entity_name:
                return self._parse_entity_definition(definition, location)

        raise ManifestFormatError(
            f"Entity '{entity_name}' not defined in {location}",
            location=location,
        )

    def _parse_entity_definition(self, data: Dict[str, Any], location: Optional[str]) -> CDMEntity:
        extends_entity = data.get("extendsEntity")
        if isinstance(extends_entity, dict):
            extends_entity = extends_entity.get("entityReference", extends_entity.get("source"))

        attributes: List[CDMAttribute] = []
        for attr_data in data.get("hasAttributes", []):
            attributes.extend(self._parse_attribute(attr_data))

        return CDMEntity(
            name=data["entityName"],
            description=data.get("description"),
            extends_entity=extends_entity if isinstance(extends_entity, str) else None,
            attributes=attributes,
            source_path=location,
        )

    def _parse_attribute(self, data: Union[Dict[str, Any], str]) -> List[CDMAttribute]:
        """
        Parse an attribute definition.

        Attribute groups with inline members are expanded in place.
        """
        if isinstance(data, str):
            return [CDMAttribute(name=data, data_type="string")]

        if "attributeGroupReference" in data:
            group = data["attributeGroupReference"]
            if isinstance(group, dict) and isinstance(group.get("members"), list):
                expanded: List[CDMAttribute] = []
                for member in group["members"]:
                    expanded.extend(self._parse_attribute(member))
                return expanded
            logger.debug(f"Skipping unresolved attribute group reference: {group}")
            return []

        # Entity attributes describe relationships, not stored columns
        if "entity" in data or "entityReference" in data:
            logger.debug(f"Skipping entity attribute: {data.get('name')}")
            return []

        attr_name = data.get("name")
        if not attr_name:
            return []

        data_type = data.get("dataType") or data.get("dataFormat") or "string"
        if isinstance(data_type, dict):
            data_type = data_type.get("dataTypeReference", data_type.get("dataType", "string"))

        applied_traits = self._parse_traits(data.get("appliedTraits", []))

        max_length = data.get("maximumLength")
        precision = data.get("precision")
        scale = data.get("scale")
        for trait in applied_traits:
            if trait.trait_reference == "is.constrained.length" and max_length is None:
                max_length = _to_int(trait.get_argument("maximumLength"))
            elif trait.trait_reference == "is.dataFormat.numeric.shaped":
                if precision is None:
                    precision = _to_int(trait.get_argument("precision"))
                if scale is None:
                    scale = _to_int(trait.get_argument("scale"))

        return [CDMAttribute(
            name=attr_name,
            data_type=data_type,
            description=data.get("description"),
            applied_traits=applied_traits,
            is_nullable=data.get("isNullable", True),
            maximum_length=_to_int(max_length),
            precision=_to_int(precision),
            scale=_to_int(scale),
            enum_values=self._parse_enum_values(applied_traits),
        )]

    def _parse_traits(self, traits_data: List[Any]) -> List[CDMTrait]:
        """Parse trait references."""
        traits: List[CDMTrait] = []

        for trait_data in traits_data:
            if isinstance(trait_data, str):
                traits.append(CDMTrait(trait_reference=trait_data))
            elif isinstance(trait_data, dict):
                trait_ref = trait_data.get("traitReference", trait_data.get("traitName", ""))
                arguments: List[CDMTraitArgument] = []

                for arg in trait_data.get("arguments", []):
                    if isinstance(arg, dict):
                        arguments.append(CDMTraitArgument(
                            name=arg.get("name"),
                            value=arg.get("value")
                        ))
                    else:
                        arguments.append(CDMTraitArgument(value=arg))

                traits.append(CDMTrait(
                    trait_reference=trait_ref,
                    arguments=arguments
                ))

        return traits

    @staticmethod
    def _parse_enum_values(traits: List[CDMTrait]) -> List[Tuple[Any, str]]:
        """
        Read (value, label) pairs from an ``is.constrainedList.wellKnown`` trait.

        The ``defaultList`` argument holds a constant entity whose rows are
        ``[languageTag, displayText, attributeValue, displayOrder]``.
        """
        for trait in traits:
            if trait.trait_reference != ENUM_LIST_TRAIT:
                continue
            default_list = trait.get_argument("defaultList")
            if default_list is None and trait.arguments:
                default_list = trait.arguments[0].value
            if not isinstance(default_list, dict):
                return []
            entity = default_list.get("entityReference", default_list)
            rows = entity.get("constantValues", []) if isinstance(entity, dict) else []

            values: List[Tuple[Any, str]] = []
            for row in rows:
                if isinstance(row, list) and len(row) >= 3:
                    value = _to_int(row[2])
                    values.append((row[2] if value is None else value, str(row[1])))
            return values
        return []


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None
