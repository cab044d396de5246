"""
CDM manifest and entity document fixtures.

The documents form a small tree:

    Tables/Tables.manifest.cdm.json            (no entities)
    Tables/Finance/Finance.manifest.cdm.json   (CustTable, CustGroup)
    Tables/Finance/CustTable.cdm.json
    Tables/Finance/CustGroup.cdm.json
    Tables/Supply/Supply.manifest.cdm.json     (VendTable)
    Tables/Supply/VendTable.cdm.json
"""

import json
from pathlib import Path
from typing import Dict

# =============================================================================
# Manifests
# =============================================================================

TABLES_MANIFEST = """{
    "manifestName": "Tables",
    "jsonSchemaSemanticVersion": "1.0.0",
    "imports": [{"corpusPath": "cdm:/foundations.cdm.json"}],
    "entities": [],
    "subManifests": [
        {"manifestName": "Finance", "definition": "Finance/Finance.manifest.cdm.json"},
        {"manifestName": "Supply", "definition": "Supply/Supply.manifest.cdm.json"}
    ]
}"""

FINANCE_MANIFEST = """{
    "manifestName": "Finance",
    "jsonSchemaSemanticVersion": "1.0.0",
    "entities": [
        {
            "type": "LocalEntity",
            "entityName": "CustTable",
            "entityPath": "CustTable.cdm.json/CustTable",
            "dataPartitionPatterns": [
                {"name": "CustTable", "rootLocation": "CustTable", "globPattern": "*.csv"}
            ]
        },
        {
            "type": "LocalEntity",
            "entityName": "CustGroup",
            "entityPath": "CustGroup.cdm.json/CustGroup"
        }
    ],
    "subManifests": []
}"""

SUPPLY_MANIFEST = """{
    "manifestName": "Supply",
    "jsonSchemaSemanticVersion": "1.0.0",
    "entities": [
        {
            "type": "LocalEntity",
            "entityName": "VendTable",
            "entityPath": "VendTable.cdm.json/VendTable",
            "dataPartitions": [
                {"location": "VendTable/VendTable_00001.csv"}
            ]
        }
    ]
}"""

# =============================================================================
# Entity schemas
# =============================================================================

CUST_TABLE_ENTITY = """{
    "jsonSchemaSemanticVersion": "1.0.0",
    "imports": [{"corpusPath": "cdm:/foundations.cdm.json"}],
    "definitions": [
        {
            "entityName": "CustTable",
            "extendsEntity": "CdmEntity",
            "hasAttributes": [
                {
                    "name": "AccountNum",
                    "dataType": "string",
                    "maximumLength": 20,
                    "isNullable": false
                },
                {
                    "name": "CreditMax",
                    "dataType": "decimal",
                    "appliedTraits": [
                        {
                            "traitReference": "is.dataFormat.numeric.shaped",
                            "arguments": [
                                {"name": "precision", "value": 32},
                                {"name": "scale", "value": 6}
                            ]
                        }
                    ]
                },
                {
                    "name": "CreatedDateTime",
                    "dataType": "dateTime"
                },
                {
                    "name": "Blocked",
                    "dataType": "listLookup",
                    "appliedTraits": [
                        {
                            "traitReference": "is.constrainedList.wellKnown",
                            "arguments": [
                                {
                                    "name": "defaultList",
                                    "value": {
                                        "entityReference": {
                                            "entityShape": "listLookupValues",
                                            "constantValues": [
                                                ["en", "No", "0", "0"],
                                                ["en", "Invoice", "1", "1"],
                                                ["en", "All", "2", "2"]
                                            ]
                                        }
                                    }
                                }
                            ]
                        }
                    ]
                },
                {
                    "attributeGroupReference": {
                        "attributeGroupName": "SystemFields",
                        "members": [
                            {"name": "RecId", "dataType": "int64"},
                            {"name": "DataAreaId", "dataType": "string", "maximumLength": 4}
                        ]
                    }
                }
            ]
        }
    ]
}"""

CUST_GROUP_ENTITY = """{
    "jsonSchemaSemanticVersion": "1.0.0",
    "definitions": [
        {
            "entityName": "CustGroup",
            "hasAttributes": [
                {"name": "CustGroup", "dataType": "string", "maximumLength": 10},
                {"name": "Name", "dataType": "name"}
            ]
        }
    ]
}"""

VEND_TABLE_ENTITY = """{
    "jsonSchemaSemanticVersion": "1.0.0",
    "definitions": [
        {
            "entityName": "VendTable",
            "hasAttributes": [
                {"name": "AccountNum", "dataType": "string", "maximumLength": 20},
                {"name": "InvoiceDate", "dataType": "date"},
                {"name": "VendGroup", "dataType": {"dataTypeReference": "string"}}
            ]
        }
    ]
}"""

UNKNOWN_TYPE_ENTITY = """{
    "definitions": [
        {
            "entityName": "Geo",
            "hasAttributes": [
                {"name": "Location", "dataType": "geography"}
            ]
        }
    ]
}"""

# =============================================================================
# Cyclic trees
# =============================================================================

CYCLE_A_MANIFEST = """{
    "manifestName": "A",
    "entities": [],
    "subManifests": [{"manifestName": "B", "definition": "B/B.manifest.cdm.json"}]
}"""

CYCLE_B_MANIFEST = """{
    "manifestName": "B",
    "entities": [],
    "subManifests": [{"manifestName": "A", "definition": "/A.manifest.cdm.json"}]
}"""

SELF_MANIFEST = """{
    "manifestName": "Self",
    "entities": [],
    "subManifests": [{"manifestName": "Self", "definition": "Self.manifest.cdm.json"}]
}"""

# =============================================================================
# Creation input
# =============================================================================

ENTITY_LIST = """{
    "manifestName": "Group",
    "entityDefinitions": [
        {
            "name": "CustGroup",
            "description": "Customer groups",
            "attributes": [
                {"name": "CustGroup", "dataType": "string", "maximumLength": 10},
                {"name": "PaymTermId", "dataType": "string"}
            ]
        },
        {
            "name": "CustTable",
            "dataLocation": "Data/CustTable",
            "attributes": [
                {"name": "AccountNum", "dataType": "string", "maximumLength": 20},
                {"name": "CreditMax", "dataType": "decimal"}
            ]
        }
    ]
}"""

ARTIFACTS = """[
    {"TableName": "CustTable", "ManifestName": "AccountsReceivable",
     "ManifestLocation": "Tables/Finance/AccountsReceivable", "DataLocation": "CustTable"},
    {"TableName": "CustGroup", "ManifestName": "AccountsReceivable",
     "ManifestLocation": "Tables/Finance/AccountsReceivable", "DataLocation": "CustGroup"},
    {"TableName": "VendTable", "ManifestName": "AccountsPayable",
     "ManifestLocation": "Tables/Finance/AccountsPayable", "DataLocation": ""}
]"""

EVENT_GRID_EVENT = """{
    "id": "6f1c0d1e-0000-0000-0000-000000000000",
    "eventType": "Microsoft.Storage.BlobCreated",
    "subject": "/blobServices/default/containers/fs/blobs/Tables/Finance/Finance.manifest.cdm.json",
    "data": {
        "api": "FlushWithClose",
        "url": "Tables/Finance/Finance.manifest.cdm.json"
    }
}"""


CDM_TREE: Dict[str, str] = {
    "Tables/Tables.manifest.cdm.json": TABLES_MANIFEST,
    "Tables/Finance/Finance.manifest.cdm.json": FINANCE_MANIFEST,
    "Tables/Finance/CustTable.cdm.json": CUST_TABLE_ENTITY,
    "Tables/Finance/CustGroup.cdm.json": CUST_GROUP_ENTITY,
    "Tables/Supply/Supply.manifest.cdm.json": SUPPLY_MANIFEST,
    "Tables/Supply/VendTable.cdm.json": VEND_TABLE_ENTITY,
}


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    """Write ``{relative_path: content}`` below ``root`` and return ``root``."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def load(content: str):
    """Parse a fixture string."""
    return json.loads(content)
