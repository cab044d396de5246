"""
Manifest hierarchy construction.

A folder path such as ``Tables/AccountReceivable/Group`` is represented as a
chain of manifest nodes, one per path prefix, each linked to its immediate
child folder:

    Tables -> AccountReceivable -> Group

Nodes live in an arena (``ManifestHierarchy.nodes``) and refer to each other
by index. Node paths are accumulated prefixes without a leading slash, so the
same folder name at two depths yields two distinct nodes.

Usage:
    from cdmutil.manifest.hierarchy import build_hierarchy

    hierarchy = build_hierarchy(entity_list, "Tables/AccountReceivable/Group")
    for parent, child in hierarchy.links():
        print(f"{parent} -> {child}")
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from ..errors import ManifestFormatError
from .models import EntityDefinition, EntityList

logger = logging.getLogger(__name__)


@dataclass
class ManifestNode:
    """
    One manifest in the hierarchy.

    Attributes:
        name: Folder (segment) name.
        path: Accumulated folder path, e.g. ``Tables/AccountReceivable``.
        manifest_name: Name of the manifest document in this folder.
        entities: Entities declared directly in this manifest.
        parent: Index of the parent node, if any.
        children: Indices of child nodes in link order.
    """
    name: str
    path: str
    manifest_name: str
    entities: List[EntityDefinition] = field(default_factory=list)
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)

    @property
    def parent_path(self) -> str:
        return self.path.rpartition("/")[0]


class ManifestHierarchy:
    """Arena of manifest nodes with parent/child links."""

    def __init__(self):
        self.nodes: List[ManifestNode] = []
        self._index: Dict[str, int] = {}
        self._links: List[Tuple[int, int]] = []

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[ManifestNode]:
        return iter(self.nodes)

    def get(self, path: str) -> Optional[ManifestNode]:
        """Find the node for an accumulated folder path."""
        index = self._index.get(normalize_path(path))
        return None if index is None else self.nodes[index]

    def ensure_node(self, name: str, path: str, manifest_name: Optional[str] = None) -> int:
        """Return the index of the node at ``path``, creating it if needed."""
        path = normalize_path(path)
        index = self._index.get(path)
        if index is not None:
            if manifest_name:
                self.nodes[index].manifest_name = manifest_name
            return index

        node = ManifestNode(name=name, path=path, manifest_name=manifest_name or name)
        self.nodes.append(node)
        index = len(self.nodes) - 1
        self._index[path] = index
        logger.debug(f"Created manifest node {path}")
        return index

    def create_sub_manifest(self, parent_name: str, child_name: str, parent_path: Optional[str] = None) -> ManifestNode:
        """
        Link ``child_name`` as an immediate child of ``parent_name``.

        Args:
            parent_name: Parent folder name.
            child_name: Child folder name.
            parent_path: Accumulated path of the parent; defaults to
                ``parent_name`` (a top-level folder).

        Returns:
            The parent node.

        Raises:
            ManifestFormatError: If the child is already linked to a
                different parent.
        """
        parent_path = normalize_path(parent_path or parent_name)
        parent_index = self.ensure_node(parent_name, parent_path)
        child_index = self.ensure_node(child_name, f"{parent_path}/{child_name}")

        parent = self.nodes[parent_index]
        child = self.nodes[child_index]

        if child.parent is not None and child.parent != parent_index:
            raise ManifestFormatError(
                f"Manifest {child.path} already has parent {self.nodes[child.parent].path}"
            )

        if child_index in parent.children:
            logger.debug(f"Sub-manifest link {parent.path} -> {child.name} already exists")
            return parent

        child.parent = parent_index
        parent.children.append(child_index)
        self._links.append((parent_index, child_index))
        logger.debug(f"Linked sub-manifest {parent.path} -> {child.name}")
        return parent

    def links(self) -> List[Tuple[str, str]]:
        """Ordered ``(parent_name, child_name)`` pairs."""
        return [(self.nodes[p].name, self.nodes[c].name) for p, c in self._links]

    def link_nodes(self) -> List[Tuple[ManifestNode, ManifestNode]]:
        """Ordered ``(parent, child)`` node pairs."""
        return [(self.nodes[p], self.nodes[c]) for p, c in self._links]

    def roots(self) -> List[ManifestNode]:
        return [node for node in self.nodes if node.parent is None]

    def ancestors(self, node: ManifestNode) -> List[ManifestNode]:
        """Ancestors from the immediate parent up to the root."""
        result: List[ManifestNode] = []
        index = node.parent
        while index is not None:
            result.append(self.nodes[index])
            index = self.nodes[index].parent
        return result


def _split(path: str) -> List[str]:
    return [segment for segment in path.replace("\\", "/").split("/") if segment]


def normalize_path(path: str) -> str:
    """Join the non-empty segments of a slash or backslash delimited path."""
    return "/".join(_split(path))


def build_hierarchy(
    entity_list: EntityList,
    root_path: str,
    hierarchy: Optional[ManifestHierarchy] = None,
) -> ManifestHierarchy:
    """
    Build manifest nodes and sub-manifest links for an entity list.

    Each entity lives in ``root_path`` joined with its own optional ``path``.
    For every such folder the segments are walked left to right, accumulating
    the path prefix, and each adjacent pair is linked. Re-running on the same
    input (or onto the same hierarchy) creates no duplicate links or entities.

    Args:
        entity_list: Entities to place.
        root_path: Slash-delimited folder of the manifest being created.
        hierarchy: Existing hierarchy to extend.

    Returns:
        The populated hierarchy.

    Raises:
        ManifestFormatError: If the root path is empty.
    """
    root_segments = _split(root_path)
    if not root_segments:
        raise ManifestFormatError("Manifest folder path must not be empty")

    hierarchy = hierarchy if hierarchy is not None else ManifestHierarchy()
    root_folder = "/".join(root_segments)

    folders: Dict[str, List[EntityDefinition]] = {root_folder: []}
    for entity in entity_list.entity_definitions:
        folder = "/".join(root_segments + _split(entity.path))
        folders.setdefault(folder, []).append(entity)

    for folder, entities in folders.items():
        segments = _split(folder)
        path = ""
        for i, segment in enumerate(segments):
            path = f"{path}/{segment}" if path else segment
            hierarchy.ensure_node(segment, path)
            if i + 1 < len(segments):
                hierarchy.create_sub_manifest(segment, segments[i + 1], parent_path=path)

        manifest_name = None
        if folder == root_folder:
            manifest_name = entity_list.manifest_name or segments[-1]
        leaf = hierarchy.nodes[hierarchy.ensure_node(segments[-1], folder, manifest_name)]

        known = {e.name for e in leaf.entities}
        for entity in entities:
            if entity.name not in known:
                leaf.entities.append(entity)
                known.add(entity.name)

    logger.info(f"Built manifest hierarchy with {len(hierarchy)} nodes and {len(hierarchy.links())} links")
    return hierarchy
