# graph.py
from __future__ import annotations

from collections import deque
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .errors import DuplicateNodeError, GraphCycleError


class GraphNode:
    """
    A node in the plan.

    Two relations hang off every node:
      - composition: the Graph that owns it (`parent_graph`)
      - ordering: the nodes it must wait for (`dependencies`), anywhere in the tree
    """

    def __init__(self, id: str, data: Any = None):
        self.id = id
        self.data = data
        self._deps: List[GraphNode] = []
        self._parent_graph: Optional[Graph] = None

    @classmethod
    def of(cls, id: str, data: Any = None) -> GraphNode:
        return cls(id, data)

    @property
    def parent_graph(self) -> Optional[Graph]:
        return self._parent_graph

    def _set_parent_graph(self, parent: Graph) -> None:
        if self._parent_graph is not None:
            raise DuplicateNodeError(
                f"Node already has a parent: {self._parent_graph.path_id or '(root)'}",
                node=self.id,
            )
        self._parent_graph = parent

    @property
    def dependencies(self) -> list[GraphNode]:
        return list(self._deps)

    def depend_on(self, *dependencies: Optional[GraphNode]) -> None:
        """`self` is not ready until every node in `dependencies` is."""
        for dep in dependencies:
            if dep is None or dep is self or dep in self._deps:
                continue
            self._deps.append(dep)

    def root_path(self) -> list[GraphNode]:
        """Path from the root graph down to (and including) this node."""
        path: List[GraphNode] = []
        node: Optional[GraphNode] = self
        while node is not None:
            path.append(node)
            node = node.parent_graph
        return list(reversed(path))

    @property
    def path_id(self) -> str:
        # the root graph has an empty id, skip it
        return "/".join(n.id for n in self.root_path() if n.id)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.path_id or '(root)'}>"


class Graph(GraphNode):
    """A node that owns named children."""

    def __init__(self, id: str, data: Any = None, nodes: Iterable[GraphNode] = ()):
        super().__init__(id, data)
        self._children: Dict[str, GraphNode] = {}
        self.add(*nodes)

    @classmethod
    def of(cls, id: str, data: Any = None, nodes: Iterable[GraphNode] = ()) -> Graph:
        return cls(id, data, nodes)

    @property
    def nodes(self) -> list[GraphNode]:
        return list(self._children.values())

    def add(self, *nodes: GraphNode) -> None:
        for node in nodes:
            if node.id in self._children:
                raise DuplicateNodeError(
                    f"Node with duplicate id: {node.id}",
                    node=self.path_id or "(root)",
                )
            node._set_parent_graph(self)
            self._children[node.id] = node

    def try_get_child(self, name: str) -> Optional[GraphNode]:
        return self._children.get(name)

    def descendants(self) -> Iterator[GraphNode]:
        """All nodes below this graph, depth-first, in insertion order."""
        for child in self._children.values():
            yield child
            if isinstance(child, Graph):
                yield from child.descendants()

    def _child_containing(self, node: GraphNode) -> Optional[GraphNode]:
        """The direct child of this graph that is `node` or contains it."""
        current: Optional[GraphNode] = node
        while current is not None and current.parent_graph is not self:
            current = current.parent_graph
        return current

    def sorted_layers(self) -> list[list[GraphNode]]:
        """
        Group the direct children into topological "layers".

        Dependencies of a child (and of everything inside it) are lifted to
        the sibling that contains their target. Targets outside this graph
        are ignored. Every node in a layer can run in parallel.
        """
        children = self.nodes
        by_name = {c.id: c for c in children}
        adj: Dict[str, set] = {c.id: set() for c in children}   # dep -> dependents
        indeg: Dict[str, int] = {c.id: 0 for c in children}

        for child in children:
            sources = [child]
            if isinstance(child, Graph):
                sources.extend(child.descendants())
            for source in sources:
                for dep in source.dependencies:
                    target = self._child_containing(dep)
                    if target is None or target is child:
                        continue
                    if child.id not in adj[target.id]:
                        adj[target.id].add(child.id)
                        indeg[child.id] += 1

        q = deque(sorted(n for n, d in indeg.items() if d == 0))
        layers: List[List[GraphNode]] = []
        processed = 0

        while q:
            layer: List[str] = []
            for _ in range(len(q)):
                name = q.popleft()
                layer.append(name)
                processed += 1

            nxt: List[str] = []
            for name in layer:
                for dependent in adj[name]:
                    indeg[dependent] -= 1
                    if indeg[dependent] == 0:
                        nxt.append(dependent)
            q.extend(sorted(nxt))
            layers.append([by_name[n] for n in layer])

        if processed != len(indeg):
            stuck = sorted(n for n, d in indeg.items() if d > 0)
            raise GraphCycleError(
                "Dependency cycle between children",
                node=self.path_id or "(root)",
                details={"stuck": stuck},
            )

        return layers


class GraphNodeCollection:
    """A set of nodes that can be made to depend on other nodes in bulk."""

    def __init__(self, nodes: Iterable[GraphNode]):
        self.nodes = list(nodes)

    def depend_on(self, *dependencies: Optional[GraphNode]) -> None:
        """Every member waits for every one of `dependencies`."""
        for node in self.nodes:
            node.depend_on(*dependencies)

    def __iter__(self) -> Iterator[GraphNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)
