"""In-memory link graph algorithms.

``LinkGraph`` is built from a list of links and runs breadth-first
traversals on it. Edges are followed from source to target; the reverse
direction is only followed for links flagged ``is_bidirectional``.
"""
from collections import Counter, deque
from typing import Dict, Iterable, List, Optional, Set, Tuple

from notegraph.models.schema import NoteLink


class LinkGraph:
    """Adjacency view over a user's links."""

    def __init__(self, links: Iterable[NoteLink], note_ids: Iterable[str] = ()):
        self.links: List[NoteLink] = list(links)
        self.nodes: Set[str] = set(note_ids)
        self._adjacency: Dict[str, Set[str]] = {}
        self._degree: Counter = Counter()

        for link in self.links:
            self.nodes.add(link.source_id)
            self.nodes.add(link.target_id)
            self._adjacency.setdefault(link.source_id, set()).add(link.target_id)
            if link.is_bidirectional:
                self._adjacency.setdefault(link.target_id, set()).add(link.source_id)
            # One link counts once for each of its two notes
            self._degree[link.source_id] += 1
            self._degree[link.target_id] += 1

    def neighbours(self, note_id: str) -> List[str]:
        """Notes reachable in one hop, sorted for deterministic traversal."""
        return sorted(self._adjacency.get(note_id, ()))

    def reachable(self, start_id: str, max_depth: int) -> Set[str]:
        """Notes reachable from ``start_id`` within ``max_depth`` hops.

        The start note itself is never part of the result, even when a
        cycle leads back to it.
        """
        if max_depth <= 0:
            return set()
        visited = {start_id}
        frontier = [start_id]
        for _ in range(max_depth):
            next_frontier = []
            for node in frontier:
                for neighbour in self.neighbours(node):
                    if neighbour not in visited:
                        visited.add(neighbour)
                        next_frontier.append(neighbour)
            if not next_frontier:
                break
            frontier = next_frontier
        visited.discard(start_id)
        return visited

    def shortest_path(
        self, start_id: str, target_id: str, max_hops: int
    ) -> Optional[List[str]]:
        """Fewest-hop path from start to target, both ends included.

        Returns None when start equals target or no path of at most
        ``max_hops`` edges exists.
        """
        if start_id == target_id:
            return None
        parents: Dict[str, Optional[str]] = {start_id: None}
        queue = deque([(start_id, 0)])
        while queue:
            node, depth = queue.popleft()
            if depth >= max_hops:
                continue
            for neighbour in self.neighbours(node):
                if neighbour in parents:
                    continue
                parents[neighbour] = node
                if neighbour == target_id:
                    return self._trace(parents, target_id)
                queue.append((neighbour, depth + 1))
        return None

    def degree(self, note_id: str) -> int:
        return self._degree.get(note_id, 0)

    def most_connected(self, limit: Optional[int] = None) -> List[Tuple[str, int]]:
        """``(note_id, degree)`` of linked notes, highest degree first, ties by id."""
        ranked = sorted(self._degree.items(), key=lambda item: (-item[1], item[0]))
        return ranked if limit is None else ranked[:max(limit, 0)]

    def orphans(self) -> List[str]:
        """Known notes without any link, sorted by id."""
        return sorted(n for n in self.nodes if self._degree.get(n, 0) == 0)

    def type_histogram(self) -> Dict[str, int]:
        return dict(Counter(link.link_type.value for link in self.links))

    @staticmethod
    def _trace(parents: Dict[str, Optional[str]], end: str) -> List[str]:
        path = [end]
        while parents[path[-1]] is not None:
            path.append(parents[path[-1]])
        path.reverse()
        return path
