from typing import Any, Hashable, Sequence


class _Absent:
    """Stands in for any missing node so lookups below it stay false/empty."""

    def get(self, key: Hashable, default: Any = None) -> "_Absent":
        return self

    def __contains__(self, key: Hashable) -> bool:
        return False

    def __len__(self) -> int:
        return 0


_ABSENT = _Absent()


class PathContainer:
    """
    A fixed-depth trie addressed by paths of keys.

    Every level but the deepest one is a dict; the deepest level holds sets of
    members. Branches left empty by a mutation are pruned right away, so the
    structure never keeps dead paths around.
    """

    def __init__(self, length: int):
        if length < 1:
            raise ValueError("PathContainer length must be at least 1")
        self._max_index = length - 1
        self._root: dict = {}

    def _check(self, path: Sequence[Hashable]) -> None:
        if len(path) > self._max_index + 1:
            raise ValueError(
                f"Path {tuple(path)!r} is longer than container depth {self._max_index + 1}"
            )

    def _lookup(self, path: Sequence[Hashable]) -> Any:
        node: Any = self._root
        for step in path:
            node = node.get(step, _ABSENT)
        return node

    def has(self, path: Sequence[Hashable]) -> bool:
        """Returns True if the node addressed by path exists. Never mutates."""
        self._check(path)
        if not path:
            return True
        return path[-1] in self._lookup(path[:-1])

    def get(self, path: Sequence[Hashable]) -> Any:
        """Returns the node addressed by path, creating missing nodes on the way."""
        self._check(path)
        node: Any = self._root
        for i, step in enumerate(path):
            child = node.get(step)
            if child is None:
                child = set() if i == self._max_index else {}
                node[step] = child
            node = child
        return node

    def _check_full(self, path: Sequence[Hashable], operation: str) -> None:
        if len(path) != self._max_index + 1:
            raise ValueError(f"{operation}() needs a full path of length {self._max_index + 1}")

    def add(self, path: Sequence[Hashable], value: Hashable) -> None:
        self._check_full(path, "add")
        self.get(path).add(value)

    def delete(self, path: Sequence[Hashable], value: Hashable) -> None:
        self._check_full(path, "delete")
        if self.has(path):
            self.get(path).discard(value)
        self._prune(path)

    def clear(self, path: Sequence[Hashable]) -> None:
        self._check_full(path, "clear")
        if self.has(path):
            self.get(path).clear()
        self._prune(path)

    def _prune(self, path: Sequence[Hashable]) -> None:
        # Deepest first: dropping a child may leave its parent empty.
        for end in range(len(path), 0, -1):
            subpath = path[:end]
            if self.has(subpath) and not self._lookup(subpath):
                del self._lookup(subpath[:-1])[subpath[-1]]

    def __bool__(self) -> bool:
        return bool(self._root)

    def __repr__(self) -> str:
        return f"PathContainer(length={self._max_index + 1}, root={self._root!r})"
