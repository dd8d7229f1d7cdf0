# core/disjoint_set.py

from collections import defaultdict
from typing import Dict, Generic, Hashable, List, TypeVar

T = TypeVar('T', bound=Hashable)


def _find_root(parents: List[int], key: int) -> int:
    """
    Walk to the root of ``key`` while halving the path.

    Every visited node is relinked to its grandparent, so repeated
    lookups over the same chain get shorter.
    """
    k = key
    p = parents[k]

    while p != k:
        pp = parents[p]
        parents[k] = pp
        k = p
        p = pp

    return p


class DisjointSet(Generic[T]):
    """
    Union-find over arbitrary hashable values.

    Values are mapped to dense integer ids (insertion order) and the
    forest is kept as a flat list of parent ids.
    """

    def __init__(self):
        self._parents: List[int] = []
        self._values: Dict[T, int] = {}
        self._drained = False

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, value) -> bool:
        return value in self._values

    def insert(self, value: T) -> int:
        """Register ``value`` as a singleton set and return its id"""
        self._check_alive()
        key = len(self._values)
        self._parents.append(key)
        self._values[value] = key
        return key

    def find(self, value: T) -> int:
        """
        Return the representative id of the set containing ``value``.

        Raises:
            KeyError: if ``value`` was never inserted
        """
        self._check_alive()
        key = self._values[value]
        return _find_root(self._parents, key)

    def union(self, a: T, b: T) -> None:
        """Merge the sets of ``a`` and ``b``; the root of ``a`` goes under the root of ``b``"""
        pa = self.find(a)
        pb = self.find(b)

        if pa == pb:
            return

        self._parents[pa] = pb

    def connected(self, a: T, b: T) -> bool:
        return self.find(a) == self.find(b)

    def drain_into_groups(self) -> List[List[T]]:
        """
        Consume the structure and return every connected component.

        Singletons are included. The set cannot be used afterwards.
        """
        self._check_alive()
        groups = defaultdict(list)
        parents = self._parents

        for value, key in self._values.items():
            groups[_find_root(parents, key)].append(value)

        self._parents = []
        self._values = {}
        self._drained = True

        return list(groups.values())

    def _check_alive(self):
        if self._drained:
            raise RuntimeError("DisjointSet has already been drained")
