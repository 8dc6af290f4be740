"""
Lexical environments for the dmscript evaluator.

A Scope is a fixed-size bucketed hash table of name -> Value plus a
non-owning link to its parent. Values are copied on the way in and on the
way out, so a stored entry never aliases the expression that produced it.
"""
from typing import Any, Iterator, List, Optional

from dmscript.dm_datatypes import Value

BUCKET_COUNT = 64
_HASH_MASK = (1 << 64) - 1


def hash_name(name: str, size: int = BUCKET_COUNT) -> int:
    """djb2: h = h * 33 + byte, seeded with 5381, over the UTF-8 name."""
    h = 5381
    for b in name.encode('utf-8'):
        h = (h * 33 + b) & _HASH_MASK
    return h % size


class _Entry:
    __slots__ = ('name', 'value')

    def __init__(self, name: str, value: Value):
        self.name = name
        self.value = value


class Scope:
    """A name table with an optional parent, searched child -> parent -> ... -> global."""

    def __init__(self, parent: Optional['Scope'] = None):
        self.parent = parent
        self._buckets: Optional[List[List[_Entry]]] = [[] for _ in range(BUCKET_COUNT)]

    @property
    def destroyed(self) -> bool:
        return self._buckets is None

    def _bucket(self, name: str) -> List[_Entry]:
        if self._buckets is None:
            raise RuntimeError("scope has been destroyed")
        return self._buckets[hash_name(name)]

    def _find_local(self, name: str) -> Optional[_Entry]:
        for entry in self._bucket(name):
            if entry.name == name:
                return entry
        return None

    def define(self, name: str, value: Value):
        """Bind `name` in this scope, overwriting any existing binding here."""
        if not isinstance(name, str):
            raise TypeError(f"Scope key must be a str, not {type(name)}")
        entry = self._find_local(name)
        if entry is not None:
            entry.value = value.copy()
            return
        # Newest entries go to the head of the bucket.
        self._bucket(name).insert(0, _Entry(name, value.copy()))

    def find_owner(self, name: str) -> Optional['Scope']:
        """Finds the scope in the chain (self -> parent -> ...) that binds name."""
        current = self
        while current is not None:
            if current._find_local(name) is not None:
                return current
            current = current.parent
        return None

    def lookup(self, name: str) -> Value:
        """Resolve `name` through the parent chain. Raises KeyError if unbound."""
        owner = self.find_owner(name)
        if owner is None:
            raise KeyError(name)
        return owner._find_local(name).value.copy()

    def destroy(self):
        """Release every binding. The scope cannot be used afterwards."""
        if self._buckets is None:
            return
        for bucket in self._buckets:
            bucket.clear()
        self._buckets = None
        self.parent = None

    def keys(self) -> Iterator[str]:
        """Names bound in this scope only (not its parents)."""
        if self._buckets is None:
            return iter(())
        return (entry.name for bucket in self._buckets for entry in bucket)

    def __contains__(self, name: Any) -> bool:
        return isinstance(name, str) and self.find_owner(name) is not None

    def __len__(self) -> int:
        if self._buckets is None:
            return 0
        return sum(len(bucket) for bucket in self._buckets)

    def __enter__(self) -> 'Scope':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.destroy()
        return False

    def __repr__(self) -> str:
        if self.destroyed:
            return "<Scope destroyed>"
        keys = ', '.join(sorted(self.keys()))
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope bindings=[{keys}]{parent_id}>"
