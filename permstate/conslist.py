"""Persistent cons list.

An immutable singly-linked list.  Prepending is O(1) and the new list
shares every node of the old one, so many logic values can hold the
implication history for a location without copying it.  Most other
operations walk the list and run in linear time.

Equality and hashing are structural, like a Python tuple, which is what
the join and ordering operators of the logic rely on.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Iterable, Iterator, Optional, TypeVar

T = TypeVar("T")
O = TypeVar("O")


class ConsList(Generic[T]):
    __slots__ = ("_hd", "_tl", "_size", "_hash")

    def __init__(self, hd: Any = None, tl: Optional[ConsList[T]] = None):
        self._hd = hd
        self._tl = tl
        self._size = 0 if tl is None else tl._size + 1
        self._hash: Optional[int] = None

    # -- construction -------------------------------------------------------

    @staticmethod
    def empty() -> ConsList[Any]:
        return _EMPTY

    @staticmethod
    def singleton(hd: T) -> ConsList[T]:
        return ConsList(hd, _EMPTY)

    @staticmethod
    def of(*items: T) -> ConsList[T]:
        """Build a list whose iteration order matches the arguments."""
        return ConsList.from_iterable(items)

    @staticmethod
    def from_iterable(items: Iterable[T]) -> ConsList[T]:
        result: ConsList[T] = _EMPTY
        for item in reversed(list(items)):
            result = result.cons(item)
        return result

    def cons(self, hd: T) -> ConsList[T]:
        return ConsList(hd, self)

    # -- access -------------------------------------------------------------

    def is_empty(self) -> bool:
        return self._tl is None

    def hd(self) -> T:
        if self._tl is None:
            raise IndexError("hd() of empty ConsList")
        return self._hd

    def tl(self) -> ConsList[T]:
        if self._tl is None:
            return self
        return self._tl

    def __len__(self) -> int:
        return self._size

    def __bool__(self) -> bool:
        return self._tl is not None

    def __iter__(self) -> Iterator[T]:
        node = self
        while node._tl is not None:
            yield node._hd
            node = node._tl

    def __getitem__(self, index: int) -> T:
        if index < 0:
            index += self._size
        if index < 0 or index >= self._size:
            raise IndexError("ConsList index out of range")
        for i, item in enumerate(self):
            if i == index:
                return item
        raise IndexError("ConsList index out of range")

    def __contains__(self, item: object) -> bool:
        return any(x == item for x in self)

    def count(self, item: object) -> int:
        return sum(1 for x in self if x == item)

    def index(self, item: object) -> int:
        for i, x in enumerate(self):
            if x == item:
                return i
        raise ValueError(f"{item!r} is not in ConsList")

    # -- derived lists ------------------------------------------------------

    def _rebuild(self, prefix: list, tail: ConsList[T]) -> ConsList[T]:
        result = tail
        for item in reversed(prefix):
            result = result.cons(item)
        return result

    def remove_element(self, item: T) -> ConsList[T]:
        """Remove every element equal to ``item``."""
        if item not in self:
            return self
        return ConsList.from_iterable(x for x in self if x != item)

    def remove_element_once(self, item: T) -> ConsList[T]:
        """Remove the first element equal to ``item``; the rest of the
        list after that element is shared, not copied."""
        prefix = []
        node = self
        while node._tl is not None:
            if node._hd == item:
                return self._rebuild(prefix, node._tl)
            prefix.append(node._hd)
            node = node._tl
        return self

    def map(self, fn: Callable[[T], O]) -> ConsList[O]:
        return ConsList.from_iterable(fn(x) for x in self)

    def filter(self, pred: Callable[[T], bool]) -> ConsList[T]:
        kept = [x for x in self if pred(x)]
        if len(kept) == self._size:
            return self
        return ConsList.from_iterable(kept)

    def foldl(self, fn: Callable[[T, O], O], init: O) -> O:
        acc = init
        for x in self:
            acc = fn(x, acc)
        return acc

    def reverse(self) -> ConsList[T]:
        return self.foldl(lambda x, acc: acc.cons(x), ConsList.empty())

    # -- structural equality ------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, ConsList):
            return NotImplemented
        if self._size != other._size:
            return False
        a, b = self, other
        while a._tl is not None:
            if a is b:
                return True
            if a._hd != b._hd:
                return False
            a, b = a._tl, b._tl
        return True

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(tuple(self))
        return self._hash

    def __repr__(self) -> str:
        if self._tl is None:
            return "Nil"
        return "[" + ", ".join(repr(x) for x in self) + "]"


_EMPTY: ConsList[Any] = ConsList()
