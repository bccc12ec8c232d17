"""
Implements a binary max-heap whose elements can change priority after
insertion.

Every element reports a stable integer identity (its uid). Alongside the heap
storage the heap keeps a position index mapping each uid to the element's
current slot, so an element can be located in O(1) and re-floated in
O(log n) after its priority changes.

The heap is not thread-safe. Callers sharing one across threads must guard
every call with their own lock.
"""
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterable,
    Iterator,
    List,
    Optional,
    Protocol,
    TypeVar,
    runtime_checkable,
)


logger = logging.getLogger(__name__)


@runtime_checkable
class Identifiable(Protocol):
    """
    Element capability required by IndexedMaxHeap when no uid_func is given.
    """

    def uid(self) -> int:
        ...

    def __lt__(self, other: Any) -> bool:
        ...


T = TypeVar("T")
KeyFunc = Callable[[T], Any]
UidFunc = Callable[[T], int]


class HeapError(Exception):
    """
    Base class for errors raised by IndexedMaxHeap.
    """

    message = "uid {} rejected"

    def __init__(self, uid: int) -> None:
        super().__init__(uid)
        self.uid = uid

    def __str__(self) -> str:
        return self.message.format(self.uid)


class NotFoundError(HeapError, KeyError):
    message = "uid {} not in heap"


class DuplicateIdentityError(HeapError, KeyError):
    message = "uid {} already in heap"


def _default_uid(element: Identifiable) -> int:
    return element.uid()


class IndexedMaxHeap(Generic[T]):
    """
    Max-heap over elements with stable identities and mutable priorities.
    """

    def __init__(
        self,
        items: Optional[Iterable[T]] = None,
        key_func: Optional[KeyFunc] = None,
        uid_func: Optional[UidFunc] = None,
    ) -> None:
        """
        Constructs a heap, heapifying `items` in linear time if given.

        `key_func` maps an element to the value it is ordered by and
        `uid_func` maps it to its identity. They default to comparing the
        elements themselves and calling `element.uid()`.
        """
        self._key_func = key_func
        self._uid_func: UidFunc = uid_func or _default_uid
        self._heap: List[T] = list(items) if items is not None else []
        self._index: Dict[int, int] = {}

        if self._heap:
            self.build_heap()

    @classmethod
    def from_list(
        cls,
        items: Iterable[T],
        key_func: Optional[KeyFunc] = None,
        uid_func: Optional[UidFunc] = None,
    ) -> "IndexedMaxHeap[T]":
        return cls(items, key_func=key_func, uid_func=uid_func)

    def insert(self, element: T) -> None:
        """
        Pushes a new element to the heap.

        Raises DuplicateIdentityError, leaving the heap untouched, if an
        element with the same uid is already present.
        """
        uid = self._uid_func(element)
        if uid in self._index:
            logger.debug("rejected insert of duplicate uid %r", uid)
            raise DuplicateIdentityError(uid)

        index = len(self._heap)
        self._heap.append(element)
        self._index[uid] = index
        self._sift_up(index)

    def peek(self) -> Optional[T]:
        """
        Returns the maximum element without removing it, or None if the heap
        is empty.
        """
        if not self._heap:
            return None
        return self._heap[0]

    def extract_max(self) -> Optional[T]:
        """
        Removes the maximum element from the heap and returns it, or returns
        None if the heap is empty.
        """
        if not self._heap:
            return None

        self._swap(0, len(self._heap) - 1)
        result = self._heap.pop()
        del self._index[self._uid_func(result)]

        if self._heap:
            self._sift_down(0)

        return result

    def update_priority(self, uid: int, mutator: Callable[[T], Optional[T]]) -> None:
        """
        Changes the priority of the element identified by `uid` and moves it
        up or down the heap as needed.

        `mutator` is called with the element. It either mutates the element
        in place and returns None, or returns a replacement element which
        must report the same uid. A replacement with another uid raises
        ValueError after the element has been re-sifted in its slot.
        """
        index = self._index.get(uid)
        if index is None:
            logger.debug("rejected update of unknown uid %r", uid)
            raise NotFoundError(uid)

        replacement = mutator(self._heap[index])
        if replacement is not None:
            new_uid = self._uid_func(replacement)
            if new_uid != uid:
                # The mutator may already have changed the element in place.
                self._restore(index)
                raise ValueError(
                    "replacement for uid {} reports uid {}".format(uid, new_uid)
                )
            self._heap[index] = replacement

        self._restore(index)

    def remove(self, uid: int) -> T:
        """
        Removes the element identified by `uid` from the heap and returns it.
        """
        index = self._index.get(uid)
        if index is None:
            logger.debug("rejected removal of unknown uid %r", uid)
            raise NotFoundError(uid)

        last = len(self._heap) - 1
        if index != last:
            self._swap(index, last)

        result = self._heap.pop()
        del self._index[uid]

        if index != last:
            self._restore(index)

        return result

    def restore_heap_property(self, index: int) -> Optional[int]:
        """
        Moves the element at buffer offset `index` up or down until the heap
        property holds again. Returns the element's new offset, or None if it
        did not move or `index` is out of range.
        """
        if not 0 <= index < len(self._heap):
            return None

        new_index = self._restore(index)
        return new_index if new_index != index else None

    def position(self, uid: int) -> Optional[int]:
        """
        Returns the buffer offset of the element identified by `uid`.
        """
        return self._index.get(uid)

    def index_of(self, element: T) -> Optional[int]:
        return self._index.get(self._uid_func(element))

    def get(self, uid: int) -> Optional[T]:
        index = self._index.get(uid)
        if index is None:
            return None
        return self._heap[index]

    def build_index(self) -> None:
        """
        Rebuilds the position index from the heap storage.
        """
        index: Dict[int, int] = {}
        for ind, element in enumerate(self._heap):
            uid = self._uid_func(element)
            if uid in index:
                logger.debug("rejected build with duplicate uid %r", uid)
                raise DuplicateIdentityError(uid)
            index[uid] = ind
        self._index = index

    def build_heap(self) -> None:
        """
        Rebuilds the position index and re-heapifies the whole storage in
        linear time.
        """
        self.build_index()
        for index in range(len(self._heap) // 2 - 1, -1, -1):
            self._sift_down(index)
        logger.debug("built heap of %d elements", len(self._heap))

    def clear(self) -> None:
        self._heap.clear()
        self._index.clear()

    def is_empty(self) -> bool:
        return not self._heap

    def _less(self, i: int, j: int) -> bool:
        """
        Returns true if the element at `i` has strictly lower priority than the
        element at `j`.
        """
        if self._key_func is None:
            return self._heap[i] < self._heap[j]  # type: ignore
        return self._key_func(self._heap[i]) < self._key_func(self._heap[j])

    def _swap(self, i: int, j: int) -> None:
        heap = self._heap
        heap[i], heap[j] = heap[j], heap[i]
        self._index[self._uid_func(heap[i])] = i
        self._index[self._uid_func(heap[j])] = j

    def _restore(self, index: int) -> int:
        new_index = self._sift_up(index)
        if new_index == index:
            new_index = self._sift_down(index)
        return new_index

    def _sift_up(self, index: int) -> int:
        """
        Bubbles the element at `index` towards the root while its parent has
        strictly lower priority. Returns the element's final offset.
        """
        while index > 0:
            parent_index = (index - 1) // 2
            if not self._less(parent_index, index):
                break

            self._swap(index, parent_index)
            index = parent_index

        return index

    def _sift_down(self, index: int) -> int:
        """
        Bubbles the element at `index` towards the leaves while a child has
        strictly higher priority. Returns the element's final offset.
        """
        size = len(self._heap)
        while True:
            max_index = index
            for child_index in (2 * index + 1, 2 * index + 2):
                if child_index < size and self._less(max_index, child_index):
                    max_index = child_index

            if max_index == index:
                return index

            self._swap(index, max_index)
            index = max_index

    def _index_consistent(self) -> bool:
        """
        Returns true if the position index maps exactly the stored uids to
        their slots.
        """
        if len(self._index) != len(self._heap):
            return False
        return all(
            self._index.get(self._uid_func(element)) == ind
            for ind, element in enumerate(self._heap)
        )

    def _heap_ordered(self) -> bool:
        return all(
            not self._less((ind - 1) // 2, ind) for ind in range(1, len(self._heap))
        )

    def __contains__(self, uid: object) -> bool:
        return uid in self._index

    def __iter__(self) -> Iterator[T]:
        """
        Iterates the elements in storage order, which is not priority order.
        """
        return iter(list(self._heap))

    def __len__(self) -> int:
        """
        Returns the number of elements in the heap.
        """
        return len(self._heap)

    def __bool__(self) -> bool:
        """
        Returns true if the heap is not empty.
        """
        return bool(self._heap)

    def __repr__(self) -> str:
        return "{}({!r})".format(type(self).__name__, self._heap)
