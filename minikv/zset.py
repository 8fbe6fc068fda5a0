"""Sorted set: members ordered by (score, name) with lookup by name."""

from __future__ import annotations

from minikv import avl
from minikv.avl import AVLNode
from minikv.hashtable import HMap


class ZNode(AVLNode):
    """A member of a sorted set."""

    __slots__ = ("name", "score")

    def __init__(self, name: bytes, score: float) -> None:
        super().__init__()
        self.name = name
        self.score = score

    def __repr__(self) -> str:
        return f"ZNode(name={self.name!r}, score={self.score!r})"

    def _less(self, score: float, name: bytes) -> bool:
        if self.score != score:
            return self.score < score
        return self.name < name

    def offset(self, offset: int) -> ZNode | None:
        """Return the member ``offset`` places away in order, or None."""
        return avl.offset(self, offset)


class ZSet:
    """Members kept in an AVL tree by (score, name) and a hash map by name."""

    def __init__(self) -> None:
        self.root: ZNode | None = None
        self._index = HMap()

    def _tree_insert(self, node: ZNode) -> None:
        parent = None
        cur = self.root
        go_left = False
        while cur is not None:
            parent = cur
            go_left = node._less(cur.score, cur.name)
            cur = cur.left if go_left else cur.right
        node.parent = parent
        if parent is not None:
            if go_left:
                parent.left = node
            else:
                parent.right = node
        self.root = avl.rebalance(node)

    def _update(self, node: ZNode, score: float) -> None:
        if node.score == score:
            return
        self.root = avl.detach(node)
        node.score = score
        self._tree_insert(node)

    def insert(self, name: bytes, score: float) -> bool:
        """Add ``name`` or update its score; True if it was added."""
        node = self.lookup(name)
        if node is not None:
            self._update(node, score)
            return False
        node = ZNode(name, score)
        self._index.insert(name, node)
        self._tree_insert(node)
        return True

    def lookup(self, name: bytes) -> ZNode | None:
        """Return the member called ``name``, or None."""
        if self.root is None:
            return None
        return self._index.lookup(name)

    def delete(self, node: ZNode) -> None:
        """Remove ``node`` from this set."""
        if self._index.lookup(node.name) is not node:
            raise ValueError("node does not belong to this set")
        self._index.pop(node.name)
        self.root = avl.detach(node)

    def seek_ge(self, score: float, name: bytes) -> ZNode | None:
        """Return the first member not less than (score, name), or None."""
        found = None
        node = self.root
        while node is not None:
            if node._less(score, name):
                node = node.right
            else:
                found = node
                node = node.left
        return found

    def clear(self) -> None:
        self._index.clear()
        self.root = None

    def __len__(self) -> int:
        return len(self._index)