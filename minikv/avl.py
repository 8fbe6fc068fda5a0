"""AVL tree with intrusive nodes that also track subtree sizes.

Nodes carry only the tree links; callers subclass :class:`AVLNode` to attach
a payload and decide the ordering themselves when inserting.  After linking a
new leaf, :func:`rebalance` restores balance and returns the new root.
"""

from __future__ import annotations


class AVLNode:
    """A tree node. A fresh node is a balanced tree of one."""

    __slots__ = ("parent", "left", "right", "height", "count")

    def __init__(self) -> None:
        _reset(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(height={self.height}, count={self.count})"


def _reset(node: AVLNode) -> None:
    node.parent = None
    node.left = None
    node.right = None
    node.height = 1
    node.count = 1


def height(node: AVLNode | None) -> int:
    """Height of the subtree rooted at ``node`` (0 for an empty tree)."""
    return node.height if node is not None else 0


def count(node: AVLNode | None) -> int:
    """Number of nodes in the subtree rooted at ``node``."""
    return node.count if node is not None else 0


def _update(node: AVLNode) -> None:
    node.height = 1 + max(height(node.left), height(node.right))
    node.count = 1 + count(node.left) + count(node.right)


def _replace_child(parent: AVLNode, old: AVLNode, new: AVLNode | None) -> None:
    if parent.left is old:
        parent.left = new
    else:
        parent.right = new


def _rot_left(node: AVLNode) -> AVLNode:
    parent = node.parent
    new_node = node.right
    inner = new_node.left
    node.right = inner
    if inner is not None:
        inner.parent = node
    new_node.parent = parent
    new_node.left = node
    node.parent = new_node
    _update(node)
    _update(new_node)
    return new_node


def _rot_right(node: AVLNode) -> AVLNode:
    parent = node.parent
    new_node = node.left
    inner = new_node.right
    node.left = inner
    if inner is not None:
        inner.parent = node
    new_node.parent = parent
    new_node.right = node
    node.parent = new_node
    _update(node)
    _update(new_node)
    return new_node


def _fix_left(node: AVLNode) -> AVLNode:
    if height(node.left.left) < height(node.left.right):
        node.left = _rot_left(node.left)
    return _rot_right(node)


def _fix_right(node: AVLNode) -> AVLNode:
    if height(node.right.right) < height(node.right.left):
        node.right = _rot_right(node.right)
    return _rot_left(node)


def rebalance(node: AVLNode) -> AVLNode:
    """Fix heights, counts and balance from ``node`` up; return the root."""
    while True:
        parent = node.parent
        is_left = parent is not None and parent.left is node
        _update(node)
        lh = height(node.left)
        rh = height(node.right)
        fixed = node
        if lh == rh + 2:
            fixed = _fix_left(node)
        elif lh + 2 == rh:
            fixed = _fix_right(node)
        if parent is None:
            return fixed
        if is_left:
            parent.left = fixed
        else:
            parent.right = fixed
        node = parent


def _detach_easy(node: AVLNode) -> AVLNode | None:
    child = node.left if node.left is not None else node.right
    parent = node.parent
    if child is not None:
        child.parent = parent
    if parent is None:
        return child
    _replace_child(parent, node, child)
    return rebalance(parent)


def detach(node: AVLNode) -> AVLNode | None:
    """Remove ``node`` from its tree and return the new root.

    The removed node is left as a fresh single-node tree.
    """
    if node.left is None or node.right is None:
        root = _detach_easy(node)
    else:
        victim = node.right
        while victim.left is not None:
            victim = victim.left
        root = _detach_easy(victim)
        victim.parent = node.parent
        victim.left = node.left
        victim.right = node.right
        victim.height = node.height
        victim.count = node.count
        if victim.left is not None:
            victim.left.parent = victim
        if victim.right is not None:
            victim.right.parent = victim
        if node.parent is None:
            root = victim
        else:
            _replace_child(node.parent, node, victim)
    _reset(node)
    return root


def offset(node: AVLNode, offset: int) -> AVLNode | None:
    """Return the node ``offset`` positions away in order, or None."""
    pos = 0
    while offset != pos:
        if pos < offset and pos + count(node.right) >= offset:
            node = node.right
            pos += count(node.left) + 1
        elif pos > offset and pos - count(node.left) <= offset:
            node = node.left
            pos -= count(node.right) + 1
        else:
            parent = node.parent
            if parent is None:
                return None
            if parent.right is node:
                pos -= count(node.left) + 1
            else:
                pos += count(node.right) + 1
            node = parent
    return node