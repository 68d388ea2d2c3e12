"""Read-only view over a concrete syntax tree.

The matcher only needs to know a node's type, whether it is named, its span,
its ordered children and which field each child sits in. ``tree_sitter.Node``
already provides all of that, so trees produced by any tree-sitter grammar can
be matched directly. ``TreeNode`` is a plain in-memory implementation for
trees that come from somewhere else.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Optional, Protocol, Union


class SyntaxNode(Protocol):
    """Capabilities the matcher relies on."""

    @property
    def type(self) -> str: ...

    @property
    def is_named(self) -> bool: ...

    @property
    def start_byte(self) -> int: ...

    @property
    def end_byte(self) -> int: ...

    @property
    def children(self) -> Sequence["SyntaxNode"]: ...

    def field_name_for_child(self, child_index: int) -> Optional[str]: ...


@dataclass(eq=False)
class TreeNode:
    """A syntax tree node held entirely in memory."""

    type: str
    start_byte: int
    end_byte: int
    children: list["TreeNode"] = field(default_factory=list)
    is_named: bool = True
    field_name: Optional[str] = None  # Field this node occupies in its parent

    def field_name_for_child(self, child_index: int) -> Optional[str]:
        if 0 <= child_index < len(self.children):
            return self.children[child_index].field_name
        return None

    def __repr__(self) -> str:
        return f"TreeNode({self.type!r}, {self.start_byte}, {self.end_byte})"


WalkEntry = tuple[SyntaxNode, Optional[SyntaxNode], Sequence[SyntaxNode], int]


def walk(root: SyntaxNode) -> Iterator[WalkEntry]:
    """Pre-order traversal.

    Yields (node, parent, siblings, index) where ``siblings[index]`` is the
    node. The root has no parent and is the only member of its sibling list.
    """
    stack: list[tuple[Optional[SyntaxNode], Sequence[SyntaxNode], int]] = [(None, [root], 0)]
    while stack:
        parent, siblings, index = stack.pop()
        node = siblings[index]
        yield node, parent, siblings, index
        # Push the next sibling first so that children are visited before it
        if index + 1 < len(siblings):
            stack.append((parent, siblings, index + 1))
        children = node.children
        if children:
            stack.append((node, list(children), 0))


def node_count(root: SyntaxNode) -> int:
    """Count all nodes in a tree."""
    return sum(1 for _ in walk(root))


# Builders for in-memory trees. Leaves carry their text and are located in the
# source sequentially, so spans never have to be written by hand.


@dataclass
class _LeafSpec:
    type: str
    text: str
    field: Optional[str]
    named: bool


@dataclass
class _BranchSpec:
    type: str
    children: tuple["NodeSpec", ...]
    field: Optional[str]


NodeSpec = Union[_LeafSpec, _BranchSpec]


def leaf(node_type: str, text: str, field: Optional[str] = None) -> _LeafSpec:
    """A named leaf node covering the next occurrence of ``text``."""
    return _LeafSpec(node_type, text, field, True)


def token(text: str, field: Optional[str] = None) -> _LeafSpec:
    """An anonymous leaf node whose type is its own text."""
    return _LeafSpec(text, text, field, False)


def branch(node_type: str, *children: NodeSpec, field: Optional[str] = None) -> _BranchSpec:
    """A named node spanning from its first to its last child."""
    return _BranchSpec(node_type, children, field)


class _Builder:
    def __init__(self, source: str):
        self.source = source
        self.cursor = 0

    def build(self, spec: NodeSpec) -> TreeNode:
        if isinstance(spec, _LeafSpec):
            start = self.source.find(spec.text, self.cursor)
            if start < 0:
                raise ValueError(f"Text {spec.text!r} not found after offset {self.cursor}")
            self.cursor = start + len(spec.text)
            return TreeNode(
                type=spec.type,
                start_byte=start,
                end_byte=self.cursor,
                is_named=spec.named,
                field_name=spec.field,
            )

        start = self.cursor
        children = [self.build(child) for child in spec.children]
        if children:
            start = children[0].start_byte
        return TreeNode(
            type=spec.type,
            start_byte=start,
            end_byte=children[-1].end_byte if children else start,
            children=children,
            field_name=spec.field,
        )


def build_tree(source: str, spec: NodeSpec) -> TreeNode:
    """Build a ``TreeNode`` tree over ``source``.

    The root always spans the whole source; every other branch spans its
    children.

    Example:
        build_tree("* Title", branch("headline", leaf("stars", "*", field="stars"),
                                     leaf("item", "Title", field="item")))
    """
    root = _Builder(source).build(spec)
    root.start_byte = 0
    root.end_byte = len(source)
    return root
