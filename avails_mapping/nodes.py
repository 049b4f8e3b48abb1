"""
Output tree — generic namespaced element nodes and their XML rendering.

The engine only builds :class:`OutputNode` trees.  ``to_element`` and
``write_xml`` turn a finished tree into an ElementTree document, using
the namespace prefixes (``avails``, ``md``, ``mdmec``) carried on each
node.
"""

import xml.etree.ElementTree as ET
from typing import Iterator, Optional


class OutputNode:
    """A tag with an optional namespace prefix, text, attributes and children."""

    def __init__(self, tag: str, ns: Optional[str] = None,
                 text: Optional[str] = None):
        self.tag = tag
        self.ns = ns
        self.text = text
        self.attributes: dict[str, str] = {}
        self.children: list["OutputNode"] = []
        self.parent: Optional["OutputNode"] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @property
    def qname(self) -> str:
        return f"{self.ns}:{self.tag}" if self.ns else self.tag

    def append(self, child: "OutputNode") -> "OutputNode":
        self._adopt(child)
        self.children.append(child)
        return child

    def extend(self, children) -> None:
        for c in children:
            self.append(c)

    def insert(self, index: int, child: "OutputNode") -> "OutputNode":
        self._adopt(child)
        self.children.insert(index, child)
        return child

    def insert_before(self, child: "OutputNode",
                      reference: "OutputNode") -> "OutputNode":
        return self.insert(self.children.index(reference), child)

    def insert_after(self, child: "OutputNode",
                     reference: "OutputNode") -> "OutputNode":
        return self.insert(self.children.index(reference) + 1, child)

    def remove(self, child: "OutputNode") -> None:
        self.children.remove(child)
        child.parent = None

    def _adopt(self, child: "OutputNode") -> None:
        if child.parent is not None and child.parent is not self:
            child.parent.remove(child)
        elif child.parent is self:
            self.children.remove(child)
        child.parent = self

    def set(self, name: str, value: str) -> None:
        self.attributes[name] = value

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(name, default)

    def pop_attribute(self, name: str) -> Optional[str]:
        return self.attributes.pop(name, None)

    # ------------------------------------------------------------------
    # Navigation (tags match on local name, ignoring the prefix)
    # ------------------------------------------------------------------

    def child(self, tag: str) -> Optional["OutputNode"]:
        for c in self.children:
            if c.tag == tag:
                return c
        return None

    def children_named(self, tag: str) -> list["OutputNode"]:
        return [c for c in self.children if c.tag == tag]

    def find(self, path: str) -> Optional["OutputNode"]:
        """Return the first descendant matching a ``A/B/C`` tag path."""
        found = self.find_all(path)
        return found[0] if found else None

    def find_all(self, path: str) -> list["OutputNode"]:
        current = [self]
        for step in path.split("/"):
            current = [c for n in current for c in n.children if c.tag == step]
        return current

    def iter(self, tag: Optional[str] = None) -> Iterator["OutputNode"]:
        """Depth-first walk over this node and all descendants."""
        if tag is None or self.tag == tag:
            yield self
        for c in self.children:
            yield from c.iter(tag)

    def path(self) -> str:
        parts = []
        node = self
        while node is not None:
            parts.append(node.tag)
            node = node.parent
        return "/".join(reversed(parts))

    def is_empty(self) -> bool:
        return not self.children and not self.attributes and not self.text

    def structure(self) -> tuple:
        """Hashable snapshot of the subtree, used to compare trees."""
        return (
            self.qname,
            self.text,
            tuple(sorted(self.attributes.items())),
            tuple(c.structure() for c in self.children),
        )

    def __repr__(self):
        return f"<OutputNode {self.qname} children={len(self.children)}>"


def new_node(qname: str, text: Optional[str] = None) -> OutputNode:
    """Create a node from a ``prefix:Tag`` (or bare ``Tag``) name."""
    if ":" in qname:
        ns, tag = qname.split(":", 1)
        return OutputNode(tag, ns, text)
    return OutputNode(qname, None, text)


# ---------------------------------------------------------------------------
# XML conversion
# ---------------------------------------------------------------------------

def to_element(node: OutputNode,
               namespaces: Optional[dict[str, str]] = None) -> ET.Element:
    """Convert *node* (recursively) to an ElementTree element.

    Tags keep their ``prefix:local`` form; *namespaces* maps each prefix
    to its URI and is declared on the root element.
    """
    el = _convert(node)
    for prefix, uri in (namespaces or {}).items():
        el.set(f"xmlns:{prefix}", uri)
    return el


def _convert(node: OutputNode) -> ET.Element:
    el = ET.Element(node.qname, dict(node.attributes))
    if node.text is not None:
        el.text = node.text
    for c in node.children:
        el.append(_convert(c))
    return el


def to_xml_string(node: OutputNode,
                  namespaces: Optional[dict[str, str]] = None) -> str:
    el = to_element(node, namespaces)
    ET.indent(el)
    return ET.tostring(el, encoding="unicode")


def write_xml(node: OutputNode, output_path: str,
              namespaces: Optional[dict[str, str]] = None) -> str:
    """Write *node* as an indented UTF-8 XML document; returns the path."""
    el = to_element(node, namespaces)
    ET.indent(el)
    ET.ElementTree(el).write(output_path, encoding="utf-8",
                             xml_declaration=True)
    return output_path
