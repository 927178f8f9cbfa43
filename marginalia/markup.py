from __future__ import annotations

from typing import Iterator, Optional

from lxml import etree as LXML_ET

XML_NS = "http://www.w3.org/XML/1998/namespace"


def tag_local_name(tag: object) -> str:
    if not tag or not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _split_qname(name: str) -> tuple[Optional[str], str]:
    if name.startswith("{") and "}" in name:
        namespace, local = name[1:].split("}", 1)
        return namespace, local
    return None, name


def element_name(node: LXML_ET._Element) -> str:
    """Return the tag as written in the source, e.g. ``dc:title``."""
    local = tag_local_name(node.tag)
    prefix = node.prefix
    return f"{prefix}:{local}" if prefix else local


def attribute_name(node: LXML_ET._Element, key: str) -> str:
    namespace, local = _split_qname(key)
    if namespace is None:
        return local
    if namespace == XML_NS:
        return f"xml:{local}"
    for prefix, uri in (node.nsmap or {}).items():
        if uri == namespace and prefix:
            return f"{prefix}:{local}"
    return local


def xml_root_from_bytes(raw: bytes, encoding: Optional[str] = None) -> LXML_ET._Element:
    parser = LXML_ET.XMLParser(
        encoding=encoding,
        resolve_entities=False,
        no_network=True,
        recover=True,
        remove_comments=True,
        remove_pis=True,
        huge_tree=True,
    )
    root = LXML_ET.fromstring(raw, parser=parser)
    if root is None:
        raise ValueError("document has no root element")
    return root


def iter_elements(node: LXML_ET._Element) -> Iterator[LXML_ET._Element]:
    for child in node:
        if isinstance(child.tag, str):
            yield child


def child_by_local_name(node: LXML_ET._Element, local_name: str) -> Optional[LXML_ET._Element]:
    for child in iter_elements(node):
        if tag_local_name(child.tag) == local_name:
            return child
    return None


def direct_text(node: LXML_ET._Element) -> str:
    parts = [node.text or ""]
    for child in node:
        parts.append(child.tail or "")
    return "".join(parts).strip()
