from __future__ import annotations

from typing import Union

from lxml import etree as LXML_ET

from .errors import InvalidPackageError
from .markup import (
    attribute_name,
    child_by_local_name,
    direct_text,
    element_name,
    iter_elements,
    tag_local_name,
    xml_root_from_bytes,
)
from .models import ContainerDescriptor, PackageDocument, RawArchive, normalize_member_path

CONTAINER_PATH = "META-INF/container.xml"
# Text content of an element that also carries attributes or children.
TEXT_KEY = "_text"

Node = Union[str, dict, list]


def _parse_xml(raw: bytes, what: str) -> LXML_ET._Element:
    try:
        return xml_root_from_bytes(raw)
    except (LXML_ET.XMLSyntaxError, ValueError) as exc:
        raise InvalidPackageError(f"{what} is not well-formed XML: {exc}") from exc


def locate_container(archive: RawArchive) -> ContainerDescriptor:
    raw = archive.get(CONTAINER_PATH)
    if raw is None:
        raise InvalidPackageError("container descriptor missing")
    root = _parse_xml(raw, "container descriptor")
    for node in root.iter():
        if tag_local_name(node.tag) != "rootfile":
            continue
        full_path = (node.attrib.get("full-path") or "").strip()
        if full_path:
            return ContainerDescriptor(package_path=normalize_member_path(full_path) or full_path)
    raise InvalidPackageError("no rootfile declared")


def _add_child(node: dict, name: str, value: Node) -> None:
    if name not in node:
        node[name] = value
        return
    existing = node[name]
    if isinstance(existing, list):
        existing.append(value)
    else:
        node[name] = [existing, value]


def element_to_node(element: LXML_ET._Element) -> Node:
    """Convert an element into plain str/dict/list values keyed by literal names.

    A leaf without attributes becomes its trimmed text. Anything else becomes a
    dict of attributes and children, with text under ``TEXT_KEY``. Repeated
    child names collapse into a list in document order.
    """
    children = list(iter_elements(element))
    if not children and not element.attrib:
        return (element.text or "").strip()

    node: dict = {}
    for key, value in element.attrib.items():
        node[attribute_name(element, key)] = str(value)
    for child in children:
        _add_child(node, element_name(child), element_to_node(child))
    text = direct_text(element)
    if text:
        node[TEXT_KEY] = text
    return node


def _section(root: LXML_ET._Element, local_name: str) -> dict:
    element = child_by_local_name(root, local_name)
    if element is None:
        return {}
    node = element_to_node(element)
    return node if isinstance(node, dict) else {}


def parse_package(archive: RawArchive, package_path: str) -> PackageDocument:
    raw = archive.find(package_path)
    if raw is None:
        raise InvalidPackageError("package document missing")
    root = _parse_xml(raw, "package document")
    if tag_local_name(root.tag) != "package":
        raise InvalidPackageError(f"package document root is <{element_name(root)}>, expected <package>")
    return PackageDocument(
        format_version=str(root.attrib.get("version") or "").strip(),
        metadata=_section(root, "metadata"),
        manifest=_section(root, "manifest"),
        spine=_section(root, "spine"),
    )


def node_values(node: Node, local_name: str) -> list[Node]:
    """All values stored under ``local_name`` or any ``prefix:local_name`` key."""
    if not isinstance(node, dict):
        return []
    values: list[Node] = []
    for key, value in node.items():
        if key != local_name and key.split(":", 1)[-1] != local_name:
            continue
        if key == TEXT_KEY:
            continue
        values.extend(value if isinstance(value, list) else [value])
    return values
