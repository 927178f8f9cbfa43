from __future__ import annotations

from typing import Optional

from .diagnostics import Diagnostics
from .errors import InvalidPackageError
from .metadata import normalize_metadata
from .models import ContainerDescriptor, ManifestItem, PackageDocument, ParsedBook, SpineItem
from .package import Node, node_values

NCX_MEDIA_TYPE = "application/x-dtbncx+xml"


def _attr(node: Node, name: str) -> str:
    if not isinstance(node, dict):
        return ""
    value = node.get(name)
    return value.strip() if isinstance(value, str) else ""


def resolve_manifest(raw_manifest: Optional[dict]) -> list[ManifestItem]:
    items: list[ManifestItem] = []
    for node in node_values(raw_manifest or {}, "item"):
        properties = tuple(part for part in _attr(node, "properties").split() if part)
        items.append(
            ManifestItem(
                id=_attr(node, "id"),
                href=_attr(node, "href"),
                media_type=_attr(node, "media-type").lower(),
                properties=properties,
                is_navigation_document="nav" in properties,
                is_declared_cover_image="cover-image" in properties,
            )
        )
    return items


def manifest_index(manifest: list[ManifestItem], diagnostics: Optional[Diagnostics] = None) -> dict[str, ManifestItem]:
    """Map ids to items; when ids repeat the first declaration wins."""
    by_id: dict[str, ManifestItem] = {}
    for item in manifest:
        if not item.id:
            continue
        if item.id in by_id:
            if diagnostics is not None:
                diagnostics.warn(f"duplicate manifest id {item.id!r} ({item.href}); keeping {by_id[item.id].href}")
            continue
        by_id[item.id] = item
    return by_id


def resolve_spine(raw_spine: Optional[dict], by_id: dict[str, ManifestItem]) -> list[SpineItem]:
    spine: list[SpineItem] = []
    for node in node_values(raw_spine or {}, "itemref"):
        idref = _attr(node, "idref")
        if not idref or idref not in by_id:
            raise InvalidPackageError(f"spine references unknown manifest id: {idref!r}")
        spine.append(SpineItem(manifest_ref=idref, is_linear=_attr(node, "linear") != "no"))
    return spine


def _first(manifest: list[ManifestItem], predicate) -> Optional[ManifestItem]:
    return next((item for item in manifest if predicate(item)), None)


def resolve_package(
    document: PackageDocument,
    descriptor: ContainerDescriptor,
    diagnostics: Optional[Diagnostics] = None,
) -> ParsedBook:
    metadata = normalize_metadata(document.metadata, document.format_version)
    manifest = resolve_manifest(document.manifest)
    by_id = manifest_index(manifest, diagnostics)
    spine = resolve_spine(document.spine, by_id)
    if diagnostics is not None:
        diagnostics.info(
            f"package {descriptor.package_path} (version {metadata.format_version or 'unknown'}): "
            f"{len(manifest)} manifest items, {len(spine)} spine entries"
        )
    return ParsedBook(
        metadata=metadata,
        manifest=manifest,
        spine=spine,
        package_path=descriptor.package_path,
        package_base_path=descriptor.package_base_path,
        cover_manifest_item=_first(manifest, lambda item: item.is_declared_cover_image),
        navigation_item=_first(manifest, lambda item: item.is_navigation_document),
        legacy_toc_item=_first(manifest, lambda item: item.media_type == NCX_MEDIA_TYPE),
    )
