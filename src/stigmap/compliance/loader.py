"""CCI catalog loading.

Parses the DISA CCI list (U_CCI_List.xml) into an immutable Catalog.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union
from xml.etree.ElementTree import Element

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DET

from ..core.errors import ParseError
from ..models.catalog import Catalog, CciEntry
from ..utils.text import local_name

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_TITLE = "NIST SP 800-53 Revision 4"


def _children(element: Element, name: str) -> list[Element]:
    return [child for child in element if local_name(child.tag) == name]


def _iter_named(element: Element, name: str):
    for node in element.iter():
        if local_name(node.tag) == name:
            yield node


def _select_controls(item: Element, reference_title: str) -> list[str]:
    """Collect NIST control indexes from an item's references.

    A reference counts only if its title contains reference_title and it
    has a non-empty index.
    """
    controls: set[str] = set()
    for references in _children(item, "references"):
        for ref in _children(references, "reference"):
            title = ref.get("title") or ""
            index = (ref.get("index") or "").strip()
            if reference_title in title and index:
                controls.add(index)
    return sorted(controls)


def load_catalog(
    document: Union[str, bytes],
    reference_title: str = DEFAULT_REFERENCE_TITLE,
    source: str = "",
) -> Catalog:
    """Parse a CCI list document into a Catalog.

    Items without any accepted NIST reference are dropped. Raises
    ParseError on malformed XML or a document that is not a CCI list.
    """
    try:
        root = DET.fromstring(document)
    except (DET.ParseError, DefusedXmlException) as e:
        raise ParseError(source, f"invalid XML ({e})") from e

    if local_name(root.tag) != "cci_list":
        raise ParseError(source, f"expected a cci_list document, found <{local_name(root.tag)}>")

    entries: dict[str, CciEntry] = {}
    dropped = 0

    for item in _iter_named(root, "cci_item"):
        cci_id = (item.get("id") or "").strip()
        if not cci_id:
            raise ParseError(source, "cci_item without an id attribute")

        controls = _select_controls(item, reference_title)
        if not controls:
            dropped += 1
            continue

        definition = None
        for node in _children(item, "definition"):
            if node.text and node.text.strip():
                definition = node.text.strip()

        try:
            entries[cci_id] = CciEntry(
                cci_id=cci_id,
                nist_controls=controls,
                definition=definition,
            )
        except ValueError as e:
            raise ParseError(source, f"invalid CCI identifier {cci_id!r}") from e

    logger.debug(
        "Loaded %d CCI mappings from %s (%d items without %r references)",
        len(entries), source or "<document>", dropped, reference_title,
    )
    return Catalog(entries=entries, source=source, reference_title=reference_title)


def load_catalog_file(path: Path, reference_title: str = DEFAULT_REFERENCE_TITLE) -> Catalog:
    """Read and parse a CCI list file."""
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ParseError(str(path), f"cannot read file ({e.strerror or e})") from e
    return load_catalog(content, reference_title=reference_title, source=str(path))
