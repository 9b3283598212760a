"""XML-to-tree and mapping-to-XML conversion for Trading API bodies.

Responses are decoded into a node tree in which every text leaf is a
``{"value": text}`` mapping, so the normalizer can tell leaves from containers
and cast each leaf by its element name. Requests are built from a plain
mapping: nested mappings become child elements and sequences become repeated
siblings.

XML attributes on responses are kept as ``@name`` keys but the normalizer
collapses any node carrying a ``value`` to that value; the Trading API puts
nothing the SDK needs in attributes.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import date, datetime
from typing import Any


XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'
EBAY_NAMESPACE = "urn:ebay:apis:eBLBaseComponents"


# ---------------------------------------------------------------------------
# XML bytes → node tree  (response parsing)
# ---------------------------------------------------------------------------


def xml_to_tree(xml_bytes: bytes | str) -> dict[str, Any]:
    """Convert an XML response body into a node tree.

    Strips XML namespace URIs from tag names so that
    ``{urn:ebay:apis:eBLBaseComponents}Ack`` becomes ``Ack``.

    Args:
        xml_bytes: Raw XML response body.

    Returns:
        Dict with the root element tag as the single top-level key.

    Raises:
        ET.ParseError: If *xml_bytes* is not well-formed XML.
    """
    if isinstance(xml_bytes, str):
        xml_bytes = xml_bytes.encode("utf-8")
    root = ET.fromstring(xml_bytes)
    return {_strip_ns(root.tag): _element_to_node(root)}


def _strip_ns(tag: str) -> str:
    """Remove namespace URI prefix: ``{urn:...}Name`` → ``Name``."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _element_to_node(element: ET.Element) -> dict[str, Any] | None:
    """Recursively convert a single XML element to a node.

    Conversion rules:
    - Attributes → ``@attr_name`` keys (xmlns declarations are skipped).
    - Child elements → grouped by tag name.  A tag appearing more than once
      becomes a list; a single occurrence stays a bare node.
    - Text → ``value`` key, alongside any attributes.
    - Empty elements (``<Note/>``) → None.
    """
    node: dict[str, Any] = {}

    for attr_name, attr_value in element.attrib.items():
        if attr_name.startswith("xmlns") or attr_name.startswith("{"):
            continue
        node[f"@{attr_name}"] = attr_value

    children_by_tag: dict[str, list[Any]] = {}
    for child in element:
        children_by_tag.setdefault(_strip_ns(child.tag), []).append(_element_to_node(child))

    for tag, values in children_by_tag.items():
        node[tag] = values if len(values) > 1 else values[0]

    text = (element.text or "").strip()
    if text and not children_by_tag:
        node["value"] = text

    if not node:
        return None

    return node


# ---------------------------------------------------------------------------
# Mapping → XML text  (request serialization)
# ---------------------------------------------------------------------------


def build_envelope(root_tag: str, body: dict[str, Any], namespace: str = EBAY_NAMESPACE) -> str:
    """Build a complete request document.

    The root element carries *namespace* as its default ``xmlns``; *body*
    becomes its children in insertion order.

    Args:
        root_tag: Root element name, e.g. ``GetItemRequest``.
        body: Mapping of child element names to values.
        namespace: Default namespace for the document.

    Returns:
        The XML declaration followed by the serialized root element.
    """
    root = ET.Element(root_tag, xmlns=namespace)
    _fill_element(root, body)
    ET.indent(root)
    return f"{XML_DECLARATION}\n{ET.tostring(root, encoding='unicode')}"


def _fill_element(element: ET.Element, value: Any) -> None:
    """Recursively write *value* into *element*.

    - mapping → child sub-elements for each key (lists repeat the tag)
    - None → empty element
    - bool → ``true`` / ``false``
    - date/datetime → ISO 8601
    - anything else → ``str(value)``
    """
    if value is None:
        return
    if isinstance(value, dict):
        for key, child_value in value.items():
            if isinstance(child_value, (list, tuple)):
                for item in child_value:
                    _fill_element(ET.SubElement(element, key), item)
            else:
                _fill_element(ET.SubElement(element, key), child_value)
    elif isinstance(value, (list, tuple)):
        # Bare sequence nested in a sequence: wrap each item as <item>.
        for item in value:
            _fill_element(ET.SubElement(element, "item"), item)
    else:
        element.text = _scalar_text(value)


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)
