"""Namespace-agnostic helpers over ElementTree.

S3 responses carry the ``http://s3.amazonaws.com/doc/2006-03-01/`` namespace
while most S3-compatible stores and Azure send none, so lookups match on the
local tag name only.
"""

import xml.etree.ElementTree as ET

from bucket_migration.client.exceptions import MigrationError


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_xml(payload: bytes, what: str) -> ET.Element:
    """Parse a response body, raising MigrationError when it is not XML."""
    try:
        return ET.fromstring(payload)
    except ET.ParseError as e:
        raise MigrationError(f"Malformed {what} response: {e}") from e


def find_child(element: ET.Element, name: str) -> ET.Element | None:
    return next((child for child in element if local_name(child.tag) == name), None)


def find_children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if local_name(child.tag) == name]


def find_descendant_text(element: ET.Element, name: str) -> str:
    """Text of the first element anywhere below ``element`` with this name."""
    for node in element.iter():
        if local_name(node.tag) == name and node.text:
            return node.text.strip()
    return ""


def child_text(element: ET.Element | None, name: str, default: str = "") -> str:
    if element is None:
        return default
    child = find_child(element, name)
    if child is None or child.text is None:
        return default
    return child.text.strip()
