"""
Grid Kernel — Filter Injection

Appends externally supplied <condition> fragments to the entity's top-level
"and" filter. The input document is never modified; a new document text is
returned.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING
from xml.etree import ElementTree as ET  # noqa: N817

from defusedxml import ElementTree as SafeET
from defusedxml.common import DefusedXmlException

from gridengine.kernel.fetchxml import MalformedDocumentError, find_entity_element, load_fetch_xml

if TYPE_CHECKING:
    from xml.etree.ElementTree import Element

logger = logging.getLogger(__name__)


def serialize_fetch_xml(root: Element) -> str:
    return ET.tostring(root, encoding="unicode")


def find_or_create_and_filter(entity: Element) -> Element:
    """
    Return the entity's direct <filter type="and">, creating one if missing.

    A new filter becomes the entity's first filter child: it is inserted
    before any existing <filter>, or appended when there is none.
    """
    for child in entity:
        if child.tag == "filter" and child.get("type") == "and":
            return child

    new_filter = ET.Element("filter", {"type": "and"})
    for index, child in enumerate(entity):
        if child.tag == "filter":
            entity.insert(index, new_filter)
            return new_filter
    entity.append(new_filter)
    return new_filter


def parse_condition(fragment: str) -> Element | None:
    """Parse one raw fragment. Returns None unless it is a single <condition>."""
    try:
        elem = SafeET.fromstring(fragment, forbid_dtd=True)
    except (SafeET.ParseError, DefusedXmlException, TypeError):
        return None
    if elem.tag != "condition":
        return None
    return elem


def inject_conditions(fetch_xml: str | Element, conditions: Iterable[str]) -> str:
    """
    Return fetch_xml with every condition fragment appended, in order, to the
    entity's top-level "and" filter.

    Malformed fragments are skipped with a warning. With no fragments the
    document comes back unchanged. Fragments are not deduplicated.
    """
    conditions = list(conditions)
    if not conditions:
        if isinstance(fetch_xml, str):
            return fetch_xml
        return serialize_fetch_xml(fetch_xml)

    root = copy.deepcopy(load_fetch_xml(fetch_xml))
    entity = find_entity_element(root)
    if entity is None or not entity.get("name"):
        raise MalformedDocumentError(
            "Incoming fetchxml not have entity element or name attribute"
        )

    parsed = []
    for fragment in conditions:
        elem = parse_condition(fragment)
        if elem is None:
            logger.warning("filters: skipping malformed condition: %r", str(fragment)[:200])
            continue
        parsed.append(elem)

    if not parsed:
        return serialize_fetch_xml(root)

    target = find_or_create_and_filter(entity)
    for elem in parsed:
        target.append(elem)

    logger.debug("filters: injected %d condition(s) into %s", len(parsed), entity.get("name"))
    return serialize_fetch_xml(root)
