"""
Grid Kernel — FetchXML Parser

Reads the subset of FetchXML the grid understands:

  <fetch>
    <entity name="account">
      <attribute name="name" />
      <link-entity name="contact" alias="pc" from="contactid" to="primarycontactid">
        <attribute name="fullname" />
      </link-entity>
      <order attribute="name" descending="false" />
    </entity>
  </fetch>

Only direct children of <entity> are read, and only one level of
<link-entity>. Anything else in the document is ignored here and left
untouched for the server.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from defusedxml import ElementTree as SafeET
from defusedxml.common import DTDForbidden, EntitiesForbidden, ExternalReferenceForbidden

from gridengine.kernel.types import AttributeRef, LinkRef, QueryDocument, SortOrder

if TYPE_CHECKING:
    from xml.etree.ElementTree import Element

logger = logging.getLogger(__name__)


class MalformedDocumentError(ValueError):
    """Query document is not XML, or has no named <entity> element."""


def load_fetch_xml(fetch_xml: str | Element) -> Element:
    """
    Parse FetchXML text into an Element.

    An Element passed in is returned as is. Raises MalformedDocumentError
    for empty, forbidden or unparsable input.
    """
    if not isinstance(fetch_xml, str):
        return fetch_xml
    if not fetch_xml or not fetch_xml.strip():
        raise MalformedDocumentError("fetchXml is required")
    try:
        return SafeET.fromstring(fetch_xml, forbid_dtd=True)
    except (EntitiesForbidden, ExternalReferenceForbidden, DTDForbidden) as exc:
        logger.warning("fetchxml: blocked forbidden construct: %s", exc)
        raise MalformedDocumentError("Query document contains forbidden XML constructs") from exc
    except SafeET.ParseError as exc:
        raise MalformedDocumentError(f"Query document is not valid XML: {exc}") from exc


def find_entity_element(root: Element) -> Element | None:
    """Return the <entity> under <fetch>, accepting a bare <entity> root too."""
    if root.tag == "entity":
        return root
    return root.find("entity")


def parse_fetch_xml(fetch_xml: str | Element) -> QueryDocument:
    """
    Parse FetchXML into a QueryDocument.

    Linked attributes are recorded with their alias so that "pc.fullname" and
    a root "fullname" stay distinct. Link entities without an alias still
    count as referenced entities but contribute no attributes.
    """
    root = load_fetch_xml(fetch_xml)
    entity = find_entity_element(root)
    entity_name = entity.get("name") if entity is not None else None
    if not entity_name:
        raise MalformedDocumentError(
            "Incoming fetchxml not have entity element or name attribute"
        )

    attributes: list[AttributeRef] = []
    links: list[LinkRef] = []
    sort: SortOrder | None = None

    for child in entity:
        if child.tag == "attribute":
            name = child.get("name")
            if name:
                attributes.append(AttributeRef(name=name))
        elif child.tag == "link-entity":
            link = _parse_link(child)
            if link is None:
                continue
            links.append(link)
            if link.alias:
                attributes.extend(AttributeRef(name=n, link_alias=link.alias) for n in link.attribute_names)
            elif link.attribute_names:
                logger.debug("fetchxml: link-entity %s has no alias, skipping its attributes", link.target_entity_name)
        elif child.tag == "order" and sort is None:
            attribute_name = child.get("attribute")
            if attribute_name:
                sort = SortOrder(
                    attribute_name=attribute_name,
                    descending=child.get("descending") == "true",
                )

    return QueryDocument(
        entity_name=entity_name,
        attributes=tuple(attributes),
        links=tuple(links),
        sort=sort,
    )


def _parse_link(elem: Element) -> LinkRef | None:
    target = elem.get("name")
    if not target:
        return None
    names = tuple(a.get("name") for a in elem.findall("attribute") if a.get("name"))
    return LinkRef(
        alias=elem.get("alias") or None,
        target_entity_name=target,
        from_field=elem.get("from"),
        to_field=elem.get("to"),
        attribute_names=names,
    )
