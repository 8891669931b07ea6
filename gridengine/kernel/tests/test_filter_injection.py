"""
Grid Kernel -- Filter Injection Tests

Tests verify:
  - Conditions go into the entity's existing "and" filter, in order
  - A missing "and" filter is created as the first filter child
  - Zero fragments leave the document untouched
  - Duplicates are appended twice, malformed fragments are skipped
  - The input document is never modified
"""

import pytest
from defusedxml import ElementTree as SafeET

from gridengine.kernel.fetchxml import MalformedDocumentError
from gridengine.kernel.filters import inject_conditions, serialize_fetch_xml

ACTIVE = '<condition attribute="statecode" operator="eq" value="0" />'
BIG = '<condition attribute="revenue" operator="gt" value="1000" />'


def entity_of(xml):
    return SafeET.fromstring(xml).find("entity")


def conditions_of(filter_elem):
    return [(c.get("attribute"), c.get("operator"), c.get("value")) for c in filter_elem.findall("condition")]


# ============================================================================
# Existing filter
# ============================================================================


class TestExistingFilter:
    def test_appends_to_existing_and_filter(self):
        xml = """<fetch><entity name="account">
          <attribute name="name" />
          <filter type="and"><condition attribute="name" operator="not-null" /></filter>
        </entity></fetch>"""
        result = inject_conditions(xml, [ACTIVE, BIG])
        filters = entity_of(result).findall("filter")
        assert len(filters) == 1
        assert conditions_of(filters[0]) == [
            ("name", "not-null", None),
            ("statecode", "eq", "0"),
            ("revenue", "gt", "1000"),
        ]

    def test_or_filter_is_not_the_target(self):
        xml = """<fetch><entity name="account">
          <filter type="or"><condition attribute="name" operator="null" /></filter>
        </entity></fetch>"""
        result = inject_conditions(xml, [ACTIVE])
        filters = entity_of(result).findall("filter")
        assert [f.get("type") for f in filters] == ["and", "or"]
        assert conditions_of(filters[0]) == [("statecode", "eq", "0")]
        assert conditions_of(filters[1]) == [("name", "null", None)]

    def test_link_entity_filter_untouched(self):
        xml = """<fetch><entity name="account">
          <link-entity name="contact" alias="pc" from="contactid" to="primarycontactid">
            <filter type="and"><condition attribute="statecode" operator="eq" value="1" /></filter>
          </link-entity>
        </entity></fetch>"""
        result = inject_conditions(xml, [BIG])
        entity = entity_of(result)
        assert conditions_of(entity.find("filter")) == [("revenue", "gt", "1000")]
        assert conditions_of(entity.find("link-entity/filter")) == [("statecode", "eq", "1")]


# ============================================================================
# Created filter
# ============================================================================


class TestCreatedFilter:
    def test_created_when_missing(self):
        xml = '<fetch><entity name="account"><attribute name="name" /></entity></fetch>'
        result = inject_conditions(xml, [ACTIVE])
        filters = entity_of(result).findall("filter")
        assert len(filters) == 1
        assert filters[0].get("type") == "and"
        assert conditions_of(filters[0]) == [("statecode", "eq", "0")]

    def test_attributes_preserved(self):
        xml = '<fetch><entity name="account"><attribute name="name" /><order attribute="name" /></entity></fetch>'
        result = inject_conditions(xml, [ACTIVE])
        entity = entity_of(result)
        assert [a.get("name") for a in entity.findall("attribute")] == ["name"]
        assert entity.find("order").get("attribute") == "name"


# ============================================================================
# Edge cases
# ============================================================================


class TestEdgeCases:
    def test_no_fragments_is_noop(self):
        xml = '<fetch><entity name="account"><attribute name="name" /></entity></fetch>'
        assert inject_conditions(xml, []) == xml

    def test_duplicate_fragment_appended_twice(self):
        xml = '<fetch><entity name="account" /></fetch>'
        result = inject_conditions(xml, [ACTIVE, ACTIVE])
        assert conditions_of(entity_of(result).find("filter")) == [
            ("statecode", "eq", "0"),
            ("statecode", "eq", "0"),
        ]

    def test_malformed_fragments_skipped(self):
        xml = '<fetch><entity name="account" /></fetch>'
        result = inject_conditions(xml, ["<condition attribute=", "<filter />", "plain text", BIG])
        assert conditions_of(entity_of(result).find("filter")) == [("revenue", "gt", "1000")]

    def test_only_malformed_fragments_adds_nothing(self):
        xml = '<fetch><entity name="account" /></fetch>'
        result = inject_conditions(xml, ["not xml"])
        assert entity_of(result).find("filter") is None

    def test_element_input_not_mutated(self):
        root = SafeET.fromstring('<fetch><entity name="account" /></fetch>')
        before = serialize_fetch_xml(root)
        inject_conditions(root, [ACTIVE])
        assert serialize_fetch_xml(root) == before

    def test_missing_entity_raises(self):
        with pytest.raises(MalformedDocumentError):
            inject_conditions("<fetch />", [ACTIVE])

    def test_reapplying_nothing_after_injection_is_stable(self):
        xml = '<fetch><entity name="account" /></fetch>'
        once = inject_conditions(xml, [ACTIVE])
        assert inject_conditions(once, []) == once
