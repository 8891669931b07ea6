"""
Pytest configuration and fixtures for grid backend tests.

Remote calls are served from in-memory sources; HTTP client tests patch
httpx.AsyncClient directly.
"""

from __future__ import annotations

import pytest

from gridbackend.services.metadata_client import MemoryMetadataSource
from gridbackend.services.saved_query_client import MemorySavedQuerySource, SavedQuery
from gridbackend.services.view_pipeline import ViewPipeline
from gridengine.kernel.types import AttributeMetadata

ACCOUNT_FETCH = """<fetch><entity name="account">
  <attribute name="name" />
  <attribute name="revenue" />
  <attribute name="accountid" />
  <order attribute="name" descending="false" />
</entity></fetch>"""

CONTACT_FETCH = """<fetch><entity name="contact">
  <attribute name="fullname" />
  <attribute name="parentcustomerid" />
  <link-entity name="account" alias="acc" from="accountid" to="parentcustomerid">
    <attribute name="name" />
  </link-entity>
  <order attribute="fullname" descending="true" />
</entity></fetch>"""

CONTACT_LAYOUT = (
    '{"Object": 2, "Rows": [{"Cells": ['
    '{"Name": "acc.name", "Width": 200, "IsHidden": false},'
    '{"Name": "fullname", "Width": 300, "IsHidden": false}]}]}'
)


def _attribute(entity, name, label, *, pk=False, primary_name=False, lookup=False):
    return AttributeMetadata(
        entity_name=entity,
        name=name,
        display_label=label,
        is_primary_key=pk,
        is_primary_name=primary_name,
        is_lookup=lookup,
    )


METADATA = [
    _attribute("account", "accountid", "Account", pk=True),
    _attribute("account", "name", "Account Name", primary_name=True),
    _attribute("account", "revenue", "Annual Revenue"),
    _attribute("contact", "contactid", "Contact", pk=True),
    _attribute("contact", "fullname", "Full Name", primary_name=True),
    _attribute("contact", "parentcustomerid", "Company Name", lookup=True),
]


@pytest.fixture
def account_fetch():
    return ACCOUNT_FETCH


@pytest.fixture
def metadata():
    return MemoryMetadataSource(METADATA, entity_sets={"account": "accounts", "contact": "contacts"})


@pytest.fixture
def saved_queries():
    return MemorySavedQuerySource({
        "view-accounts": SavedQuery(view_id="view-accounts", name="Active Accounts", fetch_xml=ACCOUNT_FETCH),
        "view-contacts": SavedQuery(
            view_id="view-contacts",
            name="My Contacts",
            fetch_xml=CONTACT_FETCH,
            layout_json=CONTACT_LAYOUT,
            returned_type_code="contact",
        ),
    })


@pytest.fixture
def pipeline(metadata, saved_queries):
    return ViewPipeline(metadata, saved_queries, clock=lambda: "2026-01-01T00:00:00Z")
