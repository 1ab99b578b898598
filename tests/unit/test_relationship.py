"""
Unit tests for relationship resolution.

Tests cover:
- Generated property and query names
- Side detection
- Fields added to entities on each side
- Selectors and indexes
"""

import pytest

from couchentity import Reference, ReferenceList, Relationship, RelationshipDef
from couchentity.model.relationship import RelationshipSide


@pytest.fixture
def one_to_many():
    return Relationship(RelationshipDef("company-projects", "one-to-many", "crm/company", "crm/project"))


@pytest.fixture
def many_to_many():
    return Relationship(RelationshipDef("project-users", "many-to-many", "crm/project", "security/user"))


class TestNames:
    """Tests for generated names."""

    def test_one_to_many(self, one_to_many):
        """Left gets get<Right>List, right gets a <left> reference."""
        assert one_to_many.query_name == "getProjectList"
        assert one_to_many.property_name == "company"

    def test_many_to_many(self, many_to_many):
        """Left gets a <right>List reference list, right gets get<Left>List."""
        assert many_to_many.property_name == "userList"
        assert many_to_many.query_name == "getProjectList"

    def test_overrides(self):
        """Names can be overridden per side."""
        relationship = Relationship(
            RelationshipDef(
                "ownership",
                "one-to-many",
                {"typeName": "security/user", "queryName": "ownedProjects"},
                {"typeName": "crm/project", "propertyName": "owner"},
            )
        )
        assert relationship.query_name == "getOwnedProjects"
        assert relationship.property_name == "owner"

    def test_many_to_many_overrides(self):
        """Many-to-many names are overridden on the opposite sides."""
        relationship = Relationship(
            RelationshipDef(
                "membership",
                "many-to-many",
                {"typeName": "crm/project", "propertyName": "members"},
                {"typeName": "security/user", "queryName": "memberOf"},
            )
        )
        assert relationship.property_name == "members"
        assert relationship.query_name == "getMemberOf"


class TestSelectors:
    """Tests for selectors and indexes."""

    def test_one_to_many_selector(self, one_to_many):
        """One-to-many matches the reference field."""
        assert one_to_many.get_selector("crm/company/1") == {"company": "crm/company/1"}

    def test_many_to_many_selector(self, many_to_many):
        """Many-to-many matches an element of the reference list."""
        assert many_to_many.get_selector("security/user/1") == {
            "userList": {"$elemMatch": {"$eq": "security/user/1"}}
        }

    def test_index(self, one_to_many):
        """Indexes cover the persisted reference field."""
        assert one_to_many.get_index() == {
            "index": {"fields": ["company"]},
            "name": "relationship-company-projects",
            "ddoc": "relationship-company-projects",
            "type": "json",
        }


class TestImplement:
    """Tests for fields added to entities."""

    def test_sides(self, database, one_to_many):
        """Entities are matched to sides by full model name."""
        company = database.service("crm", "company").create()
        project = database.service("crm", "project").create()
        user = database.service("security", "user").create()

        assert one_to_many.get_side(company) is RelationshipSide.LEFT
        assert one_to_many.get_side(project) is RelationshipSide.RIGHT
        assert one_to_many.get_side(user) is None
        assert one_to_many.implement(user) is False

    def test_one_to_many_fields(self, database):
        """The left side gets a query, the right side a reference."""
        company = database.service("crm", "company").create()
        project = database.service("crm", "project").create()

        assert callable(company.getProjectList)
        assert company.getProjectList.__name__ == "getProjectList"
        assert isinstance(project.company, Reference)
        assert project.company.target == "crm/company"
        assert "company-projects" in company.relationships
        assert "company-projects" in project.relationships

    def test_many_to_many_fields(self, database):
        """The left side gets a reference list, the right side a query."""
        project = database.service("crm", "project").create()
        user = database.service("security", "user").create()

        assert isinstance(project.userList, ReferenceList)
        assert project.userList.target == "security/user"
        assert callable(user.getProjectList)

    def test_self_relationship_is_skipped(self, database):
        """An entity on both sides is left untouched."""
        relationship = Relationship(RelationshipDef("parent", "one-to-many", "crm/company", "crm/company"))
        company = database.service("crm", "company").create()

        assert relationship.get_side(company) is None
        assert relationship.implement(company) is False
        assert "parent" not in company.relationships

    def test_nested_models_untouched(self, database):
        """Models outside any relationship get no extra fields."""
        address = database.get_namespace("crm").create_entity("address")
        assert address.field_names == ["street", "city"]
