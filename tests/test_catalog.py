"""Tests for the declarative catalogs."""

import json

from opsflow.catalog.event_catalog import EventCatalog
from opsflow.catalog.role_profiles import DEFAULT_ROLE_PROFILES, default_role_profiles, load_role_profiles
from opsflow.engine.assignment import AssignmentResolver
from opsflow.models.catalog import EventDefinition


class TestEventCatalog:
    """Registering and reloading event definitions."""

    def test_register_adds_and_replaces(self):
        catalog = EventCatalog()
        size = len(catalog)

        catalog.register(EventDefinition(event_type="inventory.stock_low", name="Stock low",
                                         tasks=[{"task_type": "reorder", "title": "Reorder {{sku}}",
                                                 "assign_to": {"type": "role", "value": "store-keeper"}}]))
        assert "inventory.stock_low" in catalog
        assert len(catalog) == size + 1
        assert catalog.get("inventory.stock_low").tasks[0].task_type == "reorder"

        catalog.register(EventDefinition(event_type="inventory.stock_low", enabled=False))
        assert len(catalog) == size + 1
        assert not catalog.get("inventory.stock_low").enabled
        assert "inventory.stock_low" not in [d.event_type for d in catalog.enabled()]

    def test_register_does_not_touch_other_catalogs(self):
        catalog = EventCatalog()
        catalog.register(EventDefinition(event_type="inventory.stock_low"))
        assert "inventory.stock_low" not in EventCatalog()

    def test_reload_from_file(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps([{"event_type": "a.one"}]))
        catalog = EventCatalog.load_from_file(path)
        assert len(catalog) == 1

        path.write_text(json.dumps([{"event_type": "a.one"}, {"event_type": "a.two"}]))
        catalog.reload()
        assert "a.two" in catalog


class TestRoleProfiles:
    """Loading role profiles from JSON."""

    PROFILES = [
        {"slug": "Credit_Controller", "title": "Credit Controller", "max_concurrent": 3,
         "skills": [{"name": "Debt Collection", "required_level": "advanced", "is_core": True}]},
    ]

    def test_load_normalizes_slugs(self, tmp_path):
        path = tmp_path / "roles.json"
        path.write_text(json.dumps(self.PROFILES))

        profiles = load_role_profiles(path)
        assert list(profiles) == ["credit-controller"]
        assert profiles["credit-controller"].max_concurrent == 3
        assert profiles["credit-controller"].skills[0].required_level == "advanced"

    def test_default_uses_environment(self, tmp_path, monkeypatch, employee_repository):
        monkeypatch.delenv("OPSFLOW_ROLE_PROFILES", raising=False)
        assert default_role_profiles() is DEFAULT_ROLE_PROFILES

        path = tmp_path / "roles.json"
        path.write_text(json.dumps(self.PROFILES))
        monkeypatch.setenv("OPSFLOW_ROLE_PROFILES", str(path))

        resolver = AssignmentResolver(employee_repository, role_profiles=default_role_profiles())
        assert resolver.capacity_for("credit-controller") == 3
