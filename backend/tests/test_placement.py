"""
Placement Registry Tests - deployment-target tagging.
"""

import sys
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

from core.errors import PlacementError  # noqa: E402
from placement import PlacementRegistry, get_registry, placed  # noqa: E402


class TestRegistry:
    """Test PlacementRegistry directly."""

    def test_decorator_registers_and_returns_function(self):
        registry = PlacementRegistry()

        @placed("edge", export="detect", registry=registry)
        def detect():
            return "ok"

        assert detect() == "ok"
        assert registry.target_of("detect") == "edge"
        assert detect.__placement__.export_name == "detect"

    def test_empty_registry_is_not_replaced_by_global(self):
        registry = PlacementRegistry()
        before = {p.export_name for p in get_registry()}

        @placed("fog", export="fog_sampler", registry=registry)
        def sampler():
            pass

        assert len(registry) == 1
        assert "fog_sampler" in registry
        assert "fog_sampler" not in get_registry()
        assert {p.export_name for p in get_registry()} == before

    def test_export_name_defaults_to_function_name(self):
        registry = PlacementRegistry()

        @placed("cloud", registry=registry)
        def summarize():
            pass

        assert "summarize" in registry
        assert registry.get("summarize").target == "cloud"

    def test_duplicate_export_name(self):
        registry = PlacementRegistry()

        def first():
            pass

        def second():
            pass

        registry.register(first, "edge", "shared")
        with pytest.raises(PlacementError):
            registry.register(second, "cloud", "shared")

    def test_reregistering_same_function_is_allowed(self):
        registry = PlacementRegistry()

        def task():
            pass

        registry.register(task, "edge")
        registry.register(task, "cloud")
        assert registry.target_of("task") == "cloud"
        assert len(registry) == 1

    def test_empty_target(self):
        with pytest.raises(PlacementError):
            PlacementRegistry().register(lambda: None, "", "anon")

    def test_unknown_export(self):
        with pytest.raises(PlacementError):
            PlacementRegistry().get("nothing")

    def test_validate_known_nodes(self):
        registry = PlacementRegistry()
        registry.register(lambda: None, "edge", "a")
        registry.register(lambda: None, "cloud", "b")

        registry.validate(["edge", "cloud"])

    def test_validate_unknown_node(self):
        registry = PlacementRegistry()
        registry.register(lambda: None, "edge", "a")
        registry.register(lambda: None, "moon", "b")

        with pytest.raises(PlacementError, match="b@moon"):
            registry.validate(["edge", "cloud"])


class TestAppPlacements:
    """The application's exported functions."""

    def test_inference_on_edge_and_report_on_cloud(self):
        import edge_app  # noqa: F401

        registry = get_registry()
        assert registry.target_of("run_inference") == "edge"
        assert registry.target_of("report_inference_result") == "cloud"
        registry.validate(["edge", "cloud"])
