import pytest

from storyjobs.v1.core.registries import (
    Registry,
    generator_registry,
    job_kind_registry,
)


class MockGenerator:
    async def generate(self, record, report_progress):
        return {"result_ref": "mock"}


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    assert registry.list() == []

    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.has("test_impl")
    assert registry.list() == ["test_impl"]

    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_unregister():
    registry = Registry[str]("Test")
    registry.register("impl", "value")

    registry.unregister("impl")
    registry.unregister("impl")

    assert not registry.has("impl")


def test_registry_freeze():
    """Test that frozen registries reject modifications."""
    registry = Registry[str]("Test")
    registry.register("impl", "value")
    registry.freeze()

    assert registry.is_frozen()
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("other", "value")
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.unregister("impl")

    assert registry.get("impl") == "value"


def test_global_registries():
    assert job_kind_registry.name == "JobKind"
    assert generator_registry.name == "Generator"
    assert "image" in job_kind_registry.list()


def test_generator_registration(register_generator):
    generator = MockGenerator()
    register_generator("image", generator)

    assert generator_registry.get("image") is generator


def test_generator_registration_cleaned_up():
    assert not generator_registry.has("image")
