"""App spec layer - application templates and their registry."""

from keel.specs import echo, postgres
from keel.specs.base import AppSpec, ResourceObject
from keel.specs.factory import AppSpecFactory


def build_spec_factory(*, namespace: str = "default") -> AppSpecFactory:
    """Create a factory holding the bundled app specs.

    Registration order is fixed here; it is the order `schedule()` uses when
    no app keys are requested.
    """
    factory = AppSpecFactory()
    postgres.register(factory, namespace=namespace)
    echo.register(factory, namespace=namespace)
    return factory


__all__ = [
    "AppSpec",
    "AppSpecFactory",
    "ResourceObject",
    "build_spec_factory",
]
