from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, Protocol, TypeVar

if TYPE_CHECKING:
    from storyjobs.v1.jobs.kinds import JobKindProfile
    from storyjobs.v1.jobs.models import JobRecord

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def has(self, name: str) -> bool:
        return name in self._implementations

    def unregister(self, name: str) -> None:
        """Remove an implementation, mainly for tests."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot unregister '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations.pop(name, None)

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job Kind Registry - per-kind phase tables, rates and retry budgets
class JobKindRegistry(Registry["JobKindProfile"]):
    """Registry for job kinds (image, story, auto-story, cartoonize, scene)."""

    def __init__(self):
        super().__init__("JobKind")


# Generator Registry - the black-box AI work behind each kind
ProgressCallback = Callable[[int, str | None], Awaitable[None]]


class JobGenerator(Protocol):
    """Protocol for generators that perform the work of a job."""

    async def generate(
        self, record: "JobRecord", report_progress: ProgressCallback
    ) -> dict[str, Any]:
        """
        Run the generation and return the result.

        The returned dict may carry a "result_ref" key pointing at the produced
        artifact (e.g. a storybook entry id); everything else is stored as
        result data. Raising any exception fails the attempt.
        """
        ...


class GeneratorRegistry(Registry[JobGenerator]):
    """Registry for job generators keyed by job kind."""

    def __init__(self):
        super().__init__("Generator")


# Global registry instances
job_kind_registry = JobKindRegistry()
generator_registry = GeneratorRegistry()
