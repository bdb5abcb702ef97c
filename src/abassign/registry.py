from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from abassign.errors import ConfigurationError, UnknownExperiment
from abassign.experiment import Experiment

# factory(inputs, logger=...) -> Experiment; experiment classes qualify as-is
ExperimentFactory = Callable[..., Experiment]


class ExperimentRegistry:
    """Maps string identifiers to experiment factories so namespaces can be configured by name."""

    def __init__(self, factories: Optional[Mapping[str, ExperimentFactory]] = None):
        self._factories: Dict[str, ExperimentFactory] = {}
        for key, factory in (factories or {}).items():
            self.register(key, factory)

    def register(self, key: str, factory: Optional[ExperimentFactory] = None) -> Any:
        """Register ``factory`` under ``key``; without a factory, acts as a class decorator."""
        if factory is None:

            def decorator(f):
                self.register(key, f)
                return f

            return decorator

        if not key:
            raise ConfigurationError("experiment key cannot be empty")
        if key in self._factories:
            raise ConfigurationError(f"experiment '{key}' is already registered")
        if not callable(factory):
            raise ConfigurationError(f"factory for '{key}' is not callable")
        self._factories[key] = factory
        return factory

    def resolve(self, key: str) -> ExperimentFactory:
        try:
            return self._factories[key]
        except KeyError:
            raise UnknownExperiment(f"no experiment registered as '{key}'") from None

    def keys(self):
        return self._factories.keys()

    def __contains__(self, key: object) -> bool:
        return key in self._factories

    def __iter__(self) -> Iterator[str]:
        return iter(self._factories)

    def __len__(self) -> int:
        return len(self._factories)
