class AbAssignError(Exception):
    """Base class for all assignment and namespace errors."""


class ConfigurationError(AbAssignError, ValueError):
    """Namespace or experiment misconfiguration (duplicates, capacity, late mutation)."""


class InvalidOperatorArgument(AbAssignError, ValueError):
    """Random operator invoked with an invalid argument."""


class UnknownParameter(AbAssignError, LookupError):
    """Evaluation of a parameter that was never defined."""

    def __init__(self, name: str, salt: str | None = None):
        self.name = name
        where = f" in assignment '{salt}'" if salt else ""
        super().__init__(f"parameter '{name}' is not defined{where}")


class CyclicDependency(AbAssignError, RuntimeError):
    """Parameter expressions reference each other in a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__("cyclic parameter dependency: " + " -> ".join(self.cycle))


class UnknownExperiment(AbAssignError, LookupError):
    """Lookup or removal of an experiment name that does not exist."""
