from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from functools import partial, wraps
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Mapping, Optional, Union

from abassign.assignment import Assignment
from abassign.errors import ConfigurationError, UnknownExperiment
from abassign.experiment import DefaultExperiment, Experiment
from abassign.operators import RandomInteger, Sample
from abassign.registry import ExperimentFactory, ExperimentRegistry
from abassign.services.exposure_logger import ExposureLogger

if TYPE_CHECKING:
    from abassign.models.config_models import NamespaceConfig

logger = logging.getLogger(__name__)

_MISSING = object()


class NamespaceState(Enum):
    UNINITIALIZED = "uninitialized"
    CONFIGURING = "configuring"
    RESOLVED = "resolved"


def requires_experiment(f):
    """Resolve the unit's segment and experiment before the wrapped method, once."""

    @wraps(f)
    def wrapped_f(self, *args, **kwargs):
        if self._state is not NamespaceState.RESOLVED:
            self._assign_experiment()
        return f(self, *args, **kwargs)

    return wrapped_f


class Namespace(ABC):
    """
    Partitions a fixed segment space among mutually exclusive experiments.

    Subclasses set ``name``, ``primary_unit`` and ``num_segments`` in setup()
    and call add_experiment() in setup_experiments(); both run in the
    constructor. The unit is mapped to a segment lazily, on the first
    parameter or logging access, after which the allocation is frozen.
    """

    def __init__(
        self,
        inputs: Mapping[str, Any],
        logger: Optional[ExposureLogger] = None,
        registry: Optional[ExperimentRegistry] = None,
    ):
        self._state = NamespaceState.UNINITIALIZED
        self.inputs = dict(inputs)
        self.logger = logger
        self.registry = registry
        self.name = self.__class__.__name__
        self.num_segments: Optional[int] = None
        self._primary_unit: Optional[List[str]] = None
        self.default_experiment_class: ExperimentFactory = DefaultExperiment

        self._segment_allocations: Dict[int, str] = {}
        self._current_experiments: Dict[str, ExperimentFactory] = {}

        self._segment: Optional[int] = None
        self._experiment: Optional[Experiment] = None
        self._experiment_name: Optional[str] = None
        self._default_experiment: Optional[Experiment] = None

        self.setup()
        self._validate_setup()
        self._available_segments = set(range(self.num_segments))
        self._state = NamespaceState.CONFIGURING

        self.setup_experiments()

    @abstractmethod
    def setup(self):
        """Set name, primary_unit and num_segments, e.g.

        self.name = 'sample namespace'
        self.primary_unit = 'userid'
        self.num_segments = 10000
        """
        pass

    @abstractmethod
    def setup_experiments(self):
        """Allocate experiments, e.g. self.add_experiment('first experiment', Exp1, 100)."""
        pass

    def _validate_setup(self):
        if not isinstance(self.num_segments, int) or self.num_segments <= 0:
            raise ConfigurationError(f"{self.name}: num_segments must be a positive integer, got {self.num_segments!r}")
        if not self._primary_unit:
            raise ConfigurationError(f"{self.name}: primary_unit must be set in setup()")
        missing = [key for key in self._primary_unit if key not in self.inputs]
        if missing:
            raise ConfigurationError(f"{self.name}: primary unit input(s) missing: {', '.join(missing)}")

    @property
    def primary_unit(self) -> Optional[List[str]]:
        return self._primary_unit

    @primary_unit.setter
    def primary_unit(self, value: Union[str, List[str]]):
        # stored as a list so multi-key units hash the same way as single keys
        self._primary_unit = list(value) if isinstance(value, (list, tuple)) else [value]

    @property
    def state(self) -> NamespaceState:
        return self._state

    @property
    def available_segments(self) -> FrozenSet[int]:
        return frozenset(self._available_segments)

    @property
    def segment_allocations(self) -> Mapping[int, str]:
        return MappingProxyType(dict(self._segment_allocations))

    @property
    def current_experiments(self) -> Mapping[str, ExperimentFactory]:
        return MappingProxyType(dict(self._current_experiments))

    def _require_configuring(self, operation: str):
        if self._state is not NamespaceState.CONFIGURING or self._segment is not None:
            raise ConfigurationError(f"{self.name}: {operation}() cannot be called after an assignment is made.")

    def _factory_for(self, experiment: Union[str, ExperimentFactory]) -> ExperimentFactory:
        if isinstance(experiment, str):
            if self.registry is None:
                raise ConfigurationError(f"{self.name}: experiment '{experiment}' given by key but no registry is set")
            return self.registry.resolve(experiment)
        if not callable(experiment):
            raise ConfigurationError(f"{self.name}: experiment must be a factory or a registry key")
        return experiment

    def add_experiment(self, name: str, experiment: Union[str, ExperimentFactory], num_segments: int):
        """Allocate ``num_segments`` available segments to a new experiment called ``name``."""
        self._require_configuring("add_experiment")
        if not isinstance(num_segments, int) or num_segments < 0:
            raise ConfigurationError(f"{self.name}: num_segments must be a non-negative integer, got {num_segments!r}")
        num_available = len(self._available_segments)
        if num_available < num_segments:
            raise ConfigurationError(f"{self.name}: {num_segments} segments requested, only {num_available} available.")
        if name in self._current_experiments:
            raise ConfigurationError(f"{self.name}: there is already an experiment called {name}.")
        factory = self._factory_for(experiment)

        sampled: List[int] = []
        if num_segments:
            # sorted so the draw does not depend on set iteration order
            a = Assignment(self.name)
            a["sampled_segments"] = Sample(choices=sorted(self._available_segments), draws=num_segments, unit=name)
            sampled = a["sampled_segments"]

        for segment in sampled:
            self._segment_allocations[segment] = name
            self._available_segments.remove(segment)
        self._current_experiments[name] = factory

        logger.info(
            "%s: experiment %s allocated %d segments, %d available",
            self.name,
            name,
            len(sampled),
            len(self._available_segments),
        )

    def remove_experiment(self, name: str):
        """Remove an experiment and return its segments to the available pool."""
        self._require_configuring("remove_experiment")
        if name not in self._current_experiments:
            raise UnknownExperiment(f"{self.name}: there is no experiment called {name}.")

        freed = [s for s, exp_name in self._segment_allocations.items() if exp_name == name]
        for segment in freed:
            del self._segment_allocations[segment]
            self._available_segments.add(segment)
        del self._current_experiments[name]

        logger.info("%s: experiment %s removed, freed %d segments", self.name, name, len(freed))

    def get_segment(self) -> int:
        """Map the primary unit to a segment in [0, num_segments)."""
        a = Assignment(self.name)
        a["segment"] = RandomInteger(
            min=0,
            max=self.num_segments - 1,
            unit=[self.inputs[key] for key in self._primary_unit],
        )
        return a["segment"]

    def _assign_experiment(self):
        # the allocation is frozen from the first lookup, even if building the experiment fails
        if self._segment is None:
            self._segment = self.get_segment()
        segment = self._segment
        experiment = None
        exp_name = self._segment_allocations.get(segment)

        if exp_name is not None:
            candidate = self._current_experiments[exp_name](self.inputs, logger=self.logger)
            candidate.name = f"{self.name}-{exp_name}"
            candidate.salt = f"{self.name}.{exp_name}"
            if candidate.in_experiment:
                experiment = candidate

        self._experiment = experiment
        self._experiment_name = exp_name if experiment is not None else None
        self._state = NamespaceState.RESOLVED
        logger.debug("%s: unit in segment %d resolved to %s", self.name, segment, self._experiment_name or "default")

        if experiment is None:
            self._assign_default_experiment()

    def _assign_default_experiment(self):
        default = self.default_experiment_class(self.inputs)
        default.name = self.name
        self._default_experiment = default

    def _default_get(self, name: str, default: Any = None) -> Any:
        if self._default_experiment is None:
            self._assign_default_experiment()
        return self._default_experiment.get(name, default)

    @property
    @requires_experiment
    def in_experiment(self) -> bool:
        return self._experiment is not None

    @property
    @requires_experiment
    def segment(self) -> int:
        return self._segment

    @property
    @requires_experiment
    def experiment_name(self) -> Optional[str]:
        """Name of the experiment the unit is in, or None when it gets the default."""
        return self._experiment_name

    @requires_experiment
    def get(self, name: str, default: Any = None) -> Any:
        """Get a parameter value; falls back to the default experiment, then ``default``."""
        if self._experiment is not None:
            value = self._experiment.get(name, _MISSING)
            if value is not _MISSING:
                return value
        return self._default_get(name, default)

    @requires_experiment
    def set_auto_exposure_logging(self, value: bool):
        if self._experiment is not None:
            self._experiment.set_auto_exposure_logging(value)

    @requires_experiment
    def log_exposure(self, extras: Optional[Dict[str, Any]] = None):
        """Logs exposure to treatment."""
        if self._experiment is not None:
            self._experiment.log_exposure(extras)

    @requires_experiment
    def log_event(self, event_type: str, extras: Optional[Dict[str, Any]] = None):
        """Log an arbitrary event."""
        if self._experiment is not None:
            self._experiment.log_event(event_type, extras)

    def allocation_summary(self) -> Dict[str, Any]:
        """Segment usage per experiment; does not resolve the unit."""
        experiment_segments = {name: 0 for name in self._current_experiments}
        for exp_name in self._segment_allocations.values():
            experiment_segments[exp_name] += 1

        used = len(self._segment_allocations)
        return {
            "namespace": self.name,
            "num_segments": self.num_segments,
            "available_segments": len(self._available_segments),
            "used_segments": used,
            "utilization_percentage": used / self.num_segments * 100,
            "experiment_segments": experiment_segments,
        }


class ConfiguredDefaultExperiment(DefaultExperiment):
    """Default experiment serving a fixed mapping of literal parameters."""

    def __init__(self, inputs: Mapping[str, Any], params: Mapping[str, Any], logger: Optional[ExposureLogger] = None):
        self._params = dict(params)
        super().__init__(inputs, logger=logger)

    def get_default_params(self) -> Dict[str, Any]:
        return dict(self._params)


class ConfiguredNamespace(Namespace):
    """
    Namespace built from a NamespaceConfig.

    Operations are replayed in order, so an experiment removed and later
    re-added draws from the same pool every time the namespace is built.
    """

    def __init__(
        self,
        config: "NamespaceConfig",
        inputs: Mapping[str, Any],
        logger: Optional[ExposureLogger] = None,
        registry: Optional[ExperimentRegistry] = None,
    ):
        self.config = config
        super().__init__(inputs, logger=logger, registry=registry)

    def setup(self):
        self.name = self.config.name
        self.primary_unit = self.config.primary_unit
        self.num_segments = self.config.num_segments
        self.default_experiment_class = partial(ConfiguredDefaultExperiment, params=self.config.default_params)

    def setup_experiments(self):
        for operation in self.config.operations:
            if operation.action == "add":
                self.add_experiment(operation.name, operation.experiment, operation.segments)
            else:
                self.remove_experiment(operation.name)
