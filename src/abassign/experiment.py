import hashlib
import inspect
import logging
import re
import time
from abc import ABC, abstractmethod
from functools import wraps
from typing import Any, Dict, Mapping, Optional

from abassign.assignment import Assignment
from abassign.errors import ConfigurationError
from abassign.services.exposure_logger import ExposureLogger

logger = logging.getLogger(__name__)


def requires_assignment(f):
    """Run the experiment's assign() before the wrapped method, once."""

    @wraps(f)
    def wrapped_f(self, *args, **kwargs):
        if self._assignment is None:
            self._assign()
        return f(self, *args, **kwargs)

    return wrapped_f


def requires_exposure_logging(f):
    """Log exposure before the wrapped method if it has not been logged yet."""

    @wraps(f)
    def wrapped_f(self, *args, **kwargs):
        if self._auto_exposure_log and self._in_experiment and not self._exposure_logged:
            self.log_exposure()
        return f(self, *args, **kwargs)

    return wrapped_f


class Experiment(ABC):
    """
    One assignment environment bound to a name and salt.

    Subclasses implement ``assign(params, **inputs)`` to define parameters on
    ``params`` (an Assignment). Parameters are evaluated lazily when read
    through ``get``; the first read logs an exposure record.
    """

    def __init__(self, inputs: Mapping[str, Any], logger: Optional[ExposureLogger] = None):
        self.inputs = dict(inputs)
        self.logger = logger
        self._name = self.__class__.__name__
        self._salt: Optional[str] = None
        self._assignment: Optional[Assignment] = None
        self._in_experiment = True
        self._exposure_logged = False
        self._auto_exposure_log = True

        self.setup()

    def setup(self):
        """Set experiment attributes, e.g. name and salt."""
        pass

    @abstractmethod
    def assign(self, params: Assignment, **inputs):
        """Define parameters on ``params``."""
        pass

    def eligible(self, **inputs) -> bool:
        """Whether the unit takes part in the experiment at all."""
        return True

    @abstractmethod
    def previously_logged(self) -> bool:
        """Whether exposure for these inputs was already recorded elsewhere. Called once."""
        pass

    @abstractmethod
    def log(self, data: Dict[str, Any]):
        pass

    def _assign(self):
        unit = list(self.inputs.values()) or None
        self._assignment = Assignment(self.salt, unit=unit)
        self.assign(self._assignment, **self.inputs)
        self._in_experiment = bool(self.eligible(**self.inputs))
        if self.previously_logged():
            self._exposure_logged = True
        logger.debug("experiment %s assigned, in_experiment=%s", self.name, self._in_experiment)

    def _check_unassigned(self, attribute: str):
        if self._assignment is not None:
            raise ConfigurationError(f"{self.name}: {attribute} cannot be changed after parameters are assigned")

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str):
        self._check_unassigned("name")
        self._name = re.sub(r"\s+", "-", value)

    @property
    def salt(self) -> str:
        # the experiment name doubles as the salt unless one is set
        return self._salt if self._salt else self.name

    @salt.setter
    def salt(self, value: str):
        self._check_unassigned("salt")
        self._salt = value

    @property
    @requires_assignment
    def in_experiment(self) -> bool:
        return self._in_experiment

    @property
    def exposure_logged(self) -> bool:
        return self._exposure_logged

    def set_auto_exposure_logging(self, value: bool):
        """Disables / enables auto exposure logging (enabled by default)."""
        self._auto_exposure_log = value

    def checksum(self) -> Optional[str]:
        """Short digest of the assign() source, to detect changed experiment definitions."""
        try:
            lines = inspect.getsourcelines(type(self).assign)[0][1:]
        except (OSError, TypeError):
            return None
        return hashlib.sha1("".join(lines).encode("utf-8")).hexdigest()[:8]

    @requires_assignment
    @requires_exposure_logging
    def get(self, name: str, default: Any = None) -> Any:
        """Get a parameter value, or ``default`` if undefined. Triggers exposure log."""
        return self._assignment.get(name, default)

    @requires_assignment
    @requires_exposure_logging
    def get_params(self) -> Dict[str, Any]:
        """All parameters, evaluated. Triggers exposure log."""
        return self._assignment.as_dict()

    def log_exposure(self, extras: Optional[Dict[str, Any]] = None):
        """Logs exposure to treatment, at most once per instance."""
        if self._exposure_logged:
            return
        # flagged only once the record is written, so a failed log is retried
        self.log_event("exposure", extras)
        self._exposure_logged = True

    def log_event(self, event_type: str, extras: Optional[Dict[str, Any]] = None):
        """Log an arbitrary event."""
        payload: Dict[str, Any] = {"event": event_type}
        if extras:
            payload["extra_data"] = dict(extras)
        self.log(self._as_blob(payload))

    @requires_assignment
    def _as_blob(self, extras: Dict[str, Any]) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "time": int(time.time()),
            "salt": self.salt,
            "inputs": self.inputs,
            "params": self._assignment.as_dict(),
        }
        data.update(extras)
        checksum = self.checksum()
        if checksum:
            data["checksum"] = checksum
        return data

    def __repr__(self):
        return f"{self.__class__.__name__}(name={self.name!r}, salt={self.salt!r})"


class SimpleExperiment(Experiment):
    """Experiment that sends records to the injected exposure logger (no-op without one)."""

    def log(self, data):
        if self.logger is not None:
            self.logger.record(data)

    def previously_logged(self) -> bool:
        # a fresh instance has never seen these inputs
        return False


class DefaultExperiment(Experiment):
    """
    Fallback used by namespaces when a unit is not in any experiment. Never logs.
    Subclasses that are plain key-value stores override get_default_params().
    """

    def log(self, data):
        pass

    def previously_logged(self) -> bool:
        return True

    def assign(self, params, **inputs):
        params.update(self.get_default_params())

    def get_default_params(self) -> Dict[str, Any]:
        return {}
