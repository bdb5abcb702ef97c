from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from abassign import hashing
from abassign.errors import InvalidOperatorArgument

if TYPE_CHECKING:
    from abassign.assignment import Assignment


class Operator(ABC):
    """
    Base class for expressions that are evaluated inside an Assignment.

    Arguments are stored read-only and may themselves be expressions; they are
    evaluated against the assignment every time the operator executes, so an
    operator instance can be shared between assignments.
    """

    required: Tuple[str, ...] = ()

    def __init__(self, **args: Any):
        self._args = MappingProxyType(dict(args))

    @property
    def args(self) -> Mapping[str, Any]:
        return self._args

    def execute(self, assignment: "Assignment", parameter: Optional[str] = None) -> Any:
        params = {key: assignment.evaluate(value, parameter) for key, value in self._args.items()}
        for key in self.required:
            if key not in params:
                raise InvalidOperatorArgument(f"{self.__class__.__name__}: required argument '{key}' missing")
        return self.simple_execute(params, assignment, parameter)

    @abstractmethod
    def simple_execute(self, params: Dict[str, Any], assignment: "Assignment", parameter: Optional[str]) -> Any:
        pass

    def __repr__(self):
        args = ", ".join(f"{k}={v!r}" for k, v in self._args.items())
        return f"{self.__class__.__name__}({args})"


class Ref(Operator):
    """Value of another parameter in the same assignment."""

    def __init__(self, name: str):
        super().__init__(name=name)

    @property
    def name(self) -> str:
        return self._args["name"]

    def simple_execute(self, params, assignment, parameter):
        return assignment.resolve(params["name"])


class HashSource:
    """Salt and unit bound together for one operator invocation."""

    def __init__(self, full_salt: str, unit: Any):
        self.full_salt = full_salt
        self.unit = unit

    def hash(self, appended: Any = hashing.NOTHING) -> int:
        return hashing.get_hash(self.full_salt, self.unit, appended)

    def uniform(self, min_val: float = 0.0, max_val: float = 1.0, appended: Any = hashing.NOTHING) -> float:
        return hashing.get_uniform(self.full_salt, self.unit, min_val, max_val, appended)


class RandomOperator(Operator):
    """
    Operator drawing from the hash source.

    Optional arguments shared by all random operators:
        unit:      value(s) to hash; defaults to the assignment's unit
        salt:      parameter part of the salt; defaults to the parameter name
        full_salt: replaces the whole salt, ignoring the assignment salt
    """

    def simple_execute(self, params, assignment, parameter):
        return self.draw(params, self._hash_source(params, assignment, parameter))

    def _hash_source(self, params, assignment, parameter) -> HashSource:
        name = self.__class__.__name__
        if "full_salt" in params:
            full_salt = str(params["full_salt"])
        else:
            salt = params.get("salt", parameter)
            if salt is None:
                raise InvalidOperatorArgument(f"{name}: no salt given and operator is not bound to a parameter")
            full_salt = f"{assignment.salt}.{salt}"

        unit = params["unit"] if "unit" in params else assignment.unit
        if unit is None:
            raise InvalidOperatorArgument(f"{name}: no unit given and assignment has no default unit")
        return HashSource(full_salt, unit)

    @abstractmethod
    def draw(self, params: Dict[str, Any], source: HashSource) -> Any:
        pass


def _choices(name: str, params: Dict[str, Any]) -> List[Any]:
    choices = params["choices"]
    if isinstance(choices, (str, bytes)) or not hasattr(choices, "__len__"):
        raise InvalidOperatorArgument(f"{name}: choices must be a sequence")
    if len(choices) == 0:
        raise InvalidOperatorArgument(f"{name}: choices cannot be empty")
    return list(choices)


def _probability(name: str, params: Dict[str, Any]) -> float:
    p = params["p"]
    if not 0.0 <= p <= 1.0:
        raise InvalidOperatorArgument(f"{name}: p must be in [0, 1], got {p}")
    return p


class UniformChoice(RandomOperator):
    required = ("choices",)

    def draw(self, params, source):
        choices = _choices("UniformChoice", params)
        return choices[source.hash() % len(choices)]


class RandomInteger(RandomOperator):
    """Integer in [min, max], both inclusive."""

    required = ("min", "max")

    def draw(self, params, source):
        min_val, max_val = params["min"], params["max"]
        if not isinstance(min_val, int) or not isinstance(max_val, int):
            raise InvalidOperatorArgument("RandomInteger: min and max must be integers")
        if min_val > max_val:
            raise InvalidOperatorArgument(f"RandomInteger: min ({min_val}) > max ({max_val})")
        return min_val + source.hash() % (max_val - min_val + 1)


class RandomFloat(RandomOperator):
    required = ("min", "max")

    def draw(self, params, source):
        min_val, max_val = params["min"], params["max"]
        if min_val > max_val:
            raise InvalidOperatorArgument(f"RandomFloat: min ({min_val}) > max ({max_val})")
        return source.uniform(min_val, max_val)


class BernoulliTrial(RandomOperator):
    required = ("p",)

    def draw(self, params, source):
        p = _probability("BernoulliTrial", params)
        return 1 if source.uniform() <= p else 0


class BernoulliFilter(RandomOperator):
    """Keep each element independently with probability p."""

    required = ("p", "choices")

    def draw(self, params, source):
        p = _probability("BernoulliFilter", params)
        if len(params["choices"]) == 0:
            return []
        return [c for c in params["choices"] if source.uniform(appended=c) <= p]


class WeightedChoice(RandomOperator):
    """Cumulative-weight lookup; weights need not sum to 1."""

    required = ("choices", "weights")

    def draw(self, params, source):
        choices = _choices("WeightedChoice", params)
        weights = list(params["weights"])
        if len(weights) != len(choices):
            raise InvalidOperatorArgument("WeightedChoice: choices and weights lengths must match")
        if any(w < 0 for w in weights):
            raise InvalidOperatorArgument("WeightedChoice: weights must be >= 0")
        total = float(sum(weights))
        if total <= 0:
            raise InvalidOperatorArgument("WeightedChoice: weights must sum to a positive value")

        stop_value = source.uniform(0.0, total)
        cumulative = 0.0
        for choice, weight in zip(choices, weights):
            if weight == 0:
                continue
            cumulative += weight
            if stop_value <= cumulative:
                return choice
        # float rounding at the upper edge
        return [c for c, w in zip(choices, weights) if w > 0][-1]


class Sample(RandomOperator):
    """
    Sampling without replacement via a deterministic Fisher-Yates shuffle.

    At step i (from len-1 down to 1) the swap index is hash(unit + [i]) % (i + 1),
    so the whole permutation is reproducible from the unit. Returns the first
    ``draws`` elements, or ``(index, value)`` pairs when ``positions`` is true.
    """

    required = ("choices",)

    def draw(self, params, source):
        choices = _choices("Sample", params)
        draws = params.get("draws", len(choices))
        if not isinstance(draws, int) or draws < 0:
            raise InvalidOperatorArgument(f"Sample: draws must be a non-negative integer, got {draws!r}")
        if draws > len(choices):
            raise InvalidOperatorArgument(f"Sample: {draws} draws requested from {len(choices)} choices")

        order = list(range(len(choices)))
        for i in range(len(order) - 1, 0, -1):
            j = source.hash(i) % (i + 1)
            order[i], order[j] = order[j], order[i]

        picked = order[:draws]
        if params.get("positions", False):
            return [(k, choices[k]) for k in picked]
        return [choices[k] for k in picked]
