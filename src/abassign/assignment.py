import logging
from collections.abc import MutableMapping
from typing import Any, Dict, Iterator, List, Optional

from abassign.errors import CyclicDependency, UnknownParameter
from abassign.operators import Operator

logger = logging.getLogger(__name__)


class Assignment(MutableMapping):
    """
    Lazy evaluation environment for experiment parameters.

    Parameters are defined as expressions (literals or operators) and are only
    evaluated when first read. Each parameter is evaluated at most once per
    instance; later reads return the memoized value. Redefining or deleting a
    parameter drops all memoized values. Random operators that do
    not override their salt use the parameter name, so the full salt of a draw
    is ``"<assignment salt>.<parameter>"``.
    """

    def __init__(self, salt: str, unit: Any = None):
        self.salt = salt
        self.unit = unit
        self._definitions: Dict[str, Any] = {}
        self._memo: Dict[str, Any] = {}
        self._evaluating: List[str] = []

    def define(self, name: str, expression: Any) -> None:
        if not isinstance(name, str) or not name:
            raise ValueError("parameter name must be a non-empty string")
        if name in self._definitions:
            # other parameters may have read the old value through Ref
            self._memo.clear()
        self._definitions[name] = expression

    def evaluate(self, expression: Any, parameter: Optional[str] = None) -> Any:
        """Evaluate an expression; ``parameter`` is the default salt for random operators."""
        if isinstance(expression, Operator):
            return expression.execute(self, parameter)
        return expression

    def resolve(self, name: str) -> Any:
        if name in self._memo:
            return self._memo[name]
        if name not in self._definitions:
            raise UnknownParameter(name, self.salt)
        if name in self._evaluating:
            start = self._evaluating.index(name)
            raise CyclicDependency(self._evaluating[start:] + [name])

        self._evaluating.append(name)
        try:
            value = self.evaluate(self._definitions[name], name)
        finally:
            self._evaluating.pop()

        logger.debug("%s.%s evaluated to %r", self.salt, name, value)
        self._memo[name] = value
        return value

    def get(self, name: str, default: Any = None) -> Any:
        if name not in self._definitions:
            return default
        return self.resolve(name)

    def is_evaluated(self, name: str) -> bool:
        return name in self._memo

    def as_dict(self) -> Dict[str, Any]:
        """Evaluate every defined parameter."""
        return {name: self.resolve(name) for name in self._definitions}

    def __getitem__(self, name: str) -> Any:
        return self.resolve(name)

    def __setitem__(self, name: str, expression: Any) -> None:
        self.define(name, expression)

    def __delitem__(self, name: str) -> None:
        if name not in self._definitions:
            raise UnknownParameter(name, self.salt)
        del self._definitions[name]
        self._memo.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __repr__(self):
        return f"Assignment(salt={self.salt!r}, evaluated={self._memo!r})"
