import pytest

from abassign.assignment import Assignment
from abassign.errors import CyclicDependency, UnknownParameter
from abassign.operators import RandomInteger, Ref, UniformChoice


class CountingChoice(UniformChoice):
    """UniformChoice that counts how often it draws."""

    calls = 0

    def draw(self, params, source):
        CountingChoice.calls += 1
        return super().draw(params, source)


@pytest.fixture(autouse=True)
def reset_counter():
    CountingChoice.calls = 0


def test_literal_returned_unchanged():
    a = Assignment("exp")
    value = {"nested": [1, 2]}
    a["config"] = value
    assert a["config"] is value
    assert a.evaluate(42) == 42


def test_parameters_are_lazy():
    a = Assignment("exp", unit="user2")
    a["foo"] = CountingChoice(choices=["a", "b"])
    assert CountingChoice.calls == 0
    assert "foo" in a
    assert CountingChoice.calls == 0
    assert not a.is_evaluated("foo")


def test_memoized_evaluation():
    a = Assignment("exp", unit="user2")
    a["foo"] = CountingChoice(choices=["a", "b"])

    first = a["foo"]
    second = a.get("foo")
    assert first == second == "b"
    assert CountingChoice.calls == 1
    assert a.is_evaluated("foo")


def test_default_unit_is_used():
    a = Assignment("exp", unit=["user2"])
    a["foo"] = UniformChoice(choices=["a", "b"])
    assert a["foo"] == "b"


def test_parameter_salts_are_independent():
    a = Assignment("exp", unit=4)
    a["x"] = RandomInteger(min=0, max=9)
    a["y"] = RandomInteger(min=0, max=9)
    assert a["x"] == 8
    # y is drawn with salt "exp.y" and may differ from x
    assert a["y"] == Assignment("exp", unit=4).evaluate(RandomInteger(min=0, max=9), "y")


def test_reference_to_other_parameter():
    a = Assignment("exp", unit="user2")
    # defined before its dependency; resolved on demand
    a["copy"] = Ref("foo")
    a["foo"] = CountingChoice(choices=["a", "b"])
    assert a["copy"] == "b"
    assert a["foo"] == "b"
    assert CountingChoice.calls == 1


def test_nested_expression_argument():
    a = Assignment("exp", unit="user1")
    a["cap"] = 5
    a["n"] = RandomInteger(min=1, max=Ref("cap"))
    assert 1 <= a["n"] <= 5


def test_unknown_parameter():
    a = Assignment("exp")
    with pytest.raises(UnknownParameter, match="'missing' is not defined"):
        a["missing"]
    with pytest.raises(LookupError):
        a.resolve("missing")
    assert a.get("missing", 7) == 7


def test_unknown_reference():
    a = Assignment("exp")
    a["x"] = Ref("nope")
    with pytest.raises(UnknownParameter):
        a["x"]


def test_cycle_detected():
    a = Assignment("exp")
    a["a"] = Ref("b")
    a["b"] = Ref("a")
    with pytest.raises(CyclicDependency) as excinfo:
        a["a"]
    assert excinfo.value.cycle == ["a", "b", "a"]

    # the failed evaluation leaves no state behind
    with pytest.raises(CyclicDependency):
        a["b"]


def test_self_reference_cycle():
    a = Assignment("exp", unit=1)
    a["n"] = RandomInteger(min=0, max=Ref("n"))
    with pytest.raises(CyclicDependency, match="n -> n"):
        a["n"]


def test_redefinition_drops_memo():
    a = Assignment("exp", unit="user2")
    a["foo"] = "fixed"
    assert a["foo"] == "fixed"
    a["foo"] = UniformChoice(choices=["a", "b"])
    assert a["foo"] == "b"


def test_redefinition_refreshes_references():
    a = Assignment("exp")
    a["base"] = 1
    a["copy"] = Ref("base")
    assert a["copy"] == 1

    a["base"] = 2
    assert a["copy"] == 2

    del a["base"]
    with pytest.raises(UnknownParameter):
        a["copy"]


def test_mapping_interface():
    a = Assignment("exp", unit="user2")
    a["foo"] = UniformChoice(choices=["a", "b"])
    a["bar"] = 3
    assert len(a) == 2
    assert list(a) == ["foo", "bar"]
    assert a.as_dict() == {"foo": "b", "bar": 3}

    del a["bar"]
    assert "bar" not in a
    with pytest.raises(UnknownParameter):
        del a["bar"]


def test_invalid_parameter_name():
    with pytest.raises(ValueError):
        Assignment("exp")[""] = 1
