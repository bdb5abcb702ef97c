import pytest

from abassign.experiment import SimpleExperiment
from abassign.models.config_models import NamespaceConfig
from abassign.namespace import ConfiguredNamespace, NamespaceState
from abassign.operators import UniformChoice
from abassign.registry import ExperimentRegistry
from abassign.services.exposure_logger import InMemoryExposureLogger
from abassign.utils.config_loader import load_namespace_config, load_namespace_configs

NAMESPACE_YAML = """
name: homepage
primary_unit: userid
num_segments: 100
default_params:
  button_color: grey
operations:
  - name: colors
    experiment: button_colors
    segments: 40
  - name: retired
    experiment: button_colors
    segments: 20
  - action: remove
    name: retired
  - name: sizes
    experiment: button_sizes
    segments: 30
"""


class ButtonColors(SimpleExperiment):
    def assign(self, params, userid, **inputs):
        params["button_color"] = UniformChoice(choices=["red", "blue"], unit=userid)


class ButtonSizes(SimpleExperiment):
    def assign(self, params, userid, **inputs):
        params["button_size"] = UniformChoice(choices=["s", "m", "l"], unit=userid)


@pytest.fixture
def registry():
    return ExperimentRegistry({"button_colors": ButtonColors, "button_sizes": ButtonSizes})


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "homepage.yaml"
    path.write_text(NAMESPACE_YAML)
    return load_namespace_config(str(path))


def test_load_namespace_config(config):
    assert isinstance(config, NamespaceConfig)
    assert config.name == "homepage"
    assert config.num_segments == 100
    assert [op.name for op in config.operations] == ["colors", "retired", "retired", "sizes"]
    assert config.default_params == {"button_color": "grey"}


def test_load_multiple_configs(tmp_path):
    path = tmp_path / "namespaces.yaml"
    path.write_text(
        """
namespaces:
  - name: homepage
    primary_unit: userid
    num_segments: 100
  - name: checkout
    primary_unit: [userid, device]
    num_segments: 50
"""
    )
    configs = load_namespace_configs(path)
    assert [c.name for c in configs] == ["homepage", "checkout"]
    assert configs[1].primary_unit == ["userid", "device"]


def test_configured_namespace_replays_operations(config, registry):
    namespace = ConfiguredNamespace(config, {"userid": 1}, registry=registry)
    summary = namespace.allocation_summary()
    assert summary["experiment_segments"] == {"colors": 40, "sizes": 30}
    assert summary["available_segments"] == 30
    assert set(namespace.current_experiments) == {"colors", "sizes"}

    again = ConfiguredNamespace(config, {"userid": 2}, registry=registry)
    assert dict(again.segment_allocations) == dict(namespace.segment_allocations)


def test_configured_namespace_serves_params(config, registry):
    seen = set()
    log = InMemoryExposureLogger()
    for userid in range(100):
        namespace = ConfiguredNamespace(config, {"userid": userid}, logger=log, registry=registry)
        seen.add(namespace.experiment_name)
        if namespace.experiment_name == "colors":
            assert namespace.get("button_color") in ("red", "blue")
        elif namespace.experiment_name == "sizes":
            assert namespace.get("button_size") in ("s", "m", "l")
            assert namespace.get("button_color") == "grey"
        else:
            assert namespace.get("button_color") == "grey"
            assert namespace.in_experiment is False
        assert namespace.state is NamespaceState.RESOLVED

    assert seen == {"colors", "sizes", None}
    assert {r["name"] for r in log.records} == {"homepage-colors", "homepage-sizes"}
