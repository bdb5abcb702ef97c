from pathlib import Path

from abassign.experiment import SimpleExperiment
from abassign.namespace import ConfiguredNamespace
from abassign.operators import UniformChoice, WeightedChoice
from abassign.registry import ExperimentRegistry
from abassign.services.distribution import expected_proportions, preview_assignment_distribution
from abassign.services.exposure_logger import DuckDBExposureLogger
from abassign.srm_tester import SRMTester
from abassign.utils.config_loader import load_namespace_config

registry = ExperimentRegistry()


@registry.register("button_colors")
class ButtonColors(SimpleExperiment):
    def assign(self, params, userid, **inputs):
        params["button_color"] = UniformChoice(choices=["blue", "green", "red"], unit=userid)


@registry.register("button_text")
class ButtonText(SimpleExperiment):
    def assign(self, params, userid, **inputs):
        params["button_text"] = WeightedChoice(
            choices=["Sign up", "Join now", "Get started"], weights=[2, 1, 1], unit=userid
        )


def main():
    config = load_namespace_config(Path(__file__).with_name("namespace.yaml"))
    exposure_log = DuckDBExposureLogger()

    print("Namespace allocation:")
    summary = ConfiguredNamespace(config, {"userid": 0}, registry=registry).allocation_summary()
    for name, segments in summary["experiment_segments"].items():
        print(f"  {name}: {segments} segments")
    print(f"  unallocated: {summary['available_segments']} segments")

    print("\nSingle user:")
    namespace = ConfiguredNamespace(config, {"userid": 12345}, logger=exposure_log, registry=registry)
    print(f"  segment {namespace.segment} -> {namespace.experiment_name or 'default'}")
    print(f"  button_color={namespace.get('button_color')} button_text={namespace.get('button_text')}")

    print("\nServing 1000 users...")
    for userid in range(1000):
        namespace = ConfiguredNamespace(config, {"userid": userid}, logger=exposure_log, registry=registry)
        namespace.get("button_color")
        namespace.get("button_text")

    rows = exposure_log.con.execute(
        """
        SELECT name, COUNT(*) AS exposures
        FROM exposure_log
        WHERE event = 'exposure'
        GROUP BY name
        ORDER BY name
        """
    ).fetchall()
    for name, exposures in rows:
        print(f"  {name}: {exposures} exposures")

    print("\nAllocation balance:")
    preview = preview_assignment_distribution(
        lambda inputs: ConfiguredNamespace(config, inputs, registry=registry),
        ({"userid": uid} for uid in range(5000)),
    )
    expected = expected_proportions(ConfiguredNamespace(config, {"userid": 0}, registry=registry))
    print(f"  {SRMTester(alpha=0.01).check_distribution(preview, expected)}")

    exposure_log.close()


if __name__ == "__main__":
    main()
