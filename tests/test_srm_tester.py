import numpy as np
import pytest

from abassign.experiment import SimpleExperiment
from abassign.namespace import Namespace
from abassign.operators import UniformChoice
from abassign.services.distribution import DEFAULT_KEY, expected_proportions, preview_assignment_distribution
from abassign.srm_tester import SRMTester


class ColorExperiment(SimpleExperiment):
    def assign(self, params, userid):
        params["color"] = UniformChoice(choices=["red", "blue"], unit=userid)


class PickyExperiment(ColorExperiment):
    def eligible(self, userid):
        return userid % 4 == 0


class SplitNamespace(Namespace):
    def setup(self):
        self.name = "split"
        self.primary_unit = "userid"
        self.num_segments = 100

    def setup_experiments(self):
        self.add_experiment("first", ColorExperiment, 30)
        self.add_experiment("second", ColorExperiment, 50)


class PickyNamespace(SplitNamespace):
    def setup_experiments(self):
        self.add_experiment("first", PickyExperiment, 50)


@pytest.fixture
def srm_tester():
    return SRMTester(alpha=0.05)


class TestSRMTester:
    def test_equal_distribution(self, srm_tester):
        result = srm_tester.test([100, 100], [0.5, 0.5])
        assert not result.reject_null
        assert result.severity == ""
        assert abs(result.p_value - 1.0) < 0.01

    def test_srm_detected(self, srm_tester):
        result = srm_tester.test([120, 80], [0.5, 0.5])
        assert result.reject_null
        assert result.severity in ["*", "**", "***"]
        assert "SRM DETECTED" in str(result)

    def test_default_equal_proportions(self, srm_tester):
        result = srm_tester.test(np.array([505, 495]))
        assert result.expected_proportions == [0.5, 0.5]
        assert result.groups == ["0", "1"]
        assert not result.reject_null

    def test_unnormalized_proportions(self, srm_tester):
        result = srm_tester.test([300, 700], [3, 7])
        assert result.expected_counts == pytest.approx([300.0, 700.0])
        assert result.p_value == pytest.approx(1.0)

    def test_invalid_inputs(self, srm_tester):
        with pytest.raises(ValueError, match="at least 2 groups"):
            srm_tester.test([100])
        with pytest.raises(ValueError, match="non-negative"):
            srm_tester.test([100, -1])
        with pytest.raises(ValueError, match="match number of groups"):
            srm_tester.test([100, 100], [1.0])

    def test_critical_value(self, srm_tester):
        assert srm_tester.critical_value(1) == pytest.approx(3.841, abs=1e-3)


class TestNamespaceBalance:
    def test_expected_proportions(self):
        proportions = expected_proportions(SplitNamespace({"userid": 0}))
        assert proportions == pytest.approx({"first": 0.3, "second": 0.5, DEFAULT_KEY: 0.2})

    def test_preview(self):
        preview = preview_assignment_distribution(SplitNamespace, ({"userid": uid} for uid in range(1000)))
        assert preview["total_units"] == 1000
        assert sum(preview["assignment_distribution"].values()) == 1000
        assert set(preview["assignment_distribution"]) == {"first", "second", DEFAULT_KEY}
        assert preview["assignment_rate"] == pytest.approx(100 - preview["default_count"] / 10)

    def test_empty_preview(self):
        preview = preview_assignment_distribution(SplitNamespace, [])
        assert preview["total_units"] == 0
        assert preview["assignment_rate"] is None

    def test_segments_are_balanced(self):
        preview = preview_assignment_distribution(SplitNamespace, ({"userid": uid} for uid in range(2000)))
        expected = expected_proportions(SplitNamespace({"userid": 0}))
        result = SRMTester(alpha=0.001).check_distribution(preview, expected)
        assert result.groups == ["first", "second", DEFAULT_KEY]
        assert not result.reject_null

    def test_eligibility_filter_skews_allocation(self):
        preview = preview_assignment_distribution(PickyNamespace, ({"userid": uid} for uid in range(2000)))
        expected = expected_proportions(PickyNamespace({"userid": 0}))
        result = SRMTester(alpha=0.001).check_distribution(preview, expected)
        assert result.reject_null

    def test_units_outside_allocation(self):
        preview = {"assignment_distribution": {"first": 10, "ghost": 3}}
        with pytest.raises(ValueError, match="ghost"):
            SRMTester().check_distribution(preview, {"first": 0.5, DEFAULT_KEY: 0.5})
