from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Union

import numpy as np
from scipy.stats import chi2, chisquare


@dataclass
class SRMResult:
    """Sample ratio mismatch test result"""

    chi2_stat: float
    p_value: float
    degrees_of_freedom: int
    severity: str  # R-style signif. codes: '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 '' 1
    reject_null: bool
    groups: List[str]
    observed_counts: List[int]
    expected_counts: List[float]
    expected_proportions: List[float]
    total_sample_size: int

    def __str__(self):
        status = "SRM DETECTED" if self.reject_null else "No SRM"
        significance = f" {self.severity}" if self.severity else ""
        return f"{status} (chi2={self.chi2_stat:.3f}, p={self.p_value:.6f}{significance})"


class SRMTester:
    """
    Checks that units are spread over groups (experiments, variants) in the
    proportions the allocation promises. A mismatch points at a broken unit
    key, a changed salt, or an eligibility filter skewing traffic.
    """

    def __init__(self, alpha: float = 0.05):
        self.alpha = alpha

    def test(
        self,
        observed_counts: Union[Sequence[int], np.ndarray],
        expected_proportions: Optional[Union[Sequence[float], np.ndarray]] = None,
        groups: Optional[Sequence[str]] = None,
    ) -> SRMResult:
        observed = np.array(observed_counts, dtype=int)

        if len(observed) < 2:
            raise ValueError("Need at least 2 groups for SRM test")
        if np.any(observed < 0):
            raise ValueError("Observed counts must be non-negative")

        if expected_proportions is None:
            proportions = np.ones(len(observed)) / len(observed)
        else:
            proportions = np.array(expected_proportions, dtype=float)
            if len(proportions) != len(observed):
                raise ValueError("Expected proportions must match number of groups")
            if np.any(proportions <= 0):
                raise ValueError("Expected proportions must be positive")
            proportions = proportions / proportions.sum()

        total = int(observed.sum())
        expected = proportions * total
        chi2_stat, p_value = chisquare(f_obs=observed, f_exp=expected)

        return SRMResult(
            chi2_stat=float(chi2_stat),
            p_value=float(p_value),
            degrees_of_freedom=len(observed) - 1,
            severity=self._classify_severity(p_value),
            reject_null=bool(p_value < self.alpha),
            groups=list(groups) if groups is not None else [str(i) for i in range(len(observed))],
            observed_counts=observed.tolist(),
            expected_counts=expected.tolist(),
            expected_proportions=proportions.tolist(),
            total_sample_size=total,
        )

    def check_distribution(self, preview: Mapping[str, Any], expected: Mapping[str, float]) -> SRMResult:
        """
        Test a preview from preview_assignment_distribution against expected
        proportions keyed by experiment name. Groups with zero expected share
        are left out of the test; any unit observed in one is reported as an
        error since the allocation cannot produce it.
        """
        counts = preview["assignment_distribution"]
        groups = [name for name, share in expected.items() if share > 0]
        unexpected = [name for name, n in counts.items() if n and name not in groups]
        if unexpected:
            raise ValueError(f"units observed in groups without allocation: {', '.join(sorted(unexpected))}")

        return self.test(
            [counts.get(name, 0) for name in groups],
            [expected[name] for name in groups],
            groups=groups,
        )

    def critical_value(self, degrees_of_freedom: int, alpha: Optional[float] = None) -> float:
        alpha = alpha or self.alpha
        return float(chi2.ppf(1 - alpha, degrees_of_freedom))

    def _classify_severity(self, p_value: float) -> str:
        if p_value <= 0.001:
            return "***"
        elif p_value <= 0.01:
            return "**"
        elif p_value <= 0.05:
            return "*"
        elif p_value <= 0.1:
            return "."
        else:
            return ""
