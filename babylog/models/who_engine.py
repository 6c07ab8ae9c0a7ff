"""
WHO Child Growth Standards: percentile estimation from sampled reference rows.
Source: WHO Child Growth Standards (2006), P3/P15/P50/P85/P97 for 0–24 months.

The estimate is a piecewise-linear reading of the five percentile points of the
nearest sampled age row. It is an approximation for a caregiver-facing chart,
not the WHO LMS (Box-Cox) method, and is not clinically authoritative.
"""
import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy import stats

from babylog.models.age import age_in_months
from babylog.models.aggregator import latest_measurement
from babylog.models.data_structures import Measurement, METRICS, SEXES

logger = logging.getLogger(__name__)

PERCENTILE_POINTS = (3, 15, 50, 85, 97)
PERCENTILE_FLOOR = 1.0
PERCENTILE_CEILING = 99.0

# =============================================================================
# WHO reference rows: age_months -> (p3, p15, p50, p85, p97)
# weight in kg, length and head circumference in cm
# =============================================================================

WHO_PERCENTILE_TABLES = {
    'weight': {
        'male': {
            0: (2.5, 2.9, 3.3, 3.9, 4.4), 1: (3.4, 3.9, 4.5, 5.1, 5.8),
            2: (4.3, 4.9, 5.6, 6.3, 7.1), 3: (5.0, 5.7, 6.4, 7.2, 8.0),
            4: (5.6, 6.2, 7.0, 7.8, 8.7), 5: (6.0, 6.7, 7.5, 8.4, 9.3),
            6: (6.4, 7.1, 7.9, 8.8, 9.8), 7: (6.7, 7.4, 8.3, 9.2, 10.3),
            8: (6.9, 7.7, 8.6, 9.6, 10.7), 9: (7.1, 8.0, 8.9, 9.9, 11.0),
            10: (7.4, 8.2, 9.2, 10.2, 11.4), 11: (7.6, 8.4, 9.4, 10.5, 11.7),
            12: (7.7, 8.6, 9.6, 10.8, 12.0), 15: (8.3, 9.2, 10.3, 11.5, 12.8),
            18: (8.8, 9.8, 10.9, 12.2, 13.5), 21: (9.2, 10.3, 11.5, 12.8, 14.3),
            24: (9.7, 10.8, 12.1, 13.5, 15.0),
        },
        'female': {
            0: (2.4, 2.8, 3.2, 3.7, 4.2), 1: (3.2, 3.6, 4.2, 4.8, 5.5),
            2: (3.9, 4.5, 5.1, 5.8, 6.6), 3: (4.5, 5.2, 5.8, 6.6, 7.5),
            4: (5.0, 5.7, 6.4, 7.3, 8.2), 5: (5.4, 6.1, 6.9, 7.8, 8.8),
            6: (5.7, 6.5, 7.3, 8.2, 9.3), 7: (6.0, 6.8, 7.6, 8.6, 9.8),
            8: (6.3, 7.0, 7.9, 9.0, 10.2), 9: (6.5, 7.3, 8.2, 9.3, 10.5),
            10: (6.7, 7.5, 8.5, 9.6, 10.9), 11: (6.9, 7.7, 8.7, 9.9, 11.2),
            12: (7.0, 7.9, 8.9, 10.1, 11.5), 15: (7.6, 8.5, 9.6, 10.9, 12.4),
            18: (8.1, 9.1, 10.2, 11.6, 13.2), 21: (8.6, 9.6, 10.9, 12.3, 14.0),
            24: (9.0, 10.2, 11.5, 13.0, 14.8),
        },
    },
    'length': {
        'male': {
            0: (46.1, 48.0, 49.9, 51.8, 53.7), 1: (50.8, 52.8, 54.7, 56.7, 58.6),
            2: (54.4, 56.4, 58.4, 60.4, 62.4), 3: (57.3, 59.4, 61.4, 63.5, 65.5),
            4: (59.7, 61.8, 63.9, 66.0, 68.0), 5: (61.7, 63.8, 65.9, 68.0, 70.1),
            6: (63.3, 65.5, 67.6, 69.8, 71.9), 7: (64.8, 67.0, 69.2, 71.3, 73.5),
            8: (66.2, 68.4, 70.6, 72.8, 75.0), 9: (67.5, 69.7, 72.0, 74.2, 76.5),
            10: (68.7, 71.0, 73.3, 75.6, 77.9), 11: (69.9, 72.2, 74.5, 76.9, 79.2),
            12: (71.0, 73.4, 75.7, 78.1, 80.5), 15: (74.1, 76.6, 79.1, 81.7, 84.2),
            18: (76.9, 79.6, 82.3, 85.0, 87.7), 21: (79.6, 82.3, 85.1, 88.0, 90.9),
            24: (82.0, 84.9, 87.8, 90.7, 93.9),
        },
        'female': {
            0: (45.4, 47.3, 49.1, 51.0, 52.9), 1: (49.8, 51.7, 53.7, 55.6, 57.6),
            2: (53.0, 55.0, 57.1, 59.1, 61.1), 3: (55.6, 57.7, 59.8, 61.9, 64.0),
            4: (57.8, 59.9, 62.1, 64.3, 66.4), 5: (59.6, 61.8, 64.0, 66.2, 68.5),
            6: (61.2, 63.5, 65.7, 68.0, 70.3), 7: (62.7, 65.0, 67.3, 69.6, 71.9),
            8: (64.0, 66.4, 68.7, 71.1, 73.5), 9: (65.3, 67.7, 70.1, 72.6, 75.0),
            10: (66.5, 69.0, 71.5, 74.0, 76.4), 11: (67.7, 70.3, 72.8, 75.3, 77.8),
            12: (68.9, 71.4, 74.0, 76.6, 79.2), 15: (72.0, 74.8, 77.5, 80.2, 83.0),
            18: (74.9, 77.8, 80.7, 83.6, 86.5), 21: (77.5, 80.6, 83.7, 86.7, 89.8),
            24: (80.0, 83.2, 86.4, 89.6, 92.9),
        },
    },
    'head_circumference': {
        'male': {
            0: (32.1, 33.2, 34.5, 35.7, 36.9), 1: (35.1, 36.1, 37.3, 38.4, 39.5),
            2: (36.9, 37.9, 39.1, 40.3, 41.5), 3: (38.3, 39.3, 40.5, 41.7, 42.9),
            4: (39.4, 40.4, 41.6, 42.8, 44.0), 5: (40.3, 41.2, 42.4, 43.6, 44.8),
            6: (40.9, 41.9, 43.3, 44.5, 45.8), 7: (41.5, 42.5, 43.8, 45.0, 46.3),
            8: (42.0, 43.0, 44.3, 45.5, 46.8), 9: (42.4, 43.4, 44.7, 45.9, 47.2),
            10: (42.8, 43.8, 45.0, 46.3, 47.6), 11: (43.1, 44.1, 45.4, 46.6, 47.9),
            12: (43.4, 44.4, 45.7, 46.9, 48.2), 15: (44.2, 45.2, 46.4, 47.7, 49.0),
            18: (44.8, 45.8, 47.1, 48.3, 49.6), 21: (45.3, 46.3, 47.6, 48.8, 50.1),
            24: (45.7, 46.8, 48.0, 49.3, 50.5),
        },
        'female': {
            0: (31.7, 32.7, 33.9, 35.1, 36.2), 1: (34.3, 35.4, 36.5, 37.7, 38.8),
            2: (36.0, 37.1, 38.3, 39.5, 40.7), 3: (37.2, 38.3, 39.5, 40.8, 42.0),
            4: (38.2, 39.3, 40.6, 41.8, 43.1), 5: (39.0, 40.1, 41.3, 42.6, 43.9),
            6: (39.6, 40.8, 42.0, 43.3, 44.6), 7: (40.2, 41.3, 42.6, 43.9, 45.2),
            8: (40.6, 41.7, 43.0, 44.3, 45.6), 9: (41.0, 42.1, 43.4, 44.7, 46.0),
            10: (41.3, 42.5, 43.7, 45.0, 46.4), 11: (41.6, 42.8, 44.0, 45.3, 46.7),
            12: (41.9, 43.0, 44.3, 45.6, 47.0), 15: (42.6, 43.8, 45.1, 46.4, 47.7),
            18: (43.2, 44.4, 45.7, 47.0, 48.3), 21: (43.7, 44.9, 46.2, 47.5, 48.8),
            24: (44.1, 45.4, 46.6, 47.9, 49.3),
        },
    },
}

METRIC_UNITS = {'weight': 'kg', 'length': 'cm', 'head_circumference': 'cm'}


class WHOPercentileEstimator:
    """Percentile rank estimation against sampled WHO reference rows."""

    def __init__(self, tables: dict = None):
        self.tables = tables or WHO_PERCENTILE_TABLES
        self._rows = {}

    def _get_rows(self, metric: str, sex: str) -> Tuple[np.ndarray, np.ndarray]:
        cache_key = (metric, sex)
        if cache_key not in self._rows:
            try:
                table = self.tables[metric][sex]
            except KeyError:
                raise ValueError(f"No reference table for {metric}/{sex}") from None
            ages = sorted(table.keys())
            self._rows[cache_key] = (
                np.array(ages, dtype=float),
                np.array([table[a] for a in ages], dtype=float),
            )
        return self._rows[cache_key]

    def get_reference_row(self, metric: str, sex: str,
                          age_months: float) -> Tuple[float, Tuple[float, ...]]:
        """Nearest sampled row by age; the earlier row wins an exact tie."""
        ages, values = self._get_rows(metric, sex)
        # argmin returns the first minimum, and ages are ascending
        idx = int(np.argmin(np.abs(ages - age_months)))
        return float(ages[idx]), tuple(float(v) for v in values[idx])

    def estimate_percentile(self, value: Optional[float], age_months: float,
                            metric: str, sex: str) -> Optional[float]:
        if value is None:
            return None
        _, points = self.get_reference_row(metric, sex, age_months)
        return interpolate_percentile(value, points)

    def percentile_lines(self, metric: str, sex: str) -> Dict[int, List[Tuple[float, float]]]:
        """Reference curves as {percentile: [(age_months, value), ...]}."""
        ages, values = self._get_rows(metric, sex)
        return {
            pct: [(float(a), float(v)) for a, v in zip(ages, values[:, col])]
            for col, pct in enumerate(PERCENTILE_POINTS)
        }

    def zscore_equivalent(self, percentile: Optional[float]) -> Optional[float]:
        """Standard-normal z matching a percentile, for display only."""
        if percentile is None:
            return None
        return float(stats.norm.ppf(percentile / 100.0))

    def latest_percentile(self, measurements: List[Measurement], birth_date,
                          metric: str, sex: str) -> Optional[dict]:
        """Percentile of the most recent measurement that recorded `metric`."""
        latest = latest_measurement(measurements, metric)
        if latest is None:
            return None
        value = latest.value_for(metric)
        age = age_in_months(latest.measured_at, birth_date)
        pct = self.estimate_percentile(value, age, metric, sex)
        logger.debug("%s/%s latest=%s age=%.2fmo pct=%s",
                     metric, sex, value, age, pct)
        return {
            'measurement_id': latest.id,
            'measured_at': latest.measured_at,
            'metric': metric,
            'unit': METRIC_UNITS[metric],
            'value': value,
            'age_months': age,
            'percentile': pct,
            'classification': classify_percentile(pct),
        }

    @property
    def available_metrics(self) -> list:
        return [m for m in METRICS if m in self.tables]

    @property
    def available_sexes(self) -> list:
        return [s for s in SEXES if s in self.tables.get('weight', {})]


def interpolate_percentile(value: float, points: Tuple[float, ...]) -> float:
    """Piecewise-linear rank of `value` between (p3, p15, p50, p85, p97).

    Below p3 the rank is floored at 1, at or above p97 capped at 99. A
    zero-width band resolves to the band's lower percentile.
    """
    if value < points[0]:
        return PERCENTILE_FLOOR
    for i in range(len(points) - 1):
        lo, hi = points[i], points[i + 1]
        if value < hi:
            lo_pct, hi_pct = PERCENTILE_POINTS[i], PERCENTILE_POINTS[i + 1]
            width = hi - lo
            if width <= 0:
                return float(lo_pct)
            return lo_pct + (value - lo) / width * (hi_pct - lo_pct)
    return PERCENTILE_CEILING


def classify_percentile(percentile: Optional[float]) -> Optional[str]:
    if percentile is None:
        return None
    if percentile < 3:
        return 'below_normal'
    if percentile > 97:
        return 'above_normal'
    if percentile < 15:
        return 'slightly_below'
    if percentile > 85:
        return 'slightly_above'
    return 'normal'


_default_estimator = WHOPercentileEstimator()


def estimate_percentile(value: Optional[float], age_months: float,
                        metric: str, sex: str) -> Optional[float]:
    return _default_estimator.estimate_percentile(value, age_months, metric, sex)
