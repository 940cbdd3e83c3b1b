"""
Tests for the Trend Analyzer

Run with:
    python -m pytest tests/test_trend.py -v
"""

import math
import unittest

from atlas_orbit.errors import InsufficientData
from atlas_orbit.trend import (
    analyze_trend,
    classify_trend,
    fit_brightness_model,
    fit_linear,
    phase_angle,
    predict_magnitude,
)


class TestLinearFit(unittest.TestCase):

    def test_exact_line(self):
        fit = fit_linear([(0, 1.0), (1, 3.0), (2, 5.0), (3, 7.0)])
        self.assertAlmostEqual(fit.slope, 2.0)
        self.assertAlmostEqual(fit.intercept, 1.0)
        self.assertAlmostEqual(fit.r_squared, 1.0)

    def test_noisy_line(self):
        fit = fit_linear([(0, 0.1), (1, 0.9), (2, 2.1), (3, 2.9)])
        self.assertAlmostEqual(fit.slope, 0.96, places=9)
        self.assertGreater(fit.r_squared, 0.98)
        self.assertLess(fit.r_squared, 1.0)

    def test_flat_series_fits_perfectly(self):
        fit = fit_linear([(0, 12.0), (1, 12.0), (5, 12.0)])
        self.assertEqual(fit.slope, 0.0)
        self.assertEqual(fit.r_squared, 1.0)

    def test_degenerate_inputs(self):
        with self.assertRaises(InsufficientData):
            fit_linear([(0, 1.0)])
        with self.assertRaises(InsufficientData):
            fit_linear([])
        with self.assertRaises(InsufficientData):
            fit_linear([(2, 1.0), (2, 3.0)])


class TestTrend(unittest.TestCase):

    def test_classification(self):
        """Decreasing magnitude means brightening."""
        self.assertEqual(classify_trend(-0.05), "brightening")
        self.assertEqual(classify_trend(0.05), "dimming")
        self.assertEqual(classify_trend(0.009), "stable")
        self.assertEqual(classify_trend(-0.009), "stable")
        self.assertEqual(classify_trend(0.005), "stable")
        self.assertEqual(classify_trend(-0.02), "brightening")
        self.assertEqual(classify_trend(0.02), "dimming")

    def test_analyze_trend(self):
        result = analyze_trend([(0, 13.0), (3, 12.6), (7, 12.1), (11.5, 11.7)])
        self.assertEqual(result.trend, "brightening")
        self.assertEqual(result.points, 4)
        self.assertLess(result.slope, -0.1)
        self.assertGreaterEqual(result.confidence, 0.0)
        self.assertLessEqual(result.confidence, 1.0)
        self.assertAlmostEqual(result.confidence, result.r_squared)

    def test_confidence_clamped(self):
        """Scatter with no trend cannot give a negative confidence."""
        result = analyze_trend([(0, 12.0), (1, 12.5), (2, 11.5), (3, 11.5), (4, 12.5), (5, 12.0)])
        self.assertEqual(result.trend, "stable")
        self.assertAlmostEqual(result.confidence, 0.0, places=9)


class TestBrightnessModel(unittest.TestCase):

    def test_phase_angle(self):
        """Right angle at the object for r = delta = 1/sqrt(2) of the Earth distance."""
        self.assertAlmostEqual(phase_angle(math.sqrt(0.5), math.sqrt(0.5), 1.0), 90.0, places=9)
        self.assertAlmostEqual(phase_angle(2.0, 1.0, 1.0), 0.0, places=6)

    def test_predict_magnitude(self):
        self.assertAlmostEqual(predict_magnitude(1.0, 1.0), 7.1)
        self.assertAlmostEqual(predict_magnitude(10.0, 10.0, 0.0, 7.1, 6.0), 7.1 + 5.0 + 6.0)
        self.assertAlmostEqual(predict_magnitude(1.0, 1.0, 20.0, beta=0.04), 7.1 + 0.8)

    def test_fit_recovers_parameters(self):
        """Synthetic magnitudes from known H, K are fitted back."""
        geometry = [(4.2, 3.6, 5.0), (3.5, 3.1, 8.0), (2.8, 2.7, 12.0), (2.1, 2.4, 18.0), (1.6, 2.3, 22.0)]
        samples = [
            (predict_magnitude(r, delta, alpha, 8.3, 9.2), r, delta, alpha)
            for r, delta, alpha in geometry
        ]
        fit = fit_brightness_model(samples)
        self.assertAlmostEqual(fit.absolute_magnitude, 8.3, places=9)
        self.assertAlmostEqual(fit.activity_parameter, 9.2, places=9)
        self.assertAlmostEqual(fit.r_squared, 1.0, places=9)
        self.assertEqual(fit.points, 5)

    def test_fit_needs_three_points(self):
        with self.assertRaises(InsufficientData):
            fit_brightness_model([(12.0, 3.0, 2.5, 10.0), (11.5, 2.8, 2.4, 11.0)])


if __name__ == "__main__":
    unittest.main()
