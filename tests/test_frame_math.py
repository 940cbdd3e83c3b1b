"""
Tests for Frame Math

Covers the hyperbolic Kepler solver, conic geometry, the orbital-plane to
ecliptic rotation and the sky-coordinate helpers.

Run with:
    python -m pytest tests/test_frame_math.py -v
"""

import math
import unittest
from datetime import datetime, timezone

import numpy as np

from config import OBLIQUITY_J2000_DEG
from atlas_orbit.frame_math import (
    J2000_JD,
    angular_separation,
    angular_to_linear_distance,
    datetime_to_julian_date,
    ecliptic_to_equatorial,
    equatorial_to_ecliptic,
    hyperbolic_seed,
    julian_date_to_datetime,
    normalize_angle,
    orbital_radius,
    parse_sexagesimal_dec,
    parse_sexagesimal_ra,
    perifocal_to_ecliptic_matrix,
    radec_to_unit_vector,
    rotate_orbital_plane_to_ecliptic,
    solve_hyperbolic_kepler,
    solve_hyperbolic_kepler_checked,
    true_anomaly_from_hyperbolic,
    vector_to_radec,
)


class TestHyperbolicKepler(unittest.TestCase):
    """Newton solver for M = e sinh(H) - H."""

    def test_zero_mean_anomaly(self):
        """At perihelion the hyperbolic anomaly is zero."""
        self.assertEqual(solve_hyperbolic_kepler(0.0, 6.14), 0.0)

    def test_residual_is_small(self):
        """Solutions satisfy Kepler's equation across a range of anomalies."""
        e = 6.1395876
        for M in (-5.0, -0.3, 0.01, 0.7, 2.0, 8.0):
            solution = solve_hyperbolic_kepler_checked(M, e)
            self.assertTrue(solution.converged, msg=f"M={M} did not converge")
            residual = e * math.sinh(solution.H) - solution.H - M
            self.assertAlmostEqual(residual, 0.0, delta=1e-9, msg=f"M={M}")

    def test_round_trip(self):
        """Solving M = e sinh(H) - H recovers the H that produced M."""
        e = 6.1395876
        for H in (-3.0, -0.5, 0.1, 1.0, 2.5, 4.0):
            M = e * math.sinh(H) - H
            solution = solve_hyperbolic_kepler_checked(M, e, H0=hyperbolic_seed(M, e))
            self.assertTrue(solution.converged, msg=f"H={H}")
            self.assertAlmostEqual(solution.H, H, delta=1e-8, msg=f"H={H}")
        # the default H0 = M seed reaches the root within the cap near perihelion
        for H in (-0.5, 0.1, 1.0):
            M = e * math.sinh(H) - H
            self.assertAlmostEqual(solve_hyperbolic_kepler(M, e), H, delta=1e-8, msg=f"H={H}")

    def test_odd_symmetry(self):
        """H(-M) = -H(M)."""
        e = 2.5
        self.assertAlmostEqual(solve_hyperbolic_kepler(-1.3, e), -solve_hyperbolic_kepler(1.3, e), places=12)

    def test_iteration_cap_reported(self):
        """A starved solver still returns an iterate and flags non-convergence."""
        solution = solve_hyperbolic_kepler_checked(50.0, 1.01, max_iter=2)
        self.assertFalse(solution.converged)
        self.assertEqual(solution.iterations, 2)
        self.assertTrue(math.isfinite(solution.H))

    def test_seed_handles_large_mean_anomaly(self):
        """Far from perihelion the asinh seed converges where H0 = M cannot."""
        e = 6.2769203
        M = 2000.0
        seeded = solve_hyperbolic_kepler_checked(M, e, H0=hyperbolic_seed(M, e))
        self.assertTrue(seeded.converged)
        self.assertLess(seeded.iterations, 10)
        self.assertAlmostEqual((e * math.sinh(seeded.H) - seeded.H) / M, 1.0, places=12)

        unseeded = solve_hyperbolic_kepler_checked(M, e)
        self.assertFalse(unseeded.converged)
        self.assertTrue(math.isfinite(unseeded.H))

    def test_true_anomaly_bounded_by_asymptote(self):
        """|nu| stays below the asymptote angle acos(-1/e)."""
        e = 6.14
        limit = math.acos(-1.0 / e)
        for H in (-10.0, -1.0, 0.5, 10.0):
            nu = true_anomaly_from_hyperbolic(H, e)
            self.assertLess(abs(nu), limit)
        self.assertEqual(true_anomaly_from_hyperbolic(0.0, e), 0.0)

    def test_radius_at_perihelion(self):
        """r(nu=0) equals q."""
        self.assertAlmostEqual(orbital_radius(1.3566, 6.14, 0.0), 1.3566, places=12)

    def test_radius_grows_away_from_perihelion(self):
        q, e = 1.3566, 6.14
        self.assertGreater(orbital_radius(q, e, math.radians(60)), orbital_radius(q, e, math.radians(30)))


class TestRotation(unittest.TestCase):
    """Orbital plane -> ecliptic rotation."""

    def test_identity_for_zero_angles(self):
        """With omega = node = i = 0 the orbital plane is the ecliptic."""
        x, y, z = rotate_orbital_plane_to_ecliptic(1.5, -0.25, 0.0, 0.0, 0.0)
        self.assertAlmostEqual(x, 1.5, places=12)
        self.assertAlmostEqual(y, -0.25, places=12)
        self.assertAlmostEqual(z, 0.0, places=12)

    def test_matrix_is_orthonormal(self):
        """The rotation preserves lengths and has determinant +1."""
        matrix = perifocal_to_ecliptic_matrix(128.01, 322.16, 175.11)
        np.testing.assert_allclose(matrix @ matrix.T, np.eye(3), atol=1e-12)
        self.assertAlmostEqual(float(np.linalg.det(matrix)), 1.0, places=12)

    def test_retrograde_orbit_flips_angular_momentum(self):
        """For i > 90 deg the orbit normal points below the ecliptic."""
        matrix = perifocal_to_ecliptic_matrix(128.01, 322.16, 175.11)
        self.assertLess(matrix[2, 2], 0.0)

    def test_node_places_perihelion(self):
        """With omega = 0 and i = 0 the perihelion direction is the node longitude."""
        x, y, _ = rotate_orbital_plane_to_ecliptic(1.0, 0.0, 0.0, 90.0, 0.0)
        self.assertAlmostEqual(x, 0.0, places=12)
        self.assertAlmostEqual(y, 1.0, places=12)


class TestSkyCoordinates(unittest.TestCase):
    """Angles, frames and text formats."""

    def test_normalize_angle(self):
        self.assertEqual(normalize_angle(360.0), 0.0)
        self.assertAlmostEqual(normalize_angle(-30.0), 330.0)
        self.assertAlmostEqual(normalize_angle(725.0), 5.0)
        self.assertLess(normalize_angle(-1e-15), 360.0)

    def test_angular_separation(self):
        """Simple separations and NaN-free coincident points."""
        self.assertAlmostEqual(angular_separation(0.0, 0.0, 90.0, 0.0), 90.0, places=9)
        self.assertAlmostEqual(angular_separation(10.0, 89.0, 190.0, 89.0), 2.0, places=9)
        coincident = angular_separation(212.7, -10.27, 212.7, -10.27)
        self.assertFalse(math.isnan(coincident))
        self.assertAlmostEqual(coincident, 0.0, delta=1e-5)

    def test_angular_to_linear_distance(self):
        """One radian at 2 AU is 2 AU."""
        self.assertAlmostEqual(angular_to_linear_distance(206264.806247, 2.0), 2.0, places=9)

    def test_celestial_pole_maps_to_ecliptic_frame(self):
        """The equatorial pole tilts by the obliquity in the ecliptic frame."""
        x, y, z = equatorial_to_ecliptic(0.0, 0.0, 1.0)
        eps = math.radians(OBLIQUITY_J2000_DEG)
        self.assertAlmostEqual(x, 0.0)
        self.assertAlmostEqual(y, math.sin(eps), places=12)
        self.assertAlmostEqual(z, math.cos(eps), places=12)

    def test_frame_conversion_inverse(self):
        x, y, z = ecliptic_to_equatorial(*equatorial_to_ecliptic(0.3, -1.2, 0.7))
        self.assertAlmostEqual(x, 0.3, places=12)
        self.assertAlmostEqual(y, -1.2, places=12)
        self.assertAlmostEqual(z, 0.7, places=12)

    def test_radec_vector_inverse(self):
        """vector_to_radec recovers RA/Dec for any vector length."""
        ux, uy, uz = radec_to_unit_vector(212.71689, -10.27338)
        self.assertAlmostEqual(ux * ux + uy * uy + uz * uz, 1.0, places=12)
        ra, dec = vector_to_radec(3 * ux, 3 * uy, 3 * uz)
        self.assertAlmostEqual(ra, 212.71689, places=9)
        self.assertAlmostEqual(dec, -10.27338, places=9)

    def test_zero_vector_has_no_direction(self):
        with self.assertRaises(ValueError):
            vector_to_radec(0.0, 0.0, 0.0)

    def test_parse_sexagesimal(self):
        """Text formats used by scraped ephemeris pages."""
        self.assertAlmostEqual(parse_sexagesimal_ra("14h 15m 52s"), 213.9666667, places=6)
        self.assertAlmostEqual(parse_sexagesimal_dec("-10° 16' 24\""), -10.2733333, places=6)
        self.assertAlmostEqual(parse_sexagesimal_dec("+05°30′00″"), 5.5, places=9)
        self.assertAlmostEqual(parse_sexagesimal_dec("−00° 30' 00\""), -0.5, places=9)

    def test_parse_sexagesimal_rejects_garbage(self):
        with self.assertRaises(ValueError):
            parse_sexagesimal_ra("bogus")
        with self.assertRaises(ValueError):
            parse_sexagesimal_dec("12.5")

    def test_julian_dates(self):
        """J2000.0 is JD 2451545.0 at 12:00 UTC on 2000-01-01."""
        self.assertEqual(julian_date_to_datetime(J2000_JD), datetime(2000, 1, 1, 12, tzinfo=timezone.utc))
        instant = datetime(2025, 10, 29, 5, 3, 46, tzinfo=timezone.utc)
        self.assertAlmostEqual(
            (julian_date_to_datetime(datetime_to_julian_date(instant)) - instant).total_seconds(), 0.0, delta=1e-3
        )
        self.assertAlmostEqual(datetime_to_julian_date(datetime(2025, 10, 10)), 2460958.5, places=9)


if __name__ == "__main__":
    unittest.main()
