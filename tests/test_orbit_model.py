"""
Tests for the Orbit Model

Two-body hyperbolic propagation of the 3I/ATLAS elements: perihelion
geometry, energy conservation, trail sampling and current-point selection.

Run with:
    python -m pytest tests/test_orbit_model.py -v
"""

import math
import unittest
from datetime import datetime, timedelta, timezone

from config import FALLBACK_ELEMENTS, AU_PER_DAY_TO_KM_PER_S
from atlas_orbit.errors import InvalidOrbit
from atlas_orbit.models import OrbitalElements, TrajectoryPoint
from atlas_orbit.orbit_model import (
    MU_SUN,
    current_point,
    interpolated_point,
    position_at,
    predicted_trail,
    trajectory_between,
    velocity_at,
)


def _elements(**overrides) -> OrbitalElements:
    return OrbitalElements(**{**FALLBACK_ELEMENTS, **overrides})


class TestPropagation(unittest.TestCase):
    """position_at / velocity_at."""

    def setUp(self):
        self.elements = _elements()
        self.perihelion = self.elements.perihelion_time

    def test_perihelion_distance(self):
        """At T the heliocentric distance equals q."""
        point = position_at(self.elements, self.perihelion)
        self.assertAlmostEqual(point.distance_from_sun, self.elements.perihelion_distance, places=9)

    def test_distance_increases_away_from_perihelion(self):
        """Distance grows monotonically on both sides of perihelion."""
        before = [position_at(self.elements, self.perihelion - timedelta(days=d)).distance_from_sun
                  for d in (10, 50, 100)]
        after = [position_at(self.elements, self.perihelion + timedelta(days=d)).distance_from_sun
                 for d in (10, 50, 100)]
        self.assertEqual(before, sorted(before))
        self.assertEqual(after, sorted(after))

    def test_retrograde_motion_sense(self):
        """Near-ecliptic retrograde orbit: z stays small relative to r."""
        point = position_at(self.elements, self.perihelion + timedelta(days=30))
        self.assertLess(abs(point.z) / point.distance_from_sun, math.sin(math.radians(5.0)))

    def test_perihelion_speed_matches_vis_viva(self):
        """v_q^2 = mu (1 + e) / q."""
        state = velocity_at(self.elements, self.perihelion)
        e, q = self.elements.eccentricity, self.elements.perihelion_distance
        expected = math.sqrt(MU_SUN * (1.0 + e) / q)
        self.assertAlmostEqual(state.speed_au_per_day, expected, places=10)

    def test_energy_is_conserved(self):
        """Specific orbital energy mu/(2|a|) is the same at every instant."""
        a = abs(self.elements.semi_major_axis)
        expected = MU_SUN / (2.0 * a)
        for days in (-200, -30, 0, 45, 365):
            state = velocity_at(self.elements, self.perihelion + timedelta(days=days))
            energy = state.speed_au_per_day ** 2 / 2.0 - MU_SUN / state.distance_au
            self.assertAlmostEqual(energy, expected, delta=1e-12, msg=f"days={days}")

    def test_velocity_position_consistent(self):
        """The state vector position equals position_at."""
        instant = self.perihelion + timedelta(days=12.5)
        state = velocity_at(self.elements, instant)
        point = position_at(self.elements, instant)
        self.assertAlmostEqual(state.x, point.x, places=12)
        self.assertAlmostEqual(state.y, point.y, places=12)
        self.assertAlmostEqual(state.z, point.z, places=12)

    def test_velocity_matches_finite_difference(self):
        """Analytic velocity agrees with a central difference of positions."""
        instant = self.perihelion + timedelta(days=20)
        h = 0.01
        ahead = position_at(self.elements, instant + timedelta(days=h))
        behind = position_at(self.elements, instant - timedelta(days=h))
        state = velocity_at(self.elements, instant)
        self.assertAlmostEqual(state.vx, (ahead.x - behind.x) / (2 * h), delta=1e-7)
        self.assertAlmostEqual(state.vy, (ahead.y - behind.y) / (2 * h), delta=1e-7)
        self.assertAlmostEqual(state.vz, (ahead.z - behind.z) / (2 * h), delta=1e-7)

    def test_hyperbolic_excess_speed(self):
        """Far from the Sun the speed approaches v_inf (about 58 km/s)."""
        state = velocity_at(self.elements, self.perihelion + timedelta(days=365 * 200))
        self.assertAlmostEqual(state.speed_au_per_day * AU_PER_DAY_TO_KM_PER_S, 58.0, delta=2.0)

    def test_naive_datetime_treated_as_utc(self):
        naive = self.perihelion.replace(tzinfo=None) + timedelta(days=3)
        aware = self.perihelion + timedelta(days=3)
        self.assertEqual(position_at(self.elements, naive), position_at(self.elements, aware))

    def test_elliptic_elements_rejected(self):
        """The hyperbolic model refuses e <= 1."""
        with self.assertRaises(InvalidOrbit):
            position_at(_elements(eccentricity=0.9), self.perihelion)
        with self.assertRaises(InvalidOrbit):
            velocity_at(_elements(eccentricity=1.0), self.perihelion)


class TestTrajectory(unittest.TestCase):
    """Trail sampling and selection."""

    def setUp(self):
        self.elements = _elements()
        self.now = datetime(2025, 10, 5, tzinfo=timezone.utc)

    def test_trajectory_between_is_inclusive(self):
        start = self.now
        trail = trajectory_between(self.elements, start, start + timedelta(days=10), 2.0)
        self.assertEqual(len(trail), 6)
        self.assertEqual(trail[0].instant, start)
        self.assertEqual(trail[-1].instant, start + timedelta(days=10))

    def test_trajectory_between_stops_before_end(self):
        trail = trajectory_between(self.elements, self.now, self.now + timedelta(days=9), 2.0)
        self.assertEqual(trail[-1].instant, self.now + timedelta(days=8))

    def test_trajectory_is_strictly_increasing(self):
        trail = trajectory_between(self.elements, self.now, self.now + timedelta(days=3), 0.25)
        instants = [p.instant for p in trail]
        self.assertTrue(all(a < b for a, b in zip(instants, instants[1:])))

    def test_invalid_sampling_rejected(self):
        with self.assertRaises(ValueError):
            trajectory_between(self.elements, self.now, self.now + timedelta(days=1), 0.0)
        with self.assertRaises(ValueError):
            trajectory_between(self.elements, self.now, self.now - timedelta(days=1), 1.0)

    def test_predicted_trail_centred_on_now(self):
        """days/2 either side of now at a 2-day cadence."""
        trail = predicted_trail(self.elements, 60, now=self.now)
        self.assertEqual(len(trail), 31)
        self.assertEqual(trail[0].instant, self.now - timedelta(days=30))
        self.assertEqual(trail[-1].instant, self.now + timedelta(days=30))
        self.assertEqual(current_point(trail, self.now).instant, self.now)

    def test_current_point_picks_nearest(self):
        trail = predicted_trail(self.elements, 10, now=self.now)
        # samples fall at odd day offsets: now - 5d, -3d, -1d, +1d, +3d, +5d
        chosen = current_point(trail, self.now + timedelta(hours=30))
        self.assertEqual(chosen.instant, self.now + timedelta(days=1))

    def test_current_point_either_side_of_midpoint(self):
        trail = predicted_trail(self.elements, 10, now=self.now)
        before = current_point(trail, self.now + timedelta(hours=47))
        after = current_point(trail, self.now + timedelta(hours=49))
        self.assertEqual(before.instant, self.now + timedelta(days=1))
        self.assertEqual(after.instant, self.now + timedelta(days=3))

    def test_current_point_tie_goes_to_earlier_sample(self):
        trail = predicted_trail(self.elements, 10, now=self.now)
        chosen = current_point(trail, self.now + timedelta(hours=48))
        self.assertEqual(chosen.instant, self.now + timedelta(days=1))

    def test_current_point_empty_trail(self):
        with self.assertRaises(ValueError):
            current_point([], self.now)

    def test_interpolated_point(self):
        """Linear interpolation between bracketing samples, clamped at the ends."""
        trail = [
            TrajectoryPoint.from_xyz(self.now, 1.0, 0.0, 0.0),
            TrajectoryPoint.from_xyz(self.now + timedelta(days=2), 0.0, 1.0, 0.0),
        ]
        middle = interpolated_point(trail, self.now + timedelta(days=1))
        self.assertAlmostEqual(middle.x, 0.5)
        self.assertAlmostEqual(middle.y, 0.5)
        self.assertEqual(interpolated_point(trail, self.now - timedelta(days=5)), trail[0])
        self.assertEqual(interpolated_point(trail, self.now + timedelta(days=5)), trail[-1])


if __name__ == "__main__":
    unittest.main()
