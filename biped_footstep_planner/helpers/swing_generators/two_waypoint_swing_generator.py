"""
Two-Waypoint Swing Trajectory Generator

The swing foot path runs through lift-off, two intermediate waypoints and
touch-down. Each axis is a chain of three quintic polynomials (lift, apex,
descent) meeting at the waypoints with matched velocity and acceleration.

Boundary Constraints (per axis):
- At t=0: p=p_start, v=0, a=0
- At t=t_k (waypoint k): p=w_k, v=(p_next - p_prev)/(t_next - t_prev), a=0
- At t=T: p=p_end, v=touchdown velocity (z only), a=0

Waypoint times are proportional to the chord length of the polyline.
"""

from typing import List, Tuple
import numpy as np

MINIMUM_SEGMENT_DURATION = 1e-3


class TwoWaypointSwingGenerator:
    """
    Generates a smooth swing trajectory through two waypoints.
    """

    def __init__(self, touchdown_velocity: float = -0.3, swing_duration: float = 1.0) -> None:
        """
        Initialize the two-waypoint swing trajectory generator.

        Args:
            touchdown_velocity: Vertical foot velocity at touch-down (m/s, negative is down)
            swing_duration: Total duration of the swing phase (s)
        """
        self.touchdown_velocity = touchdown_velocity
        self.swing_duration = swing_duration

        self._knots = None
        self._knot_times = None
        self._coeffs: List[np.ndarray] = []

    def _solve_quintic_coefficients(
        self,
        t0: float,
        tf: float,
        p0: float,
        v0: float,
        a0: float,
        pf: float,
        vf: float,
        af: float
    ) -> np.ndarray:
        """
        Solve for quintic polynomial coefficients given boundary conditions.

        Quintic polynomial: p(t) = c0 + c1*t + c2*t^2 + c3*t^3 + c4*t^4 + c5*t^5

        Args:
            t0: Start time
            tf: End time
            p0, v0, a0: Position, velocity, acceleration at t0
            pf, vf, af: Position, velocity, acceleration at tf

        Returns:
            Coefficients array [c0, c1, c2, c3, c4, c5]
        """
        A = np.array([
            [1, t0, t0**2, t0**3, t0**4, t0**5],
            [1, tf, tf**2, tf**3, tf**4, tf**5],
            [0, 1, 2*t0, 3*t0**2, 4*t0**3, 5*t0**4],
            [0, 1, 2*tf, 3*tf**2, 4*tf**3, 5*tf**4],
            [0, 0, 2, 6*t0, 12*t0**2, 20*t0**3],
            [0, 0, 2, 6*tf, 12*tf**2, 20*tf**3]
        ])
        b = np.array([p0, pf, v0, vf, a0, af])
        return np.linalg.solve(A, b)

    def _evaluate_quintic(self, t: float, coeffs: np.ndarray) -> Tuple[float, float, float]:
        """
        Evaluate quintic polynomial and its derivatives at time t.

        Returns:
            Tuple of (position, velocity, acceleration)
        """
        c0, c1, c2, c3, c4, c5 = coeffs
        p = c0 + c1*t + c2*t**2 + c3*t**3 + c4*t**4 + c5*t**5
        v = c1 + 2*c2*t + 3*c3*t**2 + 4*c4*t**3 + 5*c5*t**4
        a = 2*c2 + 6*c3*t + 12*c4*t**2 + 20*c5*t**3
        return p, v, a

    def initialize(self, start: np.ndarray, waypoints: np.ndarray, end: np.ndarray) -> None:
        """
        Build the trajectory through start, the two waypoints and end.

        Args:
            start: Lift-off position [x, y, z]
            waypoints: (2, 3) intermediate waypoints
            end: Touch-down position [x, y, z]
        """
        knots = np.vstack([start, waypoints[0], waypoints[1], end]).astype(float)
        lengths = np.maximum(np.linalg.norm(np.diff(knots, axis=0), axis=1), 1e-9)
        fractions = np.maximum(lengths / lengths.sum(), MINIMUM_SEGMENT_DURATION)
        fractions /= fractions.sum()
        times = self.swing_duration * np.concatenate([[0.0], np.cumsum(fractions)])
        times[-1] = self.swing_duration

        velocities = np.zeros((4, 3))
        velocities[1] = (knots[2] - knots[0]) / (times[2] - times[0])
        velocities[2] = (knots[3] - knots[1]) / (times[3] - times[1])
        velocities[3] = np.array([0.0, 0.0, self.touchdown_velocity])

        self._knots = knots
        self._knot_times = times
        self._coeffs = []
        for segment in range(3):
            t0, tf = times[segment], times[segment + 1]
            self._coeffs.append(np.array([
                self._solve_quintic_coefficients(
                    t0, tf,
                    knots[segment, axis], velocities[segment, axis], 0.0,
                    knots[segment + 1, axis], velocities[segment + 1, axis], 0.0,
                )
                for axis in range(3)
            ]))

    def get_waypoint_time(self, index: int) -> float:
        """Time at which the trajectory passes waypoint index (0 or 1)."""
        return float(self._knot_times[index + 1])

    def compute(self, time: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Evaluate the trajectory at a given time.

        Args:
            time: Time since lift-off, clamped to [0, swing_duration]

        Returns:
            Tuple of (position, velocity, acceleration), each shape (3,)
        """
        if self._knot_times is None:
            raise RuntimeError("Trajectory not initialized")
        time = float(np.clip(time, 0.0, self.swing_duration))
        segment = int(np.searchsorted(self._knot_times[1:-1], time, side='right'))

        position = np.zeros(3)
        velocity = np.zeros(3)
        acceleration = np.zeros(3)
        for axis in range(3):
            position[axis], velocity[axis], acceleration[axis] = self._evaluate_quintic(
                time, self._coeffs[segment][axis])
        return position, velocity, acceleration

    def compute_at_fraction(self, fraction: float) -> np.ndarray:
        return self.compute(fraction * self.swing_duration)[0]

    def get_max_speed(self, num_samples: int = 200) -> float:
        """Largest foot speed along the trajectory, from dense sampling."""
        times = np.linspace(0.0, self.swing_duration, num_samples)
        return float(max(np.linalg.norm(self.compute(t)[1]) for t in times))

    def sample_trajectory(self, num_samples: int = 50) -> np.ndarray:
        """(num_samples, 3) positions evenly spaced in time."""
        times = np.linspace(0.0, self.swing_duration, num_samples)
        return np.array([self.compute(t)[0] for t in times])
