"""Interface protocol for footstep planners."""

from typing import Optional, Protocol, runtime_checkable

from .data_types import PlanningRequest, PlanningResult


@runtime_checkable
class FootstepPlanner(Protocol):
    """Protocol defining the interface for footstep planners.

    Planners turn a start stance, a goal and a terrain model into an ordered
    sequence of foot placements. Every call is independent: terrain and goal
    come with the request and no search state survives between calls.
    """

    last_result: Optional[PlanningResult]

    def plan(self, request: PlanningRequest) -> PlanningResult:
        """Compute a footstep plan.

        Args:
            request: Start feet, goal feet, terrain and optional cancel flag.

        Returns:
            PlanningResult with a status code and, on success, the plan.
        """
        ...

    def reset(self) -> None:
        """Forget the result of the previous call."""
        ...
