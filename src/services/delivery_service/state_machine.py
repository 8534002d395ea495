from src.shared.models.enums import RouteStatus
from src.services.delivery_service.errors import ConflictError


class RouteStateMachine:
    ALLOWED_TRANSITIONS = {
        RouteStatus.PENDING: [
            RouteStatus.PENDING,
            RouteStatus.IN_PROGRESS,
            RouteStatus.COMPLETED,
            RouteStatus.REJECTED,
        ],
        RouteStatus.IN_PROGRESS: [
            RouteStatus.IN_PROGRESS,
            RouteStatus.COMPLETED,
            RouteStatus.REJECTED,
        ],
        RouteStatus.COMPLETED: [],
        RouteStatus.REJECTED: [],
    }

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = RouteStatus(current_status)
            new = RouteStatus(new_status)
            return new in RouteStateMachine.ALLOWED_TRANSITIONS.get(curr, [])
        except ValueError:
            return False

    @staticmethod
    def ensure_transition(current_status: str, new_status: str) -> None:
        """Raises ConflictError when the route cannot move to new_status."""
        if RouteStateMachine.can_transition(current_status, new_status):
            return
        if RouteStatus(current_status).is_terminal:
            raise ConflictError("ROUTE_ALREADY_CLOSED", desc={"status": str(current_status)})
        raise ConflictError(
            "INVALID_STATUS_TRANSITION",
            desc={"from": str(current_status), "to": str(new_status)},
        )
