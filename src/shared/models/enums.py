from enum import Enum


class RouteStatus(str, Enum):
    """Статусы точки доставки."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (RouteStatus.COMPLETED, RouteStatus.REJECTED)


class MovePlaceType(int, Enum):
    """Тип перемещения места (этикетки)."""
    LOAD = 1
    UNLOAD = 2
    RETURN = 3
