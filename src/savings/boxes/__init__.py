"""Box layer -- accrual-on-read orchestration, movements and views."""

from savings.boxes.schemas import BoxCreate, BoxUpdate, Movement
from savings.boxes.service import BoxService
from savings.boxes.view import BoxView

__all__ = ["BoxCreate", "BoxService", "BoxUpdate", "BoxView", "Movement"]
