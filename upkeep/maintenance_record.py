"""MaintenanceRecord class for recorded service events."""

from datetime import datetime
from typing import Optional


class MaintenanceRecord:
    """A maintenance event recorded against a vehicle."""

    def __init__(
        self,
        record_id: str,
        vehicle_id: str,
        title: str,
        date: datetime,
        mileage: Optional[float] = None,
        notes: Optional[str] = None,
    ):
        self.id = record_id
        self.vehicle_id = vehicle_id
        self.title = title
        self.date = date
        self.mileage = mileage
        self.notes = notes
