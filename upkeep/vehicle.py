"""Read-only vehicle state consumed by the estimator."""

from datetime import datetime, timezone
from typing import Optional


class VehicleSnapshot:
    """Odometer, driving rate, registration and inspection data for one vehicle."""

    def __init__(
        self,
        vehicle_id: str,
        current_km: Optional[float] = None,
        avg_km_per_month: Optional[float] = None,
        first_reg_ym: Optional[str] = None,
        model_year: Optional[int] = None,
        created_at: Optional[datetime] = None,
        name: Optional[str] = None,
        inspection_date: Optional[datetime] = None,
    ):
        self.vehicle_id = vehicle_id
        self.current_km = current_km
        self.avg_km_per_month = avg_km_per_month
        self.first_reg_ym = first_reg_ym
        self.model_year = model_year
        self.created_at = created_at
        self.name = name
        # Expiry of the statutory inspection (shaken), if known.
        self.inspection_date = inspection_date

    @property
    def display_name(self) -> str:
        return self.name or self.vehicle_id

    @property
    def has_odometer(self) -> bool:
        """A zero reading counts as not recorded."""
        return self.current_km is not None and self.current_km > 0

    def ownership_start(self, now: datetime) -> datetime:
        """
        Fallback start instant for items with no history.

        Preference: first registration month, model year, record creation,
        then ``now``.
        """
        if self.first_reg_ym:
            year, month = (int(p) for p in self.first_reg_ym.split("-")[:2])
            return datetime(year, month, 1, tzinfo=timezone.utc)
        if self.model_year:
            return datetime(int(self.model_year), 1, 1, tzinfo=timezone.utc)
        if self.created_at is not None:
            return self.created_at
        return now
