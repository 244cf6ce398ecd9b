"""Shared fixtures: a fixed clock, an in-memory gateway and a manager."""
from datetime import datetime, timezone

import pytest

from upkeep import DEFAULT_CATALOG, MemoryGateway, ReminderManager, VehicleSnapshot

NOW = datetime(2024, 7, 20, tzinfo=timezone.utc)


def utc(year, month, day, hour=0):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def snapshot():
    return VehicleSnapshot("fit", current_km=48000, avg_km_per_month=1000, name="Honda Fit")


@pytest.fixture
def gateway(snapshot):
    gw = MemoryGateway(clock=lambda: NOW)
    gw.save_vehicle_snapshot(snapshot)
    return gw


@pytest.fixture
def manager(gateway):
    return ReminderManager(gateway, DEFAULT_CATALOG, clock=lambda: NOW)
