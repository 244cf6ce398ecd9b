"""Suggestion aggregator: ranked upcoming maintenance for one vehicle."""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from .calculations import (
    build_message,
    classify_confidence,
    classify_status,
    estimate_due,
    urgency_score,
)
from .catalog import Catalog, MaintenanceItemConfig
from .due_estimate import DueEstimate
from .maintenance_record import MaintenanceRecord
from .status import Confidence, SuggestionStatus
from .vehicle import VehicleSnapshot


@dataclass
class Suggestion:
    """Forecast for one catalog item on one vehicle."""

    item: MaintenanceItemConfig
    estimate: DueEstimate
    score: int
    status: SuggestionStatus
    confidence: Confidence
    message: str
    last_record: Optional[MaintenanceRecord] = None

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def title(self) -> str:
        return self.item.title

    @property
    def icon(self) -> str:
        return self.item.icon

    @property
    def template_id(self) -> str:
        return self.item.template_id


def find_last_record(
    records: Iterable[MaintenanceRecord], keywords: Sequence[str]
) -> Optional[MaintenanceRecord]:
    """Most recent record whose title contains any keyword (case-insensitive)."""
    lowered = [k.lower() for k in keywords]
    matching = [
        r for r in records if any(k in (r.title or "").lower() for k in lowered)
    ]
    if not matching:
        return None
    return max(matching, key=lambda r: r.date)


def suggest_item(
    item: MaintenanceItemConfig,
    snapshot: VehicleSnapshot,
    records: Sequence[MaintenanceRecord],
    now: datetime,
) -> Suggestion:
    """Run estimate -> score -> status -> confidence for one catalog item."""
    last = find_last_record(records, item.keywords)
    estimate = estimate_due(
        item.interval,
        now,
        fallback_start=snapshot.ownership_start(now),
        last_km=last.mileage if last else None,
        last_date=last.date if last else None,
        current_km=snapshot.current_km,
        avg_km_per_month=snapshot.avg_km_per_month,
    )
    score = urgency_score(estimate, item.interval)
    status = classify_status(estimate, score)
    confidence = classify_confidence(last is not None, snapshot.has_odometer)
    return Suggestion(
        item=item,
        estimate=estimate,
        score=score,
        status=status,
        confidence=confidence,
        message=build_message(estimate, status, confidence),
        last_record=last,
    )


def generate_suggestions(
    snapshot: VehicleSnapshot,
    records: Sequence[MaintenanceRecord],
    catalog: Catalog,
    now: datetime,
) -> List[Suggestion]:
    """
    Forecast every catalog item and return the ones worth showing.

    Items with history are always kept. Items without history are kept
    only when they are not OK, so a fresh vehicle doesn't list every task.
    Sorted by descending score.
    """
    records = [r for r in records if r.vehicle_id == snapshot.vehicle_id]
    suggestions = []
    for item in catalog:
        suggestion = suggest_item(item, snapshot, records, now)
        if suggestion.last_record is not None or suggestion.status != SuggestionStatus.OK:
            suggestions.append(suggestion)
    return sorted(suggestions, key=lambda s: s.score, reverse=True)
