from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

from app.application.exceptions import DuplicateReferenceError
from app.application.ports.booking_store import BookingStorePort
from app.domain.entities.booking import Booking
from app.domain.entities.status import BookingKind, BookingStatus, PaymentStatus
from app.infrastructure.store.memory_store import (
    apply_changes,
    check_expectations,
    filter_bookings,
    sort_newest_first,
)

_DATETIME_FIELDS = ("created_at", "updated_at", "scheduled_at", "confirmation_sent_at")


class JsonBookingStore(BookingStorePort):
    def __init__(self, data_dir: str = "./data/bookings") -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._sequence_path = self._data_dir / "_sequences.json"
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def _get_file_path(self, booking_id: str) -> Path:
        return self._data_dir / f"{booking_id}.json"

    def _load(self, path: Path) -> Booking | None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return self._deserialize(json.load(f))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            self._logger.error("Corrupted booking file", extra={"path": str(path), "error": str(e)})
            return None

    def _load_all(self) -> list[Booking]:
        bookings = []
        for path in self._data_dir.glob("*.json"):
            if path == self._sequence_path:
                continue
            booking = self._load(path)
            if booking is not None:
                bookings.append(booking)
        return bookings

    def _write_json(self, path: Path, data: dict[str, Any]) -> None:
        """Write JSON atomically via a temp file and rename."""
        temp_path = path.with_suffix(".json.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_path.replace(path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def _serialize(self, booking: Booking) -> dict[str, Any]:
        data = asdict(booking)
        data["kind"] = booking.kind.value
        data["payment_status"] = booking.payment_status.value
        data["booking_status"] = booking.booking_status.value
        for name in _DATETIME_FIELDS:
            value = data.get(name)
            data[name] = value.isoformat() if value else None
        return data

    def _deserialize(self, data: dict[str, Any]) -> Booking:
        values = dict(data)
        values["kind"] = BookingKind(values["kind"])
        values["payment_status"] = PaymentStatus(values["payment_status"])
        values["booking_status"] = BookingStatus(values["booking_status"])
        for name in _DATETIME_FIELDS:
            raw = values.get(name)
            values[name] = datetime.fromisoformat(raw) if raw else None
        return Booking(**values)

    def get(self, booking_id: str) -> Booking | None:
        return self._load(self._get_file_path(booking_id))

    def get_by_reference(self, reference_number: str) -> Booking | None:
        for booking in self._load_all():
            if booking.reference_number == reference_number:
                return booking
        return None

    def find_by_tracker(self, tracker_token: str) -> Booking | None:
        for booking in self._load_all():
            if booking.tracker_token == tracker_token:
                return booking
        return None

    def find_by_email(self, kind: BookingKind, email: str) -> list[Booking]:
        wanted = email.strip().lower()
        return sort_newest_first(b for b in self._load_all() if b.kind == kind and b.email.lower() == wanted)

    def insert(self, booking: Booking) -> Booking:
        with self._lock:
            path = self._get_file_path(booking.id)
            if path.exists():
                raise DuplicateReferenceError(f"Booking id {booking.id} already exists")
            if self.get_by_reference(booking.reference_number) is not None:
                raise DuplicateReferenceError(f"Reference {booking.reference_number} already exists")
            self._write_json(path, self._serialize(booking))
            return booking

    def update(self, booking_id: str, changes: dict[str, Any], expect: dict[str, Any] | None = None) -> Booking | None:
        with self._lock:
            current = self.get(booking_id)
            if current is None:
                return None
            check_expectations(current, expect)
            updated = apply_changes(current, changes)
            self._write_json(self._get_file_path(booking_id), self._serialize(updated))
            return updated

    def next_sequence(self, prefix: str, year: int) -> int:
        key = f"{prefix}-{year}"
        with self._lock:
            sequences: dict[str, int] = {}
            if self._sequence_path.exists():
                with open(self._sequence_path, "r", encoding="utf-8") as f:
                    sequences = json.load(f)
            value = int(sequences.get(key, 0)) + 1
            sequences[key] = value
            self._write_json(self._sequence_path, sequences)
            return value

    def list_bookings(
        self,
        kind: BookingKind,
        offset: int,
        limit: int,
        booking_status: BookingStatus | None = None,
        payment_status: PaymentStatus | None = None,
        search: str | None = None,
    ) -> tuple[list[Booking], int]:
        matches = filter_bookings(self._load_all(), kind, booking_status, payment_status, search)
        return matches[offset : offset + limit], len(matches)
