"""Raw transfer events and the JSON-lines feed used by the command line runner.

Chain decoding happens upstream: the feed only sees opaque account ids, an
unsigned amount (integer or decimal string) and a millisecond timestamp.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class RawTransferEvent(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    from_: str = Field(..., alias="from", min_length=1)
    to: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)
    timestamp: int = Field(..., ge=0, description="Milliseconds since the epoch")

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: object) -> object:
        # Amounts above 64 bits usually arrive as decimal strings.
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return value

    @property
    def occurred_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)


class JsonLinesFeed:
    """Yield batches of at most ``batch_size`` events from a JSON-lines file."""

    def __init__(self, path: Path, batch_size: int = 100) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._path = Path(path)
        self._batch_size = batch_size

    def __iter__(self) -> Iterator[list[RawTransferEvent]]:
        batch: list[RawTransferEvent] = []
        with self._path.open("r", encoding="utf-8") as handle:
            for line_no, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    event = RawTransferEvent.model_validate_json(line)
                except ValidationError as exc:
                    raise ValueError(f"{self._path}:{line_no}: invalid transfer event: {exc}") from exc
                batch.append(event)
                if len(batch) >= self._batch_size:
                    yield batch
                    batch = []
        if batch:
            yield batch


__all__ = ["JsonLinesFeed", "RawTransferEvent"]
