"""
Manual intake of tracking numbers into a Shopee handover.
"""

from dataclasses import dataclass

from parcelhub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SHOPEE_PLATFORM = "shopee"


class HandoverNotFoundError(LookupError):
    def __init__(self, handover_id: int):
        super().__init__(f"Shopee handover not found: {handover_id}")
        self.handover_id = handover_id


@dataclass(slots=True)
class TrackingIntakeResult:
    added_count: int
    internal_duplicates: int
    database_duplicates: int

    @property
    def duplicates_skipped(self) -> int:
        return self.internal_duplicates + self.database_duplicates

    @property
    def message(self) -> str:
        if not self.added_count:
            return "No new tracking numbers were added (all were duplicates)."
        suffix = f". {self.duplicates_skipped} duplicates were skipped." if self.duplicates_skipped else "."
        return f"{self.added_count} tracking numbers added successfully{suffix}"


def dedupe_tracking_numbers(raw_numbers: list[str]) -> tuple[list[str], int]:
    """Trim and upper-case; return unique numbers in input order and the repeat count."""
    unique: dict[str, None] = {}
    repeats = 0
    for raw in raw_numbers:
        number = (raw or "").strip().upper()
        if not number:
            continue
        if number in unique:
            repeats += 1
        else:
            unique[number] = None
    return list(unique), repeats


class HandoverIntakeService:
    def __init__(self, repository):
        self.repository = repository

    async def add_tracking(self, handover_id: int, raw_numbers: list[str]) -> TrackingIntakeResult:
        """
        Attach new pending parcels to a Shopee handover.

        Numbers already stored anywhere are skipped, as are repeats within
        the request.

        Raises:
            HandoverNotFoundError: no Shopee handover with that id
        """
        handover = await self.repository.get_handover(handover_id, platform=SHOPEE_PLATFORM)
        if handover is None:
            raise HandoverNotFoundError(handover_id)

        unique, internal_duplicates = dedupe_tracking_numbers(raw_numbers)
        existing = await self.repository.find_existing_tracking_numbers(unique)
        new_numbers = [number for number in unique if number not in existing]

        added = await self.repository.add_parcels_to_handover(handover_id, new_numbers) if new_numbers else 0

        result = TrackingIntakeResult(
            added_count=added,
            internal_duplicates=internal_duplicates,
            database_duplicates=len(unique) - len(new_numbers),
        )
        logger.info(
            "Tracking numbers added to handover",
            handover_id=handover_id,
            added_count=result.added_count,
            internal_duplicates=result.internal_duplicates,
            database_duplicates=result.database_duplicates,
        )
        return result
