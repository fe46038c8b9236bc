"""
Courier roster lookups and vehicle-type classification.

Vehicle types are best-effort: the roster's recorded type wins, otherwise
a keyword heuristic on the name is used. Callers surface the unmatched
names so the roster can be curated by hand.
"""

from collections.abc import Iterable

from parcelhub.features.trip_analysis.domain.models import VEHICLE_2W, VEHICLE_3W, VEHICLE_4W
from parcelhub.models.domain.parcel_domain import CourierRecord

TWO_WHEEL_KEYWORDS = ("bike", "motor", "scooter")
FOUR_WHEEL_KEYWORDS = ("van", "truck", "car")

VEHICLE_TYPE_ORDER = {VEHICLE_4W: 0, VEHICLE_3W: 1, VEHICLE_2W: 2}
UNKNOWN_TYPE_ORDER = 3


def estimate_vehicle_type(name: str) -> str:
    lowered = (name or "").lower()
    if any(keyword in lowered for keyword in TWO_WHEEL_KEYWORDS):
        return VEHICLE_2W
    if any(keyword in lowered for keyword in FOUR_WHEEL_KEYWORDS):
        return VEHICLE_4W
    # Most unlisted drivers ride motorcycles
    return VEHICLE_2W


def vehicle_sort_key(vehicle_type: str, name: str) -> tuple[int, str, str]:
    """4w, 3w, 2w, then any other type; names case-insensitively within a type."""
    order = VEHICLE_TYPE_ORDER.get((vehicle_type or "").lower(), UNKNOWN_TYPE_ORDER)
    return order, (name or "").casefold(), name or ""


def _words_overlap(candidate: str, roster_name: str) -> bool:
    roster_words = roster_name.lower().split()
    candidate_words = candidate.lower().split()
    if not roster_words or not candidate_words:
        return False

    matching = [
        word
        for word in roster_words
        if any(other in word or word in other for other in candidate_words)
    ]
    return len(matching) >= min(2, len(roster_words))


class Roster:
    """Reference list of couriers plus extra names accepted as table anchors."""

    def __init__(self, couriers: Iterable[CourierRecord] = (), fallback_names: Iterable[str] = ()):
        self.couriers = list(couriers)
        self.fallback_names = [name.strip() for name in fallback_names if name and name.strip()]

    def __len__(self) -> int:
        return len(self.couriers)

    def find(self, name: str, fuzzy: bool = False) -> CourierRecord | None:
        """
        Look up a courier by name.

        Exact match first, then case-insensitive. With fuzzy=True a roster
        name also matches when at least min(2, its word count) of its words
        overlap the candidate's words.
        """
        candidate = (name or "").strip()
        if not candidate:
            return None

        for courier in self.couriers:
            if courier.name.strip() == candidate:
                return courier

        lowered = candidate.lower()
        for courier in self.couriers:
            if courier.name.strip().lower() == lowered:
                return courier

        if fuzzy:
            for courier in self.couriers:
                if _words_overlap(candidate, courier.name):
                    return courier

        return None

    def known_names(self) -> list[str]:
        """Upper-cased roster and fallback names, de-duplicated, roster first."""
        seen: dict[str, None] = {}
        for name in [c.name for c in self.couriers] + self.fallback_names:
            upper = name.strip().upper()
            if upper:
                seen.setdefault(upper, None)
        return list(seen)


def classify_vehicle_type(name: str, roster: Roster | None = None, fuzzy: bool = False) -> str:
    courier = roster.find(name, fuzzy=fuzzy) if roster is not None else None
    if courier is not None and courier.type:
        return courier.type.strip().lower()
    return estimate_vehicle_type(name)
