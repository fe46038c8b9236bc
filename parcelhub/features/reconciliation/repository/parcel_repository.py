"""
Persistence layer for parcels and their audit trail.

ParcelStore is the contract the reconciliation engine and the upload jobs
depend on. ParcelRepository implements it on the shared Postgres pool; the
tests use an in-memory implementation of the same protocol.
"""

from collections.abc import Iterable
from typing import Any, Protocol

from psycopg import sql

from parcelhub.db.helpers import (
    DatabaseError,
    execute_query,
    execute_transaction,
    fetch_all,
    fetch_one,
    with_db_retry,
)
from parcelhub.infrastructure.observability.logging import get_logger
from parcelhub.models.domain.parcel_domain import (
    CourierRecord,
    ExportRecord,
    HandoverRecord,
    ParcelEventLogEntry,
    ParcelRecord,
)

logger = get_logger(__name__)

# Columns an update record is allowed to touch
UPDATABLE_COLUMNS = frozenset(
    {
        "status",
        "direction",
        "sub_direction",
        "updated_by",
        "updated_at",
        "port_code",
        "package_type",
    }
)


class ParcelRepositoryError(DatabaseError):
    """More specific exception for repository failures."""


class ParcelStore(Protocol):
    async def find_parcels(
        self, tracking_number: str, handover_id: int | None = None
    ) -> list[ParcelRecord]: ...

    async def update_parcels(
        self, tracking_number: str, fields: dict[str, Any], handover_id: int | None = None
    ) -> int: ...

    async def append_event_log(self, entry: ParcelEventLogEntry) -> None: ...

    async def create_export(self, export_name: str, export_dir: str) -> ExportRecord: ...


class ParcelRepository:
    """Postgres-backed ParcelStore plus the handover/roster reads around it."""

    PARCEL_SELECT_COLUMNS = """
        id, tracking_number, status, direction, sub_direction, updated_by,
        updated_at, port_code, package_type, handover_id
    """

    @staticmethod
    def _row_to_parcel(row: dict) -> ParcelRecord:
        return ParcelRecord(
            id=row.get("id"),
            tracking_number=row["tracking_number"],
            status=row.get("status"),
            direction=row.get("direction"),
            sub_direction=row.get("sub_direction"),
            updated_by=row.get("updated_by"),
            updated_at=row.get("updated_at"),
            port_code=row.get("port_code"),
            package_type=row.get("package_type"),
            handover_id=row.get("handover_id"),
        )

    @with_db_retry()
    async def find_parcels(
        self, tracking_number: str, handover_id: int | None = None
    ) -> list[ParcelRecord]:
        """All rows sharing a tracking number, optionally within one handover."""
        if handover_id is None:
            query = f"""
                SELECT {self.PARCEL_SELECT_COLUMNS}
                FROM parcels
                WHERE tracking_number = %s
                ORDER BY id
            """
            params: tuple = (tracking_number,)
        else:
            query = f"""
                SELECT {self.PARCEL_SELECT_COLUMNS}
                FROM parcels
                WHERE tracking_number = %s AND handover_id = %s
                ORDER BY id
            """
            params = (tracking_number, handover_id)

        rows = await fetch_all(query, params)
        return [self._row_to_parcel(row) for row in rows]

    @with_db_retry()
    async def update_parcels(
        self, tracking_number: str, fields: dict[str, Any], handover_id: int | None = None
    ) -> int:
        """Apply a partial update to every matching row; returns rows changed."""
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ParcelRepositoryError(
                f"Refusing to update unknown columns: {sorted(unknown)}",
                operation="update_parcels",
                recoverable=False,
            )
        if not fields:
            return 0

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in fields
        )
        where = sql.SQL("tracking_number = %s")
        params: list[Any] = [*fields.values(), tracking_number]
        if handover_id is not None:
            where = sql.SQL("tracking_number = %s AND handover_id = %s")
            params.append(handover_id)

        query = sql.SQL("UPDATE parcels SET {} WHERE {}").format(assignments, where)
        return await execute_query(query, tuple(params))

    @with_db_retry()
    async def append_event_log(self, entry: ParcelEventLogEntry) -> None:
        query = """
            INSERT INTO parcel_event_logs (
                tracking_number, updated_by, from_status, new_status, created_at
            )
            VALUES (%s, %s, %s, %s, COALESCE(%s, NOW()))
        """
        await execute_query(
            query,
            (
                entry.tracking_number,
                entry.updated_by,
                entry.from_status,
                entry.new_status,
                entry.created_at,
            ),
        )

    async def create_export(self, export_name: str, export_dir: str) -> ExportRecord:
        query = """
            INSERT INTO exports (export_name, export_dir)
            VALUES (%s, %s)
            RETURNING id, export_name, export_dir
        """
        row = await fetch_one(query, (export_name, export_dir))
        if not row:
            raise ParcelRepositoryError("Failed to create export marker", operation="create_export")

        logger.info("Export marker created", export_id=row["id"], export_name=export_name)
        return ExportRecord(id=row["id"], export_name=row["export_name"], export_dir=row["export_dir"])

    async def list_event_logs(self, tracking_number: str) -> list[ParcelEventLogEntry]:
        """Audit trail for one parcel, newest first."""
        query = """
            SELECT id, tracking_number, updated_by, from_status, new_status, created_at
            FROM parcel_event_logs
            WHERE tracking_number = %s
            ORDER BY created_at DESC, id DESC
        """
        rows = await fetch_all(query, (tracking_number,))
        return [
            ParcelEventLogEntry(
                id=row["id"],
                tracking_number=row["tracking_number"],
                updated_by=row["updated_by"],
                from_status=row["from_status"],
                new_status=row["new_status"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def list_couriers(self) -> list[CourierRecord]:
        query = """
            SELECT id, name, type, is_lazada, is_shopee, laz_rate, shopee_rate
            FROM couriers
            ORDER BY created_at DESC
        """
        rows = await fetch_all(query)
        return [
            CourierRecord(
                id=row["id"],
                name=row["name"],
                type=row["type"],
                is_lazada=bool(row.get("is_lazada")),
                is_shopee=bool(row.get("is_shopee")),
                laz_rate=row.get("laz_rate"),
                shopee_rate=row.get("shopee_rate"),
            )
            for row in rows
        ]

    async def get_handover(self, handover_id: int, platform: str | None = None) -> HandoverRecord | None:
        query = """
            SELECT id, file_name, handover_date, status, platform, quantity
            FROM handovers
            WHERE id = %s AND (%s::text IS NULL OR platform = %s)
        """
        row = await fetch_one(query, (handover_id, platform, platform))
        if not row:
            return None

        return HandoverRecord(
            id=row["id"],
            file_name=row["file_name"],
            handover_date=row.get("handover_date"),
            status=row["status"],
            platform=row["platform"],
            quantity=row.get("quantity") or 0,
        )

    async def find_existing_tracking_numbers(self, tracking_numbers: Iterable[str]) -> set[str]:
        numbers = list(tracking_numbers)
        if not numbers:
            return set()

        query = "SELECT tracking_number FROM parcels WHERE tracking_number = ANY(%s)"
        rows = await fetch_all(query, (numbers,))
        return {row["tracking_number"] for row in rows}

    async def add_parcels_to_handover(self, handover_id: int, tracking_numbers: list[str]) -> int:
        """Insert pending parcels and bump the handover quantity in one transaction."""
        if not tracking_numbers:
            return 0

        insert_query = """
            INSERT INTO parcels (
                tracking_number, handover_id, port_code, package_type, updated_by, status
            )
            VALUES (%s, %s, '', '', 'system', 'pending')
        """
        queries: list[tuple] = [
            (insert_query, (tracking_number, handover_id)) for tracking_number in tracking_numbers
        ]
        queries.append(
            (
                "UPDATE handovers SET quantity = quantity + %s WHERE id = %s",
                (len(tracking_numbers), handover_id),
            )
        )

        await execute_transaction(queries)
        logger.info("Parcels added to handover", handover_id=handover_id, count=len(tracking_numbers))
        return len(tracking_numbers)


parcel_repository = ParcelRepository()
