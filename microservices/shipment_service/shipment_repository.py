"""
Shipment Repository

Data access layer for shipments, hazmat declarations, chain of custody and
the shipping-supply ledger using PostgresClient (asyncpg).
Matches schema: shipping.*
"""

import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from core.config_manager import ConfigManager
from core.postgres_client import PostgresClient, affected_rows

from .models import (
    CustodyEvent,
    CustodyEventType,
    HazmatDeclaration,
    LabelHold,
    LabelResult,
    LEGACY_STATUS_ALIASES,
    SampleLot,
    Shipment,
    ShipmentStatus,
    SupplyItem,
    SupplyTransaction,
    SupplyTransactionType,
    SupplyUsage,
    normalize_status,
)
from .protocols import InsufficientQuantityError, InsufficientSupplyError, ShipmentConflictError

logger = logging.getLogger(__name__)

# JSONB columns on shipping.shipments
JSON_COLUMNS = {
    "line_items",
    "recipient",
    "delivery_address",
    "validated_address",
    "last_rate_quote",
    "tracking_snapshot",
    "label_hold",
}

# Columns update_shipment / transition_status may touch; label_hold only moves with the claim
UPDATABLE_COLUMNS = (JSON_COLUMNS - {"label_hold"}) | {
    "address_validated",
    "weight",
    "weight_unit",
    "service_type",
    "estimated_delivery",
    "special_instructions",
    "prepared_by",
    "cancellation_reason",
}

# Lifecycle timestamp set when entering a status
STATUS_TIMESTAMPS = {
    ShipmentStatus.SHIPPED: "shipped_at",
    ShipmentStatus.DELIVERED: "delivered_at",
    ShipmentStatus.CANCELLED: "cancelled_at",
}


def stored_status_values(statuses: List[ShipmentStatus]) -> List[str]:
    """Status strings to match in SQL, including legacy aliases still stored in old rows"""
    values = [s.value for s in statuses]
    for legacy, status in LEGACY_STATUS_ALIASES.items():
        if status in statuses:
            values.append(legacy)
    return values


def _to_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [v.model_dump(mode="json") if hasattr(v, "model_dump") else v for v in value]
    return json.dumps(value)


def _from_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _requested_note(remaining: Dict[str, Any]) -> str:
    if not remaining:
        return "Shipment requested"
    return "Shipment requested; remaining " + ", ".join(f"{lot} {qty:g}" for lot, qty in remaining.items())


class ShipmentRepository:
    """
    Repository for shipment operations.

    Tables:
        - shipping.shipments: shipment records, label claim columns
        - shipping.sample_lots: sample inventory, stock taken on request
        - shipping.hazmat_declarations: one per hazmat shipment
        - shipping.shipment_custody_events: chain of custody
        - shipping.shipping_supplies: supply ledger counts
        - shipping.shipment_supplies_used: supplies consumed per shipment
        - shipping.supply_transactions: usage / restock history
    """

    def __init__(self, config: Optional[ConfigManager] = None, db: Optional[PostgresClient] = None):
        """Initialize Shipment Repository with PostgresClient"""
        if config is None:
            config = ConfigManager("shipment_service")

        if db is None:
            infra = config.get_service_config().infrastructure
            db = PostgresClient(
                service_name="shipment_service",
                database=infra.postgres_db,
                username=infra.postgres_user,
                password=infra.postgres_password,
                min_size=infra.postgres_pool_min_size,
                max_size=infra.postgres_pool_max_size,
            )
        self.db = db

        self.schema = "shipping"
        self.shipments_table = f"{self.schema}.shipments"
        self.lots_table = f"{self.schema}.sample_lots"
        self.declarations_table = f"{self.schema}.hazmat_declarations"
        self.custody_table = f"{self.schema}.shipment_custody_events"
        self.supplies_table = f"{self.schema}.shipping_supplies"
        self.supplies_used_table = f"{self.schema}.shipment_supplies_used"
        self.supply_transactions_table = f"{self.schema}.supply_transactions"

        logger.info("ShipmentRepository initialized with PostgresClient")

    async def close(self):
        await self.db.close()

    # =========================================================================
    # Sample lots
    # =========================================================================

    async def get_sample_lots(self, lot_numbers: List[str]) -> Dict[str, SampleLot]:
        if not lot_numbers:
            return {}
        try:
            rows = await self.db.query(
                f"SELECT lot_number, sample_name, available_quantity, unit, status FROM {self.lots_table} "
                f"WHERE lot_number = ANY($1::text[])",
                [list(lot_numbers)],
            )
            return {
                row["lot_number"]: SampleLot(
                    lot_number=row["lot_number"],
                    sample_name=row.get("sample_name"),
                    available_quantity=float(row["available_quantity"] or 0),
                    unit=row.get("unit") or "ml",
                    status=row.get("status") or "active",
                )
                for row in rows
            }
        except Exception as e:
            logger.error(f"Failed to get sample lots {lot_numbers}: {e}")
            raise

    # =========================================================================
    # Shipments
    # =========================================================================

    async def _take_lot_quantity(self, conn, lot_number: str, quantity: Decimal) -> Decimal:
        """Conditional decrement; a lot reaching zero is marked depleted"""
        remaining = await conn.fetchval(
            f"""
            UPDATE {self.lots_table}
            SET available_quantity = available_quantity - $2,
                status = CASE WHEN available_quantity - $2 <= 0 THEN 'depleted' ELSE status END,
                updated_at = NOW()
            WHERE lot_number = $1 AND available_quantity >= $2
            RETURNING available_quantity
            """,
            lot_number,
            quantity,
        )
        if remaining is None:
            available = await conn.fetchval(
                f"SELECT available_quantity FROM {self.lots_table} WHERE lot_number = $1", lot_number
            )
            raise InsufficientQuantityError(
                f"Insufficient quantity for lot {lot_number}: requested {quantity:g}, available {available or 0:g}",
                lot_number=lot_number,
                available=float(available or 0),
                requested=float(quantity),
            )
        return remaining

    async def create_shipment(
        self,
        shipment_data: Dict[str, Any],
        performed_by: Optional[str] = None,
        lot_quantities: Optional[Dict[str, Decimal]] = None,
    ) -> Shipment:
        try:
            shipment_id = f"shp_{uuid.uuid4().hex[:12]}"
            async with self.db.transaction() as conn:
                remaining = {}
                for lot_number, quantity in (lot_quantities or {}).items():
                    remaining[lot_number] = await self._take_lot_quantity(conn, lot_number, quantity)

                seq = await conn.fetchval(f"SELECT nextval('{self.schema}.shipment_number_seq')")
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO {self.shipments_table} (
                        shipment_id, shipment_number, status, line_items, recipient,
                        delivery_address, scheduled_ship_date, total_quantity, quantity_unit,
                        is_hazmat, special_instructions, requested_by, created_at, updated_at
                    ) VALUES ($1, $2, $3, $4::jsonb, $5::jsonb, $6::jsonb, $7, $8, $9, $10, $11, $12, NOW(), NOW())
                    RETURNING *
                    """,
                    shipment_id,
                    f"SHIP-{seq:06d}",
                    ShipmentStatus.INITIATED.value,
                    _to_json(shipment_data["line_items"]),
                    _to_json(shipment_data["recipient"]),
                    _to_json(shipment_data["delivery_address"]),
                    shipment_data.get("scheduled_ship_date"),
                    shipment_data["total_quantity"],
                    shipment_data["quantity_unit"],
                    shipment_data["is_hazmat"],
                    shipment_data.get("special_instructions"),
                    shipment_data.get("requested_by"),
                )
                await self._insert_custody(
                    conn, shipment_id, CustodyEventType.CREATED, performed_by, None, _requested_note(remaining)
                )
            return self._row_to_shipment(dict(row))
        except InsufficientQuantityError:
            raise
        except Exception as e:
            logger.error(f"Failed to create shipment: {e}")
            raise

    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        try:
            row = await self.db.query_row(
                f"SELECT * FROM {self.shipments_table} WHERE shipment_id = $1", [shipment_id]
            )
            return self._row_to_shipment(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get shipment {shipment_id}: {e}")
            raise

    async def get_shipment_by_tracking(self, tracking_number: str) -> Optional[Shipment]:
        try:
            row = await self.db.query_row(
                f"SELECT * FROM {self.shipments_table} WHERE tracking_number = $1", [tracking_number]
            )
            return self._row_to_shipment(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get shipment by tracking {tracking_number}: {e}")
            raise

    async def list_shipments(
        self,
        statuses: Optional[List[ShipmentStatus]] = None,
        limit: int = 50,
        offset: int = 0,
        oldest_first: bool = False,
    ) -> List[Shipment]:
        try:
            params: List[Any] = []
            where_clause = "TRUE"
            if statuses:
                params.append(stored_status_values(statuses))
                where_clause = "status = ANY($1::text[])"
            params.extend([limit, offset])
            order = "ASC" if oldest_first else "DESC"
            rows = await self.db.query(
                f"""
                SELECT * FROM {self.shipments_table}
                WHERE {where_clause}
                ORDER BY created_at {order}
                LIMIT ${len(params) - 1} OFFSET ${len(params)}
                """,
                params,
            )
            return [self._row_to_shipment(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to list shipments: {e}")
            raise

    @staticmethod
    def _set_clause(updates: Dict[str, Any], start: int) -> Tuple[List[str], List[Any]]:
        assignments, params = [], []
        for column, value in updates.items():
            if column not in UPDATABLE_COLUMNS:
                raise ValueError(f"Column {column} cannot be updated")
            index = start + len(params)
            if column in JSON_COLUMNS:
                assignments.append(f"{column} = ${index}::jsonb")
                params.append(_to_json(value))
            else:
                assignments.append(f"{column} = ${index}")
                params.append(value)
        return assignments, params

    async def update_shipment(self, shipment_id: str, updates: Dict[str, Any]) -> Optional[Shipment]:
        if not updates:
            return await self.get_shipment(shipment_id)
        try:
            assignments, params = self._set_clause(updates, start=2)
            row = await self.db.query_row(
                f"""
                UPDATE {self.shipments_table}
                SET {", ".join(assignments)}, updated_at = NOW()
                WHERE shipment_id = $1
                RETURNING *
                """,
                [shipment_id, *params],
            )
            return self._row_to_shipment(row) if row else None
        except Exception as e:
            logger.error(f"Failed to update shipment {shipment_id}: {e}")
            raise

    async def transition_status(
        self,
        shipment_id: str,
        from_statuses: List[ShipmentStatus],
        to_status: ShipmentStatus,
        updates: Optional[Dict[str, Any]] = None,
        custody_event: Optional[Dict[str, Any]] = None,
    ) -> Optional[Shipment]:
        try:
            assignments, params = self._set_clause(updates or {}, start=4)
            assignments.append("status = $3")
            timestamp_column = STATUS_TIMESTAMPS.get(to_status)
            if timestamp_column:
                assignments.append(f"{timestamp_column} = NOW()")

            async with self.db.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE {self.shipments_table}
                    SET {", ".join(assignments)}, updated_at = NOW()
                    WHERE shipment_id = $1 AND status = ANY($2::text[])
                    RETURNING *
                    """,
                    shipment_id,
                    stored_status_values(from_statuses),
                    to_status.value,
                    *params,
                )
                if row is None:
                    return None
                if custody_event:
                    await self._insert_custody(
                        conn,
                        shipment_id,
                        custody_event["event_type"],
                        custody_event.get("performed_by"),
                        custody_event.get("location"),
                        custody_event.get("notes"),
                    )
            return self._row_to_shipment(dict(row))
        except Exception as e:
            logger.error(f"Failed to move shipment {shipment_id} to {to_status.value}: {e}")
            raise

    async def delete_shipment(self, shipment_id: str) -> bool:
        try:
            async with self.db.transaction() as conn:
                for table in (self.declarations_table, self.custody_table, self.supplies_used_table):
                    await conn.execute(f"DELETE FROM {table} WHERE shipment_id = $1", shipment_id)
                status = await conn.execute(
                    f"DELETE FROM {self.shipments_table} WHERE shipment_id = $1", shipment_id
                )
            return affected_rows(status) > 0
        except Exception as e:
            logger.error(f"Failed to delete shipment {shipment_id}: {e}")
            raise

    # =========================================================================
    # Label claim / completion
    # =========================================================================

    async def claim_label(self, shipment_id: str, claim_token: str, ttl_seconds: int) -> bool:
        try:
            status = await self.db.execute(
                f"""
                UPDATE {self.shipments_table}
                SET label_claim_token = $2,
                    label_claim_expires_at = NOW() + make_interval(secs => $3)
                WHERE shipment_id = $1
                  AND tracking_number IS NULL
                  AND label_hold IS NULL
                  AND status = ANY($4::text[])
                  AND (label_claim_token IS NULL OR label_claim_expires_at < NOW())
                """,
                [shipment_id, claim_token, float(ttl_seconds), stored_status_values([ShipmentStatus.PROCESSING])],
            )
            return affected_rows(status) == 1
        except Exception as e:
            logger.error(f"Failed to claim label slot for {shipment_id}: {e}")
            raise

    async def release_label_claim(self, shipment_id: str, claim_token: str) -> bool:
        try:
            status = await self.db.execute(
                f"""
                UPDATE {self.shipments_table}
                SET label_claim_token = NULL, label_claim_expires_at = NULL
                WHERE shipment_id = $1 AND label_claim_token = $2
                  AND tracking_number IS NULL AND label_hold IS NULL
                """,
                [shipment_id, claim_token],
            )
            return affected_rows(status) == 1
        except Exception as e:
            logger.error(f"Failed to release label claim for {shipment_id}: {e}")
            raise

    async def hold_label_claim(self, shipment_id: str, hold: LabelHold) -> bool:
        # Own statement, outside any transaction that may just have failed
        try:
            status = await self.db.execute(
                f"""
                UPDATE {self.shipments_table}
                SET label_hold = $3::jsonb, label_claim_expires_at = 'infinity', updated_at = NOW()
                WHERE shipment_id = $1 AND label_claim_token = $2 AND tracking_number IS NULL
                """,
                [shipment_id, hold.claim_token, _to_json(hold)],
            )
            return affected_rows(status) == 1
        except Exception as e:
            logger.error(f"Failed to hold label slot for {shipment_id}: {e}")
            raise

    async def clear_label_hold(self, shipment_id: str) -> Optional[Shipment]:
        try:
            row = await self.db.query_row(
                f"""
                UPDATE {self.shipments_table}
                SET label_hold = NULL, label_claim_token = NULL, label_claim_expires_at = NULL, updated_at = NOW()
                WHERE shipment_id = $1 AND label_hold IS NOT NULL
                RETURNING *
                """,
                [shipment_id],
            )
            return self._row_to_shipment(row) if row else None
        except Exception as e:
            logger.error(f"Failed to clear label hold for {shipment_id}: {e}")
            raise

    async def complete_label(
        self,
        shipment_id: str,
        claim_token: str,
        label: LabelResult,
        weight: float,
        weight_unit: str,
        service_type: str,
        supplies_used: List[SupplyUsage],
        performed_by: Optional[str] = None,
    ) -> Tuple[Shipment, List[SupplyItem]]:
        async with self.db.transaction() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE {self.shipments_table}
                SET status = $3, tracking_number = $4, label_url = $5, shipping_cost = $6,
                    estimated_delivery = $7, weight = $8, weight_unit = $9, service_type = $10,
                    prepared_by = COALESCE(prepared_by, $11),
                    label_claim_token = NULL, label_claim_expires_at = NULL, label_hold = NULL,
                    shipped_at = NOW(), updated_at = NOW()
                WHERE shipment_id = $1 AND label_claim_token = $2
                  AND tracking_number IS NULL AND status = ANY($12::text[])
                RETURNING *
                """,
                shipment_id,
                claim_token,
                ShipmentStatus.SHIPPED.value,
                label.tracking_number,
                label.label_url,
                label.cost,
                label.estimated_delivery,
                weight,
                weight_unit,
                service_type,
                performed_by,
                stored_status_values([ShipmentStatus.PROCESSING]),
            )
            if row is None:
                raise ShipmentConflictError(f"Label claim for shipment {shipment_id} is no longer held")

            supplies_after: List[SupplyItem] = []
            for usage in supplies_used:
                supply_row = await conn.fetchrow(
                    f"""
                    UPDATE {self.supplies_table}
                    SET current_quantity = current_quantity - $2, updated_at = NOW()
                    WHERE supply_id = $1 AND current_quantity >= $2
                    RETURNING *
                    """,
                    usage.supply_id,
                    usage.quantity,
                )
                if supply_row is None:
                    available = await conn.fetchval(
                        f"SELECT current_quantity FROM {self.supplies_table} WHERE supply_id = $1",
                        usage.supply_id,
                    )
                    raise InsufficientSupplyError(
                        f"Insufficient stock for supply {usage.supply_id}",
                        supply_id=usage.supply_id,
                        available=available or 0,
                        requested=usage.quantity,
                    )
                supply = self._row_to_supply(dict(supply_row))
                supplies_after.append(supply)

                await conn.execute(
                    f"""
                    INSERT INTO {self.supplies_used_table} (shipment_id, supply_id, quantity_used, created_at)
                    VALUES ($1, $2, $3, NOW())
                    ON CONFLICT (shipment_id, supply_id)
                    DO UPDATE SET quantity_used = {self.supplies_used_table}.quantity_used + EXCLUDED.quantity_used
                    """,
                    shipment_id,
                    usage.supply_id,
                    usage.quantity,
                )
                await self._insert_supply_transaction(
                    conn,
                    supply_id=usage.supply_id,
                    transaction_type=SupplyTransactionType.USAGE,
                    quantity_change=-usage.quantity,
                    quantity_after=supply.current_quantity,
                    shipment_id=shipment_id,
                    performed_by=performed_by,
                    notes=None,
                )

            if supplies_used:
                await self._insert_custody(
                    conn,
                    shipment_id,
                    CustodyEventType.PACKED,
                    performed_by,
                    "Lab Packaging",
                    f"{len(supplies_used)} supply type(s) recorded",
                )
            await self._insert_custody(
                conn,
                shipment_id,
                CustodyEventType.LABEL_GENERATED,
                performed_by,
                "Lab",
                f"{service_type} {label.tracking_number}",
            )

        return self._row_to_shipment(dict(row)), supplies_after

    # =========================================================================
    # Chain of custody
    # =========================================================================

    async def _insert_custody(
        self,
        conn,
        shipment_id: str,
        event_type: CustodyEventType,
        performed_by: Optional[str],
        location: Optional[str],
        notes: Optional[str],
    ) -> Dict[str, Any]:
        row = await conn.fetchrow(
            f"""
            INSERT INTO {self.custody_table} (event_id, shipment_id, event_type, performed_by, location, notes, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, NOW())
            RETURNING *
            """,
            f"cus_{uuid.uuid4().hex[:12]}",
            shipment_id,
            CustodyEventType(event_type).value,
            performed_by,
            location,
            notes,
        )
        return dict(row)

    async def add_custody_event(
        self,
        shipment_id: str,
        event_type: CustodyEventType,
        performed_by: Optional[str] = None,
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CustodyEvent:
        try:
            async with self.db.transaction() as conn:
                row = await self._insert_custody(conn, shipment_id, event_type, performed_by, location, notes)
            return CustodyEvent(**row)
        except Exception as e:
            logger.error(f"Failed to add custody event for {shipment_id}: {e}")
            raise

    async def get_custody_log(self, shipment_id: str) -> List[CustodyEvent]:
        try:
            rows = await self.db.query(
                f"SELECT * FROM {self.custody_table} WHERE shipment_id = $1 ORDER BY created_at ASC",
                [shipment_id],
            )
            return [CustodyEvent(**row) for row in rows]
        except Exception as e:
            logger.error(f"Failed to get custody log for {shipment_id}: {e}")
            raise

    # =========================================================================
    # Hazmat declarations
    # =========================================================================

    async def create_hazmat_declaration(
        self, declaration_data: Dict[str, Any], performed_by: Optional[str] = None
    ) -> HazmatDeclaration:
        try:
            packing_group = declaration_data.get("packing_group")
            row = await self.db.query_row(
                f"""
                INSERT INTO {self.declarations_table} (
                    declaration_id, shipment_id, dg_form_number, un_number, proper_shipping_name,
                    hazard_class, packing_group, technical_name, emergency_phone, quantity, unit,
                    labels_printed, created_by, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, FALSE, $12, NOW())
                ON CONFLICT (shipment_id) DO NOTHING
                RETURNING *
                """,
                [
                    f"dg_{uuid.uuid4().hex[:12]}",
                    declaration_data["shipment_id"],
                    declaration_data["dg_form_number"],
                    declaration_data["un_number"],
                    declaration_data["proper_shipping_name"],
                    declaration_data["hazard_class"],
                    packing_group.value if hasattr(packing_group, "value") else packing_group,
                    declaration_data.get("technical_name"),
                    declaration_data["emergency_phone"],
                    declaration_data["quantity"],
                    declaration_data["unit"],
                    performed_by,
                ],
            )
            if row is None:
                raise ShipmentConflictError(
                    f"Shipment {declaration_data['shipment_id']} already has a dangerous goods declaration"
                )
            return self._row_to_declaration(row)
        except ShipmentConflictError:
            raise
        except Exception as e:
            logger.error(f"Failed to create hazmat declaration: {e}")
            raise

    async def get_hazmat_declaration(self, shipment_id: str) -> Optional[HazmatDeclaration]:
        try:
            row = await self.db.query_row(
                f"SELECT * FROM {self.declarations_table} WHERE shipment_id = $1", [shipment_id]
            )
            return self._row_to_declaration(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get hazmat declaration for {shipment_id}: {e}")
            raise

    async def mark_labels_printed(self, shipment_id: str, performed_by: Optional[str] = None) -> Optional[HazmatDeclaration]:
        try:
            row = await self.db.query_row(
                f"""
                UPDATE {self.declarations_table}
                SET labels_printed = TRUE, labels_printed_by = $2, labels_printed_at = NOW()
                WHERE shipment_id = $1
                RETURNING *
                """,
                [shipment_id, performed_by],
            )
            return self._row_to_declaration(row) if row else None
        except Exception as e:
            logger.error(f"Failed to mark warning labels printed for {shipment_id}: {e}")
            raise

    # =========================================================================
    # Supply ledger
    # =========================================================================

    async def list_supplies(self) -> List[SupplyItem]:
        try:
            rows = await self.db.query(f"SELECT * FROM {self.supplies_table} ORDER BY supply_type, name")
            return [self._row_to_supply(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to list supplies: {e}")
            raise

    async def get_supply(self, supply_id: str) -> Optional[SupplyItem]:
        try:
            row = await self.db.query_row(f"SELECT * FROM {self.supplies_table} WHERE supply_id = $1", [supply_id])
            return self._row_to_supply(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get supply {supply_id}: {e}")
            raise

    async def get_supplies(self, supply_ids: List[str]) -> Dict[str, SupplyItem]:
        if not supply_ids:
            return {}
        try:
            rows = await self.db.query(
                f"SELECT * FROM {self.supplies_table} WHERE supply_id = ANY($1::text[])", [list(supply_ids)]
            )
            return {row["supply_id"]: self._row_to_supply(row) for row in rows}
        except Exception as e:
            logger.error(f"Failed to get supplies {supply_ids}: {e}")
            raise

    async def create_supply(self, supply_data: Dict[str, Any]) -> SupplyItem:
        try:
            supply_id = f"sup_{uuid.uuid4().hex[:12]}"
            initial = supply_data.get("initial_quantity", 0)
            async with self.db.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO {self.supplies_table} (
                        supply_id, supply_type, name, current_quantity, unit, reorder_threshold,
                        unit_cost, supplier, created_at, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, NOW(), NOW())
                    RETURNING *
                    """,
                    supply_id,
                    supply_data["supply_type"],
                    supply_data["name"],
                    initial,
                    supply_data.get("unit", "each"),
                    supply_data.get("reorder_threshold", 0),
                    supply_data.get("unit_cost"),
                    supply_data.get("supplier"),
                )
                if initial > 0:
                    await self._insert_supply_transaction(
                        conn,
                        supply_id=supply_id,
                        transaction_type=SupplyTransactionType.RESTOCK,
                        quantity_change=initial,
                        quantity_after=initial,
                        shipment_id=None,
                        performed_by=None,
                        notes="Initial stock",
                    )
            return self._row_to_supply(dict(row))
        except Exception as e:
            logger.error(f"Failed to create supply: {e}")
            raise

    async def restock_supply(
        self, supply_id: str, quantity: int, performed_by: Optional[str] = None, notes: Optional[str] = None
    ) -> Optional[SupplyItem]:
        try:
            async with self.db.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE {self.supplies_table}
                    SET current_quantity = current_quantity + $2, updated_at = NOW()
                    WHERE supply_id = $1
                    RETURNING *
                    """,
                    supply_id,
                    quantity,
                )
                if row is None:
                    return None
                await self._insert_supply_transaction(
                    conn,
                    supply_id=supply_id,
                    transaction_type=SupplyTransactionType.RESTOCK,
                    quantity_change=quantity,
                    quantity_after=row["current_quantity"],
                    shipment_id=None,
                    performed_by=performed_by,
                    notes=notes,
                )
            return self._row_to_supply(dict(row))
        except Exception as e:
            logger.error(f"Failed to restock supply {supply_id}: {e}")
            raise

    async def _insert_supply_transaction(
        self,
        conn,
        supply_id: str,
        transaction_type: SupplyTransactionType,
        quantity_change: int,
        quantity_after: int,
        shipment_id: Optional[str],
        performed_by: Optional[str],
        notes: Optional[str],
    ) -> None:
        await conn.execute(
            f"""
            INSERT INTO {self.supply_transactions_table} (
                transaction_id, supply_id, transaction_type, quantity_change, quantity_before,
                quantity_after, shipment_id, performed_by, notes, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, NOW())
            """,
            f"stx_{uuid.uuid4().hex[:12]}",
            supply_id,
            transaction_type.value,
            quantity_change,
            quantity_after - quantity_change,
            quantity_after,
            shipment_id,
            performed_by,
            notes,
        )

    async def get_supply_transactions(self, supply_id: str, limit: int = 50) -> List[SupplyTransaction]:
        try:
            rows = await self.db.query(
                f"""
                SELECT * FROM {self.supply_transactions_table}
                WHERE supply_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                [supply_id, limit],
            )
            return [SupplyTransaction(**row) for row in rows]
        except Exception as e:
            logger.error(f"Failed to get transactions for supply {supply_id}: {e}")
            raise

    async def get_supplies_used(self, shipment_id: str) -> List[SupplyUsage]:
        try:
            rows = await self.db.query(
                f"SELECT supply_id, quantity_used FROM {self.supplies_used_table} WHERE shipment_id = $1",
                [shipment_id],
            )
            return [SupplyUsage(supply_id=r["supply_id"], quantity=r["quantity_used"]) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get supplies used for {shipment_id}: {e}")
            raise

    # =========================================================================
    # Row mapping
    # =========================================================================

    def _row_to_shipment(self, row: Dict[str, Any]) -> Shipment:
        data = dict(row)
        for column in JSON_COLUMNS:
            data[column] = _from_json(data.get(column))
        data["line_items"] = data.get("line_items") or []
        data["status"] = normalize_status(data.get("status") or ShipmentStatus.INITIATED)
        for column in ("total_quantity", "weight"):
            if data.get(column) is not None:
                data[column] = float(data[column])
        data.pop("label_claim_token", None)
        data.pop("label_claim_expires_at", None)
        return Shipment(**data)

    def _row_to_declaration(self, row: Dict[str, Any]) -> HazmatDeclaration:
        data = dict(row)
        if data.get("quantity") is not None:
            data["quantity"] = float(data["quantity"])
        return HazmatDeclaration(**data)

    def _row_to_supply(self, row: Dict[str, Any]) -> SupplyItem:
        return SupplyItem(**dict(row))
