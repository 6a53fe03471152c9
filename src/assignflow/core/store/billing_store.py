"""Quotation / Payment SQLite 实现"""

from datetime import datetime

import aiosqlite

from ..models.billing import Payment, Quotation
from ..models.enums import PaymentState


class SqliteQuotationStore:
    """Quotation 的 SQLite 实现 -- 每个订单一条，upsert 语义"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert_quotation(self, quotation: Quotation) -> None:
        """新建或更新订单的唯一报价

        更新时保留原 quotation_id / created_at，并清空 accepted_at（重新报价需重新接受）。
        """
        await self._conn.execute(
            """
            INSERT INTO quotations (quotation_id, order_id, quoted_price, urgency_charge,
                                    discount, tax, final_price, notes, quoted_by,
                                    accepted_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?)
            ON CONFLICT(order_id) DO UPDATE SET
                quoted_price = excluded.quoted_price,
                urgency_charge = excluded.urgency_charge,
                discount = excluded.discount,
                tax = excluded.tax,
                final_price = excluded.final_price,
                notes = excluded.notes,
                quoted_by = excluded.quoted_by,
                accepted_at = NULL,
                updated_at = excluded.updated_at
            """,
            (
                quotation.quotation_id,
                quotation.order_id,
                quotation.quoted_price,
                quotation.urgency_charge,
                quotation.discount,
                quotation.tax,
                quotation.final_price,
                quotation.notes,
                quotation.quoted_by,
                quotation.created_at.isoformat(),
                quotation.updated_at.isoformat(),
            ),
        )

    async def get_for_order(self, order_id: str) -> Quotation | None:
        cursor = await self._conn.execute(
            "SELECT * FROM quotations WHERE order_id = ?",
            (order_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_quotation(row)

    async def mark_accepted(self, order_id: str, accepted_at: str) -> None:
        await self._conn.execute(
            "UPDATE quotations SET accepted_at = ?, updated_at = ? WHERE order_id = ?",
            (accepted_at, accepted_at, order_id),
        )

    @staticmethod
    def _row_to_quotation(row: aiosqlite.Row) -> Quotation:
        return Quotation(
            quotation_id=row["quotation_id"],
            order_id=row["order_id"],
            quoted_price=row["quoted_price"],
            urgency_charge=row["urgency_charge"],
            discount=row["discount"],
            tax=row["tax"],
            final_price=row["final_price"],
            notes=row["notes"],
            quoted_by=row["quoted_by"],
            accepted_at=(
                datetime.fromisoformat(row["accepted_at"]) if row["accepted_at"] else None
            ),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SqlitePaymentStore:
    """Payment 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_payment(self, payment: Payment) -> None:
        await self._conn.execute(
            """
            INSERT INTO payments (payment_id, order_id, payer_id, amount, method, reference,
                                  state, verified_percentage, rejection_reason,
                                  verified_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                payment.payment_id,
                payment.order_id,
                payment.payer_id,
                payment.amount,
                payment.method,
                payment.reference,
                payment.state.value,
                payment.verified_percentage,
                payment.rejection_reason,
                payment.verified_by,
                payment.created_at.isoformat(),
                payment.updated_at.isoformat(),
            ),
        )

    async def get_payment(self, payment_id: str) -> Payment | None:
        cursor = await self._conn.execute(
            "SELECT * FROM payments WHERE payment_id = ?",
            (payment_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_payment(row)

    async def list_for_order(self, order_id: str) -> list[Payment]:
        cursor = await self._conn.execute(
            "SELECT * FROM payments WHERE order_id = ? ORDER BY rowid ASC",
            (order_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_payment(row) for row in rows]

    async def sum_verified_amount(self, order_id: str) -> float:
        """订单已核验支付金额之和"""
        cursor = await self._conn.execute(
            "SELECT COALESCE(SUM(amount), 0) FROM payments WHERE order_id = ? AND state = ?",
            (order_id, PaymentState.VERIFIED.value),
        )
        row = await cursor.fetchone()
        return float(row[0]) if row else 0.0

    async def mark_verified(
        self,
        payment_id: str,
        percentage: float,
        verified_by: str,
        updated_at: str,
    ) -> bool:
        """CAS：pending -> verified"""
        cursor = await self._conn.execute(
            """
            UPDATE payments
            SET state = ?, verified_percentage = ?, verified_by = ?, updated_at = ?
            WHERE payment_id = ? AND state = ?
            """,
            (
                PaymentState.VERIFIED.value,
                percentage,
                verified_by,
                updated_at,
                payment_id,
                PaymentState.PENDING.value,
            ),
        )
        return cursor.rowcount == 1

    async def mark_rejected(
        self,
        payment_id: str,
        reason: str,
        verified_by: str,
        updated_at: str,
    ) -> bool:
        """CAS：pending -> rejected"""
        cursor = await self._conn.execute(
            """
            UPDATE payments
            SET state = ?, rejection_reason = ?, verified_by = ?, updated_at = ?
            WHERE payment_id = ? AND state = ?
            """,
            (
                PaymentState.REJECTED.value,
                reason,
                verified_by,
                updated_at,
                payment_id,
                PaymentState.PENDING.value,
            ),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_payment(row: aiosqlite.Row) -> Payment:
        return Payment(
            payment_id=row["payment_id"],
            order_id=row["order_id"],
            payer_id=row["payer_id"],
            amount=row["amount"],
            method=row["method"],
            reference=row["reference"],
            state=PaymentState(row["state"]),
            verified_percentage=row["verified_percentage"],
            rejection_reason=row["rejection_reason"],
            verified_by=row["verified_by"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
