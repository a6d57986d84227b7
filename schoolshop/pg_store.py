# schoolshop/pg_store.py
import logging
from contextlib import contextmanager
from importlib import resources

import psycopg
from psycopg.types.json import Jsonb

from .db import create_pool, execute, execute_many, fetch_all, fetch_one, get_conn
from .errors import ConcurrentUpdate, ItemNotFound, OrderError, PersistenceFailure
from .models import CatalogItem, Order, OrderStats, PeriodStat, StatusStat, TopSeller
from .pricing import money
from .store import TOP_SELLERS, period_starts

logger = logging.getLogger(__name__)

ITEM_COLUMNS = "id, title, unit_price, available_stock, image, is_active"

LINE_COLUMNS = (
    "catalog_item_id, title_snapshot, unit_price_snapshot, quantity, image_snapshot"
)


def load_schema() -> str:
    return resources.files("schoolshop").joinpath("schema.sql").read_text()


class PostgresTx:
    def __init__(self, conn):
        self.conn = conn

    # Catalog

    def get_item(self, item_id):
        row = fetch_one(self.conn, f"SELECT {ITEM_COLUMNS} FROM catalog_items WHERE id=%s", (item_id,))
        return CatalogItem(**row) if row else None

    def lock_items(self, item_ids):
        # fixed lock order so two orders touching the same items cannot deadlock
        rows = fetch_all(self.conn, f"""
            SELECT {ITEM_COLUMNS} FROM catalog_items
            WHERE id = ANY(%s)
            ORDER BY id
            FOR UPDATE
        """, (sorted(set(item_ids)),))
        return {row["id"]: CatalogItem(**row) for row in rows}

    def put_item(self, item):
        row = fetch_one(self.conn, f"""
            INSERT INTO catalog_items(id, title, unit_price, available_stock, image, is_active)
            VALUES (%s,%s,%s,%s,%s,%s)
            ON CONFLICT (id) DO UPDATE SET
                title = EXCLUDED.title,
                unit_price = EXCLUDED.unit_price,
                available_stock = EXCLUDED.available_stock,
                image = EXCLUDED.image,
                is_active = EXCLUDED.is_active,
                updated_at = NOW()
            RETURNING {ITEM_COLUMNS}
        """, (item.id, item.title, item.unit_price, item.available_stock, item.image, item.is_active))
        return CatalogItem(**row)

    def reserve_stock(self, item_id, quantity):
        row = fetch_one(self.conn, """
            UPDATE catalog_items
            SET available_stock = available_stock - %s, updated_at = NOW()
            WHERE id = %s AND is_active AND available_stock >= %s
            RETURNING available_stock
        """, (quantity, item_id, quantity))
        return row is not None

    def release_stock(self, item_id, quantity):
        updated = execute(self.conn, """
            UPDATE catalog_items
            SET available_stock = available_stock + %s, updated_at = NOW()
            WHERE id = %s
        """, (quantity, item_id))
        if updated != 1:
            raise ItemNotFound(item_id)

    # Orders

    def next_order_sequence(self):
        return fetch_one(self.conn, "SELECT nextval('order_number_seq') AS seq")["seq"]

    def insert_order(self, order):
        row = fetch_one(self.conn, """
            INSERT INTO orders(
                order_number, customer_id, shipping_address, payment_method,
                payment_status, order_status, subtotal, shipping_cost, tax,
                discount, gift_wrap_cost, total, currency, notes,
                is_gift, gift_message, is_gift_wrapped, version,
                created_at, updated_at)
            VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,1,%s,%s)
            RETURNING id
        """, (
            order.order_number, order.customer_id,
            Jsonb(order.shipping_address.model_dump()), order.payment_method.value,
            order.payment_status.value, order.order_status.value,
            order.subtotal, order.shipping_cost, order.tax,
            order.discount, order.gift_wrap_cost, order.total, order.currency, order.notes,
            order.is_gift, order.gift_message, order.is_gift_wrapped,
            order.created_at, order.updated_at,
        ))
        execute_many(self.conn, f"""
            INSERT INTO order_items(order_id, position, {LINE_COLUMNS})
            VALUES (%s,%s,%s,%s,%s,%s,%s)
        """, [
            (row["id"], position, line.catalog_item_id, line.title_snapshot,
             line.unit_price_snapshot, line.quantity, line.image_snapshot)
            for position, line in enumerate(order.items)
        ])
        return order.evolve(id=row["id"], version=1)

    def get_order(self, order_id, *, lock=False):
        sql = "SELECT * FROM orders WHERE id=%s"
        if lock:
            sql += " FOR UPDATE"
        row = fetch_one(self.conn, sql, (order_id,))
        if not row:
            return None
        lines = fetch_all(self.conn, f"""
            SELECT {LINE_COLUMNS} FROM order_items
            WHERE order_id=%s ORDER BY position
        """, (order_id,))
        return Order(**row, items=lines)

    def update_order(self, order, expected_version):
        row = fetch_one(self.conn, """
            UPDATE orders SET
                order_status = %s, payment_status = %s, notes = %s,
                tracking_number = %s, tracking_url = %s,
                delivered_at = %s, cancelled_at = %s, cancellation_reason = %s,
                refund_amount = %s, refund_reason = %s, refunded_at = %s,
                version = version + 1, updated_at = %s
            WHERE id = %s AND version = %s
            RETURNING version
        """, (
            order.order_status.value, order.payment_status.value, order.notes,
            order.tracking_number, order.tracking_url,
            order.delivered_at, order.cancelled_at, order.cancellation_reason,
            order.refund_amount, order.refund_reason, order.refunded_at,
            order.updated_at, order.id, expected_version,
        ))
        if row is None:
            raise ConcurrentUpdate(order.id, expected_version)
        return order.evolve(version=row["version"])

    def order_stats(self, now):
        start_of_month, start_of_year = period_starts(now)
        rows = fetch_all(self.conn, """
            SELECT order_status AS status, COUNT(*)::int AS count, COALESCE(SUM(total), 0) AS total_value
            FROM orders GROUP BY order_status ORDER BY order_status
        """)
        totals = fetch_one(self.conn, """
            SELECT COUNT(*)::int AS total_orders,
                   COALESCE(SUM(total) FILTER (WHERE order_status = 'delivered'), 0) AS total_revenue,
                   COUNT(*) FILTER (WHERE order_status = 'delivered' AND created_at >= %s)::int AS monthly_count,
                   COALESCE(SUM(total) FILTER (WHERE order_status = 'delivered' AND created_at >= %s), 0) AS monthly_revenue,
                   COUNT(*) FILTER (WHERE order_status = 'delivered' AND created_at >= %s)::int AS yearly_count,
                   COALESCE(SUM(total) FILTER (WHERE order_status = 'delivered' AND created_at >= %s), 0) AS yearly_revenue
            FROM orders
        """, (start_of_month, start_of_month, start_of_year, start_of_year))
        top = fetch_all(self.conn, """
            SELECT catalog_item_id,
                   (ARRAY_AGG(title_snapshot ORDER BY order_id, position))[1] AS title,
                   SUM(quantity)::int AS total_sold,
                   SUM(unit_price_snapshot * quantity) AS total_revenue
            FROM order_items
            GROUP BY catalog_item_id
            ORDER BY total_sold DESC, catalog_item_id
            LIMIT %s
        """, (TOP_SELLERS,))
        return OrderStats(
            by_status=[StatusStat(**r) for r in rows],
            total_orders=totals["total_orders"],
            total_revenue=totals["total_revenue"],
            monthly=PeriodStat(count=totals["monthly_count"], revenue=totals["monthly_revenue"]),
            yearly=PeriodStat(count=totals["yearly_count"], revenue=totals["yearly_revenue"]),
            top_selling=[
                TopSeller(**{**r, "total_revenue": money(r["total_revenue"])}) for r in top
            ],
        )


class PostgresStore:
    """Store over a psycopg connection pool; one connection per transaction."""

    def __init__(self, conninfo: str, min_size: int = 1, max_size: int = 10):
        self.pool = create_pool(conninfo, min_size, max_size)

    def open(self) -> None:
        self.pool.open(wait=True)

    def close(self) -> None:
        self.pool.close()

    def init_schema(self) -> None:
        with get_conn(self.pool) as conn:
            execute(conn, load_schema())
            conn.commit()

    def ping(self) -> bool:
        with get_conn(self.pool) as conn:
            row = fetch_one(conn, "SELECT 1 AS ok")
            conn.rollback()
            return row["ok"] == 1

    @contextmanager
    def transaction(self):
        with get_conn(self.pool) as conn:
            try:
                yield PostgresTx(conn)
                conn.commit()
            except OrderError:
                conn.rollback()
                raise
            except psycopg.Error as e:
                conn.rollback()
                logger.exception("transaction rolled back after database error")
                raise PersistenceFailure("transaction", e) from e
            except Exception:
                conn.rollback()
                raise
