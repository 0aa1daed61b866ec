from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from .forms import PostingDraft
from .promotions import apply_promotions, clear_expired, utcnow
from .schema import Listing, Promotion, PromotionType

log = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS listings (
    id              TEXT PRIMARY KEY,
    title           TEXT,
    vehicle_type    TEXT,
    make            TEXT,
    model           TEXT,
    price           REAL,
    location        TEXT,
    is_sold         INTEGER NOT NULL DEFAULT 0,
    is_featured     INTEGER NOT NULL DEFAULT 0,
    is_top_spot     INTEGER NOT NULL DEFAULT 0,
    is_boosted      INTEGER NOT NULL DEFAULT 0,
    is_urgent       INTEGER NOT NULL DEFAULT 0,
    featured_until  TEXT,
    top_spot_until  TEXT,
    boosted_until   TEXT,
    urgent_until    TEXT,
    boost_score     REAL NOT NULL DEFAULT 0,
    created_at      TEXT,
    extras          TEXT
);
"""

PROMOTIONS_SQL = """
CREATE TABLE IF NOT EXISTS promotions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    listing_id      TEXT NOT NULL,
    promotion_type  TEXT NOT NULL,
    expires_at      TEXT NOT NULL,
    is_active       INTEGER NOT NULL DEFAULT 1,
    amount          REAL NOT NULL DEFAULT 0,
    impressions     INTEGER NOT NULL DEFAULT 0,
    rotation_score  REAL NOT NULL DEFAULT 0,
    last_shown_at   TEXT,
    last_boosted_at TEXT,
    created_at      TEXT,
    payment_id      TEXT
);
"""

DRAFTS_SQL = """
CREATE TABLE IF NOT EXISTS drafts (
    owner    TEXT PRIMARY KEY,
    payload  TEXT NOT NULL,
    updated  TEXT NOT NULL
);
"""

FILTER_COLUMNS = {
    "vehicle_type": "vehicle_type = ?",
    "make": "make = ?",
    "model": "model = ?",
    "min_price": "price >= ?",
    "max_price": "price <= ?",
}

FEED_ORDER = (
    "ORDER BY is_featured DESC, is_top_spot DESC, is_boosted DESC, "
    "boost_score DESC, created_at DESC"
)


def _ts(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


class Storage:
    def __init__(self, db_path: str) -> None:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute(SCHEMA_SQL)
        self.conn.execute(PROMOTIONS_SQL)
        self.conn.execute(DRAFTS_SQL)
        self._migrate()
        self.conn.commit()

    def _migrate(self) -> None:
        cols = {
            row[1]
            for row in self.conn.execute("PRAGMA table_info(listings)").fetchall()
        }
        migrations = {
            "boost_score": "REAL NOT NULL DEFAULT 0",
            "urgent_until": "TEXT",
            "extras": "TEXT",
        }
        for col, typ in migrations.items():
            if col not in cols:
                self.conn.execute(f"ALTER TABLE listings ADD COLUMN {col} {typ}")

    def close(self) -> None:
        self.conn.close()

    # --- listings ---

    def upsert_listing(self, listing: Listing) -> bool:
        """Insert or replace a listing; returns True when it was new."""
        exists = self.conn.execute(
            "SELECT 1 FROM listings WHERE id=?", (listing.id,)
        ).fetchone()
        self.conn.execute(
            "INSERT OR REPLACE INTO listings"
            "(id, title, vehicle_type, make, model, price, location, is_sold, "
            "is_featured, is_top_spot, is_boosted, is_urgent, featured_until, "
            "top_spot_until, boosted_until, urgent_until, boost_score, created_at, extras) "
            "VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
            (
                listing.id,
                listing.title,
                listing.vehicle_type,
                listing.make,
                listing.model,
                listing.price,
                listing.location,
                int(listing.is_sold),
                int(listing.is_featured),
                int(listing.is_top_spot),
                int(listing.is_boosted),
                int(listing.is_urgent),
                _ts(listing.featured_until),
                _ts(listing.top_spot_until),
                _ts(listing.boosted_until),
                _ts(listing.urgent_until),
                listing.boost_score,
                _ts(listing.created_at),
                listing.model_dump_json(),
            ),
        )
        self.conn.commit()
        if exists is None:
            log.info("New listing: %s (%s)", listing.title, listing.id)
        return exists is None

    def import_records(self, records: Iterable[dict]) -> int:
        count = 0
        for record in records:
            try:
                listing = Listing.from_record(record)
            except ValidationError as e:
                log.warning("Skipping malformed record %r (%d errors)", record.get("id"), e.error_count())
                continue
            self.upsert_listing(listing)
            count += 1
        return count

    def _row_to_listing(self, row: sqlite3.Row) -> Listing:
        return Listing.model_validate_json(row["extras"])

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        row = self.conn.execute(
            "SELECT extras FROM listings WHERE id=?", (listing_id,)
        ).fetchone()
        return self._row_to_listing(row) if row else None

    def query_listings(
        self,
        filters: Optional[dict] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Listing]:
        """Unsold listings matching ``filters``, in feed order, one page at a time."""
        clauses = ["is_sold = 0"]
        params: list = []
        for key, value in (filters or {}).items():
            if value in (None, ""):
                continue
            if key == "location":
                clauses.append("LOWER(location) LIKE ?")
                params.append(f"%{str(value).lower()}%")
            elif key in FILTER_COLUMNS:
                clauses.append(FILTER_COLUMNS[key])
                params.append(value)
            else:
                raise ValueError(
                    f"Unknown filter '{key}'. Available: "
                    f"{', '.join([*FILTER_COLUMNS, 'location'])}"
                )
        sql = (
            f"SELECT extras FROM listings WHERE {' AND '.join(clauses)} "
            f"{FEED_ORDER} LIMIT ? OFFSET ?"
        )
        rows = self.conn.execute(sql, (*params, limit, offset)).fetchall()
        return [self._row_to_listing(r) for r in rows]

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM listings").fetchone()[0]

    def get_vehicle_type_summary(self) -> dict[str, int]:
        rows = self.conn.execute(
            "SELECT vehicle_type, COUNT(*) as cnt FROM listings "
            "WHERE is_sold = 0 GROUP BY vehicle_type"
        ).fetchall()
        return {row["vehicle_type"] or "unknown": row["cnt"] for row in rows}

    # --- promotions ---

    def add_promotion(self, promo: Promotion) -> Promotion:
        cur = self.conn.execute(
            "INSERT INTO promotions"
            "(listing_id, promotion_type, expires_at, is_active, amount, impressions, "
            "rotation_score, last_shown_at, last_boosted_at, created_at, payment_id) "
            "VALUES(?,?,?,?,?,?,?,?,?,?,?)",
            (
                promo.listing_id,
                promo.promotion_type.value,
                _ts(promo.expires_at),
                int(promo.is_active),
                promo.amount,
                promo.impressions,
                promo.rotation_score,
                _ts(promo.last_shown_at),
                _ts(promo.last_boosted_at),
                _ts(promo.created_at),
                promo.payment_id,
            ),
        )
        self.conn.commit()
        log.info(
            "Promotion %s added for listing %s until %s",
            promo.promotion_type.value,
            promo.listing_id,
            _ts(promo.expires_at),
        )
        return promo.model_copy(update={"id": cur.lastrowid})

    def _row_to_promotion(self, row: sqlite3.Row) -> Promotion:
        data = dict(row)
        data["is_active"] = bool(data["is_active"])
        return Promotion.model_validate(data)

    def active_promotions(
        self,
        listing_id: Optional[str] = None,
        promotion_type: Optional[PromotionType] = None,
        now: Optional[datetime] = None,
    ) -> list[Promotion]:
        sql = "SELECT * FROM promotions WHERE is_active = 1 AND expires_at > ?"
        params: list = [_ts(now or utcnow())]
        if listing_id is not None:
            sql += " AND listing_id = ?"
            params.append(listing_id)
        if promotion_type is not None:
            sql += " AND promotion_type = ?"
            params.append(promotion_type.value)
        rows = self.conn.execute(sql + " ORDER BY id", params).fetchall()
        return [self._row_to_promotion(r) for r in rows]

    def refresh_listing_promotions(
        self, listing_id: str, now: Optional[datetime] = None
    ) -> Optional[Listing]:
        """Recompute a listing's promotion flags from its active promotions."""
        now = now or utcnow()
        listing = self.get_listing(listing_id)
        if listing is None:
            log.warning("Cannot refresh promotions, listing %s not found", listing_id)
            return None
        updated = apply_promotions(listing, self.active_promotions(listing_id, now=now), now)
        self.upsert_listing(updated)
        return updated

    def expire_promotions(self, now: Optional[datetime] = None) -> int:
        """Deactivate lapsed promotions and clear only the listing flags that lapsed."""
        now = now or utcnow()
        stamp = _ts(now)
        cur = self.conn.execute(
            "UPDATE promotions SET is_active = 0 WHERE is_active = 1 AND expires_at <= ?",
            (stamp,),
        )
        self.conn.commit()
        expired = cur.rowcount

        rows = self.conn.execute(
            "SELECT id FROM listings WHERE featured_until <= ? OR top_spot_until <= ? "
            "OR boosted_until <= ? OR urgent_until <= ?",
            (stamp, stamp, stamp, stamp),
        ).fetchall()
        for row in rows:
            listing = self.get_listing(row["id"])
            if listing is not None:
                self.upsert_listing(clear_expired(listing, now))
        log.info("Expired %d promotions, refreshed %d listings", expired, len(rows))
        return expired

    def apply_daily_boost(self, now: Optional[datetime] = None) -> int:
        """Move every live boosted listing back to the top of the boosted order."""
        now = now or utcnow()
        stamp = _ts(now)
        rows = self.conn.execute(
            "SELECT id FROM listings WHERE is_boosted = 1 "
            "AND (boosted_until IS NULL OR boosted_until > ?)",
            (stamp,),
        ).fetchall()
        score = now.timestamp() * 1000
        for row in rows:
            listing = self.get_listing(row["id"])
            if listing is not None:
                self.upsert_listing(listing.model_copy(update={"boost_score": score}))
        self.conn.execute(
            "UPDATE promotions SET last_boosted_at = ? WHERE promotion_type = ? "
            "AND is_active = 1 AND expires_at > ?",
            (stamp, PromotionType.BOOST.value, stamp),
        )
        self.conn.commit()
        log.info("Daily boost applied to %d listings", len(rows))
        return len(rows)

    def record_impressions(
        self, promotion_ids: Iterable[int], now: Optional[datetime] = None
    ) -> None:
        ids = [i for i in promotion_ids if i is not None]
        if not ids:
            return
        marks = ",".join("?" for _ in ids)
        self.conn.execute(
            "UPDATE promotions SET impressions = impressions + 1, "
            f"rotation_score = rotation_score + 1, last_shown_at = ? WHERE id IN ({marks})",
            (_ts(now or utcnow()), *ids),
        )
        self.conn.commit()

    def reset_rotation_scores(self, now: Optional[datetime] = None) -> int:
        cur = self.conn.execute(
            "UPDATE promotions SET rotation_score = 0 WHERE is_active = 1 AND expires_at > ?",
            (_ts(now or utcnow()),),
        )
        self.conn.commit()
        log.info("Rotation scores reset for %d promotions", cur.rowcount)
        return cur.rowcount

    def count_active(self, promotion_type: PromotionType, now: Optional[datetime] = None) -> int:
        return self.conn.execute(
            "SELECT COUNT(*) FROM promotions WHERE promotion_type = ? "
            "AND is_active = 1 AND expires_at > ?",
            (promotion_type.value, _ts(now or utcnow())),
        ).fetchone()[0]

    # --- drafts ---

    def save_draft(self, owner: str, draft: PostingDraft) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO drafts(owner, payload, updated) VALUES(?,?,?)",
            (owner, draft.to_json(), _ts(utcnow())),
        )
        self.conn.commit()

    def load_draft(self, owner: str) -> PostingDraft:
        row = self.conn.execute(
            "SELECT payload FROM drafts WHERE owner=?", (owner,)
        ).fetchone()
        return PostingDraft.from_json(row["payload"] if row else None)

    def clear_draft(self, owner: str) -> None:
        self.conn.execute("DELETE FROM drafts WHERE owner=?", (owner,))
        self.conn.commit()

    def dump(self) -> str:
        rows = self.conn.execute(f"SELECT extras FROM listings {FEED_ORDER}").fetchall()
        return json.dumps([json.loads(r["extras"]) for r in rows], indent=2)
