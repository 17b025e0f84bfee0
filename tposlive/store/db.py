"""SQLite テーブル作成と接続。"""
import os
import sqlite3
from pathlib import Path
from typing import Optional

# デフォルトはプロジェクトルートの data/state.db
def _default_db_path() -> str:
    base = Path(__file__).resolve().parent.parent.parent
    data_dir = base / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    return str(data_dir / "state.db")

def get_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    path = db_path or os.getenv("STATE_DB_PATH") or _default_db_path()
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn

def init_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS tpos_credentials (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            token_type TEXT NOT NULL,
            bearer_token TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS facebook_pages (
            page_id TEXT PRIMARY KEY,
            page_name TEXT,
            crm_team_id TEXT,
            crm_team_name TEXT
        );

        CREATE TABLE IF NOT EXISTS live_campaigns (
            post_id TEXT NOT NULL,
            team_id TEXT NOT NULL,
            live_campaign_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            PRIMARY KEY (post_id, team_id)
        );

        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_code TEXT NOT NULL UNIQUE,
            product_name TEXT NOT NULL,
            variant TEXT,
            base_product_code TEXT,
            tpos_image_url TEXT,
            tpos_product_id INTEGER,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS live_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_name TEXT,
            start_date TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS live_phases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            live_session_id INTEGER NOT NULL,
            phase_date TEXT NOT NULL,
            phase_type TEXT NOT NULL,
            UNIQUE(phase_date, phase_type),
            FOREIGN KEY (live_session_id) REFERENCES live_sessions(id)
        );

        CREATE TABLE IF NOT EXISTS live_products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            live_session_id INTEGER NOT NULL,
            live_phase_id INTEGER NOT NULL,
            product_code TEXT NOT NULL,
            product_name TEXT NOT NULL,
            variant TEXT NOT NULL DEFAULT '',
            product_type TEXT NOT NULL DEFAULT 'hang_le',
            prepared_quantity INTEGER NOT NULL DEFAULT 0,
            sold_quantity INTEGER NOT NULL DEFAULT 0,
            image_url TEXT,
            created_at TEXT NOT NULL,
            UNIQUE(live_session_id, live_phase_id, product_code, variant),
            FOREIGN KEY (live_session_id) REFERENCES live_sessions(id),
            FOREIGN KEY (live_phase_id) REFERENCES live_phases(id)
        );

        CREATE TABLE IF NOT EXISTS live_orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            facebook_comment_id TEXT NOT NULL,
            live_product_id INTEGER NOT NULL,
            live_session_id INTEGER NOT NULL,
            live_phase_id INTEGER NOT NULL,
            order_code TEXT,
            tpos_order_id TEXT,
            is_oversell INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            FOREIGN KEY (live_product_id) REFERENCES live_products(id)
        );

        CREATE TABLE IF NOT EXISTS facebook_pending_orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            facebook_comment_id TEXT NOT NULL UNIQUE,
            facebook_user_id TEXT,
            facebook_post_id TEXT,
            name TEXT,
            session_index TEXT,
            code TEXT,
            phone TEXT,
            comment TEXT,
            created_time TEXT,
            tpos_order_id TEXT,
            order_count INTEGER NOT NULL DEFAULT 1,
            product_codes TEXT NOT NULL DEFAULT '[]',
            comment_type TEXT,
            updated_at TEXT
        );

        CREATE TABLE IF NOT EXISTS pending_live_orders (
            id TEXT PRIMARY KEY,
            facebook_comment_id TEXT NOT NULL UNIQUE,
            comment_text TEXT,
            customer_name TEXT,
            session_index TEXT,
            created_at TEXT,
            processed INTEGER NOT NULL DEFAULT 0,
            error_message TEXT
        );

        CREATE TABLE IF NOT EXISTS facebook_comments_archive (
            facebook_comment_id TEXT PRIMARY KEY,
            facebook_user_id TEXT,
            facebook_post_id TEXT,
            comment_message TEXT,
            session_index INTEGER,
            tpos_order_id TEXT,
            tpos_session_index TEXT,
            tpos_sync_status TEXT,
            last_synced_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT
        );

        CREATE TABLE IF NOT EXISTS purchase_orders (
            id TEXT PRIMARY KEY,
            supplier_name TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS purchase_order_items (
            id TEXT PRIMARY KEY,
            purchase_order_id TEXT NOT NULL,
            position INTEGER NOT NULL DEFAULT 0,
            product_code TEXT NOT NULL,
            product_name TEXT NOT NULL,
            variant TEXT,
            purchase_price REAL NOT NULL DEFAULT 0,
            selling_price REAL NOT NULL DEFAULT 0,
            quantity INTEGER NOT NULL DEFAULT 1,
            product_images TEXT NOT NULL DEFAULT '[]',
            selected_attribute_value_ids TEXT NOT NULL DEFAULT '[]',
            tpos_sync_status TEXT NOT NULL DEFAULT 'pending',
            tpos_sync_started_at TEXT,
            tpos_sync_completed_at TEXT,
            tpos_sync_error TEXT,
            tpos_product_id INTEGER,
            FOREIGN KEY (purchase_order_id) REFERENCES purchase_orders(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS product_attributes (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            display_order INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS product_attribute_values (
            id TEXT PRIMARY KEY,
            attribute_id TEXT NOT NULL,
            value TEXT NOT NULL,
            code TEXT,
            tpos_id INTEGER NOT NULL,
            tpos_attribute_id INTEGER NOT NULL,
            sequence INTEGER,
            name_get TEXT,
            FOREIGN KEY (attribute_id) REFERENCES product_attributes(id)
        );

        CREATE INDEX IF NOT EXISTS idx_live_products_phase ON live_products(live_session_id, live_phase_id);
        CREATE INDEX IF NOT EXISTS idx_live_orders_comment ON live_orders(facebook_comment_id);
        CREATE INDEX IF NOT EXISTS idx_products_base_code ON products(base_product_code);
        CREATE INDEX IF NOT EXISTS idx_purchase_order_items_status
            ON purchase_order_items(purchase_order_id, tpos_sync_status);
    """)
    conn.commit()
