"""SQLite 数据库初始化

PRAGMA 配置 + 表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# users 表 DDL（身份服务的最小投影）
_USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    user_id     TEXT PRIMARY KEY,
    role        TEXT NOT NULL,
    is_active   INTEGER NOT NULL DEFAULT 1,
    full_name   TEXT NOT NULL DEFAULT '',
    email       TEXT NOT NULL DEFAULT '',
    bde_id      TEXT
);
"""

_USERS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);",
]

# orders 表 DDL
_ORDERS_DDL = """
CREATE TABLE IF NOT EXISTS orders (
    order_id            TEXT PRIMARY KEY,
    client_id           TEXT NOT NULL,
    topic               TEXT NOT NULL,
    subject             TEXT NOT NULL DEFAULT '',
    service             TEXT NOT NULL DEFAULT '',
    urgency             TEXT NOT NULL DEFAULT 'normal',
    description         TEXT NOT NULL DEFAULT '',
    query_code          TEXT NOT NULL,
    work_code           TEXT,
    status              INTEGER NOT NULL DEFAULT 26,
    assigned_writer_id  TEXT,
    basic_price         REAL,
    discount            REAL NOT NULL DEFAULT 0,
    total_price         REAL,
    deadline_at         TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);
"""

_ORDERS_INDEXES = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_orders_query_code ON orders(query_code);",
    # 工作码全局唯一（仅对非 NULL 值生效）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_orders_work_code "
        "ON orders(work_code) WHERE work_code IS NOT NULL;"
    ),
    "CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);",
    "CREATE INDEX IF NOT EXISTS idx_orders_client_id ON orders(client_id);",
    "CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at DESC);",
]

# writer_interests 表 DDL
_INTERESTS_DDL = """
CREATE TABLE IF NOT EXISTS writer_interests (
    interest_id  TEXT PRIMARY KEY,
    order_id     TEXT NOT NULL,
    writer_id    TEXT NOT NULL,
    state        TEXT NOT NULL,
    comment      TEXT NOT NULL DEFAULT '',
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,

    FOREIGN KEY (order_id) REFERENCES orders(order_id)
);
"""

_INTERESTS_INDEXES = [
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_interests_order_writer "
        "ON writer_interests(order_id, writer_id);"
    ),
    # 每个订单至多一条 assigned 记录
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_interests_one_assigned "
        "ON writer_interests(order_id) WHERE state = 'assigned';"
    ),
    "CREATE INDEX IF NOT EXISTS idx_interests_writer ON writer_interests(writer_id);",
]

# task_evaluations 表 DDL
_EVALUATIONS_DDL = """
CREATE TABLE IF NOT EXISTS task_evaluations (
    evaluation_id  TEXT PRIMARY KEY,
    order_id       TEXT NOT NULL,
    writer_id      TEXT NOT NULL,
    state          TEXT NOT NULL DEFAULT 'pending',
    comment        TEXT NOT NULL DEFAULT '',
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,

    FOREIGN KEY (order_id) REFERENCES orders(order_id)
);
"""

_EVALUATIONS_INDEXES = [
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_evaluations_order_writer "
        "ON task_evaluations(order_id, writer_id);"
    ),
]

# quotations 表 DDL
_QUOTATIONS_DDL = """
CREATE TABLE IF NOT EXISTS quotations (
    quotation_id    TEXT PRIMARY KEY,
    order_id        TEXT NOT NULL UNIQUE,
    quoted_price    REAL NOT NULL,
    urgency_charge  REAL NOT NULL DEFAULT 0,
    discount        REAL NOT NULL DEFAULT 0,
    tax             REAL NOT NULL DEFAULT 0,
    final_price     REAL NOT NULL,
    notes           TEXT NOT NULL DEFAULT '',
    quoted_by       TEXT NOT NULL,
    accepted_at     TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,

    FOREIGN KEY (order_id) REFERENCES orders(order_id)
);
"""

# payments 表 DDL
_PAYMENTS_DDL = """
CREATE TABLE IF NOT EXISTS payments (
    payment_id           TEXT PRIMARY KEY,
    order_id             TEXT NOT NULL,
    payer_id             TEXT NOT NULL,
    amount               REAL NOT NULL,
    method               TEXT NOT NULL DEFAULT '',
    reference            TEXT NOT NULL DEFAULT '',
    state                TEXT NOT NULL DEFAULT 'pending',
    verified_percentage  REAL,
    rejection_reason     TEXT NOT NULL DEFAULT '',
    verified_by          TEXT,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL,

    FOREIGN KEY (order_id) REFERENCES orders(order_id)
);
"""

_PAYMENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_payments_order_id ON payments(order_id);",
]

# submissions 表 DDL
_SUBMISSIONS_DDL = """
CREATE TABLE IF NOT EXISTS submissions (
    submission_id  TEXT PRIMARY KEY,
    order_id       TEXT NOT NULL,
    writer_id      TEXT NOT NULL,
    file_url       TEXT NOT NULL,
    notes          TEXT NOT NULL DEFAULT '',
    feedback       TEXT NOT NULL DEFAULT '',
    state          TEXT NOT NULL DEFAULT 'pending_qc',
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,

    FOREIGN KEY (order_id) REFERENCES orders(order_id)
);
"""

_SUBMISSIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_submissions_order_id ON submissions(order_id);",
]

# audit_log 表 DDL（append-only）
_AUDIT_DDL = """
CREATE TABLE IF NOT EXISTS audit_log (
    entry_id         TEXT PRIMARY KEY,
    order_id         TEXT NOT NULL,
    order_seq        INTEGER NOT NULL,
    ts               TEXT NOT NULL,
    actor_id         TEXT NOT NULL,
    actor_role       TEXT NOT NULL,
    event_type       TEXT NOT NULL,
    resource_type    TEXT NOT NULL,
    resource_id      TEXT NOT NULL,
    before_ctx       TEXT NOT NULL DEFAULT '{}',
    after_ctx        TEXT NOT NULL DEFAULT '{}',
    idempotency_key  TEXT
);
"""

_AUDIT_INDEXES = [
    # 订单内审计序号唯一约束（确保 order_seq 严格单调递增）
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_audit_order_seq ON audit_log(order_id, order_seq);",
    "CREATE INDEX IF NOT EXISTS idx_audit_ts ON audit_log(ts);",
    # 幂等键唯一约束（仅对非 NULL 值生效）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_audit_idempotency_key "
        "ON audit_log(idempotency_key) WHERE idempotency_key IS NOT NULL;"
    ),
]

# notifications 表 DDL
_NOTIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS notifications (
    notification_id  TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    order_id         TEXT,
    level            TEXT NOT NULL DEFAULT 'info',
    title            TEXT NOT NULL,
    message          TEXT NOT NULL,
    link_url         TEXT NOT NULL DEFAULT '',
    is_read          INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL
);
"""

_NOTIFICATIONS_INDEXES = [
    (
        "CREATE INDEX IF NOT EXISTS idx_notifications_user "
        "ON notifications(user_id, is_read, created_at DESC);"
    ),
]

# deadline_reminders 表 DDL（每个 order × writer × 档位只提醒一次）
_REMINDERS_DDL = """
CREATE TABLE IF NOT EXISTS deadline_reminders (
    order_id     TEXT NOT NULL,
    writer_id    TEXT NOT NULL,
    tier_hours   INTEGER NOT NULL,
    sent_at      TEXT NOT NULL,

    PRIMARY KEY (order_id, writer_id, tier_hours)
);
"""

_ALL_DDL = [
    _USERS_DDL,
    _ORDERS_DDL,
    _INTERESTS_DDL,
    _EVALUATIONS_DDL,
    _QUOTATIONS_DDL,
    _PAYMENTS_DDL,
    _SUBMISSIONS_DDL,
    _AUDIT_DDL,
    _NOTIFICATIONS_DDL,
    _REMINDERS_DDL,
]

_ALL_INDEXES = (
    _USERS_INDEXES
    + _ORDERS_INDEXES
    + _INTERESTS_INDEXES
    + _EVALUATIONS_INDEXES
    + _PAYMENTS_INDEXES
    + _SUBMISSIONS_INDEXES
    + _AUDIT_INDEXES
    + _NOTIFICATIONS_INDEXES
)


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    for ddl in _ALL_DDL:
        await conn.execute(ddl)

    # 创建索引
    for idx_sql in _ALL_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"


async def init_reader(conn: aiosqlite.Connection) -> None:
    """初始化只读快照连接：只能看到已提交的数据，拒绝任何写入"""
    await conn.execute("PRAGMA busy_timeout = 5000;")
    await conn.execute("PRAGMA query_only = ON;")
