"""SQLite initialisation -- PRAGMAs, table DDL and indexes

Uniqueness constraints here back the engine's idempotency guarantees:
(event, agent) processing, job dedupe keys, rollup keys, mirror entries,
ledger rows and chapter links.
"""

import aiosqlite

_JOBS_DDL = """
CREATE TABLE IF NOT EXISTS jobs (
    job_id           TEXT PRIMARY KEY,
    agent            TEXT NOT NULL,
    intent           TEXT NOT NULL DEFAULT 'execute',
    task             TEXT NOT NULL DEFAULT '',
    payload          TEXT NOT NULL DEFAULT '{}',
    user_id          TEXT,
    status           TEXT NOT NULL DEFAULT 'ready',
    run_at           TEXT NOT NULL,
    attempts         INTEGER NOT NULL DEFAULT 0,
    max_attempts     INTEGER NOT NULL DEFAULT 3,
    backoff          TEXT NOT NULL DEFAULT 'exponential',
    last_error       TEXT,
    deps_met         INTEGER NOT NULL DEFAULT 1,
    event_id         TEXT,
    envelope         TEXT,
    dedupe_key       TEXT,
    lock_key         TEXT,
    plan_id          TEXT,
    expires_at       TEXT,
    cancel_requested INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);
"""

_JOB_DEPENDENCIES_DDL = """
CREATE TABLE IF NOT EXISTS job_dependencies (
    job_id         TEXT NOT NULL,
    depends_on_id  TEXT NOT NULL,
    PRIMARY KEY (job_id, depends_on_id),
    FOREIGN KEY (job_id) REFERENCES jobs(job_id)
);
"""

_JOBS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_jobs_runnable ON jobs(status, deps_met, run_at);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_user ON jobs(user_id);",
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_dedupe_key "
        "ON jobs(dedupe_key) WHERE dedupe_key IS NOT NULL;"
    ),
    "CREATE INDEX IF NOT EXISTS idx_job_deps_reverse ON job_dependencies(depends_on_id);",
]

_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    event_id        TEXT PRIMARY KEY,
    type            TEXT NOT NULL,
    user_id         TEXT,
    payload         TEXT NOT NULL DEFAULT '{}',
    created_at      TEXT NOT NULL,
    schema_version  INTEGER NOT NULL DEFAULT 1,
    parent_event_id TEXT,
    root_event_id   TEXT,
    depth           INTEGER NOT NULL DEFAULT 0,
    job_id          TEXT
);
"""

_EVENT_PROCESSING_DDL = """
CREATE TABLE IF NOT EXISTS event_processing (
    event_id      TEXT NOT NULL,
    agent         TEXT NOT NULL,
    processed_at  TEXT NOT NULL,
    PRIMARY KEY (event_id, agent),
    FOREIGN KEY (event_id) REFERENCES events(event_id)
);
"""

_EVENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_events_type ON events(type, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_events_user ON events(user_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_events_root ON events(root_event_id);",
]

_JOURNAL_DDL = """
CREATE TABLE IF NOT EXISTS journal_entries (
    entry_id    TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    content     TEXT NOT NULL,
    entry_date  TEXT NOT NULL,
    sentiment   REAL NOT NULL DEFAULT 0,
    tags        TEXT NOT NULL DEFAULT '[]',
    locked      INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_ENTRY_AREA_LINKS_DDL = """
CREATE TABLE IF NOT EXISTS entry_area_links (
    entry_id    TEXT NOT NULL,
    area_id     TEXT NOT NULL,
    dimension   TEXT NOT NULL,
    weight      REAL NOT NULL,
    confidence  REAL NOT NULL,
    signal      REAL NOT NULL,
    PRIMARY KEY (entry_id, area_id, dimension),
    FOREIGN KEY (entry_id) REFERENCES journal_entries(entry_id)
);
"""

_JOURNAL_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_journal_user_date ON journal_entries(user_id, entry_date);",
    "CREATE INDEX IF NOT EXISTS idx_entry_links_area ON entry_area_links(area_id);",
]

_AREAS_DDL = """
CREATE TABLE IF NOT EXISTS life_areas (
    area_id        TEXT PRIMARY KEY,
    user_id        TEXT NOT NULL,
    code           TEXT NOT NULL,
    name           TEXT NOT NULL,
    dimensions     TEXT NOT NULL DEFAULT '[]',
    commitment_id  TEXT,
    created_at     TEXT NOT NULL,
    UNIQUE (user_id, code)
);
"""

_COMMITMENTS_DDL = """
CREATE TABLE IF NOT EXISTS commitments (
    commitment_id  TEXT PRIMARY KEY,
    user_id        TEXT NOT NULL,
    statement      TEXT NOT NULL,
    confidence     REAL NOT NULL,
    status         TEXT NOT NULL DEFAULT 'detected',
    entry_id       TEXT,
    area_id        TEXT,
    target_date    TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);
"""

_ACTIONS_DDL = """
CREATE TABLE IF NOT EXISTS commitment_actions (
    action_id      TEXT PRIMARY KEY,
    commitment_id  TEXT NOT NULL,
    user_id        TEXT NOT NULL,
    title          TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'pending',
    due_at         TEXT,
    completed_at   TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    FOREIGN KEY (commitment_id) REFERENCES commitments(commitment_id)
);
"""

_COMMITMENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_commitments_user ON commitments(user_id, status);",
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_commitments_source "
        "ON commitments(entry_id, statement) WHERE entry_id IS NOT NULL;"
    ),
    "CREATE INDEX IF NOT EXISTS idx_actions_commitment ON commitment_actions(commitment_id);",
]

_ROLLUPS_DDL = """
CREATE TABLE IF NOT EXISTS fulfilment_rollups (
    rollup_id     TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    area_id       TEXT NOT NULL,
    dimension     TEXT NOT NULL,
    period_type   TEXT NOT NULL,
    period_start  TEXT NOT NULL,
    score         REAL NOT NULL,
    confidence    REAL NOT NULL,
    trend         REAL NOT NULL DEFAULT 0,
    observations  INTEGER NOT NULL DEFAULT 0,
    updated_at    TEXT NOT NULL,
    UNIQUE (user_id, area_id, dimension, period_type, period_start)
);
"""

_FULFILMENT_ENTRIES_DDL = """
CREATE TABLE IF NOT EXISTS fulfilment_entries (
    entry_id     TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    life_area    TEXT NOT NULL,
    source_type  TEXT NOT NULL,
    source_id    TEXT NOT NULL,
    title        TEXT NOT NULL DEFAULT '',
    metadata     TEXT NOT NULL DEFAULT '{}',
    occurred_at  TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    UNIQUE (user_id, life_area, source_type, source_id)
);
"""

_CHAPTERS_DDL = """
CREATE TABLE IF NOT EXISTS chapters (
    chapter_id   TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    era          TEXT NOT NULL,
    area_id      TEXT NOT NULL,
    title        TEXT NOT NULL,
    summary      TEXT NOT NULL DEFAULT '',
    themes       TEXT NOT NULL DEFAULT '[]',
    coherence    REAL NOT NULL DEFAULT 0,
    entry_count  INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    UNIQUE (user_id, era, area_id)
);
"""

_CHAPTER_LINKS_DDL = """
CREATE TABLE IF NOT EXISTS chapter_links (
    chapter_id  TEXT NOT NULL,
    entry_id    TEXT NOT NULL,
    relevance   REAL NOT NULL,
    created_at  TEXT NOT NULL,
    PRIMARY KEY (chapter_id, entry_id),
    FOREIGN KEY (chapter_id) REFERENCES chapters(chapter_id)
);
"""

_ISSUES_DDL = """
CREATE TABLE IF NOT EXISTS integrity_issues (
    issue_id       TEXT PRIMARY KEY,
    user_id        TEXT NOT NULL,
    commitment_id  TEXT NOT NULL,
    action_id      TEXT NOT NULL DEFAULT '',
    issue_type     TEXT NOT NULL,
    severity       TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'open',
    description    TEXT NOT NULL DEFAULT '',
    resolution     TEXT,
    resolved_at    TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    UNIQUE (commitment_id, action_id, issue_type)
);
"""

_SECURITY_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS security_events (
    security_event_id  TEXT PRIMARY KEY,
    user_id            TEXT NOT NULL,
    event              TEXT NOT NULL,
    details            TEXT NOT NULL DEFAULT '{}',
    created_at         TEXT NOT NULL
);
"""

_PLANS_DDL = """
CREATE TABLE IF NOT EXISTS plans (
    plan_id      TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    objective    TEXT NOT NULL,
    constraints  TEXT NOT NULL DEFAULT '[]',
    priority     INTEGER NOT NULL DEFAULT 3,
    deadline     TEXT,
    status       TEXT NOT NULL DEFAULT 'scheduled',
    tasks        TEXT NOT NULL DEFAULT '[]',
    created_at   TEXT NOT NULL
);
"""

_TRANSACTIONS_DDL = """
CREATE TABLE IF NOT EXISTS transactions (
    transaction_id    TEXT PRIMARY KEY,
    user_id           TEXT NOT NULL,
    source            TEXT NOT NULL,
    external_id       TEXT NOT NULL,
    occurred_at       TEXT NOT NULL,
    amount            REAL NOT NULL,
    transaction_type  TEXT NOT NULL,
    category          TEXT NOT NULL DEFAULT 'uncategorized',
    description       TEXT NOT NULL DEFAULT '',
    area_code         TEXT,
    created_at        TEXT NOT NULL,
    UNIQUE (user_id, source, external_id)
);
"""

_DOMAIN_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_rollups_user ON fulfilment_rollups(user_id, period_start);",
    "CREATE INDEX IF NOT EXISTS idx_issues_user ON integrity_issues(user_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id, occurred_at);",
]

_ALL_DDL = [
    _JOBS_DDL,
    _JOB_DEPENDENCIES_DDL,
    _EVENTS_DDL,
    _EVENT_PROCESSING_DDL,
    _JOURNAL_DDL,
    _ENTRY_AREA_LINKS_DDL,
    _AREAS_DDL,
    _COMMITMENTS_DDL,
    _ACTIONS_DDL,
    _ROLLUPS_DDL,
    _FULFILMENT_ENTRIES_DDL,
    _CHAPTERS_DDL,
    _CHAPTER_LINKS_DDL,
    _ISSUES_DDL,
    _SECURITY_EVENTS_DDL,
    _PLANS_DDL,
    _TRANSACTIONS_DDL,
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """Initialise the database: PRAGMAs, tables, indexes

    Args:
        conn: aiosqlite connection
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    for ddl in _ALL_DDL:
        await conn.execute(ddl)

    for idx_sql in _JOBS_INDEXES + _EVENTS_INDEXES + _JOURNAL_INDEXES + _COMMITMENTS_INDEXES:
        await conn.execute(idx_sql)
    for idx_sql in _DOMAIN_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """True when WAL journaling is active"""
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
