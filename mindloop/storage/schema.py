"""Database schema for mindloop SQLite storage.

Timestamps are ISO-8601 UTC strings written by ``format_datetime`` so that
range filters and ORDER BY work on the text columns directly.
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Allowed table names for SQL queries (security: prevents SQL injection via table names)
ALLOWED_TABLES = frozenset(
    {
        "agent_state",
        "decisions",
        "tasks",
        "trust_metrics",
        "relationship_events",
        "trust_history",
        "relationship_patterns",
        "concepts",
        "concept_relations",
        "cognitive_log",
        "episodic_memories",
        "self_questions",
        "reflections",
        "proactive_messages",
    }
)


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Singleton agent state (exactly one row, id = 1)
CREATE TABLE IF NOT EXISTS agent_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    mode TEXT NOT NULL,
    motivation TEXT NOT NULL,
    motivation_intensity INTEGER NOT NULL,
    last_thought TEXT NOT NULL DEFAULT '',
    autonomy_level INTEGER NOT NULL,
    updated_at TEXT NOT NULL
);

-- Decision audit trail
CREATE TABLE IF NOT EXISTS decisions (
    id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    context TEXT NOT NULL DEFAULT '',
    reasoning TEXT NOT NULL DEFAULT '',
    action TEXT NOT NULL DEFAULT '',
    is_fallback INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_decisions_created ON decisions(created_at);

-- Autonomous task queue
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    description TEXT NOT NULL,
    priority INTEGER NOT NULL DEFAULT 5,
    status TEXT NOT NULL DEFAULT 'pending',
    motivation TEXT NOT NULL DEFAULT '',
    result TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_tasks_pending ON tasks(status, priority DESC, created_at);

-- Trust per relationship
CREATE TABLE IF NOT EXISTS trust_metrics (
    subject TEXT PRIMARY KEY,
    trust_level REAL NOT NULL DEFAULT 5,
    intimacy_level REAL NOT NULL DEFAULT 5,
    total_shared_events INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS relationship_events (
    id TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    kind TEXT NOT NULL,
    trust_impact INTEGER NOT NULL,
    description TEXT NOT NULL,
    emotional_response TEXT,
    resolved INTEGER NOT NULL DEFAULT 0,
    resolved_at TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_rel_events_subject ON relationship_events(subject, created_at);

CREATE TABLE IF NOT EXISTS trust_history (
    id TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    trust_level REAL NOT NULL,
    change REAL NOT NULL,
    reason TEXT NOT NULL,
    event_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_trust_history_subject ON trust_history(subject, created_at);

CREATE TABLE IF NOT EXISTS relationship_patterns (
    id TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    pattern TEXT NOT NULL,
    confidence INTEGER NOT NULL DEFAULT 5,
    evidence_count INTEGER NOT NULL DEFAULT 1,
    last_observed TEXT NOT NULL,
    UNIQUE(subject, pattern)
);

-- Knowledge graph
CREATE TABLE IF NOT EXISTS concepts (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL DEFAULT 'general',
    confidence INTEGER NOT NULL DEFAULT 5,
    encounter_count INTEGER NOT NULL DEFAULT 1,
    first_encountered TEXT NOT NULL,
    last_reinforced TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_concepts_reinforced ON concepts(last_reinforced);

CREATE TABLE IF NOT EXISTS concept_relations (
    id TEXT PRIMARY KEY,
    from_id TEXT NOT NULL,
    to_id TEXT NOT NULL,
    relation_type TEXT NOT NULL,
    strength INTEGER NOT NULL DEFAULT 5,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_relations_from ON concept_relations(from_id);
CREATE INDEX IF NOT EXISTS idx_relations_to ON concept_relations(to_id);

-- Memory logs
CREATE TABLE IF NOT EXISTS cognitive_log (
    id TEXT PRIMARY KEY,
    stage TEXT NOT NULL DEFAULT 'autonomous',
    event_type TEXT NOT NULL,
    description TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cognitive_log_created ON cognitive_log(created_at);

CREATE TABLE IF NOT EXISTS episodic_memories (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    importance INTEGER NOT NULL DEFAULT 5,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_episodes_created ON episodic_memories(created_at);

CREATE TABLE IF NOT EXISTS self_questions (
    id TEXT PRIMARY KEY,
    question TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'general',
    priority INTEGER NOT NULL DEFAULT 5,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_questions_status ON self_questions(status, priority DESC);

CREATE TABLE IF NOT EXISTS reflections (
    id TEXT PRIMARY KEY,
    reflection_type TEXT NOT NULL,
    content TEXT NOT NULL,
    previous_belief TEXT,
    new_belief TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS proactive_messages (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    reason TEXT NOT NULL,
    urgency TEXT NOT NULL DEFAULT 'medium',
    question_id TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    sent_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_messages_status ON proactive_messages(status, created_at);
"""


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables and record the schema version."""
    conn.executescript(SCHEMA)
    row = conn.execute("SELECT MAX(version) AS v FROM schema_version").fetchone()
    current = row["v"] if row and row["v"] is not None else None
    if current is None:
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    elif current < SCHEMA_VERSION:
        logger.info(f"Upgrading schema from v{current} to v{SCHEMA_VERSION}")
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
