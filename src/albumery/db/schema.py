# ABOUTME: SQL DDL for the run ledger: runs, decisions, their events and actions.
# ABOUTME: Later schema versions are applied in order from MIGRATIONS.

SCHEMA_V1 = """
-- One row per engine run
CREATE TABLE runs (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    root        TEXT NOT NULL,
    dry_run     INTEGER NOT NULL DEFAULT 1,
    status      TEXT NOT NULL DEFAULT 'running',
    summary     TEXT,
    started_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    finished_at TEXT
);

-- Append-only decisions; only state and updated_at change after insert
CREATE TABLE decisions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id          INTEGER NOT NULL REFERENCES runs(id),
    fingerprint     TEXT NOT NULL,
    group_key       TEXT NOT NULL,
    display_name    TEXT,
    keep_path       TEXT,
    keep_metadata   TEXT,
    delete_paths    TEXT NOT NULL,
    rationale       TEXT NOT NULL,
    state           TEXT NOT NULL,
    scores          TEXT NOT NULL,
    created_at      TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    updated_at      TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE UNIQUE INDEX idx_decisions_fingerprint ON decisions(fingerprint);
CREATE INDEX idx_decisions_state ON decisions(state);
CREATE INDEX idx_decisions_run ON decisions(run_id);

-- Every state change, plus notes such as the stage a cancelled run reached
CREATE TABLE decision_events (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    decision_id INTEGER NOT NULL REFERENCES decisions(id),
    run_id      INTEGER REFERENCES runs(id),
    from_state  TEXT,
    to_state    TEXT NOT NULL,
    stage       TEXT,
    note        TEXT,
    created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX idx_events_decision ON decision_events(decision_id);

-- Every move/delete with the digest and retained location needed for undo
CREATE TABLE actions (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    decision_id   INTEGER NOT NULL REFERENCES decisions(id),
    run_id        INTEGER REFERENCES runs(id),
    kind          TEXT NOT NULL,
    source_path   TEXT NOT NULL,
    target_path   TEXT,
    retained_path TEXT,
    digest        TEXT,
    status        TEXT NOT NULL,
    error         TEXT,
    created_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX idx_actions_decision ON actions(decision_id);

-- Schema versioning for future migrations
CREATE TABLE schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S', 'now'))
);

INSERT INTO schema_version (version) VALUES (1);
"""

# Manual review queue, unique per path and reason so re-runs do not pile up.
MIGRATION_V2 = """
CREATE TABLE review_items (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id     INTEGER REFERENCES runs(id),
    path       TEXT NOT NULL,
    reason     TEXT NOT NULL,
    detail     TEXT,
    context    TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    UNIQUE (path, reason)
);

INSERT INTO schema_version (version) VALUES (2);
"""

MIGRATIONS: list[tuple[int, str]] = [
    (2, MIGRATION_V2),
]
