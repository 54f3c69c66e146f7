"""
BacklogSync Database Schema Definitions

Raw SQL schema for SQLite and PostgreSQL.
These are used for non-Alembic schema initialization.

Natural keys (epics.number, stories.story_key) are deliberately not UNIQUE:
soft-deleted rows keep their key while a new active row may reuse it.
"""

SCHEMA_SQLITE = """
CREATE TABLE IF NOT EXISTS planning_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    project_name TEXT NOT NULL,
    project_description TEXT,
    current_step TEXT NOT NULL DEFAULT 'init',
    status TEXT NOT NULL DEFAULT 'active',
    total_epics INTEGER NOT NULL DEFAULT 0,
    total_stories INTEGER NOT NULL DEFAULT 0,
    total_story_points INTEGER NOT NULL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    deleted_at DATETIME
);
CREATE INDEX IF NOT EXISTS idx_planning_sessions_user ON planning_sessions(user_id);

CREATE TABLE IF NOT EXISTS epics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL REFERENCES planning_sessions(id) ON DELETE CASCADE,
    number INTEGER NOT NULL CHECK (number >= 1),
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    business_value TEXT,
    functional_requirement_codes TEXT DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'backlog',
    priority TEXT NOT NULL DEFAULT 'medium',
    target_sprint INTEGER,
    estimated_story_points INTEGER,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    deleted_at DATETIME
);
CREATE INDEX IF NOT EXISTS idx_epics_session_number ON epics(session_id, number);

CREATE TABLE IF NOT EXISTS stories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL REFERENCES planning_sessions(id) ON DELETE CASCADE,
    epic_id INTEGER NOT NULL REFERENCES epics(id) ON DELETE CASCADE,
    epic_number INTEGER NOT NULL CHECK (epic_number >= 1),
    story_number INTEGER NOT NULL CHECK (story_number >= 1),
    story_key TEXT NOT NULL,
    title TEXT NOT NULL,
    as_a TEXT NOT NULL,
    i_want TEXT NOT NULL,
    so_that TEXT NOT NULL,
    description TEXT,
    acceptance_criteria TEXT DEFAULT '[]',
    tasks TEXT DEFAULT '[]',
    dev_notes TEXT DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'backlog',
    priority TEXT NOT NULL DEFAULT 'medium',
    story_points INTEGER,
    target_sprint INTEGER,
    functional_requirement_codes TEXT DEFAULT '[]',
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    deleted_at DATETIME
);
CREATE INDEX IF NOT EXISTS idx_stories_session_key ON stories(session_id, story_key);
CREATE INDEX IF NOT EXISTS idx_stories_epic ON stories(epic_id);
"""

SCHEMA_POSTGRES = """
CREATE TABLE IF NOT EXISTS planning_sessions (
    id SERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    project_name TEXT NOT NULL,
    project_description TEXT,
    current_step TEXT NOT NULL DEFAULT 'init',
    status TEXT NOT NULL DEFAULT 'active',
    total_epics INTEGER NOT NULL DEFAULT 0,
    total_stories INTEGER NOT NULL DEFAULT 0,
    total_story_points INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_planning_sessions_user ON planning_sessions(user_id);

CREATE TABLE IF NOT EXISTS epics (
    id SERIAL PRIMARY KEY,
    session_id INTEGER NOT NULL REFERENCES planning_sessions(id) ON DELETE CASCADE,
    number INTEGER NOT NULL CHECK (number >= 1),
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    business_value TEXT,
    functional_requirement_codes JSONB DEFAULT '[]'::jsonb,
    status TEXT NOT NULL DEFAULT 'backlog',
    priority TEXT NOT NULL DEFAULT 'medium',
    target_sprint INTEGER,
    estimated_story_points INTEGER,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_epics_session_number ON epics(session_id, number);

CREATE TABLE IF NOT EXISTS stories (
    id SERIAL PRIMARY KEY,
    session_id INTEGER NOT NULL REFERENCES planning_sessions(id) ON DELETE CASCADE,
    epic_id INTEGER NOT NULL REFERENCES epics(id) ON DELETE CASCADE,
    epic_number INTEGER NOT NULL CHECK (epic_number >= 1),
    story_number INTEGER NOT NULL CHECK (story_number >= 1),
    story_key TEXT NOT NULL,
    title TEXT NOT NULL,
    as_a TEXT NOT NULL,
    i_want TEXT NOT NULL,
    so_that TEXT NOT NULL,
    description TEXT,
    acceptance_criteria JSONB DEFAULT '[]'::jsonb,
    tasks JSONB DEFAULT '[]'::jsonb,
    dev_notes JSONB DEFAULT '{}'::jsonb,
    status TEXT NOT NULL DEFAULT 'backlog',
    priority TEXT NOT NULL DEFAULT 'medium',
    story_points INTEGER,
    target_sprint INTEGER,
    functional_requirement_codes JSONB DEFAULT '[]'::jsonb,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_stories_session_key ON stories(session_id, story_key);
CREATE INDEX IF NOT EXISTS idx_stories_epic ON stories(epic_id);
"""
