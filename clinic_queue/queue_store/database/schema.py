"""
Clinic Queue Database Schema
Supports queue entries, chat messages, and longitudinal person records.
"""

SCHEMA = """
-- =============================================================================
-- 1. PERSONS - Longitudinal record used for repeat-visit history
-- =============================================================================
CREATE TABLE IF NOT EXISTS persons (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    age INTEGER,
    gender TEXT,
    city TEXT,
    mobile TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_persons_mobile ON persons(mobile);


-- =============================================================================
-- 2. ENTRIES - One row per visit/registration on a calendar day
-- =============================================================================
CREATE TABLE IF NOT EXISTS entries (
    id TEXT PRIMARY KEY,

    -- Queue placement
    day TEXT NOT NULL,               -- YYYY-MM-DD, clinic local day of created_at
    queue_number INTEGER NOT NULL DEFAULT 0,
    category TEXT NOT NULL,          -- PATIENT, VISITOR
    type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'WAITING',
    sort_position INTEGER NOT NULL DEFAULT 0 CHECK (sort_position >= 0),

    -- Demographics
    name TEXT NOT NULL,
    age INTEGER,
    gender TEXT,
    city TEXT,
    mobile TEXT,
    person_id TEXT,

    -- Consultation output
    vitals TEXT,
    notes TEXT,
    medicines TEXT,

    -- Chat alert
    has_unread_alert INTEGER NOT NULL DEFAULT 0,

    -- Timestamps
    created_at TEXT NOT NULL,
    in_time TEXT,
    out_time TEXT,
    updated_at TEXT,

    FOREIGN KEY (person_id) REFERENCES persons(id)
);

CREATE INDEX IF NOT EXISTS idx_entries_day_status ON entries(day, status);
CREATE INDEX IF NOT EXISTS idx_entries_person ON entries(person_id);

-- Queue numbers are unique within a day (0 is the VISITOR placeholder)
CREATE UNIQUE INDEX IF NOT EXISTS idx_entries_day_queue_number
    ON entries(day, queue_number) WHERE queue_number > 0;


-- Highest queue number handed out per day, so numbers are never reused
CREATE TABLE IF NOT EXISTS queue_counters (
    day TEXT PRIMARY KEY,
    last_number INTEGER NOT NULL
);


-- =============================================================================
-- 3. MESSAGES - Append-only operator/doctor chat per entry
-- =============================================================================
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    entry_id TEXT NOT NULL,
    sender TEXT NOT NULL,            -- OPERATOR, DOCTOR
    text TEXT NOT NULL,
    sent_at TEXT NOT NULL,
    seq INTEGER NOT NULL,

    FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_messages_entry ON messages(entry_id, seq);
"""
