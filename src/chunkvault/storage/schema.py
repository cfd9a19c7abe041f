"""Database schema for the chunkvault metadata index."""

SCHEMA = """
-- Chunk index: one row per unique content hash
CREATE TABLE IF NOT EXISTS chunks (
    hash TEXT PRIMARY KEY,
    physical_path TEXT NOT NULL,
    size INTEGER NOT NULL,           -- uncompressed bytes
    stored_size INTEGER NOT NULL,    -- framed bytes on disk
    ref_count INTEGER NOT NULL DEFAULT 0,  -- incremented by each manifest row
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Manifests: ordered chunk hashes of each ingested file
CREATE TABLE IF NOT EXISTS file_chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    filename TEXT NOT NULL,
    chunk_hash TEXT NOT NULL,
    chunk_number INTEGER NOT NULL,
    FOREIGN KEY (chunk_hash) REFERENCES chunks(hash),
    UNIQUE (filename, chunk_number)
);

-- Files whose ingestion finished; a manifest without a row here is incomplete
CREATE TABLE IF NOT EXISTS file_status (
    filename TEXT PRIMARY KEY,
    chunk_count INTEGER NOT NULL,
    total_bytes INTEGER NOT NULL,
    completed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Store settings that must not change once objects exist
CREATE TABLE IF NOT EXISTS store_info (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE INDEX IF NOT EXISTS idx_file_chunks_hash ON file_chunks(chunk_hash);
"""

# Settings recorded in store_info on first initialization
PINNED_SETTINGS = ("codec", "hash_algorithm", "shard_depth")
