"""SQLite DDL for the bundled store."""

LEADS_SCHEMA = """
-- Datasets group the businesses that are crawled and exported together
CREATE TABLE IF NOT EXISTS datasets (
  id TEXT PRIMARY KEY,
  name TEXT,
  user_id TEXT,
  created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS businesses (
  id TEXT PRIMARY KEY,
  dataset_id TEXT NOT NULL,
  name TEXT,
  website_url TEXT,
  created_at INTEGER NOT NULL,
  FOREIGN KEY (dataset_id) REFERENCES datasets (id)
);
CREATE INDEX IF NOT EXISTS idx_businesses_dataset ON businesses(dataset_id);

-- One row per crawl attempt; status only moves forward
CREATE TABLE IF NOT EXISTS crawl_jobs (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  business_id TEXT NOT NULL,
  dataset_id TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'queued' CHECK (status IN ('queued','running','completed','failed')),
  pages_limit INTEGER NOT NULL,
  pages_crawled INTEGER DEFAULT 0,
  attempts INTEGER DEFAULT 0,
  error_message TEXT,
  created_at INTEGER NOT NULL,
  started_at INTEGER,
  finished_at INTEGER,
  FOREIGN KEY (business_id) REFERENCES businesses (id)
);
CREATE INDEX IF NOT EXISTS idx_crawl_jobs_dataset_status ON crawl_jobs(dataset_id, status);
CREATE INDEX IF NOT EXISTS idx_crawl_jobs_business ON crawl_jobs(business_id, created_at);

-- Latest crawl outcome per business; the full result is kept as JSON
CREATE TABLE IF NOT EXISTS crawl_results (
  business_id TEXT PRIMARY KEY,
  dataset_id TEXT NOT NULL,
  website_url TEXT,
  status TEXT CHECK (status IN ('not_crawled','partial','completed')),
  pages_visited INTEGER DEFAULT 0,
  emails_count INTEGER DEFAULT 0,
  phones_count INTEGER DEFAULT 0,
  result_json TEXT NOT NULL,
  started_at TEXT,
  finished_at TEXT,
  updated_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_crawl_results_dataset ON crawl_results(dataset_id);

CREATE TABLE IF NOT EXISTS crawl_summaries (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  dataset_id TEXT NOT NULL,
  summary_json TEXT NOT NULL,
  started_at TEXT,
  finished_at TEXT
);

CREATE TABLE IF NOT EXISTS users (
  id TEXT PRIMARY KEY,
  plan TEXT NOT NULL DEFAULT 'demo',
  is_internal INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS exports (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  dataset_id TEXT NOT NULL,
  user_id TEXT,
  tier TEXT NOT NULL,
  format TEXT NOT NULL CHECK (format IN ('csv','xlsx')),
  row_count INTEGER NOT NULL,
  total_rows INTEGER NOT NULL,
  truncated INTEGER NOT NULL DEFAULT 0,
  watermark TEXT,
  file_path TEXT NOT NULL,
  created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS action_log (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id TEXT,
  action TEXT NOT NULL,
  dataset_id TEXT,
  result_summary TEXT,
  gated INTEGER NOT NULL DEFAULT 0,
  error TEXT,
  metadata_json TEXT,
  created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_action_log_dataset ON action_log(dataset_id);
"""
