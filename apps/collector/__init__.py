"""
Collector App - Incremental Audit Log Polling

Responsibilities:
- Scheduled polling of the audit log API (APScheduler, SCHEDULE_SECONDS)
- Paginated, rate-limit-aware fetching of each [checkpoint, now] window
- Streaming records through a bounded in-process queue into a temp file
- Rotating finished batches into the configured outputs (file, SFTP)
- Advancing the checkpoint only after a batch is fully flushed

Output:
- OUTPUT_DIR/audit_logs_[YYYYMMDD_HHMMSS].jsonl (one JSON record per line)
- STATE_PATH checkpoint: {"last_poll_timestamp": "..."}
"""
