"""Reading history, live evaluation loop and backfill."""
