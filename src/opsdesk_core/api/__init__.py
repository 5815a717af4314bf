"""HTTP API for OpsDesk Core."""
