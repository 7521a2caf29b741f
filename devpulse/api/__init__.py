"""HTTP API for DevPulse."""
