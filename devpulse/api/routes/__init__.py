"""API route modules for DevPulse."""
