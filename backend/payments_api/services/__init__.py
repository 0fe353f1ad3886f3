"""Domain services for the payments API."""
