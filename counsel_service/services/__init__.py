"""Services module - database operations behind the HTTP routes."""
