"""HTTP routes for the app shell."""
