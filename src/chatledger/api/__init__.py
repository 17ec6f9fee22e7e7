"""HTTP API: sync wire surface plus session and search endpoints."""
