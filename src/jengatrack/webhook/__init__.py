"""JengaTrack webhook service (FastAPI)."""
