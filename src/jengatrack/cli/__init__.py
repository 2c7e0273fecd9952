"""JengaTrack administration CLI (Typer)."""
