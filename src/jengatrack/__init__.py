"""JengaTrack: construction expense tracking over WhatsApp."""

__version__ = "0.1.0"
