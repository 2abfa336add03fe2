"""Global pytest configuration."""

import os

# Keep the reference store instant and the quiescence window short before any imports
os.environ.setdefault("EVENTFORMS_REFERENCE_LATENCY_MS", "0")
os.environ.setdefault("EVENTFORMS_DEBOUNCE_MS", "20")
