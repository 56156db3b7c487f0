"""peniche: manage a Cargo workspace and run its commands concurrently."""

__version__ = "0.3.0"
