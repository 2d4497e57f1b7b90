"""Short-stay booking backend: ResHarmonics bookings paid through Stripe."""

__version__ = "1.0.0"
