"""PII masking for log lines (guest emails)."""


def redact_pii(value: str) -> str:
    """Mask a value for logging, keeping the first 3 and last 2 chars."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]
