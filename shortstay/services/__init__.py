"""Availability search and booking notifications."""

from .availability import AvailabilitySearch
from .notifier import BookingSummary, NotificationResult, WebhookNotifier

__all__ = ["AvailabilitySearch", "BookingSummary", "NotificationResult", "WebhookNotifier"]
