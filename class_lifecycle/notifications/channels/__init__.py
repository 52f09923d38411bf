"""Delivery channels for notifications."""

from .in_app import send_in_app_notification

__all__ = ["send_in_app_notification"]
