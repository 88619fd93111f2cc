"""
Image Studio client core.

Provides:
  - A single-concurrency job queue for generation submissions
  - Per-generation Server-Sent-Events subscriptions
  - Reconciliation of stream events with optimistic placeholders
  - A stable-object image cache for the gallery
  - A session object tying them together
"""

from .exceptions import (
    InvalidSubmission,
    StreamConnectionLost,
    StreamError,
    StudioError,
    SubmissionError,
)
from .image_cache import GalleryImage, ImageCache, image_signature
from .notifications import ConsoleNotifier, Notification, NotificationLevel, Notifier
from .queue import JobQueue
from .reconcile import apply_event, merge_image, strip_placeholders
from .service import GenerationService
from .session import StudioSession
from .stream import StreamClient, StreamSubscription, iter_sse_data

__all__ = [
    # Errors
    "StudioError",
    "InvalidSubmission",
    "SubmissionError",
    "StreamError",
    "StreamConnectionLost",
    # Cache
    "GalleryImage",
    "ImageCache",
    "image_signature",
    # Notifications
    "Notifier",
    "ConsoleNotifier",
    "Notification",
    "NotificationLevel",
    # Queue
    "JobQueue",
    # Reconciliation
    "apply_event",
    "merge_image",
    "strip_placeholders",
    # Transport
    "GenerationService",
    "StreamClient",
    "StreamSubscription",
    "iter_sse_data",
    # Session
    "StudioSession",
]
