"""Notification engine: tell king to re-sync configuration after a run."""

from depsync.engines.notification.notifier import HealthCheckNotifier

__all__ = ["HealthCheckNotifier"]
