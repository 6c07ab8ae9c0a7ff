"""
Periodic reminder recomputation.

Every tick re-derives feeding and dosing reminders for each stored profile and
passes notification requests to a notifier. Delivery is the notifier's
concern; this module only decides whether and when to ask.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from config.settings import DOSING_RENOTIFY_MINUTES, REMINDER_TICK_SECONDS
from babylog.ingestion.store import CareStore
from babylog.models.data_structures import Notification
from babylog.models.dosing import SCHEDULES, DosingScheduleTracker
from babylog.models.reminders import (
    NotificationGate, ReminderConfig, feeding_notification, feeding_reminder,
)

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Notifier that records requests and writes them to the log."""

    def __init__(self):
        self.sent: List[Notification] = []

    def notify(self, notification: Notification):
        logger.info("Notify [%s] %s: %s",
                    notification.tag, notification.title, notification.body)
        self.sent.append(notification)


class ReminderTicker:

    def __init__(self, store: CareStore, notifier, config: ReminderConfig = None,
                 interval: int = REMINDER_TICK_SECONDS,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.notifier = notifier
        self.config = config or ReminderConfig.from_settings()
        self.interval = interval
        self.clock = clock
        self.trackers = [DosingScheduleTracker(s) for s in SCHEDULES.values()]
        self.feeding_gate = NotificationGate(self.config.feeding_renotify_minutes)
        self.dosing_gate = NotificationGate(DOSING_RENOTIFY_MINUTES)
        self._task: Optional[asyncio.Task] = None

    def run_once(self, now: datetime = None) -> List[Notification]:
        now = now or self.clock()
        sent = []
        for profile in self.store.list_profiles():
            entries = self.store.list_entries(profile.id)

            feeding = feeding_reminder(entries, now, profile, self.config)
            notification = feeding_notification(feeding, profile, self.feeding_gate, now)
            if notification:
                sent.append(notification)

            for tracker in self.trackers:
                notification = tracker.notification(entries, now, profile)
                if notification and self.dosing_gate.allow(notification.tag, now):
                    sent.append(notification)

        for notification in sent:
            self.notifier.notify(notification)
        return sent

    async def _loop(self):
        try:
            while True:
                try:
                    self.run_once()
                except Exception:
                    logger.exception("Reminder tick failed")
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            logger.info("Reminder ticker cancelled")

    def start(self):
        if self._task is None:
            logger.info("Starting reminder ticker (every %ss)", self.interval)
            self._task = asyncio.create_task(self._loop())

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
