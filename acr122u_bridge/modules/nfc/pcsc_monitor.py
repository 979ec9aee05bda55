"""
pcsc_monitor.py - PC/SC reader and card hot-plug monitoring using pyscard.

Reader attach/detach and card insert/remove notifications are forwarded to the
NFC bridge. Observers run on pyscard's monitoring threads, so the bridge
callbacks only record state and queue work.
"""

import logging

from smartcard.CardMonitoring import CardMonitor, CardObserver
from smartcard.ReaderMonitoring import ReaderMonitor, ReaderObserver

from ...utils.logger import LoggerMixin

logger = logging.getLogger(__name__)


def reader_matches(reader_name, reader_filter):
    """Case-insensitive substring match; an empty filter matches every reader."""
    if not reader_filter:
        return True
    return reader_filter.lower() in str(reader_name).lower()


class _ReaderObserver(ReaderObserver):
    def __init__(self, bridge, reader_filter):
        super().__init__()
        self.bridge = bridge
        self.reader_filter = reader_filter

    def update(self, observable, actions):
        added, removed = actions
        for reader in added:
            name = str(reader)
            if not reader_matches(name, self.reader_filter):
                logger.info(f"Ignoring reader {name}")
                continue
            try:
                self.bridge.reader_attached(name)
            except Exception as e:
                logger.error(f"Error handling reader attach for {name}: {e}")
        for reader in removed:
            name = str(reader)
            try:
                self.bridge.reader_detached(name)
            except Exception as e:
                logger.error(f"Error handling reader detach for {name}: {e}")


class _CardObserver(CardObserver):
    def __init__(self, bridge, reader_filter):
        super().__init__()
        self.bridge = bridge
        self.reader_filter = reader_filter

    def update(self, observable, actions):
        added, removed = actions
        for card in added:
            name = str(getattr(card, 'reader', 'Unknown Reader'))
            if not reader_matches(name, self.reader_filter):
                continue
            try:
                self.bridge.card_inserted(name, card)
            except Exception as e:
                logger.error(f"Error handling card insert on {name}: {e}")
                self.bridge.reader_error(name, e)
        for card in removed:
            name = str(getattr(card, 'reader', 'Unknown Reader'))
            if not reader_matches(name, self.reader_filter):
                continue
            try:
                self.bridge.card_removed(name)
            except Exception as e:
                logger.error(f"Error handling card removal on {name}: {e}")


class PCSCMonitor(LoggerMixin):
    """
    Connects pyscard's reader and card monitors to an NFCBridge.

    Usage:
        monitor = PCSCMonitor(bridge, reader_filter='ACR122')
        monitor.start()
        ...
        monitor.stop()
    """

    def __init__(self, bridge, reader_filter=''):
        self.bridge = bridge
        self.reader_filter = reader_filter
        self._reader_monitor = None
        self._card_monitor = None
        self._reader_observer = None
        self._card_observer = None
        self.setup_logger(__name__)

    def start(self):
        """Start monitoring. Readers already present are reported immediately."""
        if self._reader_monitor is not None:
            return
        self._reader_monitor = ReaderMonitor()
        self._card_monitor = CardMonitor()
        self._reader_observer = _ReaderObserver(self.bridge, self.reader_filter)
        self._card_observer = _CardObserver(self.bridge, self.reader_filter)
        self._reader_monitor.addObserver(self._reader_observer)
        self._card_monitor.addObserver(self._card_observer)
        self.logger.info("PC/SC monitoring started, waiting for NFC reader...")

    def stop(self):
        """Stop monitoring."""
        if self._reader_monitor is None:
            return
        try:
            self._card_monitor.deleteObserver(self._card_observer)
            self._reader_monitor.deleteObserver(self._reader_observer)
        except Exception as e:
            self.logger.error(f"Error stopping PC/SC monitoring: {e}")
        finally:
            self._reader_monitor = None
            self._card_monitor = None
            self._reader_observer = None
            self._card_observer = None
        self.logger.info("PC/SC monitoring stopped")
