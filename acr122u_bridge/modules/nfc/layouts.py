"""
layouts.py - NTAG21x memory layouts and layout detection.
"""

import logging
from collections import namedtuple

from .commands import PAGE_SIZE
from .exceptions import NFCError, NFCLayoutUnresolvedError, NFCUnsupportedTagFamilyError

logger = logging.getLogger(__name__)

USER_DATA_START_PAGE = 4


class TagLayout(namedtuple('TagLayout', [
        'family_name', 'config_page', 'password_page', 'pack_page', 'max_page', 'total_pages'])):
    """
    Page map of one NTAG21x family.

    config_page holds CFG0 (MIRROR, RFUI, MIRROR_PAGE, AUTH0) and the next page
    CFG1 (ACCESS, RFUI...). The page right before config_page is the dynamic
    lock page, so user data runs from page 4 up to config_page - 2.
    """
    __slots__ = ()

    user_data_start_page = USER_DATA_START_PAGE

    @property
    def user_data_end_page(self):
        """First page after the user data area (the dynamic lock page)."""
        return self.config_page - 1

    @property
    def user_capacity(self):
        """User data area size in bytes."""
        return (self.user_data_end_page - self.user_data_start_page) * PAGE_SIZE

    @property
    def memory_size(self):
        return self.total_pages * PAGE_SIZE


NTAG213 = TagLayout('NTAG213', config_page=41, password_page=43, pack_page=44, max_page=44, total_pages=45)
NTAG215 = TagLayout('NTAG215', config_page=131, password_page=133, pack_page=134, max_page=134, total_pages=135)
NTAG216 = TagLayout('NTAG216', config_page=227, password_page=229, pack_page=230, max_page=230, total_pages=231)
NTAG210_212 = TagLayout('NTAG210/212', config_page=37, password_page=39, pack_page=40, max_page=40, total_pages=41)

# Probe order when GET_VERSION gives no answer
CANDIDATE_LAYOUTS = (NTAG213, NTAG215, NTAG216, NTAG210_212)

LAYOUTS_BY_NAME = {layout.family_name: layout for layout in CANDIDATE_LAYOUTS}


def get_layout(family_name):
    """
    Look up a layout by family name.

    Raises:
        NFCUnsupportedTagFamilyError: If the family is unknown
    """
    try:
        return LAYOUTS_BY_NAME[family_name]
    except KeyError:
        raise NFCUnsupportedTagFamilyError(family_name)


class LayoutResolution:
    """
    Result of layout detection for one tag presence.

    Attributes:
        layout (TagLayout): Detected layout, or the fallback when not detected
        detected (bool): True if a layout was positively identified
        source (str): 'version', 'probe' or None
        config_window (bytes): 16 bytes read from the config page, or None
    """

    def __init__(self, layout, detected, source=None, config_window=None):
        self.layout = layout
        self.detected = detected
        self.source = source
        self.config_window = config_window

    def require(self):
        """Return the layout, or raise if it was not detected."""
        if not self.detected:
            raise NFCLayoutUnresolvedError()
        return self.layout

    def __repr__(self):
        return (f"LayoutResolution({self.layout.family_name}, detected={self.detected}, "
                f"source={self.source!r})")


def _looks_like_config(window):
    # An all-zero CFG0 means we read user memory or a misaligned address
    return window is not None and len(window) >= 8 and any(window[:4])


def _read_config_window(reader, layout):
    try:
        window = reader.read_pages(layout.config_page, 16)
    except NFCError as e:
        logger.debug(f"Config page {layout.config_page} ({layout.family_name}) not readable: {e}")
        return None
    if not _looks_like_config(window):
        logger.debug(f"Config page {layout.config_page} ({layout.family_name}) is all zeros, skipping")
        return None
    return window


def resolve_layout(reader, candidates=CANDIDATE_LAYOUTS, fallback=NTAG215):
    """
    Detect the memory layout of the tag on the reader.

    GET_VERSION is tried first and wins when it names a known family. Otherwise
    the config page of each candidate is read in order and the first one that
    reads successfully and is not all zeros is accepted.

    A family named by GET_VERSION is kept even when its config window cannot be
    read; the resolution is then detected without a config window and the
    protection check reports it as unknown rather than probing other layouts.

    Args:
        reader: NFCReader for the current tag
        candidates (tuple): Layouts to probe, in order
        fallback (TagLayout): Layout reported when nothing is detected

    Returns:
        LayoutResolution: Never raises for transport failures
    """
    family = reader.get_version()
    if family in LAYOUTS_BY_NAME:
        layout = LAYOUTS_BY_NAME[family]
        logger.info(f"GET_VERSION identified {family}")
        return LayoutResolution(layout, True, 'version', _read_config_window(reader, layout))

    for layout in candidates:
        window = _read_config_window(reader, layout)
        if window is not None:
            logger.info(f"Detected {layout.family_name} (config at page {layout.config_page})")
            return LayoutResolution(layout, True, 'probe', window)

    logger.info(f"Could not detect tag layout, assuming {fallback.family_name}")
    return LayoutResolution(fallback, False)
