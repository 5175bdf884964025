"""
UTC timestamp logging formatter for Farm Agent.

Prefixes every log entry with a UTC timestamp in square brackets so logs from
hosts in different timezones line up when collected centrally.
"""

import datetime
import logging


class UTCTimestampFormatter(logging.Formatter):
    """
    Logging formatter that adds UTC timestamps in square brackets.

    Format: [YYYY-MM-DD HH:MM:SS.sss UTC] <formatted record>
    """

    def formatTime(self, record, datefmt=None):  # noqa: N802
        moment = datetime.datetime.fromtimestamp(record.created, datetime.timezone.utc)
        if datefmt:
            return moment.strftime(datefmt)
        return moment.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

    def format(self, record):
        original_message = super().format(record)
        return f"[{self.formatTime(record)} UTC] {original_message}"
