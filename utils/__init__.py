"""Utility modules for Crew Alert Tuner."""
from utils.logger import setup_logging
from utils.formatters import format_number, format_hours, format_rule, format_timestamp, time_ago
from utils.fileio import write_text_atomic, file_lock
