"""Event Deletion Guard.

Grace-period scheduling, backup-first cascade deletion, recovery and audit
trail for events and every record that references them.
"""

__version__ = "0.1.0"
