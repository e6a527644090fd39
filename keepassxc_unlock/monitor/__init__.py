"""
Session side of auto-unlock: logind sessions, the per-user session monitor
and the system-wide login watcher.

Nothing is imported here so that the command line modules can be run with
`python -m keepassxc_unlock.monitor.main` without PyGObject being pulled in
twice or side effects on package import.
"""

__all__ = []
