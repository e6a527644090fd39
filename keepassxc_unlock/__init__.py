"""
Auto-unlock of KeePassXC databases on desktop session start and screen unlock.
"""

__version__ = "1.2.0"
