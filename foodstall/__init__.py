"""
                Food Stall Order Queue

Order-taking and kitchen-queue coordination for a two-item food stall:
collision-free ticket numbers, per-station staging baskets, a shared
order log and real-time fan-out of every change.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
