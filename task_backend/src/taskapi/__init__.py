"""
Task Backend package.

HTTP API for tasks with due dates, a partial-update capable task service, and a
background sweeper that flags tasks overdue once their due date has passed.
"""

__version__ = "0.1.0"
