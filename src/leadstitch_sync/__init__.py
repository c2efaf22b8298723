"""
LeadStitch Sync - job progress synchronization for LeadStitch clients.

Tracks long-running backend jobs (profile searches, campaign sends) over a
Socket.IO push channel with a REST polling fallback, survives restarts through
a durable job handle store, and fires a follow-up action exactly once when a
job finishes.
"""

__version__ = "1.0.0"
