"""
Client-side data synchronization for the invoicing application.

Keeps in-memory and persisted copies of documents, customers, payment
methods and per-user settings consistent with a hosted store that pushes
change notifications, and degrades to offline mode without a session.
"""

__version__ = "0.1.0"
