"""Database module for SQLite persistence.

Provides:
- Database connection management
- Schema initialization
- Repository functions for papers, questions and test results
"""

from pyqlab.db.database import db_path_for, get_db, init_db

__all__ = ["db_path_for", "get_db", "init_db"]
