"""Request dependencies shared by the route modules."""

from pathlib import Path

from pyqlab.config.app_config import get_data_dir
from pyqlab.db.database import db_path_for, init_db


def data_dir_dependency() -> Path:
    """Data directory (PYQ_DATA_DIR) with its database initialized."""
    data_dir = get_data_dir()
    init_db(db_path_for(data_dir))
    return data_dir
