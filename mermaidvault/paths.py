import os

from .constants import DB_FILENAME


def get_data_dir():
    # Hosts point the store somewhere else with MERMAIDVAULT_DATA_DIR.
    data_dir = os.environ.get("MERMAIDVAULT_DATA_DIR", "").strip()
    if not data_dir:
        data_dir = os.path.join(os.path.expanduser("~"), ".mermaidvault")
    return data_dir


def get_db_path(data_dir=None):
    return os.path.join(data_dir or get_data_dir(), DB_FILENAME)
