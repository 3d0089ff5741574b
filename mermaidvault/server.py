import logging

from aiohttp import web

from .api import create_app
from .config import load_config
from .constants import APP_NAME
from .db import MermaidVaultStore, StoreInitError
from .paths import get_data_dir

logger = logging.getLogger("MermaidVault")


def main(environ=None):
    config = load_config(environ)
    logging.basicConfig(
        level=config["log_level"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    data_dir = config["data_dir"] or get_data_dir()
    try:
        store = MermaidVaultStore(data_dir)
    except StoreInitError as exc:
        logger.error("Failed to initialize database: %s", exc)
        raise SystemExit(1) from exc

    logger.info("%s serving %s on http://%s:%d", APP_NAME, store.db_path, config["host"], config["port"])
    web.run_app(create_app(store), host=config["host"], port=config["port"], print=None)
