# main.py
from __future__ import annotations
import structlog

from app.api.server import build_server
from app.config import RuntimeConfig
from app.logging_config import configure_logging

def main() -> None:
    cfg = RuntimeConfig.from_env()
    configure_logging(debug=cfg.debug, json_logs=cfg.json_logs)
    log = structlog.get_logger()

    log.info("app.start", msg="Launching runtime emulator", host=cfg.host, port=cfg.port)
    build_server(cfg).run()
    log.info("app.stop", msg="Exited cleanly")

if __name__ == "__main__":
    main()
