# mailbridge/main.py
# Punto de entrada: servidor MCP por stdio -> herramientas de buzón IMAP/SMTP
from __future__ import annotations
import logging
import sys
from mailbridge.config.settings import Settings
from mailbridge.interface_adapters.controllers.mcp_server import build_server
from mailbridge.interface_adapters.controllers.tool_controller import ToolController

logger = logging.getLogger(__name__)


def main() -> None:
    settings = Settings()
    # stdout lo usa el protocolo: el log va a stderr
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        stream=sys.stderr,
    )

    missing = settings.missing_credentials()
    if missing:
        logger.error("Faltan variables de entorno: %s (revisa el .env)", ", ".join(missing))
        sys.exit(1)

    controller = ToolController.from_settings(settings)
    if settings.SMTP_VERIFY_ON_START and not controller.sender.verify_connection():
        logger.warning("SMTP %s:%s no verificado; los envíos pueden fallar", settings.SMTP_HOST, settings.SMTP_PORT)

    logger.info("=== mailbridge (MCP stdio) ===")
    logger.info("IMAP host=%s inbox=%s SMTP host=%s", settings.IMAP_HOST, settings.IMAP_FOLDER_INBOX, settings.SMTP_HOST)
    build_server(controller).run()


if __name__ == "__main__":
    main()
