# mailbridge/config/settings.py
from __future__ import annotations
from dataclasses import dataclass
import os
from dotenv import load_dotenv

load_dotenv()

@dataclass(frozen=True)
class Settings:
    # Cuenta (una sola; IMAP y SMTP comparten credenciales)
    EMAIL_ADDRESS: str = os.getenv("EMAIL_ADDRESS", "")
    EMAIL_PASSWORD: str = os.getenv("EMAIL_PASSWORD", "")

    # IMAP
    IMAP_HOST: str = os.getenv("IMAP_HOST", "imap.gmail.com")
    IMAP_PORT: int = int(os.getenv("IMAP_PORT", 993))
    IMAP_SSL: bool = os.getenv("IMAP_SSL", "true").lower() == "true"
    IMAP_FOLDER_INBOX: str = os.getenv("IMAP_FOLDER_INBOX", "INBOX")

    # SMTP (587 + STARTTLS; 465 usa SSL directo)
    SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", 587))
    SMTP_STARTTLS: bool = os.getenv("SMTP_STARTTLS", "true").lower() == "true"
    SMTP_VERIFY_ON_START: bool = os.getenv("SMTP_VERIFY_ON_START", "false").lower() == "true"

    # Timeouts / concurrencia
    CONNECT_TIMEOUT: float = float(os.getenv("CONNECT_TIMEOUT", 10))
    THREAD_SEARCH_WORKERS: int = int(os.getenv("THREAD_SEARCH_WORKERS", 4))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ───────── helpers ─────────
    def missing_credentials(self) -> list[str]:
        missing = []
        if not (self.EMAIL_ADDRESS or "").strip():
            missing.append("EMAIL_ADDRESS")
        if not (self.EMAIL_PASSWORD or "").strip():
            missing.append("EMAIL_PASSWORD")
        return missing

    def sender_domain(self) -> str:
        # dominio para Message-ID generados localmente
        _, _, domain = (self.EMAIL_ADDRESS or "").rpartition("@")
        return domain or "localhost"
