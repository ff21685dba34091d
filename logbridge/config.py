from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import ConfigDict

class Settings(BaseSettings):
    # Logging
    LOG_LEVEL: str = "INFO"  # ERROR | WARN | INFO | DEBUG
    LOG_COLOR: bool = True

    # Local Kubo node (used by the Kubo log engine)
    IPFS_API_URL: str = "http://localhost:5001/api/v0"
    HEADS_POINTER_ROOT: str = "/logbridge/heads"
    ADDRESS_SCHEME: str = "/orbitdb"

    # Remote store session
    REMOTE_API_URL: str = "http://localhost:5002/api/v0"
    REMOTE_KEY: Optional[str] = None
    REMOTE_PROOF: Optional[str] = None
    REMOTE_TIMEOUT_SECONDS: float = 60.0

    # Gateways are tried in order, first success wins
    GATEWAYS: list[str] = [
        "https://w3s.link/ipfs",
        "https://gateway.web3.storage/ipfs",
        "https://ipfs.io/ipfs",
    ]
    GATEWAY_TIMEOUT_SECONDS: float = 30.0
    VERIFY_DOWNLOADS: bool = True

    TRANSFER_CONCURRENCY: int = 1  # 1 = sequential
    REMOVE_BATCH_SIZE: int = 10

    # Scheduled backups
    AUTO_BACKUP: bool = False
    BACKUP_INTERVAL_MINUTES: int = 60  # Default: 1 hour
    BACKUP_ADDRESS: Optional[str] = None

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore"  # Ignore extra fields in .env (used by scripts)
    )

settings = Settings()
