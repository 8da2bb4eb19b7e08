from dataclasses import dataclass
import os
from dotenv import load_dotenv

from .errors import ConfigurationError


@dataclass
class Settings:
    listen_host: str
    listen_port: int
    upstream_host: str
    upstream_port: int
    use_tls: bool
    config_path: str
    realm: str
    log_path: str


def _port(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def load_settings():
    load_dotenv(override=True)
    return Settings(
        listen_host=os.getenv("GATE_LISTEN_HOST", "0.0.0.0"),
        listen_port=_port("GATE_LISTEN_PORT", 8080),
        upstream_host=os.getenv("GATE_UPSTREAM_HOST", "127.0.0.1"),
        upstream_port=_port("GATE_UPSTREAM_PORT", 8000),
        use_tls=os.getenv("GATE_USE_TLS", "false").lower() == "true",
        config_path=os.getenv("GATE_CONFIG_PATH", "Gatefile"),
        realm=os.getenv("GATE_REALM", "Restricted"),
        log_path=os.getenv("GATE_LOG_PATH", "gate.log"),
    )
