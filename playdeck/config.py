"""
PlayDeck Configuration Loader

Loads configuration from:
1. $PLAYDECK_HOME/playdeck.yaml (if PLAYDECK_HOME set)
   OR config/playdeck.yaml
2. .env file - Secrets (access token)
"""

import os
from pathlib import Path
from dataclasses import dataclass, field

import yaml
from dotenv import load_dotenv


@dataclass
class StoreConfig:
    db_path: str = "data/playdeck.db"


@dataclass
class QueueConfig:
    history_size: int = 20
    upcoming_size: int = 30
    history_log_size: int = 20


@dataclass
class RemoteConfig:
    api_base: str = "https://api.spotify.com/v1"
    access_token: str = ""
    poll_interval: float = 3.0
    max_attempts: int = 3
    initial_delay: float = 2.0
    max_delay: float = 10.0
    resubscribe_delay: float = 5.0
    command_grace: float = 5.0


@dataclass
class CatalogConfig:
    page_size: int = 50
    page_delay: float = 0.1
    sync_on_start: bool = True


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 49990


@dataclass
class Config:
    """Main configuration container."""
    store: StoreConfig = field(default_factory=StoreConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    web: WebConfig = field(default_factory=WebConfig)

    @classmethod
    def load(cls, config_dir: Path | None = None) -> "Config":
        """Load configuration from yaml file and environment variables.

        Resolution order:
        1. PLAYDECK_HOME env var → home/playdeck.yaml, home/.env
        2. Explicit config_dir argument → config_dir/playdeck.yaml
        3. Default: ../config/playdeck.yaml
        """
        home = os.environ.get("PLAYDECK_HOME")

        if home:
            yaml_path = Path(home) / "playdeck.yaml"
            load_dotenv(Path(home) / ".env", override=False)
        else:
            if config_dir is None:
                config_dir = Path(__file__).parent.parent / "config"
            yaml_path = config_dir / "playdeck.yaml"
            load_dotenv(config_dir.parent / ".env")

        yaml_config = {}
        if yaml_path.exists():
            with open(yaml_path) as f:
                yaml_config = yaml.safe_load(f) or {}

        return cls.from_dict(yaml_config)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Build a config from a parsed yaml mapping, applying env overrides."""
        store_cfg = data.get("store", {}) or {}
        queue_cfg = data.get("queue", {}) or {}
        remote_cfg = data.get("remote", {}) or {}
        catalog_cfg = data.get("catalog", {}) or {}
        web_cfg = data.get("web", {}) or {}

        store = StoreConfig(
            db_path=os.getenv("PLAYDECK_DB_PATH", store_cfg.get("db_path", "data/playdeck.db")),
        )

        queue = QueueConfig(
            history_size=queue_cfg.get("history_size", 20),
            upcoming_size=queue_cfg.get("upcoming_size", 30),
            history_log_size=queue_cfg.get("history_log_size", 20),
        )

        # Env vars override yaml for deployment-specific endpoints
        remote = RemoteConfig(
            api_base=os.getenv("PLAYDECK_API_BASE", remote_cfg.get("api_base", "https://api.spotify.com/v1")),
            access_token=os.getenv("PLAYDECK_ACCESS_TOKEN", ""),
            poll_interval=remote_cfg.get("poll_interval", 3.0),
            max_attempts=remote_cfg.get("max_attempts", 3),
            initial_delay=remote_cfg.get("initial_delay", 2.0),
            max_delay=remote_cfg.get("max_delay", 10.0),
            resubscribe_delay=remote_cfg.get("resubscribe_delay", 5.0),
            command_grace=remote_cfg.get("command_grace", 5.0),
        )

        catalog = CatalogConfig(
            page_size=catalog_cfg.get("page_size", 50),
            page_delay=catalog_cfg.get("page_delay", 0.1),
            sync_on_start=catalog_cfg.get("sync_on_start", True),
        )

        web = WebConfig(
            host=web_cfg.get("host", "0.0.0.0"),
            port=web_cfg.get("port", 49990),
        )

        return cls(store=store, queue=queue, remote=remote, catalog=catalog, web=web)
