from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SLACKER_", env_file=".env", extra="ignore")

    # Cluster membership (no cluster name = standalone server)
    cluster_name: str | None = None
    zk_address: str = "127.0.0.1:2181"  # comma-separated failover list
    zk_root: str = "/slacker/cluster/"
    # Advertised host:port; auto-detected from the ZooKeeper route if unset
    node: str | None = None

    # ZooKeeper session
    zk_session_timeout: int = Field(default=5000, ge=1)  # milliseconds
    zk_connect_timeout: float = Field(default=15.0, gt=0)
    address_probe_timeout: float = Field(default=5.0, gt=0)

    # Leader election
    election_stop_timeout: float = Field(default=10.0, gt=0)

    # Observability
    log_level: str = "INFO"
    log_json: bool = True


settings = Settings()
