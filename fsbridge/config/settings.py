# Configuration management

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings  # type: ignore


class Settings(BaseSettings):
    # Backend selection: hdfs://, webhdfs://, swebhdfs://, s3a://, s3://, file://
    storage_uri: str = "hdfs://localhost:8020"
    storage_timeout: Optional[float] = None

    # Endpoint override: S3 endpoint, or WebHDFS HTTP address for hdfs:// URIs
    storage_endpoint_url: Optional[str] = None

    # Cluster (HDFS) authentication and tuning
    storage_user: Optional[str] = None
    dfs_replication: int = 3  # 1 for single-node clusters
    dfs_use_datanode_hostname: bool = False

    # Object storage (S3) authentication
    storage_access_key: str = ""
    storage_secret_key: str = ""
    storage_region: Optional[str] = None
    s3_signature_v4: bool = True

    # Transfers
    transfer_buffer_size: int = 4096

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
