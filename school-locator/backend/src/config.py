from __future__ import annotations

import os
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from utils import mask_url_credentials


STORE_BACKENDS = ("mongo", "memory")


class Configuration(BaseModel):
    # Storage
    store_backend: str = Field(default="mongo")
    mongo_url: str = Field(default="mongodb://localhost:27017")
    mongo_db: str = Field(default="school_management")
    mongo_collection: str = Field(default="schools")
    mongo_timeout_ms: int = Field(default=5000)

    # Validation
    enforce_coordinate_range: bool = Field(default=True)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    cors_origins: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")
    log_request_bodies: bool = Field(default=True)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        load_dotenv()
        raw: dict[str, Any] = {}

        env_map = {
            "store_backend": os.getenv("STORE_BACKEND"),
            "mongo_url": os.getenv("MONGO_URL"),
            "mongo_db": os.getenv("MONGO_DB"),
            "mongo_collection": os.getenv("MONGO_COLLECTION"),
            "mongo_timeout_ms": os.getenv("MONGO_TIMEOUT_MS"),
            "enforce_coordinate_range": os.getenv("ENFORCE_COORDINATE_RANGE"),
            "host": os.getenv("HOST"),
            "port": os.getenv("PORT"),
            "cors_origins": os.getenv("CORS_ORIGINS"),
            "log_level": os.getenv("LOG_LEVEL"),
            "log_request_bodies": os.getenv("LOG_REQUEST_BODIES"),
        }

        bool_fields = {"enforce_coordinate_range", "log_request_bodies"}

        for k, v in env_map.items():
            if v is None:
                continue
            if k in bool_fields:
                raw[k] = str(v).lower() in {"1", "true", "yes", "on"}
            else:
                raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    def require_known_backend(self) -> None:
        if self.store_backend.lower() not in STORE_BACKENDS:
            raise ValueError(
                f"Unknown STORE_BACKEND '{self.store_backend}'. Available: {', '.join(STORE_BACKENDS)}"
            )

    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or ["*"]

    def log_summary(self) -> str:
        return (
            "store=%s mongo=%s db=%s collection=%s range_check=%s port=%s log_level=%s"
            % (
                self.store_backend,
                mask_url_credentials(self.mongo_url),
                self.mongo_db,
                self.mongo_collection,
                self.enforce_coordinate_range,
                self.port,
                self.log_level,
            )
        )
