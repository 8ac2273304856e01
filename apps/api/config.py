import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class ConfigError(RuntimeError):
    pass


def _flag(value: Optional[str]) -> bool:
    return (value or "false").lower() == "true"


def _number(env: Mapping[str, str], name: str, default: str, cast):
    raw = env.get(name) or default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


class Settings(BaseModel):
    # job store
    database_url: str = ""
    connection_name: Optional[str] = None
    db_user: Optional[str] = None
    db_name: Optional[str] = None
    db_pass: Optional[str] = None
    enable_iam_auth: bool = False
    cloud_sql_ip_type: str = "PUBLIC"
    # generation backend
    gemini_api_key: Optional[str] = None
    project_id: Optional[str] = None
    vertex_location: str = "global"
    default_image_model: str = "gemini-2.5-flash-image"
    analysis_model: str = "gemini-2.5-flash"
    generation_timeout_seconds: float = 90.0
    # blob store
    assets_bucket: Optional[str] = None
    assets_url_prefix: Optional[str] = None  # e.g., https://storage.googleapis.com/<bucket>
    signed_url_ttl: int = 3600
    # worker
    worker_secret: Optional[str] = None
    auth_disabled: bool = False
    refund_policy: str = "overload"
    port: int = 8080
    service_name: str = "aijobs-worker"
    log_json: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            database_url=env.get("DATABASE_URL", ""),
            connection_name=env.get("CONNECTION_NAME"),
            db_user=env.get("DB_USER"),
            db_name=env.get("DB_NAME"),
            db_pass=env.get("DB_PASS"),
            enable_iam_auth=_flag(env.get("ENABLE_IAM_AUTH")),
            cloud_sql_ip_type=(env.get("CLOUD_SQL_IP_TYPE") or "PUBLIC").upper(),
            gemini_api_key=env.get("GEMINI_API_KEY"),
            project_id=env.get("PROJECT_ID"),
            vertex_location=env.get("VERTEX_LOCATION", "global"),
            default_image_model=env.get("DEFAULT_IMAGE_MODEL", "gemini-2.5-flash-image"),
            analysis_model=env.get("ANALYSIS_MODEL", "gemini-2.5-flash"),
            generation_timeout_seconds=_number(env, "GENERATION_TIMEOUT_SECONDS", "90", float),
            assets_bucket=env.get("ASSETS_BUCKET"),
            assets_url_prefix=env.get("ASSETS_URL_PREFIX"),
            signed_url_ttl=_number(env, "SIGNED_URL_TTL", "3600", int),
            worker_secret=env.get("WORKER_SECRET"),
            auth_disabled=_flag(env.get("AUTH_DISABLED")),
            refund_policy=env.get("REFUND_POLICY", "overload").lower(),
            port=_number(env, "PORT", "8080", int),
            service_name=env.get("SERVICE_NAME", "aijobs-worker"),
            log_json=_flag(env.get("LOG_JSON")),
        )

    def missing(self) -> list[str]:
        missing = []
        if not self.database_url and not (self.connection_name and self.db_user and self.db_name):
            missing.append("DATABASE_URL (or CONNECTION_NAME/DB_USER/DB_NAME)")
        if not self.gemini_api_key and not self.project_id:
            missing.append("GEMINI_API_KEY (or PROJECT_ID for Vertex AI)")
        if not self.assets_bucket:
            missing.append("ASSETS_BUCKET")
        if not self.worker_secret and not self.auth_disabled:
            missing.append("WORKER_SECRET")
        if self.refund_policy not in ("overload", "always"):
            missing.append("REFUND_POLICY (overload|always)")
        return missing


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from the environment (and .env). Aborts on missing required values."""
    if environ is None:
        load_dotenv()
    settings = Settings.from_env(environ)
    missing = settings.missing()
    if missing:
        raise ConfigError("Missing required configuration: " + ", ".join(missing))
    return settings
