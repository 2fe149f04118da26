from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 鉴权
    secret_key: str = "dev_secret"
    access_token_expire_minutes: int = 120

    # 存储 / 日志
    database_url: str = "sqlite:///./toolcrib.db"
    log_level: str = "INFO"

    # 超时扫描：原系统是启动 5 秒后扫一次，之后每 30 分钟一次
    overdue_sweep_enabled: bool = True
    overdue_sweep_interval_seconds: float = 30 * 60
    overdue_first_sweep_delay_seconds: float = 5

    # 自动报表：启动 10 秒后生成一次，之后每 10 天一次；另外每月 1 号凌晨 2 点一次
    auto_reports_enabled: bool = True
    reports_dir: str = "reports"
    report_interval_seconds: float = 10 * 24 * 3600
    report_first_delay_seconds: float = 10
    monthly_report_interval_seconds: float = 30 * 24 * 3600

    # 超发默认只记日志并把可用库存压到 0；打开后 POST /issuances 直接 409
    reject_over_issuance: bool = False

    # 首次启动时如果没有这个账号就创建一个管理员
    admin_username: str = "admin"
    admin_password: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide Settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings_for_test(**kwargs) -> Settings:
    """For testing only: replace the Settings instance with explicit values."""
    global _settings
    _settings = Settings(**kwargs)
    return _settings
