"""Configuration management for shipctl using Pydantic."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shipctl.core.exceptions import ConfigError
from shipctl.core.logging import LogLevel
from shipctl.core.output import OutputFormat


class TargetEnv(BaseSettings):
    """Target overrides read from SHIPCTL_TARGET_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="SHIPCTL_TARGET_", extra="ignore")

    host: str | None = None
    user: str | None = None
    port: int | None = None
    ssh_key: str | None = None


class TargetConfig(BaseModel):
    """Remote host and SSH access."""

    host: str | None = None
    user: str = "ubuntu"
    port: int = 22
    ssh_key: str | None = None
    connect_timeout: int = 10

    def with_env(self) -> "TargetConfig":
        """Return a copy with SHIPCTL_TARGET_* overrides applied."""
        try:
            env = TargetEnv()
        except ValueError as e:
            raise ConfigError(f"Invalid SHIPCTL_TARGET_* environment: {e}")
        overrides = {k: v for k, v in env.model_dump().items() if v is not None}
        return self.model_copy(update=overrides)

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"


class ProjectConfig(BaseModel):
    """Local project being released."""

    path: str = "."
    marker_file: str = "artisan"
    excludes: list[str] = Field(
        default_factory=lambda: [
            "vendor",
            "node_modules",
            "storage/*.key",
            ".git",
            "tests",
            "*.log",
        ]
    )
    required_tools: list[str] = Field(
        default_factory=lambda: ["ssh", "scp", "tar", "php", "composer"]
    )
    archive_prefix: str = "laravel-"
    archive_dir: str = "."

    def get_path(self) -> Path:
        return Path(self.path).expanduser().resolve()


class RemoteConfig(BaseModel):
    """Remote deployment layout."""

    base_path: str = "/var/www/app"
    web_user: str = "www-data"
    log_dir: str = "/var/log/laravel-deploy"
    command_timeout: int = 600
    min_runtime_version: int = 80000
    lock_path: str | None = None

    @field_validator("base_path")
    @classmethod
    def validate_base_path(cls, v: str) -> str:
        stripped = v.rstrip("/")
        if not stripped.startswith("/") or stripped.count("/") < 2:
            raise ValueError("base_path must be an absolute path at least two levels deep")
        return stripped

    def get_lock_path(self) -> str:
        return self.lock_path or f"{self.base_path}.deploy-lock"


class ServicesConfig(BaseModel):
    """Service names managed on the remote host."""

    runtime: str = "php8.1-fpm"
    web: str = "nginx"
    supervisor_group: str = "laravel-worker:*"
    restart_delay: int = 2
    survey: list[str] = Field(default_factory=lambda: ["mysql", "postgresql", "redis-server"])
    runtime_extensions: list[str] = Field(
        default_factory=lambda: ["pdo", "mysql", "mysqli", "curl", "gd", "mbstring", "xml", "zip"]
    )

    @property
    def core(self) -> list[str]:
        return [self.runtime, self.web]


class BackupConfig(BaseModel):
    """Backup location and retention.

    ``retention`` documents how many backups an operator expects to keep; it
    is not enforced. Pruning removes backups older than ``retention_days``.
    """

    root: str = "/tmp"
    prefix: str = "laravel-backup-"
    retention: int = 5
    retention_days: int = 5

    @field_validator("retention", "retention_days")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v


class HealthConfig(BaseModel):
    """Health probe and survey settings.

    The probe runs from this machine, so ``url`` defaults to the target host
    when a profile is resolved.
    """

    url: str | None = None
    path: str = "/health"
    timeout: float = 30.0
    connect_timeout: float = 10.0
    database_check: bool = True
    survey_timeout: int = 60
    app_log_lines: int = 5
    proxy_log_lines: int = 3
    proxy_error_log: str = "/var/log/nginx/error.log"

    @property
    def endpoint(self) -> str:
        if not self.url:
            raise ConfigError("No health check URL configured")
        if not self.path:
            return self.url
        return self.url.rstrip("/") + "/" + self.path.lstrip("/")


class LoggingConfig(BaseModel):
    """Local session log settings."""

    log_dir: str = "./deployment-logs"


class ProfileConfig(BaseModel):
    """Profile configuration grouping all settings for one target."""

    target: TargetConfig = Field(default_factory=TargetConfig)
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    services: ServicesConfig = Field(default_factory=ServicesConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def resolved(self) -> "ProfileConfig":
        """Apply environment overrides and check the settings a run needs."""
        profile = self.model_copy(update={"target": self.target.with_env()})
        if not profile.target.host:
            raise ConfigError(
                "No target host configured",
                details={"hint": "set target.host or SHIPCTL_TARGET_HOST"},
            )
        if profile.health.url is None:
            host = profile.target.host
            if ":" in host:
                host = f"[{host}]"
            health = profile.health.model_copy(update={"url": f"http://{host}"})
            profile = profile.model_copy(update={"health": health})
        return profile


class GlobalConfig(BaseModel):
    """Global settings."""

    output_format: OutputFormat = OutputFormat.TABLE
    color: str = "auto"  # auto, always, never
    verbosity: LogLevel = LogLevel.WARNING

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if v not in ("auto", "always", "never"):
            raise ValueError("color must be 'auto', 'always', or 'never'")
        return v


class ShipCtlConfig(BaseModel):
    """Main configuration model."""

    model_config = {"populate_by_name": True}

    version: str = "1"
    global_settings: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    profiles: dict[str, ProfileConfig] = Field(default_factory=lambda: {"default": ProfileConfig()})

    def get_profile(self, name: str | None = None) -> ProfileConfig:
        """Get a profile by name, defaulting to 'default'."""
        profile_name = name or "default"
        if profile_name not in self.profiles:
            raise ConfigError(f"Profile '{profile_name}' not found")
        return self.profiles[profile_name]


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    CONFIG_FILENAMES = ["shipctl.yaml", "shipctl.yml", ".shipctl.yaml", ".shipctl.yml"]

    def __init__(self, user_config_path: Path | None = None):
        self._user_config_path = user_config_path or Path.home() / ".shipctl" / "config.yaml"
        self._config: ShipCtlConfig | None = None

    def load(self, config_file: str | Path | None = None) -> ShipCtlConfig:
        """Load configuration from files.

        Priority (highest to lowest):
        1. Explicitly specified config file
        2. Project config (./shipctl.yaml, searched upward)
        3. User config (~/.shipctl/config.yaml)

        Args:
            config_file: Optional explicit config file path

        Returns:
            Merged configuration
        """
        configs: list[dict[str, Any]] = []

        if self._user_config_path.exists():
            configs.append(self._load_yaml_file(self._user_config_path))

        project_config = self._find_project_config()
        if project_config:
            configs.append(self._load_yaml_file(project_config))

        if config_file:
            config_path = Path(config_file)
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_file}")
            configs.append(self._load_yaml_file(config_path))

        merged = self._merge_configs(configs)

        try:
            self._config = ShipCtlConfig(**merged)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration: {e}")
        return self._config

    def _find_project_config(self) -> Path | None:
        """Find project config file in current or parent directories."""
        current = Path.cwd()

        while current != current.parent:
            for filename in self.CONFIG_FILENAMES:
                config_path = current / filename
                if config_path.exists():
                    return config_path
            current = current.parent

        return None

    def _load_yaml_file(self, path: Path) -> dict[str, Any]:
        try:
            with open(path) as f:
                content = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}")
        if not isinstance(content, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return content

    def _merge_configs(self, configs: list[dict[str, Any]]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for config in configs:
            result = self._deep_merge(result, config)
        return result

    def _deep_merge(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


def load_config(config_file: str | Path | None = None) -> ShipCtlConfig:
    """Load shipctl configuration.

    Args:
        config_file: Optional explicit config file path

    Returns:
        Loaded configuration
    """
    return ConfigLoader().load(config_file)


def get_default_config() -> ShipCtlConfig:
    """Get default configuration without loading from files."""
    return ShipCtlConfig()
