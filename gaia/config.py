"""Configuration management for Gaia."""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from gaia.exceptions import ConfigurationError


# Paths
DEFAULT_CONFIG_DIR = Path("~/.config/gaia").expanduser()
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_CACHE_DIR = DEFAULT_CONFIG_DIR / "cache"
CONFIG_ENV_VAR = "GAIA_CONFIG"


DEFAULT_ROLES: dict[str, str] = {
    "default": (
        "You are programming and system administration assistant. "
        "You are managing %s operating system with %s shell. "
        "Provide short responses in about 100 words, unless you are specifically asked for more details. "
        "If you need to store any data, assume it will be stored in the conversation. "
        "APPLY MARKDOWN formatting when possible."
    ),
    "describe": (
        "Provide a terse, single sentence description of the given shell command. "
        "Describe each argument and option of the command. "
        "Provide short responses in about 80 words. APPLY MARKDOWN formatting when possible."
    ),
    "shell": (
        "Provide only %s commands for %s without any description. "
        "If there is a lack of details, provide the most logical solution. "
        "Ensure the output is a valid shell command. "
        "If multiple steps are required, try to combine them using &&. "
        "Provide only plain text without Markdown formatting. "
        "Do not use markdown formatting such as ```."
    ),
    "code": (
        "Provide only code as output without any description. "
        "Provide only code in plain text format without Markdown formatting. "
        "Do not include symbols such as ``` or ```python. "
        "If there is a lack of details, provide most logical solution. "
        "You are not allowed to ask for more details. "
        "For example if the prompt is \"Hello world Python\", you should return \"print('Hello world')\"."
    ),
    "commit": (
        "Generate a conventional commit message based on the provided git diff. "
        "The message must have multiple lines: first line is the title (type: subject format), "
        "followed by a blank line, then a detailed description on multiple lines. "
        "Title format: start with a type (feat, fix, docs, style, refactor, test, chore), "
        "followed by a colon and space, then a brief description in lowercase. "
        "The description should explain what and why, not how. "
        "Do not include markdown formatting, code blocks, or explanations. "
        "Only return the commit message itself."
    ),
    "branch": (
        "Generate a concise branch name based on the provided git diff or description. "
        "The branch name should be lowercase, use hyphens to separate words, "
        "and be descriptive but short (max 50 characters). "
        "Follow common patterns like: feature/description, fix/description, refactor/description. "
        "Do not include markdown formatting, code blocks, or explanations. "
        "Only return the branch name itself."
    ),
}


DEFAULT_ROLE_KEYWORDS: dict[str, list[str]] = {
    "shell": [
        "command", "run", "execute", "terminal", "bash", "zsh", "sh", "shell",
        "cd", "ls", "grep", "find", "mkdir", "rm", "cp", "mv", "cat", "echo",
        "sudo", "chmod", "chown", "ps", "kill", "pkill", "systemctl", "service",
        "install", "uninstall", "package", "apt", "yum", "brew", "pip", "npm",
    ],
    "code": [
        "function", "class", "def", "import", "return", "if", "else", "for", "while",
        "variable", "array", "list", "dict", "string", "int", "bool", "type",
        "python", "javascript", "java", "go", "rust", "c++", "c#", "php", "ruby",
        "code", "programming", "algorithm", "api", "endpoint", "json", "xml",
        "database", "sql", "query", "table", "schema", "migration",
    ],
    "describe": [
        "what", "what does", "explain", "describe", "meaning", "definition",
        "how does", "tell me about", "what is", "what are", "help me understand",
    ],
    "commit": [
        "commit message", "generate commit", "create commit", "write commit", "make commit",
        "conventional commit", "changelog", "commit msg", "git commit message",
        "commit",
    ],
    "branch": [
        "create branch", "new branch", "make branch", "generate branch", "branch name",
        "git branch", "checkout branch", "switch branch",
        "branch",
    ],
}


class CacheConfig(BaseModel):
    """Response cache configuration."""

    enabled: bool = True
    dir: str = str(DEFAULT_CACHE_DIR)
    bypass: bool = False
    refresh: bool = False


class AutoRoleConfig(BaseModel):
    """Automatic role detection configuration."""

    enabled: bool = True
    mode: Literal["off", "heuristic", "hybrid"] = "hybrid"
    keywords: dict[str, list[str]] = Field(
        default_factory=lambda: {role: list(words) for role, words in DEFAULT_ROLE_KEYWORDS.items()}
    )

    @field_validator("keywords", mode="before")
    @classmethod
    def _merge_default_keywords(cls, value: Any) -> Any:
        # Entries from YAML or env replace a role's list, other roles keep theirs
        if not isinstance(value, dict):
            return value
        merged: dict[str, Any] = {role: list(words) for role, words in DEFAULT_ROLE_KEYWORDS.items()}
        merged.update(value)
        return merged


class OperatorConfig(BaseModel):
    """Investigate (operator loop) configuration."""

    max_steps: int = 10
    confirm_medium_risk: bool = True
    dry_run: bool = False
    denylist: list[str] = ["rm -rf", "sudo", "mkfs", "dd if=", ":(){"]
    allowlist: list[str] = []
    output_max_bytes: int = 4096
    command_timeout_seconds: int = 30


class ToolActionConfig(BaseModel):
    """One configured external tool action (e.g. `gaia tool git commit`)."""

    context_command: str = ""
    role: str = "default"
    execute_command: str = ""


def _default_tool_actions() -> dict[str, dict[str, ToolActionConfig]]:
    return {
        "git": {
            "commit": ToolActionConfig(
                context_command="git diff --staged",
                role="commit",
                execute_command="git commit -F {file}",
            ),
            "branch": ToolActionConfig(
                context_command="git diff",
                role="branch",
                execute_command="git checkout -b {response}",
            ),
        }
    }


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for Gaia."""

    model: str = "mistral"
    host: str = "localhost"
    port: int = 11434
    roles: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_ROLES))
    cache: CacheConfig = Field(default_factory=CacheConfig)
    auto_role: AutoRoleConfig = Field(default_factory=AutoRoleConfig)
    operator: OperatorConfig = Field(default_factory=OperatorConfig)
    tools: dict[str, dict[str, ToolActionConfig]] = Field(default_factory=_default_tool_actions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    debug: bool = False

    model_config = SettingsConfigDict(
        env_prefix="GAIA_",
        env_nested_delimiter="__",
    )

    @field_validator("roles", mode="before")
    @classmethod
    def _merge_default_roles(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {**DEFAULT_ROLES, **value}

    @field_validator("tools", mode="before")
    @classmethod
    def _merge_default_tools(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        merged: dict[str, Any] = {}
        for tool, actions in _default_tool_actions().items():
            merged[tool] = {name: action.model_dump() for name, action in actions.items()}
        for tool, actions in value.items():
            if not isinstance(actions, dict) or tool not in merged:
                merged[tool] = actions
                continue
            for name, action in actions.items():
                current = merged[tool].get(name)
                if isinstance(action, ToolActionConfig):
                    action = action.model_dump()
                if isinstance(action, dict) and isinstance(current, dict):
                    action = {**current, **action}
                merged[tool][name] = action
        return merged

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # GAIA_* env vars override values read from YAML
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve config path: $GAIA_CONFIG first, then the per-user file."""
        env_path = os.environ.get(CONFIG_ENV_VAR, "").strip()
        if env_path:
            return Path(env_path).expanduser()
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"read config {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"config file {config_path} must contain a mapping")

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"invalid config {config_path}: {e}") from e

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration, preferring env vars over YAML."""
        # Pydantic-settings applies GAIA_* env overrides on construction
        return cls.from_yaml(path)

    @classmethod
    def ensure_file(cls, path: Path | str | None = None) -> Path:
        """Write the default configuration if the file does not exist yet."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()
        if not config_path.exists():
            cls().save(config_path)
        return config_path

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path).expanduser() if path else self.resolve_default_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def available_roles(self) -> list[str]:
        """Role names usable for a request; `default` always comes first."""
        names = ["default"]
        for name in self.roles:
            if name and name != "default" and "." not in name:
                names.append(name)
        return names

    def get_value(self, key: str) -> Any:
        """Read a dotted configuration key (e.g. `operator.max_steps`)."""
        node: Any = self.model_dump()
        for part in _split_key(key):
            if not isinstance(node, dict) or part not in node:
                raise ConfigurationError(
                    f"configuration key '{key}' is not set. Use 'gaia config list' to see available keys"
                )
            node = node[part]
        return node

    def set_value(self, key: str, value: Any) -> "Config":
        """Return a new config with a dotted key replaced by `value`.

        String values are parsed as YAML scalars/lists so `true`, `12` and
        `[a, b]` keep their types.
        """
        if not is_valid_key(key):
            raise ConfigurationError(
                f"invalid config key '{key}'. Valid keys include: model, host, port, "
                "cache.enabled, cache.dir, roles.*, auto_role.enabled, auto_role.mode, "
                "auto_role.keywords.*, operator.*"
            )
        data = self.model_dump()
        node = data
        parts = _split_key(key)
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        current = node.get(parts[-1])

        if isinstance(value, str) and not key.startswith("roles."):
            try:
                parsed = yaml.safe_load(value) if value.strip() else value
            except yaml.YAMLError:
                parsed = value
            if isinstance(current, list) and isinstance(parsed, str):
                parsed = [item.strip() for item in parsed.split(",") if item.strip()]
            value = parsed

        node[parts[-1]] = value
        try:
            return type(self).model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"invalid value for '{key}': {e}") from e

    def flatten(self) -> dict[str, Any]:
        """Flatten config into sorted dotted keys for `gaia config list`."""
        flat: dict[str, Any] = {}

        def _walk(prefix: str, node: Any) -> None:
            if isinstance(node, dict) and node:
                for name, child in node.items():
                    _walk(f"{prefix}.{name}" if prefix else str(name), child)
            else:
                flat[prefix] = node

        _walk("", self.model_dump())
        return dict(sorted(flat.items()))


_VALID_KEYS = {
    "model",
    "host",
    "port",
    "debug",
    "cache.enabled",
    "cache.dir",
    "auto_role.enabled",
    "auto_role.mode",
    "logging.level",
    "logging.format",
}
_VALID_PREFIXES = ("roles.", "auto_role.keywords.", "operator.", "tools.")


def _split_key(key: str) -> list[str]:
    parts = [part for part in str(key or "").strip().split(".") if part]
    if not parts:
        raise ConfigurationError("configuration key cannot be empty")
    return parts


def is_valid_key(key: str) -> bool:
    """Check if a dotted key may be written with `gaia config set`."""
    cleaned = str(key or "").strip()
    if cleaned in _VALID_KEYS:
        return True
    return any(cleaned.startswith(prefix) and len(cleaned) > len(prefix) for prefix in _VALID_PREFIXES)


# Global config instance (CLI layer only)
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
