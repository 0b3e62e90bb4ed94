"""Project configuration: greact.toml parsing, validation and defaults."""

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "greact.toml"

DEFAULT_CONFIG_TEMPLATE = """\
# Auto-generated greact.toml

[client]
path = "./client"
source_folder = "pages"
build_folder = "build"
static_folder = "static"
public_path = "/public/"
bundler = ["npx", "webpack"]

[server]
source_dir = "."
extensions = [".go"]
build_command = ["go", "build", "-o", "app"]
run_command = ["./app"]
artifact = "app"
kill_timeout = 5.0

[dev]
reload_host = "localhost"
reload_port = 1501
debounce_ms = 200
recursive = false
"""


class ConfigError(ValueError):
    """The configuration file is malformed or incomplete."""


@dataclass
class ClientConfig:
    """Page sources and bundler output."""

    path: Path
    """Client directory (holds package.json and node_modules)."""

    source_folder: str = "pages"
    build_folder: str = "build"
    static_folder: str = "static"
    public_path: str = "/public/"
    bundler: list[str] = field(default_factory=lambda: ["npx", "webpack"])

    @property
    def source_path(self) -> Path:
        return self.path / self.source_folder

    @property
    def build_path(self) -> Path:
        return self.path / self.build_folder

    @property
    def static_path(self) -> Path:
        return self.path / self.static_folder


@dataclass
class ServerConfig:
    """The user's server program and how to compile and run it."""

    source_dir: Path
    extensions: list[str] = field(default_factory=lambda: [".go"])
    build_command: list[str] = field(default_factory=lambda: ["go", "build", "-o", "app"])
    run_command: list[str] = field(default_factory=lambda: ["./app"])
    artifact: str = "app"
    kill_timeout: float = 5.0

    @property
    def artifact_path(self) -> Path:
        return self.source_dir / self.artifact


@dataclass
class DevConfig:
    """Settings for the dev session."""

    reload_host: str = "localhost"
    reload_port: int = 1501
    debounce_ms: int = 200
    recursive: bool = False


@dataclass
class GreactConfig:
    client: ClientConfig
    server: ServerConfig
    dev: DevConfig = field(default_factory=DevConfig)
    path: Path | None = None
    """File this config was loaded from."""


def _command(value, key: str) -> list[str]:
    """Accept a command either as a string or as an argv list."""
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list) and all(isinstance(part, str) for part in value):
        return list(value)
    raise ConfigError(f"{key} must be a string or a list of strings")


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _path(base_dir: Path, value, key: str) -> Path:
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string path")
    return base_dir / value


def _number(value, key: str) -> float:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number")
    return float(value)


def _string_list(value, key: str) -> list[str]:
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list of strings")
    return list(value)


def parse_config(raw: dict, base_dir: Path) -> GreactConfig:
    """Build a GreactConfig from parsed TOML.

    Args:
        raw: Parsed TOML document
        base_dir: Directory relative paths resolve against

    Returns:
        The configuration (not yet validated)
    """
    client_raw = _section(raw, "client")
    server_raw = _section(raw, "server")
    dev_raw = _section(raw, "dev")

    client = ClientConfig(
        path=_path(base_dir, client_raw.get("path", "./client"), "client.path"),
        source_folder=client_raw.get("source_folder", "pages"),
        build_folder=client_raw.get("build_folder", "build"),
        static_folder=client_raw.get("static_folder", "static"),
        public_path=client_raw.get("public_path", "/public/"),
        bundler=_command(client_raw.get("bundler", ["npx", "webpack"]), "client.bundler"),
    )

    artifact = server_raw.get("artifact", "app")
    server = ServerConfig(
        source_dir=_path(base_dir, server_raw.get("source_dir", "."), "server.source_dir"),
        extensions=_string_list(server_raw.get("extensions", [".go"]), "server.extensions"),
        build_command=_command(server_raw.get("build_command", ["go", "build", "-o", artifact]), "server.build_command"),
        run_command=_command(server_raw.get("run_command", [f"./{artifact}"]), "server.run_command"),
        artifact=artifact,
        kill_timeout=_number(server_raw.get("kill_timeout", 5.0), "server.kill_timeout"),
    )

    dev = DevConfig(
        reload_host=dev_raw.get("reload_host", "localhost"),
        reload_port=dev_raw.get("reload_port", 1501),
        debounce_ms=dev_raw.get("debounce_ms", 200),
        recursive=dev_raw.get("recursive", False),
    )

    return GreactConfig(client=client, server=server, dev=dev)


def validate_config(config: GreactConfig) -> None:
    """Check a configuration for missing or out-of-range values.

    Raises:
        ConfigError: Listing every problem found
    """
    errors = []

    for name in ("source_folder", "build_folder", "static_folder", "public_path"):
        value = getattr(config.client, name)
        if not isinstance(value, str):
            errors.append(f"client.{name} must be a string")
        elif not value:
            errors.append(f"client.{name} is empty")
    if not config.client.bundler:
        errors.append("client.bundler is empty")

    if not isinstance(config.server.artifact, str):
        errors.append("server.artifact must be a string")
    elif not config.server.artifact:
        errors.append("server.artifact is empty")
    if not config.server.build_command:
        errors.append("server.build_command is empty")
    if not config.server.run_command:
        errors.append("server.run_command is empty")
    if not config.server.extensions:
        errors.append("server.extensions is empty")
    elif not all(isinstance(ext, str) and ext.startswith(".") for ext in config.server.extensions):
        errors.append("server.extensions entries must look like '.go'")
    if config.server.kill_timeout <= 0:
        errors.append("server.kill_timeout must be positive")

    port = config.dev.reload_port
    if not isinstance(port, int) or isinstance(port, bool) or not 0 <= port <= 65535:
        errors.append(f"dev.reload_port is not a valid port: {port!r}")
    debounce = config.dev.debounce_ms
    if not isinstance(debounce, int) or isinstance(debounce, bool) or debounce < 0:
        errors.append(f"dev.debounce_ms must be a non-negative integer: {config.dev.debounce_ms!r}")
    if not isinstance(config.dev.recursive, bool):
        errors.append(f"dev.recursive must be true or false: {config.dev.recursive!r}")
    if not isinstance(config.dev.reload_host, str) or not config.dev.reload_host:
        errors.append(f"dev.reload_host must be a host name: {config.dev.reload_host!r}")

    if errors:
        raise ConfigError("; ".join(errors))


def load_config(path: str | Path) -> GreactConfig:
    """Load and validate a greact.toml file.

    Args:
        path: Path to TOML config file

    Returns:
        Validated configuration
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}\nRun 'greact init' to create a default config.")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    config = parse_config(raw, path.parent)
    config.path = path
    validate_config(config)

    logger.debug(f"Loaded config from {path}")
    return config


def create_default_config(config_path: Path) -> bool:
    """
    Create a default greact.toml if it doesn't exist.

    Args:
        config_path: Path where config should be created

    Returns:
        True if config was created, False if it already exists

    Raises:
        PermissionError: If unable to write to the directory
        OSError: If other file system errors occur
    """
    if config_path.exists():
        return False

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_TEMPLATE)
    return True
