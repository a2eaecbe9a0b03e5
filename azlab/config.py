"""Configuration loading and validation.

Usage:
    config = load("azlab-config.yaml")      # raises ConfigError on bad config
    config.require_graph()                  # raises if no Graph token is set
    generate_template("azlab-config.yaml")  # writes example file to disk
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


# ---------------------------------------------------------------------------
# Config dataclass
# ---------------------------------------------------------------------------

@dataclass
class Config:
    subscription_id: str
    token: str
    tenant_id: str = ""
    graph_token: str = ""
    location: str = "eastus"
    tags: dict[str, str] = field(default_factory=dict)
    required_tags: list[str] = field(default_factory=list)
    poll_interval: float = 5
    operation_timeout: float = 900
    log_file: str | None = None
    log_level: str = "INFO"

    @property
    def subscription_scope(self) -> str:
        return f"/subscriptions/{self.subscription_id}"

    def require_graph(self) -> str:
        """Return the Graph token, or raise if none is configured."""
        if not self.graph_token:
            raise ConfigError(
                "A Microsoft Graph token is required for this command. "
                "Set 'azure.graph_token' or the AZURE_GRAPH_TOKEN environment variable."
            )
        return self.graph_token


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load(config_path: str = "azlab-config.yaml") -> Config:
    """Load and validate configuration from a YAML file.

    Environment variables AZURE_SUBSCRIPTION_ID, AZURE_TENANT_ID,
    AZURE_ACCESS_TOKEN and AZURE_GRAPH_TOKEN override file values.

    Raises:
        ConfigError: if the file is missing, malformed, or required fields
                     are absent.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(
            f"Config file not found: '{config_path}'\n"
            "Run `python -m azlab init` to generate a template."
        )

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse '{config_path}': {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{config_path}' must be a YAML mapping at the top level.")

    azure    = raw.get("azure") or {}
    defaults = raw.get("defaults") or {}
    logging_ = raw.get("logging") or {}

    subscription_id = os.environ.get("AZURE_SUBSCRIPTION_ID") or azure.get("subscription_id", "")
    tenant_id       = os.environ.get("AZURE_TENANT_ID")       or azure.get("tenant_id", "")
    token           = os.environ.get("AZURE_ACCESS_TOKEN")    or azure.get("token", "")
    graph_token     = os.environ.get("AZURE_GRAPH_TOKEN")     or azure.get("graph_token", "")

    try:
        poll_interval = float(defaults.get("poll_interval", 5))
        operation_timeout = float(defaults.get("operation_timeout", 900))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid number in 'defaults': {exc}") from exc

    config = Config(
        subscription_id=str(subscription_id).strip(),
        token=str(token).strip(),
        tenant_id=str(tenant_id or "").strip(),
        graph_token=str(graph_token or "").strip(),
        location=str(defaults.get("location") or "eastus"),
        tags={str(k): str(v) for k, v in (defaults.get("tags") or {}).items()},
        required_tags=[str(t) for t in (defaults.get("required_tags") or [])],
        poll_interval=poll_interval,
        operation_timeout=operation_timeout,
        log_file=logging_.get("file") or None,
        log_level=str(logging_.get("level") or "INFO").upper(),
    )
    _validate(config)
    return config


def _validate(config: Config) -> None:
    """Raise ConfigError if required fields are missing."""
    errors: list[str] = []

    if not config.subscription_id:
        errors.append(
            "  - 'azure.subscription_id' is missing "
            "(or set the AZURE_SUBSCRIPTION_ID environment variable)"
        )
    if not config.token:
        errors.append(
            "  - 'azure.token' is missing (or set the AZURE_ACCESS_TOKEN environment variable)"
        )
    if config.poll_interval < 0:
        errors.append("  - 'defaults.poll_interval' must not be negative")
    if config.operation_timeout < 0:
        errors.append("  - 'defaults.operation_timeout' must not be negative")

    if errors:
        raise ConfigError("Invalid configuration:\n" + "\n".join(errors))


# ---------------------------------------------------------------------------
# Template generator (used by `init` command)
# ---------------------------------------------------------------------------

TEMPLATE = """\
azure:
  subscription_id: "00000000-0000-0000-0000-000000000000"
  tenant_id: ""
  # az account get-access-token --query accessToken -o tsv
  token: ""
  # az account get-access-token --resource-type ms-graph --query accessToken -o tsv
  graph_token: ""

defaults:
  location: "eastus"
  tags:
    purpose: "cert-practice"
  required_tags: ["purpose", "owner"]
  poll_interval: 5
  operation_timeout: 900

logging:
  file: "azlab.log"
  level: "INFO"
"""


def generate_template(output_path: str = "azlab-config.yaml") -> None:
    """Write a template azlab-config.yaml to *output_path*.

    Raises:
        ConfigError: if the file already exists (to avoid overwriting secrets).
    """
    path = Path(output_path)
    if path.exists():
        raise ConfigError(
            f"'{output_path}' already exists. Remove it first or choose a different path."
        )
    path.write_text(TEMPLATE, encoding="utf-8")
