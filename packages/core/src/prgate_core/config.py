import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "analyzer": "openai",
    "model_name": None,  # None = provider default
    "store_path": ".prgate.db",
    "exclude": [],  # fnmatch patterns or directory names never sent to the analyzer
    # Diff size bounds: each patch is truncated to max_chars_per_file and at
    # most max_files patched files are analyzed per review.
    "max_chars_per_file": 20000,
    "max_files": 50,
    "fetch_timeout": 30,
    "fetch_retries": 3,
    "analysis_timeout": 120,
    "task_lease_seconds": 600,
    "task_max_attempts": 5,
    "poll_interval": 2.0,
    "stale_after_seconds": 1800,
    "allow_unsigned_webhooks": False,
    "host": "0.0.0.0",
    "port": 8000,
}


def load_config(config_path: str = ".prgate.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prgate.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "exclude": list(DEFAULT_CONFIG["exclude"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve secrets from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["webhook_secret"] = os.environ.get("GITHUB_WEBHOOK_SECRET")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config
