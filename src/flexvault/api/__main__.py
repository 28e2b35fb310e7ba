# src/flexvault/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from flexvault.env import load_dotenv_if_present


def main() -> None:
    # .env first so FLEXVAULT_* vars exist before config is read.
    load_dotenv_if_present()

    from flexvault.api.app import create_app
    from flexvault.runtime.vault_config import apply_vault_config_to_env, load_vault_config
    from flexvault.runtime.vault_logging import configure_logging

    cfg = load_vault_config()
    apply_vault_config_to_env(cfg)
    configure_logging()

    host = os.getenv("FLEXVAULT_API_HOST", cfg.api_host)
    port = int(os.getenv("FLEXVAULT_API_PORT", str(cfg.api_port)))

    uvicorn.run(create_app(), host=host, port=port, log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
