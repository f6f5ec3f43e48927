"""Run the sandbox backend locally: ``python -m storefront.sandbox [--port 8000]``."""

from __future__ import annotations

import argparse

import uvicorn

from storefront.core.logging import get_logger, setup_logging
from storefront.sandbox import SandboxStore, create_app

logger = get_logger("storefront.sandbox")


def seeded_store() -> SandboxStore:
    store = SandboxStore()
    store.add_variant("tee-black-m", "19.90", stock=25)
    store.add_variant("tee-black-l", "19.90", stock=3)
    store.add_variant("hoodie-grey-m", "49.00", stock=10)
    store.add_variant("cap-red", "12.50", stock=0)
    store.add_variant("mug-legacy", "8.00", stock=40, active=False)
    return store


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Storefront sandbox backend")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    setup_logging()
    logger.info("Starting sandbox backend", extra={"host": args.host, "port": args.port})
    uvicorn.run(create_app(seeded_store()), host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
