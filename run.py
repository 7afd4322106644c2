#!/usr/bin/env python3
"""
Bank Back-Office Entry Point

Starts the FastAPI server for the back-office console. Host, port, storage
and logging come from BACKOFFICE_* environment variables (or .env).
"""

import argparse
import sys
from pathlib import Path

import uvicorn

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from backoffice.config import get_config
from backoffice.logging_config import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the back-office API server")
    parser.add_argument("--seed-demo", action="store_true",
                        help="load demo records and an 'admin' user before starting")
    parser.add_argument("--reload", action="store_true", help="auto-reload on code changes")
    args = parser.parse_args()

    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    if args.seed_demo:
        from backoffice.api.auth import get_backoffice_system
        from backoffice.seed import seed_demo_data
        counts = seed_demo_data(get_backoffice_system())
        logger.info(f"Demo data loaded: {counts}")

    print("🏦 Starting Bank Back-Office...")
    print(f"🗄️  Storage: {config.database_url}")
    print(f"🔒 Authentication {'enabled' if config.auth_enabled else 'DISABLED'}")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        uvicorn.run(
            "backoffice.api:app",
            host=config.api_host,
            port=config.api_port,
            workers=1 if args.reload else config.api_workers,
            reload=args.reload,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        print("\n👋 Shutting down Bank Back-Office...")


if __name__ == "__main__":
    main()
