#!/usr/bin/env python3
"""
Investment Engine Entry Point

Starts the FastAPI server with the daily accrual scheduler.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from investment_core.api import run_server
from investment_core.config import get_config
from investment_core.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, config.log_format)

    print("Starting Investment Engine...")
    print(f"Storage: {config.database_path}")
    print(f"Daily accrual: {config.accrual_cron_hour:02d}:{config.accrual_cron_minute:02d} UTC"
          if config.scheduler_enabled else "Daily accrual: disabled")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\nShutting down Investment Engine...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
