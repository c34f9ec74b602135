#!/usr/bin/env python3
"""
RT Lending Entry Point

Starts the FastAPI server (port 8090 by default) over the community loan
book. Settings come from RT_LENDING_* environment variables or .env.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from rt_lending.api import run_server
from rt_lending.config import get_config


if __name__ == "__main__":
    cfg = get_config()
    print("Starting RT Lending...")
    print(f"API available at: http://localhost:{cfg.api_port}")
    print(f"Documentation at: http://localhost:{cfg.api_port}/docs")
    if not cfg.sync_enabled:
        print("Spreadsheet sync disabled (set RT_LENDING_SYNC_URL to enable)")
    print()

    try:
        run_server(cfg)
    except KeyboardInterrupt:
        print("\nShutting down RT Lending...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
