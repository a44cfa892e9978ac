#!/usr/bin/env python3
"""
EMA Trader - Main Entry Point
Web server hosting the trading service and its control API.
"""
import uvicorn

from ema_trader.app import app
from ema_trader.config import settings

if __name__ == "__main__":
    print("Starting EMA Trader...")
    print(f"Web Interface: http://localhost:{settings.APP_PORT}")
    print(f"API Docs: http://localhost:{settings.APP_PORT}/docs")
    print("Press Ctrl+C to stop.")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.APP_PORT,
        reload=False
    )
