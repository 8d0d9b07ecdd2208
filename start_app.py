#!/usr/bin/env python
"""Start the FastAPI application on the configured port."""
import uvicorn

from app.core.config import get_settings

if __name__ == "__main__":
    # Refuses to start when SHOPIFY_SHOP, the access token or WEBHOOK_SECRET is missing
    settings = get_settings()

    print(f"Starting application on port {settings.PORT}")

    # Run the app
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
