#!/usr/bin/env python
"""Docker entrypoint script to run the API or the worker process."""

import asyncio
import os
import sys

if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "worker":
        from worker import main

        asyncio.run(main())
    else:
        import uvicorn

        uvicorn.run(
            "autopilot.main:app",
            host="0.0.0.0",
            port=int(os.getenv("PORT", "8000")),
        )
