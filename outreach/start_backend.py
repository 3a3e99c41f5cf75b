#!/usr/bin/env python3
"""
Backend startup wrapper.

    python outreach/start_backend.py            # 0.0.0.0:8000
    PORT=9000 python outreach/start_backend.py
"""
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)


def main() -> int:
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    print("[Backend] Starting Outreach backend")
    print(f"[Backend] Server: http://localhost:{port}")
    try:
        uvicorn.run(
            "outreach.main:app",
            host=os.getenv("HOST", "0.0.0.0"),
            port=port,
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n[Backend] Shutting down...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
