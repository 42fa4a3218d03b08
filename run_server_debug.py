"""Run the API with uvicorn in debug mode (reload + access log)."""

import os
import socket
import sys

from dotenv import load_dotenv
load_dotenv()

from src.api.config import settings
from src.api.logging_config import setup_logging
setup_logging()

print("=" * 80)
print("Running built-in server (debug mode)")
print("=" * 80)


def is_port_in_use(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(('localhost', port)) == 0


if __name__ == "__main__":
    port = settings.api_port

    if is_port_in_use(port):
        print(f"Warning: port {port} is already in use!")
        print("   Stop the process holding it, or change API_PORT in .env")
        sys.exit(1)

    print(f"\nPort {port} is available")
    print(f"Starting server: http://{settings.api_host}:{port}")
    print(f"Observer WebSocket: ws://localhost:{port}/api/orchestration/ws")
    print("=" * 80)
    print()

    import uvicorn

    project_root = os.path.dirname(os.path.abspath(__file__))
    src_dir = os.path.join(project_root, "src")

    log_level = os.getenv("UVICORN_LOG_LEVEL", "info")
    try:
        uvicorn.run(
            "src.api.main:app",
            host=settings.api_host,
            port=port,
            log_level=log_level,
            access_log=True,
            use_colors=True,
            reload=True,
            reload_dirs=[src_dir],
        )
    except KeyboardInterrupt:
        print("\n\nServer stopped")
