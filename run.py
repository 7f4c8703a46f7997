"""
Entry point for the millpath service.

Running this script with ``python run.py`` starts the FastAPI server that
accepts toolpath generation tasks.  The application defined in
``backend/millpath/main.py`` is imported after adjusting the Python path
to include the ``backend`` directory, so the script also works without
installing the package.
"""

from __future__ import annotations

import sys
from pathlib import Path

import logging
import uvicorn

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> None:
    """Run the Uvicorn server hosting the millpath API."""
    backend_dir = Path(__file__).resolve().parent / "backend"
    if str(backend_dir) not in sys.path:
        sys.path.append(str(backend_dir))

    # Import inside main() to avoid modifying sys.path at import time.
    from millpath.main import app  # type: ignore

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
