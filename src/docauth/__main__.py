"""docauth entrypoint.

Run with:
  python -m docauth
"""

import uvicorn
from dotenv import load_dotenv

from docauth.config import load_settings
from docauth.logging_config import configure_logging


def main() -> None:
    load_dotenv()
    settings = load_settings()
    configure_logging(settings.log_level)
    # A failed database connection aborts startup with a non-zero exit status.
    uvicorn.run("docauth.app:app", host=settings.host, port=settings.port, reload=settings.reload)


if __name__ == "__main__":
    main()
