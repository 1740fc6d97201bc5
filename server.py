import logging
import os

from api._shared import SESSION
from api.index import app


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", "8000"))
    # Initial view activation: load once up front, later loads come from /api/refresh
    SESSION.ensure_loaded()
    if SESSION.error:
        app.logger.warning("Initial load failed: %s", SESSION.error)
    app.run(host="0.0.0.0", port=port, debug=False)


if __name__ == "__main__":
    main()
