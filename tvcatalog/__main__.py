import uvicorn

from tvcatalog.config import load_settings, setup_logging
from tvcatalog.main import create_app


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
