import uvicorn

from tripredirect.config import Settings


def main() -> None:
    settings = Settings.from_env()
    uvicorn.run("tripredirect.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
