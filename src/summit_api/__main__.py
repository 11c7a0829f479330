import uvicorn

from .core.settings import settings


def main() -> None:
    uvicorn.run(
        "summit_api.app:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
        log_config=None,
    )


if __name__ == "__main__":
    main()
