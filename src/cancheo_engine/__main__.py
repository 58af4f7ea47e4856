import uvicorn

from .app import create_app


def main() -> None:
    uvicorn.run("cancheo_engine.app:create_app", factory=True)


if __name__ == "__main__":
    main()
