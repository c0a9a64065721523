"""Run the service: python -m health_ai"""
import uvicorn
from dotenv import load_dotenv

from .config import Settings


def main():
    load_dotenv()
    settings = Settings.from_env()
    uvicorn.run("health_ai.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
