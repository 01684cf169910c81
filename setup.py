"""Setup script for the storyline engine package."""

from setuptools import setup, find_packages

setup(
    name="storyline-engine",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "httpx>=0.27",
        "pydantic>=2.6",
        "pydantic-settings>=2.2",
        "prometheus-client>=0.20",
        "python-dotenv>=1.0",
        "structlog>=24.1",
        "tenacity>=8.2",
        "uvicorn>=0.29",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    description="Storyline Engine - dependency-aware orchestration of analysis agents",
    author="NeuraForge Team",
)
