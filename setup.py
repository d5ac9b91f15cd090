from setuptools import setup, find_packages

setup(
    name="robocast",
    version="0.1.0",
    description="Robocast - scheduled message delivery for robot webhooks",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi>=0.109.0",
        "uvicorn>=0.27.0",
        "apscheduler>=3.10.0,<4",
        "croniter>=2.0.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.0.0",
        "loguru>=0.7.0",
        "pyyaml>=6.0",
        "aiohttp>=3.9.0",
        "discord.py>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.25",
        ],
    },
    entry_points={
        "console_scripts": [
            "robocast=robocast.main:main",
        ],
    },
)
