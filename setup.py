"""Setup configuration for the KKN WhatsApp Bot."""

from setuptools import setup, find_packages

setup(
    name="kknbot",
    version="0.1.0",
    description="A WhatsApp bot for KKN groups: moderation, schedules and chat commands",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "aiosqlite>=0.20",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "kknbot=kknbot.main:main",
        ],
    },
)
