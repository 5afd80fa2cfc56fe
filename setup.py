"""Setup configuration for the FairGuard moderation engine."""

from setuptools import setup, find_packages

setup(
    name="fairguard",
    version="0.1.0",
    description="Moderation decision and warning-lifecycle engine for chat communities",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "aiosqlite",
        "PyYAML",
        "python-dotenv",
        "prompt_toolkit",
        "jsonschema",
        "openai",
        "anthropic",
        "google-genai",
        "py-cord",
        "tenacity",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "fairguard=fairguard.main:main",
        ],
    },
)
