"""
Setup script for xfactor-growth.

xfactor is the trigger-to-invite core of a viral growth system for an
education platform. It serves three roles:

1. Decision engine - routes user triggers and session summaries to viral loops
2. Guardrails - trust & safety, throttling and SLA observation for every agent
3. Audit trail - publishes every lifecycle transition on an event bus

The 'xfactor' command runs triggers and summaries from the terminal.
"""

from setuptools import find_packages, setup

setup(
    name="xfactor-growth",
    version="0.1.0",
    description="Trigger-to-invite viral growth loops for an education platform",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["xfactor", "xfactor.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "xfactor=xfactor.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="viral-loops referrals growth education agents",
)
