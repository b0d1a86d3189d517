"""
Setup configuration for drift-trader package.

The on-chain binding lives behind the ``drift`` extra; the core package and
its tests run against the in-memory exchange.
"""
from setuptools import setup, find_packages

setup(
    name="drift-trader",
    version="0.1.0",
    description="Drift perpetuals trading bot: sub-account provisioning, collateral guard, delegate trading",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="Trading System Team",
    license="MIT",
    url="https://github.com/yourusername/drift_trader",
    packages=find_packages(exclude=["tests", "docs", "examples"]),
    python_requires=">=3.9",
    install_requires=[
        "aiohttp>=3.8.0,<4.0",
        "pyyaml>=6.0,<7.0",
        "loguru>=0.7.0,<1.0",
        "PyNaCl>=1.5.0,<2.0",
        "base58>=2.1.0,<3.0",
    ],
    extras_require={
        "drift": [
            "driftpy>=0.8.0",
            "anchorpy>=0.20.0",
            "solana>=0.34.0",
            "solders>=0.21.0",
        ],
        "test": [
            "pytest>=7.0.0,<8.0",
            "pytest-asyncio>=0.21.0,<1.0",
        ],
        "dev": [
            "black>=23.0.0,<24.0",
            "ruff>=0.1.0,<1.0",
            "mypy>=1.0.0,<2.0",
            "isort>=5.12.0,<6.0",
            "pytest-cov>=4.0.0,<5.0",
            "pre-commit>=3.0.0,<4.0",
            "sphinx>=6.0.0,<8.0",
            "sphinx-rtd-theme>=1.2.0,<2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "drift-trader=drift_trader.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
