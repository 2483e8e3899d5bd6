"""Setup script for the CRM product payment ledger."""

from setuptools import setup, find_packages

setup(
    name="crm-ledger",
    version="1.0.0",
    description="CRM product payment ledger with financing approvals, cache coherency and real-time fan-out",
    author="ML Roadmap Bootcamp",
    python_requires=">=3.11",
    packages=find_packages(include=["crm_ledger", "crm_ledger.*"]),
    package_data={"crm_ledger": ["database/migrations/versions/*.py"]},
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#") and not line.startswith("git+")
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "pytest-mock>=3.12.0",
            "httpx>=0.27.0",
            "aiosqlite>=0.19.0",
        ],
        "dev": [
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "crm-ledger-api=crm_ledger.api.main:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
