"""Setup script for the deposit clearance service."""

from setuptools import setup, find_packages

setup(
    name="deposit-clearance",
    version="0.1.0",
    description="Scheduled wallet deposit clearance with persisted job locking and audit trail",
    author="VTPay Engineering",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#") and not line.startswith("git+")
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "aiosqlite>=0.19.0",
            "httpx>=0.25.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "deposit-clearance-worker=workers.deposit_clearance_worker:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
