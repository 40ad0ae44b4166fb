#!/usr/bin/env python3
"""
Setup script for health-exporter.
Installs the telemetry export pipeline library.
"""

from setuptools import setup, find_packages

setup(
    name="health-exporter",
    version="0.4.0",
    description="Export biometric health metrics to Prometheus Pushgateway or InfluxDB",
    python_requires=">=3.10",
    packages=find_packages(include=["health_exporter", "health_exporter.*"]),
    install_requires=[
        "pydantic>=2.0",
        "httpx>=0.24",
        "aiofiles>=23.0",
        "PyYAML>=6.0",
        "cryptography>=41.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "hypothesis>=6.0",
        ],
    },
)
