"""
Setup script for wkhtml-service.

Allows development installation with `pip install -e .[test]`
"""

from setuptools import setup, find_packages

setup(
    name="wkhtml-service",
    version="0.1.0",
    description="HTTP service converting HTML to PDF/JPEG with wkhtmltopdf",
    packages=find_packages(include=["wkhtml_service", "wkhtml_service.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.29",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "python-multipart>=0.0.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "wkhtml-service=wkhtml_service.__main__:main",
        ],
    },
)
