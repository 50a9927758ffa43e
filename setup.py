"""
Setup configuration for the routespec package.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="routespec",
    version="0.1.0",
    author="routespec Contributors",
    author_email="contributors@routespec.example.com",
    description="Declare a route once: request validation, dependency injection, response validation and OpenAPI 3.1 from one schema",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/routespec",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov",
            "ruff",
            "mypy",
            "openapi-spec-validator>=0.7.0",
        ],
        "asgi": ["uvicorn"],
    },
    project_urls={
        "Bug Reports": "https://github.com/yourusername/routespec/issues",
        "Source": "https://github.com/yourusername/routespec",
    },
)
