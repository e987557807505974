import os
from setuptools import setup, find_packages

setup(
    name="inferguard",
    version="0.1.0",
    description="inferguard: supervise a local model server so weak hardware degrades instead of hanging",
    long_description=open("README.md").read() if os.path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"inferguard": ["data/*.json"]},
    include_package_data=True,
    install_requires=[
        "psutil>=5.9.0",
        "httpx>=0.24.0",
        "click>=8.0.0",
    ],
    extras_require={
        "serve": [
            "fastapi>=0.100.0",
            "pydantic>=2.0.0",
            "uvicorn[standard]>=0.20.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-asyncio>=0.21.0",
            "fastapi>=0.100.0",
            "pydantic>=2.0.0",
            "uvicorn[standard]>=0.20.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-asyncio>=0.21.0",
            "ruff>=0.4.0",
            "fastapi>=0.100.0",
            "pydantic>=2.0.0",
            "uvicorn[standard]>=0.20.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "inferguard=inferguard.cli:main",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
