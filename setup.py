"""
Warrant Core - LLM claim verification
Setup configuration for installation
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""

setup(
    name="warrant-core",
    version="0.1.0",
    author="Warrant Team",
    author_email="warrant@example.com",
    description="Warrant - verifies LLM success claims against real build, test and audit results",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/warrant-core",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"warrant.steps": ["defaults/*.yaml"]},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Quality Assurance",
        "Topic :: Software Development :: Testing",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "typer>=0.9.0",
        "rich>=13.0.0",
        "pyyaml>=6.0",
        "structlog>=23.1.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "warrant=warrant.cli.main:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
