"""Setup script for frontmap"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
this_directory = Path(__file__).parent
long_description = ""
readme_path = this_directory / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")

setup(
    name="frontmap",
    version="0.1.0",
    author="frontmap contributors",
    author_email="",
    description="Entity indexer and incremental enricher for TypeScript/TSX/Vue monorepos",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
    install_requires=[
        "tree-sitter>=0.23.0",
        "tree-sitter-typescript>=0.23.0",
        "rich>=13.0.0",
        "typer>=0.9.0",
        "diskcache>=5.6.0",
        "json5>=0.9.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "frontmap=frontmap.cli:main",
        ],
    },
    keywords="typescript vue monorepo static-analysis code-index annotations",
)
