# setup.py
from pathlib import Path
from setuptools import setup, find_packages


def read_requirements(file: str):
    reqs = []
    for line in Path(file).read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            reqs.append(line)
    return reqs


setup(
    name="torus-indexer",
    version="1.0.0",
    packages=find_packages(include=["torus_indexer", "torus_indexer.*"]),
    python_requires=">=3.10",
    install_requires=read_requirements("requirements.txt"),
    extras_require={
        "test": ["pytest", "pytest-asyncio"],
    },
    entry_points={
        "console_scripts": [
            "run_indexer=torus_indexer.cli:main",
        ],
    },
)
