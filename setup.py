from __future__ import annotations

from setuptools import find_packages, setup

setup(
    name="ppnl",
    version="0.1.0",
    description="Threaded non-local pseudopotential (projector) integrals for block-sparse matrices",
    python_requires=">=3.10",
    packages=find_packages(include=["ppnl", "ppnl.*"]),
    install_requires=[
        "numpy>=1.23",
        "numba>=0.57",
        "threadpoolctl>=3.1",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
)
