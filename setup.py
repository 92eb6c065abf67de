from __future__ import annotations

from setuptools import find_namespace_packages, setup

setup(
    name="theseus-fdm",
    version="0.1.0",
    description="Constrained adjoint-gradient form finding for force-density networks",
    python_requires=">=3.9",
    packages=find_namespace_packages(
        include=[
            "core*",
            "geometry*",
            "modules*",
            "parameters*",
            "runtime*",
            "theseus*",
        ]
    ),
    py_modules=["main"],
    install_requires=[
        "numpy>=1.23",
        "scipy>=1.11",
        "PyYAML>=6.0",
    ],
    extras_require={"test": ["pytest>=7"]},
    entry_points={"console_scripts": ["theseus=main:main"]},
)
