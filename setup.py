#!/usr/bin/env python

from setuptools import setup, find_packages

setup(
    name="swg_combat_tools",
    version="1.0.0",
    description="Python tools for parsing and analysing Star Wars Galaxies combat logs",
    author="GeNe FRAG",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    package_data={"config": ["profiles/*.json", "profiles/*.json.example"]},
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.19.0",
        "pandas>=1.0.0",
        "openpyxl>=3.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "swg-combat-analyzer=swg_combat_tools.tools.combat_analyzer:main",
        ],
    },
)
