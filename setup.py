"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/kforge/kforge"
KEYWORDS = "kernel build linker kallsyms toolchain cross-compile elf unwind"
HERE = os.path.dirname(os.path.abspath(__file__))


if __name__ == "__main__":
    setup(
        name="kforge",
        version="0.1.0",
        description="Kernel build driver with two-phase linking and an embedded kallsyms table",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.9",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=[
            "psutil>=5.9",
            "pyelftools>=0.29",
        ],
        extras_require={
            "test": [
                "pytest>=7.0",
            ],
        },
        entry_points={
            "console_scripts": [
                "kforge=kforge.cli:main",
            ],
        },
        include_package_data=True)
