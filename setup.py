"""
ClonePy: Strategy-Compiled Deep Copy for Python Object Graphs

Deep copies arbitrary object graphs with:
1. Identity-Preserving Traversal (shared references and cycles)
2. Iterative Work-List Draining (no recursion limit on long chains)
3. Per-Type Strategy Compilation with Generated Field Walkers
4. Offset-Indexed Multi-Dimensional Arrays
"""

from setuptools import setup, find_packages

setup(
    name="clonepy",
    version="1.0.0",
    description="Strategy-compiled deep copy for Python object graphs",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="ClonePy Team",
    python_requires=">=3.10",
    packages=find_packages(include=["clonepy", "clonepy.*"]),
    install_requires=[
        "numpy>=1.24.0",
        "cffi>=1.15.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-benchmark>=4.0",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries",
    ],
)
